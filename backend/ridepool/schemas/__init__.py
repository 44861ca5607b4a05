"""Pydantic request/response schemas for API endpoints."""

from ridepool.schemas.booking import (
    BookingResponse,
    CancelBookingRequest,
    CreateBookingRequest,
    PaymentSignalRequest,
)
from ridepool.schemas.otp import (
    OTPPeekResponse,
    OTPSentResponse,
    OTPVerifiedResponse,
    SendOTPRequest,
    VerifyOTPRequest,
)
from ridepool.schemas.ride import (
    CreateRideRequest,
    Location,
    RideResponse,
    UpdateRideStatusRequest,
)

__all__ = [
    "BookingResponse",
    "CancelBookingRequest",
    "CreateBookingRequest",
    "CreateRideRequest",
    "Location",
    "OTPPeekResponse",
    "OTPSentResponse",
    "OTPVerifiedResponse",
    "PaymentSignalRequest",
    "RideResponse",
    "SendOTPRequest",
    "UpdateRideStatusRequest",
    "VerifyOTPRequest",
]
