"""Booking request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ridepool.schemas.ride import Location


class CreateBookingRequest(BaseModel):
    """Request body for POST /bookings.

    Pickup and dropoff default to the ride's origin and destination.
    """

    model_config = ConfigDict(extra="forbid")

    ride_id: uuid.UUID
    seats: int = Field(default=1, ge=1, le=4)
    pickup_location: Location | None = None
    dropoff_location: Location | None = None
    passenger_notes: str | None = Field(default=None, max_length=300)


class CancelBookingRequest(BaseModel):
    """Optional body for POST /bookings/{id}/cancel."""

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=255)


class PaymentSignalRequest(BaseModel):
    """Request body for POST /bookings/{id}/payment.

    The payment gateway is outside this service; callers relay its verdict.
    """

    model_config = ConfigDict(extra="forbid")

    succeeded: bool
    reference: str | None = Field(default=None, max_length=255)


class BookingResponse(BaseModel):
    """Booking as seen by its passenger or the ride's driver."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ride_id: uuid.UUID
    passenger_id: str
    seats_booked: int
    total_amount: Decimal
    currency: str
    pickup_location: dict | None = None
    dropoff_location: dict | None = None
    passenger_notes: str | None = None
    status: str
    payment_status: str
    payment_reference: str | None = None
    booking_time: datetime
    confirmation_time: datetime | None = None
    cancellation_time: datetime | None = None
    cancellation_reason: str | None = None
