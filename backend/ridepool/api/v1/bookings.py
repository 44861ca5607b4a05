"""Booking endpoints.

Endpoints:
- POST /bookings — book seats on a ride (passenger = caller)
- GET /bookings/{booking_id} — booking details (passenger or driver)
- POST /bookings/{booking_id}/cancel — cancel (passenger or driver)
- POST /bookings/{booking_id}/confirm — accept a request (driver)
- POST /bookings/{booking_id}/reject — decline a request (driver)
- POST /bookings/{booking_id}/no-show — passenger did not turn up (driver)
- POST /bookings/{booking_id}/payment — relay a payment verdict (passenger)

All endpoints require a Bearer verification token.
"""

import uuid

from fastapi import APIRouter, status

from ridepool.api.deps import BookingEngineDep, CurrentCallerId
from ridepool.core.responses import DataResponse
from ridepool.schemas.booking import (
    BookingResponse,
    CancelBookingRequest,
    CreateBookingRequest,
    PaymentSignalRequest,
)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: CreateBookingRequest,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[BookingResponse]:
    """Book seats.

    Instant-booking rides return a confirmed booking; others return a
    pending request for the driver to confirm.
    """
    booking = await engine.create_booking(
        caller_id,
        body.ride_id,
        body.seats,
        pickup_location=(
            body.pickup_location.to_document() if body.pickup_location else None
        ),
        dropoff_location=(
            body.dropoff_location.to_document() if body.dropoff_location else None
        ),
        passenger_notes=body.passenger_notes,
    )
    return DataResponse(data=BookingResponse.model_validate(booking))


@router.get("/{booking_id}")
async def get_booking(
    booking_id: uuid.UUID,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[BookingResponse]:
    """Get a booking the caller is party to."""
    booking = await engine.get_booking(caller_id, booking_id)
    return DataResponse(data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: uuid.UUID,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
    body: CancelBookingRequest | None = None,
) -> DataResponse[BookingResponse]:
    """Cancel a booking; confirmed seats return to the ride."""
    booking = await engine.cancel_booking(
        caller_id,
        booking_id,
        reason=body.reason if body else None,
    )
    return DataResponse(data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/confirm")
async def confirm_booking(
    booking_id: uuid.UUID,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[BookingResponse]:
    """Accept a pending request if seats are still available."""
    booking = await engine.confirm_booking(caller_id, booking_id)
    return DataResponse(data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/reject")
async def reject_booking(
    booking_id: uuid.UUID,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[BookingResponse]:
    """Decline a pending request."""
    booking = await engine.reject_booking(caller_id, booking_id)
    return DataResponse(data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/no-show")
async def mark_no_show(
    booking_id: uuid.UUID,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[BookingResponse]:
    """Record that a confirmed passenger did not turn up."""
    booking = await engine.mark_no_show(caller_id, booking_id)
    return DataResponse(data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/payment")
async def record_payment(
    booking_id: uuid.UUID,
    body: PaymentSignalRequest,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[BookingResponse]:
    """Apply the payment gateway's verdict to the booking."""
    booking = await engine.record_payment(
        caller_id,
        booking_id,
        succeeded=body.succeeded,
        reference=body.reference,
    )
    return DataResponse(data=BookingResponse.model_validate(booking))
