"""Ride endpoints.

Endpoints:
- POST /rides — publish a ride (driver = caller)
- GET /rides/search — find bookable rides between two cities
- GET /rides/{ride_id} — ride details
- PATCH /rides/{ride_id}/status — start, complete or cancel a ride (driver)

Search and details are public; publishing and status changes require a
Bearer verification token.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Annotated, Literal

from fastapi import APIRouter, Query, status

from ridepool.api.deps import BookingEngineDep, CurrentCallerId
from ridepool.core.responses import DataResponse, ListResponse
from ridepool.repositories.inventory import SortBy
from ridepool.schemas.ride import (
    CreateRideRequest,
    RideResponse,
    UpdateRideStatusRequest,
)
from ridepool.services.booking_engine import DEFAULT_MAX_PRICE
from ridepool.services.booking_status import RideStatus

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def publish_ride(
    body: CreateRideRequest,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[RideResponse]:
    """Publish a ride with every seat available."""
    ride = await engine.publish_ride(
        caller_id,
        origin=body.origin.to_document(),
        destination=body.destination.to_document(),
        departure_time=body.departure_time,
        total_seats=body.total_seats,
        price_per_seat=body.price_per_seat,
        instant_booking=body.instant_booking,
        currency=body.currency,
        description=body.description,
    )
    return DataResponse(data=RideResponse.model_validate(ride))


@router.get("/search")
async def search_rides(
    engine: BookingEngineDep,
    origin: Annotated[str, Query(min_length=1, max_length=100)],
    destination: Annotated[str, Query(min_length=1, max_length=100)],
    travel_date: Annotated[date | None, Query(alias="date")] = None,
    passengers: Annotated[int, Query(ge=1, le=4)] = 1,
    max_price: Annotated[Decimal, Query(ge=0)] = DEFAULT_MAX_PRICE,
    sort_by: Annotated[Literal["price", "time"], Query()] = "price",
) -> ListResponse[RideResponse]:
    """Search active rides.

    Without ``date`` only future departures are returned; with it, rides
    departing on that UTC day. Results are capped at 50.
    """
    rides = await engine.search_rides(
        origin=origin,
        destination=destination,
        travel_date=travel_date,
        passengers=passengers,
        max_price=max_price,
        sort_by=SortBy(sort_by),
    )
    items = [RideResponse.model_validate(r) for r in rides]
    return ListResponse(data=items, count=len(items))


@router.get("/{ride_id}")
async def get_ride(
    ride_id: uuid.UUID,
    engine: BookingEngineDep,
) -> DataResponse[RideResponse]:
    """Get ride details."""
    ride = await engine.get_ride(ride_id)
    return DataResponse(data=RideResponse.model_validate(ride))


@router.patch("/{ride_id}/status")
async def update_ride_status(
    ride_id: uuid.UUID,
    body: UpdateRideStatusRequest,
    caller_id: CurrentCallerId,
    engine: BookingEngineDep,
) -> DataResponse[RideResponse]:
    """Move the ride to in_progress, completed or cancelled.

    Cancelling releases every open booking; completing finishes confirmed
    bookings.
    """
    ride = await engine.update_ride_status(
        caller_id, ride_id, RideStatus(body.status)
    )
    return DataResponse(data=RideResponse.model_validate(ride))
