"""Ride request/response schemas.

Monetary values are Decimals (serialized as strings in JSON) to preserve
precision. All request schemas use ConfigDict(extra="forbid").
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    """WGS84 point."""

    model_config = ConfigDict(extra="forbid")

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class Location(BaseModel):
    """Address with the city used for search matching."""

    model_config = ConfigDict(extra="forbid")

    address: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    coordinates: Coordinates | None = None

    def to_document(self) -> dict:
        """JSON document stored on the ride or booking."""
        return self.model_dump(exclude_none=True)


class CreateRideRequest(BaseModel):
    """Request body for POST /rides."""

    model_config = ConfigDict(extra="forbid")

    origin: Location
    destination: Location
    departure_time: AwareDatetime
    total_seats: int = Field(ge=1, le=7)
    price_per_seat: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    instant_booking: bool = False
    currency: str | None = Field(default=None, pattern=r"^[A-Z]{3}$")
    description: str | None = Field(default=None, max_length=500)


class UpdateRideStatusRequest(BaseModel):
    """Request body for PATCH /rides/{id}/status."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["in_progress", "completed", "cancelled"]


class RideResponse(BaseModel):
    """Public ride data."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    driver_id: str
    origin: dict
    destination: dict
    departure_time: datetime
    total_seats: int
    available_seats: int
    price_per_seat: Decimal
    currency: str
    status: str
    instant_booking: bool
    description: str | None = None
    created_at: datetime
