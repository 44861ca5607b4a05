"""Ride model - a driver's published trip and its seat inventory.

available_seats is the authoritative admission counter. It is written only by
the booking engine (reserve on confirmation, release on cancellation).
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ridepool.models.base import Base


class Ride(Base):
    """Published ride with a fixed seat inventory.

    Attributes:
        driver_id: Verified identity (phone/email) of the publishing driver.
        origin / destination: {"address", "city", "state", "coordinates"}.
        origin_city / destination_city: Denormalized for search.
        total_seats: Capacity, 1-7, immutable after creation.
        available_seats: Seats not held by a confirmed booking.
        status: active | in_progress | completed | cancelled.
        instant_booking: Auto-confirm bookings without driver approval.
    """

    __tablename__ = "rides"
    __table_args__ = (
        CheckConstraint(
            "total_seats BETWEEN 1 AND 7",
            name="ck_rides_total_seats_range",
        ),
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_rides_available_seats_bounds",
        ),
        CheckConstraint(
            "price_per_seat >= 0",
            name="ck_rides_price_non_negative",
        ),
        CheckConstraint(
            "status IN ('active', 'in_progress', 'completed', 'cancelled')",
            name="ck_rides_status",
        ),
        Index("idx_rides_driver_id", "driver_id"),
        Index("idx_rides_route", "origin_city", "destination_city"),
        Index("idx_rides_departure_time", "departure_time"),
        Index("idx_rides_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    driver_id: Mapped[str] = mapped_column(String(255), nullable=False)
    origin: Mapped[dict] = mapped_column(JSONB, nullable=False)
    destination: Mapped[dict] = mapped_column(JSONB, nullable=False)
    origin_city: Mapped[str] = mapped_column(String(100), nullable=False)
    destination_city: Mapped[str] = mapped_column(String(100), nullable=False)
    departure_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_seat: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    instant_booking: Mapped[bool] = mapped_column(Boolean, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
