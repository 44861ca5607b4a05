"""Booking model - a passenger's claim on seats of a ride.

ride_id is a lookup reference only; a booking never controls the ride's
lifetime. The partial unique index enforces one open (pending/confirmed)
booking per passenger per ride at the database level.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ridepool.models.base import Base


class Booking(Base):
    """Seat booking on a ride.

    Attributes:
        passenger_id: Verified identity of the booking passenger.
        seats_booked: 1-4 seats.
        total_amount: seats_booked x ride.price_per_seat at booking time.
        status: pending | confirmed | cancelled | completed | no_show.
        payment_status: pending | paid | refunded | failed.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "seats_booked BETWEEN 1 AND 4",
            name="ck_bookings_seats_range",
        ),
        CheckConstraint(
            "total_amount >= 0",
            name="ck_bookings_amount_non_negative",
        ),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded', 'failed')",
            name="ck_bookings_payment_status",
        ),
        Index("idx_bookings_ride_id", "ride_id"),
        Index("idx_bookings_passenger_id", "passenger_id"),
        Index(
            "uq_bookings_open_ride_passenger",
            "ride_id",
            "passenger_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    ride_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rides.id", ondelete="RESTRICT"),
        nullable=False,
    )
    passenger_id: Mapped[str] = mapped_column(String(255), nullable=False)
    seats_booked: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    pickup_location: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    dropoff_location: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    passenger_notes: Mapped[str | None] = mapped_column(String(300), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    booking_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    confirmation_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancellation_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
