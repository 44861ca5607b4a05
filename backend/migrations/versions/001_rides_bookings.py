"""Create rides and bookings tables.

Revision ID: 001_rides_bookings
Revises:
Create Date: 2026-10-19

Seat accounting constraints live in the database as well as the service:

1. CHECK available_seats BETWEEN 0 AND total_seats: a lost update can never
   over-book or over-release a ride.

2. Partial UNIQUE index on bookings(ride_id, passenger_id) WHERE status is
   pending or confirmed, so concurrent duplicate requests from one passenger
   cannot both land.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_rides_bookings"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Rides: a driver's published trip and its seat inventory.
    op.create_table(
        "rides",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("driver_id", sa.String(255), nullable=False),
        sa.Column("origin", postgresql.JSONB(), nullable=False),
        sa.Column("destination", postgresql.JSONB(), nullable=False),
        sa.Column("origin_city", sa.String(100), nullable=False),
        sa.Column("destination_city", sa.String(100), nullable=False),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        sa.Column("price_per_seat", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "instant_booking",
            sa.Boolean(),
            nullable=False,
            server_default="false",
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "total_seats BETWEEN 1 AND 7",
            name="ck_rides_total_seats_range",
        ),
        sa.CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_rides_available_seats_bounds",
        ),
        sa.CheckConstraint(
            "price_per_seat >= 0",
            name="ck_rides_price_non_negative",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'in_progress', 'completed', 'cancelled')",
            name="ck_rides_status",
        ),
    )
    op.create_index("idx_rides_driver_id", "rides", ["driver_id"])
    op.create_index("idx_rides_route", "rides", ["origin_city", "destination_city"])
    op.create_index("idx_rides_departure_time", "rides", ["departure_time"])
    op.create_index("idx_rides_status", "rides", ["status"])

    # Bookings: a passenger's claim on seats of a ride.
    op.create_table(
        "bookings",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "ride_id",
            sa.UUID(),
            sa.ForeignKey("rides.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("passenger_id", sa.String(255), nullable=False),
        sa.Column("seats_booked", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("pickup_location", postgresql.JSONB(), nullable=True),
        sa.Column("dropoff_location", postgresql.JSONB(), nullable=True),
        sa.Column("passenger_notes", sa.String(300), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "payment_status",
            sa.String(20),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmation_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.CheckConstraint(
            "seats_booked BETWEEN 1 AND 4",
            name="ck_bookings_seats_range",
        ),
        sa.CheckConstraint(
            "total_amount >= 0",
            name="ck_bookings_amount_non_negative",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded', 'failed')",
            name="ck_bookings_payment_status",
        ),
    )
    op.create_index("idx_bookings_ride_id", "bookings", ["ride_id"])
    op.create_index("idx_bookings_passenger_id", "bookings", ["passenger_id"])
    op.create_index(
        "uq_bookings_open_ride_passenger",
        "bookings",
        ["ride_id", "passenger_id"],
        unique=True,
        postgresql_where="status IN ('pending', 'confirmed')",
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("rides")
