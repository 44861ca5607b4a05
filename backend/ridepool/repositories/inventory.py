"""Ride inventory storage interface.

The booking engine reads and writes rides and bookings only through a
RideInventory. Every mutation of a ride's seats or its bookings happens inside
a unit opened with ``RideInventory.unit(ride_id)``: either all of the unit's
writes become visible or none do.

Two backends implement it:
- MemoryRideInventory: process-local dictionaries (local-first mode, tests).
- SQLRideInventory: PostgreSQL via SQLAlchemy async, row lock on the ride.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Collection
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from ridepool.models import Booking, Ride

MAX_SEARCH_RESULTS = 50


class SortBy(Enum):
    """Ordering of search results."""

    PRICE = "price"
    TIME = "time"


@dataclass(frozen=True)
class RideSearch:
    """Ride search criteria.

    Attributes:
        origin: Substring of the origin city (case-insensitive).
        destination: Substring of the destination city (case-insensitive).
        travel_date: Restrict to departures on this UTC calendar day.
            When None, only future departures are returned.
        passengers: Minimum available seats.
        max_price: Upper bound on price per seat.
        sort_by: Cheapest first or earliest first.
        now: Reference instant for the future-only filter.
        limit: Maximum number of rides returned.
    """

    origin: str
    destination: str
    travel_date: date | None
    passengers: int
    max_price: Decimal
    sort_by: SortBy
    now: datetime
    limit: int = MAX_SEARCH_RESULTS


class InventoryUnit(ABC):
    """Transactional view of one ride and its bookings.

    ``ride`` is None when the ride does not exist. All mutations go through
    the methods below so the backend can roll them back together.
    """

    ride: Ride | None

    @abstractmethod
    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        """Get a booking of this ride by id."""

    @abstractmethod
    async def find_open_booking(self, passenger_id: str) -> Booking | None:
        """Get the passenger's pending or confirmed booking on this ride."""

    @abstractmethod
    async def list_bookings(self, statuses: Collection[str]) -> list[Booking]:
        """List this ride's bookings whose status is in ``statuses``."""

    @abstractmethod
    async def add_booking(self, booking: Booking) -> None:
        """Attach a new booking to this ride.

        Raises:
            DuplicateBookingError: If the passenger already has an open
                booking on the ride (storage-level uniqueness).
        """

    @abstractmethod
    async def update_booking(self, booking: Booking, **changes: Any) -> None:
        """Apply field changes to a booking of this ride."""

    @abstractmethod
    async def update_ride(self, **changes: Any) -> None:
        """Apply field changes to the ride (never ``available_seats``)."""

    @abstractmethod
    async def reserve_seats(self, seats: int) -> bool:
        """Decrement available seats if at least ``seats`` remain.

        Returns:
            True if the seats were taken, False if too few remained.
        """

    @abstractmethod
    async def release_seats(self, seats: int) -> None:
        """Return ``seats`` to the ride.

        Raises:
            InternalError: If the release would exceed total_seats.
        """


class RideInventory(ABC):
    """Storage for rides and bookings."""

    @abstractmethod
    def unit(self, ride_id: uuid.UUID) -> AbstractAsyncContextManager[InventoryUnit]:
        """Open a unit of work scoped to one ride.

        Callers must hold the ride's in-process lock for the duration.
        """

    @abstractmethod
    async def add_ride(self, ride: Ride) -> None:
        """Persist a newly published ride."""

    @abstractmethod
    async def get_ride(self, ride_id: uuid.UUID) -> Ride | None:
        """Get a ride by id."""

    @abstractmethod
    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        """Get a booking by id, outside of any unit."""

    @abstractmethod
    async def search_rides(self, criteria: RideSearch) -> list[Ride]:
        """Find bookable rides matching ``criteria``."""


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the UTC half-open interval [day, day + 1)."""
    start = datetime(day.year, day.month, day.day, tzinfo=UTC)
    return start, start + timedelta(days=1)


# Singleton inventory selected by settings
_inventory: RideInventory | None = None


def get_inventory() -> RideInventory:
    """Get the application-wide inventory.

    Returns:
        MemoryRideInventory or SQLRideInventory depending on
        ``INVENTORY_BACKEND``.
    """
    global _inventory
    if _inventory is None:
        from ridepool.core.config import settings

        if settings.inventory_backend == "database":
            from ridepool.core.database import get_session_factory
            from ridepool.repositories.sql_inventory import SQLRideInventory

            _inventory = SQLRideInventory(get_session_factory())
        else:
            from ridepool.repositories.memory_inventory import MemoryRideInventory

            _inventory = MemoryRideInventory()
    return _inventory


def reset_inventory() -> None:
    """Reset the inventory singleton (for testing)."""
    global _inventory
    _inventory = None
