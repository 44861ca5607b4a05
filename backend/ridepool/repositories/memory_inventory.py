"""Process-local ride inventory.

WHY IN-MEMORY:
- Local-first development without PostgreSQL
- Fast, deterministic tests of the booking engine
- Same unit-of-work contract as the SQL backend

Atomicity: a unit snapshots the ride and its bookings on entry and restores
the snapshot if the block raises, so a failed operation leaves no trace.
Isolation comes from the caller holding the ride's KeyedLock; nothing here
suspends while a unit is open.
"""

import uuid
from collections.abc import AsyncIterator, Collection
from contextlib import asynccontextmanager
from typing import Any

from ridepool.core.errors import DuplicateBookingError, InternalError
from ridepool.models import Booking, Ride
from ridepool.repositories.inventory import (
    InventoryUnit,
    RideInventory,
    RideSearch,
    SortBy,
    day_bounds,
)
from ridepool.services.booking_status import OPEN_BOOKING_STATUSES, RideStatus

_RIDE_FIELDS = tuple(Ride.__table__.columns.keys())
_BOOKING_FIELDS = tuple(Booking.__table__.columns.keys())
_OPEN_VALUES = frozenset(s.value for s in OPEN_BOOKING_STATUSES)


def _capture(obj: object, fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(obj, name) for name in fields}


def _apply(obj: object, values: dict[str, Any]) -> None:
    for name, value in values.items():
        setattr(obj, name, value)


class _MemoryUnit(InventoryUnit):
    def __init__(self, inventory: "MemoryRideInventory", ride: Ride | None) -> None:
        self._inventory = inventory
        self.ride = ride

    def _ride_bookings(self) -> list[Booking]:
        if self.ride is None:
            return []
        return self._inventory.bookings_for(self.ride.id)

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        booking = self._inventory.bookings.get(booking_id)
        if booking is None or self.ride is None or booking.ride_id != self.ride.id:
            return None
        return booking

    async def find_open_booking(self, passenger_id: str) -> Booking | None:
        for booking in self._ride_bookings():
            if booking.passenger_id == passenger_id and booking.status in _OPEN_VALUES:
                return booking
        return None

    async def list_bookings(self, statuses: Collection[str]) -> list[Booking]:
        return [b for b in self._ride_bookings() if b.status in statuses]

    async def add_booking(self, booking: Booking) -> None:
        if self.ride is None or booking.ride_id != self.ride.id:
            raise InternalError("Booking does not belong to this unit's ride")
        if await self.find_open_booking(booking.passenger_id) is not None:
            raise DuplicateBookingError()
        self._inventory.bookings[booking.id] = booking
        self._inventory.ride_index.setdefault(self.ride.id, []).append(booking.id)

    async def update_booking(self, booking: Booking, **changes: Any) -> None:
        _apply(booking, changes)

    async def update_ride(self, **changes: Any) -> None:
        if "available_seats" in changes:
            raise InternalError("available_seats changes only via reserve/release")
        _apply(self.ride, changes)

    async def reserve_seats(self, seats: int) -> bool:
        if self.ride is None or self.ride.available_seats < seats:
            return False
        self.ride.available_seats -= seats
        return True

    async def release_seats(self, seats: int) -> None:
        if self.ride is None:
            raise InternalError("Cannot release seats without a ride")
        if self.ride.available_seats + seats > self.ride.total_seats:
            raise InternalError("Seat release would exceed ride capacity")
        self.ride.available_seats += seats


class MemoryRideInventory(RideInventory):
    """Rides and bookings held in dictionaries keyed by id."""

    def __init__(self) -> None:
        self.rides: dict[uuid.UUID, Ride] = {}
        self.bookings: dict[uuid.UUID, Booking] = {}
        # ride id -> booking ids in creation order
        self.ride_index: dict[uuid.UUID, list[uuid.UUID]] = {}

    def bookings_for(self, ride_id: uuid.UUID) -> list[Booking]:
        """All bookings of a ride in creation order."""
        return [self.bookings[b] for b in self.ride_index.get(ride_id, [])]

    @asynccontextmanager
    async def unit(self, ride_id: uuid.UUID) -> AsyncIterator[InventoryUnit]:
        ride = self.rides.get(ride_id)
        ride_before = _capture(ride, _RIDE_FIELDS) if ride is not None else None
        index_before = list(self.ride_index.get(ride_id, []))
        bookings_before = {
            b.id: _capture(b, _BOOKING_FIELDS) for b in self.bookings_for(ride_id)
        }
        try:
            yield _MemoryUnit(self, ride)
        except BaseException:
            if ride is not None and ride_before is not None:
                _apply(ride, ride_before)
            for booking_id in self.ride_index.get(ride_id, []):
                if booking_id in bookings_before:
                    _apply(self.bookings[booking_id], bookings_before[booking_id])
                else:
                    del self.bookings[booking_id]
            if index_before:
                self.ride_index[ride_id] = index_before
            else:
                self.ride_index.pop(ride_id, None)
            raise

    async def add_ride(self, ride: Ride) -> None:
        self.rides[ride.id] = ride

    async def get_ride(self, ride_id: uuid.UUID) -> Ride | None:
        return self.rides.get(ride_id)

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        return self.bookings.get(booking_id)

    async def search_rides(self, criteria: RideSearch) -> list[Ride]:
        origin = criteria.origin.lower()
        destination = criteria.destination.lower()
        if criteria.travel_date is not None:
            start, end = day_bounds(criteria.travel_date)
        else:
            start, end = None, None

        matches = []
        for ride in self.rides.values():
            if ride.status != RideStatus.ACTIVE.value:
                continue
            if origin not in ride.origin_city.lower():
                continue
            if destination not in ride.destination_city.lower():
                continue
            if ride.available_seats < criteria.passengers:
                continue
            if ride.price_per_seat > criteria.max_price:
                continue
            if start is not None and end is not None:
                if not start <= ride.departure_time < end:
                    continue
            elif ride.departure_time <= criteria.now:
                continue
            matches.append(ride)

        if criteria.sort_by is SortBy.PRICE:
            matches.sort(key=lambda r: (r.price_per_seat, r.departure_time))
        else:
            matches.sort(key=lambda r: (r.departure_time, r.price_per_seat))
        return matches[: criteria.limit]
