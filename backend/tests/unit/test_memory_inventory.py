"""Tests for MemoryRideInventory.

Tests verify:
- A unit that raises leaves rides and bookings exactly as before
- Seat reservation never goes below zero or above capacity
- Storage-level one-open-booking-per-passenger rule
- Search filtering and ordering
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from ridepool.core.errors import DuplicateBookingError, InternalError
from ridepool.models import Booking, Ride
from ridepool.repositories.inventory import RideSearch, SortBy, day_bounds
from ridepool.repositories.memory_inventory import MemoryRideInventory
from tests.conftest import DRIVER_ID, PASSENGER_ID, T0


def _ride(**overrides) -> Ride:
    values = {
        "id": uuid.uuid4(),
        "driver_id": DRIVER_ID,
        "origin": {"address": "MG Road", "city": "Bangalore"},
        "destination": {"address": "Palace Road", "city": "Mysore"},
        "origin_city": "Bangalore",
        "destination_city": "Mysore",
        "departure_time": T0 + timedelta(days=1),
        "total_seats": 3,
        "available_seats": 3,
        "price_per_seat": Decimal("500"),
        "currency": "INR",
        "status": "active",
        "instant_booking": True,
        "description": None,
        "created_at": T0,
    }
    values.update(overrides)
    return Ride(**values)


def _booking(ride: Ride, passenger_id: str = PASSENGER_ID, **overrides) -> Booking:
    values = {
        "id": uuid.uuid4(),
        "ride_id": ride.id,
        "passenger_id": passenger_id,
        "seats_booked": 1,
        "total_amount": ride.price_per_seat,
        "currency": ride.currency,
        "pickup_location": None,
        "dropoff_location": None,
        "passenger_notes": None,
        "status": "confirmed",
        "payment_status": "pending",
        "payment_reference": None,
        "booking_time": T0,
        "confirmation_time": T0,
        "cancellation_time": None,
        "cancellation_reason": None,
    }
    values.update(overrides)
    return Booking(**values)


def _search(**overrides) -> RideSearch:
    values = {
        "origin": "bangalore",
        "destination": "mysore",
        "travel_date": None,
        "passengers": 1,
        "max_price": Decimal("5000"),
        "sort_by": SortBy.PRICE,
        "now": T0,
    }
    values.update(overrides)
    return RideSearch(**values)


@pytest.fixture
async def ride(inventory: MemoryRideInventory) -> Ride:
    ride = _ride()
    await inventory.add_ride(ride)
    return ride


class TestUnit:
    async def test_unknown_ride_yields_none(self, inventory: MemoryRideInventory) -> None:
        async with inventory.unit(uuid.uuid4()) as unit:
            assert unit.ride is None
            assert not await unit.reserve_seats(1)

    async def test_commit_keeps_changes(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        booking = _booking(ride)
        async with inventory.unit(ride.id) as unit:
            assert await unit.reserve_seats(1)
            await unit.add_booking(booking)

        assert ride.available_seats == 2
        assert await inventory.get_booking(booking.id) is booking
        assert inventory.bookings_for(ride.id) == [booking]

    async def test_exception_rolls_back_everything(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        existing = _booking(ride, status="pending", confirmation_time=None)
        async with inventory.unit(ride.id) as unit:
            await unit.add_booking(existing)

        new = _booking(ride, passenger_id="rider@example.com")
        with pytest.raises(RuntimeError):
            async with inventory.unit(ride.id) as unit:
                await unit.reserve_seats(2)
                await unit.add_booking(new)
                await unit.update_booking(existing, status="cancelled")
                await unit.update_ride(status="cancelled")
                raise RuntimeError("abort")

        assert ride.available_seats == 3
        assert ride.status == "active"
        assert existing.status == "pending"
        assert await inventory.get_booking(new.id) is None
        assert inventory.bookings_for(ride.id) == [existing]

    async def test_rollback_of_first_booking_clears_index(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        with pytest.raises(RuntimeError):
            async with inventory.unit(ride.id) as unit:
                await unit.add_booking(_booking(ride))
                raise RuntimeError("abort")

        assert inventory.bookings_for(ride.id) == []
        assert ride.id not in inventory.ride_index

    async def test_reserve_rejects_overdraw(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        async with inventory.unit(ride.id) as unit:
            assert not await unit.reserve_seats(4)
            assert await unit.reserve_seats(3)
            assert not await unit.reserve_seats(1)
        assert ride.available_seats == 0

    async def test_release_beyond_capacity(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        with pytest.raises(InternalError):
            async with inventory.unit(ride.id) as unit:
                await unit.release_seats(1)
        assert ride.available_seats == 3

    async def test_available_seats_not_writable(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        with pytest.raises(InternalError):
            async with inventory.unit(ride.id) as unit:
                await unit.update_ride(available_seats=10)

    async def test_duplicate_open_booking(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        async with inventory.unit(ride.id) as unit:
            await unit.add_booking(_booking(ride))

        with pytest.raises(DuplicateBookingError):
            async with inventory.unit(ride.id) as unit:
                await unit.add_booking(_booking(ride))
        assert len(inventory.bookings_for(ride.id)) == 1

    async def test_closed_booking_does_not_block(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        async with inventory.unit(ride.id) as unit:
            await unit.add_booking(_booking(ride, status="cancelled"))
            await unit.add_booking(_booking(ride))
            assert len(await unit.list_bookings(["pending", "confirmed"])) == 1

    async def test_get_booking_scoped_to_ride(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        other = _ride()
        await inventory.add_ride(other)
        booking = _booking(ride)
        async with inventory.unit(ride.id) as unit:
            await unit.add_booking(booking)

        async with inventory.unit(other.id) as unit:
            assert await unit.get_booking(booking.id) is None


class TestSearch:
    async def test_case_insensitive_substring(
        self, inventory: MemoryRideInventory, ride: Ride
    ) -> None:
        results = await inventory.search_rides(_search(origin="BANG", destination="sore"))
        assert results == [ride]

    async def test_price_then_time_ordering(self, inventory: MemoryRideInventory) -> None:
        late_cheap = _ride(price_per_seat=Decimal("300"), departure_time=T0 + timedelta(days=2))
        early_cheap = _ride(price_per_seat=Decimal("300"))
        pricey = _ride(price_per_seat=Decimal("700"))
        for r in (late_cheap, pricey, early_cheap):
            await inventory.add_ride(r)

        by_price = await inventory.search_rides(_search())
        by_time = await inventory.search_rides(_search(sort_by=SortBy.TIME))

        assert by_price == [early_cheap, late_cheap, pricey]
        assert by_time[-1] == late_cheap

    async def test_excludes_full_inactive_and_past(
        self, inventory: MemoryRideInventory
    ) -> None:
        for r in (
            _ride(available_seats=0),
            _ride(status="in_progress"),
            _ride(departure_time=T0 - timedelta(minutes=1)),
            _ride(price_per_seat=Decimal("6000")),
        ):
            await inventory.add_ride(r)

        assert await inventory.search_rides(_search()) == []

    async def test_travel_date_includes_departed_rides_that_day(
        self, inventory: MemoryRideInventory
    ) -> None:
        earlier_today = _ride(departure_time=T0 - timedelta(hours=1))
        await inventory.add_ride(earlier_today)

        results = await inventory.search_rides(_search(travel_date=date(2026, 3, 2)))

        assert results == [earlier_today]

    async def test_limit(self, inventory: MemoryRideInventory) -> None:
        for _ in range(5):
            await inventory.add_ride(_ride())

        assert len(await inventory.search_rides(_search(limit=2))) == 2


def test_day_bounds() -> None:
    start, end = day_bounds(date(2026, 3, 2))
    assert start == T0.replace(hour=0)
    assert end - start == timedelta(days=1)
