"""Property-based tests for the booking engine.

Uses Hypothesis to run random sequences of booking operations against one
ride and checks invariants that must hold after every step, whatever
succeeded or failed:
- available_seats stays within [0, total_seats]
- available_seats + seats held by bookings == total_seats
- at most one open booking per passenger
"""

import asyncio
from collections import Counter
from datetime import timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from ridepool.core.errors import APIError
from ridepool.repositories.memory_inventory import MemoryRideInventory
from ridepool.services.booking_engine import BookingEngine
from ridepool.services.booking_status import BookingStatus, RideStatus
from tests.conftest import DRIVER_ID, T0, FakeClock

_PASSENGERS = [f"p{i}@example.com" for i in range(5)]

operations = st.lists(
    st.tuples(
        st.sampled_from(
            ["book", "confirm", "reject", "cancel", "driver_cancel", "no_show", "pay", "depart"]
        ),
        st.integers(min_value=0, max_value=len(_PASSENGERS) - 1),
        st.integers(min_value=1, max_value=4),
    ),
    max_size=40,
)


def _check_invariants(inventory: MemoryRideInventory, ride_id) -> None:
    ride = inventory.rides[ride_id]
    bookings = inventory.bookings_for(ride_id)
    held = sum(
        b.seats_booked for b in bookings if BookingStatus(b.status).holds_seats
    )
    assert 0 <= ride.available_seats <= ride.total_seats
    assert ride.available_seats + held == ride.total_seats
    open_counts = Counter(
        b.passenger_id for b in bookings if BookingStatus(b.status).is_open
    )
    assert all(count == 1 for count in open_counts.values())


async def _run(ops: list[tuple[str, int, int]], total_seats: int, instant: bool) -> None:
    clock = FakeClock()
    inventory = MemoryRideInventory()
    engine = BookingEngine(inventory, clock=clock)
    ride = await engine.publish_ride(
        DRIVER_ID,
        origin={"city": "Bangalore"},
        destination={"city": "Mysore"},
        departure_time=T0 + timedelta(days=1),
        total_seats=total_seats,
        price_per_seat=Decimal("250"),
        instant_booking=instant,
    )
    latest: dict[str, object] = {}

    for op, who, seats in ops:
        passenger = _PASSENGERS[who]
        booking = latest.get(passenger)
        try:
            if op == "book":
                latest[passenger] = (
                    await engine.create_booking(passenger, ride.id, seats)
                ).id
            elif op == "depart":
                clock.advance(days=1)
            elif booking is None:
                continue
            elif op == "confirm":
                await engine.confirm_booking(DRIVER_ID, booking)
            elif op == "reject":
                await engine.reject_booking(DRIVER_ID, booking)
            elif op == "cancel":
                await engine.cancel_booking(passenger, booking)
            elif op == "driver_cancel":
                await engine.cancel_booking(DRIVER_ID, booking)
            elif op == "no_show":
                await engine.mark_no_show(DRIVER_ID, booking)
            elif op == "pay":
                await engine.record_payment(passenger, booking, succeeded=True)
        except APIError:
            pass
        _check_invariants(inventory, ride.id)

    if ride.status == RideStatus.ACTIVE.value:
        await engine.update_ride_status(DRIVER_ID, ride.id, RideStatus.CANCELLED)
        _check_invariants(inventory, ride.id)
        assert ride.available_seats == ride.total_seats - sum(
            b.seats_booked
            for b in inventory.bookings_for(ride.id)
            if b.status == BookingStatus.NO_SHOW.value
        )


@settings(max_examples=150, deadline=None)
@given(
    ops=operations,
    total_seats=st.integers(min_value=1, max_value=7),
    instant=st.booleans(),
)
def test_seat_conservation_under_random_operations(
    ops: list[tuple[str, int, int]], total_seats: int, instant: bool
) -> None:
    asyncio.run(_run(ops, total_seats, instant))
