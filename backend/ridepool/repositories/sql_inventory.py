"""PostgreSQL ride inventory.

Each unit runs in its own transaction:
1. ``SELECT ... FOR UPDATE`` on the ride row serializes writers across
   processes (the in-process KeyedLock only covers one event loop).
2. Seats are taken with a conditional
   ``UPDATE ... WHERE available_seats >= :seats`` so the row can never go
   negative even if a caller skipped the lock.
3. Commit on clean exit, rollback on any exception.

Connection-level failures surface as StorageUnavailableError (503), the only
retryable error.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Collection
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from ridepool.core.errors import (
    DuplicateBookingError,
    InternalError,
    StorageUnavailableError,
)
from ridepool.models import Booking, Ride
from ridepool.repositories.inventory import (
    InventoryUnit,
    RideInventory,
    RideSearch,
    SortBy,
    day_bounds,
)
from ridepool.services.booking_status import OPEN_BOOKING_STATUSES, RideStatus

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError)
_OPEN_VALUES = [s.value for s in OPEN_BOOKING_STATUSES]
_OPEN_BOOKING_INDEX = "uq_bookings_open_ride_passenger"


class _SQLUnit(InventoryUnit):
    def __init__(self, session: AsyncSession, ride: Ride | None) -> None:
        self._session = session
        self.ride = ride

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        if self.ride is None:
            return None
        result = await self._session.execute(
            select(Booking).where(
                Booking.id == booking_id,
                Booking.ride_id == self.ride.id,
            )
        )
        return result.scalar_one_or_none()

    async def find_open_booking(self, passenger_id: str) -> Booking | None:
        if self.ride is None:
            return None
        result = await self._session.execute(
            select(Booking).where(
                Booking.ride_id == self.ride.id,
                Booking.passenger_id == passenger_id,
                Booking.status.in_(_OPEN_VALUES),
            )
        )
        return result.scalars().first()

    async def list_bookings(self, statuses: Collection[str]) -> list[Booking]:
        if self.ride is None:
            return []
        result = await self._session.execute(
            select(Booking)
            .where(
                Booking.ride_id == self.ride.id,
                Booking.status.in_(list(statuses)),
            )
            .order_by(Booking.booking_time)
        )
        return list(result.scalars().all())

    async def add_booking(self, booking: Booking) -> None:
        self._session.add(booking)
        try:
            async with self._session.begin_nested():
                await self._session.flush()
        except IntegrityError as exc:
            if _OPEN_BOOKING_INDEX in str(exc.orig):
                raise DuplicateBookingError() from exc
            raise

    async def update_booking(self, booking: Booking, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(booking, name, value)
        await self._session.flush()

    async def update_ride(self, **changes: Any) -> None:
        if "available_seats" in changes:
            raise InternalError("available_seats changes only via reserve/release")
        for name, value in changes.items():
            setattr(self.ride, name, value)
        await self._session.flush()

    async def reserve_seats(self, seats: int) -> bool:
        if self.ride is None:
            return False
        result = await self._session.execute(
            text(
                "UPDATE rides SET available_seats = available_seats - :seats "
                "WHERE id = :ride_id AND available_seats >= :seats "
                "RETURNING available_seats"
            ),
            {"seats": seats, "ride_id": self.ride.id},
        )
        remaining = result.scalar_one_or_none()
        if remaining is None:
            return False
        set_committed_value(self.ride, "available_seats", remaining)
        return True

    async def release_seats(self, seats: int) -> None:
        if self.ride is None:
            raise InternalError("Cannot release seats without a ride")
        result = await self._session.execute(
            text(
                "UPDATE rides SET available_seats = available_seats + :seats "
                "WHERE id = :ride_id AND available_seats + :seats <= total_seats "
                "RETURNING available_seats"
            ),
            {"seats": seats, "ride_id": self.ride.id},
        )
        remaining = result.scalar_one_or_none()
        if remaining is None:
            raise InternalError("Seat release would exceed ride capacity")
        set_committed_value(self.ride, "available_seats", remaining)


class SQLRideInventory(RideInventory):
    """Rides and bookings stored in PostgreSQL.

    Args:
        session_factory: Async session factory (expire_on_commit=False, so
            objects stay readable after the unit commits).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def unit(self, ride_id: uuid.UUID) -> AsyncIterator[InventoryUnit]:
        try:
            async with self._session_factory() as session, session.begin():
                ride = await session.get(Ride, ride_id, with_for_update=True)
                yield _SQLUnit(session, ride)
        except _STORAGE_ERRORS as exc:
            logger.error("Inventory unit failed for ride %s: %s", ride_id, exc)
            raise StorageUnavailableError() from exc

    @asynccontextmanager
    async def _read_session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except _STORAGE_ERRORS as exc:
            logger.error("Inventory read failed: %s", exc)
            raise StorageUnavailableError() from exc

    async def add_ride(self, ride: Ride) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(ride)
        except _STORAGE_ERRORS as exc:
            logger.error("Failed to store ride: %s", exc)
            raise StorageUnavailableError() from exc

    async def get_ride(self, ride_id: uuid.UUID) -> Ride | None:
        async with self._read_session() as session:
            return await session.get(Ride, ride_id)

    async def get_booking(self, booking_id: uuid.UUID) -> Booking | None:
        async with self._read_session() as session:
            return await session.get(Booking, booking_id)

    async def search_rides(self, criteria: RideSearch) -> list[Ride]:
        stmt = select(Ride).where(
            Ride.status == RideStatus.ACTIVE.value,
            Ride.origin_city.icontains(criteria.origin, autoescape=True),
            Ride.destination_city.icontains(criteria.destination, autoescape=True),
            Ride.available_seats >= criteria.passengers,
            Ride.price_per_seat <= criteria.max_price,
        )
        if criteria.travel_date is not None:
            start, end = day_bounds(criteria.travel_date)
            stmt = stmt.where(Ride.departure_time >= start, Ride.departure_time < end)
        else:
            stmt = stmt.where(Ride.departure_time > criteria.now)

        if criteria.sort_by is SortBy.PRICE:
            stmt = stmt.order_by(Ride.price_per_seat, Ride.departure_time)
        else:
            stmt = stmt.order_by(Ride.departure_time, Ride.price_per_seat)

        async with self._read_session() as session:
            result = await session.execute(stmt.limit(criteria.limit))
            return list(result.scalars().all())
