"""Booking engine: ride publishing, seat reservation and booking lifecycle.

Admission control:
- available_seats on the ride is the only seat counter. It is decremented
  when a booking becomes confirmed (immediately for instant-booking rides,
  on driver confirmation otherwise) and restored when a confirmed booking is
  cancelled.
- Pending requests reserve nothing. Capacity is re-checked when the driver
  confirms, so confirmation can fail with InsufficientSeatsError.
- Every read-check-write on a ride runs under that ride's KeyedLock and
  inside one inventory unit, so N concurrent requests for k seats admit
  exactly min(N, k) single-seat bookings and a failure leaves no partial
  state.

Authorization:
- Only the passenger and the ride's driver can see a booking. Anyone else
  gets NotFound.
- Confirm / reject / no-show are driver actions; payment signals are
  passenger actions. The other party gets Forbidden.
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal

import structlog

from ridepool.core.clock import Clock, utc_now
from ridepool.core.errors import (
    AlreadyTerminalError,
    BookingNotFoundError,
    ConflictError,
    DuplicateBookingError,
    ForbiddenError,
    InsufficientSeatsError,
    RideInPastError,
    RideNotDepartedError,
    RideNotFoundError,
    RideUnavailableError,
    SelfBookingDeniedError,
    ValidationError,
)
from ridepool.core.locks import KeyedLock
from ridepool.models import Booking, Ride
from ridepool.repositories.inventory import (
    MAX_SEARCH_RESULTS,
    InventoryUnit,
    RideInventory,
    RideSearch,
    SortBy,
)
from ridepool.services.booking_status import (
    OPEN_BOOKING_STATUSES,
    BookingStatus,
    PaymentStatus,
    RideStatus,
    transition,
)

logger = structlog.get_logger()

MIN_SEATS_PER_BOOKING = 1
MAX_SEATS_PER_BOOKING = 4
MIN_RIDE_SEATS = 1
MAX_RIDE_SEATS = 7
MAX_DESCRIPTION_LENGTH = 500
MAX_NOTES_LENGTH = 300
DEFAULT_MAX_PRICE = Decimal("5000")

_REASON_PASSENGER_CANCELLED = "cancelled by passenger"
_REASON_DRIVER_CANCELLED = "cancelled by driver"
_REASON_REJECTED = "rejected by driver"
_REASON_RIDE_CANCELLED = "ride cancelled by driver"
_REASON_RIDE_COMPLETED = "ride completed before confirmation"

_OPEN = [s.value for s in OPEN_BOOKING_STATUSES]


class BookingEngine:
    """Owns every state change of rides and bookings.

    Args:
        inventory: Ride and booking storage.
        clock: Time source for departure checks and timestamps.
        default_currency: ISO 4217 code used when a ride names none.
    """

    def __init__(
        self,
        inventory: RideInventory,
        *,
        clock: Clock = utc_now,
        default_currency: str = "INR",
    ) -> None:
        self._inventory = inventory
        self._clock = clock
        self._default_currency = default_currency
        self._locks = KeyedLock()

    @property
    def inventory(self) -> RideInventory:
        return self._inventory

    # =========================================================================
    # Rides
    # =========================================================================

    async def publish_ride(
        self,
        driver_id: str,
        *,
        origin: dict,
        destination: dict,
        departure_time: datetime,
        total_seats: int,
        price_per_seat: Decimal,
        instant_booking: bool = False,
        currency: str | None = None,
        description: str | None = None,
    ) -> Ride:
        """Publish a new ride with all seats available.

        Raises:
            ValidationError: On out-of-range seats or price, a departure
                that is not in the future, or a location without a city.
        """
        if not driver_id:
            raise ValidationError("driver_id must not be empty")
        if not MIN_RIDE_SEATS <= total_seats <= MAX_RIDE_SEATS:
            raise ValidationError(
                f"total_seats must be between {MIN_RIDE_SEATS} and {MAX_RIDE_SEATS}"
            )
        if price_per_seat < 0:
            raise ValidationError("price_per_seat must not be negative")
        if departure_time.tzinfo is None:
            raise ValidationError("departure_time must include a timezone")
        now = self._clock()
        if departure_time <= now:
            raise ValidationError("departure_time must be in the future")
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"description must be at most {MAX_DESCRIPTION_LENGTH} characters"
            )
        for label, location in (("origin", origin), ("destination", destination)):
            if not str(location.get("city") or "").strip():
                raise ValidationError(f"{label} must include a city")

        ride = Ride(
            id=uuid.uuid4(),
            driver_id=driver_id,
            origin=origin,
            destination=destination,
            origin_city=origin["city"].strip(),
            destination_city=destination["city"].strip(),
            departure_time=departure_time,
            total_seats=total_seats,
            available_seats=total_seats,
            price_per_seat=price_per_seat,
            currency=(currency or self._default_currency).upper(),
            status=RideStatus.ACTIVE.value,
            instant_booking=instant_booking,
            description=description,
            created_at=now,
        )
        await self._inventory.add_ride(ride)
        logger.info(
            "ride_published",
            ride_id=str(ride.id),
            total_seats=total_seats,
            instant_booking=instant_booking,
        )
        return ride

    async def get_ride(self, ride_id: uuid.UUID) -> Ride:
        """Get a ride by id.

        Raises:
            RideNotFoundError: If the ride does not exist.
        """
        ride = await self._inventory.get_ride(ride_id)
        if ride is None:
            raise RideNotFoundError(str(ride_id))
        return ride

    async def search_rides(
        self,
        *,
        origin: str,
        destination: str,
        travel_date: date | None = None,
        passengers: int = 1,
        max_price: Decimal = DEFAULT_MAX_PRICE,
        sort_by: SortBy = SortBy.PRICE,
    ) -> list[Ride]:
        """Find active rides between two cities with enough free seats.

        Raises:
            ValidationError: On empty city names or out-of-range passengers.
        """
        origin = origin.strip()
        destination = destination.strip()
        if not origin or not destination:
            raise ValidationError("origin and destination are required")
        if not MIN_SEATS_PER_BOOKING <= passengers <= MAX_SEATS_PER_BOOKING:
            raise ValidationError(
                f"passengers must be between {MIN_SEATS_PER_BOOKING} "
                f"and {MAX_SEATS_PER_BOOKING}"
            )
        criteria = RideSearch(
            origin=origin,
            destination=destination,
            travel_date=travel_date,
            passengers=passengers,
            max_price=max_price,
            sort_by=sort_by,
            now=self._clock(),
            limit=MAX_SEARCH_RESULTS,
        )
        return await self._inventory.search_rides(criteria)

    async def update_ride_status(
        self,
        driver_id: str,
        ride_id: uuid.UUID,
        status: RideStatus,
    ) -> Ride:
        """Move a ride through its lifecycle and cascade to its bookings.

        - cancelled: open bookings are cancelled, held seats restored and
          paid bookings refunded.
        - completed: confirmed bookings complete; pending requests are
          cancelled.

        Raises:
            RideNotFoundError: If the ride does not exist.
            ForbiddenError: If the caller is not the driver.
            InvalidStatusTransitionError: If the ride cannot move to
                ``status``.
        """
        async with self._locks.hold(ride_id), self._inventory.unit(ride_id) as unit:
            ride = unit.ride
            if ride is None:
                raise RideNotFoundError(str(ride_id))
            if ride.driver_id != driver_id:
                raise ForbiddenError("Only the driver can update this ride")

            target = transition(RideStatus(ride.status), status)
            now = self._clock()
            affected = 0
            if target is RideStatus.CANCELLED:
                for booking in await unit.list_bookings(_OPEN):
                    await self._cancel(unit, booking, reason=_REASON_RIDE_CANCELLED, now=now)
                    affected += 1
            elif target is RideStatus.COMPLETED:
                for booking in await unit.list_bookings(_OPEN):
                    if booking.status == BookingStatus.CONFIRMED.value:
                        await unit.update_booking(
                            booking,
                            status=transition(
                                BookingStatus.CONFIRMED, BookingStatus.COMPLETED
                            ).value,
                        )
                    else:
                        await self._cancel(
                            unit, booking, reason=_REASON_RIDE_COMPLETED, now=now
                        )
                    affected += 1
            await unit.update_ride(status=target.value)

        logger.info(
            "ride_status_updated",
            ride_id=str(ride_id),
            status=target.value,
            bookings_affected=affected,
        )
        return ride

    # =========================================================================
    # Bookings
    # =========================================================================

    async def create_booking(
        self,
        caller_id: str,
        ride_id: uuid.UUID,
        seats: int,
        *,
        pickup_location: dict | None = None,
        dropoff_location: dict | None = None,
        passenger_notes: str | None = None,
    ) -> Booking:
        """Book seats on a ride.

        Checks run in this order and the first failure wins: ride exists,
        ride active, ride not departed, caller is not the driver, enough
        seats, no open booking by the caller on this ride.

        Instant-booking rides confirm immediately and take the seats in the
        same unit. Other rides get a pending request with no reservation.

        Raises:
            ValidationError: If seats is outside 1-4 or notes are too long.
            RideNotFoundError, RideUnavailableError, RideInPastError,
            SelfBookingDeniedError, InsufficientSeatsError,
            DuplicateBookingError: As listed above.
        """
        if not MIN_SEATS_PER_BOOKING <= seats <= MAX_SEATS_PER_BOOKING:
            raise ValidationError(
                f"seats must be between {MIN_SEATS_PER_BOOKING} "
                f"and {MAX_SEATS_PER_BOOKING}"
            )
        if passenger_notes is not None and len(passenger_notes) > MAX_NOTES_LENGTH:
            raise ValidationError(
                f"passenger_notes must be at most {MAX_NOTES_LENGTH} characters"
            )

        async with self._locks.hold(ride_id), self._inventory.unit(ride_id) as unit:
            ride = unit.ride
            now = self._clock()
            if ride is None:
                raise RideNotFoundError(str(ride_id))
            if ride.status != RideStatus.ACTIVE.value:
                raise RideUnavailableError()
            if ride.departure_time <= now:
                raise RideInPastError()
            if ride.driver_id == caller_id:
                raise SelfBookingDeniedError()
            if ride.available_seats < seats:
                raise InsufficientSeatsError(ride.available_seats, seats)
            if await unit.find_open_booking(caller_id) is not None:
                raise DuplicateBookingError()

            status = (
                BookingStatus.CONFIRMED if ride.instant_booking else BookingStatus.PENDING
            )
            booking = Booking(
                id=uuid.uuid4(),
                ride_id=ride.id,
                passenger_id=caller_id,
                seats_booked=seats,
                total_amount=ride.price_per_seat * seats,
                currency=ride.currency,
                pickup_location=pickup_location or ride.origin,
                dropoff_location=dropoff_location or ride.destination,
                passenger_notes=passenger_notes,
                status=status.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_reference=None,
                booking_time=now,
                confirmation_time=now if status is BookingStatus.CONFIRMED else None,
                cancellation_time=None,
                cancellation_reason=None,
            )
            if status.holds_seats and not await unit.reserve_seats(seats):
                raise InsufficientSeatsError(ride.available_seats, seats)
            await unit.add_booking(booking)

        logger.info(
            "booking_created",
            booking_id=str(booking.id),
            ride_id=str(ride_id),
            seats=seats,
            status=booking.status,
        )
        return booking

    async def get_booking(self, caller_id: str, booking_id: uuid.UUID) -> Booking:
        """Get a booking visible to the caller.

        Raises:
            BookingNotFoundError: If absent or the caller is neither the
                passenger nor the ride's driver.
        """
        booking = await self._inventory.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        ride = await self._inventory.get_ride(booking.ride_id)
        if ride is None or caller_id not in (booking.passenger_id, ride.driver_id):
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def confirm_booking(self, driver_id: str, booking_id: uuid.UUID) -> Booking:
        """Accept a pending request and take its seats.

        Raises:
            BookingNotFoundError: Booking not visible to the caller.
            ForbiddenError: Caller is the passenger, not the driver.
            AlreadyTerminalError: Booking is cancelled/completed/no-show.
            InvalidStatusTransitionError: Booking is already confirmed.
            RideUnavailableError: Ride is no longer active.
            InsufficientSeatsError: Seats were taken since the request.
        """
        async with self._booking_unit(booking_id) as (unit, ride, booking):
            self._require_driver(ride, booking, driver_id, "confirm")
            target = self._next_status(booking, BookingStatus.CONFIRMED)
            if ride.status != RideStatus.ACTIVE.value:
                raise RideUnavailableError()
            if not await unit.reserve_seats(booking.seats_booked):
                raise InsufficientSeatsError(ride.available_seats, booking.seats_booked)
            await unit.update_booking(
                booking,
                status=target.value,
                confirmation_time=self._clock(),
            )

        logger.info("booking_confirmed", booking_id=str(booking_id))
        return booking

    async def reject_booking(self, driver_id: str, booking_id: uuid.UUID) -> Booking:
        """Decline a pending request.

        Raises:
            BookingNotFoundError, ForbiddenError, AlreadyTerminalError,
            InvalidStatusTransitionError: As for confirm_booking. A confirmed
                booking cannot be rejected; the driver cancels it instead.
        """
        async with self._booking_unit(booking_id) as (unit, ride, booking):
            self._require_driver(ride, booking, driver_id, "reject")
            current = BookingStatus(booking.status)
            if current.is_terminal:
                raise AlreadyTerminalError(current.value)
            if current is not BookingStatus.PENDING:
                raise ConflictError(
                    code="INVALID_STATUS_TRANSITION",
                    message="Only pending bookings can be rejected",
                )
            await self._cancel(unit, booking, reason=_REASON_REJECTED, now=self._clock())

        logger.info("booking_rejected", booking_id=str(booking_id))
        return booking

    async def cancel_booking(
        self,
        caller_id: str,
        booking_id: uuid.UUID,
        reason: str | None = None,
    ) -> Booking:
        """Cancel a booking as its passenger or the ride's driver.

        Seats return to the ride only if the booking was confirmed. A paid
        booking is marked refunded.

        Raises:
            BookingNotFoundError: Absent or caller is not a party.
            AlreadyTerminalError: Booking is already cancelled/completed/
                no-show.
        """
        async with self._booking_unit(booking_id) as (unit, ride, booking):
            self._require_party(ride, booking, caller_id)
            self._next_status(booking, BookingStatus.CANCELLED)
            if reason is None:
                reason = (
                    _REASON_DRIVER_CANCELLED
                    if caller_id == ride.driver_id
                    else _REASON_PASSENGER_CANCELLED
                )
            await self._cancel(unit, booking, reason=reason, now=self._clock())

        logger.info(
            "booking_cancelled",
            booking_id=str(booking_id),
            by_driver=caller_id == ride.driver_id,
        )
        return booking

    async def mark_no_show(self, driver_id: str, booking_id: uuid.UUID) -> Booking:
        """Record that a confirmed passenger did not turn up.

        The booking's seats stay consumed.

        Raises:
            BookingNotFoundError, ForbiddenError, AlreadyTerminalError,
            InvalidStatusTransitionError: As for confirm_booking.
            RideNotDepartedError: The ride has neither departed nor started.
        """
        async with self._booking_unit(booking_id) as (unit, ride, booking):
            self._require_driver(ride, booking, driver_id, "mark")
            target = self._next_status(booking, BookingStatus.NO_SHOW)
            departed = ride.departure_time <= self._clock()
            if not departed and ride.status != RideStatus.IN_PROGRESS.value:
                raise RideNotDepartedError()
            await unit.update_booking(booking, status=target.value)

        logger.info("booking_no_show", booking_id=str(booking_id))
        return booking

    async def record_payment(
        self,
        caller_id: str,
        booking_id: uuid.UUID,
        *,
        succeeded: bool,
        reference: str | None = None,
    ) -> Booking:
        """Apply an opaque payment-authorized (or declined) signal.

        Raises:
            BookingNotFoundError: Absent or caller is not a party.
            ForbiddenError: Caller is the driver.
            AlreadyTerminalError: Booking was cancelled or marked no-show.
            InvalidStatusTransitionError: Payment cannot move to the target
                (e.g. already paid).
        """
        async with self._booking_unit(booking_id) as (unit, ride, booking):
            self._require_party(ride, booking, caller_id)
            if caller_id != booking.passenger_id:
                raise ForbiddenError("Only the passenger can record a payment")
            if booking.status in (
                BookingStatus.CANCELLED.value,
                BookingStatus.NO_SHOW.value,
            ):
                raise AlreadyTerminalError(booking.status)
            target = PaymentStatus.PAID if succeeded else PaymentStatus.FAILED
            new_status = transition(PaymentStatus(booking.payment_status), target)
            changes: dict = {"payment_status": new_status.value}
            if reference is not None:
                changes["payment_reference"] = reference
            await unit.update_booking(booking, **changes)

        logger.info(
            "booking_payment_recorded",
            booking_id=str(booking_id),
            payment_status=booking.payment_status,
        )
        return booking

    # =========================================================================
    # Helpers
    # =========================================================================

    @asynccontextmanager
    async def _booking_unit(
        self, booking_id: uuid.UUID
    ) -> AsyncIterator[tuple[InventoryUnit, Ride, Booking]]:
        """Lock the booking's ride and reload both inside one unit."""
        found = await self._inventory.get_booking(booking_id)
        if found is None:
            raise BookingNotFoundError(str(booking_id))
        ride_id = found.ride_id
        async with self._locks.hold(ride_id), self._inventory.unit(ride_id) as unit:
            booking = await unit.get_booking(booking_id)
            if unit.ride is None or booking is None:
                raise BookingNotFoundError(str(booking_id))
            yield unit, unit.ride, booking

    @staticmethod
    def _require_party(ride: Ride, booking: Booking, caller_id: str) -> None:
        if caller_id not in (booking.passenger_id, ride.driver_id):
            raise BookingNotFoundError(str(booking.id))

    @classmethod
    def _require_driver(
        cls, ride: Ride, booking: Booking, caller_id: str, action: str
    ) -> None:
        cls._require_party(ride, booking, caller_id)
        if caller_id != ride.driver_id:
            raise ForbiddenError(f"Only the driver can {action} this booking")

    @staticmethod
    def _next_status(booking: Booking, target: BookingStatus) -> BookingStatus:
        current = BookingStatus(booking.status)
        if current.is_terminal:
            raise AlreadyTerminalError(current.value)
        return transition(current, target)

    @staticmethod
    async def _cancel(
        unit: InventoryUnit,
        booking: Booking,
        *,
        reason: str,
        now: datetime,
    ) -> None:
        current = BookingStatus(booking.status)
        target = transition(current, BookingStatus.CANCELLED)
        changes: dict = {
            "status": target.value,
            "cancellation_time": now,
            "cancellation_reason": reason,
        }
        if current.holds_seats:
            await unit.release_seats(booking.seats_booked)
        if booking.payment_status == PaymentStatus.PAID.value:
            changes["payment_status"] = transition(
                PaymentStatus.PAID, PaymentStatus.REFUNDED
            ).value
        await unit.update_booking(booking, **changes)


# Singleton engine for the application
_booking_engine: BookingEngine | None = None


def get_booking_engine() -> BookingEngine:
    """Get the application-wide booking engine configured from settings."""
    global _booking_engine
    if _booking_engine is None:
        from ridepool.core.config import settings
        from ridepool.repositories.inventory import get_inventory

        _booking_engine = BookingEngine(
            get_inventory(),
            default_currency=settings.default_currency,
        )
    return _booking_engine


def reset_booking_engine() -> None:
    """Reset the booking engine singleton (for testing)."""
    global _booking_engine
    _booking_engine = None
