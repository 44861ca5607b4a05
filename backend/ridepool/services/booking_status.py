"""Booking, payment and ride status state machines.

Booking:
- pending → confirmed, cancelled
- confirmed → cancelled, completed, no_show
- cancelled, completed, no_show → (terminal)

Payment:
- pending → paid, failed
- failed → paid (retried authorization)
- paid → refunded
- refunded → (terminal)

Ride (external triggers):
- active → in_progress, cancelled
- in_progress → completed
- completed, cancelled → (terminal)

Values match the database check constraints on the rides and bookings
tables.
"""

from enum import Enum
from typing import TypeVar

from ridepool.core.errors import ConflictError

# =============================================================================
# Enums
# =============================================================================


class BookingStatus(Enum):
    """Booking lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        """No transition leaves a terminal state."""
        return not _BOOKING_TRANSITIONS[self]

    @property
    def is_open(self) -> bool:
        """Open bookings count toward the one-per-passenger-per-ride rule."""
        return self in OPEN_BOOKING_STATUSES

    @property
    def holds_seats(self) -> bool:
        """Whether seats for this booking are deducted from the ride.

        A confirmed booking reserves its seats; completion and no-show keep
        them consumed. Pending requests reserve nothing.
        """
        return self in SEAT_HOLDING_STATUSES


class PaymentStatus(Enum):
    """Payment state for a booking."""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class RideStatus(Enum):
    """Ride lifecycle states."""

    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

SEAT_HOLDING_STATUSES = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
)


# =============================================================================
# Exceptions
# =============================================================================


class InvalidStatusTransitionError(ConflictError):
    """Raised when attempting a transition the state machine forbids."""

    def __init__(
        self,
        entity: str,
        current_status: Enum,
        target_status: Enum,
        valid_transitions: list[Enum],
    ) -> None:
        """Initialize with transition details.

        Args:
            entity: What is transitioning ("booking", "payment", "ride").
            current_status: Current state.
            target_status: Attempted target state.
            valid_transitions: States reachable from the current one.
        """
        self.current_status = current_status
        self.target_status = target_status
        self.valid_transitions = valid_transitions
        valid_names = [s.value for s in valid_transitions]
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=(
                f"Cannot transition {entity} from {current_status.value} "
                f"to {target_status.value}. "
                f"Valid transitions: {valid_names or 'none (terminal state)'}"
            ),
        )


# =============================================================================
# State Machine Definitions
# =============================================================================


_BOOKING_TRANSITIONS: dict[BookingStatus, list[BookingStatus]] = {
    BookingStatus.PENDING: [BookingStatus.CONFIRMED, BookingStatus.CANCELLED],
    BookingStatus.CONFIRMED: [
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
    ],
    BookingStatus.CANCELLED: [],
    BookingStatus.COMPLETED: [],
    BookingStatus.NO_SHOW: [],
}

_PAYMENT_TRANSITIONS: dict[PaymentStatus, list[PaymentStatus]] = {
    PaymentStatus.PENDING: [PaymentStatus.PAID, PaymentStatus.FAILED],
    PaymentStatus.FAILED: [PaymentStatus.PAID],
    PaymentStatus.PAID: [PaymentStatus.REFUNDED],
    PaymentStatus.REFUNDED: [],
}

_RIDE_TRANSITIONS: dict[RideStatus, list[RideStatus]] = {
    RideStatus.ACTIVE: [RideStatus.IN_PROGRESS, RideStatus.CANCELLED],
    RideStatus.IN_PROGRESS: [RideStatus.COMPLETED],
    RideStatus.COMPLETED: [],
    RideStatus.CANCELLED: [],
}

_S = TypeVar("_S", BookingStatus, PaymentStatus, RideStatus)

_TABLES: dict[type[Enum], tuple[str, dict]] = {
    BookingStatus: ("booking", _BOOKING_TRANSITIONS),
    PaymentStatus: ("payment", _PAYMENT_TRANSITIONS),
    RideStatus: ("ride", _RIDE_TRANSITIONS),
}


# =============================================================================
# Public Functions
# =============================================================================


def get_valid_transitions(status: _S) -> list[_S]:
    """Get valid target statuses from the current status."""
    _, table = _TABLES[type(status)]
    return list(table[status])


def is_valid_transition(current: _S, target: _S) -> bool:
    """Check whether ``current → target`` is allowed."""
    return target in get_valid_transitions(current)


def transition(current: _S, target: _S) -> _S:
    """Validate a transition and return the new status.

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed.
    """
    if not is_valid_transition(current, target):
        entity, _ = _TABLES[type(current)]
        raise InvalidStatusTransitionError(
            entity=entity,
            current_status=current,
            target_status=target,
            valid_transitions=get_valid_transitions(current),
        )
    return target
