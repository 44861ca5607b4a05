"""API error classes.

Every rejected operation surfaces as an APIError subclass carrying a stable
machine-readable code, a human-readable message, an HTTP status and an
ErrorKind. Services raise them; exception handlers in main.py render the
standard error envelope.
"""

from enum import Enum


class ErrorKind(Enum):
    """Transport-independent category of a failure."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXPIRED = "expired"
    UNAUTHORIZED = "unauthorized"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code and kind.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        kind: Category of the failure.
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for malformed input caught before touching shared state.
    """

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid credential was provided (missing, malformed, expired).
    """

    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to perform the action (403).

    Use when the credential is valid but the caller lacks permission.
    """

    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Access denied", code: str = "FORBIDDEN") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR isn't visible to the caller.

    WHY NOT SEPARATE "FORBIDDEN" FOR WRONG OWNERSHIP:
    - Revealing "exists but not yours" leaks information
    - From the caller's perspective, the resource simply doesn't exist
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        code: str = "NOT_FOUND",
    ) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Request conflicts with current state (409).

    Accepts custom code for specific conflict types.
    """

    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class StorageUnavailableError(APIError):
    """Backing store unreachable (503).

    The only failure the caller is expected to retry.
    """

    kind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str = "Storage temporarily unavailable") -> None:
        super().__init__(
            code="STORAGE_UNAVAILABLE",
            message=message,
            status_code=503,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


# =============================================================================
# OTP verification
# =============================================================================


class VerificationReason(Enum):
    """Why an OTP verification was rejected."""

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    TOO_MANY_ATTEMPTS = "TOO_MANY_ATTEMPTS"
    INVALID_CODE = "INVALID_CODE"


class VerificationFailedError(APIError):
    """OTP verification rejected (400).

    All verification failures share one caller-visible code. The specific
    cause is carried in ``details[0]["reason"]`` and in ``reason``.
    """

    reason: VerificationReason = VerificationReason.INVALID_CODE

    def __init__(self, message: str, **extra: object) -> None:
        super().__init__(
            code="VERIFICATION_FAILED",
            message=message,
            status_code=400,
            details=[{"reason": self.reason.value, **extra}],
        )


class ChallengeNotFoundError(VerificationFailedError):
    """No live challenge exists for the key."""

    kind = ErrorKind.NOT_FOUND
    reason = VerificationReason.NOT_FOUND

    def __init__(self) -> None:
        super().__init__("OTP not found or expired")


class ChallengeExpiredError(VerificationFailedError):
    """The challenge outlived its TTL and has been discarded."""

    kind = ErrorKind.EXPIRED
    reason = VerificationReason.EXPIRED

    def __init__(self) -> None:
        super().__init__("OTP has expired")


class TooManyAttemptsError(VerificationFailedError):
    """The attempt limit was reached and the challenge has been discarded."""

    kind = ErrorKind.CONFLICT
    reason = VerificationReason.TOO_MANY_ATTEMPTS

    def __init__(self) -> None:
        super().__init__("Too many failed attempts. Please request a new OTP")


class InvalidCodeError(VerificationFailedError):
    """Submitted code does not match; the challenge stays live."""

    kind = ErrorKind.VALIDATION
    reason = VerificationReason.INVALID_CODE

    def __init__(self, attempts_remaining: int) -> None:
        self.attempts_remaining = attempts_remaining
        super().__init__("Invalid OTP", attempts_remaining=attempts_remaining)


# =============================================================================
# Rides and bookings
# =============================================================================


class RideNotFoundError(NotFoundError):
    """Ride does not exist."""

    def __init__(self, ride_id: str | None = None) -> None:
        super().__init__("Ride", ride_id, code="RIDE_NOT_FOUND")


class BookingNotFoundError(NotFoundError):
    """Booking does not exist or the caller is not a party to it."""

    def __init__(self, booking_id: str | None = None) -> None:
        super().__init__("Booking", booking_id)


class RideUnavailableError(ConflictError):
    """Ride no longer accepts bookings (not active)."""

    def __init__(self) -> None:
        super().__init__(
            code="RIDE_UNAVAILABLE",
            message="Ride is no longer available",
        )


class RideInPastError(ConflictError):
    """Ride has already departed."""

    kind = ErrorKind.EXPIRED

    def __init__(self) -> None:
        super().__init__(
            code="RIDE_IN_PAST",
            message="Cannot book past rides",
        )


class SelfBookingDeniedError(ForbiddenError):
    """Drivers cannot book seats on their own ride."""

    def __init__(self) -> None:
        super().__init__(
            message="Cannot book your own ride",
            code="SELF_BOOKING_DENIED",
        )


class InsufficientSeatsError(ConflictError):
    """Fewer seats remain than requested.

    Args:
        available: Seats still available on the ride.
        requested: Seats asked for.
    """

    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            code="INSUFFICIENT_SEATS",
            message=f"Only {available} seats available",
            details=[{"available_seats": available, "requested_seats": requested}],
        )


class DuplicateBookingError(ConflictError):
    """Passenger already holds an open booking on this ride."""

    def __init__(self) -> None:
        super().__init__(
            code="DUPLICATE_BOOKING",
            message="You already have a booking for this ride",
        )


class AlreadyTerminalError(ConflictError):
    """Booking is cancelled, completed or no-show and cannot change."""

    def __init__(self, status: str) -> None:
        super().__init__(
            code="ALREADY_TERMINAL",
            message=f"Booking is already {status}",
        )


class RideNotDepartedError(ConflictError):
    """No-show can only be recorded once the ride has left."""

    def __init__(self) -> None:
        super().__init__(
            code="RIDE_NOT_DEPARTED",
            message="Ride has not departed yet",
        )
