"""Shared dependencies for API endpoints.

Callers authenticate with the verification token minted by
POST /otp/verify, sent as ``Authorization: Bearer <token>``. The token
subject (verified phone number or email) is the caller id for every booking
and ride operation.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Tests swap the OTP manager, booking engine and issuer via
  ``app.dependency_overrides``
"""

from typing import Annotated

from fastapi import Depends, Request

from ridepool.core.errors import UnauthorizedError
from ridepool.core.tokens import TokenIssuer, get_token_issuer
from ridepool.services.booking_engine import BookingEngine, get_booking_engine
from ridepool.services.otp_manager import OTPManager, get_otp_manager

_BEARER_PREFIX = "bearer "


def get_issuer() -> TokenIssuer:
    """Get the token issuer used to validate Bearer tokens."""
    return get_token_issuer()


def get_current_caller_id(
    request: Request,
    issuer: Annotated[TokenIssuer, Depends(get_issuer)],
) -> str:
    """Get the verified identity of the caller.

    Security: The 401 message never says why the token was rejected
    (missing, bad signature, expired).

    Returns:
        Token subject (verified phone number or email).

    Raises:
        UnauthorizedError: For any missing or invalid credential.
    """
    header = request.headers.get("authorization", "")
    if not header.lower().startswith(_BEARER_PREFIX):
        raise UnauthorizedError()

    claims = issuer.validate(header[len(_BEARER_PREFIX) :].strip())
    if claims is None:
        raise UnauthorizedError()
    return claims.subject_key


# Reusable type aliases for dependency injection
CurrentCallerId = Annotated[str, Depends(get_current_caller_id)]
OTPManagerDep = Annotated[OTPManager, Depends(get_otp_manager)]
BookingEngineDep = Annotated[BookingEngine, Depends(get_booking_engine)]
