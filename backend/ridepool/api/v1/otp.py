"""OTP endpoints.

Endpoints:
- POST /otp/send — issue a code to a phone number or email
- POST /otp/verify — consume a code and receive a verification token
- GET /otp/peek — read the live code (development only)

Failures of /otp/verify all use VERIFICATION_FAILED (400); the specific
reason is in ``error.details[0].reason``.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Query, Request

from ridepool.api.deps import OTPManagerDep
from ridepool.core.config import settings
from ridepool.core.errors import NotFoundError
from ridepool.core.rate_limiting import limiter
from ridepool.core.responses import DataResponse
from ridepool.schemas.otp import (
    OTPPeekResponse,
    OTPSentResponse,
    OTPVerifiedResponse,
    SendOTPRequest,
    VerifyOTPRequest,
    normalize_key,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send")
@limiter.limit(settings.rate_limit_otp_send)
async def send_otp(
    request: Request,  # noqa: ARG001
    body: SendOTPRequest,
    manager: OTPManagerDep,
) -> DataResponse[OTPSentResponse]:
    """Issue a fresh code, replacing any outstanding one for the identity.

    ``delivered`` is False when the notifier could not send the code; the
    code is still valid and can be re-requested.
    """
    result = await manager.issue(body.key, body.purpose)
    return DataResponse(
        data=OTPSentResponse(expires_at=result.expires_at, delivered=result.delivered)
    )


@router.post("/verify")
@limiter.limit(settings.rate_limit_otp_verify)
async def verify_otp(
    request: Request,  # noqa: ARG001
    body: VerifyOTPRequest,
    manager: OTPManagerDep,
) -> DataResponse[OTPVerifiedResponse]:
    """Consume a code and mint a Bearer verification token."""
    token = await manager.verify(body.key, body.code, purpose=body.purpose)
    return DataResponse(
        data=OTPVerifiedResponse(
            token=token.token,
            subject=token.subject_key,
            purpose=token.purpose,
            expires_at=token.expires_at,
        )
    )


@router.get("/peek")
async def peek_otp(
    key: Annotated[str, Query(min_length=1, max_length=320)],
    manager: OTPManagerDep,
) -> DataResponse[OTPPeekResponse]:
    """Return the live code for ``key`` so local clients can log in.

    Security: Always 404 in production.
    """
    if settings.is_production:
        raise NotFoundError("Resource")

    peek = manager.peek(normalize_key(key))
    if peek is None:
        raise NotFoundError("OTP")
    logger.debug("OTP peeked (development)")
    return DataResponse(
        data=OTPPeekResponse(
            code=peek.code,
            purpose=peek.purpose,
            expires_in_seconds=peek.expires_in_seconds,
        )
    )
