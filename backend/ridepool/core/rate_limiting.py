"""Rate limiting configuration using slowapi.

Security: Bounds how often a client can request or guess OTP codes, on top
of the per-challenge attempt limit.

Requests carrying a valid Bearer token are keyed on the token subject
(per-identity); everything else falls back to IP-based keying.

Usage in routers:
    from ridepool.core.rate_limiting import limiter

    @router.post("/send")
    @limiter.limit(lambda: settings.rate_limit_otp_send)
    async def send_otp(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from ridepool.core.config import settings
from ridepool.core.tokens import get_token_issuer

_BEARER_PREFIX = "bearer "


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid Bearer token: "subject:{sub}"
    - No/invalid token: "ip:{address}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    header = request.headers.get("authorization", "")
    if header.lower().startswith(_BEARER_PREFIX):
        claims = get_token_issuer().validate(header[len(_BEARER_PREFIX) :].strip())
        if claims is not None:
            return f"subject:{claims.subject_key}"

    return f"ip:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
