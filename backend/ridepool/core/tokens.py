"""Verification token issuance and validation.

A successful OTP verification mints a short-lived signed credential that
names the verified identity (phone number or email). The booking endpoints
accept it as a Bearer token and use its subject as the caller id.

TokenIssuer is the seam: OTP and booking logic only see ``mint`` and
``validate``; the wire format (HS256 JWT here) stays behind it.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from ridepool.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"

# Claims owned by the issuer; callers cannot override them via ``claims``.
_RESERVED_CLAIMS = frozenset({"sub", "aud", "iss", "exp", "iat", "jti"})


@dataclass(frozen=True)
class TokenClaims:
    """Validated contents of a verification token.

    Attributes:
        subject_key: Verified phone number or email.
        purpose: What the OTP was issued for (login, signup, ...).
        issued_at: When the token was minted.
        expires_at: When the token stops being accepted.
        token_id: Unique id (``jti``) of this token.
    """

    subject_key: str
    purpose: str
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class VerificationToken:
    """A freshly minted credential plus its decoded claims."""

    token: str
    claims: TokenClaims

    @property
    def subject_key(self) -> str:
        return self.claims.subject_key

    @property
    def purpose(self) -> str:
        return self.claims.purpose

    @property
    def expires_at(self) -> datetime:
        return self.claims.expires_at


class TokenIssuer(ABC):
    """Mints and validates verification credentials."""

    @abstractmethod
    def mint(
        self,
        subject_key: str,
        claims: dict[str, str],
        ttl: timedelta,
    ) -> VerificationToken:
        """Create a signed credential for ``subject_key``.

        Args:
            subject_key: Verified identity.
            claims: Extra claims; must include ``purpose``.
            ttl: Lifetime of the credential.

        Returns:
            The encoded token and its claims.
        """

    @abstractmethod
    def validate(self, token: str) -> TokenClaims | None:
        """Decode and verify a credential.

        Returns:
            Claims if the token is authentic and unexpired, None otherwise.
        """


class JWTTokenIssuer(TokenIssuer):
    """HS256 JWT implementation of TokenIssuer.

    Args:
        secret: HMAC signing secret.
        issuer: ``iss`` claim written and required.
        audience: ``aud`` claim written and required.
        clock: Time source for ``iat``/``exp``.
    """

    def __init__(
        self,
        *,
        secret: str,
        issuer: str,
        audience: str,
        clock: Clock = utc_now,
    ) -> None:
        if not secret:
            raise ValueError("JWTTokenIssuer requires a non-empty secret")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._clock = clock

    def mint(
        self,
        subject_key: str,
        claims: dict[str, str],
        ttl: timedelta,
    ) -> VerificationToken:
        if not subject_key:
            raise ValueError("subject_key must not be empty")
        if "purpose" not in claims:
            raise ValueError("claims must include 'purpose'")
        clashing = _RESERVED_CLAIMS & claims.keys()
        if clashing:
            raise ValueError(f"claims may not override {sorted(clashing)}")

        # JWT timestamps have second precision; truncate so the returned
        # claims match what validate() will decode later.
        now = self._clock().replace(microsecond=0)
        expires_at = now + ttl
        token_id = str(uuid.uuid4())
        payload = {
            **claims,
            "sub": subject_key,
            "aud": self._audience,
            "iss": self._issuer,
            "iat": now,
            "exp": expires_at,
            "jti": token_id,
        }
        encoded = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        return VerificationToken(
            token=encoded,
            claims=TokenClaims(
                subject_key=subject_key,
                purpose=claims["purpose"],
                issued_at=now,
                expires_at=expires_at,
                token_id=token_id,
            ),
        )

    def validate(self, token: str) -> TokenClaims | None:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "require": ["sub", "exp", "iat", "jti"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError:
            return None

        # Expiry is checked against the injected clock, not the system clock.
        expires_at = datetime.fromtimestamp(payload["exp"], tz=UTC)
        if self._clock() >= expires_at:
            return None

        purpose = payload.get("purpose")
        if not isinstance(purpose, str) or not payload["sub"]:
            logger.warning("Rejected token with malformed claims")
            return None

        return TokenClaims(
            subject_key=payload["sub"],
            purpose=purpose,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
            expires_at=expires_at,
            token_id=payload["jti"],
        )


# Singleton issuer configured from settings
_token_issuer: TokenIssuer | None = None


def get_token_issuer() -> TokenIssuer:
    """Get the application-wide token issuer.

    Returns:
        JWTTokenIssuer configured from settings.
    """
    global _token_issuer
    if _token_issuer is None:
        from ridepool.core.config import settings

        _token_issuer = JWTTokenIssuer(
            secret=settings.auth_secret.get_secret_value(),
            issuer=settings.auth_issuer,
            audience=settings.auth_audience,
        )
    return _token_issuer


def reset_token_issuer() -> None:
    """Drop the singleton so the next call rebuilds it (for testing)."""
    global _token_issuer
    _token_issuer = None
