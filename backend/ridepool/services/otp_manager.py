"""OTP lifecycle: issue, verify, sweep.

Each identity key (phone number or email) has at most one live challenge.
Issuing replaces it; verification either consumes it and mints a
verification token, or records a failed attempt. All reads and writes for a
key happen inside that key's lock, so concurrent verifies of one key cannot
both succeed and a verify racing a re-issue sees either the old or the new
challenge, never a mix.

Delivery happens after the lock is released: a slow notifier never blocks
verification of the same key.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from ridepool.core.clock import Clock, utc_now
from ridepool.core.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    InvalidCodeError,
    TooManyAttemptsError,
    ValidationError,
)
from ridepool.core.locks import KeyedLock
from ridepool.core.tokens import TokenIssuer, VerificationToken
from ridepool.services.notifier import Notifier
from ridepool.services.otp_store import OTPChallenge, OTPStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=10)
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_TOKEN_TTL = timedelta(hours=1)

# Codes are uniform over [100000, 999999].
_CODE_FLOOR = 100_000
_CODE_SPAN = 900_000


@dataclass(frozen=True)
class IssueResult:
    """Outcome of issuing a challenge.

    Attributes:
        expires_at: When the new code stops being accepted.
        delivered: Whether the notifier accepted the message. A failed
            delivery does not invalidate the challenge.
    """

    expires_at: datetime
    delivered: bool


@dataclass(frozen=True)
class OTPPeek:
    """Live code for a key, exposed only outside production."""

    code: str
    purpose: str
    expires_in_seconds: int


def generate_code() -> str:
    """Return a cryptographically random 6-digit code."""
    return str(secrets.randbelow(_CODE_SPAN) + _CODE_FLOOR)


class OTPManager:
    """Issues and verifies one-time codes.

    Args:
        store: Challenge storage.
        issuer: Mints verification tokens on success.
        notifier: Delivers codes.
        clock: Time source for issuance and expiry.
        ttl: Challenge lifetime.
        max_attempts: Failed verifications allowed per challenge.
        token_ttl: Lifetime of minted verification tokens.
    """

    def __init__(
        self,
        *,
        store: OTPStore,
        issuer: TokenIssuer,
        notifier: Notifier,
        clock: Clock = utc_now,
        ttl: timedelta = DEFAULT_TTL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._notifier = notifier
        self._clock = clock
        self._ttl = ttl
        self._max_attempts = max_attempts
        self._token_ttl = token_ttl
        self._locks = KeyedLock()

    @property
    def store(self) -> OTPStore:
        return self._store

    async def issue(self, key: str, purpose: str) -> IssueResult:
        """Create a new challenge for ``key``, replacing any existing one.

        Args:
            key: Normalized phone number or email.
            purpose: What the code will unlock.

        Returns:
            IssueResult with the expiry and delivery outcome.

        Raises:
            ValidationError: If key or purpose is empty.
        """
        if not key:
            raise ValidationError("OTP key must not be empty")
        if not purpose:
            raise ValidationError("OTP purpose must not be empty")

        code = generate_code()
        async with self._locks.hold(key):
            now = self._clock()
            challenge = OTPChallenge(
                key=key,
                code=code,
                purpose=purpose,
                issued_at=now,
                expires_at=now + self._ttl,
            )
            self._store.put(challenge)

        delivered = await self._notifier.send(key, code, purpose)
        if not delivered:
            logger.warning("OTP delivery failed (purpose=%s)", purpose)
        return IssueResult(expires_at=challenge.expires_at, delivered=delivered)

    async def verify(
        self,
        key: str,
        code: str,
        purpose: str | None = None,
    ) -> VerificationToken:
        """Consume the challenge for ``key`` if ``code`` matches.

        Args:
            key: Normalized phone number or email.
            code: Code submitted by the user.
            purpose: Expected purpose. When given, a challenge issued for a
                different purpose is treated as a wrong code.

        Returns:
            A freshly minted verification token carrying the challenge's
            purpose.

        Raises:
            ChallengeNotFoundError: No live challenge for the key.
            ChallengeExpiredError: Challenge outlived its TTL (now removed).
            TooManyAttemptsError: Attempt limit reached (now removed).
            InvalidCodeError: Wrong code; one attempt consumed.
        """
        async with self._locks.hold(key):
            challenge = self._store.get(key)
            if challenge is None:
                raise ChallengeNotFoundError()

            if challenge.is_expired(self._clock()):
                self._store.delete(key)
                raise ChallengeExpiredError()

            if challenge.attempts_used >= self._max_attempts:
                self._store.delete(key)
                raise TooManyAttemptsError()

            code_matches = secrets.compare_digest(
                challenge.code.encode(), code.encode()
            )
            purpose_matches = purpose is None or purpose == challenge.purpose
            if not (code_matches and purpose_matches):
                used = self._store.increment_attempts(key)
                raise InvalidCodeError(attempts_remaining=self._max_attempts - used)

            self._store.delete(key)
            return self._issuer.mint(
                key, {"purpose": challenge.purpose}, self._token_ttl
            )

    def sweep_expired(self) -> int:
        """Drop every challenge that has expired.

        Runs without per-key locks: the store is only touched from the event
        loop thread and a sweep has no await points.

        Returns:
            Number of challenges removed.
        """
        removed = self._store.sweep_expired(self._clock())
        if removed:
            logger.info("Swept %d expired OTP challenges", removed)
        return removed

    def peek(self, key: str) -> OTPPeek | None:
        """Return the live code for ``key`` (development tooling only)."""
        challenge = self._store.get(key)
        if challenge is None:
            return None
        now = self._clock()
        if challenge.is_expired(now):
            return None
        remaining = int((challenge.expires_at - now).total_seconds())
        return OTPPeek(
            code=challenge.code,
            purpose=challenge.purpose,
            expires_in_seconds=remaining,
        )


# Singleton manager for the application
_otp_manager: OTPManager | None = None


def get_otp_manager() -> OTPManager:
    """Get the application-wide OTP manager configured from settings."""
    global _otp_manager
    if _otp_manager is None:
        from ridepool.core.config import settings
        from ridepool.core.tokens import get_token_issuer
        from ridepool.services.notifier import get_notifier

        _otp_manager = OTPManager(
            store=OTPStore(),
            issuer=get_token_issuer(),
            notifier=get_notifier(),
            ttl=timedelta(minutes=settings.otp_ttl_minutes),
            max_attempts=settings.otp_max_attempts,
            token_ttl=timedelta(minutes=settings.verification_token_ttl_minutes),
        )
    return _otp_manager


def reset_otp_manager() -> None:
    """Reset the OTP manager singleton (for testing)."""
    global _otp_manager
    if _otp_manager is not None:
        _otp_manager.store.clear()
    _otp_manager = None
