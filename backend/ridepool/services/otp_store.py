"""In-memory TTL store for outstanding OTP challenges.

Holds at most one live challenge per identity key (phone number or email).
Expirations are indexed in a min-heap so a sweep touches only what is due
instead of scanning every key.

WHY IN-MEMORY:
- Challenges live 10 minutes and are cheap to re-issue
- Losing them on restart is acceptable
- Can be replaced with Redis (native per-key TTL) for multi-instance
  deployments

Note: The store performs no locking itself. OTPManager serializes all access
to a key through its KeyedLock.
"""

import heapq
import itertools
from dataclasses import dataclass, field
from datetime import datetime

from ridepool.core.clock import Clock, utc_now


@dataclass
class OTPChallenge:
    """One outstanding verification attempt.

    Attributes:
        key: Identity being verified (phone number or email).
        code: 6-digit numeric code.
        purpose: What the code unlocks (login, signup, ride_verification).
        issued_at: When the challenge was created.
        expires_at: After this instant the challenge is dead.
        attempts_used: Failed verifications so far.
    """

    key: str
    code: str
    purpose: str
    issued_at: datetime
    expires_at: datetime
    attempts_used: int = 0
    # Distinguishes this challenge from earlier ones for the same key so
    # stale heap entries never evict a newer challenge.
    generation: int = field(default=0, compare=False)

    def is_expired(self, now: datetime) -> bool:
        """Whether ``now`` is past the expiry instant."""
        return now > self.expires_at


class OTPStore:
    """Hashmap of live challenges plus a min-heap of their expirations.

    Args:
        clock: Time source used by sweep_expired when no instant is given.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._challenges: dict[str, OTPChallenge] = {}
        self._expiry_heap: list[tuple[datetime, int, str]] = []
        self._generations = itertools.count(1)

    def put(self, challenge: OTPChallenge) -> None:
        """Store a challenge, replacing any existing one for the same key."""
        challenge.generation = next(self._generations)
        self._challenges[challenge.key] = challenge
        heapq.heappush(
            self._expiry_heap,
            (challenge.expires_at, challenge.generation, challenge.key),
        )

    def get(self, key: str) -> OTPChallenge | None:
        """Return the stored challenge for ``key`` without expiry checks."""
        return self._challenges.get(key)

    def delete(self, key: str) -> bool:
        """Remove the challenge for ``key``.

        Returns:
            True if a challenge was removed.
        """
        return self._challenges.pop(key, None) is not None

    def increment_attempts(self, key: str) -> int:
        """Record one failed verification.

        Returns:
            The updated attempt count.

        Raises:
            KeyError: If no challenge is stored for ``key``.
        """
        challenge = self._challenges[key]
        challenge.attempts_used += 1
        return challenge.attempts_used

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Remove every challenge whose expiry is strictly before ``now``.

        Heap entries belonging to replaced or already-deleted challenges are
        discarded without touching the live map.

        Returns:
            Number of challenges removed.
        """
        now = now or self._clock()
        removed = 0
        while self._expiry_heap and self._expiry_heap[0][0] < now:
            _, generation, key = heapq.heappop(self._expiry_heap)
            current = self._challenges.get(key)
            if current is not None and current.generation == generation:
                del self._challenges[key]
                removed += 1
        return removed

    def clear(self) -> None:
        """Drop all challenges (for testing)."""
        self._challenges.clear()
        self._expiry_heap.clear()

    def __len__(self) -> int:
        return len(self._challenges)

    def __contains__(self, key: object) -> bool:
        return key in self._challenges
