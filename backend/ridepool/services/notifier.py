"""OTP code delivery.

The manager hands a freshly issued code to a Notifier and records whether it
went out. Delivery never raises: a failed send is reported as ``False`` and
the challenge stays valid so the user can retry or use another channel.

Backends:
- LogNotifier: development only. Writes the code to the application log.
- ResendEmailNotifier: plain-text email via the Resend HTTP API for email
  keys. SMS transport is not provided, so phone keys report a failed send.
"""

import logging
from abc import ABC, abstractmethod

import httpx

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0

_SUBJECTS = {
    "login": "Your Ridepool sign-in code",
    "signup": "Verify your Ridepool account",
    "ride_verification": "Your Ridepool ride code",
}


class Notifier(ABC):
    """Delivers an OTP code to the owner of ``key``."""

    @abstractmethod
    async def send(self, key: str, code: str, purpose: str) -> bool:
        """Deliver a code.

        Args:
            key: Phone number or email the code was issued for.
            code: The 6-digit code.
            purpose: What the code unlocks.

        Returns:
            True if the delivery channel accepted the message.
        """


class LogNotifier(Notifier):
    """Writes codes to the log instead of delivering them."""

    async def send(self, key: str, code: str, purpose: str) -> bool:
        logger.info("OTP for %s (%s): %s", key, purpose, code)
        return True


class ResendEmailNotifier(Notifier):
    """Sends codes by email through Resend.

    Args:
        api_key: Resend API key.
        sender: ``from`` address.
        ttl_minutes: Code lifetime, quoted in the message body.
        client: Optional shared AsyncClient (tests inject a mock transport).
    """

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        ttl_minutes: int,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._ttl_minutes = ttl_minutes
        self._client = client

    async def send(self, key: str, code: str, purpose: str) -> bool:
        if "@" not in key:
            logger.warning("No SMS transport configured; cannot deliver OTP")
            return False

        payload = {
            "from": self._sender,
            "to": key,
            "subject": _SUBJECTS.get(purpose, "Your Ridepool verification code"),
            "text": (
                f"Your verification code is {code}\n\n"
                f"This code expires in {self._ttl_minutes} minutes. "
                "If you didn't request this, you can safely ignore this email."
            ),
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            if self._client is not None:
                resp = await self._client.post(
                    _RESEND_API_URL,
                    headers=headers,
                    json=payload,
                    timeout=_RESEND_TIMEOUT,
                )
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(
                        _RESEND_API_URL,
                        headers=headers,
                        json=payload,
                        timeout=_RESEND_TIMEOUT,
                    )
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning("Failed to send OTP email", exc_info=True)
            return False
        return True


def get_notifier() -> Notifier:
    """Build the notifier selected by ``NOTIFIER_BACKEND``."""
    from ridepool.core.config import settings

    if settings.notifier_backend == "resend":
        return ResendEmailNotifier(
            api_key=settings.resend_api_key.get_secret_value(),
            sender=settings.email_from,
            ttl_minutes=settings.otp_ttl_minutes,
        )
    return LogNotifier()
