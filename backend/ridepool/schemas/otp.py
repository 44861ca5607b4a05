"""OTP request/response schemas.

A challenge is addressed by exactly one identity: a phone number or an email
address. Both are normalized here so the OTP store sees one canonical key
per identity (``+91 98765-43210`` and ``+919876543210`` are the same key).
"""

import re
from datetime import datetime
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

OTPPurpose = Literal["login", "signup", "ride_verification"]

# E.164-style: optional +, no leading zero, 8-15 digits.
_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{7,14}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_key(raw: str) -> str:
    """Canonical store key for a raw phone number or email.

    Applies the same rewriting as OTPIdentity without validating, so a
    malformed key simply matches no challenge.
    """
    raw = raw.strip()
    if "@" in raw:
        return raw.lower()
    return _PHONE_SEPARATORS.sub("", raw)


class OTPIdentity(BaseModel):
    """Phone number or email a code is sent to.

    Attributes:
        phone_number: Phone in international format; separators are stripped.
        email: Email address; lowercased.
    """

    model_config = ConfigDict(extra="forbid")

    phone_number: str | None = Field(default=None, max_length=32)
    email: EmailStr | None = None

    @field_validator("phone_number")
    @classmethod
    def normalize_phone(cls, value: str | None) -> str | None:
        """Strip separators and check the digit pattern."""
        if value is None:
            return None
        compact = _PHONE_SEPARATORS.sub("", value)
        if not _PHONE_PATTERN.match(compact):
            msg = "phone_number must be 8-15 digits, optionally prefixed with +"
            raise ValueError(msg)
        return compact

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        """Lowercase so one mailbox maps to one key."""
        return value.strip().lower() if value is not None else None

    @model_validator(mode="after")
    def exactly_one_identity(self) -> "OTPIdentity":
        """Require exactly one of phone_number and email."""
        if (self.phone_number is None) == (self.email is None):
            msg = "Provide exactly one of phone_number or email"
            raise ValueError(msg)
        return self

    @property
    def key(self) -> str:
        """Canonical OTP store key."""
        return self.phone_number or str(self.email)


class SendOTPRequest(OTPIdentity):
    """Request body for POST /otp/send."""

    purpose: OTPPurpose = "login"


class VerifyOTPRequest(OTPIdentity):
    """Request body for POST /otp/verify.

    ``purpose`` is optional. When present, a code issued for another purpose
    is rejected as an invalid code.
    """

    code: str = Field(pattern=r"^\d{6}$")
    purpose: OTPPurpose | None = None


class OTPSentResponse(BaseModel):
    """Outcome of POST /otp/send."""

    expires_at: datetime
    delivered: bool


class OTPVerifiedResponse(BaseModel):
    """Outcome of a successful POST /otp/verify."""

    token: str
    token_type: Literal["bearer"] = "bearer"
    verified: Literal[True] = True
    subject: str
    purpose: str
    expires_at: datetime


class OTPPeekResponse(BaseModel):
    """Live code for local testing (GET /otp/peek, non-production only)."""

    code: str
    purpose: str
    expires_in_seconds: int
