"""Tests for JWTTokenIssuer — verification token mint/validate."""

from datetime import timedelta

import jwt
import pytest

from ridepool.core.tokens import JWTTokenIssuer, get_token_issuer, reset_token_issuer
from tests.conftest import (
    T0,
    TEST_AUDIENCE,
    TEST_AUTH_SECRET,
    TEST_ISSUER,
    FakeClock,
)

_SUBJECT = "+919876543210"
_TTL = timedelta(hours=1)


def _issuer(clock: FakeClock, *, secret: str = TEST_AUTH_SECRET) -> JWTTokenIssuer:
    return JWTTokenIssuer(
        secret=secret,
        issuer=TEST_ISSUER,
        audience=TEST_AUDIENCE,
        clock=clock,
    )


class TestMint:
    def test_mint_returns_claims(self, issuer: JWTTokenIssuer) -> None:
        token = issuer.mint(_SUBJECT, {"purpose": "login"}, _TTL)

        assert token.subject_key == _SUBJECT
        assert token.purpose == "login"
        assert token.claims.issued_at == T0
        assert token.expires_at == T0 + _TTL

    def test_each_token_is_unique(self, issuer: JWTTokenIssuer) -> None:
        first = issuer.mint(_SUBJECT, {"purpose": "login"}, _TTL)
        second = issuer.mint(_SUBJECT, {"purpose": "login"}, _TTL)

        assert first.token != second.token
        assert first.claims.token_id != second.claims.token_id

    def test_mint_requires_purpose(self, issuer: JWTTokenIssuer) -> None:
        with pytest.raises(ValueError, match="purpose"):
            issuer.mint(_SUBJECT, {}, _TTL)

    def test_mint_rejects_reserved_claims(self, issuer: JWTTokenIssuer) -> None:
        with pytest.raises(ValueError, match="override"):
            issuer.mint(_SUBJECT, {"purpose": "login", "sub": "someone"}, _TTL)

    def test_mint_rejects_empty_subject(self, issuer: JWTTokenIssuer) -> None:
        with pytest.raises(ValueError):
            issuer.mint("", {"purpose": "login"}, _TTL)

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            JWTTokenIssuer(secret="", issuer=TEST_ISSUER, audience=TEST_AUDIENCE)


class TestValidate:
    def test_round_trip(self, issuer: JWTTokenIssuer) -> None:
        token = issuer.mint(_SUBJECT, {"purpose": "signup"}, _TTL)
        assert issuer.validate(token.token) == token.claims

    def test_expired_token_rejected(
        self, issuer: JWTTokenIssuer, clock: FakeClock
    ) -> None:
        token = issuer.mint(_SUBJECT, {"purpose": "login"}, _TTL)
        clock.advance(hours=1)
        assert issuer.validate(token.token) is None

    def test_token_valid_just_before_expiry(
        self, issuer: JWTTokenIssuer, clock: FakeClock
    ) -> None:
        token = issuer.mint(_SUBJECT, {"purpose": "login"}, _TTL)
        clock.advance(minutes=59, seconds=59)
        assert issuer.validate(token.token) is not None

    def test_wrong_secret_rejected(self, clock: FakeClock) -> None:
        token = _issuer(clock).mint(_SUBJECT, {"purpose": "login"}, _TTL)
        other = _issuer(clock, secret="another-secret-that-is-also-long-enough")
        assert other.validate(token.token) is None

    def test_wrong_audience_rejected(
        self, issuer: JWTTokenIssuer, clock: FakeClock
    ) -> None:
        token = JWTTokenIssuer(
            secret=TEST_AUTH_SECRET,
            issuer=TEST_ISSUER,
            audience="someone-else",
            clock=clock,
        ).mint(_SUBJECT, {"purpose": "login"}, _TTL)
        assert issuer.validate(token.token) is None

    def test_garbage_rejected(self, issuer: JWTTokenIssuer) -> None:
        assert issuer.validate("not-a-jwt") is None

    def test_token_without_purpose_rejected(self, issuer: JWTTokenIssuer) -> None:
        encoded = jwt.encode(
            {
                "sub": _SUBJECT,
                "aud": TEST_AUDIENCE,
                "iss": TEST_ISSUER,
                "iat": T0,
                "exp": T0 + _TTL,
                "jti": "abc",
            },
            TEST_AUTH_SECRET,
            algorithm="HS256",
        )
        assert issuer.validate(encoded) is None


class TestSingleton:
    def test_get_returns_same_instance(self) -> None:
        reset_token_issuer()
        try:
            assert get_token_issuer() is get_token_issuer()
        finally:
            reset_token_issuer()
