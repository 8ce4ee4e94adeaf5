"""
Unit tests for password hashing and session tokens.
"""

from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from core.security import (
    BCRYPT_ROUNDS,
    InvalidSession,
    PasswordHasher,
    SessionTokenService,
    password_hasher,
)

SECRET = "unit-test-secret-with-enough-length-000"


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens() -> SessionTokenService:
    return SessionTokenService(secret_key=SECRET)


class TestPasswordHasher:
    """Tests for bcrypt hashing."""

    def test_hash_is_salted(self, hasher):
        first = hasher.hash("correct horse battery")
        second = hasher.hash("correct horse battery")

        assert first != second
        assert first.startswith("$2b$")

    def test_verify_matches(self, hasher):
        hashed = hasher.hash("correct horse battery")

        assert hasher.verify("correct horse battery", hashed) is True
        assert hasher.verify("wrong horse battery", hashed) is False

    def test_verify_malformed_hash_returns_false(self, hasher):
        assert hasher.verify("anything", "not-a-bcrypt-hash") is False

    def test_default_work_factor(self):
        hashed = password_hasher.hash("password123")

        assert hashed.split("$")[2] == f"{BCRYPT_ROUNDS:02d}"


class TestSessionTokenService:
    """Tests for signing and verifying session tokens."""

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            SessionTokenService(secret_key="")

    def test_issue_and_verify(self, tokens):
        token, expires = tokens.issue(42)

        claim = tokens.verify(token)

        assert claim.user_id == 42
        assert claim.expires == expires

    def test_expiry_is_one_day(self, tokens):
        now = datetime.now(UTC)
        _, expires = tokens.issue(1, now=now)

        assert expires - now == timedelta(hours=24)

    def test_payload_shape(self, tokens):
        token, _ = tokens.issue(7)

        payload = jwt.get_unverified_claims(token)

        assert payload["user"] == {"id": 7}
        assert "expires" in payload
        assert "exp" in payload
        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_expired_token_rejected(self, tokens):
        token, _ = tokens.issue(1, now=datetime.now(UTC) - timedelta(hours=25))

        with pytest.raises(InvalidSession):
            tokens.verify(token)

    def test_tampered_token_rejected(self, tokens):
        token, _ = tokens.issue(1)
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])

        with pytest.raises(InvalidSession):
            tokens.verify(tampered)

    def test_wrong_secret_rejected(self, tokens):
        other = SessionTokenService(secret_key="another-secret-entirely-0000000000")
        token, _ = other.issue(1)

        with pytest.raises(InvalidSession):
            tokens.verify(token)

    def test_other_algorithm_rejected(self, tokens):
        expires = datetime.now(UTC) + timedelta(hours=1)
        token = jwt.encode(
            {"user": {"id": 1}, "expires": expires.isoformat(), "exp": expires},
            SECRET,
            algorithm="HS512",
        )

        with pytest.raises(InvalidSession):
            tokens.verify(token)

    def test_missing_user_claim_rejected(self, tokens):
        expires = datetime.now(UTC) + timedelta(hours=1)
        token = jwt.encode({"expires": expires.isoformat(), "exp": expires}, SECRET)

        with pytest.raises(InvalidSession):
            tokens.verify(token)

    def test_missing_exp_rejected(self, tokens):
        expires = datetime.now(UTC) + timedelta(hours=1)
        token = jwt.encode({"user": {"id": 1}, "expires": expires.isoformat()}, SECRET)

        with pytest.raises(InvalidSession):
            tokens.verify(token)

    def test_garbage_rejected(self, tokens):
        with pytest.raises(InvalidSession):
            tokens.verify("not.a.token")
