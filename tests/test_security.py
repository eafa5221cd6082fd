"""Tests for password hashing and the token service."""

import time

import jwt
import pytest
from bson import ObjectId

from config import Settings
from security import InvalidToken, hash_password, issue_token, verify_password, verify_token


@pytest.fixture
def settings():
    return Settings(jwt_secret="unit-secret", jwt_expires_in=60)


@pytest.fixture
def user():
    return {"_id": ObjectId(), "role": "manager"}


class TestPasswords:
    """Tests for bcrypt hashing helpers."""

    def test_hash_is_salted(self):
        """Same password hashes differently each time."""
        assert hash_password("pw123", rounds=4) != hash_password("pw123", rounds=4)

    def test_hash_never_contains_password(self):
        assert "pw123" not in hash_password("pw123", rounds=4)

    def test_default_cost_is_at_least_ten(self):
        """Default hash uses a cost factor of 10."""
        assert hash_password("pw123").startswith("$2b$10$")

    def test_verify_correct_and_wrong(self):
        hashed = hash_password("pw123", rounds=4)
        assert verify_password("pw123", hashed) is True
        assert verify_password("pw124", hashed) is False

    def test_verify_rejects_missing_or_foreign_hash(self):
        assert verify_password("pw123", None) is False
        assert verify_password("pw123", "pw123") is False


class TestTokens:
    """Tests for issue_token / verify_token."""

    def test_round_trip_identity(self, settings, user):
        """A fresh token yields the issuing user's id and role."""
        identity = verify_token(issue_token(user, settings), settings)

        assert identity.id == str(user["_id"])
        assert identity.role == "manager"
        assert identity.expires_at - identity.issued_at == 60
        assert identity.is_manager

    def test_payload_fields(self, settings, user):
        token = issue_token(user, settings)
        payload = jwt.decode(token, "unit-secret", algorithms=["HS256"])
        assert set(payload) == {"id", "role", "iat", "exp"}

    def test_expired_token_fails(self, settings, user):
        token = issue_token(user, settings, now=int(time.time()) - 120)
        with pytest.raises(InvalidToken):
            verify_token(token, settings)

    def test_wrong_secret_fails(self, settings, user):
        token = issue_token(user, Settings(jwt_secret="other-secret"))
        with pytest.raises(InvalidToken):
            verify_token(token, settings)

    def test_garbage_fails(self, settings):
        with pytest.raises(InvalidToken):
            verify_token("not-a-token", settings)

    def test_customer_is_not_manager(self, settings):
        identity = verify_token(issue_token({"_id": ObjectId(), "role": "user"}, settings), settings)
        assert not identity.is_manager
