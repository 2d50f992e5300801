"""Tests for password hashing and access tokens."""

import jwt
import pytest

from app.config import JWT_ALGORITHM, JWT_SECRET
from app.security import (
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    verify_password,
)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("Sup3r$ecret")
        assert hashed != "Sup3r$ecret"
        assert verify_password("Sup3r$ecret", hashed)
        assert not verify_password("sup3r$ecret", hashed)

    def test_missing_or_malformed_hash(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestTokens:
    def test_access_token_round_trip(self):
        token = create_access_token("user-1", "a@x.com", "LEARNER")
        payload = decode_access_token(token)
        assert payload["sub"] == "user-1"
        assert payload["email"] == "a@x.com"
        assert payload["role"] == "LEARNER"

    def test_rejects_non_access_token(self):
        token = jwt.encode({"sub": "user-1", "type": "refresh"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token)

    def test_rejects_wrong_signature(self):
        token = jwt.encode({"sub": "user-1", "type": "access"}, "other-secret", algorithm=JWT_ALGORITHM)
        with pytest.raises(jwt.PyJWTError):
            decode_access_token(token)

    def test_refresh_tokens_are_unique(self):
        assert generate_refresh_token() != generate_refresh_token()
