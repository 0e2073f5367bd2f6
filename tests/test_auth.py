from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from passlib.context import CryptContext

from app.auth import (
    JWT_ALG, bearer_token, claims_from_header, create_access_token, decode_token,
    hash_password, verify_password,
)
from app.config import get_settings
from app.errors import AuthenticationFailure, VerificationError


def test_hash_then_verify():
    h = hash_password("p@ss1")
    assert h.startswith("$argon2")
    assert verify_password("p@ss1", h)
    assert not verify_password("p@ss2", h)


def test_hash_is_salted():
    assert hash_password("same") != hash_password("same")


def test_plain_argon2_of_raw_password_does_not_verify():
    # stored hashes cover the sha512 digest, not the password itself
    plain = CryptContext(schemes=["argon2"]).hash("p@ss1")
    assert not verify_password("p@ss1", plain)


def test_long_and_unicode_passwords():
    pw = "пароль-" + "x" * 5000
    h = hash_password(pw)
    assert verify_password(pw, h)
    assert not verify_password(pw[:-1], h)


def test_malformed_hash_raises():
    with pytest.raises(VerificationError):
        verify_password("p@ss1", "not-a-hash")


def test_token_claims():
    token = create_access_token("ops@co.com")
    claims = decode_token(token)
    assert claims.sub == "ops@co.com"
    lifetime = claims.expires_at - datetime.now(timezone.utc)
    assert timedelta(hours=23, minutes=59) < lifetime <= timedelta(hours=24)

    raw = jwt.decode(token, get_settings().jwt_secret, algorithms=[JWT_ALG])
    assert set(raw) == {"sub", "exp"}
    assert isinstance(raw["exp"], int)


def test_token_valid_for_24_hours():
    now = datetime.now(timezone.utc)
    fresh = create_access_token("ops@co.com", issued_at=now - timedelta(hours=23))
    assert decode_token(fresh).sub == "ops@co.com"

    stale = create_access_token("ops@co.com", issued_at=now - timedelta(hours=25))
    with pytest.raises(AuthenticationFailure):
        decode_token(stale)


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode({"sub": "ops@co.com", "exp": 9999999999}, "wrong-secret", algorithm=JWT_ALG)
    with pytest.raises(AuthenticationFailure):
        decode_token(forged)


def test_token_without_sub_is_rejected():
    token = jwt.encode({"exp": 9999999999}, get_settings().jwt_secret, algorithm=JWT_ALG)
    with pytest.raises(AuthenticationFailure):
        decode_token(token)


def test_bearer_header_parsing():
    assert bearer_token(None) is None
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token("Bearer abc") == "abc"

    token = create_access_token("ops@co.com")
    assert claims_from_header(f"Bearer {token}").sub == "ops@co.com"
    assert claims_from_header("Bearer garbage") is None
    assert claims_from_header(None) is None
