# app/auth.py
import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from .config import get_settings
from .errors import AuthenticationFailure, HashingError, VerificationError

# argon2 sees the sha512 digest, never the raw password, so its input size is fixed
_pwd_ctx = CryptContext(schemes=["argon2"], deprecated="auto")

JWT_ALG = "HS256"
BEARER_PREFIX = "Bearer "


# ---------- password hashing ----------
def _digest(p: str) -> bytes:
    return hashlib.sha512(p.encode("utf-8")).digest()


def hash_password(p: str) -> str:
    """sha512 the password, then argon2 the digest with a fresh salt."""
    try:
        return _pwd_ctx.hash(_digest(p))
    except (ValueError, TypeError, RuntimeError) as e:
        raise HashingError(str(e)) from e


def verify_password(p: str, hashed: str) -> bool:
    """
    Recompute the digest and check it against the stored argon2 hash.

    Returns False on mismatch. A stored value that is not a parseable argon2
    hash raises VerificationError instead of reading as a wrong password.
    """
    try:
        return _pwd_ctx.verify(_digest(p), hashed)
    except (ValueError, TypeError) as e:
        raise VerificationError(f"stored password hash is malformed: {e}") from e


# ---------- token helpers ----------
@dataclass(frozen=True)
class Claims:
    sub: str
    exp: int

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


def create_access_token(
    email: str,
    *,
    issued_at: Optional[datetime] = None,
    minutes: Optional[int] = None,
) -> str:
    """Sign {sub: email, exp: issued_at + lifetime} with the server secret."""
    settings = get_settings()
    start = issued_at or datetime.now(timezone.utc)
    expire = start + timedelta(minutes=minutes or settings.jwt_exp_minutes)
    to_encode: Dict[str, Any] = {"sub": email, "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=JWT_ALG)


def decode_token(token: str) -> Claims:
    """Decode & verify a JWT, return its claims or raise AuthenticationFailure."""
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[JWT_ALG])
    except JWTError as e:
        raise AuthenticationFailure(f"invalid or expired token: {e}") from e
    sub = payload.get("sub")
    if not isinstance(sub, str) or "exp" not in payload:
        raise AuthenticationFailure("token is missing sub/exp claims")
    return Claims(sub=sub, exp=int(payload["exp"]))


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def claims_from_header(authorization: Optional[str]) -> Optional[Claims]:
    """Claims for a valid bearer header, None when absent or invalid."""
    token = bearer_token(authorization)
    if token is None:
        return None
    try:
        return decode_token(token)
    except AuthenticationFailure:
        return None
