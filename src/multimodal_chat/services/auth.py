"""Password hashing and access tokens for the chat backend."""

import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import structlog
from jose import JWTError, jwt

from ..config import Settings

logger = structlog.get_logger()

_PBKDF2_ALGO = "pbkdf2_sha256"
_PBKDF2_ITERATIONS = 390_000
_JWT_ALGORITHM = "HS256"


class AuthError(Exception):
    """Raised when a token cannot be verified."""


def hash_password(password: str, iterations: int = _PBKDF2_ITERATIONS) -> str:
    """Hash a password using PBKDF2-HMAC-SHA256."""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"{_PBKDF2_ALGO}${iterations}${salt_b64}${digest_b64}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Check a password against a stored hash."""
    try:
        algo, iterations, salt, digest = _parse_hash(stored_hash)
    except ValueError:
        return False
    if algo != _PBKDF2_ALGO:
        return False
    computed = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(computed, digest)


def create_access_token(user_id: str, settings: Settings, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed JWT whose subject is the user id."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    payload = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=_JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> str:
    """Return the user id carried by a valid token."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[_JWT_ALGORITHM])
    except JWTError as e:
        logger.warning("token_rejected", error=str(e))
        raise AuthError("Invalid or expired token") from e
    subject = claims.get("sub")
    if not subject:
        raise AuthError("Invalid or expired token")
    return subject


def _parse_hash(stored_hash: str) -> Tuple[str, int, bytes, bytes]:
    parts = stored_hash.split("$")
    if len(parts) != 4:
        raise ValueError("Invalid hash format")
    algo, iterations, salt_b64, digest_b64 = parts
    return (
        algo,
        int(iterations),
        base64.b64decode(salt_b64.encode("ascii")),
        base64.b64decode(digest_b64.encode("ascii")),
    )
