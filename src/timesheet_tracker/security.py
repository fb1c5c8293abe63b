"""Password hashing and bearer token helpers.

Passwords are hashed with bcrypt. Tokens are HS256 JWTs:

{
    "sub": "<user_id>",
    "role": "employee",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from timesheet_tracker.config import get_settings
from timesheet_tracker.exceptions import AuthenticationError


def hash_password(plain_password: str, rounds: int | None = None) -> str:
    """Hash a plain-text password with bcrypt."""
    if rounds is None:
        rounds = get_settings().bcrypt_rounds
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user_id: int, role: str, expires_in_ms: int) -> tuple[str, datetime]:
    """Issue a signed token. Returns (token, expires_at)."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(milliseconds=expires_in_ms)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token, expires_at


def decode_access_token(token: str) -> dict:
    """Decode and verify a token, raising AuthenticationError on any failure."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Session expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc

    if not str(payload.get("sub", "")).isdigit():
        raise AuthenticationError("Invalid token")
    return payload
