"""Password hashing and JWT handling."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
from jose import JWTError, jwt

from market_notify.config import settings


ALGORITHM = "HS256"


class InvalidTokenError(Exception):
    """Raised when a JWT cannot be decoded or is invalid."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _create_token(subject: str, expires_delta: timedelta, token_type: str) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    payload: Dict[str, Any] = {"exp": expire, "sub": subject, "type": token_type}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    return _create_token(subject, timedelta(minutes=minutes), token_type="access")


def create_refresh_token(subject: str, expires_days: int | None = None) -> str:
    days = expires_days or settings.REFRESH_TOKEN_EXPIRE_DAYS
    return _create_token(subject, timedelta(days=days), token_type="refresh")


def decode_token(token: str) -> Dict[str, Any]:
    """Decode a JWT and return its payload, raising ``InvalidTokenError`` if invalid."""

    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc


def access_token_subject(token: str) -> uuid.UUID:
    """Return the user id carried by an access token."""

    payload = decode_token(token)
    if payload.get("type") != "access":
        raise InvalidTokenError("Token must be an access token")
    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise InvalidTokenError("Token subject is invalid") from exc
