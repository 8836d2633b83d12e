"""Shared API dependencies."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from market_notify.config import settings
from market_notify.core.security import InvalidTokenError, access_token_subject
from market_notify.db.models.user import User
from market_notify.db.session import SessionLocal
from market_notify.services.notification_service import NotificationDispatcher
from market_notify.services.push_transport import PushTransport, WebPushTransport

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False
)

_push_transport_singleton: PushTransport | None = None


def get_db() -> Session:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(token: Optional[str], db: Session) -> User:
    if not token:
        raise _credentials_exception()
    try:
        user_id = access_token_subject(token)
    except InvalidTokenError as exc:
        raise _credentials_exception() from exc

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise _credentials_exception()
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Resolve the authenticated user from the Authorization header."""

    return _resolve_user(token, db)


def get_stream_user(
    header_token: Optional[str] = Depends(optional_oauth2_scheme),
    token: Optional[str] = Query(default=None, description="Access token for EventSource clients"),
    db: Session = Depends(get_db),
) -> User:
    """Like ``get_current_user`` but also accepts ``?token=``.

    Browsers cannot attach headers to an ``EventSource`` request.
    """

    return _resolve_user(header_token or token, db)


def get_push_transport() -> PushTransport:
    """Return the process-wide push transport."""

    global _push_transport_singleton
    if _push_transport_singleton is None:
        _push_transport_singleton = WebPushTransport.from_settings()
    return _push_transport_singleton


def get_dispatcher(
    db: Session = Depends(get_db),
    transport: PushTransport = Depends(get_push_transport),
) -> NotificationDispatcher:
    return NotificationDispatcher(db, transport=transport)
