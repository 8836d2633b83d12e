"""Account registration and token issuance."""
from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from market_notify.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
)
from market_notify.db.models.user import User
from market_notify.schemas import Token, UserCreate


class EmailAlreadyExistsError(ValueError):
    """Raised when attempting to register with an email that already exists."""


class InvalidCredentialsError(ValueError):
    """Raised when credentials are wrong or the account is disabled."""


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_user(self, payload: UserCreate) -> User:
        """Create a new marketplace account with the requested roles."""

        if self.db.scalar(select(User.id).where(User.email == payload.email)) is not None:
            raise EmailAlreadyExistsError("A user with this email already exists.")

        user = User(
            email=payload.email,
            hashed_password=get_password_hash(payload.password),
            full_name=payload.full_name,
            roles=list(dict.fromkeys(payload.roles)),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise EmailAlreadyExistsError("A user with this email already exists.") from exc
        self.db.refresh(user)
        return user

    def authenticate_user(self, email: str, password: str) -> User:
        user = self.db.scalar(select(User).where(User.email == email))
        if not user or not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Incorrect email or password")
        if not user.is_active:
            raise InvalidCredentialsError("Account is disabled")
        return user

    def create_tokens(self, user: User) -> Token:
        subject = str(user.id)
        return Token(
            access_token=create_access_token(subject),
            refresh_token=create_refresh_token(subject),
        )


def handle_email_exists(error: EmailAlreadyExistsError) -> None:
    """Raise an HTTP 400 error for duplicate email attempts."""

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(error),
    ) from error


def handle_invalid_credentials(error: InvalidCredentialsError) -> None:
    """Raise an HTTP 401 error for invalid login attempts."""

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(error),
        headers={"WWW-Authenticate": "Bearer"},
    ) from error
