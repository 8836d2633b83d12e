"""API endpoint modules for v1."""

from market_notify.api.v1.endpoints import auth, notifications, push, users

__all__ = [
    "auth",
    "notifications",
    "push",
    "users",
]
