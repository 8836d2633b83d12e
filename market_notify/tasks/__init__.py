"""Celery tasks package."""

from market_notify.tasks import notifications

__all__ = ["notifications"]
