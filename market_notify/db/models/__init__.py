"""Database models package."""
from market_notify.db.models.user import User
from market_notify.db.models.push_subscription import PushSubscription
from market_notify.db.models.notification import Notification

__all__ = [
    "User",
    "PushSubscription",
    "Notification",
]
