"""Service layer package."""

from market_notify.services.auth import AuthService
from market_notify.services.notification_service import NotificationDispatcher, NotificationInbox
from market_notify.services.notification_stream import NotificationStream
from market_notify.services.push_subscriptions import PushSubscriptionStore
from market_notify.services.push_transport import WebPushTransport

__all__ = [
    "AuthService",
    "NotificationDispatcher",
    "NotificationInbox",
    "NotificationStream",
    "PushSubscriptionStore",
    "WebPushTransport",
]
