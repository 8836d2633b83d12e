"""Pydantic schemas package."""

from market_notify.schemas.auth import Token
from market_notify.schemas.notification import (
    ClientSignalsIn,
    CountResponse,
    DeviceCapabilitiesRead,
    MarkReadRequest,
    MarkReadResponse,
    NotificationRead,
    StrategyResponse,
)
from market_notify.schemas.push import (
    BrowserSubscription,
    EndpointResult,
    NotificationData,
    NotificationPayload,
    PushKeys,
    PushSubscriptionRead,
    SendRequest,
    SendResponse,
    SubscribeRequest,
    SubscriptionResponse,
    UnsubscribeRequest,
    VapidKeyResponse,
)
from market_notify.schemas.user import UserBase, UserCreate, UserLogin, UserRead

__all__ = [
    "Token",
    "ClientSignalsIn",
    "CountResponse",
    "DeviceCapabilitiesRead",
    "MarkReadRequest",
    "MarkReadResponse",
    "NotificationRead",
    "StrategyResponse",
    "BrowserSubscription",
    "EndpointResult",
    "NotificationData",
    "NotificationPayload",
    "PushKeys",
    "PushSubscriptionRead",
    "SendRequest",
    "SendResponse",
    "SubscribeRequest",
    "SubscriptionResponse",
    "UnsubscribeRequest",
    "VapidKeyResponse",
    "UserBase",
    "UserCreate",
    "UserLogin",
    "UserRead",
]
