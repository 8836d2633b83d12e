"""Schemas for Web Push subscription registration and dispatch."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

NotificationType = Literal["payment", "order", "message", "general"]


class PushKeys(BaseModel):
    p256dh: str = ""
    auth: str = ""


class BrowserSubscription(BaseModel):
    """The ``PushSubscription.toJSON()`` shape sent by browsers."""

    endpoint: str = ""
    keys: PushKeys = Field(default_factory=PushKeys)
    expirationTime: Optional[float] = None


class SubscribeRequest(BaseModel):
    subscription: BrowserSubscription
    userId: Optional[uuid.UUID] = None


class UnsubscribeRequest(BaseModel):
    endpoint: str


class PushSubscriptionRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    endpoint: str
    keys: PushKeys
    user_agent: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[PushSubscriptionRead] = None


class NotificationData(BaseModel):
    """Routing metadata; unknown keys are carried through to the client."""

    url: Optional[str] = None
    type: NotificationType = "general"

    model_config = ConfigDict(extra="allow")


class NotificationPayload(BaseModel):
    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    data: NotificationData = Field(default_factory=NotificationData)


class SendRequest(BaseModel):
    userId: uuid.UUID
    notification: NotificationPayload


class EndpointResult(BaseModel):
    endpoint: str
    success: bool
    error: Optional[str] = None


class SendResponse(BaseModel):
    success: bool = True
    message: str
    successCount: int
    failureCount: int
    results: List[EndpointResult]


class VapidKeyResponse(BaseModel):
    publicKey: Optional[str]
