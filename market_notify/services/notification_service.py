"""Notification inbox and Web Push fan-out."""
from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from market_notify.config import settings
from market_notify.db.models.notification import Notification
from market_notify.db.models.user import User
from market_notify.schemas.push import NotificationData, NotificationPayload
from market_notify.services.push_subscriptions import PushSubscriptionStore, as_user_id
from market_notify.services.push_transport import PushTransport, WebPushTransport
from market_notify.utils.cache import CacheBackend, cache_backend
from market_notify.utils.exceptions import (
    DatabaseError,
    DeliveryError,
    NotFoundError,
    PermanentDeliveryError,
    ValidationError,
)

PayloadLike = Union[NotificationPayload, Mapping[str, Any]]


def coerce_payload(payload: PayloadLike) -> NotificationPayload:
    if isinstance(payload, NotificationPayload):
        return payload
    try:
        return NotificationPayload.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError("Invalid notification payload", {"errors": exc.errors()}) from exc


def validate_payload(payload: NotificationPayload) -> None:
    missing = [name for name in ("title", "body") if not getattr(payload, name, "").strip()]
    if missing:
        raise ValidationError("Notification must have title and body", {"missing": missing})


def serialize_payload(payload: NotificationPayload, *, timestamp_ms: Optional[int] = None) -> str:
    """Render the JSON document the service worker receives.

    Defaults for icon, badge and url come from settings; a millisecond
    timestamp is stamped once so every device receives identical bytes.
    """

    extra = dict(payload.data.model_extra or {})
    data = {
        "url": payload.data.url or settings.NOTIFICATION_DEFAULT_URL,
        "type": payload.data.type or "general",
        "timestamp": timestamp_ms if timestamp_ms is not None else int(time.time() * 1000),
        **extra,
    }
    return json.dumps(
        {
            "title": payload.title,
            "body": payload.body,
            "icon": payload.icon or settings.NOTIFICATION_DEFAULT_ICON,
            "badge": payload.badge or settings.NOTIFICATION_DEFAULT_BADGE,
            "data": data,
        },
        default=str,
    )


def payment_notification(amount: Union[int, float], reference: str) -> NotificationPayload:
    return NotificationPayload(
        title="Payment Received!",
        body=f"You received a payment of {amount:,} RWF (Ref: {reference})",
        data=NotificationData(url="/verify-payments", type="payment", amount=amount, reference=reference),
    )


def order_notification(order_id: str, product_name: str) -> NotificationPayload:
    return NotificationPayload(
        title="New Order Received!",
        body=f"You have a new order for {product_name}",
        data=NotificationData(
            url=f"/my-store/orders/{order_id}",
            type="order",
            orderId=order_id,
            productName=product_name,
        ),
    )


def message_notification(sender_name: str, conversation_id: str) -> NotificationPayload:
    return NotificationPayload(
        title=f"New message from {sender_name}",
        body="You have a new message",
        data=NotificationData(
            url=f"/messages?id={conversation_id}",
            type="message",
            conversationId=conversation_id,
            senderName=sender_name,
        ),
    )


class NotificationInbox:
    """Per-user record of notifications, read by the poll and stream endpoints."""

    COUNT_NAMESPACE = "notifications:count"

    def __init__(self, db: Session, cache: CacheBackend = cache_backend):
        self.db = db
        self.cache = cache

    def record(self, user_id: Any, payload: NotificationPayload) -> Notification:
        owner_id = as_user_id(user_id)
        extra = dict(payload.data.model_extra or {})
        notification = Notification(
            user_id=owner_id,
            type=payload.data.type,
            title=payload.title,
            body=payload.body,
            url=payload.data.url,
            data=json.loads(json.dumps(extra, default=str)),
        )
        self.db.add(notification)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DatabaseError("Failed to record notification") from exc
        self.db.refresh(notification)
        self._invalidate(owner_id)
        return notification

    def unread_count(self, user_id: Any, notification_type: Optional[str] = None) -> int:
        owner_id = as_user_id(user_id)

        def _count() -> int:
            stmt = (
                select(func.count(Notification.id))
                .where(Notification.user_id == owner_id)
                .where(Notification.is_read.is_(False))
            )
            if notification_type:
                stmt = stmt.where(Notification.type == notification_type)
            return int(self.db.scalar(stmt) or 0)

        key = f"{owner_id}:{notification_type or 'all'}"
        return int(self.cache.get_or_set(self.COUNT_NAMESPACE, key, _count))

    def list_recent(self, user_id: Any, *, limit: int = 20, unread_only: bool = False) -> List[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == as_user_id(user_id))
            .order_by(Notification.id.desc())
            .limit(limit)
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        return list(self.db.scalars(stmt))

    def latest_id(self, user_id: Any) -> int:
        stmt = select(func.max(Notification.id)).where(Notification.user_id == as_user_id(user_id))
        return int(self.db.scalar(stmt) or 0)

    def list_since(self, user_id: Any, after_id: int, *, limit: int = 50) -> List[Notification]:
        """Return notifications newer than ``after_id`` in creation order."""

        stmt = (
            select(Notification)
            .where(Notification.user_id == as_user_id(user_id))
            .where(Notification.id > after_id)
            .order_by(Notification.id)
            .limit(limit)
        )
        return list(self.db.scalars(stmt))

    def mark_read(
        self,
        user_id: Any,
        *,
        ids: Optional[Iterable[int]] = None,
        notification_type: Optional[str] = None,
    ) -> int:
        owner_id = as_user_id(user_id)
        stmt = (
            update(Notification)
            .where(Notification.user_id == owner_id)
            .where(Notification.is_read.is_(False))
            .values(is_read=True)
        )
        if ids is not None:
            stmt = stmt.where(Notification.id.in_(list(ids)))
        if notification_type:
            stmt = stmt.where(Notification.type == notification_type)
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DatabaseError("Failed to update notifications") from exc
        self._invalidate(owner_id)
        return result.rowcount or 0

    def _invalidate(self, user_id: uuid.UUID) -> None:
        self.cache.invalidate(self.COUNT_NAMESPACE, prefix=f"{user_id}:")


@dataclass
class EndpointResult:
    endpoint: str
    success: bool
    error: Optional[str] = None
    gone: bool = False


@dataclass
class DispatchReport:
    """Outcome of one dispatch; callers inspect ``failure_count``."""

    success_count: int = 0
    failure_count: int = 0
    per_endpoint_results: List[EndpointResult] = field(default_factory=list)
    notification_id: Optional[int] = None

    @classmethod
    def from_results(cls, results: List[EndpointResult], notification_id: Optional[int] = None) -> "DispatchReport":
        successes = sum(1 for item in results if item.success)
        return cls(
            success_count=successes,
            failure_count=len(results) - successes,
            per_endpoint_results=results,
            notification_id=notification_id,
        )

    @property
    def target_count(self) -> int:
        return len(self.per_endpoint_results)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationDispatcher:
    """Deliver one notification to every active device of a user."""

    def __init__(
        self,
        db: Session,
        *,
        transport: Optional[PushTransport] = None,
        store: Optional[PushSubscriptionStore] = None,
        inbox: Optional[NotificationInbox] = None,
    ) -> None:
        self.db = db
        self.transport = transport or WebPushTransport.from_settings()
        self.store = store or PushSubscriptionStore(db)
        self.inbox = inbox or NotificationInbox(db)

    async def dispatch(self, user_id: Any, payload: PayloadLike) -> DispatchReport:
        """Fan ``payload`` out to all active subscriptions of ``user_id``.

        Raises ``ValidationError`` for bad input, ``NotFoundError`` for an
        unknown user and ``DatabaseError`` when subscriptions cannot be
        loaded; delivery failures only show up in the returned report.
        """

        owner_id = as_user_id(user_id)
        notification = coerce_payload(payload)
        validate_payload(notification)

        try:
            known_user = self.db.get(User, owner_id) is not None
            subscriptions = self.store.find_active_by_user(owner_id) if known_user else []
        except SQLAlchemyError as exc:
            raise DatabaseError("Failed to load push subscriptions", {"user_id": str(owner_id)}) from exc
        if not known_user:
            raise NotFoundError("User not found", {"userId": str(owner_id)})

        record = self.inbox.record(owner_id, notification)

        if not subscriptions:
            logger.info("No active push subscriptions", user_id=str(owner_id))
            return DispatchReport(notification_id=record.id)

        data = serialize_payload(notification)
        targets = [(sub.id, sub.subscription_info()) for sub in subscriptions]
        results: List[EndpointResult] = await asyncio.gather(
            *(self._deliver(info, data) for _, info in targets)
        )

        for (subscription_id, _), result in zip(targets, results):
            if not result.gone:
                continue
            try:
                self.store.deactivate(subscription_id)
            except DatabaseError as exc:
                logger.error(
                    "Failed to deactivate expired subscription",
                    subscription_id=str(subscription_id),
                    error=exc.message,
                )

        report = DispatchReport.from_results(results, notification_id=record.id)
        logger.info(
            "Push notification dispatched",
            user_id=str(owner_id),
            type=notification.data.type,
            success_count=report.success_count,
            failure_count=report.failure_count,
        )
        return report

    async def dispatch_many(self, user_ids: Iterable[Any], payload: PayloadLike) -> Dict[str, DispatchReport]:
        """Dispatch the same notification to several users concurrently."""

        notification = coerce_payload(payload)
        validate_payload(notification)
        owners = [as_user_id(user_id) for user_id in user_ids]
        reports = await asyncio.gather(*(self.dispatch(owner, notification) for owner in owners))
        return {str(owner): report for owner, report in zip(owners, reports)}

    async def _deliver(self, subscription_info: Dict[str, Any], data: str) -> EndpointResult:
        endpoint = subscription_info["endpoint"]
        try:
            await self.transport.send(subscription_info, data)
        except PermanentDeliveryError as exc:
            logger.info("Push endpoint gone", endpoint=endpoint, status_code=exc.status_code)
            return EndpointResult(endpoint=endpoint, success=False, error=exc.message, gone=True)
        except DeliveryError as exc:
            logger.warning("Push delivery failed", endpoint=endpoint, error=exc.message)
            return EndpointResult(endpoint=endpoint, success=False, error=exc.message)
        except Exception as exc:
            logger.error("Unexpected push transport error", endpoint=endpoint, error=str(exc))
            return EndpointResult(endpoint=endpoint, success=False, error=str(exc))
        return EndpointResult(endpoint=endpoint, success=True)
