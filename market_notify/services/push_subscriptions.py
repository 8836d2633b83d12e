"""Persistence for Web Push subscriptions, one row per browser endpoint."""
from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from market_notify.db.models.push_subscription import PushSubscription
from market_notify.db.models.user import User
from market_notify.utils.exceptions import DatabaseError, NotFoundError, ValidationError


def as_user_id(value: Any) -> uuid.UUID:
    """Coerce ``value`` to a user UUID or raise ``ValidationError``."""

    if isinstance(value, uuid.UUID):
        return value
    if value is None or not str(value).strip():
        raise ValidationError("userId is required")
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError("userId is not a valid identifier", {"userId": str(value)}) from exc


def validate_subscription(endpoint: Optional[str], keys: Optional[Mapping[str, Any]]) -> None:
    """Reject subscriptions missing the endpoint or either encryption key."""

    keys = keys or {}
    missing = [
        name
        for name, value in (
            ("endpoint", endpoint),
            ("keys.p256dh", keys.get("p256dh")),
            ("keys.auth", keys.get("auth")),
        )
        if not value or not str(value).strip()
    ]
    if missing:
        raise ValidationError("Invalid subscription format", {"missing": missing})


class PushSubscriptionStore:
    """Data access for push subscriptions.

    Writes are keyed by endpoint: registering an endpoint that already exists
    updates that row instead of creating a second one.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_active_by_user(self, user_id: Any) -> list[PushSubscription]:
        stmt = (
            select(PushSubscription)
            .where(PushSubscription.user_id == as_user_id(user_id))
            .where(PushSubscription.is_active.is_(True))
            .order_by(PushSubscription.created_at)
        )
        return list(self.db.scalars(stmt))

    def list_for_user(self, user_id: Any) -> list[PushSubscription]:
        stmt = (
            select(PushSubscription)
            .where(PushSubscription.user_id == as_user_id(user_id))
            .order_by(PushSubscription.created_at.desc())
        )
        return list(self.db.scalars(stmt))

    def find_by_endpoint(self, endpoint: str) -> Optional[PushSubscription]:
        return self.db.scalar(select(PushSubscription).where(PushSubscription.endpoint == endpoint))

    def register(
        self,
        endpoint: str,
        *,
        user_id: Any,
        keys: Mapping[str, Any],
        user_agent: Optional[str] = None,
    ) -> tuple[PushSubscription, bool]:
        """Create or refresh the subscription for ``endpoint``.

        Returns the stored row and whether it was newly created. A concurrent
        insert of the same endpoint trips the unique constraint; the losing
        writer rolls back and applies its values as an update.
        Raises ``NotFoundError`` when the owning user does not exist.
        """

        validate_subscription(endpoint, keys)
        owner_id = as_user_id(user_id)
        if self.db.get(User, owner_id) is None:
            raise NotFoundError("User not found", {"userId": str(owner_id)})

        for _ in range(2):
            existing = self.find_by_endpoint(endpoint)
            if existing is not None:
                existing.user_id = owner_id
                existing.p256dh_key = keys["p256dh"]
                existing.auth_key = keys["auth"]
                existing.user_agent = user_agent or ""
                existing.is_active = True
                self._commit()
                self.db.refresh(existing)
                logger.info("Push subscription updated", user_id=str(owner_id), subscription_id=str(existing.id))
                return existing, False

            subscription = PushSubscription(
                user_id=owner_id,
                endpoint=endpoint,
                p256dh_key=keys["p256dh"],
                auth_key=keys["auth"],
                user_agent=user_agent or "",
                is_active=True,
            )
            self.db.add(subscription)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.info("Endpoint registered concurrently, retrying as update", user_id=str(owner_id))
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise DatabaseError("Failed to save subscription") from exc
            self.db.refresh(subscription)
            logger.info("Push subscription created", user_id=str(owner_id), subscription_id=str(subscription.id))
            return subscription, True

        raise DatabaseError("Failed to save subscription", {"endpoint": endpoint})

    def upsert_by_endpoint(
        self,
        endpoint: str,
        *,
        user_id: Any,
        keys: Mapping[str, Any],
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        subscription, _ = self.register(endpoint, user_id=user_id, keys=keys, user_agent=user_agent)
        return subscription

    def deactivate(self, subscription_id: uuid.UUID) -> None:
        """Switch a subscription off. Safe to call repeatedly."""

        try:
            self.db.execute(
                update(PushSubscription)
                .where(PushSubscription.id == subscription_id)
                .values(is_active=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DatabaseError("Failed to deactivate subscription", {"subscription_id": str(subscription_id)}) from exc
        logger.info("Push subscription deactivated", subscription_id=str(subscription_id))

    def delete_by_endpoint(self, endpoint: str, *, user_id: Any = None) -> bool:
        """Hard delete for an explicit unsubscribe.

        When ``user_id`` is given, subscriptions owned by someone else are
        treated as not found.
        """

        if not endpoint or not endpoint.strip():
            raise ValidationError("Missing endpoint")
        subscription = self.find_by_endpoint(endpoint)
        if subscription is None:
            return False
        if user_id is not None and subscription.user_id != as_user_id(user_id):
            return False
        self.db.delete(subscription)
        self._commit()
        logger.info("Push subscription deleted", subscription_id=str(subscription.id))
        return True

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DatabaseError("Push subscription write failed") from exc
