"""Celery tasks that deliver notifications outside the request cycle."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Union

from loguru import logger

from market_notify.celery_app import celery_app
from market_notify.db.session import SessionLocal
from market_notify.schemas.push import NotificationPayload
from market_notify.services.notification_service import (
    NotificationDispatcher,
    message_notification,
    order_notification,
    payment_notification,
)
from market_notify.utils.exceptions import DatabaseError, NotFoundError, ValidationError


def _run_dispatch(user_id: str, notification: Union[NotificationPayload, Dict[str, Any]]) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        dispatcher = NotificationDispatcher(db)
        report = asyncio.run(dispatcher.dispatch(user_id, notification))
        return report.to_dict()
    except ValidationError as exc:
        logger.warning("Rejected notification task", user_id=user_id, error=exc.message, details=exc.details)
        return {"user_id": user_id, "error": exc.message}
    except NotFoundError as exc:
        logger.warning("Notification task for unknown user", user_id=user_id)
        return {"user_id": user_id, "error": exc.message}
    except DatabaseError as exc:
        logger.error("Notification task failed", user_id=user_id, error=exc.message)
        raise
    finally:
        db.close()


@celery_app.task(name="market_notify.tasks.notifications.dispatch_notification")
def dispatch_notification(user_id: str, notification: Dict[str, Any]) -> Dict[str, Any]:
    """Send ``notification`` to every active device of ``user_id``."""

    return _run_dispatch(user_id, notification)


@celery_app.task(name="market_notify.tasks.notifications.send_payment_notification")
def send_payment_notification(user_id: str, amount: float, reference: str) -> Dict[str, Any]:
    return _run_dispatch(user_id, payment_notification(amount, reference))


@celery_app.task(name="market_notify.tasks.notifications.send_order_notification")
def send_order_notification(user_id: str, order_id: str, product_name: str) -> Dict[str, Any]:
    return _run_dispatch(user_id, order_notification(order_id, product_name))


@celery_app.task(name="market_notify.tasks.notifications.send_message_notification")
def send_message_notification(user_id: str, sender_name: str, conversation_id: str) -> Dict[str, Any]:
    return _run_dispatch(user_id, message_notification(sender_name, conversation_id))
