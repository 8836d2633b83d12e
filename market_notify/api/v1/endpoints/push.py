"""Web Push registration and dispatch endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from market_notify.api import deps
from market_notify.config import settings
from market_notify.db.models.user import User
from market_notify.schemas import (
    EndpointResult,
    PushSubscriptionRead,
    SendRequest,
    SendResponse,
    SubscribeRequest,
    SubscriptionResponse,
    UnsubscribeRequest,
    VapidKeyResponse,
)
from market_notify.services.notification_service import NotificationDispatcher
from market_notify.services.push_subscriptions import PushSubscriptionStore
from market_notify.utils.exceptions import (
    DatabaseError,
    NotFoundError,
    ValidationError,
    handle_database_error,
    handle_not_found_error,
    handle_validation_error,
)

router = APIRouter(prefix="/push", tags=["push"])


def _ensure_can_target(current_user: User, target_id) -> None:
    if target_id != current_user.id and not current_user.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to manage another user's notifications",
        )


@router.get("/vapid-public-key", response_model=VapidKeyResponse)
def get_vapid_public_key() -> VapidKeyResponse:
    return VapidKeyResponse(publicKey=settings.VAPID_PUBLIC_KEY)


@router.post("/subscribe", response_model=SubscriptionResponse)
def subscribe(
    payload: SubscribeRequest,
    user_agent: str | None = Header(default=None),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> SubscriptionResponse:
    """Store the browser's push subscription, updating it if the endpoint is known."""

    target_id = payload.userId or current_user.id
    _ensure_can_target(current_user, target_id)

    store = PushSubscriptionStore(db)
    try:
        subscription, created = store.register(
            payload.subscription.endpoint,
            user_id=target_id,
            keys=payload.subscription.keys.model_dump(),
            user_agent=user_agent,
        )
    except ValidationError as exc:
        raise handle_validation_error(exc) from exc
    except NotFoundError as exc:
        raise handle_not_found_error(exc) from exc
    except DatabaseError as exc:
        raise handle_database_error(exc) from exc

    return SubscriptionResponse(
        message="Subscription created" if created else "Subscription updated",
        data=PushSubscriptionRead.model_validate(subscription),
    )


@router.delete("/subscribe", response_model=SubscriptionResponse)
def unsubscribe(
    payload: UnsubscribeRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> SubscriptionResponse:
    """Delete a subscription by endpoint (explicit user opt-out)."""

    store = PushSubscriptionStore(db)
    owner = None if current_user.is_super_admin else current_user.id
    try:
        if not store.delete_by_endpoint(payload.endpoint, user_id=owner):
            raise NotFoundError("Subscription not found")
    except ValidationError as exc:
        raise handle_validation_error(exc) from exc
    except NotFoundError as exc:
        raise handle_not_found_error(exc) from exc
    except DatabaseError as exc:
        raise handle_database_error(exc) from exc
    return SubscriptionResponse(message="Subscription deleted")


@router.get("/subscriptions", response_model=list[PushSubscriptionRead])
def list_subscriptions(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> list[PushSubscriptionRead]:
    store = PushSubscriptionStore(db)
    return [PushSubscriptionRead.model_validate(item) for item in store.list_for_user(current_user.id)]


@router.post("/send", response_model=SendResponse)
async def send_notification(
    payload: SendRequest,
    dispatcher: NotificationDispatcher = Depends(deps.get_dispatcher),
    current_user: User = Depends(deps.get_current_user),
) -> SendResponse:
    """Push a notification to every active device of ``userId``."""

    _ensure_can_target(current_user, payload.userId)
    try:
        report = await dispatcher.dispatch(payload.userId, payload.notification)
    except ValidationError as exc:
        raise handle_validation_error(exc) from exc
    except NotFoundError as exc:
        raise handle_not_found_error(exc) from exc
    except DatabaseError as exc:
        raise handle_database_error(exc) from exc

    return SendResponse(
        message=f"Sent to {report.success_count} device(s), {report.failure_count} failed",
        successCount=report.success_count,
        failureCount=report.failure_count,
        results=[
            EndpointResult(endpoint=item.endpoint, success=item.success, error=item.error)
            for item in report.per_endpoint_results
        ],
    )
