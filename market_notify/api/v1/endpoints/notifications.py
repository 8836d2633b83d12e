"""Notification strategy, inbox, poll and stream endpoints."""
from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from market_notify.api import deps
from market_notify.core.notifications import (
    ClientSignals,
    detect_capabilities,
    get_notification_capabilities,
    should_show_install_prompt,
)
from market_notify.db.models.user import User
from market_notify.schemas import (
    ClientSignalsIn,
    CountResponse,
    DeviceCapabilitiesRead,
    MarkReadRequest,
    MarkReadResponse,
    NotificationRead,
    StrategyResponse,
)
from market_notify.services.notification_service import NotificationInbox
from market_notify.services.notification_stream import SSE_HEADERS, NotificationStream
from market_notify.utils.exceptions import DatabaseError, handle_database_error

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/strategy", response_model=StrategyResponse)
def select_strategy(
    signals: ClientSignalsIn,
    user_agent: Optional[str] = Header(default=None),
) -> StrategyResponse:
    """Tell a client which transport to set up, evaluated fresh on every call."""

    probe = signals.model_dump()
    probe["user_agent"] = signals.user_agent or user_agent or ""
    capabilities = detect_capabilities(ClientSignals(**probe))
    selection = get_notification_capabilities(capabilities)
    return StrategyResponse(
        strategy=selection.strategy.value,
        can_use_web_push=selection.can_use_web_push,
        can_use_sse=selection.can_use_sse,
        can_use_polling=selection.can_use_polling,
        guidance=selection.guidance,
        requires_setup=selection.requires_setup,
        show_install_prompt=should_show_install_prompt(capabilities),
        device=DeviceCapabilitiesRead(**asdict(capabilities)),
    )


@router.get("/count", response_model=CountResponse)
def unread_count(
    type: Optional[str] = Query(default=None, description="payment, order, message or general"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> CountResponse:
    """Poll endpoint: number of unread notifications for the caller."""

    return CountResponse(count=NotificationInbox(db).unread_count(current_user.id, type))


@router.get("/", response_model=list[NotificationRead])
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> list[NotificationRead]:
    items = NotificationInbox(db).list_recent(current_user.id, limit=limit, unread_only=unread_only)
    return [NotificationRead.model_validate(item) for item in items]


@router.post("/read", response_model=MarkReadResponse)
def mark_read(
    payload: MarkReadRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> MarkReadResponse:
    try:
        updated = NotificationInbox(db).mark_read(
            current_user.id, ids=payload.ids, notification_type=payload.type
        )
    except DatabaseError as exc:
        raise handle_database_error(exc) from exc
    return MarkReadResponse(updated=updated)


@router.get("/stream")
async def stream_notifications(
    request: Request,
    current_user: User = Depends(deps.get_stream_user),
) -> StreamingResponse:
    """Server-Sent Events feed of new inbox items for clients on the ``sse`` strategy."""

    stream = NotificationStream(current_user.id)
    return StreamingResponse(
        stream.events(request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
