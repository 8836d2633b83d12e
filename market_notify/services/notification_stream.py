"""Server-Sent Events feed of a user's inbox."""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from market_notify.config import settings
from market_notify.db.session import SessionLocal
from market_notify.schemas.notification import NotificationRead
from market_notify.services.notification_service import NotificationInbox
from market_notify.services.push_subscriptions import as_user_id

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


def format_heartbeat(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f": heartbeat {now.isoformat()}\n\n"


class NotificationStream:
    """Poll the inbox on an interval and render new rows as SSE chunks.

    Each poll opens and closes its own database session so a long-lived
    connection never pins a pooled connection.
    """

    def __init__(
        self,
        user_id: Any,
        *,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self.user_id = as_user_id(user_id)
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.SSE_POLL_INTERVAL_SECONDS
        self.last_id: Optional[int] = None

    def prime(self) -> None:
        """Start after the newest existing row so backlog is not replayed."""

        db = self.session_factory()
        try:
            self.last_id = NotificationInbox(db).latest_id(self.user_id)
        finally:
            db.close()

    def poll_once(self) -> List[str]:
        """Return event chunks for rows added since the previous poll plus a heartbeat."""

        chunks: List[str] = []
        db = self.session_factory()
        try:
            rows = NotificationInbox(db).list_since(self.user_id, self.last_id or 0)
            for row in rows:
                item = NotificationRead.model_validate(row).model_dump(mode="json")
                chunks.append(format_event({"type": row.type, "data": item}))
                self.last_id = row.id
        except SQLAlchemyError as exc:
            logger.error("Notification stream poll failed", user_id=str(self.user_id), error=str(exc))
        finally:
            db.close()
        chunks.append(format_heartbeat())
        return chunks

    async def events(self, is_disconnected: Callable[[], Awaitable[bool]]) -> AsyncIterator[str]:
        logger.info("SSE connection opened", user_id=str(self.user_id))
        yield format_event({"type": "connected", "timestamp": datetime.now(timezone.utc).isoformat()})
        await asyncio.to_thread(self.prime)
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                if await is_disconnected():
                    break
                for chunk in await asyncio.to_thread(self.poll_once):
                    yield chunk
        finally:
            logger.info("SSE connection closed", user_id=str(self.user_id))
