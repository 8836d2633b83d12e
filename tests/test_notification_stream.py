"""Tests for the Server-Sent Events inbox feed."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from market_notify.db.models import User
from market_notify.schemas.push import NotificationPayload
from market_notify.services.notification_service import NotificationInbox, order_notification
from market_notify.services.notification_stream import NotificationStream, format_event, format_heartbeat


def _events(chunks: list[str]) -> list[dict]:
    return [json.loads(chunk[len("data: "):]) for chunk in chunks if chunk.startswith("data: ")]


def test_format_helpers() -> None:
    assert format_event({"type": "connected"}) == 'data: {"type": "connected"}\n\n'
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert format_heartbeat(moment) == ": heartbeat 2024-01-01T00:00:00+00:00\n\n"


def test_poll_skips_backlog_and_emits_new_rows(db_session, session_factory, user: User) -> None:
    inbox = NotificationInbox(db_session)
    inbox.record(user.id, NotificationPayload(title="Old", body="Already seen"))

    stream = NotificationStream(user.id, session_factory=session_factory, interval_seconds=0.01)
    stream.prime()
    assert _events(stream.poll_once()) == []

    inbox.record(user.id, order_notification("9", "Lamp"))
    chunks = stream.poll_once()

    events = _events(chunks)
    assert [event["type"] for event in events] == ["order"]
    assert events[0]["data"]["title"] == "New Order Received!"
    assert events[0]["data"]["url"] == "/my-store/orders/9"
    assert chunks[-1].startswith(": heartbeat")
    assert _events(stream.poll_once()) == []


@pytest.mark.asyncio
async def test_events_stop_on_disconnect(db_session, session_factory, user: User) -> None:
    stream = NotificationStream(user.id, session_factory=session_factory, interval_seconds=0.01)
    checks = []

    async def is_disconnected() -> bool:
        checks.append(1)
        return len(checks) > 1

    chunks = [chunk async for chunk in stream.events(is_disconnected)]

    assert _events(chunks[:1])[0]["type"] == "connected"
    assert chunks[-1].startswith(": heartbeat")
    assert len(checks) == 2
