"""Tests for notification fan-out to push subscriptions."""
from __future__ import annotations

import json
import uuid

import pytest
from sqlalchemy import Update
from sqlalchemy.exc import OperationalError

from market_notify.db.models import Notification, User
from market_notify.schemas.push import NotificationPayload
from market_notify.services.notification_service import (
    DispatchReport,
    NotificationDispatcher,
    NotificationInbox,
    message_notification,
    order_notification,
    payment_notification,
    serialize_payload,
)
from market_notify.services.push_subscriptions import PushSubscriptionStore
from market_notify.utils.exceptions import (
    DatabaseError,
    NotFoundError,
    PermanentDeliveryError,
    TransientDeliveryError,
    ValidationError,
)

KEYS = {"p256dh": "p256dh-key", "auth": "auth-key"}


def _register(db_session, user: User, *endpoints: str) -> None:
    store = PushSubscriptionStore(db_session)
    for endpoint in endpoints:
        store.upsert_by_endpoint(endpoint, user_id=user.id, keys=KEYS)


@pytest.mark.asyncio
async def test_dispatch_to_single_device(db_session, user: User, transport) -> None:
    _register(db_session, user, "https://push.example/abc")
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    report = await dispatcher.dispatch(str(user.id), payment_notification(5000, "TX-1"))

    assert [item["endpoint"] for item in transport.sent] == ["https://push.example/abc"]
    assert report.success_count == 1
    assert report.failure_count == 0
    assert report.notification_id is not None


@pytest.mark.asyncio
async def test_gone_endpoint_is_deactivated(db_session, user: User, transport) -> None:
    _register(db_session, user, "https://push.example/abc")
    transport.failures["https://push.example/abc"] = PermanentDeliveryError("gone", status_code=410)
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    report = await dispatcher.dispatch(user.id, payment_notification(5000, "TX-1"))

    assert report.success_count == 0
    assert report.failure_count == 1
    assert report.per_endpoint_results[0].gone is True
    assert PushSubscriptionStore(db_session).find_active_by_user(user.id) == []


@pytest.mark.asyncio
async def test_one_failure_does_not_block_other_devices(db_session, user: User, transport) -> None:
    endpoints = [f"https://push.example/{name}" for name in ("one", "two", "three")]
    _register(db_session, user, *endpoints)
    transport.failures[endpoints[1]] = TransientDeliveryError("push service unavailable", status_code=503)
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    report = await dispatcher.dispatch(user.id, order_notification("42", "Sneakers"))

    assert report.success_count == 2
    assert report.failure_count == 1
    assert sorted(item["endpoint"] for item in transport.sent) == sorted(endpoints)
    failed = [item for item in report.per_endpoint_results if not item.success]
    assert [(item.endpoint, item.gone) for item in failed] == [(endpoints[1], False)]
    # Transient failures keep the subscription
    assert len(PushSubscriptionStore(db_session).find_active_by_user(user.id)) == 3


@pytest.mark.asyncio
async def test_failed_deactivation_still_returns_report(db_session, user: User, transport, monkeypatch) -> None:
    _register(db_session, user, "https://push.example/live", "https://push.example/dead")
    transport.failures["https://push.example/dead"] = PermanentDeliveryError("gone", status_code=410)
    dispatcher = NotificationDispatcher(db_session, transport=transport)
    real_execute = db_session.execute

    def locked_execute(statement, *args, **kwargs):
        if isinstance(statement, Update):
            raise OperationalError("UPDATE", {}, Exception("database is locked"))
        return real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", locked_execute)

    report = await dispatcher.dispatch(user.id, payment_notification(10, "TX-3"))

    assert (report.success_count, report.failure_count) == (1, 1)
    monkeypatch.undo()
    assert len(PushSubscriptionStore(db_session).find_active_by_user(user.id)) == 2


@pytest.mark.asyncio
async def test_dispatch_to_unknown_user(db_session, user: User, transport) -> None:
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    with pytest.raises(NotFoundError):
        await dispatcher.dispatch(uuid.uuid4(), {"title": "Hi", "body": "There"})

    assert transport.sent == []
    assert db_session.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_gone_endpoint_leaves_others_active(db_session, user: User, transport) -> None:
    _register(db_session, user, "https://push.example/live", "https://push.example/dead")
    transport.failures["https://push.example/dead"] = PermanentDeliveryError("gone", status_code=404)
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    await dispatcher.dispatch(user.id, message_notification("Alice", "c-1"))

    active = PushSubscriptionStore(db_session).find_active_by_user(user.id)
    assert [sub.endpoint for sub in active] == ["https://push.example/live"]


@pytest.mark.asyncio
async def test_unexpected_transport_error_is_reported(db_session, user: User) -> None:
    class BrokenTransport:
        async def send(self, subscription_info, data):
            raise RuntimeError("boom")

    _register(db_session, user, "https://push.example/abc")
    dispatcher = NotificationDispatcher(db_session, transport=BrokenTransport())

    report = await dispatcher.dispatch(user.id, payment_notification(10, "TX-2"))

    assert report.failure_count == 1
    assert report.per_endpoint_results[0].error == "boom"


@pytest.mark.asyncio
async def test_dispatch_without_subscriptions(db_session, user: User, transport) -> None:
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    report = await dispatcher.dispatch(user.id, {"title": "Hello", "body": "World"})

    assert (report.success_count, report.failure_count) == (0, 0)
    assert transport.sent == []
    # Still lands in the inbox for polling and SSE clients
    assert NotificationInbox(db_session).unread_count(user.id) == 1


@pytest.mark.asyncio
async def test_inactive_subscriptions_are_skipped(db_session, user: User, transport) -> None:
    store = PushSubscriptionStore(db_session)
    subscription, _ = store.register("https://push.example/abc", user_id=user.id, keys=KEYS)
    store.deactivate(subscription.id)
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    report = await dispatcher.dispatch(user.id, {"title": "Hello", "body": "World"})

    assert report.target_count == 0
    assert transport.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "user_id, payload",
    [
        (None, {"title": "Hi", "body": "There"}),
        ("not-a-uuid", {"title": "Hi", "body": "There"}),
        ("VALID", {"title": "", "body": "There"}),
        ("VALID", {"title": "Hi", "body": "   "}),
        ("VALID", {"body": "There"}),
    ],
)
async def test_dispatch_rejects_bad_input(db_session, user: User, transport, user_id, payload) -> None:
    dispatcher = NotificationDispatcher(db_session, transport=transport)
    target = user.id if user_id == "VALID" else user_id

    with pytest.raises(ValidationError):
        await dispatcher.dispatch(target, payload)

    assert transport.sent == []
    assert db_session.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_dispatch_wraps_subscription_lookup_failure(db_session, user: User, transport, monkeypatch) -> None:
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    def fail(user_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(dispatcher.store, "find_active_by_user", fail)

    with pytest.raises(DatabaseError):
        await dispatcher.dispatch(user.id, {"title": "Hi", "body": "There"})


@pytest.mark.asyncio
async def test_dispatch_many(db_session, user: User, transport) -> None:
    other = User(email="other@example.com", hashed_password="test", roles=["client"])
    db_session.add(other)
    db_session.commit()
    _register(db_session, user, "https://push.example/seller")
    dispatcher = NotificationDispatcher(db_session, transport=transport)

    reports = await dispatcher.dispatch_many([user.id, other.id], {"title": "Sale", "body": "Everything 10% off"})

    assert reports[str(user.id)].success_count == 1
    assert reports[str(other.id)].target_count == 0


def test_serialized_payload_is_filled_with_defaults() -> None:
    document = json.loads(
        serialize_payload(NotificationPayload(title="Hi", body="There"), timestamp_ms=1700000000000)
    )

    assert document == {
        "title": "Hi",
        "body": "There",
        "icon": "/icon-192x192.png",
        "badge": "/icon-192x192.png",
        "data": {"url": "/", "type": "general", "timestamp": 1700000000000},
    }


def test_builders_carry_type_and_deep_link() -> None:
    payment = payment_notification(15000, "REF-9")
    assert payment.data.type == "payment"
    assert payment.data.url == "/verify-payments"
    assert "15,000 RWF" in payment.body

    order = order_notification("77", "Blue mug")
    assert order.data.url == "/my-store/orders/77"
    assert order.body == "You have a new order for Blue mug"

    message = message_notification("Bob", "c-5")
    assert message.title == "New message from Bob"
    assert json.loads(serialize_payload(message))["data"]["conversationId"] == "c-5"


def test_report_from_results() -> None:
    report = DispatchReport.from_results([], notification_id=3)
    assert report.to_dict() == {
        "success_count": 0,
        "failure_count": 0,
        "per_endpoint_results": [],
        "notification_id": 3,
    }
