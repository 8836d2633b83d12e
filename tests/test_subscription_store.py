"""Tests for the push subscription store."""
from __future__ import annotations

import uuid

import pytest

from market_notify.db.models import PushSubscription, User
from market_notify.services.push_subscriptions import PushSubscriptionStore, as_user_id
from market_notify.utils.exceptions import NotFoundError, ValidationError

ENDPOINT = "https://push.example/abc"
KEYS = {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"}


def test_register_creates_active_subscription(db_session, user: User) -> None:
    store = PushSubscriptionStore(db_session)

    subscription, created = store.register(ENDPOINT, user_id=user.id, keys=KEYS, user_agent="pytest")

    assert created is True
    assert subscription.is_active is True
    assert subscription.user_agent == "pytest"
    assert subscription.subscription_info() == {"endpoint": ENDPOINT, "keys": KEYS}
    assert [s.id for s in store.find_active_by_user(user.id)] == [subscription.id]


def test_register_same_endpoint_twice_keeps_one_row(db_session, user: User) -> None:
    store = PushSubscriptionStore(db_session)
    first, _ = store.register(ENDPOINT, user_id=user.id, keys=KEYS)
    store.deactivate(first.id)

    rotated = {"p256dh": "rotated-key", "auth": "rotated-auth"}
    second, created = store.register(ENDPOINT, user_id=str(user.id), keys=rotated)

    assert created is False
    assert second.id == first.id
    assert db_session.query(PushSubscription).count() == 1
    assert second.keys == rotated
    assert second.is_active is True


def test_upsert_by_endpoint_keeps_one_row_per_endpoint(db_session, user: User) -> None:
    store = PushSubscriptionStore(db_session)

    first = store.upsert_by_endpoint(ENDPOINT, user_id=user.id, keys=KEYS)
    store.deactivate(first.id)
    second = store.upsert_by_endpoint(ENDPOINT, user_id=user.id, keys={"p256dh": "rotated", "auth": "rotated"})

    assert second.id == first.id
    assert second.is_active is True
    assert second.p256dh_key == "rotated"
    assert db_session.query(PushSubscription).count() == 1


def test_register_for_unknown_user(db_session, user: User) -> None:
    store = PushSubscriptionStore(db_session)

    with pytest.raises(NotFoundError):
        store.register(ENDPOINT, user_id=uuid.uuid4(), keys=KEYS)

    assert db_session.query(PushSubscription).count() == 0


def test_register_moves_endpoint_to_new_owner(db_session, user: User) -> None:
    other = User(email="buyer@example.com", hashed_password="test", roles=["client"])
    db_session.add(other)
    db_session.commit()
    store = PushSubscriptionStore(db_session)

    store.register(ENDPOINT, user_id=user.id, keys=KEYS)
    store.register(ENDPOINT, user_id=other.id, keys=KEYS)

    assert store.find_active_by_user(user.id) == []
    assert len(store.find_active_by_user(other.id)) == 1


def test_register_recovers_from_concurrent_insert(db_session, session_factory, user: User, monkeypatch) -> None:
    rival = session_factory()
    rival.add(
        PushSubscription(
            user_id=user.id, endpoint=ENDPOINT, p256dh_key="old", auth_key="old", is_active=False
        )
    )
    rival.commit()
    rival.close()

    store = PushSubscriptionStore(db_session)
    real_lookup = store.find_by_endpoint
    calls = []

    def racing_lookup(endpoint):
        # First lookup misses the rival row, as if both writers raced past the select
        calls.append(endpoint)
        return None if len(calls) == 1 else real_lookup(endpoint)

    monkeypatch.setattr(store, "find_by_endpoint", racing_lookup)

    subscription, created = store.register(ENDPOINT, user_id=user.id, keys=KEYS)

    assert created is False
    assert subscription.keys == KEYS
    assert subscription.is_active is True
    assert len(calls) == 2
    assert db_session.query(PushSubscription).count() == 1


@pytest.mark.parametrize(
    "endpoint, keys, missing",
    [
        ("", KEYS, ["endpoint"]),
        (ENDPOINT, {"auth": "a"}, ["keys.p256dh"]),
        (ENDPOINT, {"p256dh": "p", "auth": ""}, ["keys.auth"]),
        (None, None, ["endpoint", "keys.p256dh", "keys.auth"]),
    ],
)
def test_register_rejects_incomplete_subscription(db_session, user: User, endpoint, keys, missing) -> None:
    store = PushSubscriptionStore(db_session)

    with pytest.raises(ValidationError) as exc_info:
        store.register(endpoint, user_id=user.id, keys=keys)

    assert exc_info.value.message == "Invalid subscription format"
    assert exc_info.value.details == {"missing": missing}
    assert db_session.query(PushSubscription).count() == 0


def test_deactivate_is_idempotent(db_session, user: User) -> None:
    store = PushSubscriptionStore(db_session)
    subscription, _ = store.register(ENDPOINT, user_id=user.id, keys=KEYS)

    store.deactivate(subscription.id)
    store.deactivate(subscription.id)
    store.deactivate(uuid.uuid4())

    assert store.find_active_by_user(user.id) == []
    assert len(store.list_for_user(user.id)) == 1


def test_delete_by_endpoint(db_session, user: User) -> None:
    store = PushSubscriptionStore(db_session)
    store.register(ENDPOINT, user_id=user.id, keys=KEYS)

    assert store.delete_by_endpoint(ENDPOINT, user_id=uuid.uuid4()) is False
    assert store.delete_by_endpoint(ENDPOINT, user_id=user.id) is True
    assert store.delete_by_endpoint(ENDPOINT) is False
    assert store.find_by_endpoint(ENDPOINT) is None

    with pytest.raises(ValidationError):
        store.delete_by_endpoint("  ")


def test_as_user_id_validation() -> None:
    value = uuid.uuid4()
    assert as_user_id(value) is value
    assert as_user_id(str(value)) == value

    with pytest.raises(ValidationError):
        as_user_id("")
    with pytest.raises(ValidationError):
        as_user_id("u1")
