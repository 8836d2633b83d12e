"""Pytest fixtures for API and service tests."""

import os
from collections.abc import AsyncGenerator, Generator
from typing import Any, Dict, List, Optional

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("VAPID_PUBLIC_KEY", "test-public-key")

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from market_notify.api.deps import get_db, get_push_transport
from market_notify.core.security import create_access_token
from market_notify.db.base import Base
from market_notify.db.models import Notification, PushSubscription, User
from market_notify.main import create_app
from market_notify.utils.cache import cache_backend
from market_notify.utils.exceptions import DeliveryError

TABLES = [User.__table__, PushSubscription.__table__, Notification.__table__]


class RecordingTransport:
    """Push transport double that records sends and fails chosen endpoints."""

    def __init__(self, failures: Optional[Dict[str, DeliveryError]] = None) -> None:
        self.failures = failures or {}
        self.sent: List[Dict[str, Any]] = []

    async def send(self, subscription_info: Dict[str, Any], data: str) -> None:
        endpoint = subscription_info["endpoint"]
        self.sent.append({"endpoint": endpoint, "data": data})
        if endpoint in self.failures:
            raise self.failures[endpoint]


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture()
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.query(Notification).delete()
        db.query(PushSubscription).delete()
        db.query(User).delete()
        db.commit()
        db.close()


@pytest.fixture(autouse=True)
def clear_cache() -> Generator[None, None, None]:
    cache_backend.clear()
    try:
        yield
    finally:
        cache_backend.clear()


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def user(db_session: Session) -> User:
    account = User(email="seller@example.com", hashed_password="test", roles=["tenant"])
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture()
def client(db_session: Session, transport: RecordingTransport) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_transport] = lambda: transport
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture()
async def async_client(
    db_session: Session, transport: RecordingTransport
) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app()

    async def override_get_db() -> AsyncGenerator[Session, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_transport] = lambda: transport

    asgi_transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=asgi_transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture()
def register_and_login(client: TestClient):
    def _register_and_login(
        email: str, password: str = "verysecure", roles: Optional[List[str]] = None
    ) -> Dict[str, str]:
        payload: Dict[str, Any] = {"email": email, "password": password}
        if roles is not None:
            payload["roles"] = roles
        client.post("/api/v1/auth/register", json=payload)
        login_response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        token = login_response.json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _register_and_login
