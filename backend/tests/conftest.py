from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from glowcheck.api.deps import get_db
from glowcheck.core.config import settings
from glowcheck.core.kv_store import MemoryKeyValueStore
from glowcheck.core.locks import LocalUserLocks
from glowcheck.enums import BillingEnvironment, BillingStore
from glowcheck.main import app
from glowcheck.models import BillingEvent, BillingEventRecord
from glowcheck.services.entitlements import (
    EntitlementService,
    get_entitlement_service,
    init_entitlement_service,
)

WEBHOOK_SECRET = "whsec_test"
T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        # Clean tables after each test.
        session.exec(delete(BillingEventRecord))
        session.commit()


@pytest.fixture(autouse=True)
def _settings(monkeypatch):
    monkeypatch.setattr(settings, "BILLING_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "TRIAL_LENGTH_DAYS", 3)
    monkeypatch.setattr(settings, "TRIAL_SCAN_LIMIT", 3)
    monkeypatch.setattr(settings, "BILLING_GRACE_PERIOD_DAYS", 3)


@pytest.fixture(scope="function")
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture(scope="function")
def service(engine, db, kv_store) -> EntitlementService:
    return init_entitlement_service(
        session_factory=lambda: Session(engine),
        kv_store=kv_store,
        locks=LocalUserLocks(),
    )


@pytest.fixture(scope="function")
def client(engine, service) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_entitlement_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_event(
    event_id: str,
    event_type: str,
    *,
    user_id: str = "u_1",
    occurred_at: datetime = T0,
    expires_at: datetime | None = None,
    is_trial_period: bool = False,
    auto_renewing: bool = True,
) -> BillingEvent:
    return BillingEvent(
        event_id=event_id,
        user_id=user_id,
        event_type=event_type,
        product_id="glow_monthly",
        entitlement_id="premium",
        occurred_at=occurred_at,
        expires_at=expires_at,
        is_trial_period=is_trial_period,
        auto_renewing=auto_renewing,
        store=BillingStore.APP_STORE,
        environment=BillingEnvironment.PRODUCTION,
    )


def webhook_payload(
    event_id: str,
    event_type: str,
    *,
    user_id: str = "u_1",
    occurred_at: datetime = T0,
    expires_at: datetime | None = None,
    **extra: Any,
) -> dict[str, Any]:
    event: dict[str, Any] = {
        "id": event_id,
        "type": event_type,
        "app_user_id": user_id,
        "product_id": "glow_monthly",
        "entitlement_ids": ["premium"],
        "event_timestamp_ms": int(occurred_at.timestamp() * 1000),
        "period_type": "NORMAL",
        "store": "APP_STORE",
        "environment": "PRODUCTION",
    }
    if expires_at is not None:
        event["expiration_at_ms"] = int(expires_at.timestamp() * 1000)
    event.update(extra)
    return {"api_version": "1.0", "event": event}


def signed(payload: dict[str, Any] | bytes, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict[str, str]]:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return body, {"X-Signature": signature, "Content-Type": "application/json"}


def login(client, app_user_id: str = "u_1") -> dict[str, str]:
    r = client.post("/api/v1/auth/login", json={"app_user_id": app_user_id})
    assert r.status_code == 200
    token = r.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


def days(n: float) -> timedelta:
    return timedelta(days=n)
