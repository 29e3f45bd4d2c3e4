from __future__ import annotations

from conftest import days, signed, webhook_payload
from sqlmodel import func, select

from glowcheck import crud
from glowcheck.core.config import settings
from glowcheck.core.kv_store import TransientStorageError
from glowcheck.enums import TrialPhase
from glowcheck.models import BillingEventRecord, utc_now
from glowcheck.services.local_state import load_snapshot

WEBHOOK_URL = "/webhooks/billing"


def _count(db) -> int:
    return db.exec(select(func.count()).select_from(BillingEventRecord)).one()


def test_purchase_is_stored_and_reconciled(client, db, service):
    now = utc_now()
    body, headers = signed(
        webhook_payload("evt_1", "INITIAL_PURCHASE", occurred_at=now, expires_at=now + days(30))
    )
    r = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert data["code"] == 0
    assert data["data"] == {"received": True, "duplicate": False, "result": "inserted"}
    assert _count(db) == 1

    snapshot = load_snapshot(service.kv_store, "u_1")
    assert snapshot is not None
    assert snapshot.is_premium is True


def test_duplicate_delivery_is_acknowledged_without_reconcile(client, db, service, monkeypatch):
    now = utc_now()
    body, headers = signed(
        webhook_payload("evt_1", "INITIAL_PURCHASE", occurred_at=now, expires_at=now + days(30))
    )
    assert client.post(WEBHOOK_URL, content=body, headers=headers).status_code == 200

    calls: list[str] = []
    monkeypatch.setattr(service, "reconcile_in_background", calls.append)
    r = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["duplicate"] is True
    assert r.json()["data"]["result"] == "duplicate"
    assert calls == []
    assert _count(db) == 1


def test_missing_or_forged_signature_is_rejected(client, db):
    body, _ = signed(webhook_payload("evt_1", "RENEWAL"))

    r = client.post(WEBHOOK_URL, content=body, headers={"Content-Type": "application/json"})
    assert r.status_code == 401
    assert r.json()["code"] == 401001

    _, forged = signed(webhook_payload("evt_1", "RENEWAL"), secret="not-the-secret")
    r = client.post(WEBHOOK_URL, content=body, headers=forged)
    assert r.status_code == 401
    assert _count(db) == 0


def test_unconfigured_secret_rejects_everything(client, db, monkeypatch):
    body, headers = signed(webhook_payload("evt_1", "RENEWAL"))
    monkeypatch.setattr(settings, "BILLING_WEBHOOK_SECRET", None)
    r = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert r.status_code == 401
    assert _count(db) == 0


def test_malformed_payloads_never_reach_store(client, db):
    for raw in (b"not json", b"[1, 2, 3]"):
        body, headers = signed(raw)
        r = client.post(WEBHOOK_URL, content=body, headers=headers)
        assert r.status_code == 400
        assert r.json()["code"] == 400001

    payload = webhook_payload("evt_1", "RENEWAL")
    del payload["event"]["app_user_id"]
    body, headers = signed(payload)
    r = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert r.status_code == 400
    assert r.json()["code"] == 400002
    assert _count(db) == 0


def test_transient_storage_failure_returns_500(client, monkeypatch):
    def failing_append(**kwargs):
        raise TransientStorageError("database unavailable")

    monkeypatch.setattr(crud, "append_billing_event", failing_append)
    body, headers = signed(webhook_payload("evt_1", "RENEWAL"))
    r = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert r.status_code == 500
    assert r.json() == {"code": 500001, "message": "Temporary storage failure", "data": None}


def test_unknown_event_type_is_stored_and_harmless(client, db, service):
    now = utc_now()
    body, headers = signed(webhook_payload("evt_1", "SUBSCRIBER_ALIAS", occurred_at=now))
    r = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert r.status_code == 200
    assert db.get(BillingEventRecord, "evt_1").event_type == "SUBSCRIBER_ALIAS"

    snapshot = load_snapshot(service.kv_store, "u_1")
    assert snapshot is not None
    assert snapshot.is_premium is False
    assert snapshot.trial_phase == TrialPhase.NONE


def test_out_of_order_delivery_converges(client, service):
    now = utc_now()
    purchase = webhook_payload(
        "evt_1", "INITIAL_PURCHASE", occurred_at=now - days(2), expires_at=now + days(28)
    )
    expiration = webhook_payload("evt_2", "EXPIRATION", occurred_at=now - days(1))

    for payload in (expiration, purchase):
        body, headers = signed(payload)
        assert client.post(WEBHOOK_URL, content=body, headers=headers).status_code == 200

    snapshot = load_snapshot(service.kv_store, "u_1")
    assert snapshot is not None
    assert snapshot.is_premium is False
