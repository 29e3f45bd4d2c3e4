from __future__ import annotations

from conftest import days, login, signed, webhook_payload

from glowcheck.core.kv_store import TransientStorageError
from glowcheck.models import utc_now


def test_login_validation(client):
    r = client.post("/api/v1/auth/login", json={"app_user_id": "   "})
    assert r.status_code == 422
    assert r.json()["code"] == 422000


def test_invalid_token_is_rejected(client):
    r = client.get(
        "/api/v1/entitlements/status", headers={"Authorization": "Bearer not-a-token"}
    )
    assert r.status_code == 401
    assert r.json()["code"] == 401000


def test_trial_lifecycle(client):
    headers = login(client)

    r = client.get("/api/v1/entitlements/status", headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["snapshot"]["trial_phase"] == "NONE"
    assert data["decision"]["status"] == "NOT_STARTED"
    assert data["decision"]["can_view"] is False

    r = client.post("/api/v1/entitlements/trial", headers=headers)
    data = r.json()["data"]
    assert data["started"] is True
    assert data["snapshot"]["trial_phase"] == "ACTIVE"
    assert data["snapshot"]["days_left"] == 3
    assert data["decision"] == {
        "can_view": True,
        "status": "TRIAL_ACTIVE",
        "status_message": "3 days left",
    }

    r = client.post("/api/v1/entitlements/trial", headers=headers)
    assert r.json()["data"]["started"] is False

    for expected_remaining in (2, 1, 0):
        r = client.post("/api/v1/entitlements/scans", headers=headers)
        assert r.status_code == 200
        assert r.json()["data"]["snapshot"]["scans_remaining"] == expected_remaining

    decision = r.json()["data"]["decision"]
    assert decision["can_view"] is False
    assert decision["status"] == "SCAN_LIMIT_REACHED"

    r = client.post("/api/v1/entitlements/reset", headers=headers)
    data = r.json()["data"]
    assert data["snapshot"]["trial_phase"] == "NONE"
    assert data["snapshot"]["scans_remaining"] == 3


def test_purchase_unlocks_after_webhook(client):
    headers = login(client, "u_paid")
    now = utc_now()
    body, webhook_headers = signed(
        webhook_payload(
            "evt_paid", "INITIAL_PURCHASE", user_id="u_paid", occurred_at=now, expires_at=now + days(30)
        )
    )
    assert client.post("/webhooks/billing", content=body, headers=webhook_headers).status_code == 200

    r = client.get("/api/v1/entitlements/status", headers=headers)
    data = r.json()["data"]
    assert data["snapshot"]["is_premium"] is True
    assert data["snapshot"]["source"] == "BILLING_EVENT"
    assert data["decision"]["status"] == "PREMIUM"

    r = client.post("/api/v1/entitlements/reconcile", headers=headers)
    assert r.json()["data"]["snapshot"]["version"] == 2


def test_reset_reports_storage_outage(client, service, monkeypatch):
    headers = login(client)

    def unavailable(user_id, now=None):
        raise TransientStorageError("redis down")

    monkeypatch.setattr(service, "reset", unavailable)
    r = client.post("/api/v1/entitlements/reset", headers=headers)
    assert r.status_code == 503
    assert r.json()["code"] == 503001
