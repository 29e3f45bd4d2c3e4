from __future__ import annotations

import pytest
from conftest import T0, days, webhook_payload

from glowcheck.enums import BillingEnvironment, BillingEventType, BillingStore
from glowcheck.services.billing_payload import InvalidPayloadError, parse_webhook_payload


def test_parse_initial_purchase():
    event = parse_webhook_payload(
        webhook_payload("evt_1", "INITIAL_PURCHASE", expires_at=T0 + days(30))
    )
    assert event.event_id == "evt_1"
    assert event.user_id == "u_1"
    assert event.kind == BillingEventType.INITIAL_PURCHASE
    assert event.occurred_at == T0
    assert event.expires_at == T0 + days(30)
    assert event.entitlement_id == "premium"
    assert event.auto_renewing is True
    assert event.is_trial_period is False
    assert event.store == BillingStore.APP_STORE
    assert event.environment == BillingEnvironment.PRODUCTION


def test_trial_purchase_and_conversion_are_translated():
    started = parse_webhook_payload(
        webhook_payload("evt_1", "INITIAL_PURCHASE", expires_at=T0 + days(3), period_type="TRIAL")
    )
    assert started.kind == BillingEventType.TRIAL_STARTED
    assert started.is_trial_period is True

    converted = parse_webhook_payload(
        webhook_payload("evt_2", "RENEWAL", expires_at=T0 + days(33), is_trial_conversion=True)
    )
    assert converted.kind == BillingEventType.TRIAL_CONVERTED
    assert converted.is_trial_period is True


def test_cancellation_defaults_to_not_renewing():
    event = parse_webhook_payload(webhook_payload("evt_1", "cancellation"))
    assert event.kind == BillingEventType.CANCELLATION
    assert event.auto_renewing is False


def test_unknown_type_is_kept():
    event = parse_webhook_payload(webhook_payload("evt_1", "subscription_paused"))
    assert event.event_type == "SUBSCRIPTION_PAUSED"
    assert event.kind == BillingEventType.UNKNOWN


def test_lowercase_store_and_iso_expiration():
    payload = webhook_payload("evt_1", "RENEWAL", store="play_store", environment="sandbox")
    payload["event"]["expiration_date"] = "2026-02-01T00:00:00Z"
    event = parse_webhook_payload(payload)
    assert event.store == BillingStore.PLAY_STORE
    assert event.environment == BillingEnvironment.SANDBOX
    assert event.expires_at == T0 + days(31)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p["event"].pop("app_user_id"),
        lambda p: p["event"].update(app_user_id="   "),
        lambda p: p["event"].pop("event_timestamp_ms"),
        lambda p: p["event"].update(store="WEB"),
        lambda p: p.pop("event"),
    ],
)
def test_invalid_payloads(mutate):
    payload = webhook_payload("evt_1", "RENEWAL")
    mutate(payload)
    with pytest.raises(InvalidPayloadError):
        parse_webhook_payload(payload)
