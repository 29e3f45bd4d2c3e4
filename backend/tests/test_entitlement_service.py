from __future__ import annotations

from conftest import T0, days, make_event
from sqlmodel import Session

from glowcheck import crud
from glowcheck.core.kv_store import TransientStorageError, build_key
from glowcheck.core.locks import LocalUserLocks
from glowcheck.enums import GatingStatus, TrialPhase
from glowcheck.services.entitlements import EntitlementService
from glowcheck.services.local_state import load_snapshot, load_trial_state


class _BrokenStore:
    def get(self, key: str) -> str | None:
        raise TransientStorageError("connection refused")

    def set(self, key: str, value: str) -> None:
        raise TransientStorageError("connection refused")

    def set_if_absent(self, key: str, value: str) -> bool:
        raise TransientStorageError("connection refused")

    def remove(self, key: str) -> None:
        raise TransientStorageError("connection refused")


def test_ensure_trial_started_is_idempotent(service):
    assert service.ensure_trial_started("u_1", T0) is True
    for i in range(1, 5):
        assert service.ensure_trial_started("u_1", T0 + days(i)) is False

    assert load_trial_state(service.kv_store, "u_1").started_at == T0
    snapshot = load_snapshot(service.kv_store, "u_1")
    assert snapshot is not None
    assert snapshot.trial_phase == TrialPhase.ACTIVE


def test_ensure_trial_skipped_when_billing_trial_exists(service, db):
    crud.append_billing_event(
        session=db,
        event=make_event("evt_1", "TRIAL_STARTED", expires_at=T0 + days(3), is_trial_period=True),
    )
    assert service.ensure_trial_started("u_1", T0) is False
    assert load_trial_state(service.kv_store, "u_1").started_at is None


def test_scans_exhaust_trial(service):
    service.ensure_trial_started("u_1", T0)
    snapshot = None
    for _ in range(3):
        snapshot = service.record_scan("u_1", T0 + days(1))
    assert snapshot is not None
    assert snapshot.trial_phase == TrialPhase.EXPIRED
    assert snapshot.scans_remaining == 0

    _, decision = service.check_access("u_1", T0 + days(1))
    assert decision.can_view is False
    assert decision.status == GatingStatus.SCAN_LIMIT_REACHED


def test_stale_snapshot_is_refreshed_on_read(service):
    service.ensure_trial_started("u_1", T0)
    snapshot, decision = service.check_access("u_1", T0 + days(1))
    assert decision.can_view is True
    version = snapshot.version

    snapshot, decision = service.check_access("u_1", T0 + days(3))
    assert snapshot.version == version + 1
    assert snapshot.trial_phase == TrialPhase.EXPIRED
    assert decision.status == GatingStatus.TRIAL_EXPIRED


def test_corrupted_snapshot_is_recomputed(service):
    service.ensure_trial_started("u_1", T0)
    service.kv_store.set(build_key("snapshot", "u_1"), "garbage")
    snapshot = service.current_snapshot("u_1", T0 + days(1))
    assert snapshot.trial_phase == TrialPhase.ACTIVE
    assert snapshot.version == 2


def test_reset_clears_local_trial(service):
    service.ensure_trial_started("u_1", T0)
    service.record_scan("u_1", T0)
    snapshot = service.reset("u_1", T0)
    assert snapshot.trial_phase == TrialPhase.NONE
    assert snapshot.scans_used == 0
    assert snapshot.scans_remaining == 3


def test_storage_outage_falls_back_to_safe_default(engine):
    broken = EntitlementService(
        session_factory=lambda: Session(engine),
        kv_store=_BrokenStore(),
        locks=LocalUserLocks(),
    )
    assert broken.ensure_trial_started("u_1", T0) is False

    snapshot, decision = broken.check_access("u_1", T0)
    assert snapshot.is_premium is False
    assert snapshot.trial_phase == TrialPhase.NONE
    assert decision.status == GatingStatus.NOT_STARTED

    assert broken.record_scan("u_1", T0).trial_phase == TrialPhase.NONE


def test_background_reconcile_logs_failures(engine, caplog):
    broken = EntitlementService(
        session_factory=lambda: Session(engine),
        kv_store=_BrokenStore(),
        locks=LocalUserLocks(),
    )
    broken.reconcile_in_background("u_1")
    assert "Background reconciliation failed for u_1" in caplog.text
