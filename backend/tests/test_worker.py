from __future__ import annotations

from conftest import T0, days, make_event

from glowcheck import crud
from glowcheck.enums import TrialPhase
from glowcheck.services.local_state import load_snapshot
from glowcheck.worker.tasks import refresh_stale_snapshots


def test_sweep_refreshes_missing_and_stale_snapshots(service, db):
    for user_id in ("u_1", "u_2"):
        crud.append_billing_event(
            session=db,
            event=make_event(
                f"evt_{user_id}", "INITIAL_PURCHASE", user_id=user_id, expires_at=T0 + days(30)
            ),
        )
    service.reconcile("u_1", T0 + days(1))

    assert refresh_stale_snapshots(service, T0 + days(1)) == 1
    assert load_snapshot(service.kv_store, "u_2").is_premium is True

    assert refresh_stale_snapshots(service, T0 + days(31)) == 2
    assert load_snapshot(service.kv_store, "u_1").is_premium is False

    assert refresh_stale_snapshots(service, T0 + days(32)) == 0


def test_sweep_without_users(service):
    assert refresh_stale_snapshots(service, T0) == 0


def test_local_trial_users_are_refreshed_on_read(service):
    service.ensure_trial_started("u_local", T0)

    assert refresh_stale_snapshots(service, T0 + days(4)) == 0
    assert load_snapshot(service.kv_store, "u_local").trial_phase == TrialPhase.ACTIVE

    snapshot = service.current_snapshot("u_local", T0 + days(4))
    assert snapshot.trial_phase == TrialPhase.EXPIRED
