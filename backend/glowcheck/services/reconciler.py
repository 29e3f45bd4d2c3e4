"""
权益对账

把用户的全部计费事件（按 occurred_at、event_id 排序）从左到右折叠成计费状态，
再结合本地试用状态，得到唯一的权益快照并整体写入缓存。

事件优先级：后发生的事件总是覆盖先发生的事件，因此必须先排序再折叠，
最终结果与事件的到达顺序无关。
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from glowcheck import crud
from glowcheck.core.config import settings
from glowcheck.core.db import SessionFactory
from glowcheck.core.kv_store import KeyValueStore
from glowcheck.core.locks import UserLocks
from glowcheck.enums import BillingEventType, EntitlementSource, TrialPhase
from glowcheck.models import BillingEvent, EntitlementSnapshot, LocalTrialState, utc_now
from glowcheck.services import trial_clock
from glowcheck.services.local_state import (
    load_snapshot,
    load_snapshot_version,
    load_trial_state,
    save_snapshot,
    save_snapshot_version,
)

logger = logging.getLogger(__name__)

GRANTING_EVENTS = {
    BillingEventType.INITIAL_PURCHASE,
    BillingEventType.RENEWAL,
    BillingEventType.TRIAL_CONVERTED,
}


@dataclass
class BillingState:
    """折叠过程中的计费状态"""

    expires_at: datetime | None = None
    active: bool = False
    will_renew: bool = False
    billing_issue_at: datetime | None = None
    trial_expires_at: datetime | None = None
    converted: bool = False
    last_event_type: BillingEventType | None = None

    def apply(self, event: BillingEvent) -> None:
        kind = event.kind
        if kind in GRANTING_EVENTS:
            self.active = True
            self.expires_at = event.expires_at
            self.will_renew = event.auto_renewing
            self.billing_issue_at = None
            self.trial_expires_at = None
            if kind == BillingEventType.TRIAL_CONVERTED and event.is_trial_period:
                self.converted = True
        elif kind == BillingEventType.TRIAL_STARTED:
            self.trial_expires_at = event.expires_at
            self.will_renew = event.auto_renewing
        elif kind == BillingEventType.CANCELLATION:
            # 已付费周期结束前权益保留
            self.will_renew = False
        elif kind == BillingEventType.UNCANCELLATION:
            # 到期之后的撤销取消只有带上新的到期时间才会恢复权益
            self.will_renew = True
            if event.expires_at is not None:
                self.expires_at = event.expires_at
            if self.expires_at is not None:
                self.active = True
        elif kind == BillingEventType.BILLING_ISSUE:
            if self.billing_issue_at is None:
                self.billing_issue_at = event.occurred_at
        elif kind == BillingEventType.EXPIRATION:
            self.active = False
            self.expires_at = None
            self.will_renew = False
            self.billing_issue_at = None
            if self.trial_expires_at is not None:
                self.trial_expires_at = min(self.trial_expires_at, event.occurred_at)
        else:
            logger.warning(
                f"Unhandled billing event type {event.event_type!r} "
                f"(event {event.event_id}, user {event.user_id}), folding as no-op"
            )
            return
        self.last_event_type = kind

    def premium_until(self, grace_period: timedelta) -> datetime | None:
        """
        付费权益的截止时间

        扣款失败时，权益保留到原到期时间与宽限期结束两者中较晚的那个。
        """
        if not self.active or self.expires_at is None:
            return None
        if self.billing_issue_at is not None:
            return max(self.expires_at, self.billing_issue_at + grace_period)
        return self.expires_at


def fold_events(events: Iterable[BillingEvent]) -> BillingState:
    state = BillingState()
    for event in sorted(events, key=lambda e: e.sort_key):
        state.apply(event)
    return state


def _trial_snapshot_fields(
    deadline: datetime, days_left: int, hours_left: int, trial: LocalTrialState
) -> dict:
    active = days_left > 0 and trial.scan_count < trial.scan_limit
    return {
        "trial_phase": TrialPhase.ACTIVE if active else TrialPhase.EXPIRED,
        "days_left": days_left,
        "hours_left": hours_left,
        "valid_until": deadline if active else None,
    }


def build_snapshot(
    *,
    user_id: str,
    billing: BillingState,
    trial: LocalTrialState,
    now: datetime,
    grace_period: timedelta,
    version: int,
) -> EntitlementSnapshot:
    """
    根据计费状态和本地试用状态计算快照

    1. 计费权益有效（截止时间晚于 now）：付费，来源为计费事件
    2. 存在计费平台发起的试用：按其截止时间计算试用阶段
    3. 否则使用本地试用：未开始为 NONE；开始后剩余天数 > 0 且扫描未用完为 ACTIVE，
       否则 EXPIRED

    扫描次数始终来自本地状态，与哪个来源生效无关。
    """
    common = {
        "user_id": user_id,
        "scans_used": trial.scan_count,
        "scans_remaining": trial.scans_remaining,
        "will_renew": billing.will_renew,
        "last_event_type": billing.last_event_type,
        "version": version,
        "computed_at": now,
    }

    premium_until = billing.premium_until(grace_period)
    if premium_until is not None and premium_until > now:
        return EntitlementSnapshot(
            is_premium=True,
            trial_phase=TrialPhase.CONVERTED if billing.converted else TrialPhase.NONE,
            source=EntitlementSource.BILLING_EVENT,
            premium_expires_at=premium_until,
            valid_until=premium_until,
            **common,
        )

    if billing.trial_expires_at is not None:
        deadline = billing.trial_expires_at
        return EntitlementSnapshot(
            is_premium=False,
            source=EntitlementSource.BILLING_EVENT,
            **_trial_snapshot_fields(
                deadline,
                trial_clock.days_until(deadline, now),
                trial_clock.hours_until(deadline, now),
                trial,
            ),
            **common,
        )

    if trial.started_at is None:
        return EntitlementSnapshot(
            is_premium=False,
            trial_phase=TrialPhase.NONE,
            source=EntitlementSource.LOCAL_TRIAL,
            **common,
        )

    deadline = trial_clock.ends_at(trial.started_at, trial.trial_length_days)
    hours_left = min(trial_clock.hours_until(deadline, now), trial.trial_length_days * 24)
    return EntitlementSnapshot(
        is_premium=False,
        source=EntitlementSource.LOCAL_TRIAL,
        **_trial_snapshot_fields(
            deadline,
            trial_clock.remaining(trial.started_at, trial.trial_length_days, now),
            hours_left,
            trial,
        ),
        **common,
    )


class EntitlementReconciler:
    """
    权益对账器

    快照的唯一写入方。同一用户的对账在按用户锁内串行执行：
    读取事件和试用状态、计算、整体写入快照都在锁内完成。
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        kv_store: KeyValueStore,
        locks: UserLocks,
        grace_period: timedelta | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.kv_store = kv_store
        self.locks = locks
        self.grace_period = grace_period or timedelta(days=settings.BILLING_GRACE_PERIOD_DAYS)

    def reconcile(self, user_id: str, now: datetime | None = None) -> EntitlementSnapshot:
        """
        对账并写入快照

        Raises:
            TransientStorageError: 事件存储、键值存储或锁不可用
        """
        with self.locks.hold(user_id):
            with self.session_factory() as session:
                events = crud.list_billing_events(session=session, user_id=user_id)
            trial = load_trial_state(self.kv_store, user_id)
            previous = load_snapshot(self.kv_store, user_id)
            # 快照损坏被丢弃时以单独保存的版本号为准
            last_version = max(
                previous.version if previous else 0,
                load_snapshot_version(self.kv_store, user_id),
            )

            snapshot = build_snapshot(
                user_id=user_id,
                billing=fold_events(events),
                trial=trial,
                now=now or utc_now(),
                grace_period=self.grace_period,
                version=last_version + 1,
            )
            save_snapshot(self.kv_store, snapshot)
            save_snapshot_version(self.kv_store, user_id, snapshot.version)

        logger.info(
            f"Reconciled {user_id}: premium={snapshot.is_premium} "
            f"phase={snapshot.trial_phase.value} source={snapshot.source.value} "
            f"events={len(events)} version={snapshot.version}"
        )
        return snapshot
