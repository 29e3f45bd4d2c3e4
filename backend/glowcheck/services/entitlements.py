"""
权益服务

设备端和 webhook 共用的入口：
- 对账（同步 / 后台）
- 本地试用开始（幂等）
- 记录门控扫描
- 账户重置
- 读取当前快照并给出门控判定
"""
import logging
from datetime import datetime

from glowcheck import crud
from glowcheck.core.config import settings
from glowcheck.core.db import SessionFactory, new_session
from glowcheck.core.kv_store import KeyValueStore, TransientStorageError, create_kv_store
from glowcheck.core.locks import UserLocks, create_user_locks
from glowcheck.models import EntitlementSnapshot, GatingDecision, utc_now
from glowcheck.services import gating
from glowcheck.services.local_state import (
    increment_scan_count,
    load_snapshot,
    load_trial_state,
    reset_trial_state,
    start_trial_if_absent,
)
from glowcheck.services.reconciler import EntitlementReconciler

logger = logging.getLogger(__name__)


class EntitlementService:
    """权益服务封装"""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        kv_store: KeyValueStore,
        locks: UserLocks,
    ) -> None:
        self.session_factory = session_factory
        self.kv_store = kv_store
        self.locks = locks
        self.reconciler = EntitlementReconciler(
            session_factory=session_factory,
            kv_store=kv_store,
            locks=locks,
        )

    def reconcile(self, user_id: str, now: datetime | None = None) -> EntitlementSnapshot:
        return self.reconciler.reconcile(user_id, now)

    def reconcile_in_background(self, user_id: str) -> None:
        """
        后台对账（webhook 返回之后执行）

        失败只记录日志：事件已经落库，下一次事件或读取会再次对账。
        """
        try:
            self.reconcile(user_id)
        except Exception:
            logger.exception(f"Background reconciliation failed for {user_id}")

    def ensure_trial_started(self, user_id: str, now: datetime | None = None) -> bool:
        """
        开始本地试用（应用启动时调用，可重复调用）

        - 已经开始：空操作
        - 计费平台已发起试用：不再开始本地试用
        - 否则写入开始时间并对账

        存储不可用时记录日志并返回 False，下次启动再试，不阻塞应用使用。

        Returns:
            本次调用是否开始了试用
        """
        try:
            if load_trial_state(self.kv_store, user_id).has_started:
                return False
            with self.session_factory() as session:
                if crud.has_billing_trial(session=session, user_id=user_id):
                    logger.info(f"Billing trial exists for {user_id}, skip local trial")
                    return False
            with self.locks.hold(user_id):
                started = start_trial_if_absent(self.kv_store, user_id, now or utc_now())
            if started:
                logger.info(f"Local trial started for {user_id}")
                self.reconcile(user_id, now)
            return started
        except TransientStorageError as e:
            logger.warning(f"Could not start trial for {user_id}, will retry on next start: {e}")
            return False

    def record_scan(self, user_id: str, now: datetime | None = None) -> EntitlementSnapshot:
        """
        记录一次已完成的门控扫描并对账

        存储不可用时记录日志，返回当前可读到的快照。
        """
        try:
            with self.locks.hold(user_id):
                state = increment_scan_count(self.kv_store, user_id)
            logger.info(f"Scan recorded for {user_id}: {state.scan_count}/{state.scan_limit}")
            return self.reconcile(user_id, now)
        except TransientStorageError as e:
            logger.warning(f"Could not record scan for {user_id}: {e}")
            return self.current_snapshot(user_id, now)

    def reset(self, user_id: str, now: datetime | None = None) -> EntitlementSnapshot:
        """
        账户重置：清除本地试用状态后重新对账

        Raises:
            TransientStorageError: 存储不可用
        """
        with self.locks.hold(user_id):
            reset_trial_state(self.kv_store, user_id)
        return self.reconcile(user_id, now)

    def current_snapshot(self, user_id: str, now: datetime | None = None) -> EntitlementSnapshot:
        """
        读取当前快照

        缓存缺失、损坏或已过 valid_until 时先对账；
        存储不可用时返回安全默认值（非付费、试用未开始）。
        """
        now = now or utc_now()
        try:
            snapshot = load_snapshot(self.kv_store, user_id)
            if snapshot is None or snapshot.is_stale(now):
                snapshot = self.reconcile(user_id, now)
            return snapshot
        except TransientStorageError as e:
            logger.warning(f"Entitlement storage unavailable for {user_id}, using default: {e}")
            return EntitlementSnapshot.default(user_id, scan_limit=settings.TRIAL_SCAN_LIMIT)

    def check_access(
        self, user_id: str, now: datetime | None = None
    ) -> tuple[EntitlementSnapshot, GatingDecision]:
        snapshot = self.current_snapshot(user_id, now)
        return snapshot, gating.decide(snapshot)


# 全局权益服务实例
_entitlement_service: EntitlementService | None = None


def init_entitlement_service(
    *,
    session_factory: SessionFactory,
    kv_store: KeyValueStore,
    locks: UserLocks,
) -> EntitlementService:
    """初始化全局权益服务"""
    global _entitlement_service
    _entitlement_service = EntitlementService(
        session_factory=session_factory,
        kv_store=kv_store,
        locks=locks,
    )
    return _entitlement_service


def get_entitlement_service() -> EntitlementService:
    """
    获取全局权益服务实例

    未初始化时按配置创建（数据库引擎、键值存储、按用户锁）。
    """
    if _entitlement_service is None:
        return init_entitlement_service(
            session_factory=new_session,
            kv_store=create_kv_store(),
            locks=create_user_locks(),
        )
    return _entitlement_service
