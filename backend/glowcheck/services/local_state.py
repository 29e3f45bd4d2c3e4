"""
本地持久化状态

键值存储中的三类记录：
- 试用状态  {prefix}:trial:{user_id}     -> LocalTrialState
- 权益快照  {prefix}:snapshot:{user_id}  -> EntitlementSnapshot
- 快照版本  {prefix}:version:{user_id}   -> 整数（快照损坏被丢弃后版本号仍然单调递增）

读到坏记录时返回安全默认值（试用未开始 / 无快照），不向调用方抛异常；
存储后端不可用时抛出 TransientStorageError。
"""
import logging
from datetime import datetime

from glowcheck.core.config import settings
from glowcheck.core.kv_store import KeyValueStore, build_key, read_model, write_model
from glowcheck.models import EntitlementSnapshot, LocalTrialState

logger = logging.getLogger(__name__)

TRIAL_KIND = "trial"
SNAPSHOT_KIND = "snapshot"
VERSION_KIND = "version"


def default_trial_state() -> LocalTrialState:
    return LocalTrialState(
        trial_length_days=settings.TRIAL_LENGTH_DAYS,
        scan_limit=settings.TRIAL_SCAN_LIMIT,
    )


def load_trial_state(store: KeyValueStore, user_id: str) -> LocalTrialState:
    state = read_model(store, build_key(TRIAL_KIND, user_id), LocalTrialState)
    return state if state is not None else default_trial_state()


def save_trial_state(store: KeyValueStore, user_id: str, state: LocalTrialState) -> None:
    write_model(store, build_key(TRIAL_KIND, user_id), state)


def start_trial_if_absent(store: KeyValueStore, user_id: str, now: datetime) -> bool:
    """
    设置试用开始时间（只设置一次）

    没有记录时用 SET NX 写入，多次或并发调用只有一次生效；
    已有记录但尚未开始（例如先记录了扫描）时补写开始时间，
    这一分支需要调用方持有该用户的锁。

    Returns:
        本次调用是否开始了试用
    """
    key = build_key(TRIAL_KIND, user_id)
    started = default_trial_state().model_copy(update={"started_at": now})
    if store.set_if_absent(key, started.model_dump_json()):
        return True

    current = load_trial_state(store, user_id)
    if current.has_started:
        return False
    save_trial_state(store, user_id, current.model_copy(update={"started_at": now}))
    return True


def increment_scan_count(store: KeyValueStore, user_id: str) -> LocalTrialState:
    """扫描次数加一（读-改-写，调用方需持有该用户的锁）"""
    current = load_trial_state(store, user_id)
    updated = current.model_copy(update={"scan_count": current.scan_count + 1})
    save_trial_state(store, user_id, updated)
    return updated


def reset_trial_state(store: KeyValueStore, user_id: str) -> None:
    """账户重置：清除试用状态和扫描次数"""
    store.remove(build_key(TRIAL_KIND, user_id))
    logger.info(f"Local trial state reset for {user_id}")


def load_snapshot(store: KeyValueStore, user_id: str) -> EntitlementSnapshot | None:
    return read_model(store, build_key(SNAPSHOT_KIND, user_id), EntitlementSnapshot)


def save_snapshot(store: KeyValueStore, snapshot: EntitlementSnapshot) -> None:
    write_model(store, build_key(SNAPSHOT_KIND, snapshot.user_id), snapshot)


def load_snapshot_version(store: KeyValueStore, user_id: str) -> int:
    """读取最近一次写入的快照版本号，缺失或损坏时为 0"""
    key = build_key(VERSION_KIND, user_id)
    raw = store.get(key)
    if raw is None:
        return 0
    try:
        return max(0, int(raw))
    except ValueError:
        logger.error(f"Corrupted snapshot version under {key}, resetting")
        store.remove(key)
        return 0


def save_snapshot_version(store: KeyValueStore, user_id: str, version: int) -> None:
    store.set(build_key(VERSION_KIND, user_id), str(version))
