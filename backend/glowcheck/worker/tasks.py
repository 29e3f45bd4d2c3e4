"""
定时任务逻辑
"""

import logging
from datetime import datetime

from glowcheck import crud
from glowcheck.core.kv_store import TransientStorageError
from glowcheck.models import utc_now
from glowcheck.services.entitlements import EntitlementService, get_entitlement_service
from glowcheck.services.local_state import load_snapshot

logger = logging.getLogger(__name__)


def refresh_stale_snapshots(
    service: EntitlementService | None = None, now: datetime | None = None
) -> int:
    """
    巡检有计费事件的用户，快照缺失或已过 valid_until 时重新对账

    后台对账失败、试用到期、付费到期都会让快照过时；
    读取时也会按需刷新，这里只是让缓存提前收敛。
    每个用户的对账都在该用户的锁内执行，多实例同时巡检也是安全的。

    只巡检事件存储中有计费事件的用户：只有本地试用的用户不在这里提前刷新，
    其快照在读取时（current_snapshot）按 valid_until 判断并重新对账。

    Returns:
        本次刷新的用户数
    """
    service = service or get_entitlement_service()
    now = now or utc_now()

    try:
        with service.session_factory() as session:
            user_ids = crud.list_billing_user_ids(session=session)
    except TransientStorageError as e:
        logger.error(f"Snapshot sweep skipped, event store unavailable: {e}")
        return 0

    if not user_ids:
        logger.info("No billing users found.")
        return 0

    refreshed = 0
    for user_id in user_ids:
        try:
            snapshot = load_snapshot(service.kv_store, user_id)
            if snapshot is not None and not snapshot.is_stale(now):
                continue
            service.reconcile(user_id, now)
            refreshed += 1
        except TransientStorageError as e:
            logger.error(f"Failed to refresh snapshot for user {user_id}: {e}")

    logger.info(f"Snapshot sweep finished: users={len(user_ids)} refreshed={refreshed}")
    return refreshed
