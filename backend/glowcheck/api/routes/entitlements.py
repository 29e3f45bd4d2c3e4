"""
权益路由模块

设备端调用的权益接口（需要 Bearer token）：
- 查询当前权益和门控判定
- 开始本地试用（幂等）
- 记录一次门控扫描
- 强制对账（恢复购买）
- 账户重置
"""
from __future__ import annotations

from fastapi import APIRouter

from glowcheck.api.deps import CurrentUserId, EntitlementsDep
from glowcheck.api.errors import entitlements_unavailable
from glowcheck.api.schemas import ApiEnvelope, EntitlementStatusData, TrialStartData
from glowcheck.core.kv_store import TransientStorageError
from glowcheck.services import gating

router = APIRouter(prefix="/entitlements", tags=["entitlements"])


@router.get("/status", response_model=ApiEnvelope)
def status(user_id: CurrentUserId, service: EntitlementsDep) -> ApiEnvelope:
    """
    获取当前权益状态

    门控页面渲染前调用。快照缺失、损坏或已过期时会先对账再返回。

    请求路径: GET /api/v1/entitlements/status
    """
    snapshot, decision = service.check_access(user_id)
    return ApiEnvelope(data=EntitlementStatusData(snapshot=snapshot, decision=decision))


@router.post("/trial", response_model=ApiEnvelope)
def start_trial(user_id: CurrentUserId, service: EntitlementsDep) -> ApiEnvelope:
    """
    开始本地试用

    应用启动时调用，重复调用不会重新开始试用。

    请求路径: POST /api/v1/entitlements/trial
    """
    started = service.ensure_trial_started(user_id)
    snapshot, decision = service.check_access(user_id)
    return ApiEnvelope(data=TrialStartData(snapshot=snapshot, decision=decision, started=started))


@router.post("/scans", response_model=ApiEnvelope)
def record_scan(user_id: CurrentUserId, service: EntitlementsDep) -> ApiEnvelope:
    """
    记录一次已完成的门控扫描

    请求路径: POST /api/v1/entitlements/scans
    """
    snapshot = service.record_scan(user_id)
    return ApiEnvelope(
        data=EntitlementStatusData(snapshot=snapshot, decision=gating.decide(snapshot))
    )


@router.post("/reconcile", response_model=ApiEnvelope)
def reconcile(user_id: CurrentUserId, service: EntitlementsDep) -> ApiEnvelope:
    """
    强制对账（恢复购买后调用）

    请求路径: POST /api/v1/entitlements/reconcile
    """
    try:
        snapshot = service.reconcile(user_id)
    except TransientStorageError:
        raise entitlements_unavailable()
    return ApiEnvelope(
        data=EntitlementStatusData(snapshot=snapshot, decision=gating.decide(snapshot))
    )


@router.post("/reset", response_model=ApiEnvelope)
def reset(user_id: CurrentUserId, service: EntitlementsDep) -> ApiEnvelope:
    """
    账户重置：清除本地试用状态和扫描次数

    请求路径: POST /api/v1/entitlements/reset
    """
    try:
        snapshot = service.reset(user_id)
    except TransientStorageError:
        raise entitlements_unavailable()
    return ApiEnvelope(
        data=EntitlementStatusData(snapshot=snapshot, decision=gating.decide(snapshot))
    )
