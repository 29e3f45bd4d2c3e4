"""
工具路由模块

- 存活检查：进程是否在运行
- 就绪检查：数据库（事件存储）和键值存储是否可用
"""
import logging

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from glowcheck.api.deps import EntitlementsDep, SessionDep
from glowcheck.api.errors import entitlements_unavailable, event_store_unavailable
from glowcheck.core.kv_store import TransientStorageError, build_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    """存活检查，负载均衡器和容器编排系统的探针使用"""
    return True


@router.get("/ready")
def ready(session: SessionDep, service: EntitlementsDep) -> dict[str, str]:
    """
    就绪检查

    请求路径: GET /api/v1/utils/ready

    Raises:
        AppError: 任一存储不可用时返回 503
    """
    try:
        session.exec(select(1))
    except SQLAlchemyError as e:
        logger.error(f"Readiness check failed for event store: {e}")
        raise event_store_unavailable()
    try:
        service.kv_store.get(build_key("health", "probe"))
    except TransientStorageError:
        raise entitlements_unavailable()
    return {"event_store": "ok", "kv_store": "ok"}
