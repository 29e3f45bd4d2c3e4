"""
应用启动前检查脚本

在应用启动前检查事件存储（数据库）和键值存储（Redis）是否可用。
主要用于 Docker Compose 环境，数据库和 Redis 容器可能还在初始化。

执行流程：
1. 脚本在应用启动前被调用
2. 不断重试，直到两个存储都可用或超时
3. 成功后继续执行数据库迁移
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from glowcheck.core.db import engine
from glowcheck.core.kv_store import KeyValueStore, build_key, create_kv_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 最大尝试次数：300 次（5 分钟，每秒一次）
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine, kv_store: KeyValueStore) -> None:
    """
    检查两个存储是否就绪

    任一检查失败都会抛出异常，由 tenacity 重试。
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
        kv_store.get(build_key("health", "probe"))
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    logger.info("Initializing service")
    init(engine, create_kv_store())
    logger.info("Service finished initializing")


if __name__ == "__main__":  # pragma: no cover
    main()
