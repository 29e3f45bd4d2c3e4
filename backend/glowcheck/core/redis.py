"""
Redis 连接模块

管理 Redis 客户端连接，使用单例模式确保全局只有一个连接实例。
Redis 用于：
- 存储本地试用状态（LocalTrialState）
- 缓存权益快照（EntitlementSnapshot）
- 按用户的分布式对账锁

使用 @lru_cache 装饰器实现单例模式，避免重复创建连接。
"""
from __future__ import annotations

from functools import lru_cache  # 缓存装饰器，用于实现单例模式

import redis  # Redis 客户端库

from glowcheck.core.config import settings


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """
    获取 Redis 客户端实例（单例模式）

    配置说明：
    - decode_responses=True: 自动将字节响应解码为字符串
    - 连接参数从 settings 读取
    """
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
        decode_responses=True,
    )
