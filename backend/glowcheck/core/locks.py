"""
按用户的对账锁

同一用户的对账必须互斥，避免两次折叠交错写出不一致的快照。

- RedisUserLocks: 多进程 / 多实例部署，基于 redis-py 的 Lock（SET NX + 过期时间）
- LocalUserLocks: 单进程，按键维护 threading.Lock
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol

import redis
from redis.exceptions import LockError

from glowcheck.core.config import settings
from glowcheck.core.kv_store import TransientStorageError, build_key
from glowcheck.core.redis import get_redis

logger = logging.getLogger(__name__)


class UserLocks(Protocol):
    def hold(self, user_id: str) -> AbstractContextManager[None]: ...


class LocalUserLocks:
    """进程内按用户加锁，空闲的锁会被回收"""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._waiters: dict[str, int] = {}

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(user_id, threading.Lock())
            self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[user_id] -= 1
                if self._waiters[user_id] == 0:
                    del self._waiters[user_id]
                    del self._locks[user_id]


class RedisUserLocks:
    """基于 Redis 的分布式按用户锁"""

    def __init__(self, client: redis.Redis, timeout_seconds: int) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self.client.lock(
            build_key("lock", user_id),
            timeout=self.timeout_seconds,
            blocking_timeout=self.timeout_seconds,
        )
        try:
            acquired = lock.acquire()
        except redis.RedisError as e:
            logger.error(f"Failed to acquire reconcile lock for {user_id}: {e}")
            raise TransientStorageError(str(e)) from e
        if not acquired:
            raise TransientStorageError(f"Timed out waiting for reconcile lock of {user_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except (LockError, redis.RedisError) as e:
                # 锁在释放前已过期：持有时间超过了 timeout
                logger.warning(f"Failed to release reconcile lock for {user_id}: {e}")


def create_user_locks() -> UserLocks:
    """根据配置创建按用户锁"""
    if settings.KV_BACKEND == "memory":
        return LocalUserLocks()
    return RedisUserLocks(get_redis(), settings.RECONCILE_LOCK_TIMEOUT_SECONDS)
