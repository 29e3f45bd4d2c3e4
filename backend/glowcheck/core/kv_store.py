"""
键值存储

按字符串键读写的简单存储（get / set / set_if_absent / remove），
用于保存本地试用状态和权益快照缓存。

- RedisKeyValueStore: 部署环境使用，基于 Redis
- MemoryKeyValueStore: 本地开发和测试使用，进程内字典

后端故障统一转换为 TransientStorageError（可重试）；
读取到无法解析的值时视为 StorageCorruptionError，删除坏记录并返回默认值。
"""
from __future__ import annotations

import logging
import threading
from typing import Protocol, TypeVar

import redis
from pydantic import BaseModel, ValidationError

from glowcheck.core.config import settings
from glowcheck.core.redis import get_redis

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TransientStorageError(Exception):
    """存储后端暂时不可用（网络、超时等），调用方可稍后重试"""


class StorageCorruptionError(Exception):
    """存储中的值无法解析"""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupted value under {key}: {reason}")
        self.key = key
        self.reason = reason


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def set_if_absent(self, key: str, value: str) -> bool: ...

    def remove(self, key: str) -> None: ...


class RedisKeyValueStore:
    """Redis 键值存储封装"""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis get failed for {key}: {e}")
            raise TransientStorageError(str(e)) from e

    def set(self, key: str, value: str) -> None:
        """
        整体写入一个值

        Redis SET 是原子的，读方只会看到旧值或新值，不会看到写了一半的记录。
        """
        try:
            self.client.set(key, value)
        except redis.RedisError as e:
            logger.error(f"Redis set failed for {key}: {e}")
            raise TransientStorageError(str(e)) from e

    def set_if_absent(self, key: str, value: str) -> bool:
        """
        仅当键不存在时写入（SET NX）

        Returns:
            是否写入成功
        """
        try:
            return bool(self.client.set(key, value, nx=True))
        except redis.RedisError as e:
            logger.error(f"Redis set nx failed for {key}: {e}")
            raise TransientStorageError(str(e)) from e

    def remove(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis delete failed for {key}: {e}")
            raise TransientStorageError(str(e)) from e


class MemoryKeyValueStore:
    """进程内键值存储"""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def set_if_absent(self, key: str, value: str) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


def read_model(store: KeyValueStore, key: str, model: type[ModelT]) -> ModelT | None:
    """
    读取并解析一个 JSON 记录

    坏记录（非 JSON 或字段不合法）会被删除并返回 None，
    由调用方替换为安全的默认值，不会把异常抛给上层。

    Raises:
        TransientStorageError: 存储后端不可用
    """
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        corruption = StorageCorruptionError(key, f"{e.error_count()} validation error(s)")
        logger.error(f"{corruption}, resetting to default")
        store.remove(key)
        return None


def write_model(store: KeyValueStore, key: str, value: BaseModel) -> None:
    """序列化后整体写入（先写后换，不逐字段修改）"""
    store.set(key, value.model_dump_json())


def build_key(kind: str, user_id: str) -> str:
    """
    生成存储键

    示例：
        build_key("trial", "u_1")  # "glowcheck:trial:u_1"
    """
    return f"{settings.KV_KEY_PREFIX}:{kind}:{user_id}"


def create_kv_store() -> KeyValueStore:
    """根据配置创建键值存储"""
    if settings.KV_BACKEND == "memory":
        logger.info("Using in-process key-value store")
        return MemoryKeyValueStore()
    return RedisKeyValueStore(get_redis())
