"""
键值缓存服务模块 - 会话历史与图片请求缓存的共同存储后端。

本模块只暴露 get / set(带过期时间) / delete 三种语义，上层模块
（SessionManager、ImageRequestCache）不关心底层是 Redis 还是内存。

实现：
- RedisKeyValueStore：基于 redis.asyncio 的异步客户端（生产环境）
- MemoryKeyValueStore：进程内字典 + 过期时间（本地调试、测试）

所有底层错误统一包装为 PersistenceError，由消息处理边界统一捕获。

【Java 开发者类比】
- KeyValueStore 相当于 Spring Data 的 Repository 接口
- RedisKeyValueStore 相当于基于 Lettuce 的 RedisTemplate
"""

import time
from abc import ABC, abstractmethod

import redis.asyncio as redis
from loguru import logger
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from picobot.errors import PersistenceError


def _check_ttl(ttl_seconds: int | None) -> None:
    # Redis 的 SET EX 拒绝非正数；内存实现保持同样的约束
    if ttl_seconds is not None and ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive or None, got {ttl_seconds}")


class KeyValueStore(ABC):
    """
    键值缓存服务抽象基类。

    值统一为字符串（调用方自行做 JSON 序列化）。
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """读取键值，不存在或已过期时返回 None。"""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """写入键值（覆盖已有值）。ttl_seconds 为 None 时永不过期。非正数抛出 ValueError。"""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """删除键（不存在时忽略）。"""
        pass

    async def ping(self) -> None:
        """检查后端是否可用。默认无操作。"""
        return None

    async def close(self) -> None:
        """释放底层连接。默认无操作。"""
        return None


class RedisKeyValueStore(KeyValueStore):
    """
    基于 Redis 的键值存储。

    属性:
        redis_url: Redis 连接地址
        key_prefix: 所有键的统一前缀
    """

    def __init__(self, redis_url: str, key_prefix: str = "", max_connections: int = 20):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        # decode_responses=True：读出的值直接是 str 而非 bytes
        self._pool = ConnectionPool.from_url(
            redis_url,
            max_connections=max_connections,
            decode_responses=True,
        )
        self._redis = redis.Redis(connection_pool=self._pool)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def ping(self) -> None:
        """检查 Redis 连接是否可用（启动时调用）。"""
        try:
            await self._redis.ping()
        except RedisError as e:
            raise PersistenceError("ping", self.redis_url, str(e)) from e

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(self._key(key))
        except RedisError as e:
            raise PersistenceError("get", key, str(e)) from e

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        _check_ttl(ttl_seconds)
        try:
            # ex=None 时 Redis 不设置过期时间
            await self._redis.set(self._key(key), value, ex=ttl_seconds)
        except RedisError as e:
            raise PersistenceError("set", key, str(e)) from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except RedisError as e:
            raise PersistenceError("delete", key, str(e)) from e

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.disconnect()
        logger.debug("Redis connection closed")


class MemoryKeyValueStore(KeyValueStore):
    """
    进程内键值存储，语义与 Redis 的 GET / SET EX / DEL 一致。

    过期判断采用惰性删除：读取时发现已过期才移除。
    时钟可注入（clock 参数），便于测试过期行为。
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}  # 键 → (值, 过期时刻)

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        _check_ttl(ttl_seconds)
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


def create_store(backend: str, redis_url: str = "", key_prefix: str = "") -> KeyValueStore:
    """
    根据配置创建键值存储实例。

    参数:
        backend: "redis" 或 "memory"
        redis_url: Redis 连接地址（backend 为 redis 时必填）
        key_prefix: 键前缀

    返回:
        KeyValueStore 实例
    """
    if backend == "memory":
        logger.warning("Using in-memory cache backend; sessions are lost on restart")
        return MemoryKeyValueStore()
    if backend == "redis":
        return RedisKeyValueStore(redis_url, key_prefix=key_prefix)
    raise ValueError(f"Unknown cache backend: {backend}")
