"""
存储模块 - 键值缓存服务的抽象与实现（Redis / 内存）。
"""

from picobot.storage.kv import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore, create_store

__all__ = ["KeyValueStore", "RedisKeyValueStore", "MemoryKeyValueStore", "create_store"]
