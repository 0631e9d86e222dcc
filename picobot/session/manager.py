"""
会话管理器实现模块 - 对话历史的存储、检索和管理。

本模块包含两个核心类：
- Session：单个用户的对话会话，维护有序的消息列表、当前模型和元数据
- SessionManager：会话管理器，负责会话的加载、保存、重置，以及按用户串行化

【存储格式】
每个会话以一个 JSON 文档存储在键值缓存服务中，键为 "session:<user_id>"：
    {"user_id": ..., "model": ..., "created_at": ..., "updated_at": ...,
     "metadata": {...}, "messages": [{"role", "content", "timestamp"}, ...]}

整个会话一次写入，因此"用户消息 + 助手回复"这一对要么同时可见，要么都不可见。

【并发】
同一用户的两条消息可能被并发处理：两者读到同一份历史，各自追加后写回，
后写的会覆盖先写的。SessionManager.lock(user_id) 为每个用户提供一把
asyncio.Lock，所有"读 → 修改 → 写"都必须在锁内完成；不同用户互不阻塞。

【Java 开发者类比】
- Session 类似于 Java Servlet 的 HttpSession
- SessionManager 类似于 Spring Session 的 SessionRepository
- lock() 类似于按 key 分段的 ReentrantLock（Striped Lock）
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from picobot.storage.kv import KeyValueStore

USER = "user"
ASSISTANT = "assistant"


@dataclass
class Session:
    """
    单个用户的对话会话。

    属性:
        key: 会话唯一标识，即用户 ID
        messages: 对话消息列表（插入顺序即对话顺序）
        model: 该用户当前选择的模型，None 表示使用默认模型
        created_at: 会话创建时间
        updated_at: 会话最后更新时间
        metadata: 会话级别的附加元数据
    """

    key: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    model: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_message(self, role: str, content: str) -> None:
        """向会话中追加一条消息。"""
        self.messages.append({
            "role": role,
            "content": content,
            "timestamp": datetime.now().isoformat(),
        })
        self.updated_at = datetime.now()

    def add_exchange(self, user_text: str, reply: str, window: int | None = None) -> None:
        """
        追加一轮完整的问答（用户消息 + 助手回复）。

        参数:
            user_text: 用户输入
            reply: 助手回复
            window: 可选的历史窗口大小，超出时丢弃最早的消息（按对丢弃）
        """
        self.add_message(USER, user_text)
        self.add_message(ASSISTANT, reply)
        if window:
            # 保持成对，历史总是以 user 消息开头；至少保留最近一对
            keep = max(window - window % 2, 2)
            if len(self.messages) > keep:
                self.messages = self.messages[-keep:]

    def get_history(self, max_messages: int | None = None) -> list[dict[str, Any]]:
        """
        获取用于 LLM 上下文的消息历史（最早的在前）。

        只保留 role 和 content 字段，去除 timestamp 等 LLM 不需要的元数据。

        参数:
            max_messages: 最多返回的消息数，None 表示全部
        """
        recent = self.messages
        if max_messages and len(recent) > max_messages:
            keep = max_messages - max_messages % 2
            recent = recent[-keep:] if keep else []
        return [{"role": m["role"], "content": m["content"]} for m in recent]

    def clear(self) -> None:
        """清空对话历史，保留会话本身（key、model、metadata 不变）。"""
        self.messages = []
        self.updated_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.key,
            "model": self.model,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "metadata": self.metadata,
            "messages": self.messages,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            key=str(data["user_id"]),
            messages=list(data.get("messages", [])),
            model=data.get("model"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else datetime.now(),
            metadata=data.get("metadata", {}),
        )


class SessionManager:
    """
    会话管理器 - 管理所有用户会话的加载、保存和重置。

    会话本身存放在键值缓存服务中（不设过期时间，会话永不主动销毁）。
    首次访问时惰性创建，直到第一次 save() 才真正写入存储。

    属性:
        store: 键值缓存服务
        history_window: 可选的历史窗口大小（None 表示不限制）
        _locks: 每个用户一把 asyncio.Lock
    """

    KEY_PREFIX = "session:"

    def __init__(self, store: KeyValueStore, history_window: int | None = None):
        if history_window is not None and history_window < 2:
            raise ValueError(f"history_window must be at least 2 (one exchange), got {history_window}")
        self.store = store
        self.history_window = history_window
        self._locks: dict[str, asyncio.Lock] = {}

    def _session_key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    def lock(self, user_id: str) -> asyncio.Lock:
        """
        获取指定用户的串行化锁。

        用法:
            async with sessions.lock(user_id):
                session = await sessions.get_or_create(user_id)
                ...
                await sessions.save(session)
        """
        user_id = str(user_id)
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def get_or_create(self, user_id: str) -> Session:
        """
        获取已有会话或创建新会话。

        查找顺序：键值存储 → 新建空会话（未保存）。
        """
        user_id = str(user_id)
        session = await self._load(user_id)
        if session is None:
            session = Session(key=user_id)
        return session

    async def _load(self, user_id: str) -> Session | None:
        """从键值存储加载会话，不存在或数据损坏时返回 None。"""
        raw = await self.store.get(self._session_key(user_id))
        if raw is None:
            return None
        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            # 数据损坏时优雅降级为新会话，记录警告但不中断处理
            logger.warning(f"Failed to load session {user_id}: {e}")
            return None

    async def save(self, session: Session) -> None:
        """将会话整体写入键值存储（全量覆盖）。"""
        await self.store.set(
            self._session_key(session.key),
            json.dumps(session.to_dict(), ensure_ascii=False),
        )

    async def get_history(self, user_id: str) -> list[dict[str, Any]]:
        """读取用户的对话历史（LLM 格式，最早的在前）。"""
        session = await self.get_or_create(user_id)
        return session.get_history(self.history_window)

    async def append_exchange(self, session: Session, user_text: str, reply: str) -> None:
        """追加一轮问答并在一次写入中持久化。调用方需持有该用户的锁。"""
        session.add_exchange(user_text, reply, window=self.history_window)
        await self.save(session)

    async def reset(self, user_id: str) -> Session:
        """
        清空用户的对话历史（/new 命令）。

        返回:
            清空后的会话对象
        """
        async with self.lock(user_id):
            session = await self.get_or_create(user_id)
            session.clear()
            await self.save(session)
            logger.info(f"Session {user_id} reset")
            return session
