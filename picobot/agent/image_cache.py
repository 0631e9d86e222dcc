"""
图片请求缓存模块 - 避免同一请求重复调用图片生成后端。

缓存键由 (用户 ID, 请求时间戳) 组成，每次 /img 调用在处理时计算一次：
    img_req:<user_id>:<毫秒时间戳>

时间戳取处理时刻的本地时钟，而不是平台给出的消息时间（Telegram 的
message.date 只精确到秒，同一秒内的两次 /img 会撞键）。同一用户在同一毫秒内
再次请求时时间戳顺延 1 毫秒，保证每次调用的键都不同。

注意：键由请求时间戳而非提示词内容决定，因此两次提示词和尺寸完全相同的
/img 调用会得到不同的键，不会互相去重；只有用同一个键重放时才会命中缓存。
"""

from datetime import datetime

from loguru import logger

from picobot.storage.kv import KeyValueStore
from picobot.utils.helpers import epoch_millis

DEFAULT_TTL = 3600  # 1 小时


class ImageRequestCache:
    """
    图片请求缓存（请求键 → 图片引用，带过期时间）。

    属性:
        kv: 键值缓存服务（与会话存储共用）
        ttl: 写入时的过期时间（秒）
        _clock: 生成请求键使用的时钟，可注入以便测试
        _last_millis: 每个用户最近一次分配的毫秒时间戳
    """

    KEY_PREFIX = "img_req:"

    def __init__(self, store: KeyValueStore, ttl: int = DEFAULT_TTL, clock=datetime.now):
        self.kv = store
        self.ttl = ttl
        self._clock = clock
        self._last_millis: dict[str, int] = {}

    @classmethod
    def request_key(cls, user_id: str, requested_at: datetime) -> str:
        """按给定时刻计算请求键。"""
        return f"{cls.KEY_PREFIX}{user_id}:{epoch_millis(requested_at)}"

    def next_key(self, user_id: str) -> str:
        """为一次新的 /img 调用分配请求键（同一用户严格递增）。"""
        millis = epoch_millis(self._clock())
        last = self._last_millis.get(user_id)
        if last is not None and millis <= last:
            millis = last + 1
        self._last_millis[user_id] = millis
        return f"{self.KEY_PREFIX}{user_id}:{millis}"

    async def lookup(self, key: str) -> str | None:
        """查找已生成的图片引用，不存在或已过期时返回 None。"""
        reference = await self.kv.get(key)
        if reference:
            logger.debug(f"Image cache hit: {key}")
        return reference or None

    async def store(self, key: str, reference: str, ttl: int | None = None) -> None:
        """写入图片引用（覆盖同键的旧值）。"""
        await self.kv.set(key, reference, ttl_seconds=ttl if ttl is not None else self.ttl)
