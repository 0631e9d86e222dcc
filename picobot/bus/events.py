"""
消息事件类型定义模块 - 定义消息总线中传输的数据结构。

本模块定义了两个核心数据类：
- InboundMessage：入站消息（从渠道到 Agent）
- OutboundMessage：出站消息（从 Agent 到渠道）

所有渠道和 Agent 都通过这两个统一的数据结构进行通信，实现了渠道与 Agent 的解耦。

【设计要点】
- user_id 属性从 sender_id 中取出稳定的用户标识（Telegram 的数字 ID），
  会话、模型选择、图片请求键都以它为键
- 出站消息的 media 非空时表示图片消息：media[0] 是图片引用（URL），content 是图片说明
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class InboundMessage:
    """
    入站消息 - 从聊天渠道接收到的用户消息。

    属性:
        channel: 消息来源渠道标识（如 'telegram', 'cli'）
        sender_id: 发送者标识（Telegram 为 "数字ID|用户名" 形式的复合 ID）
        chat_id: 聊天唯一标识（回复发往这里）
        content: 消息文本内容（非文本消息为空字符串）
        timestamp: 消息时间戳，默认为当前时间
        media: 附带的媒体文件列表
        metadata: 渠道特有的附加数据
    """

    channel: str
    sender_id: str
    chat_id: str
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        """
        稳定的用户标识。

        复合 sender_id（"123456|alice"）取第一段，用户改名不影响会话。
        """
        return self.sender_id.split("|", 1)[0]


@dataclass
class OutboundMessage:
    """
    出站消息 - Agent 要发送到聊天渠道的回复。

    属性:
        channel: 目标渠道标识
        chat_id: 目标聊天 ID
        content: 回复文本（图片消息时为图片说明）
        reply_to: 可选的引用消息 ID
        media: 图片引用列表，非空时渠道以图片消息发送
        metadata: 渠道特有的附加数据（如 parse_mode）
    """

    channel: str
    chat_id: str
    content: str
    reply_to: str | None = None
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_photo(self) -> bool:
        """是否为图片消息。"""
        return bool(self.media)
