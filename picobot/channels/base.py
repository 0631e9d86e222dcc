"""
渠道基类模块 - 定义所有消息渠道的统一接口。

【核心抽象方法】
- start(): 启动渠道，开始监听消息（长期运行的异步任务）
- stop(): 停止渠道，释放资源
- send(): 向渠道发送出站消息（文本或图片）

【公共能力】
- _handle_message(): 消息标准化与转发（构造 InboundMessage → 发布到总线）

渠道层不做鉴权：所有消息都会转发到总线，由 CommandRouter 统一鉴权，
这样未授权用户也能收到拒绝提示。

【Java 开发者类比】
- BaseChannel 相当于 Java 的 abstract class
- _handle_message() 相当于 Template Method 模式中的模板方法
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from picobot.bus.events import InboundMessage, OutboundMessage
from picobot.bus.queue import MessageBus


class BaseChannel(ABC):
    """
    消息渠道抽象基类。

    属性:
        name: 渠道标识名，用于出站消息路由
        config: 渠道特定的配置对象
        bus: 消息总线实例
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """启动渠道并开始监听消息（长期运行）。"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止渠道并清理资源。"""
        pass

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        通过该渠道发送出站消息。

        msg.is_photo 为 True 时以图片消息发送（media[0] 为图片引用，content 为说明）。
        """
        pass

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        timestamp: datetime | None = None,
        metadata: dict[str, Any] | None = None
    ) -> None:
        """
        将平台消息标准化为 InboundMessage 并发布到消息总线。

        参数:
            sender_id: 发送者标识符
            chat_id: 聊天标识符
            content: 消息文本（非文本消息传空字符串）
            timestamp: 平台给出的消息时间，缺省为当前时间
            metadata: 渠道特定元数据
        """
        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            metadata=metadata or {}
        )
        if timestamp is not None:
            msg.timestamp = timestamp
        await self.bus.publish_inbound(msg)

    @property
    def is_running(self) -> bool:
        """渠道是否正在运行。"""
        return self._running
