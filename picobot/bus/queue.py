"""
消息总线 - 渠道与 AgentLoop 之间的两条异步队列。

    TelegramChannel ──publish_inbound──▶ [inbound] ──consume_inbound──▶ AgentLoop
    ChannelManager ◀──consume_outbound── [outbound] ◀──publish_outbound── AgentLoop

队列不设上限；背压由 Telegram 长轮询的拉取节奏自然形成。

【Java 开发者类比】
- 两个 LinkedBlockingQueue，put()/take() 换成 await
"""

import asyncio

from picobot.bus.events import InboundMessage, OutboundMessage


class MessageBus:
    """入站、出站各一条 asyncio.Queue。"""

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()

    async def publish_inbound(self, msg: InboundMessage) -> None:
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """取下一条入站消息，队列空时挂起等待。"""
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        """取下一条出站消息，队列空时挂起等待。"""
        return await self.outbound.get()
