"""
Agent 主循环模块 —— 每条消息一个任务的并发处理模型。

AgentLoop 从消息总线消费入站消息，为每条消息创建一个独立的 asyncio 任务：
- 不同用户的消息完全并发，互不阻塞
- 同一用户的会话修改由 SessionManager.lock() 串行化
- 每个任务都包在统一的失败边界（_handle）里：任何异常都只记录日志并回复
  一条兜底提示，绝不会让处理进程崩溃，也不会影响其他用户的会话或请求

【Java 开发者类比】
- run() 类似于 @KafkaListener 消费循环 + ExecutorService.submit()
- _handle() 类似于 @ControllerAdvice 全局异常处理
"""

import asyncio

from loguru import logger

from picobot.agent.router import CommandRouter
from picobot.bus.events import InboundMessage, OutboundMessage
from picobot.bus.queue import MessageBus
from picobot.utils.helpers import truncate_string

FALLBACK_TEXT = "Sorry, there was an error processing your message. Please try again later."


class AgentLoop:
    """
    Agent 主循环。

    属性:
        bus: 消息总线
        router: 命令路由器
        _tasks: 正在处理中的消息任务集合
    """

    def __init__(self, bus: MessageBus, router: CommandRouter):
        self.bus = bus
        self.router = router
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """
        启动主循环，持续消费入站消息。

        通过 asyncio.wait_for 设置1秒超时，定期检查 _running 标志。
        """
        self._running = True
        logger.info("Agent loop started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            task = asyncio.create_task(self._process(msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def stop(self) -> None:
        """停止消费新消息；正在处理的任务不受影响（见 drain()）。"""
        self._running = False
        logger.info("Agent loop stopping")

    async def drain(self) -> None:
        """等待所有正在处理的消息任务完成（关闭时调用）。"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def in_flight(self) -> int:
        """正在处理中的消息数量。"""
        return len(self._tasks)

    async def _process(self, msg: InboundMessage) -> None:
        """处理一条消息并发布全部回复。"""
        for response in await self._handle(msg):
            await self.bus.publish_outbound(response)

    async def _handle(self, msg: InboundMessage) -> list[OutboundMessage]:
        """
        消息处理边界：调用路由器，捕获所有异常并转换为兜底提示。

        参数:
            msg: 入站消息

        返回:
            出站消息列表
        """
        preview = truncate_string(msg.content, 80)
        logger.info(f"Processing message from {msg.channel}:{msg.sender_id}: {preview}")
        try:
            return await self.router.dispatch(msg)
        except Exception:
            logger.exception(f"Error processing message from {msg.sender_id}")
            return [OutboundMessage(channel=msg.channel, chat_id=msg.chat_id, content=FALLBACK_TEXT)]

    async def process_direct(
        self,
        content: str,
        sender_id: str,
        channel: str = "cli",
        chat_id: str = "direct",
    ) -> list[OutboundMessage]:
        """
        直接处理一条消息（不经过消息总线），用于 CLI 交互模式。

        参数:
            content: 消息内容
            sender_id: 发送者 ID（同样需要通过白名单）
            channel: 来源渠道标识
            chat_id: 聊天 ID

        返回:
            出站消息列表
        """
        msg = InboundMessage(channel=channel, sender_id=sender_id, chat_id=chat_id, content=content)
        return await self._handle(msg)
