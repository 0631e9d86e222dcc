"""
渠道管理器模块 - 渠道的装配、启停，以及出站回复的投递。

AgentLoop 只往总线的 outbound 队列里放 OutboundMessage，不关心它最终走哪个
平台；ChannelManager 在后台常驻一个投递任务，按 msg.channel 找到对应渠道发送。
某个渠道发送失败只影响这一条回复，投递任务继续运行。

【Java 开发者类比】
- register() 相当于往 Map<String, Channel> 里注册 Bean
- _dispatch_outbound() 相当于 @JmsListener 的消费循环
"""

from __future__ import annotations

import asyncio

from loguru import logger

from picobot.bus.events import OutboundMessage
from picobot.bus.queue import MessageBus
from picobot.channels.base import BaseChannel
from picobot.config.schema import Config


class ChannelManager:
    """
    渠道管理器。

    属性:
        config: 全局配置
        bus: 消息总线
        channels: 渠道名 → 渠道实例
    """

    def __init__(self, config: Config, bus: MessageBus):
        self.config = config
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._dispatch_task: asyncio.Task | None = None

        telegram = config.channels.telegram
        if telegram.enabled:
            # 延迟导入：未启用 Telegram 时不加载 python-telegram-bot
            from picobot.channels.telegram import TelegramChannel
            self.register(TelegramChannel(telegram, bus))

    def register(self, channel: BaseChannel) -> None:
        """按 channel.name 注册渠道，同名渠道会被替换。"""
        self.channels[channel.name] = channel
        logger.info(f"Channel registered: {channel.name}")

    @property
    def enabled_channels(self) -> list[str]:
        return list(self.channels)

    def get_status(self) -> dict[str, dict[str, bool]]:
        """各渠道的运行状态，供 CLI 展示。"""
        return {name: {"enabled": True, "running": ch.is_running} for name, ch in self.channels.items()}

    async def start_all(self) -> None:
        """
        启动出站投递任务和全部渠道，阻塞直到所有渠道退出。

        单个渠道启动失败只记录错误，其余渠道照常运行。
        """
        if not self.channels:
            logger.warning("No channels enabled, nothing to start")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_outbound())

        names = list(self.channels)
        results = await asyncio.gather(
            *(self.channels[name].start() for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Channel {name} exited with error: {result}")

    async def stop_all(self) -> None:
        """取消出站投递任务并依次停止各渠道。"""
        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        for name, channel in self.channels.items():
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"Failed to stop channel {name}: {e}")
            else:
                logger.info(f"Channel {name} stopped")

    async def _dispatch_outbound(self) -> None:
        """后台投递循环：逐条取出出站消息并交给对应渠道。"""
        logger.debug("Outbound dispatcher running")
        while True:
            msg = await self.bus.consume_outbound()
            await self._deliver(msg)

    async def _deliver(self, msg: OutboundMessage) -> None:
        channel = self.channels.get(msg.channel)
        if channel is None:
            logger.warning(f"Dropping reply for unknown channel {msg.channel}")
            return
        try:
            await channel.send(msg)
        except Exception as e:
            logger.error(f"Delivery to {msg.channel}:{msg.chat_id} failed: {e}")
