"""
Telegram 渠道 - python-telegram-bot 长轮询。

渠道层不解析命令：文本、斜杠命令、非文本消息一律以 InboundMessage 形式转发，
鉴权与分发都在 CommandRouter 里完成。回复方向上，文本按 Markdown → Telegram HTML
转换后发送（解析失败回退纯文本），带 media 的出站消息走 send_photo。

请求处理期间持续发送 chat action：自由文本显示 "typing"，/img 显示 "upload_photo"。
"""

from __future__ import annotations

import asyncio
import html
import re

from loguru import logger
from telegram import BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters
from telegram.request import HTTPXRequest

from picobot.agent.router import IMAGE_ERROR_TEXT
from picobot.bus.events import OutboundMessage
from picobot.bus.queue import MessageBus
from picobot.channels.base import BaseChannel
from picobot.config.schema import TelegramConfig

_CODE_BLOCK = re.compile(r"```[\w]*\n?([\s\S]*?)```")
_INLINE_CODE = re.compile(r"`([^`]+)`")


def _markdown_to_telegram_html(text: str) -> str:
    """
    将模型回复中常见的 Markdown 转换为 Telegram 支持的 HTML 子集。

    Telegram 只认 <b>、<i>、<s>、<code>、<pre>、<a>，标题和引用降级为纯文本。
    代码先替换为占位符，避免其中的 * _ 等符号被误转换。
    """
    if not text:
        return ""

    blocks: list[str] = []

    def _stash(fmt: str):
        def repl(m: re.Match) -> str:
            blocks.append(fmt.format(html.escape(m.group(1), quote=False)))
            return f"\x00{len(blocks) - 1}\x00"
        return repl

    text = _CODE_BLOCK.sub(_stash("<pre><code>{}</code></pre>"), text)
    text = _INLINE_CODE.sub(_stash("<code>{}</code>"), text)

    text = re.sub(r"^(?:#{1,6}|>)\s*(.*)$", r"\1", text, flags=re.MULTILINE)
    text = html.escape(text, quote=False)
    text = re.sub(r"\[([^\]]+)\]\(([^)]+)\)", r'<a href="\2">\1</a>', text)
    text = re.sub(r"\*\*(.+?)\*\*|__(.+?)__", lambda m: f"<b>{m.group(1) or m.group(2)}</b>", text)
    text = re.sub(r"(?<![a-zA-Z0-9])_([^_\n]+)_(?![a-zA-Z0-9])", r"<i>\1</i>", text)
    text = re.sub(r"~~(.+?)~~", r"<s>\1</s>", text)
    text = re.sub(r"^[-*]\s+", "• ", text, flags=re.MULTILINE)

    return re.sub(r"\x00(\d+)\x00", lambda m: blocks[int(m.group(1))], text)


class TelegramChannel(BaseChannel):
    """
    Telegram 渠道。

    属性:
        config: Telegram 渠道配置（token、代理）
        _app: python-telegram-bot 的 Application 实例
        _action_tasks: 聊天ID → 状态指示器任务
    """

    name = "telegram"

    # 注册到 Telegram 命令菜单的命令列表
    BOT_COMMANDS = [
        BotCommand("start", "Show the current model"),
        BotCommand("new", "Start a new conversation"),
        BotCommand("history", "Show your conversation history"),
        BotCommand("help", "Show available commands"),
        BotCommand("switchmodel", "Switch the generation model"),
        BotCommand("img", "Generate an image: /img <prompt> [size]"),
    ]

    def __init__(self, config: TelegramConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: TelegramConfig = config
        self._app: Application | None = None
        self._action_tasks: dict[str, asyncio.Task] = {}

    async def start(self) -> None:
        """连接 Bot API、注册命令菜单并开始长轮询，阻塞直到 stop()。"""
        if not self.config.token:
            logger.error("Telegram bot token not configured")
            return

        self._running = True

        # 较大的连接池避免长时间运行时的池超时
        req = HTTPXRequest(connection_pool_size=16, pool_timeout=5.0, connect_timeout=30.0, read_timeout=30.0)
        builder = Application.builder().token(self.config.token).request(req).get_updates_request(req)
        if self.config.proxy:
            builder = builder.proxy(self.config.proxy).get_updates_proxy(self.config.proxy)
        self._app = builder.build()
        self._app.add_error_handler(self._on_error)

        # 命令不在渠道层处理，全部作为普通消息转发给 CommandRouter
        self._app.add_handler(MessageHandler(filters.ALL, self._on_message))

        logger.info("Telegram long polling starting")

        await self._app.initialize()
        await self._app.start()

        bot_info = await self._app.bot.get_me()
        logger.info(f"Connected to Telegram as @{bot_info.username}")

        try:
            await self._app.bot.set_my_commands(self.BOT_COMMANDS)
            logger.debug(f"Registered {len(self.BOT_COMMANDS)} bot commands")
        except Exception as e:
            logger.warning(f"Could not set Telegram command menu: {e}")

        await self._app.updater.start_polling(
            allowed_updates=["message"],
            drop_pending_updates=True  # 启动时忽略积压的旧消息
        )

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """停止 Telegram 机器人：取消状态指示器 → 停止轮询 → 停止应用 → 释放资源。"""
        self._running = False

        for chat_id in list(self._action_tasks):
            self._stop_action(chat_id)

        if self._app:
            logger.info("Telegram long polling stopping")
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None

    async def send(self, msg: OutboundMessage) -> None:
        """
        发送一条出站消息。

        图片消息使用 send_photo；文本消息先尝试 HTML，失败则回退为纯文本。
        """
        if not self._app:
            logger.warning(f"Telegram channel is not running, dropping reply to {msg.chat_id}")
            return

        self._stop_action(msg.chat_id)

        try:
            chat_id = int(msg.chat_id)
        except ValueError:
            logger.error(f"Invalid chat_id: {msg.chat_id}")
            return

        if msg.is_photo:
            try:
                await self._app.bot.send_photo(chat_id=chat_id, photo=msg.media[0], caption=msg.content or None)
                logger.debug(f"Photo sent to {chat_id}")
            except TelegramError as e:
                # 图片已生成但发送失败（如链接无法抓取），用户仍需收到回复
                logger.error(f"Failed to send photo to {chat_id}: {e}")
                await self._app.bot.send_message(chat_id=chat_id, text=f"{IMAGE_ERROR_TEXT} {e}")
            return

        try:
            await self._app.bot.send_message(
                chat_id=chat_id,
                text=_markdown_to_telegram_html(msg.content),
                parse_mode="HTML"
            )
        except Exception as e:
            logger.warning(f"Telegram rejected HTML reply, resending as plain text: {e}")
            await self._app.bot.send_message(chat_id=chat_id, text=msg.content)

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理所有消息（文本、命令、非文本）。

        sender_id 使用 "数字ID|用户名" 形式，白名单可以填写任意一段；
        非文本消息的 content 为空字符串，由路由器记录后忽略。
        """
        if not update.message or not update.effective_user:
            return

        message = update.message
        user = update.effective_user

        sender_id = str(user.id)
        if user.username:
            sender_id = f"{sender_id}|{user.username}"

        content = message.text or ""
        str_chat_id = str(message.chat_id)

        logger.debug(f"Telegram message from {sender_id}: {content[:50]}")

        if content.split(" ", 1)[0].split("@", 1)[0] == "/img":
            self._start_action(str_chat_id, "upload_photo")
        elif content and not content.startswith("/"):
            self._start_action(str_chat_id, "typing")

        await self._handle_message(
            sender_id=sender_id,
            chat_id=str_chat_id,
            content=content,
            timestamp=message.date,
            metadata={
                "message_id": message.message_id,
                "username": user.username,
                "is_group": message.chat.type != "private"
            }
        )

    def _start_action(self, chat_id: str, action: str) -> None:
        """启动状态指示器（每 4 秒发送一次 chat action）。"""
        self._stop_action(chat_id)
        self._action_tasks[chat_id] = asyncio.create_task(self._action_loop(chat_id, action))

    def _stop_action(self, chat_id: str) -> None:
        task = self._action_tasks.pop(chat_id, None)
        if task and not task.done():
            task.cancel()

    async def _action_loop(self, chat_id: str, action: str) -> None:
        """Telegram 的 chat action 5 秒后自动消失，4 秒间隔确保连续显示。"""
        try:
            while self._app:
                await self._app.bot.send_chat_action(chat_id=int(chat_id), action=action)
                await asyncio.sleep(4)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Chat action stopped for {chat_id}: {e}")

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        """全局错误处理器 - 记录轮询/处理器中的异常。"""
        logger.error(f"Unhandled Telegram update error: {context.error}")
