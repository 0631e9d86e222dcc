import asyncio
from datetime import datetime
from types import SimpleNamespace

from telegram.error import TelegramError

from picobot.agent.router import IMAGE_ERROR_TEXT

from picobot.bus.events import InboundMessage, OutboundMessage
from picobot.bus.queue import MessageBus
from picobot.channels.base import BaseChannel
from picobot.channels.manager import ChannelManager
from picobot.channels.telegram import TelegramChannel, _markdown_to_telegram_html
from picobot.config.schema import Config, TelegramConfig


class RecordingChannel(BaseChannel):
    name = "telegram"

    def __init__(self, bus: MessageBus, fail: bool = False):
        super().__init__(None, bus)
        self.sent: list[OutboundMessage] = []
        self.fail = fail

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def send(self, msg: OutboundMessage) -> None:
        if self.fail:
            raise RuntimeError("telegram is down")
        self.sent.append(msg)


def test_markdown_to_telegram_html():
    html = _markdown_to_telegram_html("**bold** and `a<b>` and [link](https://x.example)")
    assert html == '<b>bold</b> and <code>a&lt;b&gt;</code> and <a href="https://x.example">link</a>'


def test_code_block_is_escaped_not_formatted():
    assert _markdown_to_telegram_html("```\n**x** < y\n```") == "<pre><code>**x** &lt; y\n</code></pre>"


def test_inbound_user_id_drops_username():
    msg = InboundMessage(channel="telegram", sender_id="42|alice", chat_id="42", content="hi")
    assert msg.user_id == "42"


async def test_handle_message_publishes_with_platform_timestamp():
    bus = MessageBus()
    channel = RecordingChannel(bus)
    sent_at = datetime(2024, 5, 1, 12, 0, 0)

    await channel._handle_message("42|alice", 42, "/img a cat", timestamp=sent_at)

    msg = await bus.consume_inbound()
    assert msg.chat_id == "42"
    assert msg.timestamp == sent_at
    assert msg.content == "/img a cat"


async def test_manager_routes_outbound_and_survives_send_errors():
    bus = MessageBus()
    manager = ChannelManager(Config(), bus)
    broken = RecordingChannel(bus, fail=True)
    manager.channels["broken"] = broken
    healthy = RecordingChannel(bus)
    manager.channels["telegram"] = healthy

    dispatcher = asyncio.create_task(manager._dispatch_outbound())
    try:
        await bus.publish_outbound(OutboundMessage(channel="broken", chat_id="1", content="lost"))
        await bus.publish_outbound(OutboundMessage(channel="telegram", chat_id="2", content="delivered"))
        for _ in range(50):
            if healthy.sent:
                break
            await asyncio.sleep(0.01)
    finally:
        dispatcher.cancel()

    assert [m.content for m in healthy.sent] == ["delivered"]


def test_manager_without_enabled_channels():
    manager = ChannelManager(Config(), MessageBus())
    assert manager.enabled_channels == []
    assert manager.get_status() == {}


class FakeTelegramBot:
    def __init__(self, photo_error: Exception | None = None):
        self.photo_error = photo_error
        self.photos: list[dict] = []
        self.messages: list[dict] = []

    async def send_photo(self, **kwargs):
        if self.photo_error:
            raise self.photo_error
        self.photos.append(kwargs)

    async def send_message(self, **kwargs):
        self.messages.append(kwargs)


def _telegram_with(bot: FakeTelegramBot) -> TelegramChannel:
    channel = TelegramChannel(TelegramConfig(token="123:abc"), MessageBus())
    channel._app = SimpleNamespace(bot=bot)
    return channel


async def test_telegram_sends_photo_with_caption():
    bot = FakeTelegramBot()
    channel = _telegram_with(bot)

    await channel.send(OutboundMessage(
        channel="telegram", chat_id="42", content="a cat", media=["https://images.example/1.png"],
    ))

    assert bot.photos == [{"chat_id": 42, "photo": "https://images.example/1.png", "caption": "a cat"}]
    assert bot.messages == []


async def test_telegram_photo_failure_is_reported_as_text():
    bot = FakeTelegramBot(photo_error=TelegramError("Wrong file identifier/http url specified"))
    channel = _telegram_with(bot)

    await channel.send(OutboundMessage(
        channel="telegram", chat_id="42", content="a cat", media=["https://images.example/1.png"],
    ))

    assert bot.photos == []
    assert len(bot.messages) == 1
    assert bot.messages[0]["chat_id"] == 42
    assert bot.messages[0]["text"].startswith(IMAGE_ERROR_TEXT)
    assert "Wrong file identifier" in bot.messages[0]["text"]
