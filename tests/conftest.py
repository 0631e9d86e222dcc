"""Shared fixtures: fake generation backends and a fully wired router over an in-memory store."""

import asyncio
from datetime import datetime
from typing import Any

import pytest

from picobot.agent.auth import AuthorizationGate
from picobot.agent.image_cache import ImageRequestCache
from picobot.agent.models import ModelRegistry
from picobot.agent.orchestrator import ResponseOrchestrator
from picobot.agent.router import CommandRouter
from picobot.bus.events import InboundMessage
from picobot.providers.base import ImageProvider, LLMProvider, LLMResponse
from picobot.session.manager import SessionManager
from picobot.storage.kv import MemoryKeyValueStore

ALLOWED_USER = "1001"
OTHER_USER = "1002"
STRANGER = "6666"
CATALOG = ["gpt-4o-mini", "gpt-4o", "gpt-3.5-turbo"]
SIZES = ["256x256", "512x512", "1024x1024"]


class FakeLLMProvider(LLMProvider):
    """Replies with a fixed text (or a function of the input) and records every call."""

    def __init__(self, reply: Any = "Hi there", error: Exception | None = None, delay: float = 0.0):
        super().__init__()
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, model=None, max_tokens=4096, temperature=0.7) -> LLMResponse:
        self.calls.append({"messages": [dict(m) for m in messages], "model": model})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        text = self.reply(messages[-1]["content"]) if callable(self.reply) else self.reply
        return LLMResponse(content=text)

    def get_default_model(self) -> str:
        return CATALOG[0]


class FakeImageProvider(ImageProvider):
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, size: str) -> str:
        self.calls.append((prompt, size))
        if self.error is not None:
            raise self.error
        return f"https://images.example/{len(self.calls)}.png"


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def sessions(store):
    return SessionManager(store)


@pytest.fixture
def models():
    return ModelRegistry(CATALOG, "gpt-4o-mini")


@pytest.fixture
def llm():
    return FakeLLMProvider()


@pytest.fixture
def images():
    return FakeImageProvider()


@pytest.fixture
def image_cache(store):
    return ImageRequestCache(store, ttl=3600)


@pytest.fixture
def orchestrator(llm, sessions, models):
    return ResponseOrchestrator(provider=llm, sessions=sessions, models=models)


@pytest.fixture
def router(sessions, models, image_cache, images, orchestrator):
    return CommandRouter(
        gate=AuthorizationGate([ALLOWED_USER, OTHER_USER, "carol"]),
        models=models,
        sessions=sessions,
        image_cache=image_cache,
        image_provider=images,
        orchestrator=orchestrator,
        valid_sizes=SIZES,
        default_size="1024x1024",
    )


def make_msg(content: str, sender: str = ALLOWED_USER, timestamp: datetime | None = None) -> InboundMessage:
    msg = InboundMessage(channel="telegram", sender_id=sender, chat_id=f"chat-{sender}", content=content)
    if timestamp is not None:
        msg.timestamp = timestamp
    return msg
