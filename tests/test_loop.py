import asyncio

from conftest import ALLOWED_USER, OTHER_USER, STRANGER, FakeLLMProvider, make_msg
from picobot.agent.loop import FALLBACK_TEXT, AgentLoop
from picobot.agent.orchestrator import ResponseOrchestrator
from picobot.agent.router import REJECTION_TEXT
from picobot.bus.queue import MessageBus
from picobot.errors import PersistenceError, UpstreamError, UpstreamErrorKind


class BlockingLLMProvider(FakeLLMProvider):
    """Holds every call for "slow" until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def chat(self, messages, model=None, max_tokens=4096, temperature=0.7):
        if messages[-1]["content"] == "slow":
            await self.release.wait()
        return await super().chat(messages, model, max_tokens, temperature)


async def _next_outbound(bus: MessageBus, timeout: float = 1.0):
    return await asyncio.wait_for(bus.consume_outbound(), timeout=timeout)


async def test_text_backend_failure_becomes_fallback(router, llm, sessions):
    llm.error = UpstreamError(UpstreamErrorKind.API, "model overloaded")
    loop = AgentLoop(bus=MessageBus(), router=router)

    replies = await loop.process_direct("Hello", sender_id=ALLOWED_USER)

    assert [r.content for r in replies] == [FALLBACK_TEXT]
    assert await sessions.get_history(ALLOWED_USER) == []


async def test_persistence_failure_becomes_fallback(router, store):
    async def broken_get(key):
        raise PersistenceError("get", key, "connection refused")

    store.get = broken_get
    loop = AgentLoop(bus=MessageBus(), router=router)

    replies = await loop.process_direct("/start", sender_id=ALLOWED_USER)
    assert [r.content for r in replies] == [FALLBACK_TEXT]


async def test_process_direct_goes_through_authorization(router):
    loop = AgentLoop(bus=MessageBus(), router=router)
    replies = await loop.process_direct("Hello", sender_id=STRANGER)
    assert replies[0].content == REJECTION_TEXT
    assert replies[0].channel == "cli"


async def test_run_publishes_replies_to_bus(router):
    bus = MessageBus()
    loop = AgentLoop(bus=bus, router=router)
    runner = asyncio.create_task(loop.run())
    try:
        await bus.publish_inbound(make_msg("Hello"))
        reply = await _next_outbound(bus)
        assert reply.content == "Hi there"
        assert reply.chat_id == f"chat-{ALLOWED_USER}"
    finally:
        loop.stop()
        await runner
        await loop.drain()


async def test_slow_user_does_not_block_others(sessions, models, router):
    llm = BlockingLLMProvider()
    router.orchestrator = ResponseOrchestrator(provider=llm, sessions=sessions, models=models)
    bus = MessageBus()
    loop = AgentLoop(bus=bus, router=router)
    runner = asyncio.create_task(loop.run())
    try:
        await bus.publish_inbound(make_msg("slow", sender=ALLOWED_USER))
        await bus.publish_inbound(make_msg("fast", sender=OTHER_USER))

        first = await _next_outbound(bus)
        assert first.chat_id == f"chat-{OTHER_USER}"

        llm.release.set()
        second = await _next_outbound(bus)
        assert second.chat_id == f"chat-{ALLOWED_USER}"
    finally:
        loop.stop()
        await runner
        await loop.drain()


async def test_failure_for_one_user_does_not_affect_another(sessions, models, router):
    def reply(text):
        if text == "explode":
            raise RuntimeError("unexpected")
        return "ok"

    router.orchestrator = ResponseOrchestrator(
        provider=FakeLLMProvider(reply=reply), sessions=sessions, models=models
    )
    loop = AgentLoop(bus=MessageBus(), router=router)

    failed, ok = await asyncio.gather(
        loop.process_direct("explode", sender_id=ALLOWED_USER),
        loop.process_direct("hi", sender_id=OTHER_USER),
    )

    assert failed[0].content == FALLBACK_TEXT
    assert ok[0].content == "ok"
    assert await sessions.get_history(ALLOWED_USER) == []
    assert len(await sessions.get_history(OTHER_USER)) == 2


async def test_unknown_command_produces_no_reply(router):
    loop = AgentLoop(bus=MessageBus(), router=router)
    assert await loop.process_direct("/bogus", sender_id=ALLOWED_USER) == []
