import asyncio
import json

import pytest

from conftest import ALLOWED_USER, OTHER_USER, FakeLLMProvider
from picobot.agent.models import ModelRegistry
from picobot.agent.orchestrator import ResponseOrchestrator
from picobot.errors import InvalidModelError, UpstreamError, UpstreamErrorKind
from picobot.session.manager import Session, SessionManager


async def test_new_session_is_lazy(sessions, store):
    session = await sessions.get_or_create(ALLOWED_USER)
    assert session.messages == []
    assert store._data == {}


async def test_exchange_is_persisted_in_one_write(sessions, store):
    session = await sessions.get_or_create(ALLOWED_USER)
    await sessions.append_exchange(session, "Hello", "Hi there")

    raw = store._data[f"session:{ALLOWED_USER}"][0]
    saved = json.loads(raw)
    assert saved["user_id"] == ALLOWED_USER
    assert [(m["role"], m["content"]) for m in saved["messages"]] == [
        ("user", "Hello"),
        ("assistant", "Hi there"),
    ]
    assert await sessions.get_history(ALLOWED_USER) == [
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi there"},
    ]


async def test_history_is_passed_oldest_first(orchestrator, llm):
    await orchestrator.respond(ALLOWED_USER, "first")
    await orchestrator.respond(ALLOWED_USER, "second")

    assert llm.calls[1]["messages"] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "Hi there"},
        {"role": "user", "content": "second"},
    ]


async def test_backend_failure_leaves_history_unchanged(sessions, models, store):
    llm = FakeLLMProvider(error=UpstreamError(UpstreamErrorKind.NO_RESPONSE, "timed out"))
    orchestrator = ResponseOrchestrator(provider=llm, sessions=sessions, models=models)

    with pytest.raises(UpstreamError):
        await orchestrator.respond(ALLOWED_USER, "Hello")

    assert await sessions.get_history(ALLOWED_USER) == []
    assert store._data == {}


async def test_system_prompt_precedes_history(sessions, models, llm):
    orchestrator = ResponseOrchestrator(provider=llm, sessions=sessions, models=models, system_prompt="Be brief.")
    await orchestrator.respond(ALLOWED_USER, "Hello")
    assert llm.calls[0]["messages"][0] == {"role": "system", "content": "Be brief."}


async def test_history_window_trims_whole_exchanges(store, models, llm):
    sessions = SessionManager(store, history_window=4)
    orchestrator = ResponseOrchestrator(provider=llm, sessions=sessions, models=models)

    for text in ("one", "two", "three"):
        await orchestrator.respond(ALLOWED_USER, text)

    history = await sessions.get_history(ALLOWED_USER)
    assert [m["content"] for m in history] == ["two", "Hi there", "three", "Hi there"]
    assert history[0]["role"] == "user"


def test_odd_window_keeps_pairs():
    session = Session(key="1")
    for i in range(3):
        session.add_exchange(f"q{i}", f"a{i}", window=3)
    assert [m["content"] for m in session.messages] == ["q2", "a2"]


def test_window_of_one_still_bounds_history():
    session = Session(key="1")
    for i in range(3):
        session.add_exchange(f"q{i}", f"a{i}", window=1)
    assert [m["content"] for m in session.messages] == ["q2", "a2"]
    assert session.get_history(max_messages=1) == []


@pytest.mark.parametrize("window", [0, 1, -4])
def test_manager_rejects_window_smaller_than_one_exchange(store, window):
    with pytest.raises(ValueError):
        SessionManager(store, history_window=window)


async def test_same_user_messages_are_serialized(sessions, models):
    llm = FakeLLMProvider(reply=lambda text: f"re: {text}", delay=0.05)
    orchestrator = ResponseOrchestrator(provider=llm, sessions=sessions, models=models)

    await asyncio.gather(
        orchestrator.respond(ALLOWED_USER, "first"),
        orchestrator.respond(ALLOWED_USER, "second"),
    )

    # 第二次调用必须看到第一次写入的完整问答
    assert len(llm.calls[1]["messages"]) == 3
    history = await sessions.get_history(ALLOWED_USER)
    assert [m["content"] for m in history] == ["first", "re: first", "second", "re: second"]


async def test_users_do_not_share_history(orchestrator, sessions):
    await orchestrator.respond(ALLOWED_USER, "mine")
    assert await sessions.get_history(OTHER_USER) == []


async def test_corrupt_session_falls_back_to_fresh(sessions, store):
    await store.set(f"session:{ALLOWED_USER}", "{not json")
    session = await sessions.get_or_create(ALLOWED_USER)
    assert session.messages == []
    assert session.key == ALLOWED_USER


async def test_reset_keeps_selected_model(sessions, models):
    session = await sessions.get_or_create(ALLOWED_USER)
    models.switch_model(session, "gpt-4o")
    session.add_exchange("Hello", "Hi there")
    await sessions.save(session)

    reset = await sessions.reset(ALLOWED_USER)

    assert reset.messages == []
    assert models.current_model(await sessions.get_or_create(ALLOWED_USER)) == "gpt-4o"


def test_registry_rejects_unknown_model():
    registry = ModelRegistry(["gpt-4o-mini", "gpt-4o"], "gpt-4o-mini")
    session = Session(key="1")
    assert registry.list_models() == frozenset({"gpt-4o-mini", "gpt-4o"})
    session.add_exchange("Hello", "Hi there")

    with pytest.raises(InvalidModelError):
        registry.switch_model(session, "claude-9")

    assert session.model is None
    assert len(session.messages) == 2


def test_registry_falls_back_when_stored_model_left_catalog():
    registry = ModelRegistry(["gpt-4o-mini"], "gpt-4o-mini")
    assert registry.current_model(Session(key="1", model="gpt-4-turbo")) == "gpt-4o-mini"


def test_registry_requires_default_in_catalog():
    with pytest.raises(ValueError):
        ModelRegistry(["gpt-4o"], "gpt-4o-mini")


def test_session_dict_round_trip_keeps_model():
    session = Session(key="42", model="gpt-4o")
    session.add_exchange("Hello", "Hi there")
    restored = Session.from_dict(json.loads(json.dumps(session.to_dict())))
    assert restored.model == "gpt-4o"
    assert restored.get_history() == session.get_history()
