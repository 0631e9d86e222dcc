import pytest

from picobot.agent.auth import AuthorizationGate
from picobot.errors import AuthorizationError
from picobot.storage.kv import MemoryKeyValueStore, RedisKeyValueStore, create_store


async def test_memory_store_set_get_delete():
    store = MemoryKeyValueStore()
    await store.set("k", "v")
    assert await store.get("k") == "v"
    await store.delete("k")
    assert await store.get("k") is None
    await store.delete("k")


async def test_memory_store_without_ttl_never_expires():
    now = [0.0]
    store = MemoryKeyValueStore(clock=lambda: now[0])
    await store.set("k", "v")
    now[0] += 10**9
    assert await store.get("k") == "v"


@pytest.mark.parametrize("ttl", [0, -1])
async def test_memory_store_rejects_non_positive_ttl(ttl):
    store = MemoryKeyValueStore()
    with pytest.raises(ValueError):
        await store.set("k", "v", ttl_seconds=ttl)
    assert await store.get("k") is None


async def test_redis_store_rejects_zero_ttl_before_calling_redis():
    # 构造时不建立连接，校验在任何网络请求之前完成
    store = create_store("redis", "redis://localhost:6379/0")
    with pytest.raises(ValueError):
        await store.set("k", "v", ttl_seconds=0)


def test_create_store_backends():
    assert isinstance(create_store("memory"), MemoryKeyValueStore)
    redis_store = create_store("redis", "redis://localhost:6379/0", key_prefix="picobot:")
    assert isinstance(redis_store, RedisKeyValueStore)
    assert redis_store._key("session:1") == "picobot:session:1"
    with pytest.raises(ValueError):
        create_store("sqlite")


@pytest.mark.parametrize(
    "sender, allowed",
    [("123", True), (123, True), ("999|alice", True), ("999|mallory", False), ("999", False)],
)
def test_gate_membership(sender, allowed):
    gate = AuthorizationGate(["123", "alice"])
    assert gate.is_authorized(sender) is allowed


def test_empty_allow_list_denies_everyone():
    assert not AuthorizationGate([]).is_authorized("123")


def test_allow_all_opens_gate():
    assert AuthorizationGate([], allow_all=True).is_authorized("anyone")


def test_check_raises_for_strangers():
    with pytest.raises(AuthorizationError) as exc_info:
        AuthorizationGate(["123"]).check("999|mallory")
    assert exc_info.value.user_id == "999|mallory"
