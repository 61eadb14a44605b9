"""Tests for the in-process key-value store."""

from conduit.storage.kv import KeyValueStore, MemoryKeyValueStore


def test_satisfies_protocol(kv):
    assert isinstance(kv, KeyValueStore)


# -- Values ------------------------------------------------------------------


async def test_get_missing_returns_none(kv):
    assert await kv.get("nope") is None


async def test_set_and_get(kv):
    await kv.set("k", "v")
    assert await kv.get("k") == "v"
    assert kv.ttl("k") is None


async def test_value_expires(kv, clock):
    await kv.set("k", "v", ttl=10)
    clock.advance(9)
    assert await kv.get("k") == "v"
    clock.advance(1)
    assert await kv.get("k") is None


async def test_set_without_ttl_clears_expiry(kv, clock):
    await kv.set("k", "v", ttl=10)
    await kv.set("k", "v2")
    clock.advance(100)
    assert await kv.get("k") == "v2"


# -- Lists -------------------------------------------------------------------


async def test_list_push_is_newest_first(kv):
    for item in ("a", "b", "c"):
        await kv.list_push("l", item, max_len=10)
    assert await kv.list_range("l", 0, -1) == ["c", "b", "a"]


async def test_list_push_trims_oldest(kv):
    for i in range(5):
        length = await kv.list_push("l", str(i), max_len=3)
    assert length == 3
    assert await kv.list_range("l", 0, -1) == ["4", "3", "2"]


async def test_list_range_is_inclusive(kv):
    for i in range(5):
        await kv.list_push("l", str(i), max_len=10)
    assert await kv.list_range("l", 0, 1) == ["4", "3"]
    assert await kv.list_range("l", 1, 2) == ["3", "2"]


async def test_list_push_refreshes_ttl(kv, clock):
    await kv.list_push("l", "a", max_len=10, ttl=10)
    clock.advance(8)
    await kv.list_push("l", "b", max_len=10, ttl=10)
    clock.advance(8)
    assert await kv.list_len("l") == 2
    clock.advance(2)
    assert await kv.list_len("l") == 0


async def test_list_len_missing(kv):
    assert await kv.list_len("missing") == 0


# -- Streams -----------------------------------------------------------------


async def test_stream_add_returns_distinct_ids(kv):
    first = await kv.stream_add("s", {"a": "1"})
    second = await kv.stream_add("s", {"a": "2"})
    assert first != second
    assert [fields["a"] for _, fields in kv.stream_entries("s")] == ["1", "2"]


async def test_stream_maxlen_keeps_newest(kv):
    for i in range(5):
        await kv.stream_add("s", {"i": str(i)}, maxlen=2)
    assert [fields["i"] for _, fields in kv.stream_entries("s")] == ["3", "4"]


async def test_default_clock_works():
    store = MemoryKeyValueStore()
    await store.set("k", "v", ttl=60)
    assert await store.get("k") == "v"
    await store.close()
