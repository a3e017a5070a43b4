import asyncio


async def test_history_round_trip_keeps_tool_linkage(store):
    calls = [{"id": "c1", "type": "function", "function": {"name": "exec", "arguments": "{}"}}]
    await store.add_message("s1", "user", "hi")
    await store.add_message("s1", "assistant", "", tool_calls=calls)
    await store.add_message("s1", "tool", "done", tool_call_id="c1")

    history = await store.get_session_history("s1")

    assert [m["role"] for m in history] == ["user", "assistant", "tool"]
    assert history[1]["tool_calls"] == calls
    assert history[2]["tool_call_id"] == "c1"
    assert "tool_calls" not in history[0]


async def test_first_access_creates_empty_session(store):
    assert await store.get_session_history("new") == []
    assert await store.get_session_summary("new") == ""
    keys = [s["session_key"] for s in await store.list_sessions()]
    assert "new" in keys


async def test_truncate_keeps_newest(store):
    for i in range(10):
        await store.add_message("s1", "user", f"m{i}")

    await store.truncate_history("s1", 4)

    history = await store.get_session_history("s1")
    assert [m["content"] for m in history] == ["m6", "m7", "m8", "m9"]


async def test_set_history_replaces_everything(store):
    await store.add_message("s1", "user", "old")

    await store.set_history("s1", [{"role": "user", "content": "new"}])

    assert [m["content"] for m in await store.get_session_history("s1")] == ["new"]


async def test_summary_and_updated_at(store):
    await store.add_message("s1", "user", "hi")
    before = next(s for s in await store.list_sessions() if s["session_key"] == "s1")["updated_at"]
    await asyncio.sleep(0.01)

    await store.set_session_summary("s1", "talked about cats")

    after = next(s for s in await store.list_sessions() if s["session_key"] == "s1")["updated_at"]
    assert await store.get_session_summary("s1") == "talked about cats"
    assert after > before


async def test_sessions_are_isolated(store):
    await store.add_message("a", "user", "for a")
    await store.add_message("b", "user", "for b")

    assert [m["content"] for m in await store.get_session_history("a")] == ["for a"]


async def test_memory_and_state(store):
    await store.set_memory("user_name", "Sam")
    await store.set_memory("user_name", "Alex")
    await store.set_state("reminders:v1", "[]")

    assert await store.get_memory("user_name") == "Alex"
    assert [r["key"] for r in await store.list_memory()] == ["user_name"]
    assert await store.delete_memory("user_name") == 1
    assert await store.delete_memory("user_name") == 0
    assert await store.get_memory("user_name") is None
    assert await store.get_state("reminders:v1") == "[]"
    assert await store.get_state("missing") is None
