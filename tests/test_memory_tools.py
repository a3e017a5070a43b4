from purrclaw.agent.tools.base import ToolContext
from purrclaw.agent.tools.memory import MemoryDeleteTool, MemoryListTool, MemoryReadTool, MemoryWriteTool


async def test_session_scope_is_isolated(store):
    alice = ToolContext(session_key="telegram:alice")
    bob = ToolContext(session_key="telegram:bob")

    await MemoryWriteTool(store).execute(alice, key="pet", value="cat")
    mine = await MemoryReadTool(store).execute(alice, key="pet")
    theirs = await MemoryReadTool(store).execute(bob, key="pet")

    assert mine.for_llm == "cat"
    assert "No memory found" in theirs.for_llm


async def test_global_scope_is_shared(store):
    alice = ToolContext(session_key="telegram:alice")
    bob = ToolContext(session_key="telegram:bob")

    await MemoryWriteTool(store).execute(alice, key="city", value="Paris", scope="global")
    result = await MemoryReadTool(store).execute(bob, key="city", scope="global")
    listing = await MemoryListTool(store).execute(bob, scope="global")

    assert result.for_llm == "Paris"
    assert "city = Paris" in listing.for_llm


async def test_protected_keys_are_denied(store):
    ctx = ToolContext(session_key="s1")

    result = await MemoryWriteTool(store).execute(ctx, key="system:prompt", value="x", scope="global")

    assert result.is_error
    assert "Access denied" in result.for_llm
    assert await store.get_memory("system:prompt") is None


async def test_delete_reports_missing_key(store):
    ctx = ToolContext(session_key="s1")
    await MemoryWriteTool(store).execute(ctx, key="todo", value="milk")

    deleted = await MemoryDeleteTool(store).execute(ctx, key="todo")
    missing = await MemoryDeleteTool(store).execute(ctx, key="todo")

    assert "Memory deleted" in deleted.for_llm
    assert "No memory found" in missing.for_llm
