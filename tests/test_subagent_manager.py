import asyncio

import pytest

from purrclaw.agent.subagent import SubagentError, SubagentManager, SubagentStatus, child_session_key
from purrclaw.agent.tools.base import ToolContext
from purrclaw.agent.tools.spawn import SpawnTool, SubagentListTool, SubagentResultTool, SubagentStatusTool


class GatedRunner:
    """Runner whose tasks finish only when released."""

    def __init__(self):
        self.gates: dict[str, asyncio.Event] = {}
        self.seen = []

    async def __call__(self, task):
        self.seen.append(task)
        gate = self.gates.setdefault(task.id, asyncio.Event())
        await gate.wait()
        return f"done: {task.task}"

    def release(self, task_id: str) -> None:
        self.gates.setdefault(task_id, asyncio.Event()).set()


async def _settle():
    await asyncio.sleep(0.02)


async def test_spawn_without_runner_is_rejected():
    manager = SubagentManager()

    with pytest.raises(SubagentError, match="runner is not configured"):
        await manager.spawn("task", session_key="s1")


@pytest.mark.parametrize("task", ["", "   ", "x" * 9000])
async def test_spawn_validates_task_text(task):
    manager = SubagentManager(runner=GatedRunner())

    with pytest.raises(SubagentError):
        await manager.spawn(task, session_key="s1")


async def test_fourth_spawn_rejected_until_one_finishes():
    runner = GatedRunner()
    manager = SubagentManager(runner=runner, max_concurrent_per_session=3)

    tasks = [await manager.spawn(f"job {i}", session_key="s1") for i in range(3)]
    with pytest.raises(SubagentError, match="Too many active subagents"):
        await manager.spawn("job 3", session_key="s1")

    # Other sessions have their own budget
    other = await manager.spawn("elsewhere", session_key="s2")
    assert other.status == SubagentStatus.QUEUED

    runner.release(tasks[0].id)
    await _settle()
    assert manager.get(tasks[0].id).status == SubagentStatus.COMPLETED

    fourth = await manager.spawn("job 3", session_key="s1")
    assert fourth.parent_session_key == "s1"
    assert manager.active_count("s1") == 3

    await manager.stop()


async def test_completed_task_records_result_and_timestamps():
    runner = GatedRunner()
    manager = SubagentManager(runner=runner)

    item = await manager.spawn("summarize notes", session_key="s1", channel="telegram", chat_id="42")
    await _settle()
    assert manager.get(item.id).status == SubagentStatus.RUNNING
    assert manager.running_count("s1") == 1

    runner.release(item.id)
    await _settle()
    done = manager.get(item.id)

    assert done.status == SubagentStatus.COMPLETED
    assert manager.running_count("s1") == 0
    assert done.result == "done: summarize notes"
    assert done.started_at is not None and done.finished_at >= done.started_at
    assert runner.seen[0].channel == "telegram"
    assert runner.seen[0].chat_id == "42"


async def test_runner_failure_is_captured():
    async def failing(task):
        raise RuntimeError("provider exploded")

    manager = SubagentManager(runner=failing)
    item = await manager.spawn("task", session_key="s1")
    await _settle()

    failed = manager.get(item.id)
    assert failed.status == SubagentStatus.FAILED
    assert failed.error == "provider exploded"


async def test_timeout_marks_failed_and_cancels_runner():
    cancelled = asyncio.Event()

    async def hanging(task):
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "never"

    manager = SubagentManager(runner=hanging)
    manager.timeout_seconds = 0.05
    item = await manager.spawn("task", session_key="s1")
    await asyncio.sleep(0.2)

    failed = manager.get(item.id)
    assert failed.status == SubagentStatus.FAILED
    assert "timeout" in failed.error
    assert cancelled.is_set()


async def test_get_returns_copies():
    runner = GatedRunner()
    manager = SubagentManager(runner=runner)
    item = await manager.spawn("task", session_key="s1")

    snapshot = manager.get(item.id)
    snapshot.status = SubagentStatus.FAILED

    assert manager.get(item.id).status != SubagentStatus.FAILED
    await manager.stop()


async def test_list_by_session_newest_first():
    runner = GatedRunner()
    manager = SubagentManager(runner=runner)
    first = await manager.spawn("first", session_key="s1")
    await asyncio.sleep(0.01)
    second = await manager.spawn("second", session_key="s1")
    await manager.spawn("other", session_key="s2")

    ids = [t.id for t in manager.list_by_session("s1")]

    assert ids == [second.id, first.id]
    await manager.stop()


async def test_cleanup_removes_only_old_terminal_tasks():
    runner = GatedRunner()
    manager = SubagentManager(runner=runner, retention_seconds=3600)
    finished = await manager.spawn("finished", session_key="s1")
    running = await manager.spawn("running", session_key="s1")
    runner.release(finished.id)
    await _settle()

    later = manager.get(finished.id).updated_at + 7200
    removed = manager.cleanup(now=later)

    assert removed == 1
    assert manager.get(finished.id) is None
    assert manager.get(running.id) is not None
    await manager.stop()


def test_child_session_key_format():
    assert child_session_key("telegram:1", "abc") == "telegram:1:subagent:abc"


async def test_spawn_tool_respects_nesting_gate():
    manager = SubagentManager(runner=GatedRunner())
    tool = SpawnTool(manager)
    ctx = ToolContext(session_key="s1:subagent:x", can_spawn_subagents=False)

    result = await tool.execute(ctx, task="recurse")

    assert result.is_error
    assert "disabled" in result.for_llm


async def test_spawn_tool_turns_rejection_into_error_result():
    manager = SubagentManager(runner=GatedRunner(), max_concurrent_per_session=1)
    tool = SpawnTool(manager)
    ctx = ToolContext(session_key="s1")

    ok = await tool.execute(ctx, task="one")
    rejected = await tool.execute(ctx, task="two")

    assert not ok.is_error
    assert "Subagent started" in ok.for_llm
    assert rejected.is_error
    assert "Failed to spawn subagent" in rejected.for_llm
    await manager.stop()


async def test_status_and_result_tools_are_session_scoped():
    runner = GatedRunner()
    manager = SubagentManager(runner=runner)
    item = await manager.spawn("task", session_key="owner")
    owner = ToolContext(session_key="owner")
    stranger = ToolContext(session_key="stranger")

    denied = await SubagentStatusTool(manager).execute(stranger, id=item.id)
    pending = await SubagentResultTool(manager).execute(owner, id=item.id)
    runner.release(item.id)
    await _settle()
    final = await SubagentResultTool(manager).execute(owner, id=item.id)
    listing = await SubagentListTool(manager).execute(owner)

    assert denied.is_error
    assert "still" in pending.for_llm
    assert final.for_llm == "done: task"
    assert item.id in listing.for_llm
