"""Subagent tools: spawn, status, result, list."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from purrclaw.agent.subagent import SubagentError, SubagentStatus, SubagentTask
from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult

if TYPE_CHECKING:
    from purrclaw.agent.subagent import SubagentManager

_ID_PARAMETERS = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Subagent id returned by spawn_subagent"},
    },
    "required": ["id"],
}


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class _SubagentTool(Tool):
    def __init__(self, manager: "SubagentManager"):
        self._manager = manager

    def _lookup(self, task_id: str, context: ToolContext) -> SubagentTask | ToolResult:
        task_id = task_id.strip()
        if not task_id:
            return ToolResult.error("id is required")
        item = self._manager.get(task_id)
        if item is None:
            return ToolResult.ok(f"Subagent not found: {task_id}")
        if item.parent_session_key != context.session_key:
            return ToolResult.error("Access denied for subagent id")
        return item


class SpawnTool(_SubagentTool):
    """Tool to spawn a subagent for background task execution."""

    @property
    def name(self) -> str:
        return "spawn_subagent"

    @property
    def description(self) -> str:
        return (
            "Run a task in an isolated subagent context asynchronously and return the subagent id. "
            "Poll it later with subagent_status / subagent_result."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task": {"type": "string", "description": "Task for the subagent to execute"},
            },
            "required": ["task"],
        }

    async def execute(self, context: ToolContext, task: str, **kwargs: Any) -> ToolResult:
        if not context.can_spawn_subagents:
            return ToolResult.error("Nested subagent spawning is disabled")
        try:
            item = await self._manager.spawn(
                task,
                session_key=context.session_key,
                channel=context.channel,
                chat_id=context.chat_id,
            )
        except SubagentError as e:
            return ToolResult.error(f"Failed to spawn subagent: {e}")
        msg = f"Subagent started: id={item.id}, status={item.status.value}"
        return ToolResult.ok(msg, for_user=f"✅ {msg}")


class SubagentStatusTool(_SubagentTool):
    @property
    def name(self) -> str:
        return "subagent_status"

    @property
    def description(self) -> str:
        return "Get status for a previously spawned subagent by id"

    @property
    def parameters(self) -> dict[str, Any]:
        return _ID_PARAMETERS

    async def execute(self, context: ToolContext, id: str, **kwargs: Any) -> ToolResult:
        item = self._lookup(id, context)
        if isinstance(item, ToolResult):
            return item
        return ToolResult.ok(
            f"id={item.id}\nstatus={item.status.value}\n"
            f"created_at={_iso(item.created_at)}\nupdated_at={_iso(item.updated_at)}"
        )


class SubagentResultTool(_SubagentTool):
    @property
    def name(self) -> str:
        return "subagent_result"

    @property
    def description(self) -> str:
        return "Get final result/error for a completed/failed subagent by id"

    @property
    def parameters(self) -> dict[str, Any]:
        return _ID_PARAMETERS

    async def execute(self, context: ToolContext, id: str, **kwargs: Any) -> ToolResult:
        item = self._lookup(id, context)
        if isinstance(item, ToolResult):
            return item
        if not item.is_terminal:
            return ToolResult.ok(f"Subagent {item.id} is still {item.status.value}")
        if item.status == SubagentStatus.FAILED:
            return ToolResult.error(f"Subagent {item.id} failed: {item.error}")
        return ToolResult.ok(item.result or "(empty result)")


class SubagentListTool(_SubagentTool):
    @property
    def name(self) -> str:
        return "subagent_list"

    @property
    def description(self) -> str:
        return "List subagents for the current session"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        items = self._manager.list_by_session(context.session_key)
        if not items:
            return ToolResult.ok("No subagents found.")
        lines = [f"{t.id} | {t.status.value} | {t.task[:80]}" for t in items[:20]]
        return ToolResult.ok("\n".join(lines))
