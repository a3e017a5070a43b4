"""Persistent key/value memory tools backed by the session store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult

if TYPE_CHECKING:
    from purrclaw.session.store import SQLiteStore

_PROTECTED_KEYS = {"telegram:user_session"}
_PROTECTED_PREFIXES = ("system:", "internal:")

_SCOPE_PROPERTY = {
    "type": "string",
    "enum": ["session", "global"],
    "description": "Memory scope: session (default) or global",
}


def is_protected_memory_key(key: str) -> bool:
    normalized = (key or "").strip().lower()
    if not normalized:
        return False
    return normalized in _PROTECTED_KEYS or normalized.startswith(_PROTECTED_PREFIXES)


def scoped_key(key: str, scope: str, context: ToolContext) -> str:
    if scope == "global":
        return key
    return f"session:{context.session_key or 'unknown'}:{key}"


def _protected_error(scope: str, key: str) -> ToolResult:
    return ToolResult.error(
        f"Access denied: protected memory key ({scope}:{key})",
        for_user="⛔ Access denied: protected memory key.",
    )


class _MemoryTool(Tool):
    def __init__(self, store: "SQLiteStore"):
        self._store = store

    def _resolve(self, key: str, scope: str, context: ToolContext) -> str | None:
        full = scoped_key(key, scope, context)
        if is_protected_memory_key(key) or is_protected_memory_key(full):
            return None
        return full


class MemoryReadTool(_MemoryTool):
    @property
    def name(self) -> str:
        return "memory_read"

    @property
    def description(self) -> str:
        return "Read a value from persistent memory by key"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "Memory key to read (e.g. 'user_name')"},
                "scope": _SCOPE_PROPERTY,
            },
            "required": ["key"],
        }

    async def execute(self, context: ToolContext, key: str, scope: str = "session", **kwargs: Any) -> ToolResult:
        full = self._resolve(key, scope, context)
        if full is None:
            return _protected_error(scope, key)
        value = await self._store.get_memory(full)
        if value is None:
            return ToolResult.ok(f"No memory found for key: {key} (scope: {scope})")
        return ToolResult.ok(value)


class MemoryWriteTool(_MemoryTool):
    @property
    def name(self) -> str:
        return "memory_write"

    @property
    def description(self) -> str:
        return "Write a value to persistent memory"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "Memory key to write"},
                "value": {"type": "string", "description": "Value to store"},
                "scope": _SCOPE_PROPERTY,
            },
            "required": ["key", "value"],
        }

    async def execute(
        self, context: ToolContext, key: str, value: str, scope: str = "session", **kwargs: Any
    ) -> ToolResult:
        full = self._resolve(key, scope, context)
        if full is None:
            return _protected_error(scope, key)
        await self._store.set_memory(full, value)
        return ToolResult.ok(f"Memory saved ({scope}): {key} = {value}", for_user=f"✅ Remembered ({scope}): {key}")


class MemoryListTool(_MemoryTool):
    @property
    def name(self) -> str:
        return "memory_list"

    @property
    def description(self) -> str:
        return "List memory keys with latest values"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "description": "Max entries to return (default: 50)"},
                "scope": _SCOPE_PROPERTY,
            },
            "required": [],
        }

    async def execute(self, context: ToolContext, limit: int = 50, scope: str = "session", **kwargs: Any) -> ToolResult:
        rows = [r for r in await self._store.list_memory(limit) if not is_protected_memory_key(r["key"])]
        prefix = f"session:{context.session_key or 'unknown'}:"
        if scope == "global":
            rows = [r for r in rows if not r["key"].startswith("session:")]
        else:
            rows = [r for r in rows if r["key"].startswith(prefix)]
        if not rows:
            return ToolResult.ok(f"Memory is empty for scope: {scope}.")
        lines = [f"{r['key'].removeprefix(prefix)} = {r['value']}" for r in rows]
        return ToolResult.ok("\n".join(lines))


class MemoryDeleteTool(_MemoryTool):
    @property
    def name(self) -> str:
        return "memory_delete"

    @property
    def description(self) -> str:
        return "Delete a value from persistent memory by key"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "Memory key to delete"},
                "scope": _SCOPE_PROPERTY,
            },
            "required": ["key"],
        }

    async def execute(self, context: ToolContext, key: str, scope: str = "session", **kwargs: Any) -> ToolResult:
        full = self._resolve(key, scope, context)
        if full is None:
            return _protected_error(scope, key)
        if not await self._store.delete_memory(full):
            return ToolResult.ok(f"No memory found for key: {key} (scope: {scope})")
        return ToolResult.ok(f"Memory deleted ({scope}): {key}", for_user=f"✅ Memory deleted ({scope}): {key}")
