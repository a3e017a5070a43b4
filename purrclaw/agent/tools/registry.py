"""Tool registry for dynamic tool management."""

from __future__ import annotations

from typing import Any

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult


class ToolRegistry:
    """
    Registry for agent tools.

    Built once at startup; the name-keyed table is the only lookup path.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        """Unregister a tool by name."""
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def list(self) -> list[str]:
        """Registered tool names in registration order."""
        return list(self._tools.keys())

    @property
    def tool_names(self) -> list[str]:
        return self.list()

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions in OpenAI format."""
        return [tool.to_schema() for tool in self._tools.values()]

    def get_summaries(self) -> list[str]:
        """One markdown bullet per tool, for the system prompt."""
        return [f"- **{tool.name}**: {tool.description}" for tool in self._tools.values()]

    async def execute(self, name: str, params: dict[str, Any], context: ToolContext) -> ToolResult:
        """
        Execute a tool by name with given parameters.

        Unknown tools and invalid parameters produce error results. Exceptions
        raised by the tool itself propagate to the caller (see ToolExecutor).
        """
        tool = self._tools.get(name)
        if not tool:
            return ToolResult.error(f"Tool '{name}' not found")

        errors = tool.validate_params(params or {})
        if errors:
            return ToolResult.error(f"Invalid parameters for tool '{name}': " + "; ".join(errors))
        return await tool.execute(context, **(params or {}))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
