"""Agent tools module."""

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult
from purrclaw.agent.tools.executor import ToolExecutor
from purrclaw.agent.tools.registry import ToolRegistry

__all__ = ["Tool", "ToolContext", "ToolResult", "ToolExecutor", "ToolRegistry"]
