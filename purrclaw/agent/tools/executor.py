"""Time-boxed, failure-isolated tool execution."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from loguru import logger

from purrclaw.agent.tools.base import ToolContext, ToolResult
from purrclaw.agent.tools.registry import ToolRegistry
from purrclaw.providers.base import ToolCallRequest


class ToolExecutor:
    """
    Run tools from a registry under a per-call deadline.

    `execute` never raises for tool-level problems: unknown tools, exceptions
    and timeouts all come back as error results. A timeout cancels the tool
    coroutine, so tools that own subprocesses or sockets must release them on
    `asyncio.CancelledError`.
    """

    def __init__(self, registry: ToolRegistry, default_timeout: float = 45.0):
        self.registry = registry
        self.default_timeout = default_timeout

    async def execute(self, name: str, args: dict[str, Any], context: ToolContext) -> ToolResult:
        timeout = context.timeout if context.timeout is not None else self.default_timeout
        try:
            return await asyncio.wait_for(self.registry.execute(name, args, context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tool {name} timed out after {timeout:g}s")
            return ToolResult.error(f"Tool '{name}' timed out after {timeout:g}s")
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return ToolResult.error(f"Tool error: {e}")

    async def execute_all(
        self,
        calls: list[ToolCallRequest],
        context: ToolContext,
    ) -> list[ToolResult]:
        """Run every call concurrently; results come back in call order."""
        for call in calls:
            args_str = json.dumps(call.arguments, ensure_ascii=False)
            logger.info(f"Tool call: {call.name}({args_str[:200]})")
        return list(await asyncio.gather(
            *(self.execute(call.name, call.arguments, context) for call in calls)
        ))
