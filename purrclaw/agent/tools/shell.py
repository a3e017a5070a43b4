"""Shell execution tool."""

import asyncio
import re
from pathlib import Path
from typing import Any

from loguru import logger

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult

DENY_PATTERNS = [
    r"\brm\s+-[rf]{1,2}\b",
    r"\b(format|mkfs|diskpart)\b\s",
    r"\bdd\s+if=",
    r">\s*/dev/sd[a-z]\b",
    r"\b(shutdown|reboot|poweroff)\b",
    r":\(\)\s*\{.*\};\s*:",
    r"\|\s*(sh|bash)\b",
    r"\bsudo\b",
    r"\bchown\b",
    r"\bpkill\b",
    r"\bkillall\b",
    r"\bkill\s+-9\b",
    r"\bapt\s+(install|remove|purge)\b",
    r"\byum\s+(install|remove)\b",
    r"\bdocker\s+run\b",
    r"\bgit\s+push\b",
    r"\beval\b",
]

_MAX_OUTPUT = 10_000


class ExecTool(Tool):
    """Tool to execute shell commands."""

    def __init__(
        self,
        timeout: int = 60,
        working_dir: str | None = None,
        restrict_to_workspace: bool = False,
    ):
        self.timeout = timeout
        self.working_dir = working_dir
        self.restrict_to_workspace = restrict_to_workspace
        self._deny = [re.compile(p, re.IGNORECASE) for p in DENY_PATTERNS]

    @property
    def name(self) -> str:
        return "exec"

    @property
    def description(self) -> str:
        return "Execute a shell command and return its output. Use with caution."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute",
                },
                "working_dir": {
                    "type": "string",
                    "description": "Optional working directory for the command",
                },
            },
            "required": ["command"],
        }

    async def execute(
        self,
        context: ToolContext,
        command: str,
        working_dir: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        cwd = working_dir or self.working_dir or str(Path.cwd())
        guard_error = self._guard_command(command, cwd)
        if guard_error:
            return ToolResult.error(guard_error)

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            return ToolResult.error(f"Error: Command timed out after {self.timeout} seconds")
        except asyncio.CancelledError:
            # Caller's deadline expired; don't leave the child running.
            await self._kill(process)
            raise

        parts = []
        if stdout:
            parts.append(stdout.decode("utf-8", errors="replace"))
        if stderr:
            stderr_text = stderr.decode("utf-8", errors="replace")
            if stderr_text.strip():
                parts.append(f"STDERR:\n{stderr_text}")
        if process.returncode != 0:
            parts.append(f"\nExit code: {process.returncode}")

        result = "\n".join(parts) if parts else "(no output)"
        if len(result) > _MAX_OUTPUT:
            result = result[:_MAX_OUTPUT] + f"\n... (truncated, {len(result) - _MAX_OUTPUT} more chars)"

        if process.returncode != 0:
            return ToolResult.error(result)
        return ToolResult.ok(result)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
        logger.debug(f"Killed shell process {process.pid}")

    def _guard_command(self, command: str, cwd: str) -> str | None:
        """Best-effort safety guard for potentially destructive commands."""
        lower = command.strip().lower()
        for pattern in self._deny:
            if pattern.search(lower):
                return "Error: Command blocked by safety guard (dangerous pattern detected)"

        if self.restrict_to_workspace and self.working_dir:
            if "../" in command or "..\\" in command:
                return "Error: Command blocked by safety guard (path traversal detected)"
            cwd_path = Path(cwd).resolve()
            root = Path(self.working_dir).resolve()
            if cwd_path != root and root not in cwd_path.parents:
                return "Error: Command blocked by safety guard (working_dir outside workspace)"

        return None
