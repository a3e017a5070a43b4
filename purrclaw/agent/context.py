"""Context builder for assembling agent prompts."""

from __future__ import annotations

import asyncio
import json
import platform
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from purrclaw.agent.tools.base import ToolResult
    from purrclaw.agent.tools.registry import ToolRegistry
    from purrclaw.providers.base import ToolCallRequest


class ContextBuilder:
    """
    Builds the message list for one agent turn.

    The system prompt is the assistant identity, the workspace bootstrap
    files, an optional per-user profile hint, the routing of the current
    chat and the running summary of earlier conversation.
    """

    BOOTSTRAP_FILES = ["AGENTS.md", "SOUL.md", "USER.md", "IDENTITY.md"]

    def __init__(self, workspace: Path, tools: "ToolRegistry | None" = None):
        self.workspace = Path(workspace)
        self.tools = tools

    def set_tools(self, tools: "ToolRegistry") -> None:
        self.tools = tools

    def _get_identity(self) -> str:
        now = datetime.now().astimezone().strftime("%Y-%m-%d %H:%M (%A)")
        system = platform.system()
        runtime = f"{'macOS' if system == 'Darwin' else system} {platform.machine()}, Python {platform.python_version()}"
        workspace_path = str(self.workspace.expanduser().resolve())

        return f"""# PurrClaw 🐾

You are PurrClaw, a helpful AI assistant.

## Current Time
{now}

## Runtime
{runtime}

## Workspace
Your workspace is at: {workspace_path}
- Memory: use memory_read / memory_write / memory_list / memory_delete tools
- Files: use read_file / write_file / append_file / list_dir tools

{self._build_tools_section()}

## Important Rules

1. **ALWAYS use tools** - When you need to perform an action (save notes, execute commands, read files, etc.), you MUST call the appropriate tool. Do NOT just say you'll do it or pretend to do it.

2. **Be helpful and accurate** - When using tools, briefly explain what you're doing.

3. **Memory** - Use memory_write to remember important things about the user. Use memory_read to recall them.

4. **Citations for web info** - If you use web_search or read_url, include source links in the final answer using [1], [2], ... notation."""

    def _build_tools_section(self) -> str:
        summaries = self.tools.get_summaries() if self.tools else []
        if not summaries:
            return ""
        return (
            "## Available Tools\n\n"
            "**CRITICAL**: You MUST use tools to perform actions. Do NOT pretend to execute commands or save data.\n\n"
            "You have access to the following tools:\n\n" + "\n".join(summaries)
        )

    def _load_bootstrap_files(self) -> str:
        parts = []
        for filename in self.BOOTSTRAP_FILES:
            path = self.workspace / filename
            if path.is_file():
                parts.append(f"## {filename}\n\n{path.read_text(encoding='utf-8')}")
        return "\n\n".join(parts)

    async def build_system_prompt(
        self,
        channel: str = "",
        chat_id: str = "",
        profile_hint: str | None = None,
    ) -> str:
        parts = [self._get_identity()]

        bootstrap = await asyncio.to_thread(self._load_bootstrap_files)
        if bootstrap:
            parts.append(bootstrap)

        if profile_hint and profile_hint.strip():
            parts.append(f"## User Profile\n\n{profile_hint.strip()}")

        if channel and chat_id:
            parts.append(f"## Current Session\nChannel: {channel}\nChat ID: {chat_id}")

        return "\n\n---\n\n".join(parts)

    async def build_messages(
        self,
        history: list[dict[str, Any]],
        summary: str,
        current_message: str,
        channel: str = "",
        chat_id: str = "",
        profile_hint: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Build the complete message list for an LLM call.

        Args:
            history: Stored session messages, oldest first.
            summary: Running summary of older conversation, may be empty.
            current_message: The new user message; skipped when empty.
            channel: Channel name for the session section.
            chat_id: Chat id for the session section.
            profile_hint: Optional per-user profile text.

        Returns:
            List of messages including the system prompt.
        """
        system_prompt = await self.build_system_prompt(channel, chat_id, profile_hint)
        if summary:
            system_prompt += f"\n\n## Summary of Previous Conversation\n\n{summary}"

        # A tool result without its assistant call is rejected by providers
        start = 0
        while start < len(history) and history[start].get("role") == "tool":
            start += 1

        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend(dict(m) for m in history[start:])
        if current_message:
            messages.append({"role": "user", "content": current_message})
        return messages

    @staticmethod
    def tool_call_dicts(tool_calls: list["ToolCallRequest"]) -> list[dict[str, Any]]:
        """OpenAI-format tool calls for an assistant message."""
        return [
            {
                "id": tc.id,
                "type": "function",
                "function": {
                    "name": tc.name,
                    "arguments": json.dumps(tc.arguments, ensure_ascii=False),
                },
            }
            for tc in tool_calls
        ]

    def add_assistant_message(
        self,
        messages: list[dict[str, Any]],
        content: str | None,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        msg: dict[str, Any] = {"role": "assistant", "content": content or ""}
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.append(msg)
        return messages

    def add_tool_result(
        self,
        messages: list[dict[str, Any]],
        tool_call_id: str,
        result: "ToolResult",
    ) -> list[dict[str, Any]]:
        messages.append({"role": "tool", "tool_call_id": tool_call_id, "content": result.llm_content()})
        return messages
