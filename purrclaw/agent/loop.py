"""Agent loop: the core processing engine."""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

from purrclaw.agent.compaction import ContextManager
from purrclaw.agent.context import ContextBuilder
from purrclaw.agent.subagent import SubagentStatus, SubagentTask, child_session_key
from purrclaw.agent.tools.base import SendFileCallback, ToolContext
from purrclaw.agent.tools.executor import ToolExecutor
from purrclaw.agent.tools.filesystem import AppendFileTool, ListDirTool, ReadFileTool, WriteFileTool
from purrclaw.agent.tools.memory import MemoryDeleteTool, MemoryListTool, MemoryReadTool, MemoryWriteTool
from purrclaw.agent.tools.registry import ToolRegistry
from purrclaw.agent.tools.reminder import ReminderCreateTool, ReminderDeleteTool, ReminderListTool
from purrclaw.agent.tools.shell import ExecTool
from purrclaw.agent.tools.spawn import SpawnTool, SubagentListTool, SubagentResultTool, SubagentStatusTool
from purrclaw.agent.tools.web import ReadUrlTool, WebSearchTool
from purrclaw.agent.tools.workspace_search import WorkspaceSearchTool
from purrclaw.providers.base import LLMProvider, is_context_overflow

if TYPE_CHECKING:
    from purrclaw.agent.scheduler import SessionScheduler
    from purrclaw.agent.subagent import SubagentManager
    from purrclaw.config.schema import ExecToolConfig
    from purrclaw.reminders.service import ReminderService
    from purrclaw.session.store import SQLiteStore

UpdateCallback = Callable[[str, bool], Awaitable[None]]

EMPTY_RESPONSE = "I've completed processing but have no response to give."


class AgentLoop:
    """
    The agent loop is the core processing engine.

    It:
    1. Loads session history and summary from the store
    2. Builds the prompt
    3. Calls the LLM
    4. Executes tool calls concurrently, recording results in call order
    5. Persists the answer and schedules background summarization
    """

    def __init__(
        self,
        provider: LLMProvider,
        workspace: Path,
        store: "SQLiteStore",
        model: str | None = None,
        max_iterations: int = 20,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        context_window: int = 65536,
        summary_message_threshold: int = 20,
        summary_keep_last: int = 4,
        tool_timeout: float = 45.0,
        brave_api_key: str | None = None,
        exec_config: "ExecToolConfig | None" = None,
        restrict_to_workspace: bool = True,
        scheduler: "SessionScheduler | None" = None,
        subagents: "SubagentManager | None" = None,
        reminders: "ReminderService | None" = None,
    ):
        from purrclaw.config.schema import ExecToolConfig
        self.provider = provider
        self.workspace = Path(workspace)
        self.store = store
        self.model = model or provider.get_default_model()
        self.max_iterations = max_iterations
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.tool_timeout = tool_timeout
        self.brave_api_key = brave_api_key
        self.exec_config = exec_config or ExecToolConfig()
        self.restrict_to_workspace = restrict_to_workspace
        self.scheduler = scheduler
        self.subagents = subagents
        self.reminders = reminders

        self.tools = ToolRegistry()
        self.executor = ToolExecutor(self.tools, default_timeout=tool_timeout)
        self.context = ContextBuilder(self.workspace, self.tools)
        self.compaction = ContextManager(
            store,
            provider,
            context_window=context_window,
            message_threshold=summary_message_threshold,
            keep_last=summary_keep_last,
            model=self.model,
        )
        self._register_default_tools()
        if self.subagents is not None:
            self.subagents.set_runner(self.run_subagent)

    def _register_default_tools(self) -> None:
        """Register the default set of tools."""
        # File tools (restrict to workspace if configured)
        allowed_dir = self.workspace if self.restrict_to_workspace else None
        for tool_cls in (ReadFileTool, WriteFileTool, AppendFileTool, ListDirTool, WorkspaceSearchTool):
            self.tools.register(tool_cls(self.workspace, allowed_dir=allowed_dir))

        # Shell tool
        self.tools.register(ExecTool(
            working_dir=str(self.workspace),
            timeout=self.exec_config.timeout,
            restrict_to_workspace=self.restrict_to_workspace,
        ))

        # Memory tools
        for tool_cls in (MemoryReadTool, MemoryWriteTool, MemoryListTool, MemoryDeleteTool):
            self.tools.register(tool_cls(self.store))

        # Web tools
        self.tools.register(WebSearchTool(api_key=self.brave_api_key))
        self.tools.register(ReadUrlTool())

        if self.reminders is not None:
            for tool_cls in (ReminderCreateTool, ReminderListTool, ReminderDeleteTool):
                self.tools.register(tool_cls(self.reminders))

        if self.subagents is not None:
            for tool_cls in (SpawnTool, SubagentStatusTool, SubagentResultTool, SubagentListTool):
                self.tools.register(tool_cls(self.subagents))

    @staticmethod
    def _strip_think(text: str | None) -> str | None:
        """Remove <think>…</think> blocks that some models embed in content."""
        if not text:
            return None
        return re.sub(r"<think>[\s\S]*?</think>", "", text).strip() or None

    @staticmethod
    async def _emit(on_update: UpdateCallback | None, text: str | None, is_final: bool) -> None:
        if on_update is None:
            return
        try:
            await on_update(text or "", is_final)
        except Exception as e:
            logger.warning(f"on_update callback failed: {e}")

    async def process_message(
        self,
        session_key: str,
        text: str,
        channel: str = "",
        chat_id: str = "",
        *,
        on_update: UpdateCallback | None = None,
        send_file: SendFileCallback | None = None,
        can_spawn_subagents: bool = True,
        profile_hint: str | None = None,
    ) -> str:
        """
        Process one user message and return the final answer.

        Calls sharing a session key are serialized when a scheduler is
        attached. Provider errors other than context overflow propagate.
        """
        async def _turn() -> str:
            return await self._process_message(
                session_key,
                text,
                channel,
                chat_id,
                on_update=on_update,
                send_file=send_file,
                can_spawn_subagents=can_spawn_subagents,
                profile_hint=profile_hint,
            )

        if self.scheduler is not None:
            return await self.scheduler.run(session_key, _turn)
        return await _turn()

    async def _process_message(
        self,
        session_key: str,
        text: str,
        channel: str,
        chat_id: str,
        *,
        on_update: UpdateCallback | None,
        send_file: SendFileCallback | None,
        can_spawn_subagents: bool,
        profile_hint: str | None,
    ) -> str:
        command_reply = await self._handle_command(text, session_key)
        if command_reply is not None:
            return command_reply

        preview = text[:80] + "..." if len(text) > 80 else text
        logger.info(f"Processing message for {session_key}: {preview}")

        history = await self.store.get_session_history(session_key)
        summary = await self.store.get_session_summary(session_key)
        messages = await self.context.build_messages(
            history, summary, text, channel, chat_id, profile_hint=profile_hint
        )
        await self.store.add_message(session_key, "user", text)

        tool_context = ToolContext(
            session_key=session_key,
            channel=channel,
            chat_id=chat_id,
            timeout=self.tool_timeout,
            can_spawn_subagents=can_spawn_subagents,
            send_file=send_file,
        )
        final_content = await self._run_agent_loop(
            session_key,
            messages,
            tool_context,
            on_update=on_update,
            profile_hint=profile_hint,
        )

        await self.store.add_message(session_key, "assistant", final_content or "")
        await self.compaction.maybe_summarize(session_key)

        return final_content or EMPTY_RESPONSE

    async def _run_agent_loop(
        self,
        session_key: str,
        messages: list[dict[str, Any]],
        tool_context: ToolContext,
        on_update: UpdateCallback | None = None,
        profile_hint: str | None = None,
    ) -> str | None:
        """
        Run the agent iteration loop.

        Args:
            session_key: Session whose store entries are appended to.
            messages: Starting messages for the LLM conversation.
            tool_context: Routing and budget passed to every tool call.
            on_update: Optional callback for intermediate and final text.
            profile_hint: Carried into rebuilt prompts after compression.

        Returns:
            The final content, or None when the iteration cap was reached.
        """
        final_content: str | None = None
        definitions = self.tools.get_definitions()

        for iteration in range(1, self.max_iterations + 1):
            try:
                response = await self.provider.chat(
                    messages=messages,
                    tools=definitions,
                    model=self.model,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
            except Exception as e:
                if not is_context_overflow(e):
                    raise
                logger.warning(f"Context window error on iteration {iteration}, compressing: {e}")
                await self.compaction.force_compress(session_key)
                history = await self.store.get_session_history(session_key)
                summary = await self.store.get_session_summary(session_key)
                messages = await self.context.build_messages(
                    history,
                    summary,
                    "",
                    tool_context.channel,
                    tool_context.chat_id,
                    profile_hint=profile_hint,
                )
                continue

            if not response.has_tool_calls:
                final_content = self._strip_think(response.content)
                await self._emit(on_update, final_content, True)
                break

            if response.content:
                await self._emit(on_update, self._strip_think(response.content), False)

            tool_call_dicts = self.context.tool_call_dicts(response.tool_calls)
            messages = self.context.add_assistant_message(messages, response.content, tool_call_dicts)
            await self.store.add_message(
                session_key, "assistant", response.content or "", tool_calls=tool_call_dicts
            )

            results = await self.executor.execute_all(response.tool_calls, tool_context)
            for tool_call, result in zip(response.tool_calls, results):
                messages = self.context.add_tool_result(messages, tool_call.id, result)
                await self.store.add_message(
                    session_key, "tool", result.llm_content(), tool_call_id=tool_call.id
                )
        else:
            logger.warning(f"Session {session_key} hit max iterations ({self.max_iterations})")

        return final_content

    async def _handle_command(self, text: str, session_key: str) -> str | None:
        """Answer slash commands without calling the model. Returns None for normal text."""
        raw = text.strip()
        if not raw.startswith("/"):
            return None
        parts = raw.split()
        cmd = parts[0].split("@", 1)[0].lower()

        if cmd == "/start":
            return "👋 Hello! I'm PurrClaw 🐾, your AI assistant. How can I help you today?"
        if cmd == "/help":
            return (
                "🐾 PurrClaw commands:\n"
                "/start - Start the bot\n"
                "/help - Show this help\n"
                "/reset - Clear conversation history\n"
                "/model - Show current model\n"
                "/tools - List available tools\n"
                "/subagents - List subagents for this chat\n"
                "/subagent <id> - Show one subagent\n"
                "/reminders - List pending reminders"
            )
        if cmd == "/reset":
            await self.reset_session(session_key)
            return "🧹 Conversation history cleared."
        if cmd == "/model":
            return f"🤖 Current model: {self.model}"
        if cmd == "/tools":
            return "🔧 Available tools:\n" + "\n".join(f"• {name}" for name in self.tools.tool_names)
        if cmd == "/subagents":
            return self._render_subagents(session_key)
        if cmd == "/subagent":
            if len(parts) < 2:
                return "Usage: /subagent <id>"
            return self._render_subagent(session_key, parts[1])
        if cmd == "/reminders":
            return await self._render_reminders(session_key)
        return None

    def _render_subagents(self, session_key: str) -> str:
        if self.subagents is None:
            return "Subagent service is not configured."
        items = self.subagents.list_by_session(session_key)
        if not items:
            return "No subagents for this session."
        return "🤝 Subagents:\n" + "\n".join(
            f"• {t.id} | {t.status.value} | {t.task[:60]}" for t in items[:20]
        )

    def _render_subagent(self, session_key: str, task_id: str) -> str:
        if self.subagents is None:
            return "Subagent service is not configured."
        item = self.subagents.get(task_id)
        if item is None or item.parent_session_key != session_key:
            return f"Subagent not found: {task_id}"
        header = f"🤝 Subagent {item.id}\nStatus: {item.status.value}"
        if item.status == SubagentStatus.COMPLETED:
            return f"{header}\n\n{item.result or '(empty result)'}"
        if item.status == SubagentStatus.FAILED:
            return f"{header}\nError: {item.error or 'Unknown error'}"
        return header

    async def _render_reminders(self, session_key: str) -> str:
        if self.reminders is None:
            return "Reminder service is not configured."
        items = await self.reminders.list_by_session(session_key)
        if not items:
            return "No pending reminders."
        return "⏰ Reminders:\n" + "\n".join(
            f"• {r.id} | in {r.seconds_left()}s | {r.text}" for r in items
        )

    async def reset_session(self, session_key: str) -> None:
        """Clear history and summary of a session."""
        await self.compaction.reset(session_key)
        logger.info(f"Session {session_key} reset")

    async def run_subagent(self, task: SubagentTask) -> str:
        """Default subagent runner: an isolated turn that cannot spawn further subagents."""
        return await self.process_message(
            child_session_key(task.parent_session_key, task.id),
            task.task,
            task.channel,
            task.chat_id,
            can_spawn_subagents=False,
        )

    async def process_direct(
        self,
        content: str,
        session_key: str = "cli:direct",
        channel: str = "cli",
        chat_id: str = "direct",
        on_update: UpdateCallback | None = None,
    ) -> str:
        """
        Process a message directly (for CLI usage).

        Args:
            content: The message content.
            session_key: Session identifier.
            channel: Source channel (for tool context routing).
            chat_id: Source chat ID (for tool context routing).
            on_update: Optional callback for intermediate output.

        Returns:
            The agent's response.
        """
        return await self.process_message(session_key, content, channel, chat_id, on_update=on_update)

    async def close(self) -> None:
        """Cancel background summarization."""
        await self.compaction.close()
