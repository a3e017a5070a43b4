"""Subagent manager for background task execution."""

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger


class SubagentStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {SubagentStatus.COMPLETED, SubagentStatus.FAILED}


class SubagentError(RuntimeError):
    """Raised when a spawn request is rejected."""


@dataclass
class SubagentTask:
    """One delegated task. Timestamps are epoch seconds."""

    id: str
    task: str
    parent_session_key: str
    channel: str
    chat_id: str
    status: SubagentStatus = SubagentStatus.QUEUED
    result: str = ""
    error: str = ""
    created_at: float = 0.0
    updated_at: float = 0.0
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


SubagentRunner = Callable[[SubagentTask], Awaitable[str]]


def child_session_key(parent_session_key: str, task_id: str) -> str:
    """Synthetic session key a subagent's run is isolated under."""
    return f"{parent_session_key}:subagent:{task_id}"


class SubagentManager:
    """
    Manages background subagent execution.

    Subagents are isolated agent runs that handle a delegated task in the
    background. The parent never blocks on them; it polls with `get` or
    `list_by_session`. Task records live only in memory and are swept once
    they have been terminal for longer than the retention window.
    """

    def __init__(
        self,
        runner: SubagentRunner | None = None,
        max_concurrent_per_session: int = 3,
        timeout_seconds: float = 120.0,
        max_task_length: int = 8000,
        retention_seconds: float = 24 * 3600,
        cleanup_interval_seconds: float = 600.0,
    ):
        self._runner = runner
        self.max_concurrent_per_session = max(1, int(max_concurrent_per_session))
        self.timeout_seconds = max(5.0, float(timeout_seconds))
        self.max_task_length = max_task_length
        self.retention_seconds = retention_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._tasks: dict[str, SubagentTask] = {}
        self._running_tasks: dict[str, asyncio.Task[None]] = {}
        self._cleanup_task: asyncio.Task[None] | None = None

    def set_runner(self, runner: SubagentRunner) -> None:
        self._runner = runner

    async def spawn(
        self,
        task: str,
        *,
        session_key: str = "",
        channel: str = "",
        chat_id: str = "",
    ) -> SubagentTask:
        """
        Spawn a subagent to execute a task in the background.

        Args:
            task: The task description for the subagent.
            session_key: Parent session that owns the task.
            channel: Channel of the parent conversation.
            chat_id: Chat of the parent conversation.

        Returns:
            A snapshot of the new task, status queued.

        Raises:
            SubagentError: No runner configured, invalid task text, or the
                parent session already has the maximum of active tasks.
        """
        if self._runner is None:
            raise SubagentError("Subagent runner is not configured")

        text = (task or "").strip()
        if not text:
            raise SubagentError("task is required")
        if len(text) > self.max_task_length:
            raise SubagentError(f"task is too long (max {self.max_task_length} chars)")

        active = self.active_count(session_key)
        if active >= self.max_concurrent_per_session:
            raise SubagentError(
                f"Too many active subagents for this session ({active}/{self.max_concurrent_per_session})"
            )

        now = time.time()
        item = SubagentTask(
            id=str(uuid.uuid4()),
            task=text,
            parent_session_key=session_key,
            channel=channel,
            chat_id=chat_id,
            created_at=now,
            updated_at=now,
        )
        self._tasks[item.id] = item

        bg_task = asyncio.create_task(self._run_subagent(item.id))
        self._running_tasks[item.id] = bg_task
        bg_task.add_done_callback(lambda _: self._running_tasks.pop(item.id, None))

        preview = text[:30] + ("..." if len(text) > 30 else "")
        logger.info(f"Spawned subagent [{item.id}] for {session_key}: {preview}")
        return replace(item)

    def get(self, task_id: str) -> SubagentTask | None:
        item = self._tasks.get(task_id)
        return replace(item) if item else None

    def list_by_session(self, session_key: str) -> list[SubagentTask]:
        """Tasks owned by a session, most recent first."""
        items = [t for t in self._tasks.values() if t.parent_session_key == session_key]
        items.sort(key=lambda t: t.created_at, reverse=True)
        return [replace(t) for t in items]

    def active_count(self, session_key: str) -> int:
        """Number of queued or running tasks owned by a session."""
        return sum(
            1 for t in self._tasks.values()
            if t.parent_session_key == session_key and not t.is_terminal
        )

    def running_count(self, session_key: str) -> int:
        """Number of tasks of a session currently executing."""
        return sum(
            1 for t in self._tasks.values()
            if t.parent_session_key == session_key and t.status == SubagentStatus.RUNNING
        )

    async def _run_subagent(self, task_id: str) -> None:
        """Execute the runner under the timeout and record the outcome."""
        item = self._tasks.get(task_id)
        if item is None:
            return

        item.status = SubagentStatus.RUNNING
        item.started_at = item.updated_at = time.time()
        logger.info(f"Subagent [{task_id}] starting")

        try:
            result = await asyncio.wait_for(self._runner(replace(item)), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._finish(item, SubagentStatus.FAILED, error=f"Subagent timeout after {self.timeout_seconds:g}s")
            logger.error(f"Subagent [{task_id}] timed out")
        except asyncio.CancelledError:
            self._finish(item, SubagentStatus.FAILED, error="Subagent cancelled")
            raise
        except Exception as e:
            self._finish(item, SubagentStatus.FAILED, error=str(e) or e.__class__.__name__)
            logger.error(f"Subagent [{task_id}] failed: {e}")
        else:
            self._finish(item, SubagentStatus.COMPLETED, result=str(result or ""))
            logger.info(f"Subagent [{task_id}] completed successfully")

    @staticmethod
    def _finish(item: SubagentTask, status: SubagentStatus, result: str = "", error: str = "") -> None:
        item.status = status
        item.result = result
        item.error = error
        item.finished_at = item.updated_at = time.time()

    def cleanup(self, now: float | None = None) -> int:
        """Drop terminal tasks older than the retention window. Returns count removed."""
        cutoff = (now if now is not None else time.time()) - self.retention_seconds
        expired = [
            task_id for task_id, t in self._tasks.items()
            if t.is_terminal and t.updated_at < cutoff
        ]
        for task_id in expired:
            self._tasks.pop(task_id, None)
        if expired:
            logger.debug(f"Subagent cleanup removed {len(expired)} task(s)")
        return len(expired)

    def start(self) -> None:
        """Start the periodic retention sweep."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the sweep and cancel in-flight subagents."""
        pending = list(self._running_tasks.values())
        if self._cleanup_task is not None:
            pending.append(self._cleanup_task)
            self._cleanup_task = None
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup()
