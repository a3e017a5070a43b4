"""Per-session FIFO scheduling of agent turns."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class SessionScheduler:
    """
    Serialize work per session key while different keys run concurrently.

    Each enqueued unit waits for every unit queued before it under the same
    key, so a turn never observes a half-written transcript of the previous
    one. A failure (or cancellation) of one unit is delivered to its own
    caller and does not stall the units behind it. Keys with nothing left to
    run are forgotten.
    """

    def __init__(self) -> None:
        self._queues: dict[str, list[asyncio.Task[Any]]] = {}

    def enqueue(self, session_key: str, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """
        Queue `factory()` behind the work already pending for `session_key`.

        Returns the task running it; await it for the result or exception.
        """
        queue = self._queues.setdefault(session_key, [])
        ahead = list(queue)
        task = asyncio.create_task(self._run_after(ahead, factory))
        queue.append(task)
        task.add_done_callback(partial(self._release, session_key))
        if ahead:
            logger.debug(f"Session {session_key}: queued behind {len(ahead)} turn(s)")
        return task

    async def run(self, session_key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Enqueue and await in one step."""
        return await self.enqueue(session_key, factory)

    @staticmethod
    async def _run_after(ahead: list[asyncio.Task[Any]], factory: Callable[[], Awaitable[T]]) -> T:
        if ahead:
            # asyncio.wait never raises the predecessors' exceptions
            await asyncio.wait(ahead)
        return await factory()

    def _release(self, session_key: str, task: asyncio.Task[Any]) -> None:
        queue = self._queues.get(session_key)
        if queue is None:
            return
        if task in queue:
            queue.remove(task)
        if not queue:
            self._queues.pop(session_key, None)

    def pending_keys(self) -> list[str]:
        """Session keys that still have queued or running work."""
        return list(self._queues)

    def pending_count(self, session_key: str) -> int:
        return len(self._queues.get(session_key, []))

    async def drain(self) -> None:
        """Wait for all queued work to settle."""
        tasks = [t for queue in self._queues.values() for t in queue]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
