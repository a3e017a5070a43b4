"""Session history summarization and emergency compression."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from purrclaw.providers.base import LLMProvider
    from purrclaw.session.store import SQLiteStore

SUMMARY_PROMPT = (
    "Provide a concise summary of this conversation segment, "
    "preserving core context and key points.\n"
)


def estimate_tokens(history: list[dict[str, Any]]) -> float:
    """Rough token count: 2 tokens per 5 characters of content."""
    return sum(len(m.get("content") or "") for m in history) * 2 / 5


class ContextManager:
    """
    Keeps stored session history within the model's context budget.

    After a turn, `maybe_summarize` folds everything but the most recent
    messages into a running summary on a background task it owns. At most one
    summarization runs per session. When the provider rejects a request as too
    long, `force_compress` drops the older half of the history instead.
    """

    def __init__(
        self,
        store: "SQLiteStore",
        provider: "LLMProvider",
        context_window: int = 65536,
        message_threshold: int = 20,
        keep_last: int = 4,
        model: str | None = None,
    ):
        self.store = store
        self.provider = provider
        self.context_window = context_window
        self.message_threshold = message_threshold
        self.keep_last = keep_last
        self.model = model
        self._summarizing: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        # Bumped by every history rewrite outside summarize
        self._generations: dict[str, int] = {}
        self._write_lock = asyncio.Lock()

    def estimate_tokens(self, history: list[dict[str, Any]]) -> float:
        return estimate_tokens(history)

    def should_summarize(self, history: list[dict[str, Any]]) -> bool:
        return (
            len(history) > self.message_threshold
            or estimate_tokens(history) > self.context_window * 0.75
        )

    def is_summarizing(self, session_key: str) -> bool:
        return session_key in self._summarizing

    async def maybe_summarize(self, session_key: str) -> asyncio.Task[None] | None:
        """Start a background summarization if the session needs one and none is running."""
        if session_key in self._summarizing:
            return None
        history = await self.store.get_session_history(session_key)
        if not self.should_summarize(history) or session_key in self._summarizing:
            return None

        self._summarizing.add(session_key)
        task = asyncio.create_task(self._summarize_guarded(session_key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _summarize_guarded(self, session_key: str) -> None:
        try:
            await self.summarize(session_key)
        except Exception as e:
            logger.error(f"Summarization of {session_key} failed: {e}")
        finally:
            self._summarizing.discard(session_key)

    async def summarize(self, session_key: str) -> bool:
        """
        Replace all but the last few messages with a summary.

        Returns True when the store was updated. A provider failure or an
        empty summary leaves history and summary untouched, as does a reset
        or forced compression of the session while the provider call runs.
        """
        generation = self._generations.get(session_key, 0)
        history = await self.store.get_session_history(session_key)
        if len(history) <= self.keep_last:
            return False

        older = [
            m for m in history[: len(history) - self.keep_last]
            if m.get("role") in ("user", "assistant")
        ]
        if not older:
            return False

        existing = await self.store.get_session_summary(session_key)
        prompt = SUMMARY_PROMPT
        if existing:
            prompt += f"Existing context: {existing}\n"
        prompt += "\nCONVERSATION:\n" + "\n".join(f"{m['role']}: {m.get('content') or ''}" for m in older)

        response = await self.provider.chat(
            messages=[{"role": "user", "content": prompt}],
            tools=None,
            model=self.model,
            max_tokens=1024,
            temperature=0.3,
        )
        if not response.content:
            logger.warning(f"Empty summary for {session_key}; history kept")
            return False

        async with self._write_lock:
            if self._generations.get(session_key, 0) != generation:
                logger.info(f"Session {session_key} changed during summarization; summary discarded")
                return False
            # Messages appended by a turn while the provider call ran are not in the summary
            current = await self.store.get_session_history(session_key)
            keep = self.keep_last + max(0, len(current) - len(history))
            await self.store.set_session_summary(session_key, response.content)
            await self.store.truncate_history(session_key, keep)
        logger.info(f"Session {session_key} summarized ({len(older)} messages folded)")
        return True

    def _invalidate(self, session_key: str) -> None:
        self._generations[session_key] = self._generations.get(session_key, 0) + 1

    async def force_compress(self, session_key: str) -> int:
        """Drop the older half of the stored history. Returns the number dropped."""
        async with self._write_lock:
            history = await self.store.get_session_history(session_key)
            if len(history) <= self.keep_last:
                return 0
            self._invalidate(session_key)
            mid = len(history) // 2
            await self.store.set_history(session_key, history[mid:])
        logger.warning(f"Force compression of {session_key}: dropped {mid} messages")
        return mid

    async def reset(self, session_key: str) -> None:
        """Clear history and summary, discarding any summary still in flight."""
        async with self._write_lock:
            self._invalidate(session_key)
            await self.store.set_history(session_key, [])
            await self.store.set_session_summary(session_key, "")

    async def wait_idle(self) -> None:
        """Wait for in-flight summarizations to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight summarizations."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._summarizing.clear()
