"""Persisted fire-once reminders scoped to a session/channel/chat."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

if TYPE_CHECKING:
    from purrclaw.session.store import SQLiteStore

STATE_KEY = "reminders:v1"

Notifier = Callable[[str, str, str], Awaitable[None]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"


@dataclass
class Reminder:
    """A delayed message for one chat. Times are epoch milliseconds."""

    id: str
    session_key: str
    channel: str
    chat_id: str
    text: str
    due_at: int
    created_at: int = field(default_factory=_now_ms)
    status: ReminderStatus = ReminderStatus.PENDING

    def seconds_left(self) -> int:
        return max(0, round((self.due_at - _now_ms()) / 1000))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reminder":
        return cls(
            id=str(data["id"]),
            session_key=str(data.get("session_key") or ""),
            channel=str(data.get("channel") or ""),
            chat_id=str(data.get("chat_id") or ""),
            text=str(data.get("text") or ""),
            due_at=int(data["due_at"]),
            created_at=int(data.get("created_at") or 0),
            status=ReminderStatus(data.get("status", "pending")),
        )


class ReminderService:
    """
    Timer-driven reminders persisted as one JSON array in the store.

    Reminders survive restarts: `start()` re-arms a timer for every pending
    reminder from its stored absolute due time, so a reminder that came due
    during an outage fires right after startup instead of being skipped.
    Delivery is attempted at most once; a failing notifier is logged and the
    reminder is still marked sent.
    """

    def __init__(
        self,
        store: "SQLiteStore",
        min_seconds: int = 5,
        max_seconds: int = 60 * 60 * 24 * 30,
    ):
        self.store = store
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self._notifier: Notifier | None = None
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._lock = asyncio.Lock()
        self._started = False

    def set_notifier(self, notifier: Notifier | None) -> None:
        """Set the callback used to deliver `(channel, chat_id, text)`."""
        self._notifier = notifier

    async def start(self) -> None:
        """Re-arm timers for every persisted pending reminder."""
        if self._started:
            return
        self._started = True
        pending = [r for r in await self._load_all() if r.status == ReminderStatus.PENDING]
        for reminder in pending:
            self._schedule(reminder)
        logger.info(f"Reminder service started ({len(pending)} pending)")

    async def stop(self) -> None:
        """Cancel all armed timers. Persisted reminders stay pending."""
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._started = False

    async def create(
        self,
        session_key: str,
        channel: str,
        chat_id: str,
        text: str,
        in_seconds: float | None = None,
    ) -> Reminder:
        seconds = max(self.min_seconds, min(float(in_seconds or 60), self.max_seconds))
        now = _now_ms()
        reminder = Reminder(
            id=str(uuid.uuid4()),
            session_key=session_key,
            channel=channel,
            chat_id=chat_id,
            text=(text or "Reminder").strip(),
            due_at=now + int(seconds * 1000),
            created_at=now,
        )

        async with self._lock:
            items, unparsed = await self._load_entries()
            items.append(reminder)
            await self._save_all(items, unparsed)
        self._schedule(reminder)
        logger.info(f"Reminder {reminder.id} created for {session_key}, due in {seconds:g}s")
        return reminder

    async def list_by_session(self, session_key: str) -> list[Reminder]:
        """Pending reminders of one session, soonest first."""
        items = await self._load_all()
        pending = [r for r in items if r.session_key == session_key and r.status == ReminderStatus.PENDING]
        return sorted(pending, key=lambda r: r.due_at)

    async def delete_by_id(self, reminder_id: str, session_key: str | None = None) -> bool:
        """Cancel a pending reminder. Returns False if not found, foreign, or already done."""
        async with self._lock:
            items, unparsed = await self._load_entries()
            target = next(
                (
                    r for r in items
                    if r.id == reminder_id and (not session_key or r.session_key == session_key)
                ),
                None,
            )
            if target is None or target.status != ReminderStatus.PENDING:
                return False
            target.status = ReminderStatus.CANCELLED
            await self._save_all(items, unparsed)
        self._clear_timer(reminder_id)
        logger.info(f"Reminder {reminder_id} cancelled")
        return True

    def armed_ids(self) -> set[str]:
        return set(self._timers)

    def _schedule(self, reminder: Reminder) -> None:
        self._clear_timer(reminder.id)
        delay = max(0, reminder.due_at - _now_ms()) / 1000
        self._timers[reminder.id] = asyncio.create_task(self._fire_after(reminder.id, delay))
        logger.debug(f"Reminder {reminder.id} armed for {delay:.1f}s")

    def _clear_timer(self, reminder_id: str) -> None:
        timer = self._timers.pop(reminder_id, None)
        if timer and timer is not asyncio.current_task():
            timer.cancel()

    async def _fire_after(self, reminder_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._timers.get(reminder_id) is asyncio.current_task():
            self._timers.pop(reminder_id, None)
        try:
            await self._trigger(reminder_id)
        except Exception as e:
            logger.error(f"Reminder {reminder_id} trigger failed: {e}")

    async def _trigger(self, reminder_id: str) -> None:
        async with self._lock:
            reminder = next((r for r in await self._load_all() if r.id == reminder_id), None)
        if reminder is None or reminder.status != ReminderStatus.PENDING:
            return

        if self._notifier is not None:
            try:
                await self._notifier(reminder.channel, reminder.chat_id, f"⏰ Reminder: {reminder.text}")
            except Exception as e:
                logger.error(f"Reminder {reminder_id} notify failed: {e}")
        else:
            logger.warning(f"Reminder {reminder_id} fired with no notifier configured")

        async with self._lock:
            items, unparsed = await self._load_entries()
            current = next((r for r in items if r.id == reminder_id), None)
            if current is None or current.status != ReminderStatus.PENDING:
                logger.info(f"Reminder {reminder_id} was cancelled during delivery; status kept")
                return
            current.status = ReminderStatus.SENT
            await self._save_all(items, unparsed)
        logger.info(f"Reminder {reminder_id} sent to {reminder.channel}:{reminder.chat_id}")

    async def _load_all(self) -> list[Reminder]:
        items, _ = await self._load_entries()
        return items

    async def _load_entries(self) -> tuple[list[Reminder], list[Any]]:
        """Parsed reminders plus raw entries that failed to parse, kept for rewriting."""
        raw = await self.store.get_state(STATE_KEY)
        if not raw:
            return [], []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Reminder state is not valid JSON; treating as empty")
            return [], []
        if not isinstance(parsed, list):
            return [], []
        items: list[Reminder] = []
        unparsed: list[Any] = []
        for entry in parsed:
            try:
                items.append(Reminder.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed reminder entry: {e}")
                unparsed.append(entry)
        return items, unparsed

    async def _save_all(self, items: list[Reminder], unparsed: list[Any] | None = None) -> None:
        entries = [r.to_dict() for r in items] + list(unparsed or [])
        await self.store.set_state(STATE_KEY, json.dumps(entries, ensure_ascii=False))
