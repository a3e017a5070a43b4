"""SQLite-backed persistence for sessions, memory and service state."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_key TEXT PRIMARY KEY,
    summary     TEXT NOT NULL DEFAULT '',
    created_at  INTEGER NOT NULL,
    updated_at  INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    session_key  TEXT NOT NULL,
    role         TEXT NOT NULL,
    content      TEXT NOT NULL DEFAULT '',
    tool_calls   TEXT DEFAULT NULL,
    tool_call_id TEXT DEFAULT NULL,
    created_at   INTEGER NOT NULL,
    FOREIGN KEY (session_key) REFERENCES sessions(session_key) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_key, id);

CREATE TABLE IF NOT EXISTS memory (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS state (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute("PRAGMA journal_mode = WAL;")


def _touch_session(connection: sqlite3.Connection, session_key: str, now: int) -> None:
    connection.execute(
        "INSERT OR IGNORE INTO sessions (session_key, summary, created_at, updated_at) VALUES (?, '', ?, ?)",
        (session_key, now, now),
    )


def _row_to_message(row: sqlite3.Row) -> dict[str, Any]:
    msg: dict[str, Any] = {"role": row["role"], "content": row["content"]}
    if row["tool_calls"]:
        try:
            msg["tool_calls"] = json.loads(row["tool_calls"])
        except json.JSONDecodeError:
            logger.warning(f"Dropping unreadable tool_calls on message {row['id']}")
    if row["tool_call_id"]:
        msg["tool_call_id"] = row["tool_call_id"]
    return msg


class SQLiteStore:
    """
    Session history, summaries, memory KV and opaque state blobs in one SQLite file.

    Every public method is a single atomic operation. Sessions are created
    implicitly on first access, and `updated_at` is refreshed whenever
    messages or the summary change.
    """

    def __init__(self, db_path: str | Path):
        self._db_path = str(Path(db_path).expanduser())
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def init(self) -> None:
        """Create the database file and schema."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        def _init() -> None:
            with self._connect() as connection:
                connection.executescript(_SCHEMA)
                connection.commit()

        await asyncio.to_thread(_init)
        logger.info(f"Store initialised at {self._db_path}")

    # ----- sessions -----

    async def get_session_history(self, session_key: str) -> list[dict[str, Any]]:
        def _read() -> list[dict[str, Any]]:
            with self._connect() as connection:
                _touch_session(connection, session_key, _now_ms())
                connection.commit()
                rows = connection.execute(
                    "SELECT * FROM messages WHERE session_key = ? ORDER BY id ASC",
                    (session_key,),
                ).fetchall()
                return [_row_to_message(row) for row in rows]

        async with self._write_lock:
            return await asyncio.to_thread(_read)

    async def add_message(
        self,
        session_key: str,
        role: str,
        content: str,
        tool_calls: list[dict[str, Any]] | None = None,
        tool_call_id: str | None = None,
    ) -> None:
        def _insert() -> None:
            now = _now_ms()
            with self._connect() as connection:
                _touch_session(connection, session_key, now)
                connection.execute(
                    "INSERT INTO messages (session_key, role, content, tool_calls, tool_call_id, created_at)"
                    " VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        session_key,
                        role,
                        content or "",
                        json.dumps(tool_calls, ensure_ascii=False) if tool_calls else None,
                        tool_call_id or None,
                        now,
                    ),
                )
                connection.execute(
                    "UPDATE sessions SET updated_at = ? WHERE session_key = ?",
                    (now, session_key),
                )
                connection.commit()

        async with self._write_lock:
            await asyncio.to_thread(_insert)

    async def get_session_summary(self, session_key: str) -> str:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT summary FROM sessions WHERE session_key = ?",
            (session_key,),
        )
        return (row["summary"] or "") if row else ""

    async def set_session_summary(self, session_key: str, summary: str) -> None:
        def _update() -> None:
            now = _now_ms()
            with self._connect() as connection:
                _touch_session(connection, session_key, now)
                connection.execute(
                    "UPDATE sessions SET summary = ?, updated_at = ? WHERE session_key = ?",
                    (summary or "", now, session_key),
                )
                connection.commit()

        async with self._write_lock:
            await asyncio.to_thread(_update)

    async def truncate_history(self, session_key: str, keep_last: int) -> None:
        """Delete all but the newest `keep_last` messages of a session."""
        def _truncate() -> None:
            with self._connect() as connection:
                rows = connection.execute(
                    "SELECT id FROM messages WHERE session_key = ? ORDER BY id ASC",
                    (session_key,),
                ).fetchall()
                if len(rows) <= keep_last:
                    return
                doomed = [row["id"] for row in rows[: len(rows) - keep_last]]
                placeholders = ",".join("?" for _ in doomed)
                connection.execute(f"DELETE FROM messages WHERE id IN ({placeholders})", doomed)
                connection.execute(
                    "UPDATE sessions SET updated_at = ? WHERE session_key = ?",
                    (_now_ms(), session_key),
                )
                connection.commit()

        async with self._write_lock:
            await asyncio.to_thread(_truncate)

    async def set_history(self, session_key: str, messages: list[dict[str, Any]]) -> None:
        """Replace the whole history of a session."""
        def _replace() -> None:
            now = _now_ms()
            with self._connect() as connection:
                _touch_session(connection, session_key, now)
                connection.execute("DELETE FROM messages WHERE session_key = ?", (session_key,))
                connection.executemany(
                    "INSERT INTO messages (session_key, role, content, tool_calls, tool_call_id, created_at)"
                    " VALUES (?, ?, ?, ?, ?, ?)",
                    [
                        (
                            session_key,
                            m["role"],
                            m.get("content") or "",
                            json.dumps(m["tool_calls"], ensure_ascii=False) if m.get("tool_calls") else None,
                            m.get("tool_call_id") or None,
                            now,
                        )
                        for m in messages
                    ],
                )
                connection.execute(
                    "UPDATE sessions SET updated_at = ? WHERE session_key = ?",
                    (now, session_key),
                )
                connection.commit()

        async with self._write_lock:
            await asyncio.to_thread(_replace)

    async def list_sessions(self) -> list[dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT s.session_key, s.created_at, s.updated_at, COUNT(m.id) AS message_count "
            "FROM sessions s LEFT JOIN messages m ON m.session_key = s.session_key "
            "GROUP BY s.session_key ORDER BY s.updated_at DESC",
        )
        return [dict(row) for row in rows]

    # ----- memory -----

    async def get_memory(self, key: str) -> str | None:
        row = await asyncio.to_thread(self._fetchone, "SELECT value FROM memory WHERE key = ?", (key,))
        return row["value"] if row else None

    async def set_memory(self, key: str, value: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO memory (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, _now_ms()),
            )

    async def list_memory(self, limit: int = 200) -> list[dict[str, Any]]:
        safe_limit = max(1, min(int(limit), 1000))
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT key, value, updated_at FROM memory ORDER BY updated_at DESC LIMIT ?",
            (safe_limit,),
        )
        return [dict(row) for row in rows]

    async def delete_memory(self, key: str) -> int:
        async with self._write_lock:
            return await asyncio.to_thread(self._execute, "DELETE FROM memory WHERE key = ?", (key,))

    # ----- state -----

    async def get_state(self, key: str) -> str | None:
        row = await asyncio.to_thread(self._fetchone, "SELECT value FROM state WHERE key = ?", (key,))
        return row["value"] if row else None

    async def set_state(self, key: str, value: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO state (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, _now_ms()),
            )

    # ----- helpers -----

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            _ensure_pragmas(connection)
            with connection:
                yield connection
        finally:
            connection.close()

    def _execute(self, query: str, params: tuple = ()) -> int:
        with self._connect() as connection:
            cursor = connection.execute(query, params)
            connection.commit()
            return cursor.rowcount

    def _fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(query, params).fetchall()

    def _fetchone(self, query: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(query, params).fetchone()
