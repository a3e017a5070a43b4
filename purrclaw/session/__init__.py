"""Session persistence."""

from purrclaw.session.store import SQLiteStore

__all__ = ["SQLiteStore"]
