"""Workspace search tool: case-insensitive line search across workspace files."""

import asyncio
import os
from pathlib import Path
from typing import Any

from purrclaw.agent.tools.base import ToolContext, ToolResult
from purrclaw.agent.tools.filesystem import _FileTool

SKIP_DIRS = {".git", "node_modules", "dist", "build", ".next", ".idea", ".vscode", "__pycache__", ".venv"}
BINARY_SUFFIXES = {
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".ico", ".pdf", ".zip",
    ".tar", ".gz", ".mp4", ".mov", ".mp3", ".wav", ".db", ".sqlite",
}
MAX_FILES = 400
MAX_LINE_CHARS = 300


def _walk_files(root: Path, max_files: int = MAX_FILES) -> list[Path]:
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for filename in sorted(filenames):
            if len(files) >= max_files:
                return files
            path = Path(dirpath) / filename
            if path.suffix.lower() not in BINARY_SUFFIXES:
                files.append(path)
    return files


class WorkspaceSearchTool(_FileTool):
    """Search workspace files and return matching lines with their paths."""

    @property
    def name(self) -> str:
        return "workspace_search"

    @property
    def description(self) -> str:
        return "Search workspace files and return relevant matching lines with file paths."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Text to search for"},
                "max_results": {"type": "integer", "description": "Maximum number of matches (default: 20, max: 100)"},
                "path": {"type": "string", "description": "Optional relative subdirectory to search"},
            },
            "required": ["query"],
        }

    async def execute(
        self,
        context: ToolContext,
        query: str,
        max_results: int | None = None,
        path: str = ".",
        **kwargs: Any,
    ) -> ToolResult:
        query = query.strip()
        if not query:
            return ToolResult.error("query is required")
        try:
            root = self._resolve(path or ".")
        except PermissionError as e:
            return ToolResult.error(f"Error: {e}")
        if not root.is_dir():
            return ToolResult.error(f"Error: Directory not found: {path}")

        limit = max(1, min(max_results or 20, 100))
        matches = await asyncio.to_thread(self._search, root, query.lower(), limit)
        if not matches:
            return ToolResult.ok(f"No matches found for '{query}'")

        out = "\n\n".join(f"{i}. {file}:{line}\n{text}" for i, (file, line, text) in enumerate(matches, 1))
        return ToolResult.ok(out)

    def _search(self, root: Path, needle: str, limit: int) -> list[tuple[str, int, str]]:
        matches: list[tuple[str, int, str]] = []
        for file_path in _walk_files(root):
            try:
                lines = file_path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                continue
            for number, line in enumerate(lines, 1):
                if needle in line.lower():
                    rel = file_path.relative_to(self._workspace) if self._workspace in file_path.parents else file_path
                    matches.append((rel.as_posix(), number, line.strip()[:MAX_LINE_CHARS]))
                    if len(matches) >= limit:
                        return matches
        return matches
