"""File system tools: read, write, append, list."""

from pathlib import Path
from typing import Any

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult

_MAX_READ_CHARS = 100_000


def _resolve_path(path: str, workspace: Path, allowed_dir: Path | None) -> Path:
    """Resolve a path against the workspace and enforce directory restriction."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = workspace / candidate
    resolved = candidate.resolve()
    if allowed_dir is not None:
        root = allowed_dir.resolve()
        if resolved != root and root not in resolved.parents:
            raise PermissionError(f"Access denied: path {path} is outside the workspace")
    return resolved


class _FileTool(Tool):
    def __init__(self, workspace: Path, allowed_dir: Path | None = None):
        self._workspace = Path(workspace).expanduser().resolve()
        self._allowed_dir = allowed_dir

    def _resolve(self, path: str) -> Path:
        return _resolve_path(path, self._workspace, self._allowed_dir)


class ReadFileTool(_FileTool):
    """Tool to read file contents."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a file at the given path."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to read"}
            },
            "required": ["path"],
        }

    async def execute(self, context: ToolContext, path: str, **kwargs: Any) -> ToolResult:
        try:
            file_path = self._resolve(path)
            if not file_path.exists():
                return ToolResult.error(f"Error: File not found: {path}")
            if not file_path.is_file():
                return ToolResult.error(f"Error: Not a file: {path}")
            content = file_path.read_text(encoding="utf-8")
        except PermissionError as e:
            return ToolResult.error(f"Error: {e}")
        except UnicodeDecodeError:
            return ToolResult.error(f"Error: {path} is not a UTF-8 text file")

        if len(content) > _MAX_READ_CHARS:
            content = content[:_MAX_READ_CHARS] + f"\n... (truncated, {len(content) - _MAX_READ_CHARS} more chars)"
        return ToolResult.ok(content, silent=True)


class WriteFileTool(_FileTool):
    """Tool to write content to a file."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file at the given path. Creates parent directories if needed."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to write to"},
                "content": {"type": "string", "description": "The content to write"},
            },
            "required": ["path", "content"],
        }

    async def execute(self, context: ToolContext, path: str, content: str, **kwargs: Any) -> ToolResult:
        try:
            file_path = self._resolve(path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
        except PermissionError as e:
            return ToolResult.error(f"Error: {e}")
        return ToolResult.ok(
            f"Successfully wrote {len(content)} bytes to {path}",
            for_user=f"✅ File written: {path}",
        )


class AppendFileTool(_FileTool):
    """Tool to append content to a file."""

    @property
    def name(self) -> str:
        return "append_file"

    @property
    def description(self) -> str:
        return "Append content to the end of a file, creating it if it does not exist."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to append to"},
                "content": {"type": "string", "description": "The content to append"},
            },
            "required": ["path", "content"],
        }

    async def execute(self, context: ToolContext, path: str, content: str, **kwargs: Any) -> ToolResult:
        try:
            file_path = self._resolve(path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "a", encoding="utf-8") as f:
                f.write(content)
        except PermissionError as e:
            return ToolResult.error(f"Error: {e}")
        return ToolResult.ok(f"Appended {len(content)} bytes to {path}", for_user=f"✅ Appended to {path}")


class ListDirTool(_FileTool):
    """Tool to list directory contents."""

    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return "List the contents of a directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The directory path to list"}
            },
            "required": ["path"],
        }

    async def execute(self, context: ToolContext, path: str, **kwargs: Any) -> ToolResult:
        try:
            dir_path = self._resolve(path)
        except PermissionError as e:
            return ToolResult.error(f"Error: {e}")
        if not dir_path.exists():
            return ToolResult.error(f"Error: Directory not found: {path}")
        if not dir_path.is_dir():
            return ToolResult.error(f"Error: Not a directory: {path}")

        items = []
        for item in sorted(dir_path.iterdir()):
            prefix = "📁 " if item.is_dir() else "📄 "
            items.append(f"{prefix}{item.name}")

        if not items:
            return ToolResult.ok(f"Directory {path} is empty", silent=True)
        return ToolResult.ok("\n".join(items), silent=True)
