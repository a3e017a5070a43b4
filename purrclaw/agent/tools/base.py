"""Base class for agent tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

SendFileCallback = Callable[[str, str | None], Awaitable[None]]


@dataclass
class ToolResult:
    """
    Outcome of one tool call.

    `for_llm` is flattened into the tool message the model sees; `for_user`
    is what a channel may echo to a human. `silent` suppresses that echo.
    """

    for_llm: str
    for_user: str = ""
    is_error: bool = False
    silent: bool = False

    @classmethod
    def ok(cls, for_llm: str, for_user: str | None = None, silent: bool = False) -> "ToolResult":
        return cls(for_llm=for_llm, for_user=for_llm if for_user is None else for_user, silent=silent)

    @classmethod
    def error(cls, message: str, for_user: str | None = None) -> "ToolResult":
        return cls(for_llm=message, for_user=message if for_user is None else for_user, is_error=True)

    def llm_content(self) -> str:
        """Text placed into the transcript for this result."""
        return self.for_llm or ("Error" if self.is_error else "")


@dataclass
class ToolContext:
    """Routing and budget information for a single tool call."""

    session_key: str = ""
    channel: str = ""
    chat_id: str = ""
    timeout: float | None = None
    can_spawn_subagents: bool = True
    send_file: SendFileCallback | None = None


class Tool(ABC):
    """
    Abstract base class for agent tools.

    Tools are capabilities the agent can call, e.g. reading files, running
    commands or scheduling reminders.
    """

    _TYPE_MAP = {
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "array": list,
        "object": dict,
    }

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name used in function calls."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does."""

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""

    @abstractmethod
    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        """
        Execute the tool with given parameters.

        Args:
            context: Routing info for the calling session.
            **kwargs: Tool-specific parameters.

        Returns:
            ToolResult with text for the model and for the user.
        """

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """Validate top-level parameters against the schema. Returns error list (empty if valid)."""
        schema = self.parameters or {}
        errors: list[str] = []
        for key in schema.get("required", []):
            if key not in params:
                errors.append(f"missing required {key}")

        properties = schema.get("properties", {})
        for key, value in params.items():
            prop = properties.get(key)
            if not prop:
                continue
            expected = self._TYPE_MAP.get(prop.get("type", ""))
            if expected is None:
                continue
            # bool is an int subclass; don't let it pass as a number
            if isinstance(value, bool) and prop.get("type") in ("integer", "number"):
                errors.append(f"{key} should be {prop['type']}")
            elif not isinstance(value, expected):
                errors.append(f"{key} should be {prop['type']}")
            elif "enum" in prop and value not in prop["enum"]:
                errors.append(f"{key} must be one of {prop['enum']}")
        return errors

    def to_schema(self) -> dict[str, Any]:
        """Convert tool to OpenAI function schema format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
