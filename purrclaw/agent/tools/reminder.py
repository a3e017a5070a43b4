"""Reminder tools for scheduling delayed messages to the current chat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult

if TYPE_CHECKING:
    from purrclaw.reminders.service import ReminderService


class ReminderCreateTool(Tool):
    """Schedule a reminder for the current chat."""

    def __init__(self, service: "ReminderService"):
        self._service = service

    @property
    def name(self) -> str:
        return "reminder_create"

    @property
    def description(self) -> str:
        return "Create a reminder for the current chat after N seconds"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "Reminder text"},
                "in_seconds": {"type": "integer", "description": "Seconds from now"},
            },
            "required": ["text", "in_seconds"],
        }

    async def execute(self, context: ToolContext, text: str, in_seconds: int, **kwargs: Any) -> ToolResult:
        text = text.strip()
        if not text:
            return ToolResult.error("text is required")
        if in_seconds <= 0:
            return ToolResult.error("in_seconds must be a positive integer")

        reminder = await self._service.create(
            session_key=context.session_key,
            channel=context.channel,
            chat_id=context.chat_id,
            text=text,
            in_seconds=in_seconds,
        )
        return ToolResult.ok(
            f"Reminder created: id={reminder.id}, due_in={reminder.seconds_left()}s",
            for_user=f"✅ Reminder set for {in_seconds}s: {text}",
        )


class ReminderListTool(Tool):
    """List pending reminders of the current session."""

    def __init__(self, service: "ReminderService"):
        self._service = service

    @property
    def name(self) -> str:
        return "reminder_list"

    @property
    def description(self) -> str:
        return "List pending reminders for the current chat/session"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        reminders = await self._service.list_by_session(context.session_key)
        if not reminders:
            return ToolResult.ok("No pending reminders.")
        lines = [f"{r.id} | in {r.seconds_left()}s | {r.text}" for r in reminders]
        return ToolResult.ok("\n".join(lines))


class ReminderDeleteTool(Tool):
    """Cancel a pending reminder."""

    def __init__(self, service: "ReminderService"):
        self._service = service

    @property
    def name(self) -> str:
        return "reminder_delete"

    @property
    def description(self) -> str:
        return "Delete a pending reminder by id"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "Reminder ID"}},
            "required": ["id"],
        }

    async def execute(self, context: ToolContext, id: str, **kwargs: Any) -> ToolResult:
        reminder_id = id.strip()
        if not reminder_id:
            return ToolResult.error("id is required")
        if not await self._service.delete_by_id(reminder_id, context.session_key):
            return ToolResult.ok(f"Reminder not found: {reminder_id}")
        return ToolResult.ok(f"Reminder deleted: {reminder_id}", for_user=f"✅ Reminder deleted: {reminder_id}")
