import asyncio
import json

from purrclaw.agent.tools.base import ToolContext
from purrclaw.agent.tools.reminder import ReminderCreateTool, ReminderDeleteTool, ReminderListTool
from purrclaw.reminders import service as reminder_service
from purrclaw.reminders.service import STATE_KEY, ReminderService, ReminderStatus


class Inbox:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.delivered = []
        self.event = asyncio.Event()

    async def __call__(self, channel, chat_id, text):
        self.delivered.append((channel, chat_id, text))
        self.event.set()
        if self.fail:
            raise RuntimeError("telegram is down")


async def _stored(store):
    return json.loads(await store.get_state(STATE_KEY) or "[]")


async def test_create_clamps_delay_and_persists(store):
    service = ReminderService(store)

    short = await service.create("s1", "telegram", "42", "stretch", in_seconds=1)
    default = await service.create("s1", "telegram", "42", "drink water")

    assert short.due_at - short.created_at == 5000
    assert default.due_at - default.created_at == 60000
    assert {r["id"] for r in await _stored(store)} == {short.id, default.id}
    assert service.armed_ids() == {short.id, default.id}
    await service.stop()


async def test_reminder_fires_once_and_is_marked_sent(store, monkeypatch):
    service = ReminderService(store, min_seconds=0)
    inbox = Inbox()
    service.set_notifier(inbox)

    reminder = await service.create("s1", "telegram", "42", "call mom", in_seconds=0.05)
    await asyncio.wait_for(inbox.event.wait(), timeout=2)
    await asyncio.sleep(0.05)

    assert inbox.delivered == [("telegram", "42", "⏰ Reminder: call mom")]
    assert (await _stored(store))[0]["status"] == ReminderStatus.SENT.value
    assert reminder.id not in service.armed_ids()
    assert await service.list_by_session("s1") == []


async def test_notifier_failure_still_marks_sent(store):
    service = ReminderService(store, min_seconds=0)
    inbox = Inbox(fail=True)
    service.set_notifier(inbox)

    await service.create("s1", "cli", "direct", "flaky", in_seconds=0.01)
    await asyncio.wait_for(inbox.event.wait(), timeout=2)
    await asyncio.sleep(0.05)

    assert len(inbox.delivered) == 1
    assert (await _stored(store))[0]["status"] == "sent"


async def test_pending_reminder_survives_restart(store, monkeypatch):
    first = ReminderService(store)
    reminder = await first.create("s1", "telegram", "42", "after restart", in_seconds=5)
    await first.stop()

    # Pretend the process was down until just before the due time
    real_now = reminder_service._now_ms
    monkeypatch.setattr(reminder_service, "_now_ms", lambda: real_now() + 4950)

    second = ReminderService(store)
    inbox = Inbox()
    second.set_notifier(inbox)
    await second.start()
    assert reminder.id in second.armed_ids()

    await asyncio.wait_for(inbox.event.wait(), timeout=2)
    await asyncio.sleep(0.05)

    assert inbox.delivered == [("telegram", "42", "⏰ Reminder: after restart")]
    assert reminder_service._now_ms() >= reminder.due_at
    assert (await _stored(store))[0]["status"] == "sent"
    await second.stop()


async def test_delete_cancels_timer_and_respects_session(store):
    service = ReminderService(store)
    reminder = await service.create("owner", "cli", "direct", "secret", in_seconds=30)

    assert await service.delete_by_id(reminder.id, session_key="stranger") is False
    assert await service.delete_by_id(reminder.id, session_key="owner") is True
    assert await service.delete_by_id(reminder.id, session_key="owner") is False

    assert reminder.id not in service.armed_ids()
    assert (await _stored(store))[0]["status"] == "cancelled"
    assert await service.list_by_session("owner") == []


async def test_list_by_session_sorted_by_due_time(store):
    service = ReminderService(store)
    later = await service.create("s1", "cli", "direct", "later", in_seconds=120)
    sooner = await service.create("s1", "cli", "direct", "sooner", in_seconds=30)
    await service.create("s2", "cli", "direct", "other", in_seconds=10)

    items = await service.list_by_session("s1")

    assert [r.id for r in items] == [sooner.id, later.id]
    await service.stop()


async def test_corrupt_state_reads_as_empty(store):
    await store.set_state(STATE_KEY, "{broken")
    service = ReminderService(store)

    await service.start()

    assert await service.list_by_session("s1") == []
    await service.stop()


async def test_reminder_tools_round_trip(store):
    service = ReminderService(store)
    ctx = ToolContext(session_key="s1", channel="telegram", chat_id="42")

    created = await ReminderCreateTool(service).execute(ctx, text="feed the cat", in_seconds=60)
    listing = await ReminderListTool(service).execute(ctx)
    reminder_id = (await service.list_by_session("s1"))[0].id
    deleted = await ReminderDeleteTool(service).execute(ctx, id=reminder_id)
    invalid = await ReminderCreateTool(service).execute(ctx, text="x", in_seconds=0)

    assert "Reminder created" in created.for_llm
    assert "feed the cat" in listing.for_llm
    assert "Reminder deleted" in deleted.for_llm
    assert invalid.is_error
    await service.stop()


async def test_cancel_during_delivery_is_not_overwritten(store):
    service = ReminderService(store, min_seconds=0)
    delivered = asyncio.Event()

    async def cancelling_notifier(channel, chat_id, text):
        reminder_id = (await _stored(store))[0]["id"]
        assert await service.delete_by_id(reminder_id)
        delivered.set()

    service.set_notifier(cancelling_notifier)
    await service.create("s1", "cli", "direct", "race", in_seconds=0.01)
    await asyncio.wait_for(delivered.wait(), timeout=2)
    await asyncio.sleep(0.05)

    assert (await _stored(store))[0]["status"] == ReminderStatus.CANCELLED.value


async def test_malformed_entries_survive_rewrites(store):
    junk = {"id": "broken", "text": "no due time"}
    await store.set_state(STATE_KEY, json.dumps([junk]))
    service = ReminderService(store)

    reminder = await service.create("s1", "cli", "direct", "valid", in_seconds=60)
    await service.delete_by_id(reminder.id)

    stored = await _stored(store)
    assert junk in stored
    assert [r["status"] for r in stored if r.get("id") == reminder.id] == ["cancelled"]
    await service.stop()
