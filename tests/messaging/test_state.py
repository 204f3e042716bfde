"""Tests for messaging/state.py SessionState."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from messaging.events import (
    Backspace,
    Cancel,
    Confirm,
    EditInput,
    ForceSync,
    MessagesReceived,
    Navigate,
    NavigateTo,
    Quit,
    ReceiveFailed,
    StartAddingRecipient,
    StartComposing,
)
from messaging.exceptions import PersistenceError, RecipientValidationError
from messaging.models import ChatMessage, Direction, IncomingMessage, Mode, Target
from messaging.registry import ConversationRegistry
from messaging.scrollback import ScrollbackStore
from messaging.state import SessionState, validate_recipient
from signal_cli.exceptions import SignalCliProcessError

ACCOUNT = "+10000000000"


def _incoming(key: str, body: str = "hi", source: str = "+1", ts: int = 1000):
    return IncomingMessage(conversation_key=key, body=body, source=source, timestamp_ms=ts)


def _client():
    client = MagicMock()
    client.send_to_number = AsyncMock()
    client.send_to_group = AsyncMock()
    client.receive = AsyncMock(return_value=[])
    return client


def _state(tmp_path, targets=(), **kwargs) -> SessionState:
    kwargs.setdefault("client", _client())
    kwargs.setdefault("scrollback", ScrollbackStore(tmp_path / "sb"))
    return SessionState(
        account=ACCOUNT,
        registry=ConversationRegistry(targets),
        **kwargs,
    )


def _people():
    return [
        Target.for_contact("+1", "alice"),
        Target.for_contact("+2", "Bob"),
        Target.for_group("G1", "crew"),
    ]


class TestSelection:
    def test_initial_selection(self, tmp_path):
        assert _state(tmp_path).selected is None
        assert _state(tmp_path, _people()).selected == 0

    def test_navigation_clamps(self, tmp_path):
        state = _state(tmp_path, _people())
        state.navigate(NavigateTo.PREVIOUS)
        assert state.selected == 0
        state.navigate(NavigateTo.LAST)
        assert state.selected == 2
        state.navigate(NavigateTo.NEXT)
        assert state.selected == 2
        state.navigate(NavigateTo.FIRST)
        assert state.selected == 0

    def test_navigation_on_empty_list(self, tmp_path):
        state = _state(tmp_path)
        state.navigate(NavigateTo.NEXT)
        state.select(5)
        assert state.selected is None

    def test_selecting_marks_only_that_conversation_read(self, tmp_path):
        state = _state(tmp_path, _people())
        state.ingest([_incoming("contact:+2"), _incoming("contact:+2"), _incoming("group:G1")])
        assert state.registry.unread("contact:+2") == 2

        state.navigate(NavigateTo.NEXT)

        assert state.selected_target().conversation_key == "contact:+2"
        assert state.registry.unread("contact:+2") == 0
        assert state.registry.unread("group:G1") == 1


class TestIngest:
    def test_unknown_key_creates_one_target(self, tmp_path):
        state = _state(tmp_path, _people())
        batch = [_incoming("contact:+99", body=str(i)) for i in range(3)]

        state.ingest(batch)

        assert len(state.registry) == 4
        assert state.registry.get("contact:+99") == Target.for_contact("+99")
        assert [m.body for m in state.messages_for("contact:+99")] == ["0", "1", "2"]
        assert state.registry.unread("contact:+99") == 3

    def test_group_target_synthesized(self, tmp_path):
        state = _state(tmp_path)
        state.ingest([_incoming("group:NEW")])
        assert state.registry.get("group:NEW").display_name == "group NEW"
        assert state.selected == 0

    def test_unaddressable_messages_dropped(self, tmp_path):
        state = _state(tmp_path, _people())
        assert state.ingest([_incoming("unknown:unknown", source=None)]) == 0
        assert len(state.registry) == 3
        assert state.messages_for("unknown:unknown") == []

    def test_selected_conversation_not_counted_unread(self, tmp_path):
        state = _state(tmp_path, _people())
        state.ingest([_incoming("contact:+1")])
        assert state.registry.unread("contact:+1") == 0
        assert len(state.messages_for("contact:+1")) == 1

    def test_messages_persisted(self, tmp_path):
        store = ScrollbackStore(tmp_path / "sb")
        state = _state(tmp_path, _people(), scrollback=store)
        state.ingest([_incoming("contact:+2", body="saved", ts=5)])

        records = store.load_tail("contact:+2", 10)
        assert [(r.ts_ms, r.dir, r.who, r.body) for r in records] == [(5, "in", "+1", "saved")]

    def test_persistence_disabled(self, tmp_path):
        store = ScrollbackStore(tmp_path / "sb")
        state = _state(tmp_path, _people(), scrollback=store, save_scrollback=False)
        state.ingest([_incoming("contact:+2")])
        assert store.load_tail("contact:+2", 10) == []
        assert len(state.messages_for("contact:+2")) == 1

    def test_persistence_precedes_visibility(self, tmp_path):
        store = MagicMock()
        seen_in_memory = []

        state = _state(tmp_path, _people(), scrollback=store)

        def append_message(key, msg):
            seen_in_memory.append(len(state.messages_for(key)))

        store.append_message.side_effect = append_message
        state.ingest([_incoming("contact:+2"), _incoming("contact:+2")])

        assert seen_in_memory == [0, 1]

    def test_persistence_failure_still_shows_message(self, tmp_path):
        store = MagicMock()
        store.append_message.side_effect = PersistenceError("disk full")
        state = _state(tmp_path, _people(), scrollback=store)

        state.ingest([_incoming("contact:+2")])
        assert len(state.messages_for("contact:+2")) == 1

    def test_notifications_requested(self, tmp_path):
        notifier = MagicMock()
        state = _state(tmp_path, _people(), notifier=notifier)
        state.ingest([_incoming("contact:+2", body="x" * 250, source="+2")])

        chat, sender, body = notifier.notify.call_args[0]
        assert chat == "Bob"
        assert sender == "+2"
        assert body == "x" * 200 + "..."

    def test_notification_failure_is_contained(self, tmp_path):
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("dbus down")
        state = _state(tmp_path, _people(), notifier=notifier)
        state.ingest([_incoming("contact:+2")])
        assert len(state.messages_for("contact:+2")) == 1

    def test_resort_clamps_selection(self, tmp_path):
        state = _state(tmp_path, _people())
        state.select(2)
        state.ingest([_incoming("contact:+0")])
        assert state.selected == 2
        names = [t.display_name for t in state.registry.targets]
        assert names == sorted(names, key=str.lower)

    def test_apply_events(self, tmp_path):
        state = _state(tmp_path, _people())
        state.apply(MessagesReceived((_incoming("contact:+2"),)))
        assert state.registry.unread("contact:+2") == 1

        state.apply(ReceiveFailed("boom"))
        assert state.status == "receive error: boom"


class TestSend:
    @pytest.mark.asyncio
    async def test_send_to_contact(self, tmp_path):
        client = _client()
        store = ScrollbackStore(tmp_path / "sb")
        state = _state(tmp_path, _people(), client=client, scrollback=store)

        assert await state.send("hello") is True

        client.send_to_number.assert_awaited_once_with(ACCOUNT, "+1", "hello")
        msgs = state.messages_for("contact:+1")
        assert msgs[-1].direction is Direction.OUTBOUND
        assert msgs[-1].timestamp_ms is None
        assert msgs[-1].sender == ACCOUNT
        assert store.load_tail("contact:+1", 10)[0].dir == "out"
        assert state.status == "sent"

    @pytest.mark.asyncio
    async def test_send_to_group(self, tmp_path):
        client = _client()
        state = _state(tmp_path, _people(), client=client)
        state.navigate(NavigateTo.LAST)

        await state.send("hey crew")

        client.send_to_group.assert_awaited_once_with(ACCOUNT, "G1", "hey crew")
        client.send_to_number.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_send_changes_nothing(self, tmp_path):
        client = _client()
        client.send_to_number.side_effect = SignalCliProcessError("signal-cli failed (code=1)")
        store = ScrollbackStore(tmp_path / "sb")
        state = _state(tmp_path, _people(), client=client, scrollback=store)
        state.ingest([_incoming("contact:+1", body="earlier")])
        path = store.path_for("contact:+1")
        before_file = path.read_bytes()
        before_msgs = state.messages_for("contact:+1")

        assert await state.send("lost") is False

        assert path.read_bytes() == before_file
        assert state.messages_for("contact:+1") == before_msgs
        assert state.status.startswith("send error:")

    @pytest.mark.asyncio
    async def test_send_without_target(self, tmp_path):
        state = _state(tmp_path)
        assert await state.send("x") is False


class TestAddRecipient:
    def test_validation(self):
        with pytest.raises(RecipientValidationError):
            validate_recipient("5551234567")
        with pytest.raises(RecipientValidationError):
            validate_recipient("+123")
        assert validate_recipient("  +15551234567 ") == "+15551234567"

    def test_adds_and_selects(self, tmp_path):
        state = _state(tmp_path, _people())
        target = state.add_recipient("+15551234567")

        assert target.conversation_key == "contact:+15551234567"
        assert state.selected_target() == target
        names = [t.display_name for t in state.registry.targets]
        assert names == sorted(names, key=str.lower)

    def test_reuses_existing(self, tmp_path):
        state = _state(tmp_path, [Target.for_contact("+15551234567", "Zed"), *_people()])
        state.add_recipient("+15551234567")
        assert len(state.registry) == 4
        assert state.selected_target().display_name == "Zed"

    def test_clears_unread_of_selected(self, tmp_path):
        state = _state(tmp_path, _people())
        state.ingest([_incoming("contact:+15551234567")])
        state.add_recipient("+15551234567")
        assert state.registry.unread("contact:+15551234567") == 0


class TestInputHandling:
    @pytest.mark.asyncio
    async def test_compose_and_send(self, tmp_path):
        client = _client()
        state = _state(tmp_path, _people(), client=client)

        await state.handle(StartComposing())
        assert state.mode is Mode.COMPOSING
        for ch in "hi!":
            await state.handle(EditInput(ch))
        await state.handle(Backspace())
        await state.handle(Confirm())

        client.send_to_number.assert_awaited_once_with(ACCOUNT, "+1", "hi")
        assert state.mode is Mode.NORMAL
        assert state.input == ""

    @pytest.mark.asyncio
    async def test_failed_send_keeps_composing(self, tmp_path):
        client = _client()
        client.send_to_number.side_effect = SignalCliProcessError("nope")
        state = _state(tmp_path, _people(), client=client)

        await state.handle(StartComposing())
        await state.handle(EditInput("draft"))
        await state.handle(Confirm())

        assert state.mode is Mode.COMPOSING
        assert state.input == "draft"

    @pytest.mark.asyncio
    async def test_empty_message_not_sent(self, tmp_path):
        client = _client()
        state = _state(tmp_path, _people(), client=client)
        await state.handle(StartComposing())
        await state.handle(EditInput("   "))
        await state.handle(Confirm())

        client.send_to_number.assert_not_called()
        assert state.status == "empty message; nothing sent"

    @pytest.mark.asyncio
    async def test_compose_requires_target(self, tmp_path):
        state = _state(tmp_path)
        await state.handle(StartComposing())
        assert state.mode is Mode.NORMAL
        assert "no target selected" in state.status

    @pytest.mark.asyncio
    async def test_cancel_compose(self, tmp_path):
        state = _state(tmp_path, _people())
        await state.handle(StartComposing())
        await state.handle(EditInput("abc"))
        await state.handle(Cancel())
        assert state.mode is Mode.NORMAL
        assert state.input == ""

    @pytest.mark.asyncio
    async def test_navigation_ignored_while_typing(self, tmp_path):
        state = _state(tmp_path, _people())
        await state.handle(StartComposing())
        await state.handle(Navigate(NavigateTo.NEXT))
        assert state.selected == 0

    @pytest.mark.asyncio
    async def test_add_recipient_flow(self, tmp_path):
        state = _state(tmp_path, _people())
        await state.handle(StartAddingRecipient())
        assert state.mode is Mode.ADDING_RECIPIENT

        await state.handle(EditInput("5551234567"))
        await state.handle(Confirm())
        assert state.mode is Mode.ADDING_RECIPIENT
        assert state.status == "recipient must look like +15551234567"
        assert len(state.registry) == 3

        await state.handle(Cancel())
        assert state.status == "cancelled"

        await state.handle(StartAddingRecipient())
        await state.handle(EditInput("+15551234567"))
        await state.handle(Confirm())
        assert state.mode is Mode.NORMAL
        assert state.selected_target().address == "+15551234567"

    @pytest.mark.asyncio
    async def test_quit_from_any_mode(self, tmp_path):
        state = _state(tmp_path, _people())
        await state.handle(StartComposing())
        await state.handle(Quit())
        assert state.quit_requested is True

    @pytest.mark.asyncio
    async def test_force_sync(self, tmp_path):
        client = _client()
        state = _state(tmp_path, _people(), client=client, receive_timeout=3)

        await state.handle(ForceSync())
        assert state.status == "sync: no new messages"
        client.receive.assert_awaited_with(ACCOUNT, 3)

        client.receive.return_value = [_incoming("contact:+2"), _incoming("group:G1")]
        await state.handle(ForceSync())
        assert state.status == "sync: received 2 message(s)"
        assert state.registry.total_unread() == 2

        client.receive.side_effect = SignalCliProcessError("offline")
        await state.handle(ForceSync())
        assert state.status == "sync error: offline"

    @pytest.mark.asyncio
    async def test_force_sync_counts_only_visible_messages(self, tmp_path):
        client = _client()
        client.receive.return_value = [
            _incoming("contact:+2"),
            _incoming("unknown:unknown", source=None),
        ]
        state = _state(tmp_path, _people(), client=client)

        await state.handle(ForceSync())

        assert state.status == "sync: received 1 message(s)"


class TestSnapshotAndHistory:
    def test_snapshot(self, tmp_path):
        state = _state(tmp_path, _people())
        state.ingest([_incoming("contact:+1", body="mine"), _incoming("contact:+2")])

        snap = state.snapshot()
        assert snap.account == ACCOUNT
        assert snap.selected_target.conversation_key == "contact:+1"
        assert [m.body for m in snap.messages] == ["mine"]
        assert [v.unread for v in snap.targets] == [0, 1, 0]
        assert snap.total_unread == 1
        assert snap.mode is Mode.NORMAL

    def test_load_history(self, tmp_path):
        store = ScrollbackStore(tmp_path / "sb")
        for i in range(5):
            store.append_message(
                "contact:+2",
                ChatMessage(timestamp_ms=i, direction=Direction.INBOUND, sender="+2", body=str(i)),
            )
        state = _state(tmp_path, _people(), scrollback=store)

        assert state.load_history(limit=3) == 3
        assert [m.body for m in state.messages_for("contact:+2")] == ["2", "3", "4"]
