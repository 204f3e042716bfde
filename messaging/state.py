"""
Session State Machine

The single owner of the conversation registry, message buffers, unread
counters and interaction mode. Ingestion events and user input are applied
here, one at a time, by the consumer task; nothing else mutates this state.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from signal_cli.exceptions import SignalCliError

from .events import (
    Backspace,
    Cancel,
    Confirm,
    EditInput,
    ForceSync,
    IngestionEvent,
    InputEvent,
    MessagesReceived,
    Navigate,
    NavigateTo,
    Quit,
    ReceiveFailed,
    StartAddingRecipient,
    StartComposing,
)
from .exceptions import PersistenceError, RecipientValidationError
from .models import (
    ChatMessage,
    IncomingMessage,
    Mode,
    Target,
    TargetKind,
    contact_key,
)
from .notifications import Notifier, truncate_body
from .registry import ConversationRegistry
from .scrollback import ScrollbackStore

MIN_RECIPIENT_LENGTH = 8

STATUS_NO_TARGET = "no target selected; press 'a' to add a recipient"
STATUS_ADD_RECIPIENT = (
    "add recipient: type E.164 number like +15551234567, Enter to add, Esc to cancel"
)
STATUS_BAD_RECIPIENT = "recipient must look like +15551234567"


class MessageClient(Protocol):
    """The subset of SignalCli the session needs."""

    async def send_to_number(self, account: str, recipient: str, body: str) -> None: ...

    async def send_to_group(self, account: str, group_id: str, body: str) -> None: ...

    async def receive(self, account: str, timeout_secs: int = 1) -> List[IncomingMessage]: ...


def validate_recipient(address: str) -> str:
    """
    Check that an address looks like an international phone number.

    Returns:
        The trimmed address

    Raises:
        RecipientValidationError: if it lacks a leading '+' or is too short.
    """
    number = address.strip()
    if not number.startswith("+") or len(number) < MIN_RECIPIENT_LENGTH:
        raise RecipientValidationError(STATUS_BAD_RECIPIENT)
    return number


@dataclass(frozen=True)
class TargetView:
    target: Target
    unread: int


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of the session for rendering."""

    account: str
    targets: Tuple[TargetView, ...]
    selected: Optional[int]
    messages: Tuple[ChatMessage, ...]
    mode: Mode
    status: str
    input: str
    total_unread: int

    @property
    def selected_target(self) -> Optional[Target]:
        if self.selected is None or not 0 <= self.selected < len(self.targets):
            return None
        return self.targets[self.selected].target


class SessionState:
    """
    Authoritative session state.

    Args:
        account: Local account number used for sends and receives
        client: signal-cli client (or compatible)
        registry: Known conversations
        scrollback: History store; also used for replay when saving is off
        save_scrollback: Whether new messages are appended to scrollback
        notifier: Desktop notifier, or None to disable notifications
        receive_timeout: Timeout for the inline receive of a forced sync
    """

    def __init__(
        self,
        account: str,
        client: MessageClient,
        registry: Optional[ConversationRegistry] = None,
        scrollback: Optional[ScrollbackStore] = None,
        save_scrollback: bool = True,
        notifier: Optional[Notifier] = None,
        receive_timeout: int = 1,
        status: str = "",
    ):
        self.account = account
        self._client = client
        self.registry = registry if registry is not None else ConversationRegistry()
        self._scrollback = scrollback
        self._save_scrollback = save_scrollback and scrollback is not None
        self._notifier = notifier
        self._receive_timeout = receive_timeout

        self.mode = Mode.NORMAL
        self.input = ""
        self.status = status
        self.quit_requested = False
        self.selected: Optional[int] = None
        self._messages: Dict[str, List[ChatMessage]] = {}
        self._clamp_selection()

    # ==================== Queries ====================

    def selected_target(self) -> Optional[Target]:
        return self.registry.at(self.selected)

    def messages_for(self, conversation_key: str) -> List[ChatMessage]:
        return list(self._messages.get(conversation_key, []))

    def snapshot(self) -> Snapshot:
        target = self.selected_target()
        messages = self._messages.get(target.conversation_key, []) if target else []
        return Snapshot(
            account=self.account,
            targets=tuple(
                TargetView(t, self.registry.unread(t.conversation_key))
                for t in self.registry.targets
            ),
            selected=self.selected,
            messages=tuple(messages),
            mode=self.mode,
            status=self.status,
            input=self.input,
            total_unread=self.registry.total_unread(),
        )

    # ==================== Selection ====================

    def _clamp_selection(self) -> None:
        count = len(self.registry)
        if count == 0:
            self.selected = None
        elif self.selected is None:
            self.selected = 0
        else:
            self.selected = max(0, min(self.selected, count - 1))

    def _mark_selected_read(self) -> None:
        target = self.selected_target()
        if target is not None:
            self.registry.clear_unread(target.conversation_key)

    def select(self, index: int) -> None:
        """Move the selection (clamped) and mark the new conversation read."""
        if len(self.registry) == 0:
            self.selected = None
            return
        self.selected = index
        self._clamp_selection()
        self._mark_selected_read()

    def navigate(self, to: NavigateTo) -> None:
        if self.selected is None:
            return
        if to is NavigateTo.NEXT:
            self.select(self.selected + 1)
        elif to is NavigateTo.PREVIOUS:
            self.select(self.selected - 1)
        elif to is NavigateTo.FIRST:
            self.select(0)
        elif to is NavigateTo.LAST:
            self.select(len(self.registry) - 1)

    # ==================== History ====================

    def load_history(self, limit: int) -> int:
        """Replay the scrollback tail of every known conversation into memory."""
        if self._scrollback is None:
            return 0
        loaded = 0
        for target in self.registry.targets:
            messages = self._scrollback.load_messages(target.conversation_key, limit)
            if messages:
                self._messages.setdefault(target.conversation_key, []).extend(messages)
                loaded += len(messages)
        logger.info(f"Loaded {loaded} scrollback message(s)")
        return loaded

    def _persist(self, conversation_key: str, message: ChatMessage) -> bool:
        """Best-effort scrollback append. Returns False if the write failed."""
        if not self._save_scrollback or self._scrollback is None:
            return True
        try:
            self._scrollback.append_message(conversation_key, message)
        except PersistenceError as e:
            logger.warning(f"Scrollback not saved for {conversation_key}: {e}")
            return False
        return True

    # ==================== Ingestion ====================

    def apply(self, event: IngestionEvent) -> None:
        if isinstance(event, MessagesReceived):
            self.ingest(event.messages)
        elif isinstance(event, ReceiveFailed):
            self.status = f"receive error: {event.error}"

    def ingest(self, messages: Sequence[IncomingMessage]) -> int:
        """
        Apply one inbound batch in order.

        Returns:
            Number of messages that became visible.
        """
        target = self.selected_target()
        selected_key = target.conversation_key if target else None

        accepted = 0
        for msg in messages:
            key = msg.conversation_key
            if key not in self.registry:
                new_target = Target.from_conversation_key(key)
                if new_target is None:
                    logger.debug(f"Dropping message for unaddressable key {key}")
                    continue
                self.registry.add(new_target)
                logger.info(f"New conversation {key}")

            if key != selected_key:
                self.registry.increment_unread(key)

            chat = ChatMessage.inbound(msg)
            self._persist(key, chat)

            if self._notifier is not None:
                self._notify(key, msg)

            self._messages.setdefault(key, []).append(chat)
            accepted += 1

        self.registry.resort()
        self._clamp_selection()
        return accepted

    def _notify(self, conversation_key: str, msg: IncomingMessage) -> None:
        target = self.registry.get(conversation_key)
        chat = target.display_name if target else conversation_key
        try:
            self._notifier.notify(chat, msg.source or "unknown", truncate_body(msg.body))
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

    async def force_sync(self) -> None:
        """Run one receive inline and ingest the result."""
        try:
            messages = await self._client.receive(self.account, self._receive_timeout)
        except SignalCliError as e:
            self.status = f"sync error: {e}"
            return
        if not messages:
            self.status = "sync: no new messages"
            return
        accepted = self.ingest(messages)
        self.status = f"sync: received {accepted} message(s)"

    # ==================== Actions ====================

    async def send(self, body: str) -> bool:
        """
        Send to the selected conversation.

        On success the message is appended to scrollback and then to the
        in-memory buffer. On failure nothing but the status line changes.
        """
        target = self.selected_target()
        if target is None:
            self.status = "no target selected"
            return False

        try:
            if target.kind is TargetKind.GROUP:
                await self._client.send_to_group(self.account, target.address, body)
            else:
                await self._client.send_to_number(self.account, target.address, body)
        except SignalCliError as e:
            self.status = f"send error: {e}"
            return False

        message = ChatMessage.outbound(self.account, body)
        saved = self._persist(target.conversation_key, message)
        self._messages.setdefault(target.conversation_key, []).append(message)
        self.status = "sent" if saved else "sent (scrollback not saved)"
        return True

    def add_recipient(self, address: str) -> Target:
        """
        Insert (or reuse) a direct conversation and select it.

        Raises:
            RecipientValidationError: if the address is malformed.
        """
        number = validate_recipient(address)
        key = contact_key(number)
        if self.registry.add(Target.for_contact(number)):
            self.registry.resort()
        self.select(self.registry.index_of(key))
        return self.registry.get(key)

    # ==================== Input ====================

    def _enter_mode(self, mode: Mode) -> None:
        logger.debug(f"Mode {self.mode.value} -> {mode.value}")
        self.mode = mode
        self.input = ""

    async def handle(self, event: InputEvent) -> None:
        """Apply one discrete input event according to the current mode."""
        if isinstance(event, Quit):
            self.quit_requested = True
            return

        if self.mode is Mode.NORMAL:
            await self._handle_normal(event)
        elif self.mode is Mode.COMPOSING:
            await self._handle_composing(event)
        elif self.mode is Mode.ADDING_RECIPIENT:
            self._handle_adding_recipient(event)

    async def _handle_normal(self, event: InputEvent) -> None:
        if isinstance(event, Navigate):
            self.navigate(event.to)
        elif isinstance(event, StartComposing):
            if self.selected_target() is None:
                self.status = STATUS_NO_TARGET
            else:
                self._enter_mode(Mode.COMPOSING)
        elif isinstance(event, StartAddingRecipient):
            self._enter_mode(Mode.ADDING_RECIPIENT)
            self.status = STATUS_ADD_RECIPIENT
        elif isinstance(event, ForceSync):
            await self.force_sync()

    def _edit(self, event: InputEvent) -> bool:
        if isinstance(event, EditInput):
            self.input += event.text
            return True
        if isinstance(event, Backspace):
            self.input = self.input[:-1]
            return True
        return False

    async def _handle_composing(self, event: InputEvent) -> None:
        if self._edit(event):
            return
        if isinstance(event, Cancel):
            self._enter_mode(Mode.NORMAL)
        elif isinstance(event, Confirm):
            body = self.input.strip()
            if not body:
                self.status = "empty message; nothing sent"
                return
            if await self.send(body):
                self._enter_mode(Mode.NORMAL)

    def _handle_adding_recipient(self, event: InputEvent) -> None:
        if self._edit(event):
            return
        if isinstance(event, Cancel):
            self._enter_mode(Mode.NORMAL)
            self.status = "cancelled"
        elif isinstance(event, Confirm):
            try:
                self.add_recipient(self.input)
            except RecipientValidationError as e:
                self.status = str(e)
                return
            self._enter_mode(Mode.NORMAL)
            self.status = "recipient added (press 'i' to message)"
