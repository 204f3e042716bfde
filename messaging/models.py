"""Core data models for conversations and messages."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

CONTACT_PREFIX = "contact:"
GROUP_PREFIX = "group:"

# Inbound events with neither a group nor a sender all land here.
UNKNOWN_CONVERSATION_KEY = "unknown:unknown"


def contact_key(number: str) -> str:
    """Conversation key for a direct conversation with a phone number."""
    return f"{CONTACT_PREFIX}{number}"


def group_key(group_id: str) -> str:
    """Conversation key for a group conversation."""
    return f"{GROUP_PREFIX}{group_id}"


class TargetKind(Enum):
    """Kind of conversation a Target points at."""

    CONTACT = "contact"
    GROUP = "group"


class Direction(Enum):
    """Direction of a chat message relative to the local account."""

    INBOUND = "in"
    OUTBOUND = "out"


class Mode(Enum):
    """Interaction mode of the session."""

    NORMAL = "normal"
    COMPOSING = "composing"  # Text entry bound to the selected conversation
    ADDING_RECIPIENT = "adding_recipient"  # Text entry for a new +E164 target


@dataclass(frozen=True)
class Target:
    """
    A conversation the user can select and message.

    `address` is the E.164 number for contacts and the group id for groups.
    """

    conversation_key: str
    kind: TargetKind
    address: str
    display_name: str

    @property
    def sort_key(self) -> str:
        return self.display_name.lower()

    @classmethod
    def for_contact(cls, number: str, name: Optional[str] = None) -> "Target":
        return cls(
            conversation_key=contact_key(number),
            kind=TargetKind.CONTACT,
            address=number,
            display_name=name or number,
        )

    @classmethod
    def for_group(cls, group_id: str, name: Optional[str] = None) -> "Target":
        return cls(
            conversation_key=group_key(group_id),
            kind=TargetKind.GROUP,
            address=group_id,
            display_name=name or f"group {group_id}",
        )

    @classmethod
    def from_conversation_key(cls, conversation_key: str) -> Optional["Target"]:
        """
        Synthesize a Target from a conversation key's namespace and address.

        Returns None for keys outside the contact/group namespaces (such as
        the unknown bucket), which have nothing to address a reply to.
        """
        if conversation_key.startswith(GROUP_PREFIX):
            return cls.for_group(conversation_key[len(GROUP_PREFIX) :])
        if conversation_key.startswith(CONTACT_PREFIX):
            return cls.for_contact(conversation_key[len(CONTACT_PREFIX) :])
        return None


@dataclass(frozen=True)
class IncomingMessage:
    """A normalized inbound text message decoded from signal-cli output."""

    conversation_key: str
    body: str
    source: Optional[str] = None
    timestamp_ms: Optional[int] = None


@dataclass(frozen=True)
class ChatMessage:
    """
    A message as held in a conversation buffer.

    Outbound messages carry no timestamp: the server-side timestamp is only
    known on delivery confirmation, which is not tracked. `timestamp_ms` of
    None is therefore distinct from a zero timestamp.
    """

    timestamp_ms: Optional[int]
    direction: Direction
    sender: Optional[str]
    body: str

    @classmethod
    def inbound(cls, incoming: IncomingMessage) -> "ChatMessage":
        return cls(
            timestamp_ms=incoming.timestamp_ms,
            direction=Direction.INBOUND,
            sender=incoming.source,
            body=incoming.body,
        )

    @classmethod
    def outbound(cls, account: str, body: str) -> "ChatMessage":
        return cls(
            timestamp_ms=None,
            direction=Direction.OUTBOUND,
            sender=account,
            body=body,
        )

    def format_timestamp(self) -> str:
        """Seconds since the epoch, or '-' when no timestamp is known."""
        if self.timestamp_ms is None:
            return "-"
        return str(self.timestamp_ms // 1000)
