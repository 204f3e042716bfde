"""Immutable events consumed by the session.

Ingestion events are produced by the background pipeline; input events are
produced by the presentation layer. Both are handled by the same consumer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from .models import IncomingMessage


# ==================== Ingestion ====================


@dataclass(frozen=True)
class MessagesReceived:
    """One non-empty batch from a single receive call."""

    messages: Tuple[IncomingMessage, ...]


@dataclass(frozen=True)
class ReceiveFailed:
    """A receive call failed; the pipeline keeps running."""

    error: str


IngestionEvent = Union[MessagesReceived, ReceiveFailed]


# ==================== Input ====================


class NavigateTo(Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    FIRST = "first"
    LAST = "last"


@dataclass(frozen=True)
class Navigate:
    to: NavigateTo


@dataclass(frozen=True)
class StartComposing:
    pass


@dataclass(frozen=True)
class StartAddingRecipient:
    pass


@dataclass(frozen=True)
class EditInput:
    """Characters typed into the input buffer."""

    text: str


@dataclass(frozen=True)
class Backspace:
    pass


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class ForceSync:
    pass


InputEvent = Union[
    Navigate,
    StartComposing,
    StartAddingRecipient,
    EditInput,
    Backspace,
    Confirm,
    Cancel,
    Quit,
    ForceSync,
]


@dataclass(frozen=True)
class KeyPress:
    """A raw key, interpreted against the mode current when it is handled."""

    key: str
    character: Optional[str] = None
