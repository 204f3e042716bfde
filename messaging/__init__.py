"""Conversation state, history and message ingestion."""

from .ingestion import IngestionPipeline
from .models import ChatMessage, IncomingMessage, Mode, Target, TargetKind
from .registry import ConversationRegistry
from .runtime import SessionRuntime
from .scrollback import ScrollbackRecord, ScrollbackStore
from .state import SessionState, Snapshot

__all__ = [
    "ChatMessage",
    "ConversationRegistry",
    "IncomingMessage",
    "IngestionPipeline",
    "Mode",
    "ScrollbackRecord",
    "ScrollbackStore",
    "SessionRuntime",
    "SessionState",
    "Snapshot",
    "Target",
    "TargetKind",
]
