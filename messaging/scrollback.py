"""
Scrollback Store

Append-only, per-conversation message history on disk. Each conversation key
maps to one JSONL file named after the hex encoding of the key's UTF-8 bytes,
so arbitrary phone numbers and group ids stay filesystem-safe and distinct
keys never collide.

The running process never rewrites or truncates a file; only the in-memory
tail returned by `load_tail` is bounded.
"""

import os
import threading
from collections import deque
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from .exceptions import PersistenceError
from .models import ChatMessage, Direction


class ScrollbackRecord(BaseModel):
    """Durable form of a ChatMessage, one JSON object per line."""

    ts_ms: Optional[int] = None
    # "out" marks a sent message; any other value reads back as inbound
    dir: str
    who: Optional[str] = None
    body: str

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ScrollbackRecord":
        return cls(
            ts_ms=message.timestamp_ms,
            dir=message.direction.value,
            who=message.sender,
            body=message.body,
        )

    def to_message(self) -> ChatMessage:
        return ChatMessage(
            timestamp_ms=self.ts_ms,
            direction=Direction.OUTBOUND if self.dir == "out" else Direction.INBOUND,
            sender=self.who,
            body=self.body,
        )


def scrollback_filename(conversation_key: str) -> str:
    return f"{conversation_key.encode('utf-8').hex()}.jsonl"


class ScrollbackStore:
    """
    Per-conversation JSONL history files in one directory.

    Writes are serialized with a lock so concurrent appenders in one process
    never interleave partial lines.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def path_for(self, conversation_key: str) -> Path:
        return self.directory / scrollback_filename(conversation_key)

    def append(self, conversation_key: str, record: ScrollbackRecord) -> None:
        """
        Append one record as a single JSON line.

        Raises:
            PersistenceError: if the directory or file cannot be written.
        """
        path = self.path_for(conversation_key)
        line = record.model_dump_json() + "\n"
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                logger.error(f"Failed to append scrollback {path}: {e}")
                raise PersistenceError(f"append scrollback {path}: {e}") from e

    def append_message(self, conversation_key: str, message: ChatMessage) -> None:
        self.append(conversation_key, ScrollbackRecord.from_message(message))

    def load_tail(self, conversation_key: str, limit: int) -> List[ScrollbackRecord]:
        """
        Read the last `limit` valid records in write order.

        Blank and unparseable lines are skipped so older or corrupted entries
        never block loading newer ones. A missing or unreadable file yields an
        empty list.
        """
        path = self.path_for(conversation_key)
        if not os.path.exists(path):
            return []

        tail: deque[ScrollbackRecord] = deque(maxlen=max(limit, 0))
        skipped = 0
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                for raw in f:
                    line = raw.strip()
                    if not line:
                        continue
                    try:
                        tail.append(ScrollbackRecord.model_validate_json(line))
                    except ValidationError:
                        skipped += 1
        except OSError as e:
            logger.warning(f"Failed to read scrollback {path}: {e}")
            return []

        if skipped:
            logger.debug(f"Skipped {skipped} unreadable line(s) in {path}")
        return list(tail)

    def load_messages(self, conversation_key: str, limit: int) -> List[ChatMessage]:
        return [r.to_message() for r in self.load_tail(conversation_key, limit)]
