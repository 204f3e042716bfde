"""Conversation Registry: known targets, display order and unread counters."""

from typing import Dict, Iterable, List, Optional

from .models import Target


class ConversationRegistry:
    """
    The set of known conversations keyed by conversation key.

    Display order is case-insensitive by display name and is recomputed by
    `resort()`. Indices into `targets` are not stable across resorts, so
    callers holding a selection index must re-clamp after mutating.
    """

    def __init__(self, targets: Iterable[Target] = ()):
        self._targets: List[Target] = []
        self._by_key: Dict[str, Target] = {}
        self._unread: Dict[str, int] = {}
        for target in targets:
            self.add(target)
        self.resort()

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, conversation_key: object) -> bool:
        return conversation_key in self._by_key

    @property
    def targets(self) -> List[Target]:
        """Targets in display order (a copy)."""
        return list(self._targets)

    def get(self, conversation_key: str) -> Optional[Target]:
        return self._by_key.get(conversation_key)

    def at(self, index: Optional[int]) -> Optional[Target]:
        if index is None or not 0 <= index < len(self._targets):
            return None
        return self._targets[index]

    def index_of(self, conversation_key: str) -> Optional[int]:
        for i, target in enumerate(self._targets):
            if target.conversation_key == conversation_key:
                return i
        return None

    def add(self, target: Target) -> bool:
        """Insert a target unless its key is already known. Does not resort."""
        if target.conversation_key in self._by_key:
            return False
        self._targets.append(target)
        self._by_key[target.conversation_key] = target
        return True

    def resort(self) -> None:
        # list.sort is stable, so equal names keep insertion order
        self._targets.sort(key=lambda t: t.sort_key)

    # ==================== Unread counters ====================

    def unread(self, conversation_key: str) -> int:
        return self._unread.get(conversation_key, 0)

    def increment_unread(self, conversation_key: str) -> int:
        count = self._unread.get(conversation_key, 0) + 1
        self._unread[conversation_key] = count
        return count

    def clear_unread(self, conversation_key: str) -> bool:
        """Drop the counter for a conversation. Returns True if one existed."""
        return self._unread.pop(conversation_key, None) is not None

    def unread_counts(self) -> Dict[str, int]:
        return dict(self._unread)

    def total_unread(self) -> int:
        return sum(self._unread.values())
