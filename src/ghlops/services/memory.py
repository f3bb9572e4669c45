import logging
from collections import deque
from typing import Any, Deque, List

from ..models import HistoryEntry, UserContext

logger = logging.getLogger(__name__)


class ConversationMemory:
    """Bounded history of conversation turns plus the derived user context.

    Appending beyond ``max_entries`` evicts the oldest entries. The prompt
    window size is chosen by the caller of ``recent_window``.
    """

    def __init__(self, max_entries: int = 20) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_entries)
        self.user_context = UserContext()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def recent_window(self, n: int) -> List[HistoryEntry]:
        """Return the last ``n`` entries in their original order."""
        if n <= 0:
            return []
        return list(self._entries)[-n:]

    def update_user_context(self, key: str, value: Any) -> None:
        if not hasattr(self.user_context, key):
            raise KeyError(f"Unknown user context key: {key}")
        setattr(self.user_context, key, value)
        logger.debug("Updated user context key=%s", key)

    def clear(self) -> None:
        self._entries.clear()
        self.user_context = UserContext()
        logger.info("Conversation history and context cleared")
