"""At-most-once "service unavailable" notice per blocked conversation.

State lives in process memory only. A restart forgets every mark, which costs
at most one repeated notice per conversation.
"""

import threading
from typing import Hashable


class NotificationThrottle:
    def __init__(self):
        self._sent: set[Hashable] = set()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._sent

    def set(self, key: Hashable) -> None:
        with self._lock:
            self._sent.add(key)

    def clear(self, key: Hashable) -> bool:
        """Forget the mark; returns True if one existed."""
        with self._lock:
            if key in self._sent:
                self._sent.discard(key)
                return True
            return False

    def try_mark(self, key: Hashable) -> bool:
        """Set the mark and return True only for the caller that set it first."""
        with self._lock:
            if key in self._sent:
                return False
            self._sent.add(key)
            return True

    def reset(self) -> None:
        with self._lock:
            self._sent.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)
