from __future__ import annotations

import threading
from time import monotonic

from clio_connect.schemas.token import TokenRecord


class MemoryTokenCache:
    """Per-process, TTL-bounded read cache in front of the token store.

    Entries may be stale with respect to other processes; the store stays the
    source of truth and is read on every miss.
    """

    def __init__(self, ttl_s: float = 60.0):
        self.ttl_s = ttl_s
        self._entries: dict[str, tuple[float, TokenRecord]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> TokenRecord | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            stored_at, record = entry
            if monotonic() - stored_at > self.ttl_s:
                del self._entries[user_id]
                return None
            return record

    def set(self, user_id: str, record: TokenRecord) -> None:
        with self._lock:
            self._entries[user_id] = (monotonic(), record)

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
