"""Bounded path -> last-known-text cache used for diffing and snapshots."""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Iterator

DEFAULT_MAX_ENTRIES = 5000


class ContentCache:
    """Thread-safe LRU cache keyed by workspace-relative POSIX path."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()
        self._max = max_entries

    def get(self, path: str) -> str | None:
        with self._lock:
            content = self._entries.get(path)
            if content is not None:
                self._entries.move_to_end(path)
            return content

    def set(self, path: str, content: str) -> None:
        with self._lock:
            self._entries[path] = content
            self._entries.move_to_end(path)
            # Evict oldest if over capacity
            while len(self._entries) > self._max:
                self._entries.popitem(last=False)

    def set_if_absent(self, path: str, content: str) -> bool:
        """Populate an entry only if no fresher value exists. Used by warm-up."""
        with self._lock:
            if path in self._entries:
                return False
            self._entries[path] = content
            while len(self._entries) > self._max:
                self._entries.popitem(last=False)
            return True

    def remove(self, path: str) -> str | None:
        with self._lock:
            return self._entries.pop(path, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of all entries, without touching recency."""
        with self._lock:
            return dict(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._entries))
