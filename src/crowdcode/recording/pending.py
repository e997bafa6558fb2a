"""Per-file buffers of user edits not yet correlated with an on-disk change."""

from __future__ import annotations

from collections import deque

from crowdcode.host import DocumentChange

MAX_PENDING_EDITS_PER_FILE = 1000


class PendingEditBuffer:
    """Ordered user edits per file, hard-capped per file.

    A file whose buffer overflowed can no longer be replayed exactly; it is
    reported as unreliable until its next correlation clears it.
    """

    def __init__(self, max_per_file: int = MAX_PENDING_EDITS_PER_FILE) -> None:
        self._max = max_per_file
        self._edits: dict[str, deque[DocumentChange]] = {}
        self._overflowed: set[str] = set()

    def add(self, file: str, edit: DocumentChange) -> None:
        edits = self._edits.setdefault(file, deque(maxlen=self._max))
        if len(edits) == self._max:
            self._overflowed.add(file)
        edits.append(edit)

    def get(self, file: str) -> list[DocumentChange]:
        return list(self._edits.get(file, ()))

    def is_reliable(self, file: str) -> bool:
        return file not in self._overflowed

    def clear_file(self, file: str) -> None:
        self._edits.pop(file, None)
        self._overflowed.discard(file)

    def clear(self) -> None:
        self._edits.clear()
        self._overflowed.clear()

    def __len__(self) -> int:
        return sum(len(edits) for edits in self._edits.values())
