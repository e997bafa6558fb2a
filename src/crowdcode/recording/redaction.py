"""Panic redaction of the unflushed tail of the event log.

Repeated presses in quick succession widen the window; a pause resets it.
Events already persisted to chunks are out of reach.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from crowdcode.recording.models import Event


@dataclass(frozen=True, slots=True)
class RedactionResult:
    removed: int
    window_sec: float
    cutoff_ms: int


class PanicRedactor:
    """Tracks the growing redaction window across presses."""

    def __init__(
        self,
        *,
        base_window: float = 10.0,
        step: float = 10.0,
        burst_gap: float = 3.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_window = base_window
        self._step = step
        self._burst_gap = burst_gap
        self._clock = clock
        self._window = base_window
        self._last_press: float | None = None

    def next_window(self) -> tuple[float, float]:
        """Register a press. Returns (now, window) in seconds."""
        now = self._clock()
        if self._last_press is not None and now - self._last_press <= self._burst_gap:
            self._window += self._step
        else:
            self._window = self._base_window
        self._last_press = now
        return now, self._window

    def redact(self, events: list[Event]) -> tuple[list[Event], RedactionResult]:
        """Drop every event with ``timestamp >= now - window``."""
        now, window = self.next_window()
        cutoff_ms = int((now - window) * 1000)
        kept = [e for e in events if e.timestamp < cutoff_ms]
        return kept, RedactionResult(
            removed=len(events) - len(kept), window_sec=window, cutoff_ms=cutoff_ms
        )

    def reset(self) -> None:
        self._window = self._base_window
        self._last_press = None
