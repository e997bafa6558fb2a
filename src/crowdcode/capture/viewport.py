"""Viewport sampler: polls the focused editor and terminal at fixed frequency.

Design:
- The host flags visibility changes via ``mark_dirty()``; nothing is read
  until the next tick sees the flag
- Scroll-triggered observations identical to the previous one are suppressed
- ``capture_now()`` (post-action observations) bypasses suppression but still
  becomes the reference for the next comparison
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable

import structlog

from crowdcode.capture.models import (
    CursorPosition,
    ObservedState,
    TerminalViewport,
    ViewportState,
)
from crowdcode.host import EditorHost, EditorSnapshot

logger = structlog.get_logger()

POLL_INTERVAL_SEC = 0.1  # 10Hz


def build_viewport_state(snapshot: EditorSnapshot) -> ViewportState | None:
    """Bounding union of the visible ranges with full line content."""
    if not snapshot.visible_ranges or not snapshot.lines:
        return None

    last_line = len(snapshot.lines) - 1
    start = max(0, min(r[0] for r in snapshot.visible_ranges))
    end = min(last_line, max(r[1] for r in snapshot.visible_ranges))
    if start > end:
        return None

    content = "\n".join(snapshot.lines[start : end + 1])

    cursor: CursorPosition | None = None
    if snapshot.cursor is not None:
        line, character = snapshot.cursor
        # A cursor scrolled out of view is not part of what the operator sees
        if start <= line <= end:
            cursor = CursorPosition(line=line + 1, character=character)

    return ViewportState(
        file=snapshot.file,
        start_line=start + 1,
        end_line=end + 1,
        content=content,
        cursor_position=cursor,
    )


class ViewportSampler:
    """Fixed-frequency sampler of visible editor and terminal state."""

    def __init__(
        self,
        editor: EditorHost,
        terminal_viewport: Callable[[], TerminalViewport | None],
        *,
        poll_interval: float = POLL_INTERVAL_SEC,
    ) -> None:
        self._editor = editor
        self._terminal_viewport = terminal_viewport
        self._poll_interval = poll_interval
        self._on_observation: Callable[[ObservedState], None] | None = None
        self._last_hash: str | None = None
        self._dirty = False
        self._poll_task: asyncio.Task[None] | None = None

    def start(self, on_observation: Callable[[ObservedState], None]) -> None:
        self._on_observation = on_observation
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        self._on_observation = None
        self.reset()

    def reset(self) -> None:
        self._last_hash = None
        self._dirty = False

    def mark_dirty(self) -> None:
        """Host notification: visible ranges of the focused editor changed."""
        self._dirty = True

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def capture(self) -> ObservedState:
        editor = self._editor.active_editor()
        viewport = build_viewport_state(editor) if editor is not None else None
        return ObservedState(viewport=viewport, terminal_viewport=self._terminal_viewport())

    def capture_now(self) -> ObservedState:
        """Capture without deduplication (observations following an action)."""
        state = self.capture()
        self._last_hash = state.content_hash()
        return state

    def poll(self) -> ObservedState | None:
        """One sampler tick. Returns the observation delivered, if any."""
        if not self._dirty:
            return None
        try:
            state = self.capture()
        except Exception as e:
            # Host read failed; keep the flag so the next tick retries
            logger.warning("viewport_capture_failed", error=str(e))
            return None
        self._dirty = False

        digest = state.content_hash()
        if digest == self._last_hash:
            return None
        self._last_hash = digest

        if self._on_observation is not None:
            self._on_observation(state)
        return state

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self.poll()
