"""Terminal session tracker: rolling per-terminal text buffers.

Design:
- Each terminal gets a stable opaque id on first sight, independent of its
  display name (names collide and get reused)
- Command output is drained by a cancellable background task per command;
  the drain loop only forwards chunks through ``dispatch`` and never touches
  buffers itself
- A low-frequency poll reports the focused terminal's viewport whenever new
  output has landed on it
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import weakref
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from crowdcode.capture.models import TerminalViewport
from crowdcode.host import TerminalHandle

logger = structlog.get_logger()

TERMINAL_VIEWPORT_LINES = 20
POLL_INTERVAL_SEC = 0.1

Dispatch = Callable[..., None]


def _call_now(fn: Callable[..., None], *args: Any) -> None:
    fn(*args)


@dataclass(frozen=True, slots=True)
class TerminalCallbacks:
    on_focus: Callable[[str, str], None]
    on_command: Callable[[str, str, str], None]
    on_output: Callable[[str, str, str], None]
    on_viewport: Callable[[TerminalViewport], None] | None = None


class TerminalSessionTracker:
    """Tracks terminal identities, buffers, focus and command output."""

    def __init__(
        self,
        *,
        viewport_lines: int = TERMINAL_VIEWPORT_LINES,
        poll_interval: float = POLL_INTERVAL_SEC,
    ) -> None:
        self._viewport_lines = viewport_lines
        self._poll_interval = poll_interval
        self._ids: weakref.WeakKeyDictionary[Any, str] = weakref.WeakKeyDictionary()
        self._counter = itertools.count(1)
        self._names: dict[str, str] = {}
        self._buffers: dict[str, str] = {}
        self._active_id: str | None = None
        self._viewport_changed = False
        self._drains: dict[str, set[asyncio.Task[None]]] = {}
        self._poll_task: asyncio.Task[None] | None = None
        self._callbacks: TerminalCallbacks | None = None
        self._dispatch: Dispatch = _call_now

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, callbacks: TerminalCallbacks, dispatch: Dispatch | None = None) -> None:
        self._callbacks = callbacks
        self._dispatch = dispatch or _call_now
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        tasks = [t for drains in self._drains.values() for t in drains]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._drains.clear()
        self._callbacks = None
        self._dispatch = _call_now

    def reset(self) -> None:
        """Empty every buffer. Identities and names stay warm."""
        for terminal_id in self._buffers:
            self._buffers[terminal_id] = ""
        self._viewport_changed = False

    # -------------------------------------------------------------------------
    # Identity and buffers
    # -------------------------------------------------------------------------

    def terminal_id(self, terminal: TerminalHandle) -> str:
        terminal_id = self._ids.get(terminal)
        if terminal_id is None:
            terminal_id = f"terminal-{next(self._counter)}"
            self._ids[terminal] = terminal_id
            self._buffers[terminal_id] = ""
        self._names[terminal_id] = terminal.name
        return terminal_id

    def _append(self, terminal_id: str, content: str) -> None:
        combined = self._buffers.get(terminal_id, "") + content
        lines = combined.split("\n")
        if len(lines) > self._viewport_lines:
            combined = "\n".join(lines[-self._viewport_lines :])
        self._buffers[terminal_id] = combined
        if terminal_id == self._active_id:
            self._viewport_changed = True

    def viewport(self, terminal_id: str) -> TerminalViewport | None:
        name = self._names.get(terminal_id)
        if name is None:
            return None
        content = self._buffers.get(terminal_id, "")
        lines = content.split("\n")[-self._viewport_lines :] if content else []
        return TerminalViewport(id=terminal_id, name=name, lines=lines)

    def active_viewport(self) -> TerminalViewport | None:
        if self._active_id is None:
            return None
        return self.viewport(self._active_id)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    # -------------------------------------------------------------------------
    # Host notifications
    # -------------------------------------------------------------------------

    def register(self, terminal: TerminalHandle) -> str:
        """Host notification: a terminal already exists (or was just opened)."""
        return self.terminal_id(terminal)

    def on_focus(self, terminal: TerminalHandle | None) -> None:
        if terminal is None:
            self._active_id = None
            return
        terminal_id = self.terminal_id(terminal)
        self._active_id = terminal_id
        if self._callbacks is not None:
            self._callbacks.on_focus(terminal_id, self._names[terminal_id])

    def on_command_start(
        self,
        terminal: TerminalHandle,
        command: str,
        output: AsyncIterable[str] | None = None,
    ) -> asyncio.Task[None] | None:
        """Host notification: a shell command began. Returns the drain task."""
        terminal_id = self.terminal_id(terminal)
        name = self._names[terminal_id]
        self._append(terminal_id, f"$ {command}\n")
        if self._callbacks is not None:
            self._callbacks.on_command(terminal_id, name, command)

        if output is None:
            return None
        task = asyncio.create_task(self._drain(terminal_id, output))
        drains = self._drains.setdefault(terminal_id, set())
        drains.add(task)
        task.add_done_callback(drains.discard)
        return task

    def on_close(self, terminal: TerminalHandle) -> None:
        terminal_id = self._ids.pop(terminal, None)
        if terminal_id is None:
            return
        for task in self._drains.pop(terminal_id, set()):
            task.cancel()
        self._buffers.pop(terminal_id, None)
        self._names.pop(terminal_id, None)
        if self._active_id == terminal_id:
            self._active_id = None

    # -------------------------------------------------------------------------
    # Background work
    # -------------------------------------------------------------------------

    async def _drain(self, terminal_id: str, output: AsyncIterable[str]) -> None:
        try:
            async for chunk in output:
                self._dispatch(self._handle_output, terminal_id, chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("terminal_output_stream_failed", terminal_id=terminal_id, error=str(e))

    def _handle_output(self, terminal_id: str, chunk: str) -> None:
        # Terminal may have closed while the chunk was queued
        name = self._names.get(terminal_id)
        if name is None:
            return
        self._append(terminal_id, chunk)
        if self._callbacks is not None:
            self._callbacks.on_output(terminal_id, name, chunk)

    def poll(self) -> TerminalViewport | None:
        if self._active_id is None or not self._viewport_changed:
            return None
        self._viewport_changed = False
        viewport = self.active_viewport()
        if viewport is not None and self._callbacks is not None:
            if self._callbacks.on_viewport is not None:
                self._callbacks.on_viewport(viewport)
        return viewport

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self.poll()
