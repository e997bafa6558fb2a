"""Attribution engine: the one owner of the recording session.

Design:
- Trackers are injected; the engine wires their callbacks at start and
  disposes them at stop
- Every mutation of the event log runs one at a time, either directly from a
  host notification or through the inbox drained by a single dispatcher task
- User actions log an Action followed by a fresh Observation; an edit defers
  its Observation until the cursor settles in the same file
- File changes are attributed by three-way diff against a baseline rebuilt
  from buffered user edits
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from crowdcode.capture.filesystem import FilesystemChangeDetector
from crowdcode.capture.git import GitOperationDetector
from crowdcode.capture.models import (
    CursorPosition,
    FileDelta,
    ObservedState,
    TerminalViewport,
)
from crowdcode.capture.terminal import TerminalCallbacks, TerminalSessionTracker
from crowdcode.capture.viewport import ViewportSampler
from crowdcode.capture.watcher import WorkspaceWatcher
from crowdcode.config.models import CrowdCodeConfig
from crowdcode.core.errors import ConfigError, InternalError, PersistenceError
from crowdcode.core.logging import bind_session_id, clear_session_id
from crowdcode.host import SELECTION_KINDS, DocumentChange, SelectionKind
from crowdcode.recording.diffing import apply_edits, unified_diff
from crowdcode.recording.models import (
    ActionEvent,
    ActionSource,
    EditAction,
    Event,
    FileChangeAction,
    ObservationEvent,
    RecordingSession,
    SelectionAction,
    TabSwitchAction,
    TerminalCommandAction,
    TerminalFocusAction,
    TerminalOutputAction,
    WorkspaceSnapshotEvent,
)
from crowdcode.recording.pending import PendingEditBuffer
from crowdcode.recording.persistence import (
    SessionPersistence,
    add_to_gitignore,
    snapshot_file_name,
)
from crowdcode.recording.redaction import PanicRedactor

logger = structlog.get_logger()

Posted = tuple[Callable[..., None], tuple[Any, ...]]


@dataclass(slots=True)
class _VcsBurst:
    """File changes following one git operation share its classification."""

    source: ActionSource
    signal_time: float


class AttributionEngine:
    """Classifies signals, assembles the event log and triggers persistence."""

    def __init__(
        self,
        workspace_root: Path,
        config: CrowdCodeConfig,
        *,
        filesystem: FilesystemChangeDetector,
        git: GitOperationDetector,
        viewport: ViewportSampler,
        terminals: TerminalSessionTracker,
        persistence: SessionPersistence,
        watcher: WorkspaceWatcher | None = None,
        pending: PendingEditBuffer | None = None,
        redactor: PanicRedactor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._workspace_root = workspace_root
        self._config = config
        self._filesystem = filesystem
        self._git = git
        self._viewport = viewport
        self._terminals = terminals
        self._persistence = persistence
        self._watcher = watcher
        self._pending = pending or PendingEditBuffer(config.capture.pending_edits_per_file)
        self._redactor = redactor or PanicRedactor(
            base_window=config.redaction.base_window_sec,
            step=config.redaction.step_sec,
            burst_gap=config.redaction.burst_gap_sec,
            clock=clock,
        )
        self._clock = clock

        self._session = RecordingSession()
        # Bumped on every start and cancel; late save results from an older
        # generation are discarded
        self._generation = 0
        self._inbox: asyncio.Queue[Posted] | None = None
        self._dispatcher: asyncio.Task[None] | None = None
        self._autosave: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._save_idle = asyncio.Event()
        self._save_idle.set()
        self._write_failures = 0
        self._stopping = False

        self._deferred_observation_file: str | None = None
        self._in_agent_batch = False
        self._vcs_burst: _VcsBurst | None = None
        self._excluded_patterns: set[str] = set()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def session(self) -> RecordingSession:
        return self._session

    @property
    def is_recording(self) -> bool:
        return self._session.is_recording

    @property
    def pending(self) -> PendingEditBuffer:
        return self._pending

    @property
    def filesystem(self) -> FilesystemChangeDetector:
        return self._filesystem

    @property
    def viewport(self) -> ViewportSampler:
        return self._viewport

    @property
    def terminals(self) -> TerminalSessionTracker:
        return self._terminals

    @property
    def git(self) -> GitOperationDetector:
        return self._git

    # -------------------------------------------------------------------------
    # Serialized dispatch
    # -------------------------------------------------------------------------

    def post(self, fn: Callable[..., None], *args: Any) -> None:
        """Queue a callback to run on the engine's serialized path."""
        if self._inbox is None:
            return
        self._inbox.put_nowait((fn, args))

    async def drain(self) -> None:
        """Wait until every posted callback has run."""
        if self._inbox is not None:
            await self._inbox.join()

    async def _dispatch_loop(self) -> None:
        assert self._inbox is not None
        while True:
            fn, args = await self._inbox.get()
            try:
                fn(*args)
            except Exception:
                logger.exception("dispatch_failed", callback=getattr(fn, "__name__", repr(fn)))
            finally:
                self._inbox.task_done()

    # -------------------------------------------------------------------------
    # Control surface
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """Start a new session. Returns False if already recording or misconfigured."""
        if self._session.is_recording:
            logger.info("already_recording", session_id=self._session.session_id)
            return False

        try:
            export_dir = self._persistence.prepare(self._workspace_root, self._config)
        except ConfigError as e:
            logger.error("recording_not_started", **e.to_dict())
            return False
        self._exclude_export_dir(export_dir)
        if self._config.persistence.add_to_gitignore:
            try:
                add_to_gitignore(self._workspace_root, export_dir)
            except PersistenceError as e:
                logger.warning("gitignore_update_failed", **e.to_dict())

        self._generation += 1
        self._session = RecordingSession(
            session_id=uuid.uuid4().hex,
            is_recording=True,
            start_time=datetime.now(),
        )
        bind_session_id(self._session.session_id)
        self._reset_state()

        self._inbox = asyncio.Queue()
        self._dispatcher = asyncio.create_task(self._dispatch_loop())

        self._git.open()
        self._filesystem.start(lambda delta: self.post(self.record_file_change, delta))
        self._viewport.start(lambda state: self.post(self.record_scroll_observation, state))
        self._terminals.start(
            TerminalCallbacks(
                on_focus=self.record_terminal_focus,
                on_command=self.record_terminal_command,
                on_output=self.record_terminal_output,
                on_viewport=lambda viewport: self.post(self.record_terminal_viewport, viewport),
            ),
            dispatch=self.post,
        )
        if self._watcher is not None:
            await self._watcher.start()
        self._autosave = asyncio.create_task(self._autosave_loop())

        self._log_observation(self._viewport.capture_now())
        logger.info(
            "recording_started",
            workspace=str(self._workspace_root),
            export_dir=str(export_dir),
        )
        return True

    async def stop(self) -> Path | None:
        """Stop the session, persisting the final chunk. Returns its path."""
        if not self._session.is_recording or self._stopping:
            logger.info("not_recording")
            return None

        session = self._session
        self._stopping = True
        try:
            await self._stop_producers()
            # Callbacks already posted still belong in the final chunk
            await self.drain()
        finally:
            self._stopping = False
        session.is_recording = False
        session.end_time = datetime.now()
        await self._stop_dispatcher()

        await self._save_idle.wait()
        path = await self._save_chunk(self._generation)
        # Snapshot writes belong to this session, not to the next generation
        if self._background:
            await asyncio.wait(set(self._background))
        logger.info(
            "recording_stopped",
            chunks=session.chunk_index,
            last_sequence=session.sequence,
        )
        self._session = RecordingSession()
        clear_session_id()
        return path

    async def cancel(self) -> None:
        """Stop without persisting; in-flight save results are discarded."""
        if not self._session.is_recording:
            logger.info("not_recording")
            return
        self._generation += 1
        self._session.is_recording = False
        await self._stop_producers()
        await self._stop_dispatcher()
        logger.warning(
            "recording_cancelled",
            dropped_events=len(self._session.events),
        )
        self._session = RecordingSession()
        clear_session_id()

    def redact_recent(self) -> int:
        """Drop the most recent events from the unflushed tail. Returns count."""
        session = self._session
        if not session.is_recording:
            logger.info("not_recording")
            return 0

        kept, result = self._redactor.redact(session.events)
        session.events = kept
        session.sequence = kept[-1].sequence if kept else session.persisted_sequence
        self._deferred_observation_file = None
        self._viewport.reset()
        logger.warning(
            "events_redacted",
            removed=result.removed,
            window_sec=result.window_sec,
            sequence=session.sequence,
        )
        return result.removed

    async def wait_for_background(self, timeout: float | None = None) -> None:
        """Let snapshot writes and uploads settle."""
        if self._background:
            await asyncio.wait(set(self._background), timeout=timeout)
        await self._persistence.wait_for_uploads(timeout)

    def _reset_state(self) -> None:
        self._pending.clear()
        self._filesystem.reset()
        self._viewport.reset()
        self._terminals.reset()
        self._git.reset()
        self._redactor.reset()
        self._write_failures = 0
        self._deferred_observation_file = None
        self._in_agent_batch = False
        self._vcs_burst = None

    def _exclude_export_dir(self, export_dir: Path) -> None:
        try:
            rel = export_dir.resolve().relative_to(self._workspace_root.resolve())
        except ValueError:
            return
        pattern = f"/{rel.as_posix()}/"
        if rel.parts and pattern not in self._excluded_patterns:
            self._excluded_patterns.add(pattern)
            self._filesystem.ignore.add_pattern(pattern)

    async def _stop_producers(self) -> None:
        if self._autosave is not None:
            self._autosave.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._autosave
            self._autosave = None
        if self._watcher is not None:
            await self._watcher.stop()
        await self._filesystem.stop()
        await self._viewport.stop()
        await self._terminals.stop()

    async def _stop_dispatcher(self) -> None:
        self._git.close()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatcher
            self._dispatcher = None
        self._inbox = None

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _autosave_loop(self) -> None:
        interval = self._config.persistence.save_interval_sec
        while True:
            await asyncio.sleep(interval)
            # Spawned so that stopping the timer never interrupts a write
            self._spawn(self.save_chunk())

    async def save_chunk(self) -> Path | None:
        """Persist the unflushed tail. Skipped while another save is in flight."""
        if not self._session.is_recording:
            return None
        return await self._save_chunk(self._generation)

    async def _save_chunk(self, generation: int) -> Path | None:
        if not self._save_idle.is_set():
            logger.debug("chunk_save_skipped", reason="in_flight")
            return None
        session = self._session
        if not session.events or session.start_time is None:
            return None

        self._save_idle.clear()
        events = session.events
        session.events = []
        previous_persisted = session.persisted_sequence
        session.persisted_sequence = events[-1].sequence
        chunk_index = session.chunk_index
        try:
            path = await self._persistence.write_chunk(
                session.session_id, session.start_time, chunk_index, events
            )
        except PersistenceError as e:
            logger.error("chunk_save_failed", **e.to_dict())
            if generation == self._generation:
                self._restore_unsaved(session, events, previous_persisted)
            return None
        finally:
            self._save_idle.set()

        if generation != self._generation:
            logger.info("chunk_save_discarded", path=path.name)
            self._persistence.discard([path])
            return None
        self._write_failures = 0
        session.chunk_index = chunk_index + 1
        self._persistence.schedule_upload([path])
        return path

    def _restore_unsaved(
        self, session: RecordingSession, events: list[Event], previous_persisted: int
    ) -> None:
        session.events = events + session.events
        session.persisted_sequence = previous_persisted
        self._write_failures += 1
        limit = self._config.persistence.max_consecutive_write_failures
        if self._write_failures >= limit and session.is_recording:
            logger.error("recording_aborted", consecutive_failures=self._write_failures)
            self._spawn(self.cancel())

    async def _write_snapshot(self, name: str, files: dict[str, str], generation: int) -> None:
        try:
            paths = await self._persistence.write_snapshot(name, files)
        except PersistenceError as e:
            logger.error("workspace_snapshot_failed", **e.to_dict())
            return
        if generation != self._generation:
            self._persistence.discard(paths)
            return
        self._persistence.schedule_upload(paths)

    # -------------------------------------------------------------------------
    # Event log
    # -------------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _log_action(self, source: ActionSource, action: Any) -> ActionEvent:
        event = ActionEvent(
            sequence=self._session.next_sequence(),
            timestamp=self._now_ms(),
            source=source,
            action=action,
        )
        self._session.events.append(event)
        return event

    def _log_observation(self, state: ObservedState) -> ObservationEvent:
        event = ObservationEvent(
            sequence=self._session.next_sequence(),
            timestamp=self._now_ms(),
            viewport=state.viewport,
            terminal_viewport=state.terminal_viewport,
        )
        self._session.events.append(event)
        return event

    def _flush_deferred_observation(self) -> None:
        if self._deferred_observation_file is not None:
            self._deferred_observation_file = None
            self._log_observation(self._viewport.capture_now())

    def _log_user_action(self, action: Any) -> None:
        self._flush_deferred_observation()
        self._in_agent_batch = False
        self._log_action("user", action)
        self._log_observation(self._viewport.capture_now())

    # -------------------------------------------------------------------------
    # User signals
    # -------------------------------------------------------------------------

    def record_edit(
        self,
        file: str,
        changes: Sequence[DocumentChange],
        *,
        is_undo_redo: bool = False,
    ) -> None:
        """User edits to an open document, in the order the editor applied them.

        ``file`` must be the workspace-relative POSIX path, the same key the
        filesystem detector reports in ``FileDelta.path``. Edits filed under any
        other key never meet their disk change, so the save would be
        attributed to the agent.
        """
        if not self._session.is_recording or not changes:
            return
        if self._deferred_observation_file not in (None, file):
            self._flush_deferred_observation()
        self._in_agent_batch = False
        for change in changes:
            self._pending.add(file, change)
            self._log_action(
                "user",
                EditAction(
                    file=file,
                    range_offset=change.range_offset,
                    range_length=change.range_length,
                    text=change.text,
                    is_undo_redo=is_undo_redo,
                ),
            )
        self._deferred_observation_file = file

    def record_selection(
        self,
        file: str,
        kind: SelectionKind | None,
        cursor: tuple[int, int] | None = None,
    ) -> None:
        """Cursor/selection change; ``cursor`` is 0-indexed (line, character).

        ``file`` is keyed like in :meth:`record_edit`. ``kind`` None marks a
        programmatic change, which only settles a deferred observation.
        """
        if not self._session.is_recording:
            return
        if kind is not None and kind not in SELECTION_KINDS:
            raise InternalError.invariant_violation(f"unrecognized selection kind {kind!r}")

        if self._deferred_observation_file == file:
            # Cursor settled after an edit
            self._deferred_observation_file = None
            self._log_observation(self._viewport.capture_now())
            return
        if kind is None:
            return

        position = None
        if cursor is not None:
            position = CursorPosition(line=cursor[0] + 1, character=cursor[1])
        self._log_user_action(
            SelectionAction(file=file, selection_kind=kind, cursor_position=position)
        )

    def record_tab_switch(self, file: str | None) -> None:
        if not self._session.is_recording:
            return
        self._log_user_action(TabSwitchAction(file=file))

    def record_terminal_focus(self, terminal_id: str, terminal_name: str) -> None:
        if not self._session.is_recording:
            return
        self._log_user_action(
            TerminalFocusAction(terminal_id=terminal_id, terminal_name=terminal_name)
        )

    def record_terminal_command(self, terminal_id: str, terminal_name: str, command: str) -> None:
        if not self._session.is_recording:
            return
        self._log_user_action(
            TerminalCommandAction(
                terminal_id=terminal_id, terminal_name=terminal_name, command=command
            )
        )

    def record_terminal_output(self, terminal_id: str, terminal_name: str, output: str) -> None:
        if not self._session.is_recording:
            return
        self._log_action(
            "external",
            TerminalOutputAction(terminal_id=terminal_id, terminal_name=terminal_name, output=output),
        )

    # -------------------------------------------------------------------------
    # Sampled observations
    # -------------------------------------------------------------------------

    def record_scroll_observation(self, state: ObservedState) -> None:
        if not self._session.is_recording:
            return
        self._log_observation(state)

    def record_terminal_viewport(self, viewport: TerminalViewport) -> None:
        if not self._session.is_recording:
            return
        editor = self._viewport.capture_now().viewport
        self._log_observation(ObservedState(viewport=editor, terminal_viewport=viewport))

    # -------------------------------------------------------------------------
    # File changes
    # -------------------------------------------------------------------------

    def _vcs_source(self) -> ActionSource | None:
        operation = self._git.recent_operation()
        signal_time = self._git.last_operation_time
        if operation is None or signal_time is None:
            self._vcs_burst = None
            return None

        burst = self._vcs_burst
        if burst is None or signal_time - burst.signal_time > self._git.window:
            self._vcs_burst = _VcsBurst(source=operation, signal_time=signal_time)
            dropped = len(self._pending)
            self._pending.clear()
            logger.info("pending_edits_cleared", reason=operation, dropped=dropped)
            return operation

        # The checkout flag is consumed by the first change of the burst
        if operation == "vcs_checkout":
            burst.source = operation
        burst.signal_time = signal_time
        return burst.source

    def record_file_change(self, delta: FileDelta) -> None:
        if not self._session.is_recording:
            return
        path = delta.path

        vcs = self._vcs_source()
        if vcs is not None:
            self._log_file_change(delta, vcs, unified_diff(delta.old, delta.new, path))
            return

        reliable = self._pending.is_reliable(path)
        edits = self._pending.get(path)
        self._pending.clear_file(path)

        source: ActionSource
        base = delta.old
        if not reliable:
            logger.warning("pending_edits_overflowed", path=path)
            source = "unknown"
        elif delta.kind != "change":
            source = "unknown"
        elif not edits or delta.old is None or delta.new is None:
            source = "agent"
        else:
            base = apply_edits(delta.old, edits)
            if base == delta.new:
                logger.debug("file_change_dropped", path=path, reason="user_edits", edits=len(edits))
                return
            source = "agent"

        if source == "agent" and not self._in_agent_batch:
            self._in_agent_batch = True
            self._log_snapshot(delta)
        self._log_file_change(delta, source, unified_diff(base, delta.new, path))

    def _log_file_change(self, delta: FileDelta, source: ActionSource, diff: str | None) -> None:
        self._log_action(
            source,
            FileChangeAction(file=delta.path, change_type=delta.kind, diff=diff),
        )
        logger.debug("file_change_recorded", path=delta.path, kind=delta.kind, source=source)

    def _log_snapshot(self, delta: FileDelta) -> None:
        """Capture the workspace as it was just before ``delta``."""
        session = self._session
        assert session.start_time is not None
        files = self._filesystem.cache.snapshot()
        if delta.old is None:
            files.pop(delta.path, None)
        else:
            files[delta.path] = delta.old

        sequence = session.next_sequence()
        name = snapshot_file_name(session.start_time, session.session_id, sequence)
        session.events.append(
            WorkspaceSnapshotEvent(
                sequence=sequence,
                timestamp=self._now_ms(),
                artifact=name,
                file_count=len(files),
            )
        )
        self._spawn(self._write_snapshot(name, files, self._generation))
