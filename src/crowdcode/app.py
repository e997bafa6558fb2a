"""Wiring of one engine instance with its trackers."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

import httpx

from crowdcode.capture.cache import ContentCache
from crowdcode.capture.filesystem import FilesystemChangeDetector
from crowdcode.capture.git import GitOperationDetector
from crowdcode.capture.ignore import IgnoreFilter
from crowdcode.capture.terminal import TerminalSessionTracker
from crowdcode.capture.viewport import ViewportSampler
from crowdcode.capture.watcher import WorkspaceWatcher
from crowdcode.config.models import CrowdCodeConfig
from crowdcode.config.state import YamlStateStore
from crowdcode.core.errors import ConfigError
from crowdcode.host import EditorHost, KeyValueStore, NullEditorHost
from crowdcode.recording.consent import ConsentManager
from crowdcode.recording.engine import AttributionEngine
from crowdcode.recording.pending import PendingEditBuffer
from crowdcode.recording.persistence import SessionPersistence
from crowdcode.recording.redaction import PanicRedactor
from crowdcode.recording.upload import Uploader


def create_engine(
    workspace_root: Path,
    config: CrowdCodeConfig,
    *,
    editor: EditorHost | None = None,
    store: KeyValueStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    watch: bool = True,
    clock: Callable[[], float] = time.time,
) -> AttributionEngine:
    """Build an engine for ``workspace_root``.

    Args:
        editor: Host editor; headless recording uses a host with no editor.
        store: Key-value store for consent and the anonymous user id.
        transport: httpx transport override for uploads.
        watch: Run the built-in watcher. Hosts that deliver their own file
            notifications call ``engine.filesystem.on_*`` instead.

    Raises:
        ConfigError: If ``workspace_root`` is not a directory.
    """
    if not workspace_root.is_dir():
        raise ConfigError.no_workspace(str(workspace_root))
    workspace_root = workspace_root.resolve()
    capture = config.capture

    ignore = IgnoreFilter(
        workspace_root,
        capture.extra_ignore_patterns,
        respect_gitignore=capture.respect_gitignore,
    )
    filesystem = FilesystemChangeDetector(
        workspace_root,
        ContentCache(capture.cache_max_entries),
        ignore,
        max_file_size=capture.max_file_size_bytes,
        debounce=capture.fs_debounce_sec,
    )
    git = GitOperationDetector(workspace_root, window=config.git.operation_window_sec)
    terminals = TerminalSessionTracker(
        viewport_lines=capture.terminal_viewport_lines,
        poll_interval=capture.terminal_poll_interval_sec,
    )
    viewport = ViewportSampler(
        editor or NullEditorHost(),
        terminals.active_viewport,
        poll_interval=capture.viewport_poll_interval_sec,
    )

    consent = ConsentManager(store if store is not None else YamlStateStore())
    uploader = Uploader(config.upload, consent, transport=transport)
    persistence = SessionPersistence(config.persistence, uploader)

    return AttributionEngine(
        workspace_root,
        config,
        filesystem=filesystem,
        git=git,
        viewport=viewport,
        terminals=terminals,
        persistence=persistence,
        watcher=WorkspaceWatcher(workspace_root, filesystem, git) if watch else None,
        pending=PendingEditBuffer(capture.pending_edits_per_file),
        redactor=PanicRedactor(
            base_window=config.redaction.base_window_sec,
            step=config.redaction.step_sec,
            burst_gap=config.redaction.burst_gap_sec,
            clock=clock,
        ),
        clock=clock,
    )
