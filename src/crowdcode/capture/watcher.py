"""Workspace watcher using watchfiles for async filesystem monitoring.

Design:
- Python walks the workspace respecting IgnoreFilter pruning tiers
- Builds an explicit list of directories to watch, plus .git and .git/refs
- Passes them to awatch with recursive=False (one inotify watch per dir)
- Restarts awatch when a new directory appears
- Falls back to polling for cross-filesystem mounts (WSL /mnt/*)
- Within one batch, git signals are delivered before workspace changes so a
  checkout burst is classified against the HEAD change that caused it
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from pathlib import Path

import structlog
from watchfiles import Change, awatch

from crowdcode.capture.filesystem import FilesystemChangeDetector
from crowdcode.capture.git import GitOperationDetector
from crowdcode.capture.ignore import IgnoreFilter
from crowdcode.capture.models import FileChangeKind

logger = structlog.get_logger()

_CHANGE_KINDS: dict[Change, FileChangeKind] = {
    Change.added: "create",
    Change.modified: "change",
    Change.deleted: "delete",
}


def collect_watch_dirs(workspace_root: Path, ignore: IgnoreFilter) -> list[Path]:
    """Walk the workspace and collect all directories to watch.

    Returns a flat list of directories. The root itself is always included.
    """
    dirs: list[Path] = [workspace_root]
    try:
        for dirpath, dirnames, _filenames in os.walk(workspace_root):
            dirnames[:] = [d for d in dirnames if not ignore.should_prune_dir(d)]
            for d in dirnames:
                dirs.append(Path(dirpath) / d)
    except OSError:
        pass
    return dirs


def collect_git_dirs(git_dir: Path) -> list[Path]:
    """The .git directory (for HEAD) and every directory under refs/."""
    if not git_dir.is_dir():
        return []
    dirs = [git_dir]
    refs = git_dir / "refs"
    if refs.is_dir():
        for dirpath, _dirnames, _filenames in os.walk(refs):
            dirs.append(Path(dirpath))
    return dirs


def is_cross_filesystem(path: Path) -> bool:
    """Detect if path is on a cross-filesystem mount (WSL /mnt/*, network drives)."""
    path_str = str(path.resolve())
    if (
        path_str.startswith("/mnt/")
        and len(path_str) > 6
        and path_str[5].isalpha()
        and path_str[6] == "/"
    ):
        return True
    return path_str.startswith(("/run/user/", "/media/", "/net/"))


class WorkspaceWatcher:
    """Feeds raw notifications to the filesystem and git detectors."""

    def __init__(
        self,
        workspace_root: Path,
        detector: FilesystemChangeDetector,
        git: GitOperationDetector,
    ) -> None:
        self._root = workspace_root
        self._detector = detector
        self._git = git
        self._ignore = detector.ignore
        self._is_cross_fs = is_cross_filesystem(workspace_root)
        self._stop_event = asyncio.Event()
        self._watch_task: asyncio.Task[None] | None = None
        self._watched_dirs: set[Path] = set()

    async def start(self) -> None:
        if self._watch_task is not None:
            return
        self._stop_event.clear()
        self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info(
            "workspace_watcher_started",
            workspace=str(self._root),
            mode="polling" if self._is_cross_fs else "native_nonrecursive",
        )

    async def stop(self) -> None:
        self._stop_event.set()
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._watch_task, timeout=2.0)
            self._watch_task = None
        logger.info("workspace_watcher_stopped")

    async def _watch_loop(self) -> None:
        while not self._stop_event.is_set():
            watch_dirs = collect_watch_dirs(self._root, self._ignore)
            watch_dirs += collect_git_dirs(self._git.git_dir)
            self._watched_dirs = set(watch_dirs)
            logger.debug("watch_dirs_collected", count=len(watch_dirs))

            try:
                async for changes in awatch(
                    *watch_dirs,
                    recursive=False,
                    debounce=50,
                    step=50,
                    stop_event=self._stop_event,
                    force_polling=self._is_cross_fs,
                    ignore_permission_denied=True,
                ):
                    if await self.handle_changes(changes):
                        logger.info("watcher_restart_requested", reason="new_directories")
                        break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._stop_event.is_set():
                    return
                logger.error("watcher_error", error=str(e))
                await asyncio.sleep(1.0)

    async def handle_changes(self, changes: set[tuple[Change, str]]) -> bool:
        """Dispatch one batch. Returns True if a watcher restart is needed."""
        needs_restart = False
        workspace_changes: list[tuple[FileChangeKind, Path]] = []

        for change_type, path_str in sorted(changes, key=lambda c: c[1]):
            path = Path(path_str)

            signal = self._git.classify_path(path)
            if signal is not None:
                self._git.on_signal(signal)
                continue

            if change_type == Change.added and path.is_dir():
                if path.is_relative_to(self._git.git_dir):
                    needs_restart = True
                elif self._ignore.should_prune_dir(path.name) or self._ignore.should_ignore(path):
                    logger.debug("new_directory_ignored", path=str(path))
                elif path not in self._watched_dirs:
                    logger.info("new_directory_detected", path=str(path))
                    needs_restart = True
                continue

            workspace_changes.append((_CHANGE_KINDS[change_type], path))

        for kind, path in workspace_changes:
            await self._detector.handle(kind, path)
        return needs_restart
