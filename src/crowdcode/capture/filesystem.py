"""Filesystem change detector: raw notifications -> content deltas.

Applies the ignore filter, reads content off the event loop, compares with
the content cache and reports ``FileDelta`` values. Actor classification is
not done here.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Callable
from pathlib import Path

import structlog

from crowdcode.capture.cache import ContentCache
from crowdcode.capture.ignore import IgnoreFilter
from crowdcode.capture.models import FileChangeKind, FileDelta
from crowdcode.core.errors import CaptureError

logger = structlog.get_logger()

MAX_FILE_SIZE_BYTES = 100_000


def read_text_bounded(path: Path, max_size: int) -> str | None:
    """Read a UTF-8 text file, or None if missing, oversized or binary.

    Raises:
        CaptureError: If the file exists but cannot be read.
    """
    try:
        if path.stat().st_size > max_size:
            return None
        data = path.read_bytes()
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        return None
    except OSError as e:
        raise CaptureError.unreadable_file(str(path), str(e)) from e
    if len(data) > max_size or b"\x00" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


class FilesystemChangeDetector:
    """Turns create/change/delete notifications into before/after deltas."""

    def __init__(
        self,
        workspace_root: Path,
        cache: ContentCache,
        ignore: IgnoreFilter,
        *,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
        debounce: float = 0.0,
    ) -> None:
        self._root = workspace_root
        self._cache = cache
        self._ignore = ignore
        self._max_file_size = max_file_size
        self._debounce = debounce
        self._on_delta: Callable[[FileDelta], None] | None = None
        self._warm_task: asyncio.Task[int] | None = None
        self._pending: dict[str, asyncio.Task[None]] = {}

    @property
    def cache(self) -> ContentCache:
        return self._cache

    @property
    def ignore(self) -> IgnoreFilter:
        return self._ignore

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, on_delta: Callable[[FileDelta], None], *, warm: bool = True) -> None:
        self._on_delta = on_delta
        if warm and self._warm_task is None:
            self._warm_task = asyncio.create_task(self.warm_cache())

    async def stop(self) -> None:
        self._on_delta = None
        tasks = list(self._pending.values())
        if self._warm_task is not None:
            tasks.append(self._warm_task)  # type: ignore[arg-type]
            self._warm_task = None
        self._pending.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def reset(self) -> None:
        self._cache.clear()
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def rel_path(self, path: Path) -> str | None:
        try:
            return path.relative_to(self._root).as_posix()
        except ValueError:
            return None

    async def handle(self, kind: FileChangeKind, path: Path) -> FileDelta | None:
        """Process one notification, immediately or after the per-path debounce."""
        if self._debounce <= 0:
            return await self._process(kind, path)

        key = path.as_posix()
        pending = self._pending.pop(key, None)
        if pending is not None:
            pending.cancel()
        task = asyncio.create_task(self._delayed(kind, path))
        self._pending[key] = task
        return None

    async def _delayed(self, kind: FileChangeKind, path: Path) -> None:
        await asyncio.sleep(self._debounce)
        self._pending.pop(path.as_posix(), None)
        await self._process(kind, path)

    async def on_create(self, path: Path) -> FileDelta | None:
        return await self.handle("create", path)

    async def on_change(self, path: Path) -> FileDelta | None:
        return await self.handle("change", path)

    async def on_delete(self, path: Path) -> FileDelta | None:
        return await self.handle("delete", path)

    async def _process(self, kind: FileChangeKind, path: Path) -> FileDelta | None:
        rel = self.rel_path(path)
        if rel is None or self._ignore.is_excluded_rel(rel):
            return None

        if kind == "delete":
            old = self._cache.remove(rel)
            return self._report(FileDelta(path=rel, kind="delete", old=old, new=None))

        known = rel in self._cache
        if not known and not await self._is_workspace_file(path):
            logger.debug("file_not_trackable", path=rel)
            return None

        try:
            new = await asyncio.to_thread(read_text_bounded, path, self._max_file_size)
        except CaptureError as e:
            logger.warning("file_change_dropped", reason="unreadable", **e.to_dict())
            return None
        if new is None:
            logger.debug("file_unreadable", path=rel, kind=kind)
            return None

        old = self._cache.get(rel)
        if old == new and kind != "create":
            return None

        self._cache.set(rel, new)
        return self._report(FileDelta(path=rel, kind=kind, old=old, new=new))

    async def _is_workspace_file(self, path: Path) -> bool:
        def check() -> bool:
            try:
                resolved = path.resolve()
                return resolved.is_relative_to(self._root.resolve()) and resolved.is_file()
            except OSError:
                return False

        return await asyncio.to_thread(check)

    def _report(self, delta: FileDelta) -> FileDelta:
        if self._on_delta is not None:
            self._on_delta(delta)
        return delta

    # -------------------------------------------------------------------------
    # Warm-up
    # -------------------------------------------------------------------------

    async def warm_cache(self) -> int:
        """Eagerly cache every trackable file, yielding between files."""
        loaded = 0
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = [d for d in dirnames if not self._ignore.should_prune_dir(d)]
            for filename in filenames:
                path = Path(dirpath) / filename
                rel = self.rel_path(path)
                if rel is None or self._ignore.is_excluded_rel(rel):
                    continue
                try:
                    content = await asyncio.to_thread(
                        read_text_bounded, path, self._max_file_size
                    )
                except CaptureError as e:
                    logger.debug("cache_warm_skipped", **e.to_dict())
                    content = None
                if content is not None and self._cache.set_if_absent(rel, content):
                    loaded += 1
                await asyncio.sleep(0)
        logger.info("content_cache_warmed", files=loaded)
        return loaded
