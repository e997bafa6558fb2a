"""Chunk and workspace-snapshot persistence.

Chunk file: gzip JSON ``{version, sessionId, startTime, chunkIndex, events}``.
Snapshot file: gzip JSON mapping relative path -> text, split into
``<name>.part001``, ``.part002``, ... above the part-size ceiling.
Writes go to a temporary file first and are renamed into place.
"""

from __future__ import annotations

import asyncio
import contextlib
import gzip
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import Field

from crowdcode.capture.models import WireModel
from crowdcode.config.loader import resolve_export_path
from crowdcode.config.models import CrowdCodeConfig, PersistenceConfig
from crowdcode.core.errors import PersistenceError
from crowdcode.recording.models import CHUNK_FORMAT_VERSION, Event, dump_events
from crowdcode.recording.upload import Uploader

logger = structlog.get_logger()

FILE_PREFIX = "crowd-code"


class Chunk(WireModel):
    """Decoded chunk file."""

    version: str
    session_id: str
    start_time: int
    chunk_index: int
    events: list[Event] = Field(default_factory=list)


def _stamp(start_time: datetime) -> str:
    return start_time.strftime("%Y_%m_%d-%H.%M.%S")


def chunk_file_name(start_time: datetime, session_id: str, chunk_index: int) -> str:
    return f"{FILE_PREFIX}-{_stamp(start_time)}-{session_id}-chunk-{chunk_index:04d}.json.gz"


def snapshot_file_name(start_time: datetime, session_id: str, sequence: int) -> str:
    return f"{FILE_PREFIX}-{_stamp(start_time)}-{session_id}-snapshot-{sequence:06d}.json.gz"


def encode_chunk(
    session_id: str, start_time: datetime, chunk_index: int, events: list[Event]
) -> bytes:
    payload: dict[str, Any] = {
        "version": CHUNK_FORMAT_VERSION,
        "sessionId": session_id,
        "startTime": int(start_time.timestamp() * 1000),
        "chunkIndex": chunk_index,
        "events": dump_events(events),
    }
    return gzip.compress(json.dumps(payload, ensure_ascii=False).encode("utf-8"))


def decode_chunk(data: bytes) -> Chunk:
    return Chunk.model_validate_json(gzip.decompress(data))


def encode_snapshot(files: dict[str, str]) -> bytes:
    text_files = {path: content for path, content in sorted(files.items()) if "\x00" not in content}
    return gzip.compress(json.dumps(text_files, ensure_ascii=False).encode("utf-8"))


def split_parts(data: bytes, part_size: int) -> list[bytes]:
    if len(data) <= part_size:
        return [data]
    return [data[i : i + part_size] for i in range(0, len(data), part_size)]


def _write_atomic(path: Path, data: bytes) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def add_to_gitignore(workspace_root: Path, export_dir: Path) -> bool:
    """Append the export directory to the workspace .gitignore.

    Returns True if a line was added. Directories outside the workspace and
    patterns already present are left alone.
    """
    try:
        rel = export_dir.resolve().relative_to(workspace_root.resolve())
    except ValueError:
        return False
    if not rel.parts:
        return False
    pattern = f"/{rel.as_posix()}/"
    gitignore = workspace_root / ".gitignore"

    try:
        existing = gitignore.read_text() if gitignore.is_file() else ""
        if pattern in (line.strip() for line in existing.splitlines()):
            return False
        separator = "" if not existing or existing.endswith("\n") else "\n"
        with gitignore.open("a") as f:
            f.write(f"{separator}{pattern}\n")
    except OSError as e:
        raise PersistenceError.write_failed(str(gitignore), str(e)) from e

    logger.info("export_dir_gitignored", pattern=pattern)
    return True


class SessionPersistence:
    """Writes chunks and snapshots locally, then uploads them in the background."""

    def __init__(self, config: PersistenceConfig, uploader: Uploader | None = None) -> None:
        self._config = config
        self._uploader = uploader
        self._export_dir: Path | None = None
        self._uploads: set[asyncio.Task[bool]] = set()

    @property
    def export_dir(self) -> Path | None:
        return self._export_dir

    def prepare(self, workspace_root: Path, config: CrowdCodeConfig) -> Path:
        """Resolve the export directory. Raises ConfigError when unusable."""
        self._export_dir = resolve_export_path(workspace_root, config)
        return self._export_dir

    def _require_export_dir(self) -> Path:
        if self._export_dir is None:
            raise PersistenceError.write_failed("<export dir>", "persistence not prepared")
        return self._export_dir

    async def write_chunk(
        self,
        session_id: str,
        start_time: datetime,
        chunk_index: int,
        events: list[Event],
    ) -> Path:
        path = self._require_export_dir() / chunk_file_name(start_time, session_id, chunk_index)

        def write() -> int:
            data = encode_chunk(session_id, start_time, chunk_index, events)
            _write_atomic(path, data)
            return len(data)

        try:
            size = await asyncio.to_thread(write)
        except OSError as e:
            raise PersistenceError.write_failed(str(path), str(e)) from e

        logger.info("chunk_saved", path=path.name, events=len(events), size=size)
        return path

    async def write_snapshot(self, name: str, files: dict[str, str]) -> list[Path]:
        export_dir = self._require_export_dir()
        part_size = self._config.snapshot_part_size_bytes

        def write() -> list[Path]:
            parts = split_parts(encode_snapshot(files), part_size)
            if len(parts) == 1:
                path = export_dir / name
                _write_atomic(path, parts[0])
                return [path]
            paths = []
            for i, part in enumerate(parts, start=1):
                path = export_dir / f"{name}.part{i:03d}"
                _write_atomic(path, part)
                paths.append(path)
            return paths

        try:
            paths = await asyncio.to_thread(write)
        except OSError as e:
            raise PersistenceError.write_failed(str(export_dir / name), str(e)) from e

        logger.info("workspace_snapshot_saved", name=name, files=len(files), parts=len(paths))
        return paths

    def discard(self, paths: list[Path]) -> None:
        """Remove files written for a session that was cancelled meanwhile."""
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("artifact_discard_failed", path=path.name, error=str(e))
        logger.info("artifacts_discarded", count=len(paths))

    def schedule_upload(self, paths: list[Path]) -> None:
        if self._uploader is None or not self._uploader.enabled:
            return
        task = asyncio.create_task(self._upload_sequentially(paths))
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)

    async def _upload_sequentially(self, paths: list[Path]) -> bool:
        assert self._uploader is not None
        ok = True
        for path in paths:
            # Parts go one by one; a failed part fails the artifact
            if not await self._uploader.upload_file(path):
                ok = False
                break
        return ok

    async def wait_for_uploads(self, timeout: float | None = None) -> None:
        """Let in-flight uploads run to completion (bounded by ``timeout``)."""
        if not self._uploads:
            return
        _done, pending = await asyncio.wait(set(self._uploads), timeout=timeout)
        if pending:
            logger.warning("uploads_still_running", count=len(pending))
