"""Observed-state models produced by the capture trackers.

These are serialized into the event log with camelCase keys.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

FileChangeKind = Literal["create", "change", "delete"]


class WireModel(BaseModel):
    """Base for everything written into chunks: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class CursorPosition(WireModel):
    """Cursor location. ``line`` is 1-indexed like ViewportState bounds."""

    line: int
    character: int


class ViewportState(WireModel):
    """Contiguous visible slice of the focused document, 1-indexed inclusive."""

    file: str
    start_line: int
    end_line: int
    content: str
    cursor_position: CursorPosition | None = None


class TerminalViewport(WireModel):
    """Trailing lines of a terminal's simulated screen."""

    id: str
    name: str
    lines: list[str]


@dataclass(frozen=True, slots=True)
class ObservedState:
    """What the operator could see at one instant."""

    viewport: ViewportState | None
    terminal_viewport: TerminalViewport | None

    def content_hash(self) -> str:
        h = hashlib.md5(usedforsecurity=False)
        for part in (self.viewport, self.terminal_viewport):
            h.update(part.model_dump_json().encode() if part is not None else b"null")
            h.update(b"\x00")
        return h.hexdigest()


@dataclass(frozen=True, slots=True)
class FileDelta:
    """A raw content change reported by the filesystem detector.

    ``old`` is the last cached content (None when unknown); ``new`` is None
    for deletions.
    """

    path: str
    kind: FileChangeKind
    old: str | None
    new: str | None
