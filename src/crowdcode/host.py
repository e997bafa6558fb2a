"""Boundary types for the host editing application.

The host delivers primitive signals (document edits, selections, focus
changes, terminal lifecycle, file notifications). Everything here is a plain
dataclass or a structural protocol so hosts can adapt their own objects.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

SelectionKind = Literal["keyboard", "mouse", "command"]

SELECTION_KINDS: frozenset[str] = frozenset(("keyboard", "mouse", "command"))


@dataclass(frozen=True, slots=True)
class DocumentChange:
    """One contiguous replacement inside a document, in character offsets."""

    range_offset: int
    range_length: int
    text: str


@dataclass(frozen=True, slots=True)
class EditorSnapshot:
    """Visible state of the focused text editor.

    ``visible_ranges`` and ``cursor`` use 0-indexed lines, as hosts report them.
    """

    file: str
    lines: Sequence[str]
    visible_ranges: Sequence[tuple[int, int]]
    cursor: tuple[int, int] | None = None


class EditorHost(Protocol):
    """Read access to the focused editor."""

    def active_editor(self) -> EditorSnapshot | None: ...


@runtime_checkable
class TerminalHandle(Protocol):
    """A host terminal. Must be hashable and weak-referenceable.

    ``name`` is display-only and may change or collide between terminals.
    """

    @property
    def name(self) -> str: ...


class KeyValueStore(Protocol):
    """Small persisted store for the consent flag and anonymous user id."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class NullEditorHost:
    """Editor host for headless recording: there is never a visible editor."""

    def active_editor(self) -> EditorSnapshot | None:
        return None
