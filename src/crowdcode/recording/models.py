"""Event log data model.

An Event is a closed tagged union discriminated by ``kind``; Action payloads
are a second union discriminated by ``type``. New kinds are added as union
members, never as ad hoc strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from crowdcode.capture.models import (
    CursorPosition,
    FileChangeKind,
    TerminalViewport,
    ViewportState,
    WireModel,
)
from crowdcode.host import SelectionKind

CHUNK_FORMAT_VERSION = "2.0"

ActionSource = Literal["user", "agent", "external", "unknown", "vcs", "vcs_checkout"]

# =============================================================================
# Action payloads
# =============================================================================


class EditAction(WireModel):
    type: Literal["edit"] = "edit"
    file: str
    range_offset: int
    range_length: int
    text: str
    is_undo_redo: bool = False


class SelectionAction(WireModel):
    type: Literal["selection"] = "selection"
    file: str
    selection_kind: SelectionKind
    cursor_position: CursorPosition | None = None


class TabSwitchAction(WireModel):
    type: Literal["tab_switch"] = "tab_switch"
    file: str | None


class TerminalFocusAction(WireModel):
    type: Literal["terminal_focus"] = "terminal_focus"
    terminal_id: str
    terminal_name: str


class TerminalCommandAction(WireModel):
    type: Literal["terminal_command"] = "terminal_command"
    terminal_id: str
    terminal_name: str
    command: str


class TerminalOutputAction(WireModel):
    type: Literal["terminal_output"] = "terminal_output"
    terminal_id: str
    terminal_name: str
    output: str


class FileChangeAction(WireModel):
    type: Literal["file_change"] = "file_change"
    file: str
    change_type: FileChangeKind
    diff: str | None


Action = Annotated[
    EditAction
    | SelectionAction
    | TabSwitchAction
    | TerminalFocusAction
    | TerminalCommandAction
    | TerminalOutputAction
    | FileChangeAction,
    Field(discriminator="type"),
]

# =============================================================================
# Events
# =============================================================================


class ObservationEvent(WireModel):
    kind: Literal["observation"] = "observation"
    sequence: int
    timestamp: int
    viewport: ViewportState | None
    terminal_viewport: TerminalViewport | None


class ActionEvent(WireModel):
    kind: Literal["action"] = "action"
    sequence: int
    timestamp: int
    source: ActionSource
    action: Action


class WorkspaceSnapshotEvent(WireModel):
    """Reference to an out-of-band compressed capture of the workspace."""

    kind: Literal["workspace_snapshot"] = "workspace_snapshot"
    sequence: int
    timestamp: int
    artifact: str
    file_count: int


Event = Annotated[
    ObservationEvent | ActionEvent | WorkspaceSnapshotEvent,
    Field(discriminator="kind"),
]

EVENTS_ADAPTER: TypeAdapter[list[Event]] = TypeAdapter(list[Event])


def dump_events(events: list[Event]) -> list[dict[str, Any]]:
    return EVENTS_ADAPTER.dump_python(events, mode="json", by_alias=True)


def load_events(data: list[dict[str, Any]]) -> list[Event]:
    return EVENTS_ADAPTER.validate_python(data)


# =============================================================================
# Session
# =============================================================================


@dataclass
class RecordingSession:
    """The one live session. Owned by the engine; trackers never touch it."""

    session_id: str = ""
    is_recording: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None
    sequence: int = 0
    # Sequence of the newest event already handed to persistence
    persisted_sequence: int = 0
    chunk_index: int = 0
    events: list[Event] = field(default_factory=list)

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence
