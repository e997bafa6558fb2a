"""Tests for recording/models.py - the event log wire model."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from crowdcode.capture.models import CursorPosition, ObservedState, TerminalViewport
from crowdcode.recording.models import (
    ActionEvent,
    RecordingSession,
    SelectionAction,
    TabSwitchAction,
    TerminalOutputAction,
    WorkspaceSnapshotEvent,
    dump_events,
    load_events,
)


class TestWireFormat:
    """camelCase keys and the two discriminators."""

    def test_action_event_dump(self) -> None:
        event = ActionEvent(
            sequence=3,
            timestamp=42,
            source="user",
            action=SelectionAction(
                file="a.py",
                selection_kind="mouse",
                cursor_position=CursorPosition(line=1, character=4),
            ),
        )

        (data,) = dump_events([event])

        assert data == {
            "kind": "action",
            "sequence": 3,
            "timestamp": 42,
            "source": "user",
            "action": {
                "type": "selection",
                "file": "a.py",
                "selectionKind": "mouse",
                "cursorPosition": {"line": 1, "character": 4},
            },
        }

    def test_load_dispatches_on_kind_and_type(self) -> None:
        events = load_events(
            [
                {
                    "kind": "action",
                    "sequence": 1,
                    "timestamp": 1,
                    "source": "external",
                    "action": {
                        "type": "terminal_output",
                        "terminalId": "terminal-1",
                        "terminalName": "bash",
                        "output": "ok\n",
                    },
                },
                {
                    "kind": "workspace_snapshot",
                    "sequence": 2,
                    "timestamp": 2,
                    "artifact": "snap.json.gz",
                    "fileCount": 4,
                },
            ]
        )

        first, second = events
        assert isinstance(first, ActionEvent)
        assert isinstance(first.action, TerminalOutputAction)
        assert isinstance(second, WorkspaceSnapshotEvent)
        assert second.file_count == 4

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            load_events([{"kind": "telemetry", "sequence": 1, "timestamp": 1}])

    def test_unknown_source_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ActionEvent(
                sequence=1,
                timestamp=1,
                source="robot",  # type: ignore[arg-type]
                action=TabSwitchAction(file=None),
            )

    def test_events_are_frozen(self) -> None:
        event = ActionEvent(
            sequence=1, timestamp=1, source="user", action=TabSwitchAction(file="a")
        )
        with pytest.raises(ValidationError):
            event.sequence = 2  # type: ignore[misc]


class TestObservedState:
    def test_hash_changes_with_terminal(self) -> None:
        plain = ObservedState(viewport=None, terminal_viewport=None)
        with_terminal = ObservedState(
            viewport=None,
            terminal_viewport=TerminalViewport(id="terminal-1", name="bash", lines=["$ ls"]),
        )
        assert plain.content_hash() != with_terminal.content_hash()
        assert plain.content_hash() == ObservedState(None, None).content_hash()


class TestRecordingSession:
    def test_next_sequence_is_monotonic(self) -> None:
        session = RecordingSession()
        assert [session.next_sequence() for _ in range(3)] == [1, 2, 3]
