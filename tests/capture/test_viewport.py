"""Tests for capture/viewport.py - viewport state and the sampler."""

from __future__ import annotations

import asyncio

import pytest

from crowdcode.capture.models import ObservedState, TerminalViewport
from crowdcode.capture.viewport import ViewportSampler, build_viewport_state
from crowdcode.host import EditorSnapshot


class FakeEditor:
    """Editor host whose snapshot tests can swap at will."""

    def __init__(self, snapshot: EditorSnapshot | None = None) -> None:
        self.snapshot = snapshot
        self.fail = False

    def active_editor(self) -> EditorSnapshot | None:
        if self.fail:
            raise RuntimeError("editor disposed")
        return self.snapshot


def _snapshot(
    lines: list[str],
    ranges: list[tuple[int, int]],
    cursor: tuple[int, int] | None = None,
    file: str = "a.py",
) -> EditorSnapshot:
    return EditorSnapshot(file=file, lines=lines, visible_ranges=ranges, cursor=cursor)


class TestBuildViewportState:
    """Bounding union, 1-indexed bounds and cursor handling."""

    def test_single_range_is_one_indexed(self) -> None:
        state = build_viewport_state(_snapshot(["a", "b", "c", "d"], [(1, 2)]))
        assert state is not None
        assert (state.start_line, state.end_line) == (2, 3)
        assert state.content == "b\nc"

    def test_union_of_folded_ranges(self) -> None:
        state = build_viewport_state(_snapshot(["0", "1", "2", "3", "4", "5"], [(0, 1), (4, 5)]))
        assert state is not None
        assert (state.start_line, state.end_line) == (1, 6)
        assert state.content == "0\n1\n2\n3\n4\n5"

    def test_range_clamped_to_document(self) -> None:
        state = build_viewport_state(_snapshot(["x", "y"], [(0, 40)]))
        assert state is not None
        assert state.end_line == 2

    def test_cursor_inside_view(self) -> None:
        state = build_viewport_state(_snapshot(["a", "b", "c"], [(0, 2)], cursor=(1, 4)))
        assert state is not None
        assert state.cursor_position is not None
        assert state.cursor_position.line == 2
        assert state.cursor_position.character == 4
        assert state.start_line <= state.cursor_position.line <= state.end_line

    def test_cursor_outside_view_dropped(self) -> None:
        state = build_viewport_state(_snapshot(["a", "b", "c", "d"], [(0, 1)], cursor=(3, 0)))
        assert state is not None
        assert state.cursor_position is None

    def test_no_visible_range(self) -> None:
        assert build_viewport_state(_snapshot(["a"], [])) is None


class TestViewportSampler:
    """Dirty flag, deduplication and failure handling."""

    def _sampler(
        self, editor: FakeEditor, terminal: TerminalViewport | None = None
    ) -> tuple[ViewportSampler, list[ObservedState]]:
        seen: list[ObservedState] = []
        sampler = ViewportSampler(editor, lambda: terminal, poll_interval=0.01)
        sampler._on_observation = seen.append
        return sampler, seen

    def test_poll_without_dirty_flag_does_nothing(self) -> None:
        sampler, seen = self._sampler(FakeEditor(_snapshot(["a"], [(0, 0)])))
        assert sampler.poll() is None
        assert seen == []

    def test_poll_captures_and_clears_flag(self) -> None:
        sampler, seen = self._sampler(FakeEditor(_snapshot(["a"], [(0, 0)])))
        sampler.mark_dirty()
        state = sampler.poll()

        assert state is not None
        assert seen == [state]
        assert not sampler.is_dirty

    def test_identical_capture_suppressed(self) -> None:
        sampler, seen = self._sampler(FakeEditor(_snapshot(["a"], [(0, 0)])))
        sampler.mark_dirty()
        sampler.poll()
        sampler.mark_dirty()
        assert sampler.poll() is None
        assert len(seen) == 1

    def test_changed_capture_delivered(self) -> None:
        editor = FakeEditor(_snapshot(["a", "b"], [(0, 0)]))
        sampler, seen = self._sampler(editor)
        sampler.mark_dirty()
        sampler.poll()
        editor.snapshot = _snapshot(["a", "b"], [(1, 1)])
        sampler.mark_dirty()
        sampler.poll()
        assert len(seen) == 2

    def test_capture_now_bypasses_dedup_but_sets_reference(self) -> None:
        sampler, seen = self._sampler(FakeEditor(_snapshot(["a"], [(0, 0)])))
        first = sampler.capture_now()
        second = sampler.capture_now()
        assert first == second

        # The scroll tick after a post-action capture sees nothing new
        sampler.mark_dirty()
        assert sampler.poll() is None
        assert seen == []

    def test_host_failure_keeps_dirty_flag(self) -> None:
        editor = FakeEditor(_snapshot(["a"], [(0, 0)]))
        editor.fail = True
        sampler, seen = self._sampler(editor)
        sampler.mark_dirty()

        assert sampler.poll() is None
        assert sampler.is_dirty

        editor.fail = False
        assert sampler.poll() is not None

    def test_includes_terminal_viewport(self) -> None:
        terminal = TerminalViewport(id="terminal-1", name="bash", lines=["$ ls"])
        sampler, _ = self._sampler(FakeEditor(None), terminal)
        state = sampler.capture()
        assert state.viewport is None
        assert state.terminal_viewport == terminal

    def test_reset_forgets_reference(self) -> None:
        sampler, seen = self._sampler(FakeEditor(_snapshot(["a"], [(0, 0)])))
        sampler.capture_now()
        sampler.reset()
        sampler.mark_dirty()
        assert sampler.poll() is not None

    @pytest.mark.asyncio
    async def test_poll_loop_delivers(self) -> None:
        seen: list[ObservedState] = []
        sampler = ViewportSampler(
            FakeEditor(_snapshot(["a"], [(0, 0)])), lambda: None, poll_interval=0.01
        )
        sampler.start(seen.append)
        sampler.mark_dirty()
        await asyncio.sleep(0.05)
        await sampler.stop()

        assert len(seen) == 1
