"""Tests for capture/git.py - GitOperationDetector."""

from __future__ import annotations

from pathlib import Path

import pygit2
import pytest

from crowdcode.capture.git import GitOperationDetector


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo(tmp_path: Path) -> pygit2.Repository:
    """Repository with one commit on its default branch."""
    repository = pygit2.init_repository(str(tmp_path))
    signature = pygit2.Signature("Test", "test@example.com")
    tree = repository.index.write_tree()
    repository.create_commit("HEAD", signature, signature, "initial", tree, [])
    return repository


class TestClassifyPath:
    """Mapping .git paths to signals."""

    def test_head(self, tmp_path: Path) -> None:
        detector = GitOperationDetector(tmp_path)
        assert detector.classify_path(tmp_path / ".git" / "HEAD") == "head"

    def test_refs(self, tmp_path: Path) -> None:
        detector = GitOperationDetector(tmp_path)
        assert detector.classify_path(tmp_path / ".git" / "refs" / "heads" / "main") == "refs"
        assert detector.classify_path(tmp_path / ".git" / "packed-refs") == "refs"

    def test_other_paths(self, tmp_path: Path) -> None:
        detector = GitOperationDetector(tmp_path)
        assert detector.classify_path(tmp_path / ".git" / "index") is None
        assert detector.classify_path(tmp_path / "HEAD") is None


class TestRecentOperation:
    """Window and one-shot checkout flag."""

    def test_no_signal(self, tmp_path: Path, clock: FakeClock) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        assert detector.recent_operation() is None

    def test_refs_change_is_vcs_within_window(self, tmp_path: Path, clock: FakeClock) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.on_signal("refs")
        clock.now += 0.3
        assert detector.recent_operation() == "vcs"

    def test_signal_expires_after_window(self, tmp_path: Path, clock: FakeClock) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.on_signal("refs")
        clock.now += 0.6
        assert detector.recent_operation() is None

    def test_head_change_without_repository_is_checkout(
        self, tmp_path: Path, clock: FakeClock
    ) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.on_signal("head")
        assert detector.recent_operation() == "vcs_checkout"

    def test_checkout_flag_consumed_once(self, tmp_path: Path, clock: FakeClock) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.on_head_changed()
        assert detector.recent_operation() == "vcs_checkout"
        assert detector.recent_operation() == "vcs"

    def test_reset_forgets_signals(self, tmp_path: Path, clock: FakeClock) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.on_head_changed()
        detector.reset()
        assert detector.recent_operation() is None
        assert detector.last_operation_time is None


class TestWithRepository:
    """HEAD inspection through pygit2."""

    def test_open_without_repository(self, tmp_path: Path) -> None:
        detector = GitOperationDetector(tmp_path)
        detector.open()
        assert not detector.is_repository

    def test_rewritten_head_is_not_checkout(
        self, tmp_path: Path, repo: pygit2.Repository, clock: FakeClock
    ) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.open()

        detector.on_head_changed()

        assert detector.recent_operation() == "vcs"

    def test_branch_switch_is_checkout(
        self, tmp_path: Path, repo: pygit2.Repository, clock: FakeClock
    ) -> None:
        detector = GitOperationDetector(tmp_path, clock=clock)
        detector.open()

        commit = repo.head.peel(pygit2.Commit)
        repo.branches.local.create("feature", commit)
        repo.set_head("refs/heads/feature")
        detector.on_head_changed()

        assert detector.recent_operation() == "vcs_checkout"
        detector.close()
