"""Git operation detector: classifies filesystem bursts caused by git.

HEAD changes set a one-shot checkout flag; changes under refs/ (and
packed-refs) only refresh the operation timestamp. A classification is
returned only within a short window of the latest signal.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Literal

import pygit2
import structlog

logger = structlog.get_logger()

GIT_OPERATION_WINDOW_SEC = 0.5

GitOperation = Literal["vcs", "vcs_checkout"]
GitSignal = Literal["head", "refs"]


class GitOperationDetector:
    """Watches signals from .git/HEAD and .git/refs of one workspace."""

    def __init__(
        self,
        workspace_root: Path,
        *,
        window: float = GIT_OPERATION_WINDOW_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._workspace_root = workspace_root
        self._git_dir = workspace_root / ".git"
        self._window = window
        self._clock = clock
        self._saw_head_change = False
        self._last_operation_time: float | None = None
        self._repo: pygit2.Repository | None = None
        self._last_head: str | None = None

    @property
    def git_dir(self) -> Path:
        return self._git_dir

    @property
    def is_repository(self) -> bool:
        return self._git_dir.is_dir()

    def open(self) -> None:
        """Open the repository and remember the current HEAD."""
        if not self.is_repository:
            logger.info("git_repository_not_found", workspace=str(self._workspace_root))
            return
        try:
            self._repo = pygit2.Repository(str(self._workspace_root))
        except pygit2.GitError as e:
            logger.warning("git_repository_unreadable", error=str(e))
            self._repo = None
            return
        self._last_head = self._describe_head()
        logger.info("git_provider_initialized", head=self._last_head)

    def close(self) -> None:
        self._repo = None
        self.reset()

    def reset(self) -> None:
        self._saw_head_change = False
        self._last_operation_time = None

    def _describe_head(self) -> str | None:
        if self._repo is None:
            return None
        try:
            if self._repo.head_is_unborn:
                return None
            head = self._repo.head
            if self._repo.head_is_detached:
                return str(head.target)
            return f"{head.shorthand}@{head.target}"
        except pygit2.GitError:
            return None

    @property
    def last_operation_time(self) -> float | None:
        """Clock reading of the most recent signal; identifies a burst."""
        return self._last_operation_time

    @property
    def window(self) -> float:
        return self._window

    def classify_path(self, path: Path) -> GitSignal | None:
        """Map a path inside .git to the signal it represents, if any."""
        try:
            rel = path.relative_to(self._git_dir)
        except ValueError:
            return None
        if rel.as_posix() == "HEAD":
            return "head"
        if rel.parts and rel.parts[0] == "refs":
            return "refs"
        if rel.as_posix() == "packed-refs":
            return "refs"
        return None

    def on_head_changed(self) -> None:
        head = self._describe_head()
        # Rewriting HEAD to the same ref and commit does not move the work tree
        if self._repo is not None and head is not None and head == self._last_head:
            logger.info("git_head_rewritten", head=head)
        else:
            logger.info("git_checkout_detected", previous=self._last_head, head=head)
            self._saw_head_change = True
        self._last_head = head
        self._last_operation_time = self._clock()

    def on_refs_changed(self) -> None:
        logger.debug("git_refs_changed")
        self._last_operation_time = self._clock()

    def on_signal(self, signal: GitSignal) -> None:
        match signal:
            case "head":
                self.on_head_changed()
            case "refs":
                self.on_refs_changed()

    def recent_operation(self) -> GitOperation | None:
        """Classify the current moment. Consumes the checkout flag."""
        if self._last_operation_time is None:
            return None
        if self._clock() - self._last_operation_time > self._window:
            return None
        result: GitOperation = "vcs_checkout" if self._saw_head_change else "vcs"
        self._saw_head_change = False
        return result
