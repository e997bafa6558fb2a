"""Capture trackers: each turns host or filesystem signals into plain values.

Trackers never mutate the recording session; the engine consumes their output.
"""

from crowdcode.capture.cache import ContentCache
from crowdcode.capture.filesystem import FilesystemChangeDetector
from crowdcode.capture.git import GitOperationDetector
from crowdcode.capture.ignore import IgnoreFilter
from crowdcode.capture.models import (
    CursorPosition,
    FileDelta,
    ObservedState,
    TerminalViewport,
    ViewportState,
)
from crowdcode.capture.terminal import TerminalCallbacks, TerminalSessionTracker
from crowdcode.capture.viewport import ViewportSampler
from crowdcode.capture.watcher import WorkspaceWatcher

__all__ = [
    "ContentCache",
    "CursorPosition",
    "FileDelta",
    "FilesystemChangeDetector",
    "GitOperationDetector",
    "IgnoreFilter",
    "ObservedState",
    "TerminalCallbacks",
    "TerminalSessionTracker",
    "TerminalViewport",
    "ViewportSampler",
    "ViewportState",
    "WorkspaceWatcher",
]
