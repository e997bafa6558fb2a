"""Recording: event log, attribution, persistence and upload."""

from crowdcode.recording.consent import ConsentManager
from crowdcode.recording.engine import AttributionEngine
from crowdcode.recording.models import (
    ActionEvent,
    Event,
    ObservationEvent,
    RecordingSession,
    WorkspaceSnapshotEvent,
)
from crowdcode.recording.pending import PendingEditBuffer
from crowdcode.recording.persistence import SessionPersistence, decode_chunk
from crowdcode.recording.redaction import PanicRedactor
from crowdcode.recording.upload import Uploader

__all__ = [
    "ActionEvent",
    "AttributionEngine",
    "ConsentManager",
    "Event",
    "ObservationEvent",
    "PanicRedactor",
    "PendingEditBuffer",
    "RecordingSession",
    "SessionPersistence",
    "Uploader",
    "WorkspaceSnapshotEvent",
    "decode_chunk",
]
