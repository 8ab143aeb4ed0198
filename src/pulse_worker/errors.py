"""
Error taxonomy for the ingestion worker.

Only RunTimeout, RunInProgressError and RunStateConflict ever leave a
pipeline run. The others are raised at a single call site and absorbed by
the stage that owns it, which logs and counts them.
"""

from enum import StrEnum


class PulseWorkerError(Exception):
    """Base class for all worker errors."""


class SourceErrorKind(StrEnum):
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    BLOCKED = "blocked"


class SourceError(PulseWorkerError):
    """A feed or provider failed to produce a clean batch."""

    def __init__(self, kind: SourceErrorKind, source_id: str, message: str = ""):
        self.kind = kind
        self.source_id = source_id
        self.message = message
        super().__init__(f"{kind.value} from {source_id}: {message}" if message else f"{kind.value} from {source_id}")

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "source_id": self.source_id, "message": self.message}


class EnrichmentError(PulseWorkerError):
    """The AI service failed for one article."""


class PersistenceConflict(PulseWorkerError):
    """The article (or an equivalent one) already exists in storage."""


class PersistenceError(PulseWorkerError):
    """Any storage failure other than a uniqueness conflict."""


class RunTimeout(PulseWorkerError):
    """The run exceeded its time budget and was abandoned."""


class RunInProgressError(PulseWorkerError):
    """A manual trigger arrived while another run was active."""


class RunStateConflict(PulseWorkerError):
    """The stored run state changed since it was read."""
