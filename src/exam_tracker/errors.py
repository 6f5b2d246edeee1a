# src/exam_tracker/errors.py

"""Error taxonomy shared by the service clients and the engine."""

from __future__ import annotations


class ExamTrackerError(RuntimeError):
    """Base class for every error the engine surfaces."""


class TransportError(ExamTrackerError):
    """The request could not complete (connection, timeout, unreadable body)."""


class MalformedResponseError(TransportError):
    """A response body that is not the service's JSON (bad 2xx body, proxy error page)."""


class ServiceError(ExamTrackerError):
    """The service answered with a well-formed error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SubmissionError(ExamTrackerError):
    pass


class ExportError(ExamTrackerError):
    pass


class ExportBusyError(ExportError):
    """An export request is already in flight."""
