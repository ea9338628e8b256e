"""
Shared exceptions for the extraction pipeline.

Every error carries the HTTP status it maps to and a ``context`` dict
that is merged into the flat ``{"ok": false, "error": ...}`` response body.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for all categorized pipeline failures."""

    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON error body for this failure."""
        return {"ok": False, "error": self.message, **self.context}


class InvalidInputError(PipelineError):
    """Raised when a request has the wrong shape."""

    status_code = 400


class RemoteOperationFailed(PipelineError):
    """Raised when the remote service reports a failed job or file."""

    def __init__(self, message: str, last_status: Any = None, **context: Any):
        super().__init__(message, **context)
        self.last_status = last_status


class RemoteOperationTimedOut(PipelineError):
    """Raised when polling a remote operation exceeds its deadline."""

    def __init__(
        self,
        message: str,
        last_status: Any = None,
        elapsed: float = 0.0,
        **context: Any,
    ):
        super().__init__(message, **context)
        self.last_status = last_status
        self.elapsed = elapsed

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["timedOut"] = True
        return payload


class ResponseParseError(PipelineError):
    """Raised when the model output is not valid JSON."""

    def __init__(self, message: str, preview: str = "", **context: Any):
        super().__init__(message, preview=preview, **context)
        self.preview = preview


class InternalInconsistencyError(PipelineError):
    """Raised when a resource is missing after a step that reported success."""

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["inconsistency"] = True
        return payload


class OperationCancelled(PipelineError):
    """Raised when the caller stops waiting (e.g. the HTTP client disconnected)."""

    status_code = 499


class RemoteServiceError(PipelineError):
    """Raised when a call to the remote service itself errors out."""

    pass


class ExportError(PipelineError):
    """Raised when the spreadsheet cannot be generated."""

    pass
