"""Error taxonomy shared by the work-query service and its HTTP surface."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class WorkQueryError(Exception):
    """Base class for every error the work-query subsystem reports to callers."""

    status_code = 500
    default_reason = "error"

    def __init__(self, message: str, *, reason: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message, "reason": self.reason}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(WorkQueryError):
    """Raised when a request is malformed; never retried."""

    status_code = 400
    default_reason = "invalid_value"


class NotFoundError(WorkQueryError):
    status_code = 404
    default_reason = "not_found"

    def __init__(self, message: str = "work query not found") -> None:
        super().__init__(message)


class UploadError(WorkQueryError):
    """Raised when the storage gateway rejects or times out on a file."""

    status_code = 502
    default_reason = "upload_failed"

    def __init__(self, message: str, *, filename: str | None = None) -> None:
        super().__init__(message, details={"filename": filename} if filename else None)
        self.filename = filename


class PersistenceError(WorkQueryError):
    status_code = 500
    default_reason = "persistence_failed"


@dataclass(slots=True)
class StorageCleanupWarning:
    """A best-effort storage deletion that did not succeed.

    Logged by whoever receives it; never surfaced as a request failure.
    """

    public_id: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"public_id": self.public_id, "reason": self.reason}
