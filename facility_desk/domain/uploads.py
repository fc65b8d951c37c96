"""Value objects exchanged between the HTTP layer, the service and storage."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IncomingFile:
    """A file received in a multipart request, fully buffered in memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class DeleteOutcome:
    """Result of a best-effort storage deletion; failures are data, not exceptions."""

    public_id: str
    ok: bool
    error: str | None = None

    @classmethod
    def success(cls, public_id: str) -> "DeleteOutcome":
        return cls(public_id=public_id, ok=True)

    @classmethod
    def failure(cls, public_id: str, error: str) -> "DeleteOutcome":
        return cls(public_id=public_id, ok=False, error=error)
