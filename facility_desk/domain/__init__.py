"""Domain layer definitions."""

from .uploads import DeleteOutcome, IncomingFile

__all__ = [
    "DeleteOutcome",
    "IncomingFile",
]
