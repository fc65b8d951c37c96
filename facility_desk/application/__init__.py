"""Application services."""

from .work_queries import (
    STATUS_TRANSITIONS,
    ExportFile,
    RemoveFilesResult,
    WorkQueryService,
)
from .wiring import build_work_query_service

__all__ = [
    "ExportFile",
    "RemoveFilesResult",
    "STATUS_TRANSITIONS",
    "WorkQueryService",
    "build_work_query_service",
]
