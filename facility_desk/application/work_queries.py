"""Application service for the work query lifecycle."""
from __future__ import annotations

import io
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

import pandas as pd

from facility_desk.core.errors import NotFoundError, PersistenceError, StorageCleanupWarning, ValidationError
from facility_desk.core.schema import (
    Actor,
    Comment,
    CreateWorkQueryRequest,
    ProofFile,
    SupervisorSummary,
    WorkQuery,
    WorkQueryStatistics,
)
from facility_desk.core.settings import Settings
from facility_desk.core.validation import check_batch_limits, check_file, check_file_size, parse_model
from facility_desk.core.vocabulary import (
    CATEGORIES,
    OPEN_STATUSES,
    PRIORITIES,
    SERVICE_TYPES,
    STATUSES,
    values,
)
from facility_desk.domain import IncomingFile
from facility_desk.infrastructure import (
    BatchUploadError,
    InMemoryServiceCatalog,
    StorageGateway,
    WorkQueryFilters,
    WorkQueryRepository,
    delete_many,
    upload_many,
)

logger = logging.getLogger(__name__)

# Used only when strict transitions are enabled; the default is any -> any.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"in-progress", "rejected"}),
    "in-progress": frozenset({"resolved", "rejected"}),
    "resolved": frozenset(),
    "rejected": frozenset(),
}

VOCABULARIES: dict[str, list[dict[str, str]]] = {
    "categories": CATEGORIES,
    "priorities": PRIORITIES,
    "statuses": STATUSES,
    "service-types": SERVICE_TYPES,
}

EXPORT_COLUMNS = [
    "queryId",
    "title",
    "type",
    "subjectId",
    "subjectName",
    "serviceType",
    "priority",
    "status",
    "category",
    "supervisorId",
    "supervisorName",
    "reportedBy",
    "assignedTo",
    "proofFiles",
    "comments",
    "createdAt",
    "updatedAt",
    "responseDate",
]

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

MAX_PAGE_SIZE = 100
MAX_LINK_TTL = 7 * 24 * 3600


@dataclass(slots=True)
class RemoveFilesResult:
    query: WorkQuery
    removed: list[str] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    cleanup_failures: list[StorageCleanupWarning] = field(default_factory=list)


@dataclass(slots=True)
class ExportFile:
    content: bytes
    media_type: str
    filename: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkQueryService:
    """Coordinates work query use cases across the store and object storage."""

    def __init__(
        self,
        repository: WorkQueryRepository,
        gateway: StorageGateway,
        *,
        catalog: InMemoryServiceCatalog | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._catalog = catalog or InMemoryServiceCatalog()
        self._settings = settings or Settings()
        self._clock = clock

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _require(self, id: str) -> WorkQuery:
        query = self._repository.get(id)
        if query is None:
            raise NotFoundError()
        return query

    def _screen(self, files: Sequence[IncomingFile]) -> None:
        check_batch_limits(len(files), max_files=self._settings.max_files, max_fields=self._settings.max_fields)
        for file in files:
            check_file_size(file.filename, file.size, self._settings.max_file_bytes)
            check_file(file)

    def _next_query_id(self) -> str:
        sequence = self._repository.next_sequence()
        return f"WQ-{self._clock():%Y%m%d}-{sequence:05d}"

    async def _upload(self, files: Sequence[IncomingFile]) -> list[ProofFile]:
        if not files:
            return []
        try:
            return await upload_many(
                self._gateway,
                files,
                folder=self._settings.proof_folder,
                timeout=self._settings.upload_timeout,
            )
        except BatchUploadError as exc:
            if exc.uploaded:
                logger.info("removing %d uploaded sibling(s) after failed upload of %s", len(exc.uploaded), exc.filename)
                # Cleanup failures are logged by delete_many and otherwise ignored.
                await delete_many(self._gateway, exc.uploaded)
            raise

    async def _persist(self, query: WorkQuery, uploaded: Sequence[ProofFile], *, insert: bool) -> WorkQuery:
        """Write ``query``; on failure remove the files uploaded for this request."""

        try:
            return self._repository.insert(query) if insert else self._repository.save(query)
        except (PersistenceError, OSError) as exc:
            logger.exception("failed to persist work query %s", query.query_id)
            if uploaded:
                await delete_many(self._gateway, uploaded)
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError("Failed to save work query") from exc

    def _snapshot_subject(self, request: CreateWorkQueryRequest) -> dict[str, Any]:
        if request.type == "task":
            return {"employee_id": request.employee_id, "employee_name": request.employee_name}

        snapshot = {
            "service_id": request.service_id,
            "service_title": request.service_title,
            "service_type": request.service_type,
            "service_staff_id": request.service_staff_id,
            "service_staff_name": request.service_staff_name,
        }
        service = self._catalog.get(request.service_id or "")
        if service is not None:
            snapshot["service_title"] = snapshot["service_title"] or service.title
            snapshot["service_type"] = snapshot["service_type"] or service.type
            snapshot["service_staff_id"] = snapshot["service_staff_id"] or service.assigned_to
            snapshot["service_staff_name"] = snapshot["service_staff_name"] or service.assigned_to_name
        return snapshot

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def create(
        self,
        request: CreateWorkQueryRequest | Mapping[str, Any],
        files: Sequence[IncomingFile] = (),
        *,
        actor: Actor | None = None,
    ) -> WorkQuery:
        request = parse_model(CreateWorkQueryRequest, request)
        files = list(files)
        self._screen(files)

        supervisor_name = request.supervisor_name or (actor.name if actor else None) or request.supervisor_id
        reported_by = actor or Actor(user_id=request.supervisor_id, name=supervisor_name, role="supervisor")
        query_id = self._next_query_id()

        proof_files = await self._upload(files)

        now = self._clock()
        query = WorkQuery(
            id=uuid.uuid4().hex,
            query_id=query_id,
            title=request.title,
            description=request.description,
            type=request.type,
            priority=request.priority,
            status="pending",
            category=request.category,
            proof_files=proof_files,
            reported_by=reported_by,
            supervisor_id=request.supervisor_id,
            supervisor_name=supervisor_name,
            comments=[],
            created_at=now,
            updated_at=now,
            **self._snapshot_subject(request),
        )
        stored = await self._persist(query, proof_files, insert=True)
        logger.info("created work query %s with %d proof file(s)", stored.query_id, len(stored.proof_files))
        return stored

    def list_queries(
        self,
        filters: WorkQueryFilters | None = None,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[WorkQuery], int]:
        if page < 1:
            raise ValidationError("page must be at least 1", details={"field": "page"})
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"field": "limit"})
        return self._repository.find(filters or WorkQueryFilters(), skip=(page - 1) * limit, limit=limit)

    def get(self, id: str) -> WorkQuery:
        return self._require(id)

    def get_by_query_id(self, query_id: str) -> WorkQuery:
        query = self._repository.get_by_query_id(query_id)
        if query is None:
            raise NotFoundError()
        return query

    def update_status(
        self,
        id: str,
        status: str,
        *,
        response: str | None = None,
        actor: Actor | None = None,
    ) -> WorkQuery:
        if status not in values(STATUSES):
            raise ValidationError(f"Invalid status: {status}", details={"field": "status", "allowed": values(STATUSES)})
        query = self._require(id)

        if self._settings.strict_transitions and status != query.status:
            if status not in STATUS_TRANSITIONS[query.status]:
                raise ValidationError(
                    f"Cannot move work query from {query.status} to {status}",
                    reason="invalid_transition",
                    details={"from": query.status, "to": status},
                )

        previous = query.status
        query.status = status  # type: ignore[assignment]
        if response and response.strip():
            query.superadmin_response = response.strip()
            query.response_date = self._clock()
            query.responded_by = actor
        stored = self._repository.save(query)
        logger.info("work query %s status %s -> %s", stored.query_id, previous, status)
        return stored

    def add_comment(self, id: str, user_id: str, name: str, comment: str) -> WorkQuery:
        if not comment or not comment.strip():
            raise ValidationError("Comment text is required", reason="missing_field", details={"field": "comment"})
        query = self._require(id)
        query.comments.append(Comment(user_id=user_id, name=name, comment=comment.strip(), timestamp=self._clock()))
        return self._repository.save(query)

    def assign(self, id: str, user_id: str, name: str, role: str = "employee") -> WorkQuery:
        query = self._require(id)
        query.assigned_to = Actor(user_id=user_id, name=name, role=role)
        stored = self._repository.save(query)
        logger.info("work query %s assigned to %s", stored.query_id, user_id)
        return stored

    # ------------------------------------------------------------------
    # proof files
    # ------------------------------------------------------------------
    async def add_files(self, id: str, files: Sequence[IncomingFile]) -> WorkQuery:
        """Append proof files; a batch that would exceed the ceiling is rejected whole."""

        files = list(files)
        if not files:
            raise ValidationError("No files provided", reason="missing_field", details={"field": "files"})
        query = self._require(id)
        self._screen(files)

        remaining = max(self._settings.max_files - len(query.proof_files), 0)
        if len(files) > remaining:
            raise ValidationError(
                f"Cannot add {len(files)} file(s): only {remaining} more allowed per query.",
                reason="proof_file_limit",
                details={"remaining": remaining, "limit": self._settings.max_files},
            )

        uploaded = await self._upload(files)
        query.proof_files.extend(uploaded)
        stored = await self._persist(query, uploaded, insert=False)
        logger.info("added %d proof file(s) to work query %s", len(uploaded), stored.query_id)
        return stored

    async def remove_files(self, id: str, public_ids: Iterable[str]) -> RemoveFilesResult:
        wanted = list(dict.fromkeys(pid for pid in public_ids if pid))
        if not wanted:
            raise ValidationError("No file ids provided", reason="missing_field", details={"field": "publicIds"})
        query = self._require(id)

        targets = [item for item in query.proof_files if item.public_id in wanted]
        found = {item.public_id for item in targets}
        result = RemoveFilesResult(query=query, not_found=[pid for pid in wanted if pid not in found])
        if not targets:
            return result

        # Metadata goes regardless of what storage says.
        result.cleanup_failures = await delete_many(self._gateway, targets)
        query.proof_files = [item for item in query.proof_files if item.public_id not in found]
        result.query = self._repository.save(query)
        result.removed = [item.public_id for item in targets]
        logger.info("removed %d proof file(s) from work query %s", len(targets), result.query.query_id)
        return result

    def proof_file_link(self, id: str, public_id: str, *, expires_in: int = 3600) -> dict[str, Any]:
        """Temporary download link for one of a query's proof files."""

        if not 0 < expires_in <= MAX_LINK_TTL:
            raise ValidationError(
                f"expiresIn must be between 1 and {MAX_LINK_TTL} seconds",
                details={"field": "expiresIn"},
            )
        query = self._require(id)
        item = next((proof for proof in query.proof_files if proof.public_id == public_id), None)
        if item is None:
            raise NotFoundError("proof file not found")
        url = self._gateway.generate_signed_url(
            item.public_id,
            resource_type=item.resource_type,
            file_format=item.format,
            expires_in=expires_in,
        )
        expires_at = self._clock() + timedelta(seconds=expires_in)
        return {"publicId": item.public_id, "name": item.name, "url": url, "expiresAt": expires_at.isoformat()}

    # ------------------------------------------------------------------
    # reporting
    # ------------------------------------------------------------------
    def statistics(self) -> WorkQueryStatistics:
        queries = self._repository.all()

        status_counts = {status: 0 for status in values(STATUSES)}
        status_counts.update(Counter(query.status for query in queries))
        priority_counts = {priority: 0 for priority in values(PRIORITIES)}
        priority_counts.update(Counter(query.priority for query in queries))
        category_counts = Counter(query.category for query in queries)
        service_type_counts = Counter(query.service_type for query in queries if query.service_type)

        supervisors: dict[str, SupervisorSummary] = {}
        for query in queries:
            summary = supervisors.setdefault(
                query.supervisor_id, SupervisorSummary(supervisor_name=query.supervisor_name)
            )
            summary.total += 1
            if query.is_open:
                summary.open += 1

        return WorkQueryStatistics(
            total=len(queries),
            status_counts=status_counts,
            priority_counts=priority_counts,
            category_counts=dict(category_counts),
            service_type_counts=dict(service_type_counts),
            supervisor_counts=supervisors,
        )

    def recent(self, limit: int = 5, *, supervisor_id: str | None = None) -> list[WorkQuery]:
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items, _ = self._repository.find(WorkQueryFilters(supervisor_id=supervisor_id), limit=limit)
        return items

    def services_for_supervisor(self, supervisor_id: str) -> list[dict[str, Any]]:
        services = self._catalog.for_supervisor(supervisor_id)
        if not services:
            return []
        open_counts: Counter[str] = Counter()
        totals: Counter[str] = Counter()
        for query in self._repository.all():
            if query.service_id is None:
                continue
            totals[query.service_id] += 1
            if query.status in OPEN_STATUSES:
                open_counts[query.service_id] += 1

        rows: list[dict[str, Any]] = []
        for service in services:
            row = service.to_document()
            row["openQueries"] = open_counts[service.service_id]
            row["totalQueries"] = totals[service.service_id]
            rows.append(row)
        return rows

    def vocabulary(self, name: str) -> list[dict[str, str]]:
        try:
            return [dict(item) for item in VOCABULARIES[name]]
        except KeyError:
            raise NotFoundError(f"unknown vocabulary: {name}") from None

    def export(self, filters: WorkQueryFilters | None = None, *, file_format: str = "csv") -> ExportFile:
        if file_format not in EXPORT_MEDIA_TYPES:
            raise ValidationError(
                f"Unsupported export format: {file_format}",
                details={"field": "format", "allowed": sorted(EXPORT_MEDIA_TYPES)},
            )
        queries, _ = self._repository.find(filters or WorkQueryFilters())

        def _iso(value: datetime | None) -> str:
            return value.isoformat() if value else ""

        rows = [
            {
                "queryId": query.query_id,
                "title": query.title,
                "type": query.type,
                "subjectId": query.service_id if query.type == "service" else query.employee_id,
                "subjectName": (query.service_title if query.type == "service" else query.employee_name) or "",
                "serviceType": query.service_type or "",
                "priority": query.priority,
                "status": query.status,
                "category": query.category,
                "supervisorId": query.supervisor_id,
                "supervisorName": query.supervisor_name,
                "reportedBy": query.reported_by.name,
                "assignedTo": query.assigned_to.name if query.assigned_to else "",
                "proofFiles": len(query.proof_files),
                "comments": len(query.comments),
                "createdAt": _iso(query.created_at),
                "updatedAt": _iso(query.updated_at),
                "responseDate": _iso(query.response_date),
            }
            for query in queries
        ]
        frame = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
        stamp = f"{self._clock():%Y%m%d}"

        if file_format == "csv":
            content = frame.to_csv(index=False).encode("utf-8")
        else:
            buffer = io.BytesIO()
            with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
                frame.to_excel(writer, index=False, sheet_name="Work Queries")
            content = buffer.getvalue()
        return ExportFile(
            content=content,
            media_type=EXPORT_MEDIA_TYPES[file_format],
            filename=f"work-queries-{stamp}.{file_format}",
        )

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------
    async def aclose(self) -> None:
        await self._gateway.aclose()
