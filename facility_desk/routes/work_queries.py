from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import Response
from starlette.datastructures import UploadFile

from facility_desk.application import WorkQueryService
from facility_desk.core.errors import ValidationError
from facility_desk.core.schema import (
    Actor,
    AssignRequest,
    CommentRequest,
    RemoveFilesRequest,
    StatusUpdateRequest,
    WorkQuery,
)
from facility_desk.core.validation import check_batch_limits, check_file_size
from facility_desk.domain import IncomingFile
from facility_desk.infrastructure import WorkQueryFilters

router = APIRouter(prefix="/work-queries", tags=["work-queries"])

CREATE_FILE_FIELDS = ("proofFiles", "proofFiles[]")
ADD_FILE_FIELDS = ("files", "files[]")


def get_work_query_service(request: Request) -> WorkQueryService:
    return request.app.state.work_query_service


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Actor | None:
    """Identity attached by the upstream auth layer, when present."""

    if not x_user_id:
        return None
    return Actor(user_id=x_user_id, name=x_user_name or x_user_id, role=x_user_role or "user")


async def _read_multipart(
    request: Request,
    service: WorkQueryService,
    file_fields: tuple[str, ...],
) -> tuple[dict[str, str], list[IncomingFile]]:
    """Split a multipart body into form fields and buffered files, enforcing request limits."""

    settings = service.settings
    form = await request.form()
    try:
        fields: dict[str, str] = {}
        field_count = 0
        uploads: list[UploadFile] = []
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key not in file_fields:
                    raise ValidationError(
                        f"Unexpected file field: {key}",
                        details={"field": key, "allowed": list(file_fields)},
                    )
                uploads.append(value)
            else:
                # Repeated keys keep the last value but each part counts toward the limit.
                field_count += 1
                fields[key] = value

        check_batch_limits(
            len(uploads),
            field_count,
            max_files=settings.max_files,
            max_fields=settings.max_fields,
        )

        files: list[IncomingFile] = []
        for upload in uploads:
            filename = upload.filename or "file"
            if upload.size is not None:
                check_file_size(filename, upload.size, settings.max_file_bytes)
            data = await upload.read()
            check_file_size(filename, len(data), settings.max_file_bytes)
            files.append(IncomingFile(filename=filename, content_type=upload.content_type or "", data=data))
        return fields, files
    finally:
        await form.close()


def _filters(
    status: str | None,
    priority: str | None,
    service_type: str | None,
    supervisor_id: str | None,
    category: str | None,
    query_type: str | None,
) -> WorkQueryFilters:
    return WorkQueryFilters(
        status=status or None,
        priority=priority or None,
        service_type=service_type or None,
        supervisor_id=supervisor_id or None,
        category=category or None,
        type=query_type or None,
    )


def _ok(data: Any, **extra: Any) -> dict[str, Any]:
    return {"success": True, "data": data, **extra}


def _document(query: WorkQuery) -> dict[str, Any]:
    return query.to_document()


@router.post("", status_code=201)
async def create_work_query(
    request: Request,
    service: WorkQueryService = Depends(get_work_query_service),
    actor: Actor | None = Depends(get_actor),
) -> dict:
    """Create a work query with up to ten proof files."""
    fields, files = await _read_multipart(request, service, CREATE_FILE_FIELDS)
    query = await service.create(fields, files, actor=actor)
    return _ok(_document(query), message="Work query created successfully")


@router.get("")
async def list_work_queries(
    status: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    service_type: str | None = Query(default=None, alias="serviceType"),
    supervisor_id: str | None = Query(default=None, alias="supervisorId"),
    category: str | None = Query(default=None),
    query_type: str | None = Query(default=None, alias="type"),
    page: int = Query(default=1),
    limit: int = Query(default=10),
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    filters = _filters(status, priority, service_type, supervisor_id, category, query_type)
    items, total = service.list_queries(filters, page=page, limit=limit)
    pages = (total + limit - 1) // limit
    return _ok(
        [_document(item) for item in items],
        pagination={"page": page, "limit": limit, "total": total, "pages": pages},
    )


@router.get("/statistics")
async def get_statistics(service: WorkQueryService = Depends(get_work_query_service)) -> dict:
    return _ok(service.statistics().to_document())


@router.get("/recent")
async def get_recent_work_queries(
    limit: int = Query(default=5),
    supervisor_id: str | None = Query(default=None, alias="supervisorId"),
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    return _ok([_document(item) for item in service.recent(limit, supervisor_id=supervisor_id)])


@router.get("/categories")
async def get_categories(service: WorkQueryService = Depends(get_work_query_service)) -> dict:
    return _ok(service.vocabulary("categories"))


@router.get("/priorities")
async def get_priorities(service: WorkQueryService = Depends(get_work_query_service)) -> dict:
    return _ok(service.vocabulary("priorities"))


@router.get("/statuses")
async def get_statuses(service: WorkQueryService = Depends(get_work_query_service)) -> dict:
    return _ok(service.vocabulary("statuses"))


@router.get("/service-types")
async def get_service_types(service: WorkQueryService = Depends(get_work_query_service)) -> dict:
    return _ok(service.vocabulary("service-types"))


@router.get("/export")
async def export_work_queries(
    file_format: str = Query(default="csv", alias="format"),
    status: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    service_type: str | None = Query(default=None, alias="serviceType"),
    supervisor_id: str | None = Query(default=None, alias="supervisorId"),
    category: str | None = Query(default=None),
    query_type: str | None = Query(default=None, alias="type"),
    service: WorkQueryService = Depends(get_work_query_service),
) -> Response:
    filters = _filters(status, priority, service_type, supervisor_id, category, query_type)
    export = service.export(filters, file_format=file_format)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/query/{query_id}")
async def get_work_query_by_query_id(
    query_id: str,
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    return _ok(_document(service.get_by_query_id(query_id)))


@router.get("/supervisor/{supervisor_id}/services")
async def get_services_for_supervisor(
    supervisor_id: str,
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    return _ok(service.services_for_supervisor(supervisor_id))


@router.get("/{id}")
async def get_work_query(id: str, service: WorkQueryService = Depends(get_work_query_service)) -> dict:
    return _ok(_document(service.get(id)))


@router.patch("/{id}/status")
async def update_work_query_status(
    id: str,
    payload: StatusUpdateRequest,
    service: WorkQueryService = Depends(get_work_query_service),
    actor: Actor | None = Depends(get_actor),
) -> dict:
    query = service.update_status(id, payload.status, response=payload.superadmin_response, actor=actor)
    return _ok(_document(query), message=f"Status updated to {query.status}")


@router.post("/{id}/comments")
async def add_work_query_comment(
    id: str,
    payload: CommentRequest,
    service: WorkQueryService = Depends(get_work_query_service),
    actor: Actor | None = Depends(get_actor),
) -> dict:
    user_id = payload.user_id or (actor.user_id if actor else None)
    name = payload.name or (actor.name if actor else None)
    if not user_id or not name:
        raise ValidationError(
            "userId and name are required when no acting user is known",
            reason="missing_field",
            details={"field": "userId" if not user_id else "name"},
        )
    query = service.add_comment(id, user_id, name, payload.comment)
    return _ok(_document(query), message="Comment added")


@router.patch("/{id}/assign")
async def assign_work_query(
    id: str,
    payload: AssignRequest,
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    query = service.assign(id, payload.user_id, payload.name, payload.role)
    return _ok(_document(query), message=f"Assigned to {payload.name}")


@router.post("/{id}/files")
async def add_work_query_files(
    id: str,
    request: Request,
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    _, files = await _read_multipart(request, service, ADD_FILE_FIELDS)
    query = await service.add_files(id, files)
    return _ok(_document(query), message=f"{len(files)} file(s) added")


@router.get("/{id}/files/link")
async def get_work_query_file_link(
    id: str,
    public_id: str = Query(alias="publicId"),
    expires_in: int = Query(default=3600, alias="expiresIn"),
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    return _ok(service.proof_file_link(id, public_id, expires_in=expires_in))


@router.delete("/{id}/files")
async def remove_work_query_files(
    id: str,
    payload: RemoveFilesRequest,
    service: WorkQueryService = Depends(get_work_query_service),
) -> dict:
    result = await service.remove_files(id, payload.public_ids)
    return _ok(
        _document(result.query),
        removed=result.removed,
        notFound=result.not_found,
        cleanupFailures=[warning.to_dict() for warning in result.cleanup_failures],
    )
