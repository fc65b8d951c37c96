from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from facility_desk.core.vocabulary import (
    DEFAULT_CATEGORY,
    OPEN_STATUSES,
    ProofFileKind,
    QueryPriority,
    QueryStatus,
    QueryType,
)


class CamelModel(BaseModel):
    """Records are addressed in snake_case and exchanged in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProofFile(CamelModel):
    """Embedded attachment metadata; the JSON shape is a durable contract."""

    name: str
    type: ProofFileKind
    url: str
    public_id: str = Field(alias="public_id")
    size: str
    format: str | None = None
    byte_count: int | None = Field(default=None, alias="bytes")
    upload_date: datetime

    @property
    def resource_type(self) -> str:
        if self.type in {"image", "video"}:
            return self.type
        return "raw"


class Actor(CamelModel):
    user_id: str
    name: str
    role: str


class Comment(CamelModel):
    user_id: str
    name: str
    comment: str
    timestamp: datetime


class WorkQuery(CamelModel):
    id: str = Field(alias="_id")
    query_id: str
    title: str
    description: str
    type: QueryType = "service"
    service_id: str | None = None
    service_title: str | None = None
    service_type: str | None = None
    service_staff_id: str | None = None
    service_staff_name: str | None = None
    employee_id: str | None = None
    employee_name: str | None = None
    priority: QueryPriority = "medium"
    status: QueryStatus = "pending"
    category: str = DEFAULT_CATEGORY
    proof_files: list[ProofFile] = Field(default_factory=list)
    reported_by: Actor
    assigned_to: Actor | None = None
    supervisor_id: str
    supervisor_name: str
    superadmin_response: str | None = None
    response_date: datetime | None = None
    responded_by: Actor | None = None
    comments: list[Comment] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class ServiceRecord(CamelModel):
    """A facility service a supervisor can raise work queries against."""

    service_id: str
    type: str
    title: str
    description: str = ""
    location: str = ""
    assigned_to: str | None = None
    assigned_to_name: str | None = None
    status: str = "operational"
    schedule: str | None = None
    supervisor_id: str | None = None


class SupervisorSummary(CamelModel):
    supervisor_name: str
    total: int = 0
    open: int = 0


class WorkQueryStatistics(CamelModel):
    total: int = 0
    status_counts: dict[str, int] = Field(default_factory=dict)
    priority_counts: dict[str, int] = Field(default_factory=dict)
    category_counts: dict[str, int] = Field(default_factory=dict)
    service_type_counts: dict[str, int] = Field(default_factory=dict)
    supervisor_counts: dict[str, SupervisorSummary] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# request DTOs
# ----------------------------------------------------------------------
class RequestModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class CreateWorkQueryRequest(RequestModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    type: QueryType = "service"
    service_id: str | None = None
    service_title: str | None = None
    service_type: str | None = None
    service_staff_id: str | None = None
    service_staff_name: str | None = None
    employee_id: str | None = None
    employee_name: str | None = None
    priority: QueryPriority = "medium"
    category: str = Field(default=DEFAULT_CATEGORY, min_length=1)
    supervisor_id: str = Field(min_length=1)
    supervisor_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_fields(cls, data: Any) -> Any:
        # Form posts send empty strings for untouched inputs; treat them as absent.
        if isinstance(data, dict):
            return {
                key: value
                for key, value in data.items()
                if value is not None and not (isinstance(value, str) and not value.strip())
            }
        return data

    @model_validator(mode="after")
    def _check_subject(self) -> "CreateWorkQueryRequest":
        if self.type == "service" and not self.service_id:
            raise ValueError("serviceId is required for service queries")
        if self.type == "task" and not self.employee_id:
            raise ValueError("employeeId is required for task queries")
        return self


class StatusUpdateRequest(RequestModel):
    status: QueryStatus
    superadmin_response: str | None = None


class CommentRequest(RequestModel):
    # Author defaults to the acting user when omitted.
    user_id: str | None = None
    name: str | None = None
    comment: str = Field(min_length=1)


class AssignRequest(RequestModel):
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: str = Field(default="employee", min_length=1)


class RemoveFilesRequest(RequestModel):
    public_ids: list[str] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _accept_single_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "publicIds" not in data and "public_ids" not in data:
            single = data.get("publicId") or data.get("public_id")
            if single:
                return {**data, "publicIds": [single]}
        return data
