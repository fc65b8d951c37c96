"""Proof file screening and request parsing.

Everything here runs before any storage call: a request that fails these
checks never reaches the gateway.
"""
from __future__ import annotations

import re
from typing import Any, Literal, Mapping, Sequence, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from facility_desk.core.errors import ValidationError
from facility_desk.domain import IncomingFile

ResourceKind = Literal["image", "video", "raw"]

IMAGE_MEDIA_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif", "image/bmp"}
)
VIDEO_MEDIA_TYPES = frozenset(
    {"video/mp4", "video/mov", "video/avi", "video/webm", "video/mkv", "video/flv"}
)
DOCUMENT_MEDIA_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "text/csv",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    }
)
ALLOWED_MEDIA_TYPES = IMAGE_MEDIA_TYPES | VIDEO_MEDIA_TYPES | DOCUMENT_MEDIA_TYPES

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "gif", "bmp")
VIDEO_EXTENSIONS = ("mp4", "mov", "avi", "webm", "mkv", "flv")
DOCUMENT_EXTENSIONS = ("pdf", "doc", "docx", "txt", "xlsx", "xls", "ppt", "pptx", "csv")

ALLOWED_FORMATS: dict[str, tuple[str, ...]] = {
    "image": IMAGE_EXTENSIONS,
    "video": VIDEO_EXTENSIONS,
    "raw": DOCUMENT_EXTENSIONS,
}

_EXTENSIONS_BY_MEDIA_GROUP = (
    (IMAGE_MEDIA_TYPES, frozenset(IMAGE_EXTENSIONS)),
    (VIDEO_MEDIA_TYPES, frozenset(VIDEO_EXTENSIONS)),
    (DOCUMENT_MEDIA_TYPES, frozenset(DOCUMENT_EXTENSIONS)),
)

ALLOWED_SUMMARY = (
    "Allowed: Images (jpg, png, gif, webp, bmp), Videos (mp4, mov, avi, webm, mkv, flv), "
    "Documents (pdf, doc, docx, txt, csv, xls, xlsx, ppt, pptx)"
)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.-]")
_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _normalise_media_type(media_type: str | None) -> str:
    # Drop parameters such as "; charset=utf-8" that browsers append to text types.
    return (media_type or "").split(";", 1)[0].strip().lower()


def _extension(filename: str) -> str | None:
    _, dot, extension = (filename or "").rpartition(".")
    if not dot or not extension:
        return None
    return extension.lower()


def validate_proof_file(media_type: str | None, filename: str) -> bool:
    """Accept a file when its media type is listed and its extension, if any, belongs to the same kind."""

    normalised = _normalise_media_type(media_type)
    if normalised not in ALLOWED_MEDIA_TYPES:
        return False

    extension = _extension(filename)
    if extension is None:
        return True
    for media_types, extensions in _EXTENSIONS_BY_MEDIA_GROUP:
        if normalised in media_types:
            return extension in extensions
    return False


def classify_media_type(media_type: str | None) -> str:
    """Return the persisted proof file kind: image, video, document or other."""

    normalised = _normalise_media_type(media_type)
    if normalised.startswith("image/"):
        return "image"
    if normalised.startswith("video/"):
        return "video"
    if any(marker in normalised for marker in ("pdf", "document", "text")):
        return "document"
    return "other"


def resource_kind(media_type: str | None) -> ResourceKind:
    normalised = _normalise_media_type(media_type)
    if normalised.startswith("image/"):
        return "image"
    if normalised.startswith("video/"):
        return "video"
    return "raw"


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    text = f"{round(value, 2):.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exponent]}"


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


def file_stem(name: str) -> str:
    """Sanitised name up to the first dot, as used in storage identifiers."""

    stem = sanitize_filename(name).split(".", 1)[0]
    return stem or "file"


def check_file(upload: IncomingFile) -> None:
    if not validate_proof_file(upload.content_type, upload.filename):
        raise ValidationError(
            f"File type {upload.content_type or 'unknown'} ({upload.filename}) is not allowed. {ALLOWED_SUMMARY}",
            reason="invalid_file_type",
            details={"filename": upload.filename, "mediaType": upload.content_type},
        )


def check_file_size(filename: str, size: int, max_bytes: int) -> None:
    if size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise ValidationError(
            f"File too large. Maximum file size is {limit_mb}MB.",
            reason="file_too_large",
            details={"filename": filename, "size": size, "limit": max_bytes},
        )


def check_batch_limits(file_count: int, field_count: int = 0, *, max_files: int = 10, max_fields: int = 20) -> None:
    if file_count > max_files:
        raise ValidationError(
            f"Too many files. Maximum {max_files} files allowed per query.",
            reason="too_many_files",
            details={"count": file_count, "limit": max_files},
        )
    if field_count > max_fields:
        raise ValidationError(
            "Too many form fields.",
            reason="too_many_fields",
            details={"count": field_count, "limit": max_fields},
        )


# Request sections FastAPI prefixes onto error locations.
_REQUEST_SECTIONS = frozenset({"body", "query", "path", "header", "cookie"})


def validation_error_from(errors: Sequence[Mapping[str, Any]]) -> ValidationError:
    """Map pydantic error entries onto a single ``ValidationError`` keyed by the first failing field."""

    def field_of(error: Mapping[str, Any]) -> str:
        location = list(error.get("loc", ()))
        if location and location[0] in _REQUEST_SECTIONS:
            location = location[1:]
        return ".".join(str(part) for part in location if part != "__root__")

    first = errors[0] if errors else {}
    field_name = field_of(first) or None
    missing = first.get("type") in {"missing", "string_too_short"} or "required" in str(first.get("msg", ""))
    message = str(first.get("msg") or "invalid request")
    if field_name:
        message = f"{field_name}: {message}"
    details: dict[str, Any] = {"errors": [{"field": field_of(err), "message": err.get("msg")} for err in errors]}
    if field_name:
        details["field"] = field_name
    return ValidationError(message, reason="missing_field" if missing else "invalid_value", details=details)


def parse_model(model: type[ModelT], data: Mapping[str, Any] | ModelT) -> ModelT:
    """Validate raw input into a request model, reporting failures as ``ValidationError``."""

    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise validation_error_from(exc.errors(include_url=False, include_input=False)) from exc
