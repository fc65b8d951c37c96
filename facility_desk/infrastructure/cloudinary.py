"""Cloudinary REST integration for proof file storage."""
from __future__ import annotations

import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from facility_desk.core.errors import UploadError
from facility_desk.core.schema import ProofFile
from facility_desk.core.validation import (
    ALLOWED_FORMATS,
    classify_media_type,
    file_stem,
    format_file_size,
    resource_kind,
)
from facility_desk.domain import DeleteOutcome, IncomingFile

logger = logging.getLogger(__name__)

IMAGE_TRANSFORMATION = "c_limit,h_800,q_auto:good,w_1200"
PROOF_TAGS = ("work-query", "proof", "supervisor")
# Parameters Cloudinary excludes from the signature base string.
_UNSIGNED_PARAMS = {"file", "api_key", "resource_type", "cloud_name"}


class CloudinaryStorageGateway:
    """Signed upload/destroy calls against the Cloudinary upload API."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        *,
        api_base: str = "https://api.cloudinary.com/v1_1",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not cloud_name or not api_key or not api_secret:
            raise ValueError("cloud_name, api_key and api_secret are required")
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._api_base = f"{api_base.rstrip('/')}/{cloud_name}"
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _timestamp() -> int:
        return int(time.time())

    def sign(self, params: Mapping[str, Any]) -> str:
        """SHA-1 signature over the sorted parameters followed by the API secret."""

        pieces: list[str] = []
        for key in sorted(params):
            value = params[key]
            if key in _UNSIGNED_PARAMS or value is None or value == "":
                continue
            if isinstance(value, (list, tuple)):
                value = ",".join(str(item) for item in value)
            pieces.append(f"{key}={value}")
        base = "&".join(pieces) + self._api_secret
        return hashlib.sha1(base.encode("utf-8")).hexdigest()

    def _signed(self, params: dict[str, Any]) -> dict[str, str]:
        params = {key: value for key, value in params.items() if value is not None}
        signature = self.sign(params)
        form: dict[str, str] = {}
        for key, value in params.items():
            form[key] = ",".join(str(item) for item in value) if isinstance(value, (list, tuple)) else str(value)
        form["api_key"] = self._api_key
        form["signature"] = signature
        return form

    def upload_params(self, file: IncomingFile, *, folder: str) -> dict[str, Any]:
        kind = resource_kind(file.content_type)
        params: dict[str, Any] = {
            "folder": folder,
            "public_id": f"{int(time.time() * 1000)}_{file_stem(file.filename)}",
            "allowed_formats": list(ALLOWED_FORMATS[kind]),
            "tags": list(PROOF_TAGS),
            "timestamp": self._timestamp(),
        }
        if kind == "image":
            params["transformation"] = IMAGE_TRANSFORMATION
        return params

    # ------------------------------------------------------------------
    # gateway API
    # ------------------------------------------------------------------
    async def upload(self, file: IncomingFile, *, folder: str) -> ProofFile:
        kind = resource_kind(file.content_type)
        form = self._signed(self.upload_params(file, folder=folder))
        url = f"{self._api_base}/{kind}/upload"

        try:
            response = await self._client.post(
                url,
                data=form,
                files={"file": (file.filename, file.data, file.content_type or "application/octet-stream")},
            )
        except httpx.TimeoutException as exc:
            raise UploadError(f"Upload of {file.filename} timed out", filename=file.filename) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Failed to upload {file.filename}: {exc}", filename=file.filename) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        error = payload.get("error")
        if response.is_error or error:
            message = (error or {}).get("message") if isinstance(error, dict) else None
            raise UploadError(
                f"Failed to upload {file.filename}: {message or f'HTTP {response.status_code}'}",
                filename=file.filename,
            )
        if not payload.get("public_id") or not (payload.get("secure_url") or payload.get("url")):
            raise UploadError(f"Failed to upload {file.filename}: no result returned", filename=file.filename)

        return ProofFile(
            name=file.filename,
            type=classify_media_type(file.content_type),
            url=payload.get("secure_url") or payload["url"],
            public_id=payload["public_id"],
            size=format_file_size(file.size),
            format=payload.get("format"),
            byte_count=payload.get("bytes"),
            upload_date=datetime.now(timezone.utc),
        )

    async def delete(self, public_id: str, *, resource_type: str = "image") -> DeleteOutcome:
        form = self._signed({"public_id": public_id, "timestamp": self._timestamp()})
        try:
            response = await self._client.post(f"{self._api_base}/{resource_type}/destroy", data=form)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return DeleteOutcome.failure(public_id, str(exc) or exc.__class__.__name__)

        result = payload.get("result") if isinstance(payload, dict) else None
        if result in {"ok", "not found"}:
            logger.info("deleted %s from storage (%s)", public_id, result)
            return DeleteOutcome.success(public_id)
        return DeleteOutcome.failure(public_id, f"unexpected destroy result: {result!r}")

    def generate_signed_url(
        self,
        public_id: str,
        *,
        resource_type: str = "image",
        file_format: str | None = None,
        expires_in: int = 3600,
    ) -> str:
        """Temporary download URL for a stored proof file."""

        params: dict[str, Any] = {
            "public_id": public_id,
            "format": file_format,
            "timestamp": self._timestamp(),
            "expires_at": self._timestamp() + expires_in,
        }
        form = self._signed(params)
        return f"{self._api_base}/{resource_type}/download?{urlencode(form)}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["CloudinaryStorageGateway", "IMAGE_TRANSFORMATION", "PROOF_TAGS"]
