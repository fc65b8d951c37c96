"""Storage gateway contract and batch helpers for proof files."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Iterable, Protocol, Sequence

from facility_desk.core.errors import StorageCleanupWarning, UploadError
from facility_desk.core.schema import ProofFile
from facility_desk.core.validation import classify_media_type, file_stem, format_file_size, resource_kind
from facility_desk.domain import DeleteOutcome, IncomingFile

logger = logging.getLogger(__name__)


class StorageGateway(Protocol):
    """Object storage used for proof file hosting."""

    async def upload(self, file: IncomingFile, *, folder: str) -> ProofFile: ...

    async def delete(self, public_id: str, *, resource_type: str = "image") -> DeleteOutcome: ...

    def generate_signed_url(
        self,
        public_id: str,
        *,
        resource_type: str = "image",
        file_format: str | None = None,
        expires_in: int = 3600,
    ) -> str: ...

    async def aclose(self) -> None: ...


class BatchUploadError(UploadError):
    """A batch upload in which at least one file failed.

    ``uploaded`` holds the files that did reach storage so the caller can
    remove them again.
    """

    def __init__(self, cause: UploadError, uploaded: Sequence[ProofFile]) -> None:
        super().__init__(cause.message, filename=cause.filename)
        self.uploaded = list(uploaded)


async def upload_many(
    gateway: StorageGateway,
    files: Sequence[IncomingFile],
    *,
    folder: str,
    timeout: float | None = None,
) -> list[ProofFile]:
    """Upload ``files`` concurrently, returning results in input order."""

    async def _one(file: IncomingFile) -> ProofFile:
        try:
            if timeout is None:
                return await gateway.upload(file, folder=folder)
            return await asyncio.wait_for(gateway.upload(file, folder=folder), timeout)
        except UploadError:
            raise
        except asyncio.TimeoutError as exc:
            raise UploadError(f"Upload of {file.filename} timed out", filename=file.filename) from exc
        except Exception as exc:
            raise UploadError(f"Failed to upload {file.filename}: {exc}", filename=file.filename) from exc

    results = await asyncio.gather(*(_one(file) for file in files), return_exceptions=True)

    uploaded: list[ProofFile] = []
    failure: UploadError | None = None
    for file, result in zip(files, results):
        if isinstance(result, ProofFile):
            uploaded.append(result)
        elif isinstance(result, UploadError):
            logger.error("upload failed for %s: %s", file.filename, result.message)
            failure = failure or result
        elif isinstance(result, BaseException):
            raise result

    if failure is not None:
        raise BatchUploadError(failure, uploaded)
    return uploaded


async def delete_many(gateway: StorageGateway, proof_files: Iterable[ProofFile]) -> list[StorageCleanupWarning]:
    """Best-effort concurrent deletion; failures are logged and returned, never raised."""

    targets = list(proof_files)
    if not targets:
        return []
    outcomes = await asyncio.gather(
        *(gateway.delete(item.public_id, resource_type=item.resource_type) for item in targets),
        return_exceptions=True,
    )

    warnings: list[StorageCleanupWarning] = []
    for item, outcome in zip(targets, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            warning = StorageCleanupWarning(public_id=item.public_id, reason=str(outcome) or outcome.__class__.__name__)
        elif outcome.ok:
            continue
        else:
            warning = StorageCleanupWarning(public_id=outcome.public_id, reason=outcome.error or "unknown error")
        logger.warning("storage cleanup failed for %s: %s", warning.public_id, warning.reason)
        warnings.append(warning)
    return warnings


class InMemoryStorageGateway:
    """Process-local gateway used when no object storage is configured, and in tests."""

    def __init__(
        self,
        *,
        fail_uploads: Iterable[str] = (),
        fail_deletes: Iterable[str] = (),
        delays: dict[str, float] | None = None,
    ) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.upload_calls: list[str] = []
        self.fail_uploads = set(fail_uploads)
        self.fail_deletes = set(fail_deletes)
        self.delays = dict(delays or {})
        self._counter = 0

    async def upload(self, file: IncomingFile, *, folder: str) -> ProofFile:
        self.upload_calls.append(file.filename)
        delay = self.delays.get(file.filename)
        if delay:
            await asyncio.sleep(delay)
        if file.filename in self.fail_uploads:
            raise UploadError(f"Failed to upload {file.filename}: storage rejected the file", filename=file.filename)

        self._counter += 1
        public_id = f"{folder}/{int(time.time() * 1000)}_{self._counter}_{file_stem(file.filename)}"
        self.objects[public_id] = file.data
        kind = resource_kind(file.content_type)
        _, _, extension = file.filename.rpartition(".")
        return ProofFile(
            name=file.filename,
            type=classify_media_type(file.content_type),
            url=f"memory://{kind}/{public_id}",
            public_id=public_id,
            size=format_file_size(file.size),
            format=extension.lower() if extension and extension != file.filename else None,
            byte_count=file.size,
            upload_date=datetime.now(timezone.utc),
        )

    async def delete(self, public_id: str, *, resource_type: str = "image") -> DeleteOutcome:
        if public_id in self.fail_deletes:
            return DeleteOutcome.failure(public_id, "storage unavailable")
        self.objects.pop(public_id, None)
        self.deleted.append(public_id)
        return DeleteOutcome.success(public_id)

    def generate_signed_url(
        self,
        public_id: str,
        *,
        resource_type: str = "image",
        file_format: str | None = None,
        expires_in: int = 3600,
    ) -> str:
        suffix = f".{file_format}" if file_format else ""
        return f"memory://{resource_type}/{public_id}{suffix}?expires_at={int(time.time()) + expires_in}"

    async def aclose(self) -> None:
        return None


__all__ = [
    "BatchUploadError",
    "InMemoryStorageGateway",
    "StorageGateway",
    "delete_many",
    "upload_many",
]
