from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from facility_desk.core.errors import UploadError
from facility_desk.domain import IncomingFile
from facility_desk.infrastructure import BatchUploadError, InMemoryStorageGateway, delete_many, upload_many


def _image(name: str) -> IncomingFile:
    return IncomingFile(filename=name, content_type="image/png", data=b"\x89PNG\r\n\x1a\n" + name.encode())


def test_upload_many_keeps_input_order_when_completion_order_differs():
    # A finishes last, B first.
    gateway = InMemoryStorageGateway(delays={"a.png": 0.05, "b.png": 0.0, "c.png": 0.02})
    files = [_image("a.png"), _image("b.png"), _image("c.png")]

    uploaded = asyncio.run(upload_many(gateway, files, folder="proofs"))

    assert [item.name for item in uploaded] == ["a.png", "b.png", "c.png"]
    assert all(item.public_id.startswith("proofs/") for item in uploaded)
    assert uploaded[0].type == "image"
    assert uploaded[0].size.endswith("Bytes")


def test_upload_many_reports_successful_siblings_on_failure():
    gateway = InMemoryStorageGateway(fail_uploads={"c.png"})
    files = [_image(name) for name in ("a.png", "b.png", "c.png", "d.png")]

    with pytest.raises(BatchUploadError) as excinfo:
        asyncio.run(upload_many(gateway, files, folder="proofs"))

    error = excinfo.value
    assert isinstance(error, UploadError)
    assert error.filename == "c.png"
    assert [item.name for item in error.uploaded] == ["a.png", "b.png", "d.png"]


def test_upload_many_treats_timeout_as_upload_failure():
    gateway = InMemoryStorageGateway(delays={"slow.png": 1.0})

    with pytest.raises(BatchUploadError) as excinfo:
        asyncio.run(upload_many(gateway, [_image("fast.png"), _image("slow.png")], folder="proofs", timeout=0.05))

    assert excinfo.value.filename == "slow.png"
    assert "timed out" in excinfo.value.message
    assert [item.name for item in excinfo.value.uploaded] == ["fast.png"]


def test_delete_many_returns_failures_without_raising():
    gateway = InMemoryStorageGateway()
    uploaded = asyncio.run(upload_many(gateway, [_image("a.png"), _image("b.png")], folder="proofs"))
    gateway.fail_deletes.add(uploaded[1].public_id)

    warnings = asyncio.run(delete_many(gateway, uploaded))

    assert [warning.public_id for warning in warnings] == [uploaded[1].public_id]
    assert gateway.deleted == [uploaded[0].public_id]
    assert uploaded[0].public_id not in gateway.objects


class UnreachableDeleteGateway(InMemoryStorageGateway):
    """Raises from ``delete`` for selected ids instead of returning an outcome."""

    def __init__(self, broken: set[str] | None = None) -> None:
        super().__init__()
        self.broken = broken if broken is not None else set()

    async def delete(self, public_id: str, *, resource_type: str = "image"):
        if public_id in self.broken:
            raise ConnectionError(f"connection reset while deleting {public_id}")
        return await super().delete(public_id, resource_type=resource_type)


def test_delete_many_turns_gateway_exceptions_into_warnings():
    gateway = UnreachableDeleteGateway()
    uploaded = asyncio.run(upload_many(gateway, [_image("a.png"), _image("b.png"), _image("c.png")], folder="proofs"))
    gateway.broken.add(uploaded[0].public_id)

    warnings = asyncio.run(delete_many(gateway, uploaded))

    assert [warning.public_id for warning in warnings] == [uploaded[0].public_id]
    assert "connection reset" in warnings[0].reason
    assert gateway.deleted == [uploaded[1].public_id, uploaded[2].public_id]


def test_in_memory_signed_url_carries_expiry():
    gateway = InMemoryStorageGateway()
    url = gateway.generate_signed_url("proofs/1_report", resource_type="raw", file_format="pdf", expires_in=60)

    assert url.startswith("memory://raw/proofs/1_report.pdf?expires_at=")
