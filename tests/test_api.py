from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from conftest import TickingClock, make_payload

from facility_desk.app import create_app
from facility_desk.application import WorkQueryService
from facility_desk.core.settings import Settings
from facility_desk.infrastructure import InMemoryStorageGateway, InMemoryWorkQueryRepository

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 128


@pytest.fixture()
def gateway() -> InMemoryStorageGateway:
    return InMemoryStorageGateway()


@pytest.fixture()
def client(gateway, catalog):
    settings = Settings(max_file_mb=1)
    service = WorkQueryService(
        InMemoryWorkQueryRepository(),
        gateway,
        catalog=catalog,
        settings=settings,
        clock=TickingClock(),
    )
    app = create_app(settings, service=service)
    with TestClient(app) as test_client:
        yield test_client


def _images(*names: str) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [("proofFiles", (name, JPEG, "image/jpeg")) for name in names]


def test_end_to_end_scenario(client):
    # 1. create with two images
    response = client.post("/api/work-queries", data=make_payload(), files=_images("front.jpg", "side.jpg"))
    assert response.status_code == 201
    created = response.json()["data"]
    assert created["status"] == "pending"
    assert created["queryId"]
    assert len(created["proofFiles"]) == 2
    assert set(created["proofFiles"][0]) >= {"name", "type", "url", "public_id", "size", "uploadDate"}
    query_id = created["_id"]

    # 2. resolve with a response
    response = client.patch(
        f"/api/work-queries/{query_id}/status",
        json={"status": "resolved", "superadminResponse": "Sensor recalibrated"},
        headers={"X-User-Id": "ADMIN1", "X-User-Name": "Super Admin", "X-User-Role": "superadmin"},
    )
    assert response.status_code == 200

    fetched = client.get(f"/api/work-queries/{query_id}").json()["data"]
    assert fetched["status"] == "resolved"
    assert fetched["superadminResponse"] == "Sensor recalibrated"
    assert fetched["responseDate"]
    assert fetched["respondedBy"]["userId"] == "ADMIN1"

    # 3. remove one proof file
    public_id = fetched["proofFiles"][0]["public_id"]
    response = client.request("DELETE", f"/api/work-queries/{query_id}/files", json={"publicIds": [public_id]})
    assert response.status_code == 200
    assert response.json()["removed"] == [public_id]

    fetched = client.get(f"/api/work-queries/{query_id}").json()["data"]
    assert len(fetched["proofFiles"]) == 1

    by_query_id = client.get(f"/api/work-queries/query/{created['queryId']}")
    assert by_query_id.json()["data"]["_id"] == query_id


def test_create_without_files_and_with_actor(client):
    response = client.post(
        "/api/work-queries",
        data=make_payload(type="task", serviceId="", employeeId="EMP-3", employeeName="Meena"),
        headers={"X-User-Id": "U-9", "X-User-Name": "Kiran"},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["proofFiles"] == []
    assert data["reportedBy"] == {"userId": "U-9", "name": "Kiran", "role": "user"}


def test_validation_errors_carry_reason(client, gateway):
    response = client.post("/api/work-queries", data=make_payload(title=""))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["reason"] == "missing_field"
    assert body["details"]["field"] == "title"

    response = client.post(
        "/api/work-queries",
        data=make_payload(),
        files=[("proofFiles", ("tool.exe", b"MZ", "application/x-msdownload"))],
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_file_type"
    assert response.json()["details"]["filename"] == "tool.exe"
    assert gateway.upload_calls == []


def test_json_and_query_validation_use_error_payload(client):
    query_id = client.post("/api/work-queries", data=make_payload()).json()["data"]["_id"]

    response = client.patch(f"/api/work-queries/{query_id}/status", json={"status": "closed"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["reason"] == "invalid_value"
    assert body["details"]["field"] == "status"
    assert body["message"].startswith("status: ")

    response = client.patch(f"/api/work-queries/{query_id}/assign", json={"name": "Ravi Kumar"})
    assert response.status_code == 400
    assert response.json()["reason"] == "missing_field"
    assert response.json()["details"]["field"] == "userId"

    response = client.request("DELETE", f"/api/work-queries/{query_id}/files", json={})
    assert response.status_code == 400
    assert response.json()["reason"] == "missing_field"

    response = client.get("/api/work-queries", params={"page": "abc"})
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_value"
    assert response.json()["details"]["field"] == "page"

    response = client.get("/api/work-queries", params={"limit": 0})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_request_limits(client, gateway):
    response = client.post("/api/work-queries", data=make_payload(), files=_images(*[f"{i}.jpg" for i in range(11)]))
    assert response.status_code == 400
    assert response.json()["reason"] == "too_many_files"

    big = [("proofFiles", ("big.jpg", b"\xff" * (1024 * 1024 + 1), "image/jpeg"))]
    response = client.post("/api/work-queries", data=make_payload(), files=big)
    assert response.status_code == 400
    assert response.json()["reason"] == "file_too_large"

    fields = make_payload()
    fields.update({f"extra{i}": "x" for i in range(20)})
    response = client.post("/api/work-queries", data=fields)
    assert response.status_code == 400
    assert response.json()["reason"] == "too_many_fields"

    # Every part counts, including repeats of one key.
    response = client.post("/api/work-queries", data={**make_payload(), "note": ["x"] * 30})
    assert response.status_code == 400
    assert response.json()["reason"] == "too_many_fields"

    assert gateway.upload_calls == []


def test_not_found_is_404(client):
    response = client.get("/api/work-queries/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "work query not found", "reason": "not_found"}
    assert client.get("/api/work-queries/query/WQ-00000000-00000").status_code == 404


def test_comments_assign_and_add_files(client):
    created = client.post("/api/work-queries", data=make_payload(), files=_images("a.jpg")).json()["data"]
    query_id = created["_id"]

    response = client.post(
        f"/api/work-queries/{query_id}/comments",
        json={"comment": "Technician on the way"},
        headers={"X-User-Id": "SUP001", "X-User-Name": "Asha"},
    )
    assert response.status_code == 200
    comment = response.json()["data"]["comments"][0]
    assert comment["userId"] == "SUP001"
    assert comment["comment"] == "Technician on the way"

    response = client.post(f"/api/work-queries/{query_id}/comments", json={"comment": "anonymous"})
    assert response.status_code == 400

    response = client.patch(
        f"/api/work-queries/{query_id}/assign",
        json={"userId": "EMP-7", "name": "Ravi Kumar", "role": "technician"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["assignedTo"]["name"] == "Ravi Kumar"
    assert data["status"] == "pending"

    files = [("files", (f"{i}.jpg", JPEG, "image/jpeg")) for i in range(2)]
    response = client.post(f"/api/work-queries/{query_id}/files", files=files)
    assert response.status_code == 200
    assert [item["name"] for item in response.json()["data"]["proofFiles"]] == ["a.jpg", "0.jpg", "1.jpg"]

    files = [("files", (f"more{i}.jpg", JPEG, "image/jpeg")) for i in range(8)]
    response = client.post(f"/api/work-queries/{query_id}/files", files=files)
    assert response.status_code == 400
    assert response.json()["reason"] == "proof_file_limit"
    assert response.json()["details"]["remaining"] == 7

    public_id = created["proofFiles"][0]["public_id"]
    response = client.get(f"/api/work-queries/{query_id}/files/link", params={"publicId": public_id})
    assert response.status_code == 200
    assert response.json()["data"]["url"].startswith("memory://image/")
    response = client.get(f"/api/work-queries/{query_id}/files/link", params={"publicId": "proofs/unknown"})
    assert response.status_code == 404


def test_listing_statistics_and_reference_data(client):
    for priority in ("low", "high", "high"):
        assert client.post("/api/work-queries", data=make_payload(priority=priority)).status_code == 201

    response = client.get("/api/work-queries", params={"priority": "high", "limit": 1})
    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert len(body["data"]) == 1

    stats = client.get("/api/work-queries/statistics").json()["data"]
    assert stats["total"] == 3
    assert stats["statusCounts"]["pending"] == 3
    assert stats["priorityCounts"]["high"] == 2
    assert stats["supervisorCounts"]["SUP001"]["open"] == 3

    assert len(client.get("/api/work-queries/recent", params={"limit": 2}).json()["data"]) == 2

    services = client.get("/api/work-queries/supervisor/SUP001/services").json()["data"]
    assert {row["serviceId"] for row in services} == {"SRV-42", "SRV-50"}

    for name, expected in (
        ("categories", "service-quality"),
        ("priorities", "low"),
        ("statuses", "pending"),
        ("service-types", "cleaning"),
    ):
        response = client.get(f"/api/work-queries/{name}")
        assert response.status_code == 200
        assert response.json()["data"][0]["value"] == expected


def test_export_endpoint(client):
    client.post("/api/work-queries", data=make_payload())

    response = client.get("/api/work-queries/export", params={"format": "csv"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    assert response.text.splitlines()[0].startswith("queryId,title,type")

    response = client.get("/api/work-queries/export", params={"format": "xml"})
    assert response.status_code == 400


def test_root_landing_page(client):
    assert client.get("/").json()["docs"] == "/docs"
