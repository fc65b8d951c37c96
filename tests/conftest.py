from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from facility_desk.application import WorkQueryService
from facility_desk.core.schema import ServiceRecord
from facility_desk.core.settings import Settings
from facility_desk.domain import IncomingFile
from facility_desk.infrastructure import InMemoryServiceCatalog, InMemoryStorageGateway, InMemoryWorkQueryRepository


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


def make_image(name: str = "gate.jpg", size: int = 64) -> IncomingFile:
    return IncomingFile(filename=name, content_type="image/jpeg", data=b"\xff" * size)


def make_payload(**overrides) -> dict:
    payload = {
        "title": "Broken gate sensor",
        "description": "The east gate sensor does not detect vehicles.",
        "type": "service",
        "serviceId": "SRV-42",
        "priority": "high",
        "category": "equipment-issue",
        "supervisorId": "SUP001",
        "supervisorName": "Asha Rao",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def catalog() -> InMemoryServiceCatalog:
    return InMemoryServiceCatalog(
        [
            ServiceRecord(
                service_id="SRV-42",
                type="security",
                title="Gate security",
                location="East gate",
                assigned_to="EMP-7",
                assigned_to_name="Ravi Kumar",
                supervisor_id="SUP001",
            ),
            ServiceRecord(service_id="SRV-50", type="cleaning", title="Lobby cleaning", supervisor_id="SUP001"),
            ServiceRecord(service_id="SRV-60", type="maintenance", title="Lift maintenance", supervisor_id="SUP002"),
        ]
    )


@pytest.fixture()
def repository() -> InMemoryWorkQueryRepository:
    return InMemoryWorkQueryRepository()


@pytest.fixture()
def gateway() -> InMemoryStorageGateway:
    return InMemoryStorageGateway()


@pytest.fixture()
def settings() -> Settings:
    return Settings(upload_timeout=5.0)


@pytest.fixture()
def service(repository, gateway, catalog, settings) -> WorkQueryService:
    return WorkQueryService(repository, gateway, catalog=catalog, settings=settings, clock=TickingClock())
