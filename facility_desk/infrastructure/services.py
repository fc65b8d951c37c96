"""Read-only catalog of facility services work queries are raised against."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from facility_desk.core.schema import ServiceRecord

logger = logging.getLogger(__name__)


class InMemoryServiceCatalog:
    def __init__(self, records: Iterable[ServiceRecord] = ()) -> None:
        self._records: dict[str, ServiceRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: ServiceRecord) -> None:
        self._records[record.service_id] = record

    def get(self, service_id: str) -> ServiceRecord | None:
        return self._records.get(service_id)

    def for_supervisor(self, supervisor_id: str) -> list[ServiceRecord]:
        return [record for record in self._records.values() if record.supervisor_id == supervisor_id]

    def __len__(self) -> int:
        return len(self._records)


def load_service_catalog(path: Path | None) -> InMemoryServiceCatalog:
    """Build a catalog from a JSON list of service documents; a missing path yields an empty catalog."""

    if path is None:
        return InMemoryServiceCatalog()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"service catalog {path} must contain a JSON list")
    catalog = InMemoryServiceCatalog(ServiceRecord.model_validate(item) for item in data)
    logger.info("loaded %d services from %s", len(catalog), path)
    return catalog
