"""Infrastructure layer for work query persistence."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from facility_desk.core.errors import PersistenceError
from facility_desk.core.schema import WorkQuery

logger = logging.getLogger(__name__)


class DuplicateQueryIdError(PersistenceError):
    default_reason = "duplicate_query_id"


@dataclass(frozen=True, slots=True)
class WorkQueryFilters:
    status: str | None = None
    priority: str | None = None
    service_type: str | None = None
    supervisor_id: str | None = None
    category: str | None = None
    type: str | None = None

    def matches(self, query: WorkQuery) -> bool:
        checks = (
            (self.status, query.status),
            (self.priority, query.priority),
            (self.service_type, query.service_type),
            (self.supervisor_id, query.supervisor_id),
            (self.category, query.category),
            (self.type, query.type),
        )
        return all(expected is None or expected == actual for expected, actual in checks)


class WorkQueryRepository(Protocol):
    """Persistence contract for work queries."""

    def next_sequence(self) -> int: ...

    def insert(self, query: WorkQuery) -> WorkQuery: ...

    def save(self, query: WorkQuery) -> WorkQuery: ...

    def get(self, id: str) -> WorkQuery | None: ...

    def get_by_query_id(self, query_id: str) -> WorkQuery | None: ...

    def find(self, filters: WorkQueryFilters, *, skip: int = 0, limit: int | None = None) -> tuple[list[WorkQuery], int]: ...

    def all(self) -> list[WorkQuery]: ...

    def reset(self) -> None: ...


class InMemoryWorkQueryRepository:
    """Simple in-memory repository for fast iteration and tests.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._queries: dict[str, WorkQuery] = {}
        self._query_ids: dict[str, str] = {}
        self._sequence = 0

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def insert(self, query: WorkQuery) -> WorkQuery:
        if query.id in self._queries:
            raise PersistenceError(f"work query {query.id} already exists")
        if query.query_id in self._query_ids:
            raise DuplicateQueryIdError(f"queryId {query.query_id} already exists")
        now = self._now()
        stored = query.model_copy(deep=True, update={"created_at": query.created_at or now, "updated_at": now})
        self._queries[stored.id] = stored
        self._query_ids[stored.query_id] = stored.id
        return stored.model_copy(deep=True)

    def save(self, query: WorkQuery) -> WorkQuery:
        existing = self._queries.get(query.id)
        if existing is None:
            raise PersistenceError(f"work query {query.id} does not exist")
        # queryId, reporter and creation time are fixed once the record exists.
        stored = query.model_copy(
            deep=True,
            update={
                "query_id": existing.query_id,
                "reported_by": existing.reported_by,
                "created_at": existing.created_at,
                "updated_at": self._now(),
            },
        )
        self._queries[stored.id] = stored
        return stored.model_copy(deep=True)

    def get(self, id: str) -> WorkQuery | None:
        query = self._queries.get(id)
        return query.model_copy(deep=True) if query else None

    def get_by_query_id(self, query_id: str) -> WorkQuery | None:
        id = self._query_ids.get(query_id)
        return self.get(id) if id else None

    def _newest_first(self) -> list[WorkQuery]:
        # Later insertions win ties on createdAt.
        ordered = list(reversed(list(self._queries.values())))
        ordered.sort(key=lambda item: item.created_at, reverse=True)
        return ordered

    def find(self, filters: WorkQueryFilters, *, skip: int = 0, limit: int | None = None) -> tuple[list[WorkQuery], int]:
        matched = [query for query in self._newest_first() if filters.matches(query)]
        end = None if limit is None else skip + limit
        page = matched[skip:end]
        return [query.model_copy(deep=True) for query in page], len(matched)

    def all(self) -> list[WorkQuery]:
        return [query.model_copy(deep=True) for query in self._newest_first()]

    def reset(self) -> None:
        self._queries.clear()
        self._query_ids.clear()
        self._sequence = 0


class JsonFileWorkQueryRepository(InMemoryWorkQueryRepository):
    """Stores each work query as ``{root}/{id}.json`` with a sequence counter file."""

    SEQUENCE_FILE = "_sequence"

    def __init__(self, root: Path) -> None:
        super().__init__()
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        for path in sorted(self._root.glob("*.json")):
            document = json.loads(path.read_text(encoding="utf-8"))
            query = WorkQuery.model_validate(document)
            self._queries[query.id] = query
            self._query_ids[query.query_id] = query.id
        # Restore insertion order so createdAt ties resolve the same way after a restart.
        self._queries = dict(sorted(self._queries.items(), key=lambda item: item[1].created_at))

        sequence_path = self._root / self.SEQUENCE_FILE
        if sequence_path.exists():
            self._sequence = int(sequence_path.read_text(encoding="utf-8").strip() or 0)
        logger.info("loaded %d work queries from %s", len(self._queries), self._root)

    def _write(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise PersistenceError(f"failed to write {path.name}: {exc}") from exc

    def _write_query(self, query: WorkQuery) -> None:
        payload = json.dumps(query.to_document(), ensure_ascii=False, indent=2)
        self._write(self._root / f"{query.id}.json", payload)

    def next_sequence(self) -> int:
        sequence = super().next_sequence()
        self._write(self._root / self.SEQUENCE_FILE, str(sequence))
        return sequence

    def insert(self, query: WorkQuery) -> WorkQuery:
        stored = super().insert(query)
        try:
            self._write_query(stored)
        except PersistenceError:
            self._queries.pop(stored.id, None)
            self._query_ids.pop(stored.query_id, None)
            raise
        return stored

    def save(self, query: WorkQuery) -> WorkQuery:
        previous = self._queries[query.id] if query.id in self._queries else None
        stored = super().save(query)
        try:
            self._write_query(stored)
        except PersistenceError:
            if previous is not None:
                self._queries[previous.id] = previous
            raise
        return stored

    def reset(self) -> None:
        super().reset()
        for path in self._root.glob("*.json"):
            path.unlink()
        (self._root / self.SEQUENCE_FILE).unlink(missing_ok=True)


__all__ = [
    "DuplicateQueryIdError",
    "InMemoryWorkQueryRepository",
    "JsonFileWorkQueryRepository",
    "WorkQueryFilters",
    "WorkQueryRepository",
]
