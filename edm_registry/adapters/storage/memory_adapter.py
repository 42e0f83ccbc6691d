"""In-Memory Storage Adapter.

Dictionary-backed implementation of StoragePort for tests, validation
dry-runs and embedding. Write transactions are serialised by a single
writer lock; each transaction buffers its writes and publishes them
atomically on commit, so readers only ever observe committed state.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import UUID

from edm_registry.adapters.storage.documents import check_unique, matches, normalise_criteria
from edm_registry.domain.models import EntityRecord
from edm_registry.domain.ports import (
    ConcurrencyConflict,
    RelationshipViolation,
    Result,
    StorageError,
    StoragePort,
    StorageTransaction,
)
from edm_registry.domain.registry import REGISTRY, EntitySpec, IndexSpec, SchemaRegistry

logger = logging.getLogger(__name__)

# collection -> record id -> (record, document)
_Tables = dict[str, dict[UUID, tuple[EntityRecord, dict[str, Any]]]]


class InMemoryTransaction(StorageTransaction):
    """Buffered unit of work over an InMemoryStorageAdapter."""

    def __init__(self, adapter: "InMemoryStorageAdapter"):
        self._adapter = adapter
        self._pending: _Tables = {}

    def _rows(self, spec: EntitySpec) -> dict[UUID, tuple[EntityRecord, dict[str, Any]]]:
        rows = dict(self._adapter._tables.get(spec.collection, {}))
        rows.update(self._pending.get(spec.collection, {}))
        return rows

    def get(self, entity: str, record_id: UUID) -> Optional[EntityRecord]:
        row = self._rows(self._adapter._spec(entity)).get(record_id)
        return row[0] if row else None

    def find(self, entity: str, **criteria: Any) -> list[EntityRecord]:
        spec = self._adapter._spec(entity)
        criteria = normalise_criteria(spec, criteria)
        return [record for record, document in self._rows(spec).values() if matches(document, criteria)]

    def insert(self, record: EntityRecord) -> EntityRecord:
        spec = self._adapter._spec_for(record)
        rows = self._rows(spec)
        if record.id in rows:
            raise RelationshipViolation(
                f"{spec.collection} already holds id {record.id}",
                entity=spec.name, rule="unique:_id", record_id=record.id, field="id",
            )
        return self._put(spec, record, rows)

    def replace(self, record: EntityRecord, expected_revision: int) -> EntityRecord:
        spec = self._adapter._spec_for(record)
        rows = self._rows(spec)
        current = rows.get(record.id)
        actual = current[0].revision if current else None
        if actual != expected_revision:
            raise ConcurrencyConflict(
                f"{spec.name} {record.id} is at revision {actual}, expected {expected_revision}",
                entity=spec.name, record_id=record.id,
                expected_revision=expected_revision, actual_revision=actual,
            )
        return self._put(spec, record, rows)

    def _put(self, spec: EntitySpec, record: EntityRecord, rows) -> EntityRecord:
        document = record.to_document()
        check_unique(spec, record, document, (doc for _, doc in rows.values()))
        self._pending.setdefault(spec.collection, {})[record.id] = (record, document)
        return record

    def commit(self) -> int:
        written = 0
        for collection, rows in self._pending.items():
            self._adapter._tables.setdefault(collection, {}).update(rows)
            written += len(rows)
        self._pending = {}
        return written


class InMemoryStorageAdapter(StoragePort):
    """In-process StoragePort with serialised, all-or-nothing write transactions.

    Parameters:
        registry: Schema registry (defaults to the full data model)
        lock_timeout: Seconds to wait for the writer lock before raising
            ConcurrencyConflict

    Example Usage:
        ```python
        storage = InMemoryStorageAdapter()
        storage.initialize_schema(REGISTRY)
        with storage.transaction() as tx:
            tx.insert(org)
        ```
    """

    def __init__(self, registry: Optional[SchemaRegistry] = None, lock_timeout: float = 5.0):
        self.registry = registry or REGISTRY
        self.lock_timeout = lock_timeout
        self._tables: _Tables = {}
        self._writer = threading.Lock()
        self._initialized = False

    def _spec(self, entity: str) -> EntitySpec:
        if not self._initialized:
            self.initialize_schema(self.registry).unwrap()
        try:
            return self.registry.get(entity)
        except KeyError:
            raise StorageError(f"Unknown collection: {entity}", operation="lookup", details={"entity": entity})

    def _spec_for(self, record: EntityRecord) -> EntitySpec:
        return self._spec(type(record).__name__)

    def initialize_schema(self, registry: SchemaRegistry) -> Result[None]:
        self.registry = registry
        for spec in registry:
            self._tables.setdefault(spec.collection, {})
        self._initialized = True
        logger.info(f"Initialized in-memory store with {len(registry)} collections")
        return Result.success_result(None)

    @contextmanager
    def transaction(self) -> Iterator[InMemoryTransaction]:
        if not self._writer.acquire(timeout=self.lock_timeout):
            raise ConcurrencyConflict(f"Timed out after {self.lock_timeout}s waiting for the writer lock")
        try:
            tx = InMemoryTransaction(self)
            yield tx
            written = tx.commit()
            logger.debug(f"Committed {written} document(s)")
        finally:
            self._writer.release()

    def get(self, entity: str, record_id: UUID) -> Optional[EntityRecord]:
        row = self._tables.get(self._spec(entity).collection, {}).get(record_id)
        return row[0] if row else None

    def find(self, entity: str, **criteria: Any) -> list[EntityRecord]:
        spec = self._spec(entity)
        criteria = normalise_criteria(spec, criteria)
        rows = list(self._tables.get(spec.collection, {}).values())
        return [record for record, document in rows if matches(document, criteria)]

    def list_indexes(self, entity: str) -> list[IndexSpec]:
        return list(self._spec(entity).indexes)

    def count(self, entity: str) -> int:
        return len(self._tables.get(self._spec(entity).collection, {}))

    def close(self) -> None:
        self._tables = {}
        self._initialized = False
