"""DuckDB Storage Adapter.

This adapter implements the StoragePort contract on DuckDB, an in-process
database. Each registry entity becomes one table named after its
collection, with one typed column per document field.

Storage mapping:
    - UUIDs (primary keys and references) as 16-byte BLOBs
    - Decimals as VARCHAR so stored amounts keep their exact scale
    - Enums as their string values; nested objects and arrays as JSON text
    - Registry indexes become DuckDB indexes; unique ones become UNIQUE
      indexes (NULLs never collide there, which is the sparse behaviour)

Architecture:
    - Implements StoragePort (Hexagonal Architecture)
    - One connection guarded by a re-entrant lock; write transactions hold
      the lock from BEGIN to COMMIT, so writers are serialised
    - Unique modifiers are checked before every write inside the
      transaction; DuckDB's own indexes are the backstop
"""

import json
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Optional
from uuid import UUID

import duckdb
import pandas as pd

from edm_registry.adapters.storage.documents import duplicate_key, index_key, normalise_criteria
from edm_registry.domain.models import EntityRecord
from edm_registry.domain.ports import (
    ConcurrencyConflict,
    RegistryError,
    RelationshipViolation,
    Result,
    StorageError,
    StoragePort,
    StorageTransaction,
    StoreUnavailable,
)
from edm_registry.domain.registry import (
    REGISTRY,
    EntitySpec,
    FieldDescriptor,
    IndexSpec,
    SchemaRegistry,
    SemanticType,
)
from edm_registry.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    SemanticType.UUID: "BLOB",
    SemanticType.STRING: "VARCHAR",
    SemanticType.ENUM: "VARCHAR",
    SemanticType.DATE: "DATE",
    SemanticType.DATETIME: "TIMESTAMP",
    SemanticType.DECIMAL: "VARCHAR",
    SemanticType.INTEGER: "BIGINT",
    SemanticType.BOOLEAN: "BOOLEAN",
    SemanticType.OBJECT: "VARCHAR",
    SemanticType.ARRAY: "VARCHAR",
}


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _index_name(spec: EntitySpec, index: IndexSpec) -> str:
    return f"{spec.collection}__{index.name}"


def _encode(descriptor: FieldDescriptor, value: Any) -> Any:
    if value is None:
        return None
    semantic = descriptor.semantic_type
    if semantic == SemanticType.UUID:
        return (value if isinstance(value, UUID) else UUID(str(value))).bytes
    if semantic == SemanticType.DECIMAL:
        return str(value)
    if semantic in (SemanticType.OBJECT, SemanticType.ARRAY):
        return json.dumps(value, default=str, sort_keys=True)
    return value


def _decode(descriptor: FieldDescriptor, value: Any) -> Any:
    if value is None:
        return None
    semantic = descriptor.semantic_type
    if semantic == SemanticType.UUID:
        return UUID(bytes=bytes(value))
    if semantic == SemanticType.DECIMAL:
        return Decimal(value)
    if semantic in (SemanticType.OBJECT, SemanticType.ARRAY):
        return json.loads(value)
    return value


def _translate(error: duckdb.Error, operation: str) -> RegistryError:
    """Map a DuckDB driver error onto the registry error taxonomy."""
    message = f"DuckDB {operation} failed: {error}"
    if isinstance(error, duckdb.TransactionException):
        return ConcurrencyConflict(message)
    if isinstance(error, (duckdb.IOException, duckdb.ConnectionException)):
        return StoreUnavailable(message, operation=operation)
    return StorageError(message, operation=operation)


def _rollback(conn: duckdb.DuckDBPyConnection) -> None:
    # DuckDB has already aborted a transaction whose COMMIT failed
    try:
        conn.rollback()
    except duckdb.TransactionException as e:
        logger.debug(f"Rollback skipped: {e}")


class DuckDBTransaction(StorageTransaction):
    """Open DuckDB transaction; reads observe the transaction's own writes."""

    def __init__(self, adapter: "DuckDBAdapter", conn: duckdb.DuckDBPyConnection):
        self._adapter = adapter
        self._conn = conn

    def get(self, entity: str, record_id: UUID) -> Optional[EntityRecord]:
        rows = self._adapter._select(self._conn, self._adapter._spec(entity), {"id": record_id})
        return rows[0] if rows else None

    def find(self, entity: str, **criteria: Any) -> list[EntityRecord]:
        spec = self._adapter._spec(entity)
        return self._adapter._select(self._conn, spec, normalise_criteria(spec, criteria))

    def insert(self, record: EntityRecord) -> EntityRecord:
        spec = self._adapter._spec(type(record).__name__)
        if self._adapter._revision(self._conn, spec, record.id) is not None:
            raise RelationshipViolation(
                f"{spec.collection} already holds id {record.id}",
                entity=spec.name, rule="unique:_id", record_id=record.id, field="id",
            )
        document = record.to_document()
        self._check_unique(spec, record, document)

        columns = spec.fields()
        sql = (
            f"INSERT INTO {_quote(spec.collection)} ({', '.join(_quote(c.name) for c in columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        self._execute(spec, record, sql, [_encode(c, document.get(c.name)) for c in columns])
        return record

    def replace(self, record: EntityRecord, expected_revision: int) -> EntityRecord:
        spec = self._adapter._spec(type(record).__name__)
        actual = self._adapter._revision(self._conn, spec, record.id)
        if actual != expected_revision:
            raise ConcurrencyConflict(
                f"{spec.name} {record.id} is at revision {actual}, expected {expected_revision}",
                entity=spec.name, record_id=record.id,
                expected_revision=expected_revision, actual_revision=actual,
            )
        document = record.to_document()
        self._check_unique(spec, record, document)

        columns = [c for c in spec.fields() if c.name != "id"]
        sql = (
            f"UPDATE {_quote(spec.collection)} SET {', '.join(f'{_quote(c.name)} = ?' for c in columns)} "
            f"WHERE {_quote('id')} = ?"
        )
        params = [_encode(c, document.get(c.name)) for c in columns] + [record.id.bytes]
        self._execute(spec, record, sql, params)
        return record

    def _check_unique(self, spec: EntitySpec, record: EntityRecord, document: dict[str, Any]) -> None:
        for index in spec.unique_indexes:
            key = index_key(index, document)
            if key is None:
                continue
            clashes = [
                other for other in self._adapter._select(self._conn, spec, dict(zip(index.field_names, key)))
                if other.id != record.id
            ]
            if clashes:
                raise duplicate_key(spec, index, record.id, clashes[0].id)

    def _execute(self, spec: EntitySpec, record: EntityRecord, sql: str, params: list) -> None:
        try:
            self._conn.execute(sql, params)
        except duckdb.ConstraintException as e:
            raise RelationshipViolation(
                f"{spec.collection} constraint violated: {e}",
                entity=spec.name, rule="unique", record_id=record.id,
            ) from e
        except duckdb.Error as e:
            raise _translate(e, "write") from e


class DuckDBAdapter(StoragePort):
    """DuckDB implementation of StoragePort.

    Parameters:
        db_config: DatabaseConfig from the configuration manager (preferred)
        db_path: Path to the DuckDB file (or ':memory:')
        registry: Schema registry (defaults to the full data model)
        lock_timeout: Seconds a writer waits for the transaction lock

    Example Usage:
        ```python
        from edm_registry.infrastructure.config_manager import get_database_config

        adapter = DuckDBAdapter(db_config=get_database_config())
        result = adapter.initialize_schema(REGISTRY)
        if result.is_success():
            with adapter.transaction() as tx:
                tx.insert(org)
        ```
    """

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        db_path: Optional[str] = None,
        registry: Optional[SchemaRegistry] = None,
        lock_timeout: Optional[float] = None,
    ):
        if db_config:
            if db_config.db_type != "duckdb":
                raise StorageError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match DuckDB adapter",
                    operation="__init__"
                )
            self.db_path = db_config.db_path or ":memory:"
            self.lock_timeout = lock_timeout or db_config.lock_timeout
        else:
            self.db_path = db_path or ":memory:"
            self.lock_timeout = lock_timeout or 5.0

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise StorageError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

        self.registry = registry or REGISTRY
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._initialized = False

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection (created lazily, then reused)."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except duckdb.Error as e:
                raise StoreUnavailable(
                    f"Failed to connect to DuckDB: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                )
        return self._connection

    def _spec(self, entity: str) -> EntitySpec:
        if not self._initialized:
            self.initialize_schema(self.registry).unwrap()
        try:
            return self.registry.get(entity)
        except KeyError:
            raise StorageError(f"Unknown collection: {entity}", operation="lookup", details={"entity": entity})

    def initialize_schema(self, registry: SchemaRegistry) -> Result[None]:
        """Create one table per entity and the registry's indexes.

        Idempotent: existing tables and indexes are left in place.
        """
        try:
            with self._lock:
                conn = self._get_connection()
                for spec in registry:
                    columns = []
                    for descriptor in spec.fields():
                        column = f"{_quote(descriptor.name)} {_COLUMN_TYPES[descriptor.semantic_type]}"
                        if descriptor.name == "id":
                            column += " PRIMARY KEY"
                        elif descriptor.required and not descriptor.nullable:
                            column += " NOT NULL"
                        columns.append(column)
                    conn.execute(f"CREATE TABLE IF NOT EXISTS {_quote(spec.collection)} ({', '.join(columns)})")

                    for index in spec.indexes:
                        conn.execute(
                            f"CREATE {'UNIQUE ' if index.unique else ''}INDEX IF NOT EXISTS "
                            f"{_quote(_index_name(spec, index))} ON {_quote(spec.collection)} "
                            f"({', '.join(_quote(name) for name in index.field_names)})"
                        )
                self.registry = registry
                self._initialized = True
            logger.info(f"DuckDB schema initialized with {len(registry)} collections")
            return Result.success_result(None)
        except RegistryError as e:
            logger.error(f"Failed to initialize schema: {e}")
            return Result.failure_result(e)
        except duckdb.Error as e:
            error = _translate(e, "initialize_schema")
            logger.error(str(error), exc_info=True)
            return Result.failure_result(error)

    @contextmanager
    def transaction(self) -> Iterator[DuckDBTransaction]:
        if not self._initialized:
            self.initialize_schema(self.registry).unwrap()
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise ConcurrencyConflict(f"Timed out after {self.lock_timeout}s waiting for the writer lock")
        try:
            conn = self._get_connection()
            try:
                conn.begin()
            except duckdb.Error as e:
                raise _translate(e, "begin") from e
            try:
                yield DuckDBTransaction(self, conn)
                conn.commit()
            except duckdb.Error as e:
                _rollback(conn)
                raise _translate(e, "commit") from e
            except BaseException:
                _rollback(conn)
                raise
        finally:
            self._lock.release()

    def get(self, entity: str, record_id: UUID) -> Optional[EntityRecord]:
        spec = self._spec(entity)
        with self._lock:
            rows = self._select(self._get_connection(), spec, {"id": record_id})
        return rows[0] if rows else None

    def find(self, entity: str, **criteria: Any) -> list[EntityRecord]:
        spec = self._spec(entity)
        criteria = normalise_criteria(spec, criteria)
        with self._lock:
            return self._select(self._get_connection(), spec, criteria)

    def list_indexes(self, entity: str) -> list[IndexSpec]:
        """Registry indexes that exist on the collection's table."""
        spec = self._spec(entity)
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT index_name FROM duckdb_indexes() WHERE table_name = ?", [spec.collection]
            ).fetchall()
        present = {row[0] for row in rows}
        return [index for index in spec.indexes if _index_name(spec, index) in present]

    def count(self, entity: str) -> int:
        spec = self._spec(entity)
        with self._lock:
            return self._get_connection().execute(f"SELECT count(*) FROM {_quote(spec.collection)}").fetchone()[0]

    def export_dataframe(self, entity: str) -> pd.DataFrame:
        """Committed documents of a collection as a DataFrame (UUIDs as text)."""
        spec = self._spec(entity)
        with self._lock:
            df = self._get_connection().execute(f"SELECT * FROM {_quote(spec.collection)}").df()
        for descriptor in spec.fields():
            if descriptor.semantic_type == SemanticType.UUID and descriptor.name in df.columns:
                df[descriptor.name] = df[descriptor.name].map(
                    lambda v: str(UUID(bytes=bytes(v))) if isinstance(v, (bytes, bytearray, memoryview)) else None
                )
        return df

    def close(self) -> None:
        """Close storage connection and release resources."""
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.close()
                    logger.info("Closed DuckDB connection")
                except duckdb.Error as e:
                    logger.warning(f"Error closing connection: {str(e)}")
                finally:
                    self._connection = None
                    self._initialized = False

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _select(self, conn: duckdb.DuckDBPyConnection, spec: EntitySpec, criteria: dict[str, Any]) -> list[EntityRecord]:
        descriptors = spec.fields()
        by_name = {d.name: d for d in descriptors}
        clauses, params = [], []
        for name, value in criteria.items():
            if value is None:
                clauses.append(f"{_quote(name)} IS NULL")
            else:
                clauses.append(f"{_quote(name)} = ?")
                params.append(_encode(by_name[name], value))
        sql = f"SELECT {', '.join(_quote(d.name) for d in descriptors)} FROM {_quote(spec.collection)}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        try:
            rows = conn.execute(sql, params).fetchall()
        except duckdb.Error as e:
            raise _translate(e, "read") from e
        return [
            spec.model.from_document({d.name: _decode(d, value) for d, value in zip(descriptors, row)})
            for row in rows
        ]

    def _revision(self, conn: duckdb.DuckDBPyConnection, spec: EntitySpec, record_id: UUID) -> Optional[int]:
        row = conn.execute(
            f"SELECT {_quote('revision')} FROM {_quote(spec.collection)} WHERE {_quote('id')} = ?",
            [record_id.bytes],
        ).fetchone()
        return row[0] if row else None
