"""Composition root for EDM Registry.

Wires configuration, the storage adapter and the write-path services
together, and hosts the bulk load used by the CLI.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from edm_registry.adapters.document_reader import read_documents
from edm_registry.adapters.storage import DuckDBAdapter, InMemoryStorageAdapter
from edm_registry.domain.guardrails import RetryConfig, RetryPolicy
from edm_registry.domain.ports import Result, StoragePort
from edm_registry.domain.registry import REGISTRY, SchemaRegistry
from edm_registry.domain.services import (
    AccumulatorService,
    CompositionVersioningService,
    RecordService,
    RelationshipValidator,
)
from edm_registry.infrastructure.config_manager import DatabaseConfig, WriteConfig
from edm_registry.infrastructure.settings import settings

logger = logging.getLogger(__name__)


def create_storage_adapter(db_config: Optional[DatabaseConfig] = None) -> StoragePort:
    """Create the storage adapter named by configuration.

    Raises:
        ValueError: If database type is unsupported
    """
    db_config = db_config or settings.db_config

    if db_config.db_type == "duckdb":
        logger.info(f"Initializing DuckDB adapter with path: {db_config.db_path or ':memory:'}")
        return DuckDBAdapter(db_config=db_config)
    elif db_config.db_type == "memory":
        logger.info("Initializing in-memory storage adapter")
        return InMemoryStorageAdapter(lock_timeout=db_config.lock_timeout)
    else:
        raise ValueError(f"Unsupported database type: {db_config.db_type}")


def create_record_service(
    storage: Optional[StoragePort] = None,
    write_config: Optional[WriteConfig] = None,
    registry: Optional[SchemaRegistry] = None,
) -> RecordService:
    """Build a RecordService with validators and retry policy from configuration."""
    storage = storage or create_storage_adapter()
    write_config = write_config or settings.write_config
    return RecordService(
        storage,
        relationships=RelationshipValidator(
            mode=write_config.validation_mode,
            enforce_enrollment=write_config.enforce_enrollment,
        ),
        retry=RetryPolicy(RetryConfig(
            max_attempts=write_config.max_attempts,
            min_wait=write_config.min_wait,
            max_wait=write_config.max_wait,
        )),
        registry=registry or REGISTRY,
    )


def create_services(storage: Optional[StoragePort] = None) -> dict[str, Any]:
    """All write-path services sharing one record service."""
    records = create_record_service(storage)
    return {
        "records": records,
        "accumulators": AccumulatorService(records),
        "compositions": CompositionVersioningService(records),
    }


def initialize_database(storage: Optional[StoragePort] = None, registry: Optional[SchemaRegistry] = None) -> Result[None]:
    """Create every collection and index of the registry."""
    storage = storage or create_storage_adapter()
    registry = registry or REGISTRY
    logger.info("Initializing storage schema...")
    result = storage.initialize_schema(registry)
    if result.is_success():
        logger.info(f"Schema initialized with {len(registry)} collections")
    else:
        logger.error(f"Failed to initialize schema: {result.error}")
    return result


@dataclass
class LoadSummary:
    """Outcome of a bulk load."""
    loaded: int = 0
    rejected: int = 0
    errors: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.loaded + self.rejected


def load_documents(
    service: RecordService,
    entity: str,
    source: str,
    batch_size: Optional[int] = None,
) -> LoadSummary:
    """Validate and insert the documents of ``source`` into ``entity``.

    Each chunk is written in one transaction. When a chunk is rejected the
    documents are retried one by one, so a single bad document only rejects
    itself.
    """
    summary = LoadSummary()
    spec = service.registry.get(entity)
    position = 0
    for chunk in read_documents(source, chunk_size=batch_size or settings.batch_size):
        valid = []
        for document in chunk:
            position += 1
            result = service.structural.validate(spec.name, service.stamp(spec.name, document))
            if result.is_success():
                valid.append((position, result.value))
            else:
                summary.rejected += 1
                summary.errors.append({"position": position, "error_type": result.error_type, **result.error_details})
        if not valid:
            continue

        batch_result = service.create_many(record for _, record in valid)
        if batch_result.is_success():
            summary.loaded += len(valid)
            continue

        logger.warning(f"Batch of {len(valid)} rejected ({batch_result.error}); retrying documents one by one")
        for document_position, record in valid:
            result = service.create(record)
            if result.is_success():
                summary.loaded += 1
            else:
                summary.rejected += 1
                summary.errors.append({
                    "position": document_position, "error_type": result.error_type, **result.error_details,
                })

    logger.info(f"Loaded {summary.loaded} of {summary.total} {spec.name} document(s)")
    return summary

