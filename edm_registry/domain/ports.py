"""Domain Ports - Result Type, Error Taxonomy and Storage Contract.

This module defines the abstract contracts that storage adapters must implement
and the error types that flow between the domain services and their callers.
Following Hexagonal Architecture, the Domain Core defines what it needs from a
store, not how the store provides it.

Error Taxonomy:
    - StructuralViolation: a single document breaks its entity contract
      (missing field, wrong type, enum mismatch, pattern or bound failure)
    - RelationshipViolation: a cross-entity invariant is broken (dangling
      reference, role-type mismatch, cardinality, cycle, illegal transition)
    - ConcurrencyConflict: optimistic-lock mismatch or writer-lock timeout
    - StoreUnavailable: transient infrastructure failure
    Only ConcurrencyConflict and StoreUnavailable are retryable.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (in-memory, DuckDB) implement StoragePort
    - Writes happen inside a StorageTransaction so that multi-record
      invariants (single winner, version supersession, accumulator
      increments) are committed all-or-nothing
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar, Union
from uuid import UUID

if TYPE_CHECKING:
    from edm_registry.domain.models.base import EntityRecord
    from edm_registry.domain.registry import IndexSpec, SchemaRegistry

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Validation and write operations return a Result so callers can branch on
    the outcome and still get the structured identifiers of a failure.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error message (only present if success=False)
        error_type: Taxonomy class name (StructuralViolation, ConcurrencyConflict, ...)
        error_details: Structured identifiers (entity, field, rule, record id, ...)
        exception: The originating exception, kept for callers that re-raise

    Example:
        ```python
        result = validator.validate("Org", {"name": "Acme", "is_active": True})
        if result.is_failure():
            for violation in result.error_details["violations"]:
                print(violation["field"], violation["rule"])
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None
    exception: Optional[Exception] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(success=True, value=value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        When ``error`` is a RegistryError its own ``details`` are used unless
        explicit ``error_details`` are given.

        Parameters:
            error: Error message or exception
            error_type: Type of error (defaults to the exception class name)
            error_details: Additional context

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")
        if error_details is None and isinstance(error, RegistryError):
            error_details = error.details

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {},
            exception=error if isinstance(error, Exception) else None,
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success

    def unwrap(self) -> T:
        """Return the value, or raise the originating error of a failure."""
        if self.success:
            return self.value
        if self.exception is not None:
            raise self.exception
        raise RegistryError(self.error or "Operation failed", details=self.error_details)


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class RegistryError(Exception):
    """Base exception for all registry errors.

    Attributes:
        details: Structured identifiers for a human-actionable fix
        retryable: Whether the operation may succeed unchanged on retry
    """

    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class FieldViolation:
    """A single broken field rule.

    Attributes:
        field: Dotted path of the offending field
        rule: One of required, type, enum, pattern, max_length, minimum,
            maximum, unknown_field, consistency
        message: Human-readable explanation
        value: The rejected input value (None when absent)
    """

    field: str
    rule: str
    message: str
    value: Any = None

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "rule": self.rule,
            "message": self.message,
            "value": None if self.value is None else repr(self.value),
        }


class StructuralViolation(RegistryError):
    """Raised when a document does not satisfy its entity's structural contract.

    Every violation of the document is reported; a document is never
    partially accepted.

    Attributes:
        entity: Entity name the document was validated against
        violations: List of FieldViolation
    """

    def __init__(self, entity: str, violations: list[FieldViolation], message: Optional[str] = None):
        if message is None:
            summary = ", ".join(f"{v.field} ({v.rule})" for v in violations[:5])
            more = f" and {len(violations) - 5} more" if len(violations) > 5 else ""
            message = f"{entity} failed structural validation: {summary}{more}"
        super().__init__(
            message,
            details={"entity": entity, "violations": [v.to_dict() for v in violations]},
        )
        self.entity = entity
        self.violations = list(violations)

    @property
    def fields(self) -> list[str]:
        return [v.field for v in self.violations]


class RelationshipViolation(RegistryError):
    """Raised when a write would break a cross-entity invariant.

    Attributes:
        entity: Entity being written
        rule: Invariant identifier (e.g. "fk_exists", "role_type", "unique:<index>")
        record_id: Id of the record being written
        field: Reference field involved, if any
        related_entity: Entity on the other side of the relationship
        related_id: Id of the related record
    """

    def __init__(
        self,
        message: str,
        entity: str,
        rule: str,
        record_id: Optional[UUID] = None,
        field: Optional[str] = None,
        related_entity: Optional[str] = None,
        related_id: Optional[UUID] = None,
    ):
        super().__init__(
            message,
            details={
                "entity": entity,
                "rule": rule,
                "record_id": str(record_id) if record_id else None,
                "field": field,
                "related_entity": related_entity,
                "related_id": str(related_id) if related_id else None,
            },
        )
        self.entity = entity
        self.rule = rule
        self.record_id = record_id
        self.field = field
        self.related_entity = related_entity
        self.related_id = related_id


class ConcurrencyConflict(RegistryError):
    """Raised when a concurrent mutation touched the same invariant scope.

    Attributes:
        entity: Entity being written
        record_id: Record whose revision did not match
        expected_revision: Revision the writer based its change on
        actual_revision: Revision found in the store

    A conflict against a revision the caller supplied is not retryable: the
    caller has to re-read the record first.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        record_id: Optional[UUID] = None,
        expected_revision: Optional[int] = None,
        actual_revision: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(
            message,
            details={
                "entity": entity,
                "record_id": str(record_id) if record_id else None,
                "expected_revision": expected_revision,
                "actual_revision": actual_revision,
            },
        )
        self.entity = entity
        self.record_id = record_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        self.retryable = retryable


class StoreUnavailable(RegistryError):
    """Raised on transient infrastructure failure (retry with backoff).

    Attributes:
        operation: The storage operation that failed
    """

    retryable = True

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details={"operation": operation, **(details or {})})
        self.operation = operation


class StorageError(RegistryError):
    """Raised when a storage adapter fails for a non-transient reason.

    Attributes:
        operation: The storage operation that failed
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details={"operation": operation, **(details or {})})
        self.operation = operation


# ============================================================================
# Storage Ports
# ============================================================================

class StorageTransaction(ABC):
    """Unit of work against a store.

    All reads performed through a transaction observe its own uncommitted
    writes. The transaction commits when its context exits normally and
    rolls back on any exception.

    Entity arguments accept either the entity name ("OrgContact") or the
    collection name ("org_contact").
    """

    @abstractmethod
    def get(self, entity: str, record_id: UUID) -> Optional['EntityRecord']:
        """Return the record with ``record_id`` or None."""
        pass

    @abstractmethod
    def find(self, entity: str, **criteria: Any) -> list['EntityRecord']:
        """Return records whose fields equal every given criterion.

        A criterion value of None matches absent (null) fields.
        """
        pass

    @abstractmethod
    def insert(self, record: 'EntityRecord') -> 'EntityRecord':
        """Insert a new record.

        Raises:
            RelationshipViolation: If the id or a unique index value is taken
        """
        pass

    @abstractmethod
    def replace(self, record: 'EntityRecord', expected_revision: int) -> 'EntityRecord':
        """Overwrite a stored record if its revision still equals ``expected_revision``.

        Raises:
            ConcurrencyConflict: If the stored revision differs or the record is gone
            RelationshipViolation: If a unique index value is taken
        """
        pass


class StoragePort(ABC):
    """Abstract contract for persistence adapters.

    One collection per entity type; primary keys and references are UUIDs
    stored as opaque 16-byte binary. The store enforces unique/sparse index
    modifiers but never referential integrity, which is the registry's job.

    Write transactions are serialised per store. Acquiring the writer lock is
    bounded by the adapter's lock timeout and surfaces ConcurrencyConflict.

    Example Usage:
        ```python
        storage = InMemoryStorageAdapter()
        storage.initialize_schema(REGISTRY)
        with storage.transaction() as tx:
            tx.insert(Org.new(name="Acme", is_active=True))
        ```
    """

    @abstractmethod
    def initialize_schema(self, registry: 'SchemaRegistry') -> Result[None]:
        """Create collections and indexes for every entity in ``registry``."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[StorageTransaction]:
        """Open a serialised write transaction."""
        pass

    @abstractmethod
    def get(self, entity: str, record_id: UUID) -> Optional['EntityRecord']:
        """Read a committed record."""
        pass

    @abstractmethod
    def find(self, entity: str, **criteria: Any) -> list['EntityRecord']:
        """Query committed records by field equality."""
        pass

    @abstractmethod
    def list_indexes(self, entity: str) -> list['IndexSpec']:
        """Return the secondary indexes declared for a collection."""
        pass

    @abstractmethod
    def count(self, entity: str) -> int:
        """Return the number of committed records in a collection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release adapter resources."""
        pass
