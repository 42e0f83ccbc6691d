"""Record Service - the single write path into the store.

Every write runs, inside one storage transaction:

    1. structural validation of the candidate record
    2. single-winner resolution (preferred / primary flags)
    3. relationship validation over the affected records
    4. the store write, with an optimistic revision check on updates
    5. a provenance entry for health record entities, when an agent is given

The whole transaction is retried a bounded number of times on
ConcurrencyConflict or StoreUnavailable. Records are never hard-deleted;
``deactivate`` applies the entity's soft lifecycle instead.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar
from uuid import UUID

from edm_registry.domain.change_models import diff_records
from edm_registry.domain.enums import (
    CompositionStatus,
    ContractStatus,
    CoverageStatus,
    EmploymentStatus,
    ProvenanceActivity,
    ProvenanceAgentType,
    UsabilityStatus,
)
from edm_registry.domain.guardrails import RetryPolicy
from edm_registry.domain.models import (
    Contract,
    Coverage,
    Employee,
    EntityRecord,
    HealthRecordComposition,
    HealthRecordProvenance,
    utcnow,
)
from edm_registry.domain.models.health_record import PROVENANCE_TARGETS
from edm_registry.domain.ports import (
    ConcurrencyConflict,
    FieldViolation,
    RegistryError,
    RelationshipViolation,
    Result,
    StoragePort,
    StorageTransaction,
    StructuralViolation,
)
from edm_registry.domain.registry import REGISTRY, SchemaRegistry
from edm_registry.domain.services.preferred_resolution import PreferredFlagResolver
from edm_registry.domain.services.relationship_validator import RelationshipValidator
from edm_registry.domain.validation import StructuralValidator, stamp_document

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Fields a caller may never set through ``update``
PROTECTED_FIELDS = frozenset({"id", "_id", "created_at", "updated_at", "revision"})


@dataclass(frozen=True)
class ProvenanceAgent:
    """Who is responsible for a health record write.

    Attributes:
        agent_id: Identifier of the agent
        agent_type: FHIR provenance agent type
        agent_name: Display name
        agent_role: Role of the agent
    """
    agent_id: str
    agent_type: ProvenanceAgentType = ProvenanceAgentType.ENTERER
    agent_name: Optional[str] = None
    agent_role: Optional[str] = None


def _lifecycle_changes(record: EntityRecord, on: date) -> dict[str, Any]:
    """Field changes that retire ``record`` without deleting it."""
    fields = type(record).model_fields
    changes: dict[str, Any] = {}
    if "is_active" in fields:
        changes["is_active"] = False
    if "termination_date" in fields and getattr(record, "termination_date") is None:
        changes["termination_date"] = on
    if isinstance(record, Employee) and record.employment_status in (EmploymentStatus.ACTIVE, EmploymentStatus.LOA):
        changes["employment_status"] = EmploymentStatus.TERMINATED
    if isinstance(record, Contract) and record.status in (ContractStatus.DRAFT, ContractStatus.ACTIVE):
        changes["status"] = ContractStatus.TERMINATED
    if isinstance(record, Coverage) and record.status != CoverageStatus.TERMINATED:
        changes["status"] = CoverageStatus.TERMINATED
    if "usability_status" in fields and getattr(record, "usability_status") == UsabilityStatus.ACTIVE:
        changes["usability_status"] = UsabilityStatus.INACTIVE
        changes["usability_status_date"] = on
    if isinstance(record, HealthRecordComposition) and record.status == CompositionStatus.ACTIVE:
        changes["status"] = CompositionStatus.DELETED
    return changes


class RecordService:
    """Validated, transactional create/update/deactivate over a StoragePort.

    Parameters:
        storage: Storage adapter
        structural: Structural validator (defaults to one over ``registry``)
        relationships: Relationship validator (defaults to STRICT mode)
        resolver: Preferred/primary flag resolver
        retry: Retry policy for conflicting writes
        registry: Schema registry

    Example Usage:
        ```python
        service = RecordService(storage)
        result = service.create(Org.new(name="Acme", is_active=True))
        if result.is_success():
            org = result.value
        ```
    """

    def __init__(
        self,
        storage: StoragePort,
        structural: Optional[StructuralValidator] = None,
        relationships: Optional[RelationshipValidator] = None,
        resolver: Optional[PreferredFlagResolver] = None,
        retry: Optional[RetryPolicy] = None,
        registry: Optional[SchemaRegistry] = None,
    ):
        self.storage = storage
        self.registry = registry or REGISTRY
        self.structural = structural or StructuralValidator(self.registry)
        self.relationships = relationships or RelationshipValidator()
        self.resolver = resolver or PreferredFlagResolver()
        self.retry = retry or RetryPolicy()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, record: EntityRecord, agent: Optional[ProvenanceAgent] = None) -> Result[EntityRecord]:
        """Insert one record."""
        return self.transact(lambda tx: self.write(tx, record, agent=agent))

    def create_from_document(
        self, entity: str, document: Mapping[str, Any], agent: Optional[ProvenanceAgent] = None
    ) -> Result[EntityRecord]:
        """Validate a raw document and insert it.

        Missing ``id``/``created_at``/``updated_at`` are stamped.
        """
        spec = self.registry.get(entity)
        result = self.structural.validate(spec.name, self.stamp(spec.name, document))
        if result.is_failure():
            return result
        return self.create(result.value, agent=agent)

    def stamp(self, entity: str, document: Any) -> Any:
        """Copy of ``document`` with id and timestamps filled in where absent."""
        return stamp_document(self.registry.get(entity).model, document)

    def create_many(self, records: Iterable[EntityRecord]) -> Result[list[EntityRecord]]:
        """Insert several records in one transaction; all or nothing."""
        records = list(records)
        return self.transact(lambda tx: [self.write(tx, r) for r in records])

    def update(
        self,
        entity: str,
        record_id: UUID,
        changes: Mapping[str, Any],
        expected_revision: Optional[int] = None,
        agent: Optional[ProvenanceAgent] = None,
    ) -> Result[EntityRecord]:
        """Apply ``changes`` to a stored record.

        Parameters:
            entity: Entity or collection name
            record_id: Record to change
            changes: Field name to new value
            expected_revision: Revision the caller last read; a mismatch is
                a ConcurrencyConflict
            agent: Provenance agent for health record entities
        """
        spec = self.registry.get(entity)
        protected = sorted(PROTECTED_FIELDS.intersection(changes))
        if protected:
            return Result.failure_result(StructuralViolation(
                spec.name,
                [FieldViolation(name, "consistency", f"{name} is maintained by the registry") for name in protected],
            ))

        def apply(tx: StorageTransaction) -> EntityRecord:
            previous = self._get_for_update(tx, spec.name, record_id, expected_revision)
            candidate = self.revise(previous, changes)
            return self.write(tx, candidate, previous=previous, agent=agent)

        return self.transact(apply)

    def deactivate(
        self,
        entity: str,
        record_id: UUID,
        on: Optional[date] = None,
        agent: Optional[ProvenanceAgent] = None,
    ) -> Result[EntityRecord]:
        """Retire a record through its soft lifecycle (never a hard delete).

        Sets ``is_active`` false, stamps ``termination_date`` and moves
        lifecycle statuses to their retired state, as the entity allows.
        """
        spec = self.registry.get(entity)
        on = on or utcnow().date()

        def apply(tx: StorageTransaction) -> EntityRecord:
            previous = self._get_for_update(tx, spec.name, record_id, None)
            changes = _lifecycle_changes(previous, on)
            if not changes or previous.append_only:
                raise RelationshipViolation(
                    f"{spec.name} has no soft lifecycle to deactivate",
                    entity=spec.name, rule="soft_lifecycle", record_id=record_id,
                )
            candidate = self.revise(previous, changes)
            return self.write(tx, candidate, previous=previous, agent=agent, activity=ProvenanceActivity.DELETE)

        return self.transact(apply)

    def get(self, entity: str, record_id: UUID) -> Optional[EntityRecord]:
        return self.storage.get(entity, record_id)

    def find(self, entity: str, **criteria: Any) -> list[EntityRecord]:
        return self.storage.find(entity, **criteria)

    # ------------------------------------------------------------------
    # Building blocks shared with the accumulator and versioning services
    # ------------------------------------------------------------------

    def revise(self, previous: EntityRecord, changes: Mapping[str, Any]) -> EntityRecord:
        """Validated next revision of ``previous`` with ``changes`` applied.

        Raises:
            StructuralViolation: If the changed record breaks its contract
        """
        spec = self.registry.for_model(type(previous))
        document = {**previous.to_document(), **changes, "revision": previous.revision + 1}
        if "updated_at" in document:
            document["updated_at"] = max(utcnow(), previous.updated_at)
        return self.structural.validate_or_raise(spec.name, document)

    def write(
        self,
        tx: StorageTransaction,
        candidate: EntityRecord,
        previous: Optional[EntityRecord] = None,
        agent: Optional[ProvenanceAgent] = None,
        operation: str = "write",
        activity: Optional[ProvenanceActivity] = None,
    ) -> EntityRecord:
        """Validate and store one record inside ``tx``.

        Raises:
            StructuralViolation, RelationshipViolation, ConcurrencyConflict
        """
        self.structural.check_record(candidate)
        self.resolver.resolve(tx, candidate)
        self.relationships.enforce(tx, candidate, previous, operation)
        if previous is None:
            stored = tx.insert(candidate)
            logger.info(f"Created {type(candidate).__name__} {candidate.id}")
        else:
            stored = tx.replace(candidate, expected_revision=previous.revision)
            changed = [c.field_name for c in diff_records(previous, candidate)]
            logger.info(f"Updated {type(candidate).__name__} {candidate.id} (revision {stored.revision}): {changed}")

        if agent is not None and type(candidate) in PROVENANCE_TARGETS:
            if activity is None:
                activity = ProvenanceActivity.CREATE if previous is None else ProvenanceActivity.UPDATE
            self._append_provenance(tx, stored, previous, agent, activity)
        return stored

    def transact(self, unit: Callable[[StorageTransaction], T]) -> Result[T]:
        """Run ``unit`` in one storage transaction, retrying conflicts."""
        def attempt() -> T:
            with self.storage.transaction() as tx:
                return unit(tx)

        try:
            return Result.success_result(self.retry.call(attempt))
        except RegistryError as e:
            logger.warning(f"Write rejected ({type(e).__name__}): {e}")
            return Result.failure_result(e)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _get_for_update(
        tx: StorageTransaction, entity: str, record_id: UUID, expected_revision: Optional[int]
    ) -> EntityRecord:
        previous = tx.get(entity, record_id)
        if previous is None:
            raise RelationshipViolation(
                f"{entity} {record_id} not found", entity=entity, rule="fk_exists", record_id=record_id,
                related_entity=entity, related_id=record_id,
            )
        if expected_revision is not None and previous.revision != expected_revision:
            raise ConcurrencyConflict(
                f"{entity} {record_id} is at revision {previous.revision}, expected {expected_revision}",
                entity=entity, record_id=record_id,
                expected_revision=expected_revision, actual_revision=previous.revision, retryable=False,
            )
        return previous

    def _append_provenance(
        self,
        tx: StorageTransaction,
        record: EntityRecord,
        previous: Optional[EntityRecord],
        agent: ProvenanceAgent,
        activity: ProvenanceActivity,
    ) -> None:
        reason = None
        if previous is not None:
            changed = [c.field_name for c in diff_records(previous, record)]
            reason = f"changed: {', '.join(changed)}"[:500] if changed else None
        entry = HealthRecordProvenance.new(
            target_type=PROVENANCE_TARGETS[type(record)],
            target_id=record.id,
            recorded=utcnow(),
            activity=activity,
            reason=reason,
            agent_type=agent.agent_type,
            agent_id=agent.agent_id,
            agent_name=agent.agent_name,
            agent_role=agent.agent_role,
        )
        self.relationships.enforce(tx, entry)
        tx.insert(entry)
