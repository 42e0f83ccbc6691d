"""Composition Versioning - supersession of health record compositions.

A composition is never edited in place once it has content that others may
have read: a correction is a new version. Superseding version n, in one
transaction:

    1. rewrites version n as SUPERSEDED with ``is_current`` false
    2. inserts version n+1 (ACTIVE, current) with ``preceding_version_id``
       pointing at version n
    3. re-audits the chain: versions 1..n+1, exactly one current

so readers observe either the old chain or the new one, never a chain with
zero or two current versions.
"""

import logging
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

from edm_registry.domain.enums import CompositionStatus
from edm_registry.domain.models import HealthRecordComposition, utcnow
from edm_registry.domain.ports import (
    FieldViolation,
    RelationshipViolation,
    Result,
    StorageTransaction,
    StructuralViolation,
)
from edm_registry.domain.services.record_service import ProvenanceAgent, RecordService
from edm_registry.domain.services.relationship_validator import composition_chain

logger = logging.getLogger(__name__)

ENTITY = "HealthRecordComposition"

# Fields owned by the versioning chain
CHAIN_FIELDS = frozenset({
    "id", "_id", "member_id", "version_number", "preceding_version_id",
    "is_current", "status", "created_at", "updated_at", "revision",
})


class CompositionVersioningService:
    """Supersede, delete and read composition version chains."""

    def __init__(self, records: RecordService):
        self.records = records

    def supersede(
        self,
        composition_id: UUID,
        changes: Mapping[str, Any],
        agent: Optional[ProvenanceAgent] = None,
    ) -> Result[HealthRecordComposition]:
        """Write a new version of the chain containing ``composition_id``.

        Parameters:
            composition_id: Any version of the chain; the current one is superseded
            changes: Content changes carried into the new version
            agent: Provenance agent recorded for both writes

        Returns:
            Result[HealthRecordComposition]: The new current version
        """
        forbidden = sorted(CHAIN_FIELDS.intersection(changes))
        if forbidden:
            return Result.failure_result(StructuralViolation(
                ENTITY,
                [FieldViolation(name, "consistency", f"{name} is maintained by composition versioning")
                 for name in forbidden],
            ))

        def unit(tx: StorageTransaction) -> HealthRecordComposition:
            current = self._current(tx, composition_id)
            retired = self.records.revise(current, {"status": CompositionStatus.SUPERSEDED, "is_current": False})
            retired = self.records.write(tx, retired, previous=current, agent=agent, operation="supersede")

            now = utcnow()
            document = {
                **current.to_document(),
                **changes,
                "id": uuid4(),
                "created_at": now,
                "updated_at": now,
                "revision": 0,
                "version_number": current.version_number + 1,
                "preceding_version_id": current.id,
                "is_current": True,
                "status": CompositionStatus.ACTIVE,
            }
            successor = self.records.structural.validate_or_raise(ENTITY, document)
            successor = self.records.write(tx, successor, agent=agent)

            findings = self.records.relationships.audit_composition_chain(tx, successor.id)
            if findings:
                raise findings[0].to_violation()
            logger.info(
                f"Superseded composition {retired.id} (v{retired.version_number}) "
                f"with {successor.id} (v{successor.version_number})"
            )
            return successor

        return self.records.transact(unit)

    def mark_deleted(
        self, composition_id: UUID, agent: Optional[ProvenanceAgent] = None
    ) -> Result[HealthRecordComposition]:
        """Move the current version of the chain to DELETED.

        The version keeps ``is_current``; a DELETED chain accepts no further versions.
        """
        current = self.current_version(composition_id)
        if current is None:
            return Result.failure_result(self._not_found(composition_id))
        return self.records.deactivate(ENTITY, current.id, agent=agent)

    def history(self, composition_id: UUID) -> list[HealthRecordComposition]:
        """Every version of the chain, oldest first."""
        return composition_chain(self.records.storage, composition_id)

    def current_version(self, composition_id: UUID) -> Optional[HealthRecordComposition]:
        chain = self.history(composition_id)
        current = [c for c in chain if c.is_current]
        return current[-1] if current else None

    def _current(self, tx: StorageTransaction, composition_id: UUID) -> HealthRecordComposition:
        chain = composition_chain(tx, composition_id)
        current = [c for c in chain if c.is_current]
        if not current:
            raise self._not_found(composition_id)
        return current[-1]

    @staticmethod
    def _not_found(composition_id: UUID) -> RelationshipViolation:
        return RelationshipViolation(
            f"no current version for composition {composition_id}",
            entity=ENTITY, rule="single_current", record_id=composition_id,
            related_entity=ENTITY, related_id=composition_id,
        )
