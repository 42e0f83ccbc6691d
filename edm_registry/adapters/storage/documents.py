"""Document helpers shared by the storage adapters.

Both adapters store the flat document shape produced by
``EntityRecord.to_document`` and enforce the unique / sparse index
modifiers declared in the schema registry. Referential integrity is not a
storage concern.
"""

from enum import Enum
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID

from edm_registry.domain.models import EntityRecord
from edm_registry.domain.ports import RelationshipViolation, StorageError
from edm_registry.domain.registry import EntitySpec, IndexSpec


def normalise_criteria(spec: EntitySpec, criteria: Mapping[str, Any]) -> dict[str, Any]:
    """Map ``_id`` to ``id``, enums to their values, and reject unknown fields."""
    known = spec.model.document_fields()
    normalised = {}
    for name, value in criteria.items():
        name = "id" if name == "_id" else name
        if name not in known:
            raise StorageError(f"{spec.name} has no field {name!r}", operation="find",
                               details={"entity": spec.name, "field": name})
        normalised[name] = value.value if isinstance(value, Enum) else value
    return normalised


def matches(document: Mapping[str, Any], criteria: Mapping[str, Any]) -> bool:
    return all(document.get(name) == value for name, value in criteria.items())


def index_key(index: IndexSpec, document: Mapping[str, Any]) -> Optional[tuple]:
    """Values ``document`` contributes to ``index``; None when a sparse index skips it."""
    key = tuple(document.get(name) for name in index.field_names)
    if index.sparse and any(value is None for value in key):
        return None
    return key


def check_unique(
    spec: EntitySpec,
    record: EntityRecord,
    document: Mapping[str, Any],
    others: Iterable[Mapping[str, Any]],
) -> None:
    """Raise if ``document`` collides with ``others`` on a unique index.

    Raises:
        RelationshipViolation: rule ``unique:<index name>``
    """
    others = [other for other in others if other["id"] != record.id]
    for index in spec.unique_indexes:
        key = index_key(index, document)
        if key is None:
            continue
        for other in others:
            if index_key(index, other) == key:
                raise duplicate_key(spec, index, record.id, other["id"])


def duplicate_key(spec: EntitySpec, index: IndexSpec, record_id: UUID, other_id: Optional[UUID]) -> RelationshipViolation:
    return RelationshipViolation(
        f"{spec.collection}.{index.name} already holds this value",
        entity=spec.name,
        rule=f"unique:{index.name}",
        record_id=record_id,
        field=index.field_names[0],
        related_entity=spec.name,
        related_id=other_id,
    )
