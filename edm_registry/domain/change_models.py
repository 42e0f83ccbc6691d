"""Change models - field-level differences between two versions of a record.

Updates are applied as whole-record rewrites; FieldChange lists what a
rewrite actually changed so it can be logged and summarised in provenance
entries.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Bookkeeping fields (updated_at, revision) are never reported
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from edm_registry.domain.models.base import EntityRecord, utcnow

_BOOKKEEPING = frozenset({"updated_at", "revision"})


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class FieldChange(BaseModel):
    """A single field-level change in a record.

    Parameters:
        entity: Entity name
        record_id: Primary key of the record
        field_name: Name of the field that changed
        old_value: Previous value (None on insert)
        new_value: New value
        change_type: INSERT or UPDATE
        changed_at: Timestamp of the change
    """

    model_config = ConfigDict(frozen=True)

    entity: str
    record_id: UUID
    field_name: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    change_type: ChangeType
    changed_at: datetime = Field(default_factory=utcnow)

    def to_audit_dict(self) -> dict:
        """Dictionary with values serialised to strings, for logs."""
        return {
            "entity": self.entity,
            "record_id": str(self.record_id),
            "field_name": self.field_name,
            "old_value": _serialize_value(self.old_value),
            "new_value": _serialize_value(self.new_value),
            "change_type": self.change_type.value,
            "changed_at": self.changed_at.isoformat(),
        }


def _serialize_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def diff_records(old: Optional[EntityRecord], new: EntityRecord) -> list[FieldChange]:
    """List the fields of ``new`` that differ from ``old``.

    With ``old`` None every populated field is reported as an INSERT.
    """
    entity = type(new).__name__
    new_doc = new.to_document()
    if old is None:
        return [
            FieldChange(entity=entity, record_id=new.id, field_name=name, new_value=value, change_type=ChangeType.INSERT)
            for name, value in new_doc.items()
            if value is not None and name not in _BOOKKEEPING
        ]
    old_doc = old.to_document()
    return [
        FieldChange(
            entity=entity,
            record_id=new.id,
            field_name=name,
            old_value=old_doc.get(name),
            new_value=value,
            change_type=ChangeType.UPDATE,
        )
        for name, value in new_doc.items()
        if name not in _BOOKKEEPING and old_doc.get(name) != value
    ]
