"""Base record models shared by every entity of the data model.

Every collection document carries a UUID primary key (stored as ``_id``),
a creation timestamp and, for mutable entities, a modification timestamp.
Records are immutable Pydantic models; a mutation produces a new record
with a bumped ``revision`` and a fresh ``updated_at``.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Timestamps are naive UTC; aware inputs are converted to UTC
    - ``to_document`` / ``from_document`` define the storage shape
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_core import PydanticCustomError

from edm_registry.domain.enums import ContactType, UsabilityStatus

STATE_PATTERN = r"^[A-Z]{2}$"
ZIP_PATTERN = r"^[0-9]{5}(-[0-9]{4})?$"
NPI_PATTERN = r"^[0-9]{10}$"
TAXONOMY_PATTERN = r"^[0-9A-Z]{10}$"


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the stored representation)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def consistency_error(field: str, message: str) -> PydanticCustomError:
    """Build a cross-field error that the structural validator attributes to ``field``."""
    return PydanticCustomError("consistency", message, {"field": field})


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class EntityRecord(BaseModel):
    """Root of every persisted record.

    Parameters:
        id: Primary key (accepted as ``_id`` or ``id``)
        created_at: Creation timestamp, immutable after insert
        revision: Optimistic concurrency counter, incremented on every write
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="forbid",
        populate_by_name=True,
    )

    append_only: ClassVar[bool] = False

    id: UUID = Field(..., alias="_id", description="Primary key")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    revision: int = Field(0, ge=0, description="Write counter for optimistic concurrency")

    @field_validator("created_at", "updated_at", mode="after", check_fields=False)
    @classmethod
    def normalise_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @classmethod
    def new(cls, **fields: Any) -> "EntityRecord":
        """Create a record with a fresh id and creation timestamps."""
        now = utcnow()
        fields.setdefault("id", uuid4())
        fields.setdefault("created_at", now)
        if "updated_at" in cls.model_fields:
            fields.setdefault("updated_at", fields["created_at"])
        return cls(**fields)

    @classmethod
    def document_fields(cls) -> dict[str, FieldInfo]:
        """Fields of the stored document keyed by name, in declaration order."""
        return dict(cls.model_fields)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "EntityRecord":
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        """Flat storage shape: field name to plain value, enums as their values."""
        return {name: _plain(value) for name, value in self.model_dump(mode="python").items()}


class TrackedRecord(EntityRecord):
    """Mutable record; every write refreshes ``updated_at``."""

    updated_at: datetime = Field(..., description="Last modification timestamp (UTC)")

    @model_validator(mode="after")
    def check_timestamps(self) -> "TrackedRecord":
        if self.updated_at < self.created_at:
            raise consistency_error("updated_at", "updated_at must not precede created_at")
        return self


class EffectiveDatedRecord(TrackedRecord):
    """Record with an effective window [effective_date, termination_date]."""

    effective_date: date = Field(..., description="First day the record applies")
    termination_date: Optional[date] = Field(None, description="Last day the record applies")

    @model_validator(mode="after")
    def check_window(self) -> "EffectiveDatedRecord":
        if self.termination_date is not None and self.termination_date < self.effective_date:
            raise consistency_error("termination_date", "termination_date must not precede effective_date")
        return self


class IdentifierRecord(TrackedRecord):
    """Shared shape of organization and person identifiers."""

    identifier_value: str
    issuing_authority: Optional[str] = None
    issue_date: Optional[date] = None
    expiration_date: Optional[date] = None
    is_primary: Optional[bool] = None
    usability_status: UsabilityStatus
    usability_status_date: date


class ContactRecord(TrackedRecord):
    """Shared shape of organization and person contacts."""

    contact_type: ContactType
    is_preferred: bool
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, pattern=STATE_PATTERN)
    zip_code: Optional[str] = Field(None, pattern=ZIP_PATTERN)
    country: Optional[str] = None
    usability_status: UsabilityStatus
    usability_status_date: date


class SourceTrackedRecord(TrackedRecord):
    """Clinical entry tied to a member, optionally grouped under a composition.

    Parameters:
        member_id: Person the entry belongs to
        composition_id: Grouping composition, if any
        archetype_id: openEHR archetype identifier
        source: Source system name
        source_id: Identifier of the entry in the source system
    """

    member_id: UUID
    composition_id: Optional[UUID] = None
    archetype_id: str = Field(..., max_length=255)
    source: Optional[str] = Field(None, max_length=50)
    source_id: Optional[str] = Field(None, max_length=100)


class CodedConcept(BaseModel):
    """Coded value with optional text (FHIR CodeableConcept subset)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    code: Optional[str] = None
    system: Optional[str] = None
    display: Optional[str] = None
    text: Optional[str] = None


__all__ = [
    "EntityRecord",
    "TrackedRecord",
    "EffectiveDatedRecord",
    "IdentifierRecord",
    "ContactRecord",
    "SourceTrackedRecord",
    "CodedConcept",
    "consistency_error",
    "utcnow",
]
