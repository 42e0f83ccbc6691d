"""Person domain models.

A Person is the base identity. Identifiers and contacts mirror their Org
analogues structurally. A Person may be an Employee of an Org with an
EMPLOYER role, a Provider affiliated with PROVIDER_ORG orgs, and a
participant of Households.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from edm_registry.domain.enums import (
    AffiliationType,
    EmploymentStatus,
    EmploymentType,
    Gender,
    HouseholdRelationshipType,
    PersonContactLabel,
    PersonIdentifierType,
    ProviderType,
)
from edm_registry.domain.models.base import (
    NPI_PATTERN,
    STATE_PATTERN,
    TAXONOMY_PATTERN,
    ZIP_PATTERN,
    ContactRecord,
    EffectiveDatedRecord,
    IdentifierRecord,
    TrackedRecord,
    consistency_error,
)

# Employment statuses that keep an employee active
ACTIVE_EMPLOYMENT = frozenset({EmploymentStatus.ACTIVE, EmploymentStatus.LOA})


class Person(TrackedRecord):
    """Base identity of a human.

    Parameters:
        first_name: Given name
        middle_name: Middle name
        last_name: Family name
        date_of_birth: Date of birth
        gender: Administrative gender
        is_active: Whether the person is active
    """

    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    is_active: bool


class PersonIdentifier(IdentifierRecord):
    """External identifier of a Person (SSN, MRN, MEMBER_ID, ...)."""

    person_id: UUID
    identifier_type: PersonIdentifierType


class PersonContact(ContactRecord):
    """Email, phone or postal contact of a Person."""

    person_id: UUID
    label: PersonContactLabel


class Employee(TrackedRecord):
    """Employment of a Person by an Org holding the EMPLOYER role.

    ``is_active`` is derived from ``employment_status``: ACTIVE and LOA are
    active, TERMINATED and RETIRED are not.
    """

    person_id: UUID
    employer_org_id: UUID
    employee_number: Optional[str] = None
    hire_date: date
    termination_date: Optional[date] = None
    employment_status: EmploymentStatus
    employment_type: Optional[EmploymentType] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    is_active: bool

    @model_validator(mode="after")
    def check_status(self) -> "Employee":
        if self.is_active != (self.employment_status in ACTIVE_EMPLOYMENT):
            raise consistency_error(
                "is_active",
                f"is_active must be {not self.is_active} for employment_status {self.employment_status.value}",
            )
        if self.termination_date is not None and self.termination_date < self.hire_date:
            raise consistency_error("termination_date", "termination_date must not precede hire_date")
        return self


class Provider(TrackedRecord):
    """Person acting as a clinician."""

    person_id: UUID
    npi: Optional[str] = Field(None, pattern=NPI_PATTERN)
    provider_type: Optional[ProviderType] = None
    specialty: Optional[str] = None
    taxonomy_code: Optional[str] = Field(None, pattern=TAXONOMY_PATTERN)
    license_number: Optional[str] = None
    license_state: Optional[str] = Field(None, pattern=STATE_PATTERN)
    dea_number: Optional[str] = None
    is_active: bool


class ProviderAffiliation(EffectiveDatedRecord):
    """Affiliation of a Provider with a PROVIDER_ORG org."""

    provider_id: UUID
    provider_org_id: UUID
    affiliation_type: AffiliationType
    is_primary: Optional[bool] = None
    is_active: bool


class Household(TrackedRecord):
    """Group of Persons sharing an address."""

    household_name: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, pattern=STATE_PATTERN)
    zip_code: Optional[str] = Field(None, pattern=ZIP_PATTERN)
    country: Optional[str] = None
    is_active: bool


class HouseholdParticipant(EffectiveDatedRecord):
    """A Person's single relationship within a Household."""

    household_id: UUID
    person_id: UUID
    relationship_type: HouseholdRelationshipType
    is_active: bool
