"""Health record domain models (openEHR containers, FHIR-aligned entries).

Clinical entries are optionally grouped under a HealthRecordComposition and
always tied to a Person through ``member_id``. Every entry carries its
source-system identity (``source``, ``source_id``) and an optional FHIR
resource id for correlation with an external system of record; those ids
are opaque strings and are never checked against an external authority.

Compositions are versioned: ``version_number`` grows by one along the
``preceding_version_id`` chain and exactly one version is current.

HealthRecordProvenance is an append-only audit log and has no
``updated_at``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from edm_registry.domain.enums import (
    AllergyCategory,
    AllergyClinicalStatus,
    AllergyCriticality,
    AllergyType,
    AllergyVerificationStatus,
    CarePlanIntent,
    CarePlanStatus,
    CompositionCategory,
    CompositionStatus,
    CompositionType,
    ContentFormat,
    DocStatus,
    DocumentStatus,
    DocumentType,
    EncounterClass,
    EncounterStatus,
    ImmunizationStatus,
    Laterality,
    MedicationCategory,
    MedicationEntryType,
    MedicationIntent,
    MedicationStatus,
    ObservationStatus,
    ProblemCategory,
    ProblemClinicalStatus,
    ProblemVerificationStatus,
    ProcedureStatus,
    ProvenanceActivity,
    ProvenanceAgentType,
    ProvenanceTargetType,
    Severity,
    VitalType,
)
from edm_registry.domain.models.base import (
    CodedConcept,
    EntityRecord,
    SourceTrackedRecord,
    TrackedRecord,
    consistency_error,
)

_NESTED_CONFIG = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")


class HealthRecordComposition(TrackedRecord):
    """openEHR composition grouping the entries of one clinical context.

    Parameters:
        member_id: Person the composition belongs to
        employer_id: Employer org of the member
        version_number: 1 for the first version, +1 per supersession
        is_current: True on exactly one version of a chain
        preceding_version_id: Previous version (absent on version 1)
        status: ACTIVE, SUPERSEDED or DELETED
    """

    member_id: UUID
    employer_id: UUID
    archetype_id: str = Field(..., max_length=255)
    template_id: Optional[str] = Field(None, max_length=255)
    composition_type: CompositionType
    category: CompositionCategory
    context_start_time: datetime
    context_end_time: Optional[datetime] = None
    context_setting: Optional[str] = Field(None, max_length=100)
    context_location: Optional[str] = Field(None, max_length=255)
    composer_id: Optional[str] = Field(None, max_length=100)
    composer_name: Optional[str] = Field(None, max_length=255)
    language: Optional[str] = Field(None, pattern=r"^[a-z]{2}$")
    territory: Optional[str] = Field(None, pattern=r"^[A-Z]{2}$")
    version_number: int = Field(..., ge=1)
    is_current: bool
    preceding_version_id: Optional[UUID] = None
    status: CompositionStatus
    fhir_bundle_id: Optional[str] = Field(None, max_length=100)
    source: Optional[str] = Field(None, max_length=50)
    source_id: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_version(self) -> "HealthRecordComposition":
        if self.version_number == 1 and self.preceding_version_id is not None:
            raise consistency_error("preceding_version_id", "version 1 has no preceding version")
        if self.version_number > 1 and self.preceding_version_id is None:
            raise consistency_error("preceding_version_id", "versions after 1 must reference their predecessor")
        if self.preceding_version_id == self.id:
            raise consistency_error("preceding_version_id", "a version cannot precede itself")
        if self.is_current == (self.status == CompositionStatus.SUPERSEDED):
            raise consistency_error("is_current", "only SUPERSEDED versions are not current")
        if self.context_end_time is not None and self.context_end_time < self.context_start_time:
            raise consistency_error("context_end_time", "context_end_time must not precede context_start_time")
        return self


class Problem(SourceTrackedRecord):
    """Problem or diagnosis (FHIR Condition)."""

    problem_code: Optional[str] = Field(None, max_length=20)
    problem_code_system: Optional[str] = Field(None, max_length=100)
    problem_code_display: Optional[str] = Field(None, max_length=500)
    problem_name: str = Field(..., max_length=500)
    clinical_status: ProblemClinicalStatus
    verification_status: Optional[ProblemVerificationStatus] = None
    category: Optional[ProblemCategory] = None
    severity: Optional[Severity] = None
    body_site: Optional[str] = Field(None, max_length=255)
    body_site_code: Optional[str] = Field(None, max_length=20)
    onset_date: Optional[date] = None
    onset_age: Optional[str] = Field(None, max_length=50)
    abatement_date: Optional[date] = None
    recorded_date: datetime
    recorder_id: Optional[str] = Field(None, max_length=100)
    asserter_id: Optional[str] = Field(None, max_length=100)
    encounter_id: Optional[UUID] = None
    clinical_note: Optional[str] = None
    fhir_condition_id: Optional[str] = Field(None, max_length=100)


class Allergy(SourceTrackedRecord):
    """Allergy or intolerance (FHIR AllergyIntolerance)."""

    substance_code: Optional[str] = Field(None, max_length=50)
    substance_code_system: Optional[str] = Field(None, max_length=100)
    substance_code_display: Optional[str] = Field(None, max_length=255)
    substance_name: str = Field(..., max_length=255)
    category: Optional[AllergyCategory] = None
    allergy_type: Optional[AllergyType] = None
    criticality: Optional[AllergyCriticality] = None
    clinical_status: AllergyClinicalStatus
    verification_status: Optional[AllergyVerificationStatus] = None
    onset_date: Optional[date] = None
    recorded_date: datetime
    recorder_id: Optional[str] = Field(None, max_length=100)
    asserter_id: Optional[str] = Field(None, max_length=100)
    last_occurrence: Optional[datetime] = None
    reaction_manifestation: Optional[list[CodedConcept]] = None
    reaction_severity: Optional[Severity] = None
    reaction_onset: Optional[str] = Field(None, max_length=50)
    reaction_description: Optional[str] = None
    reaction_exposure_route: Optional[str] = Field(None, max_length=100)
    clinical_note: Optional[str] = None
    fhir_allergy_id: Optional[str] = Field(None, max_length=100)


class Medication(SourceTrackedRecord):
    """Medication order (INSTRUCTION) or administration/dispense (ACTION).

    ``rx_claim_id`` points into the claims domain and is not resolved here.
    """

    entry_type: MedicationEntryType
    medication_code: Optional[str] = Field(None, max_length=20)
    code_system: Optional[str] = Field(None, max_length=100)
    code_display: Optional[str] = Field(None, max_length=500)
    medication_name: str = Field(..., max_length=500)
    status: MedicationStatus
    intent: Optional[MedicationIntent] = None
    category: Optional[MedicationCategory] = None
    dosage_text: Optional[str] = Field(None, max_length=500)
    dose_quantity: Optional[Decimal] = None
    dose_unit: Optional[str] = Field(None, max_length=50)
    route: Optional[str] = Field(None, max_length=100)
    route_code: Optional[str] = Field(None, max_length=20)
    frequency_text: Optional[str] = Field(None, max_length=100)
    frequency_period: Optional[Decimal] = None
    frequency_period_unit: Optional[str] = Field(None, max_length=20)
    as_needed: Optional[bool] = None
    as_needed_reason: Optional[str] = Field(None, max_length=255)
    authored_on: datetime
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    prescriber_id: Optional[str] = Field(None, max_length=100)
    prescriber_name: Optional[str] = Field(None, max_length=255)
    dispense_quantity: Optional[Decimal] = None
    dispense_unit: Optional[str] = Field(None, max_length=50)
    refills_allowed: Optional[int] = Field(None, ge=0)
    substitution_allowed: Optional[bool] = None
    reason_code: Optional[str] = Field(None, max_length=20)
    reason_text: Optional[str] = Field(None, max_length=500)
    clinical_note: Optional[str] = None
    fhir_medication_id: Optional[str] = Field(None, max_length=100)
    rx_claim_id: Optional[UUID] = None


class VitalSign(SourceTrackedRecord):
    """Vital sign observation (FHIR Observation, vital-signs category)."""

    vital_type: VitalType
    vital_code: Optional[str] = Field(None, max_length=20)
    vital_code_system: Optional[str] = Field(None, max_length=100)
    vital_code_display: Optional[str] = Field(None, max_length=255)
    status: ObservationStatus
    effective_datetime: datetime
    value_quantity: Optional[Decimal] = None
    value_unit: Optional[str] = Field(None, max_length=30)
    value_systolic: Optional[Decimal] = None
    value_diastolic: Optional[Decimal] = None
    value_text: Optional[str] = Field(None, max_length=255)
    interpretation: Optional[str] = Field(None, max_length=50)
    body_site: Optional[str] = Field(None, max_length=100)
    body_site_code: Optional[str] = Field(None, max_length=20)
    method: Optional[str] = Field(None, max_length=100)
    device: Optional[str] = Field(None, max_length=255)
    performer_id: Optional[str] = Field(None, max_length=100)
    performer_name: Optional[str] = Field(None, max_length=255)
    encounter_id: Optional[UUID] = None
    clinical_note: Optional[str] = None
    fhir_observation_id: Optional[str] = Field(None, max_length=100)


class LabResult(SourceTrackedRecord):
    """Laboratory result (FHIR Observation, laboratory category)."""

    diagnostic_report_id: Optional[UUID] = None
    test_code: Optional[str] = Field(None, max_length=20)
    test_code_system: Optional[str] = Field(None, max_length=100)
    test_code_display: Optional[str] = Field(None, max_length=500)
    test_name: str = Field(..., max_length=500)
    category: Optional[str] = Field(None, max_length=50)
    status: ObservationStatus
    effective_datetime: datetime
    issued: Optional[datetime] = None
    value_quantity: Optional[Decimal] = None
    value_unit: Optional[str] = Field(None, max_length=50)
    value_string: Optional[str] = Field(None, max_length=1000)
    value_codeable_concept: Optional[str] = Field(None, max_length=100)
    value_codeable_system: Optional[str] = Field(None, max_length=100)
    reference_range_low: Optional[Decimal] = None
    reference_range_high: Optional[Decimal] = None
    reference_range_text: Optional[str] = Field(None, max_length=255)
    interpretation: Optional[str] = Field(None, max_length=50)
    specimen_type: Optional[str] = Field(None, max_length=100)
    specimen_code: Optional[str] = Field(None, max_length=20)
    performing_lab: Optional[str] = Field(None, max_length=255)
    performing_lab_id: Optional[str] = Field(None, max_length=100)
    ordering_provider_id: Optional[str] = Field(None, max_length=100)
    encounter_id: Optional[UUID] = None
    clinical_note: Optional[str] = None
    fhir_observation_id: Optional[str] = Field(None, max_length=100)
    medical_claim_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_reference_range(self) -> "LabResult":
        low, high = self.reference_range_low, self.reference_range_high
        if low is not None and high is not None and low > high:
            raise consistency_error("reference_range_high", "reference_range_high must not be below reference_range_low")
        return self


class ProcedureRecord(SourceTrackedRecord):
    """Performed procedure (FHIR Procedure)."""

    procedure_code: Optional[str] = Field(None, max_length=20)
    code_system: Optional[str] = Field(None, max_length=100)
    code_display: Optional[str] = Field(None, max_length=500)
    procedure_name: str = Field(..., max_length=500)
    status: ProcedureStatus
    status_reason: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=50)
    performed_datetime: Optional[datetime] = None
    performed_period_start: Optional[datetime] = None
    performed_period_end: Optional[datetime] = None
    body_site: Optional[str] = Field(None, max_length=255)
    body_site_code: Optional[str] = Field(None, max_length=20)
    laterality: Optional[Laterality] = None
    performer_id: Optional[str] = Field(None, max_length=100)
    performer_name: Optional[str] = Field(None, max_length=255)
    performer_role: Optional[str] = Field(None, max_length=100)
    location_id: Optional[str] = Field(None, max_length=100)
    location_name: Optional[str] = Field(None, max_length=255)
    encounter_id: Optional[UUID] = None
    reason_code: Optional[str] = Field(None, max_length=20)
    reason_text: Optional[str] = Field(None, max_length=500)
    outcome: Optional[str] = Field(None, max_length=255)
    complication: Optional[str] = Field(None, max_length=500)
    clinical_note: Optional[str] = None
    fhir_procedure_id: Optional[str] = Field(None, max_length=100)
    medical_claim_id: Optional[UUID] = None


class Immunization(SourceTrackedRecord):
    """Vaccine administration (FHIR Immunization)."""

    vaccine_code: Optional[str] = Field(None, max_length=20)
    code_system: Optional[str] = Field(None, max_length=100)
    code_display: Optional[str] = Field(None, max_length=500)
    vaccine_name: str = Field(..., max_length=500)
    status: ImmunizationStatus
    status_reason: Optional[str] = Field(None, max_length=255)
    occurrence_datetime: datetime
    recorded_date: Optional[datetime] = None
    primary_source: Optional[bool] = None
    report_origin: Optional[str] = Field(None, max_length=100)
    lot_number: Optional[str] = Field(None, max_length=50)
    expiration_date: Optional[date] = None
    site: Optional[str] = Field(None, max_length=100)
    site_code: Optional[str] = Field(None, max_length=20)
    route: Optional[str] = Field(None, max_length=100)
    route_code: Optional[str] = Field(None, max_length=20)
    dose_quantity: Optional[Decimal] = None
    dose_unit: Optional[str] = Field(None, max_length=50)
    performer_id: Optional[str] = Field(None, max_length=100)
    performer_name: Optional[str] = Field(None, max_length=255)
    location_id: Optional[str] = Field(None, max_length=100)
    encounter_id: Optional[UUID] = None
    clinical_note: Optional[str] = None
    fhir_immunization_id: Optional[str] = Field(None, max_length=100)


class ClinicalNote(SourceTrackedRecord):
    """Clinical document (FHIR DocumentReference)."""

    document_type: DocumentType
    document_type_code: Optional[str] = Field(None, max_length=20)
    document_status: DocumentStatus
    doc_status: Optional[DocStatus] = None
    title: Optional[str] = Field(None, max_length=500)
    content_text: Optional[str] = None
    content_format: Optional[ContentFormat] = None
    content_url: Optional[str] = Field(None, max_length=1000)
    content_size: Optional[int] = Field(None, ge=0)
    content_hash: Optional[str] = Field(None, max_length=64)
    created_datetime: datetime
    author_id: Optional[str] = Field(None, max_length=100)
    author_name: Optional[str] = Field(None, max_length=255)
    authenticator_id: Optional[str] = Field(None, max_length=100)
    custodian_id: Optional[str] = Field(None, max_length=100)
    encounter_id: Optional[UUID] = None
    clinical_context: Optional[str] = Field(None, max_length=255)
    fhir_document_id: Optional[str] = Field(None, max_length=100)


class CarePlanGoal(BaseModel):
    model_config = _NESTED_CONFIG

    description: Optional[str] = None
    target_date: Optional[date] = None
    status: Optional[str] = None


class CarePlanActivity(BaseModel):
    model_config = _NESTED_CONFIG

    description: Optional[str] = None
    status: Optional[str] = None
    scheduled_date: Optional[date] = None


class CarePlan(SourceTrackedRecord):
    """Care or treatment plan with goals and activities (FHIR CarePlan).

    ``addresses_conditions`` holds ids of Problem records.
    """

    plan_title: str = Field(..., max_length=500)
    plan_description: Optional[str] = None
    status: CarePlanStatus
    intent: CarePlanIntent
    category: Optional[str] = Field(None, max_length=50)
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    created_datetime: datetime
    author_id: Optional[str] = Field(None, max_length=100)
    author_name: Optional[str] = Field(None, max_length=255)
    contributor_ids: Optional[list[str]] = None
    addresses_conditions: Optional[list[UUID]] = None
    goals: Optional[list[CarePlanGoal]] = None
    activities: Optional[list[CarePlanActivity]] = None
    encounter_id: Optional[UUID] = None
    clinical_note: Optional[str] = None
    fhir_careplan_id: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_period(self) -> "CarePlan":
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise consistency_error("period_end", "period_end must not precede period_start")
        return self


class EncounterParticipant(BaseModel):
    model_config = _NESTED_CONFIG

    id: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None


class EncounterRecord(SourceTrackedRecord):
    """Clinical encounter (FHIR Encounter).

    ``diagnosis_ids`` holds ids of Problem records; ``clinical_admission_id``
    points into the claims domain and is not resolved here.
    """

    encounter_class: EncounterClass
    encounter_class_code: Optional[str] = Field(None, max_length=20)
    encounter_type: Optional[str] = Field(None, max_length=100)
    encounter_type_code: Optional[str] = Field(None, max_length=20)
    status: EncounterStatus
    priority: Optional[str] = Field(None, max_length=30)
    period_start: datetime
    period_end: Optional[datetime] = None
    length_minutes: Optional[int] = Field(None, ge=0)
    reason_code: Optional[str] = Field(None, max_length=20)
    reason_text: Optional[str] = Field(None, max_length=500)
    admission_source: Optional[str] = Field(None, max_length=100)
    discharge_disposition: Optional[str] = Field(None, max_length=100)
    participant_ids: Optional[list[EncounterParticipant]] = None
    location_id: Optional[str] = Field(None, max_length=100)
    location_name: Optional[str] = Field(None, max_length=255)
    service_provider_id: Optional[str] = Field(None, max_length=100)
    diagnosis_ids: Optional[list[UUID]] = None
    hospitalization_admit_source: Optional[str] = Field(None, max_length=100)
    hospitalization_discharge_disposition: Optional[str] = Field(None, max_length=100)
    clinical_admission_id: Optional[UUID] = None
    fhir_encounter_id: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_period(self) -> "EncounterRecord":
        if self.period_end is not None and self.period_end < self.period_start:
            raise consistency_error("period_end", "period_end must not precede period_start")
        return self


class HealthRecordProvenance(EntityRecord):
    """Append-only audit entry for a health record entity (FHIR Provenance)."""

    append_only: ClassVar[bool] = True

    target_type: ProvenanceTargetType
    target_id: UUID
    occurred_datetime: Optional[datetime] = None
    recorded: datetime
    activity: ProvenanceActivity
    activity_code: Optional[str] = Field(None, max_length=20)
    reason: Optional[str] = Field(None, max_length=500)
    agent_type: ProvenanceAgentType
    agent_id: str = Field(..., max_length=100)
    agent_name: Optional[str] = Field(None, max_length=255)
    agent_role: Optional[str] = Field(None, max_length=100)
    on_behalf_of_id: Optional[str] = Field(None, max_length=100)
    location_id: Optional[str] = Field(None, max_length=100)
    signature: Optional[str] = None
    signature_type: Optional[str] = Field(None, max_length=50)
    policy: Optional[str] = Field(None, max_length=500)
    fhir_provenance_id: Optional[str] = Field(None, max_length=100)


# Provenance target type of each clinical model
PROVENANCE_TARGETS: dict[type[EntityRecord], ProvenanceTargetType] = {
    HealthRecordComposition: ProvenanceTargetType.HEALTH_RECORD_COMPOSITION,
    Problem: ProvenanceTargetType.PROBLEM,
    Allergy: ProvenanceTargetType.ALLERGY,
    Medication: ProvenanceTargetType.MEDICATION,
    VitalSign: ProvenanceTargetType.VITAL_SIGN,
    LabResult: ProvenanceTargetType.LAB_RESULT,
    ProcedureRecord: ProvenanceTargetType.PROCEDURE_RECORD,
    Immunization: ProvenanceTargetType.IMMUNIZATION,
    ClinicalNote: ProvenanceTargetType.CLINICAL_NOTE,
    CarePlan: ProvenanceTargetType.CARE_PLAN,
    EncounterRecord: ProvenanceTargetType.ENCOUNTER_RECORD,
}
