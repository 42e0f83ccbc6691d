"""Entity models of the Enterprise Data Model, grouped by domain."""

from edm_registry.domain.models.base import (
    CodedConcept,
    ContactRecord,
    EffectiveDatedRecord,
    EntityRecord,
    IdentifierRecord,
    SourceTrackedRecord,
    TrackedRecord,
    utcnow,
)
from edm_registry.domain.models.benefits import (
    Accumulator,
    AccumulatorPosting,
    BenefitPlan,
    Coverage,
    CoverageType,
    Eligibility,
    PlanLimit,
    PlanMember,
)
from edm_registry.domain.models.health_record import (
    Allergy,
    CarePlan,
    CarePlanActivity,
    CarePlanGoal,
    ClinicalNote,
    EncounterParticipant,
    EncounterRecord,
    HealthRecordComposition,
    HealthRecordProvenance,
    Immunization,
    LabResult,
    Medication,
    Problem,
    ProcedureRecord,
    VitalSign,
)
from edm_registry.domain.models.organization import (
    ROLE_DETAIL_MODELS,
    BrokerDetails,
    CarrierDetails,
    ClientDetails,
    Contract,
    EmployerDetails,
    HealthPlanSponsorDetails,
    Org,
    OrgContact,
    OrgIdentifier,
    OrgRelationship,
    OrgRole,
    OrgStructure,
    OrgStructureNode,
    ProviderOrgDetails,
    RoleDetailsRecord,
    VendorDetails,
)
from edm_registry.domain.models.person import (
    Employee,
    Household,
    HouseholdParticipant,
    Person,
    PersonContact,
    PersonIdentifier,
    Provider,
    ProviderAffiliation,
)
from edm_registry.domain.models.portfolio import (
    OwnedByOrg,
    OwnedByPerson,
    Portfolio,
    PortfolioMember,
    Unowned,
)

__all__ = [
    # Base
    "EntityRecord",
    "TrackedRecord",
    "EffectiveDatedRecord",
    "IdentifierRecord",
    "ContactRecord",
    "SourceTrackedRecord",
    "CodedConcept",
    "utcnow",
    # Organization
    "Org",
    "OrgIdentifier",
    "OrgContact",
    "OrgRole",
    "RoleDetailsRecord",
    "EmployerDetails",
    "ClientDetails",
    "VendorDetails",
    "BrokerDetails",
    "CarrierDetails",
    "HealthPlanSponsorDetails",
    "ProviderOrgDetails",
    "ROLE_DETAIL_MODELS",
    "OrgRelationship",
    "Contract",
    "OrgStructure",
    "OrgStructureNode",
    # Portfolio
    "Portfolio",
    "PortfolioMember",
    "OwnedByOrg",
    "OwnedByPerson",
    "Unowned",
    # Person
    "Person",
    "PersonIdentifier",
    "PersonContact",
    "Employee",
    "Provider",
    "ProviderAffiliation",
    "Household",
    "HouseholdParticipant",
    # Benefits
    "BenefitPlan",
    "CoverageType",
    "PlanLimit",
    "Eligibility",
    "Coverage",
    "PlanMember",
    "Accumulator",
    "AccumulatorPosting",
    # Health record
    "HealthRecordComposition",
    "Problem",
    "Allergy",
    "Medication",
    "VitalSign",
    "LabResult",
    "ProcedureRecord",
    "Immunization",
    "ClinicalNote",
    "CarePlan",
    "CarePlanGoal",
    "CarePlanActivity",
    "EncounterRecord",
    "EncounterParticipant",
    "HealthRecordProvenance",
]
