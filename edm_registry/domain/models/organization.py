"""Organization domain models.

An Org holds identifiers, contacts and one or more roles. Each role may own
exactly one role-specific detail record, keyed by the role id rather than
the org id. Orgs are linked by directed, typed relationships which may carry
a contract, and may publish named hierarchies (org structures) of nodes.
"""

from datetime import date
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import Field, model_validator

from edm_registry.domain.enums import (
    BrokerType,
    CarrierType,
    ClientTier,
    ContractStatus,
    FacilityType,
    IntegrationType,
    OrgContactLabel,
    OrgIdentifierType,
    OrgRelationshipType,
    RoleType,
    SizeTier,
    SponsorType,
    StructureType,
    VendorType,
)
from edm_registry.domain.models.base import (
    NPI_PATTERN,
    STATE_PATTERN,
    TAXONOMY_PATTERN,
    ContactRecord,
    EffectiveDatedRecord,
    IdentifierRecord,
    TrackedRecord,
    consistency_error,
)


class Org(TrackedRecord):
    """Business entity (employer, carrier, broker, vendor, provider org, ...).

    Parameters:
        name: Display name
        legal_name: Registered legal name
        website: Public website
        is_active: Whether the org is active
    """

    name: str
    legal_name: Optional[str] = None
    website: Optional[str] = None
    is_active: bool


class OrgIdentifier(IdentifierRecord):
    """External identifier of an Org (TAX_ID, FEIN, NPI, NAIC, ...)."""

    org_id: UUID
    identifier_type: OrgIdentifierType


class OrgContact(ContactRecord):
    """Email, phone or postal contact of an Org."""

    org_id: UUID
    label: OrgContactLabel


class OrgRole(EffectiveDatedRecord):
    """Role an Org plays; detail records extend a role 1:1."""

    org_id: UUID
    role_type: RoleType
    is_active: bool


class RoleDetailsRecord(TrackedRecord):
    """Base of the role-specific detail records.

    ``role_type`` names the OrgRole.role_type the referenced role must carry.
    """

    role_type: ClassVar[RoleType]

    org_role_id: UUID


class EmployerDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.EMPLOYER

    naics_code: Optional[str] = Field(None, pattern=r"^[0-9]{2,6}$")
    sic_code: Optional[str] = Field(None, pattern=r"^[0-9]{4}$")
    industry: Optional[str] = None
    size_tier: Optional[SizeTier] = None
    employee_count: Optional[int] = Field(None, ge=0)
    fein: Optional[str] = None


class ClientDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.CLIENT

    client_code: Optional[str] = None
    account_manager: Optional[str] = None
    implementation_date: Optional[date] = None
    client_tier: Optional[ClientTier] = None


class VendorDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.VENDOR

    vendor_type: Optional[VendorType] = None
    service_category: Optional[str] = None
    integration_type: Optional[IntegrationType] = None


class BrokerDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.BROKER

    license_number: Optional[str] = None
    license_state: Optional[str] = Field(None, pattern=STATE_PATTERN)
    broker_type: Optional[BrokerType] = None


class CarrierDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.CARRIER

    naic_code: Optional[str] = Field(None, pattern=r"^[0-9]{5}$")
    carrier_type: Optional[CarrierType] = None
    am_best_rating: Optional[str] = None


class HealthPlanSponsorDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.HEALTH_PLAN_SPONSOR

    sponsor_type: Optional[SponsorType] = None
    funding_arrangement: Optional[str] = None


class ProviderOrgDetails(RoleDetailsRecord):
    role_type: ClassVar[RoleType] = RoleType.PROVIDER_ORG

    npi: Optional[str] = Field(None, pattern=NPI_PATTERN)
    facility_type: Optional[FacilityType] = None
    specialty: Optional[str] = None
    taxonomy_code: Optional[str] = Field(None, pattern=TAXONOMY_PATTERN)
    license_number: Optional[str] = None
    license_state: Optional[str] = Field(None, pattern=STATE_PATTERN)


class OrgRelationship(EffectiveDatedRecord):
    """Directed, typed edge between two Orgs.

    Whether ``is_active`` agrees with ``termination_date`` depends on the
    current date, so that rule is checked at write time by the relationship
    validator rather than here.
    """

    org_id_source: UUID
    org_id_target: UUID
    relationship_type: OrgRelationshipType
    is_active: bool

    @model_validator(mode="after")
    def check_endpoints(self) -> "OrgRelationship":
        if self.org_id_source == self.org_id_target:
            raise consistency_error("org_id_target", "an org cannot be related to itself")
        return self


class Contract(EffectiveDatedRecord):
    """Contract extending an OrgRelationship.

    Status moves DRAFT -> ACTIVE -> {EXPIRED, TERMINATED, RENEWED}; the
    transition table lives in the relationship validator.
    """

    org_relationship_id: UUID
    contract_type: Optional[str] = None
    contract_number: Optional[str] = None
    status: ContractStatus
    terms: Optional[str] = None


class OrgStructure(EffectiveDatedRecord):
    """Named hierarchy (financial, reporting, geographic, ...) of an Org."""

    org_id: UUID
    structure_type: StructureType
    name: str
    description: Optional[str] = None
    is_active: bool


class OrgStructureNode(EffectiveDatedRecord):
    """Node of an org structure tree; roots sit at level 0 without a parent."""

    org_structure_id: UUID
    parent_node_id: Optional[UUID] = None
    name: str
    node_code: Optional[str] = None
    description: Optional[str] = None
    level: int = Field(..., ge=0)
    sort_order: Optional[int] = None
    is_active: bool

    @model_validator(mode="after")
    def check_root(self) -> "OrgStructureNode":
        if self.parent_node_id is None and self.level != 0:
            raise consistency_error("level", "a node without parent must be at level 0")
        if self.parent_node_id is not None and self.level == 0:
            raise consistency_error("level", "a node with a parent cannot be at level 0")
        if self.parent_node_id == self.id:
            raise consistency_error("parent_node_id", "a node cannot be its own parent")
        return self


ROLE_DETAIL_MODELS: dict[RoleType, type[RoleDetailsRecord]] = {
    model.role_type: model
    for model in (
        EmployerDetails,
        ClientDetails,
        VendorDetails,
        BrokerDetails,
        CarrierDetails,
        HealthPlanSponsorDetails,
        ProviderOrgDetails,
    )
}
