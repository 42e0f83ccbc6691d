"""Schema Registry - entity specs, field descriptors and index surface.

The registry is the single static declaration of the data model: for every
entity it names the collection, the typed model (the structural contract)
and the secondary indexes (the access-path hints). It is consumed at
database-initialisation time by the storage adapters and at write time by
the validators.

Architecture:
    - Pure domain module; field descriptors are derived by introspecting the
      Pydantic models so the contract is declared exactly once
    - ``to_json_schema`` renders a document-database ``$jsonSchema`` validator
    - Index order is significant for compound indexes; unique and sparse
      modifiers are carried through to the adapters
"""

import logging
import types
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional, Union, get_args, get_origin
from uuid import UUID

from pydantic import BaseModel
from pydantic.fields import FieldInfo

from edm_registry.domain.models import (
    Accumulator,
    AccumulatorPosting,
    Allergy,
    BenefitPlan,
    BrokerDetails,
    CarePlan,
    CarrierDetails,
    ClientDetails,
    ClinicalNote,
    Contract,
    Coverage,
    CoverageType,
    Eligibility,
    Employee,
    EmployerDetails,
    EncounterRecord,
    EntityRecord,
    HealthPlanSponsorDetails,
    HealthRecordComposition,
    HealthRecordProvenance,
    Household,
    HouseholdParticipant,
    Immunization,
    LabResult,
    Medication,
    Org,
    OrgContact,
    OrgIdentifier,
    OrgRelationship,
    OrgRole,
    OrgStructure,
    OrgStructureNode,
    Person,
    PersonContact,
    PersonIdentifier,
    PlanLimit,
    PlanMember,
    Portfolio,
    PortfolioMember,
    Problem,
    ProcedureRecord,
    Provider,
    ProviderAffiliation,
    ProviderOrgDetails,
    VendorDetails,
    VitalSign,
)

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1


class Domain(str, Enum):
    ORGANIZATION = "organization"
    PORTFOLIO = "portfolio"
    PERSON = "person"
    BENEFITS = "benefits"
    HEALTH_RECORD = "health_record"


class SemanticType(str, Enum):
    UUID = "uuid"
    STRING = "string"
    ENUM = "enum"
    DATE = "date"
    DATETIME = "datetime"
    DECIMAL = "decimal"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


_BSON_TYPES = {
    SemanticType.UUID: "binData",
    SemanticType.STRING: "string",
    SemanticType.ENUM: "string",
    SemanticType.DATE: "date",
    SemanticType.DATETIME: "date",
    SemanticType.DECIMAL: "decimal",
    SemanticType.INTEGER: "int",
    SemanticType.BOOLEAN: "bool",
    SemanticType.OBJECT: "object",
    SemanticType.ARRAY: "array",
}


@dataclass(frozen=True)
class IndexSpec:
    """Secondary index (access-path hint) of a collection.

    Attributes:
        fields: Ordered (field, direction) pairs; order matters for compound indexes
        unique: Reject two documents with equal indexed values
        sparse: Skip documents with an absent indexed value; a sparse unique
            index only constrains documents where every indexed field is set
    """

    fields: tuple[tuple[str, int], ...]
    unique: bool = False
    sparse: bool = False

    @property
    def name(self) -> str:
        return "_".join(f"{name}_{direction}" for name, direction in self.fields)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.fields)


def index(*fields: Union[str, tuple[str, int]], unique: bool = False, sparse: bool = False) -> IndexSpec:
    """Declare an index; bare field names are ascending."""
    pairs = tuple(f if isinstance(f, tuple) else (f, ASCENDING) for f in fields)
    return IndexSpec(fields=pairs, unique=unique, sparse=sparse)


@dataclass(frozen=True)
class FieldDescriptor:
    """Structural contract of one stored field, derived from the model."""

    name: str
    semantic_type: SemanticType
    required: bool
    nullable: bool = False
    enum_values: Optional[tuple[str, ...]] = None
    pattern: Optional[str] = None
    max_length: Optional[int] = None
    minimum: Optional[Any] = None
    maximum: Optional[Any] = None
    item_type: Optional[SemanticType] = None
    nested: Optional[type[BaseModel]] = None


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        non_null = [a for a in args if a is not type(None)]
        if len(non_null) == 1:
            return non_null[0], len(non_null) < len(args)
    return annotation, False


def _semantic_type(annotation: Any) -> SemanticType:
    if get_origin(annotation) is list:
        return SemanticType.ARRAY
    if not isinstance(annotation, type):
        return SemanticType.OBJECT
    # Order matters: bool is an int, str enums are str, datetime is a date
    if issubclass(annotation, bool):
        return SemanticType.BOOLEAN
    if issubclass(annotation, Enum):
        return SemanticType.ENUM
    if issubclass(annotation, UUID):
        return SemanticType.UUID
    if issubclass(annotation, str):
        return SemanticType.STRING
    if issubclass(annotation, int):
        return SemanticType.INTEGER
    if issubclass(annotation, Decimal):
        return SemanticType.DECIMAL
    if issubclass(annotation, datetime):
        return SemanticType.DATETIME
    if issubclass(annotation, date):
        return SemanticType.DATE
    return SemanticType.OBJECT


def describe_field(name: str, info: FieldInfo) -> FieldDescriptor:
    annotation, nullable = _unwrap_optional(info.annotation)
    semantic = _semantic_type(annotation)

    enum_values = None
    item_type = None
    nested = None
    if semantic == SemanticType.ENUM:
        enum_values = tuple(member.value for member in annotation)
    elif semantic == SemanticType.ARRAY:
        (item,) = get_args(annotation)
        item_type = _semantic_type(item)
        if isinstance(item, type) and issubclass(item, BaseModel):
            nested = item
    elif isinstance(annotation, type) and issubclass(annotation, BaseModel):
        nested = annotation

    constraints: dict[str, Any] = {}
    for meta in info.metadata:
        for attr, key in (("pattern", "pattern"), ("max_length", "max_length"), ("ge", "minimum"), ("le", "maximum")):
            value = getattr(meta, attr, None)
            if value is not None:
                constraints[key] = value

    return FieldDescriptor(
        name=name,
        semantic_type=semantic,
        required=info.is_required(),
        nullable=nullable,
        enum_values=enum_values,
        item_type=item_type,
        nested=nested,
        **constraints,
    )


def _json_number(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _property_schema(descriptor: FieldDescriptor) -> dict[str, Any]:
    schema: dict[str, Any] = {"bsonType": _BSON_TYPES[descriptor.semantic_type]}
    if descriptor.enum_values:
        schema["enum"] = list(descriptor.enum_values)
    if descriptor.pattern:
        schema["pattern"] = descriptor.pattern
    if descriptor.max_length is not None:
        schema["maxLength"] = descriptor.max_length
    if descriptor.minimum is not None:
        schema["minimum"] = _json_number(descriptor.minimum)
    if descriptor.maximum is not None:
        schema["maximum"] = _json_number(descriptor.maximum)
    if descriptor.nested is not None:
        nested = {
            "bsonType": "object",
            "properties": {
                name: _property_schema(describe_field(name, info))
                for name, info in descriptor.nested.model_fields.items()
            },
        }
        if descriptor.semantic_type == SemanticType.ARRAY:
            schema["items"] = nested
        else:
            schema.update(nested)
    elif descriptor.item_type is not None:
        schema["items"] = {"bsonType": _BSON_TYPES[descriptor.item_type]}
    return schema


@dataclass(frozen=True)
class EntitySpec:
    """Declaration of one entity: collection, model and index surface."""

    name: str
    collection: str
    model: type[EntityRecord]
    domain: Domain
    indexes: tuple[IndexSpec, ...] = field(default_factory=tuple)

    def fields(self) -> list[FieldDescriptor]:
        return [describe_field(name, info) for name, info in self.model.document_fields().items()]

    def field(self, name: str) -> FieldDescriptor:
        for descriptor in self.fields():
            if descriptor.name == name:
                return descriptor
        raise KeyError(f"{self.name} has no field {name!r}")

    @property
    def unique_indexes(self) -> tuple[IndexSpec, ...]:
        return tuple(i for i in self.indexes if i.unique)


class SchemaRegistry:
    """Lookup of entity specs by entity name, collection name or model class."""

    def __init__(self, specs: Optional[list[EntitySpec]] = None):
        self._by_name: dict[str, EntitySpec] = {}
        self._by_collection: dict[str, EntitySpec] = {}
        self._by_model: dict[type, EntitySpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: EntitySpec) -> EntitySpec:
        if spec.name in self._by_name or spec.collection in self._by_collection:
            raise ValueError(f"Entity {spec.name!r} ({spec.collection}) is already registered")
        known = {d.name for d in spec.fields()}
        for idx in spec.indexes:
            missing = [f for f in idx.field_names if f not in known]
            if missing:
                raise ValueError(f"Index {idx.name} of {spec.name} references unknown fields {missing}")
        self._by_name[spec.name] = spec
        self._by_collection[spec.collection] = spec
        self._by_model[spec.model] = spec
        return spec

    def get(self, name_or_collection: str) -> EntitySpec:
        spec = self._by_name.get(name_or_collection) or self._by_collection.get(name_or_collection)
        if spec is None:
            raise KeyError(f"Unknown entity: {name_or_collection!r}")
        return spec

    def for_model(self, model: type) -> EntitySpec:
        try:
            return self._by_model[model]
        except KeyError:
            raise KeyError(f"Model {model.__name__} is not registered") from None

    def entities(self, domain: Optional[Union[Domain, str]] = None) -> list[EntitySpec]:
        specs = list(self._by_name.values())
        if domain is not None:
            domain = Domain(domain)
            specs = [s for s in specs if s.domain == domain]
        return specs

    def __contains__(self, name_or_collection: str) -> bool:
        return name_or_collection in self._by_name or name_or_collection in self._by_collection

    def __iter__(self) -> Iterator[EntitySpec]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def to_json_schema(self, name_or_collection: str) -> dict[str, Any]:
        """Render the ``$jsonSchema`` collection validator of an entity.

        The primary key is published as ``_id``.
        """
        spec = self.get(name_or_collection)
        properties: dict[str, Any] = {}
        required: list[str] = []
        for descriptor in spec.fields():
            key = "_id" if descriptor.name == "id" else descriptor.name
            properties[key] = _property_schema(descriptor)
            if descriptor.required:
                required.append(key)
        return {
            "$jsonSchema": {
                "bsonType": "object",
                "title": spec.collection.upper(),
                "required": required,
                "properties": properties,
            }
        }


def _spec(model: type[EntityRecord], collection: str, domain: Domain, *indexes: IndexSpec) -> EntitySpec:
    return EntitySpec(name=model.__name__, collection=collection, model=model, domain=domain, indexes=indexes)


def _role_details(model: type[EntityRecord], collection: str, *indexes: IndexSpec) -> EntitySpec:
    return _spec(model, collection, Domain.ORGANIZATION, index("org_role_id", unique=True), *indexes)


def _clinical(model: type[EntityRecord], collection: str, fhir_field: str, *indexes: IndexSpec) -> EntitySpec:
    return _spec(
        model, collection, Domain.HEALTH_RECORD,
        index("member_id"), index("composition_id"), *indexes, index(fhir_field, sparse=True),
    )


_ORGANIZATION = [
    _spec(Org, "org", Domain.ORGANIZATION, index("name"), index("is_active")),
    _spec(
        OrgIdentifier, "org_identifier", Domain.ORGANIZATION,
        index("org_id"),
        index("org_id", "identifier_type"),
        index("identifier_type", "identifier_value"),
        index("usability_status"),
    ),
    _spec(
        OrgContact, "org_contact", Domain.ORGANIZATION,
        index("org_id"),
        index("org_id", "contact_type"),
        index("org_id", "contact_type", "is_preferred"),
        index("email", sparse=True),
        index("usability_status"),
    ),
    _spec(
        OrgRole, "org_role", Domain.ORGANIZATION,
        index("org_id"), index("role_type"), index("org_id", "role_type"), index("is_active"),
    ),
    _role_details(EmployerDetails, "employer_details", index("naics_code"), index("size_tier")),
    _role_details(
        ClientDetails, "client_details",
        index("client_code", unique=True, sparse=True), index("client_tier"),
    ),
    _role_details(VendorDetails, "vendor_details", index("vendor_type"), index("integration_type")),
    _role_details(
        BrokerDetails, "broker_details",
        index("license_number", "license_state"), index("broker_type"),
    ),
    _role_details(CarrierDetails, "carrier_details", index("naic_code"), index("carrier_type")),
    _role_details(HealthPlanSponsorDetails, "health_plan_sponsor_details", index("sponsor_type")),
    _role_details(
        ProviderOrgDetails, "provider_org_details",
        index("npi", unique=True, sparse=True), index("facility_type"), index("taxonomy_code"),
    ),
    _spec(
        OrgRelationship, "org_relationship", Domain.ORGANIZATION,
        index("org_id_source"),
        index("org_id_target"),
        index("relationship_type"),
        index("org_id_source", "org_id_target", "relationship_type"),
        index("is_active"),
    ),
    _spec(
        Contract, "contract", Domain.ORGANIZATION,
        index("org_relationship_id"),
        index("contract_number", unique=True, sparse=True),
        index("status"),
        index("effective_date"),
    ),
    _spec(
        OrgStructure, "org_structure", Domain.ORGANIZATION,
        index("org_id"), index("org_id", "structure_type"), index("structure_type"), index("is_active"),
    ),
    _spec(
        OrgStructureNode, "org_structure_node", Domain.ORGANIZATION,
        index("org_structure_id"),
        index("org_structure_id", "parent_node_id"),
        index("parent_node_id"),
        index("org_structure_id", "node_code"),
        index("level"),
        index("is_active"),
    ),
]

_PORTFOLIO = [
    _spec(
        Portfolio, "portfolio", Domain.PORTFOLIO,
        index("name"),
        index("portfolio_type"),
        index("owner_org_id"),
        index("owner_person_id"),
        index("parent_portfolio_id"),
        index("is_active"),
    ),
    _spec(
        PortfolioMember, "portfolio_member", Domain.PORTFOLIO,
        index("portfolio_id"),
        index("org_id"),
        index("portfolio_id", "org_id", unique=True),
        index("is_active"),
    ),
]

_PERSON = [
    _spec(
        Person, "person", Domain.PERSON,
        index("last_name", "first_name"), index("date_of_birth"), index("is_active"),
    ),
    _spec(
        PersonIdentifier, "person_identifier", Domain.PERSON,
        index("person_id"),
        index("person_id", "identifier_type"),
        index("identifier_type", "identifier_value"),
        index("usability_status"),
    ),
    _spec(
        PersonContact, "person_contact", Domain.PERSON,
        index("person_id"),
        index("person_id", "contact_type"),
        index("person_id", "contact_type", "is_preferred"),
        index("email", sparse=True),
        index("usability_status"),
    ),
    _spec(
        Employee, "employee", Domain.PERSON,
        index("person_id"),
        index("employer_org_id"),
        index("employee_number"),
        index("employer_org_id", "employee_number", unique=True, sparse=True),
        index("employment_status"),
        index("is_active"),
    ),
    _spec(
        Provider, "provider", Domain.PERSON,
        index("person_id"),
        index("npi", unique=True, sparse=True),
        index("provider_type"),
        index("specialty"),
        index("taxonomy_code"),
        index("is_active"),
    ),
    _spec(
        ProviderAffiliation, "provider_affiliation", Domain.PERSON,
        index("provider_id"),
        index("provider_org_id"),
        index("provider_id", "provider_org_id"),
        index("affiliation_type"),
        index("is_active"),
    ),
    _spec(
        Household, "household", Domain.PERSON,
        index("household_name"), index("zip_code"), index("is_active"),
    ),
    _spec(
        HouseholdParticipant, "household_participant", Domain.PERSON,
        index("household_id"),
        index("person_id"),
        index("household_id", "person_id", unique=True),
        index("relationship_type"),
        index("is_active"),
    ),
]

_BENEFITS = [
    _spec(
        BenefitPlan, "benefit_plan", Domain.BENEFITS,
        index("sponsor_org_id"),
        index("sponsor_org_id", "org_structure_node_id"),
        index("org_structure_node_id", sparse=True),
        index("plan_code", unique=True, sparse=True),
        index("plan_type"),
        index("benefit_type"),
        index("is_active"),
    ),
    _spec(
        CoverageType, "coverage_type", Domain.BENEFITS,
        index("benefit_plan_id"),
        index("benefit_plan_id", "name", unique=True),
        index("name"),
        index("is_active"),
    ),
    _spec(
        PlanLimit, "plan_limit", Domain.BENEFITS,
        index("benefit_plan_id"),
        index("limit_type"),
        index("network_type"),
        index("level"),
        index("benefit_plan_id", "limit_type", "network_type", "level"),
        index("is_active"),
    ),
    _spec(
        Eligibility, "eligibility", Domain.BENEFITS,
        index("employee_id"),
        index("benefit_plan_id"),
        index("employee_id", "benefit_plan_id"),
        index("status"),
    ),
    _spec(
        Coverage, "coverage", Domain.BENEFITS,
        index("coverage_type_id"), index("benefit_plan_id"), index("status"), index("effective_date"),
    ),
    _spec(
        PlanMember, "plan_member", Domain.BENEFITS,
        index("person_id"),
        index("coverage_id"),
        index("subscriber_plan_member_id"),
        index("wellnecity_id", unique=True, sparse=True),
        index("subscriber_id"),
        index("member_type"),
        index("is_active"),
    ),
    _spec(
        Accumulator, "accumulator", Domain.BENEFITS,
        index("plan_limit_id"),
        index("plan_member_id"),
        index("coverage_id"),
        index("period_start", "period_end"),
        index("plan_limit_id", "plan_member_id", "period_start"),
        index("plan_limit_id", "coverage_id", "period_start"),
    ),
    _spec(
        AccumulatorPosting, "accumulator_posting", Domain.BENEFITS,
        index("idempotency_key", unique=True),
        index("accumulator_id"),
    ),
]

_HEALTH_RECORD = [
    _spec(
        HealthRecordComposition, "health_record_composition", Domain.HEALTH_RECORD,
        index("member_id"),
        index("employer_id"),
        index("composition_type"),
        index("context_start_time"),
        index("status"),
        index("is_current"),
        index("fhir_bundle_id", sparse=True),
    ),
    _clinical(
        Problem, "problem", "fhir_condition_id",
        index("clinical_status"), index("problem_code"), index("recorded_date"), index("encounter_id"),
    ),
    _clinical(
        Allergy, "allergy", "fhir_allergy_id",
        index("clinical_status"), index("substance_code"), index("category"), index("criticality"),
    ),
    _clinical(
        Medication, "medication", "fhir_medication_id",
        index("status"),
        index("medication_code"),
        index("entry_type"),
        index("authored_on"),
        index("rx_claim_id"),
    ),
    _clinical(
        VitalSign, "vital_sign", "fhir_observation_id",
        index("vital_type"), index("effective_datetime"), index("status"), index("encounter_id"),
    ),
    _clinical(
        LabResult, "lab_result", "fhir_observation_id",
        index("test_code"),
        index("effective_datetime"),
        index("status"),
        index("diagnostic_report_id"),
        index("encounter_id"),
        index("medical_claim_id"),
    ),
    _clinical(
        ProcedureRecord, "procedure_record", "fhir_procedure_id",
        index("procedure_code"),
        index("performed_datetime"),
        index("status"),
        index("encounter_id"),
        index("medical_claim_id"),
    ),
    _clinical(
        Immunization, "immunization", "fhir_immunization_id",
        index("vaccine_code"), index("occurrence_datetime"), index("status"), index("encounter_id"),
    ),
    _clinical(
        ClinicalNote, "clinical_note", "fhir_document_id",
        index("document_type"), index("created_datetime"), index("document_status"), index("encounter_id"),
    ),
    _clinical(
        CarePlan, "care_plan", "fhir_careplan_id",
        index("status"), index("period_start", "period_end"), index("encounter_id"),
    ),
    _clinical(
        EncounterRecord, "encounter_record", "fhir_encounter_id",
        index("encounter_class"), index("status"), index("period_start", "period_end"),
        index("clinical_admission_id"),
    ),
    _spec(
        HealthRecordProvenance, "health_record_provenance", Domain.HEALTH_RECORD,
        index("target_type", "target_id"),
        index("recorded"),
        index("agent_id"),
        index("activity"),
        index("fhir_provenance_id", sparse=True),
    ),
]


def build_registry() -> SchemaRegistry:
    """Build a registry holding every entity of the data model."""
    registry = SchemaRegistry(_ORGANIZATION + _PORTFOLIO + _PERSON + _BENEFITS + _HEALTH_RECORD)
    logger.debug(f"Schema registry built with {len(registry)} entities")
    return registry


REGISTRY = build_registry()
