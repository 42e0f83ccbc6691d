"""Enumerations for the Enterprise Data Model.

Every enumerated field of the data model is declared here as a ``str``-valued
``Enum`` whose member values are exactly the strings persisted in the store.
Keeping them in one module lets the registry derive ``enum`` constraints for
the document-database validators without repeating literals.

Architecture:
    - Pure domain module with zero infrastructure dependencies
    - Values are case-sensitive and match the stored representation
    - Health record enums follow FHIR value sets (lower-case, hyphenated)
"""

from enum import Enum


# ============================================================================
# Shared
# ============================================================================

class UsabilityStatus(str, Enum):
    """Lifecycle of a contact or identifier record."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"
    KNOWN_ERROR = "KNOWN_ERROR"


class ContactType(str, Enum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    ADDRESS = "ADDRESS"


# ============================================================================
# Organization domain
# ============================================================================

class OrgIdentifierType(str, Enum):
    TAX_ID = "TAX_ID"
    FEIN = "FEIN"
    NPI = "NPI"
    NAIC = "NAIC"
    DUNS = "DUNS"
    LEI = "LEI"
    OTHER = "OTHER"


class OrgContactLabel(str, Enum):
    HEADQUARTERS = "HEADQUARTERS"
    BILLING = "BILLING"
    MAILING = "MAILING"
    BRANCH = "BRANCH"
    OTHER = "OTHER"


class RoleType(str, Enum):
    """Role an organization plays; each role may own one detail record."""
    EMPLOYER = "EMPLOYER"
    CLIENT = "CLIENT"
    VENDOR = "VENDOR"
    BROKER = "BROKER"
    CARRIER = "CARRIER"
    HEALTH_PLAN_SPONSOR = "HEALTH_PLAN_SPONSOR"
    PROVIDER_ORG = "PROVIDER_ORG"


class SizeTier(str, Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    ENTERPRISE = "ENTERPRISE"


class ClientTier(str, Enum):
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"


class VendorType(str, Enum):
    TPA = "TPA"
    PBM = "PBM"
    LAB = "LAB"
    CLEARINGHOUSE = "CLEARINGHOUSE"
    OTHER = "OTHER"


class IntegrationType(str, Enum):
    API = "API"
    SFTP = "SFTP"
    MANUAL = "MANUAL"


class BrokerType(str, Enum):
    GENERAL_AGENT = "GENERAL_AGENT"
    BROKER = "BROKER"
    CONSULTANT = "CONSULTANT"


class CarrierType(str, Enum):
    COMMERCIAL = "COMMERCIAL"
    MEDICARE = "MEDICARE"
    MEDICAID = "MEDICAID"
    OTHER = "OTHER"


class SponsorType(str, Enum):
    SELF_INSURED = "SELF_INSURED"
    FULLY_INSURED = "FULLY_INSURED"
    LEVEL_FUNDED = "LEVEL_FUNDED"


class FacilityType(str, Enum):
    HOSPITAL = "HOSPITAL"
    CLINIC = "CLINIC"
    LAB = "LAB"
    PHARMACY = "PHARMACY"
    IMAGING = "IMAGING"
    OTHER = "OTHER"


class OrgRelationshipType(str, Enum):
    WELLNECITY_CLIENT = "WELLNECITY_CLIENT"
    BROKER_CLIENT = "BROKER_CLIENT"
    CARRIER_CLIENT = "CARRIER_CLIENT"
    VENDOR_CLIENT = "VENDOR_CLIENT"
    PROVIDER_ORG_CLIENT = "PROVIDER_ORG_CLIENT"


class ContractStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"
    RENEWED = "RENEWED"


class StructureType(str, Enum):
    FINANCIAL = "FINANCIAL"
    BENEFIT_ADMIN = "BENEFIT_ADMIN"
    REPORTING = "REPORTING"
    GEOGRAPHIC = "GEOGRAPHIC"
    OPERATIONAL = "OPERATIONAL"
    OTHER = "OTHER"


# ============================================================================
# Portfolio domain
# ============================================================================

class PortfolioType(str, Enum):
    USER = "USER"
    WELLNECITY = "WELLNECITY"
    BROKER = "BROKER"
    VENDOR = "VENDOR"
    EMPLOYER = "EMPLOYER"
    CARRIER = "CARRIER"
    HEALTH_PLAN_SPONSOR = "HEALTH_PLAN_SPONSOR"


# ============================================================================
# Person domain
# ============================================================================

class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"
    UNKNOWN = "UNKNOWN"


class PersonIdentifierType(str, Enum):
    SSN = "SSN"
    MRN = "MRN"
    MEMBER_ID = "MEMBER_ID"
    EMPLOYEE_ID = "EMPLOYEE_ID"
    NPI = "NPI"
    DRIVERS_LICENSE = "DRIVERS_LICENSE"
    PASSPORT = "PASSPORT"
    OTHER = "OTHER"


class PersonContactLabel(str, Enum):
    HOME = "HOME"
    WORK = "WORK"
    MOBILE = "MOBILE"
    OTHER = "OTHER"


class EmploymentStatus(str, Enum):
    """Employment lifecycle; TERMINATED and RETIRED are terminal."""
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    LOA = "LOA"
    RETIRED = "RETIRED"


class EmploymentType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACTOR = "CONTRACTOR"


class ProviderType(str, Enum):
    PHYSICIAN = "PHYSICIAN"
    NURSE = "NURSE"
    THERAPIST = "THERAPIST"
    PHARMACIST = "PHARMACIST"
    OTHER = "OTHER"


class AffiliationType(str, Enum):
    EMPLOYED = "EMPLOYED"
    CONTRACTED = "CONTRACTED"
    PRIVILEGED = "PRIVILEGED"


class HouseholdRelationshipType(str, Enum):
    FATHER = "FATHER"
    MOTHER = "MOTHER"
    CHILD = "CHILD"
    HUSBAND = "HUSBAND"
    WIFE = "WIFE"
    DOMESTIC_PARTNER = "DOMESTIC_PARTNER"


# ============================================================================
# Benefits domain
# ============================================================================

class PlanType(str, Enum):
    HMO = "HMO"
    PPO = "PPO"
    HDHP = "HDHP"
    EPO = "EPO"
    POS = "POS"
    INDEMNITY = "INDEMNITY"


class BenefitType(str, Enum):
    MEDICAL = "MEDICAL"
    DENTAL = "DENTAL"
    VISION = "VISION"
    PHARMACY = "PHARMACY"
    LIFE_DISABILITY = "LIFE_DISABILITY"


class CoverageTier(str, Enum):
    SINGLE = "SINGLE"
    SINGLE_DEPENDENT = "SINGLE_DEPENDENT"
    SINGLE_SPOUSE = "SINGLE_SPOUSE"
    FAMILY = "FAMILY"
    SPOUSE_ONLY = "SPOUSE_ONLY"
    DEPENDENT_ONLY = "DEPENDENT_ONLY"


class LimitType(str, Enum):
    DEDUCTIBLE = "DEDUCTIBLE"
    OOP_MAX = "OOP_MAX"
    VISIT_LIMIT = "VISIT_LIMIT"
    RX_SPENDING = "RX_SPENDING"
    BENEFIT_MAX = "BENEFIT_MAX"


class NetworkType(str, Enum):
    IN_NETWORK = "IN_NETWORK"
    OUT_OF_NETWORK = "OUT_OF_NETWORK"
    COMBINED = "COMBINED"


class LimitLevel(str, Enum):
    """INDIVIDUAL limits accumulate per plan member, FAMILY per coverage."""
    INDIVIDUAL = "INDIVIDUAL"
    FAMILY = "FAMILY"


class BenefitCategory(str, Enum):
    MEDICAL = "MEDICAL"
    DENTAL = "DENTAL"
    VISION = "VISION"
    PHARMACY = "PHARMACY"
    PHYSICAL_THERAPY = "PHYSICAL_THERAPY"
    MENTAL_HEALTH = "MENTAL_HEALTH"


class PeriodType(str, Enum):
    PLAN_YEAR = "PLAN_YEAR"
    CALENDAR_YEAR = "CALENDAR_YEAR"
    LIFETIME = "LIFETIME"


class EligibilityStatus(str, Enum):
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    ELIGIBLE_ENROLLED = "ELIGIBLE_ENROLLED"
    ELIGIBLE_NOT_ENROLLED = "ELIGIBLE_NOT_ENROLLED"


class CoverageStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    COBRA = "COBRA"
    PENDING = "PENDING"


class MemberType(str, Enum):
    SUBSCRIBER = "SUBSCRIBER"
    DEPENDENT = "DEPENDENT"


class SubscriberRelationshipType(str, Enum):
    SELF = "SELF"
    SPOUSE = "SPOUSE"
    CHILD = "CHILD"
    DOMESTIC_PARTNER = "DOMESTIC_PARTNER"


# ============================================================================
# Health record domain (openEHR containers, FHIR value sets)
# ============================================================================

class CompositionType(str, Enum):
    ENCOUNTER = "ENCOUNTER"
    DISCHARGE_SUMMARY = "DISCHARGE_SUMMARY"
    PROBLEM_LIST = "PROBLEM_LIST"
    MEDICATION_LIST = "MEDICATION_LIST"
    LAB_REPORT = "LAB_REPORT"
    VITAL_SIGNS = "VITAL_SIGNS"


class CompositionCategory(str, Enum):
    EVENT = "EVENT"
    PERSISTENT = "PERSISTENT"
    EPISODIC = "EPISODIC"


class CompositionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUPERSEDED = "SUPERSEDED"
    DELETED = "DELETED"


class ProblemClinicalStatus(str, Enum):
    ACTIVE = "active"
    RECURRENCE = "recurrence"
    RELAPSE = "relapse"
    INACTIVE = "inactive"
    REMISSION = "remission"
    RESOLVED = "resolved"


class ProblemVerificationStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    PROVISIONAL = "provisional"
    DIFFERENTIAL = "differential"
    CONFIRMED = "confirmed"
    REFUTED = "refuted"
    ENTERED_IN_ERROR = "entered-in-error"


class ProblemCategory(str, Enum):
    PROBLEM_LIST_ITEM = "problem-list-item"
    ENCOUNTER_DIAGNOSIS = "encounter-diagnosis"
    HEALTH_CONCERN = "health-concern"


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class AllergyCategory(str, Enum):
    FOOD = "food"
    MEDICATION = "medication"
    ENVIRONMENT = "environment"
    BIOLOGIC = "biologic"


class AllergyType(str, Enum):
    ALLERGY = "allergy"
    INTOLERANCE = "intolerance"


class AllergyCriticality(str, Enum):
    LOW = "low"
    HIGH = "high"
    UNABLE_TO_ASSESS = "unable-to-assess"


class AllergyClinicalStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    RESOLVED = "resolved"


class AllergyVerificationStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    PRESUMED = "presumed"
    CONFIRMED = "confirmed"
    REFUTED = "refuted"
    ENTERED_IN_ERROR = "entered-in-error"


class MedicationEntryType(str, Enum):
    INSTRUCTION = "INSTRUCTION"
    ACTION = "ACTION"


class MedicationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STOPPED = "stopped"
    ON_HOLD = "on-hold"
    DRAFT = "draft"
    ENTERED_IN_ERROR = "entered-in-error"


class MedicationIntent(str, Enum):
    ORDER = "order"
    PLAN = "plan"
    PROPOSAL = "proposal"
    INSTANCE_ORDER = "instance-order"


class MedicationCategory(str, Enum):
    INPATIENT = "inpatient"
    OUTPATIENT = "outpatient"
    COMMUNITY = "community"
    DISCHARGE = "discharge"


class VitalType(str, Enum):
    BLOOD_PRESSURE = "BLOOD_PRESSURE"
    PULSE = "PULSE"
    TEMPERATURE = "TEMPERATURE"
    RESPIRATORY_RATE = "RESPIRATORY_RATE"
    OXYGEN_SATURATION = "OXYGEN_SATURATION"
    HEIGHT = "HEIGHT"
    WEIGHT = "WEIGHT"
    BMI = "BMI"


class ObservationStatus(str, Enum):
    """FHIR ObservationStatus, shared by vital signs and lab results."""
    REGISTERED = "registered"
    PRELIMINARY = "preliminary"
    FINAL = "final"
    AMENDED = "amended"
    CORRECTED = "corrected"
    CANCELLED = "cancelled"
    ENTERED_IN_ERROR = "entered-in-error"


class ProcedureStatus(str, Enum):
    PREPARATION = "preparation"
    IN_PROGRESS = "in-progress"
    NOT_DONE = "not-done"
    ON_HOLD = "on-hold"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ENTERED_IN_ERROR = "entered-in-error"
    UNKNOWN = "unknown"


class Laterality(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BILATERAL = "bilateral"


class ImmunizationStatus(str, Enum):
    COMPLETED = "completed"
    ENTERED_IN_ERROR = "entered-in-error"
    NOT_DONE = "not-done"


class DocumentType(str, Enum):
    PROGRESS_NOTE = "progress_note"
    DISCHARGE_SUMMARY = "discharge_summary"
    CONSULTATION = "consultation"
    HISTORY_PHYSICAL = "history_physical"
    PROCEDURE_NOTE = "procedure_note"
    OPERATIVE_NOTE = "operative_note"
    RADIOLOGY_REPORT = "radiology_report"
    PATHOLOGY_REPORT = "pathology_report"
    OTHER = "other"


class DocumentStatus(str, Enum):
    CURRENT = "current"
    SUPERSEDED = "superseded"
    ENTERED_IN_ERROR = "entered-in-error"


class DocStatus(str, Enum):
    PRELIMINARY = "preliminary"
    FINAL = "final"
    AMENDED = "amended"
    CORRECTED = "corrected"


class ContentFormat(str, Enum):
    TEXT_PLAIN = "text/plain"
    TEXT_HTML = "text/html"
    APPLICATION_PDF = "application/pdf"


class CarePlanStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ON_HOLD = "on-hold"
    REVOKED = "revoked"
    COMPLETED = "completed"
    ENTERED_IN_ERROR = "entered-in-error"
    UNKNOWN = "unknown"


class CarePlanIntent(str, Enum):
    PROPOSAL = "proposal"
    PLAN = "plan"
    ORDER = "order"
    OPTION = "option"


class EncounterClass(str, Enum):
    AMBULATORY = "ambulatory"
    EMERGENCY = "emergency"
    FIELD = "field"
    HOME = "home"
    INPATIENT = "inpatient"
    SHORT_STAY = "short-stay"
    VIRTUAL = "virtual"


class EncounterStatus(str, Enum):
    PLANNED = "planned"
    ARRIVED = "arrived"
    TRIAGED = "triaged"
    IN_PROGRESS = "in-progress"
    ONLEAVE = "onleave"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    ENTERED_IN_ERROR = "entered-in-error"
    UNKNOWN = "unknown"


class ProvenanceTargetType(str, Enum):
    """Health record entity types a provenance entry may point at."""
    HEALTH_RECORD_COMPOSITION = "HEALTH_RECORD_COMPOSITION"
    PROBLEM = "PROBLEM"
    ALLERGY = "ALLERGY"
    MEDICATION = "MEDICATION"
    VITAL_SIGN = "VITAL_SIGN"
    LAB_RESULT = "LAB_RESULT"
    PROCEDURE_RECORD = "PROCEDURE_RECORD"
    IMMUNIZATION = "IMMUNIZATION"
    CLINICAL_NOTE = "CLINICAL_NOTE"
    CARE_PLAN = "CARE_PLAN"
    ENCOUNTER_RECORD = "ENCOUNTER_RECORD"


class ProvenanceActivity(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VERIFY = "VERIFY"
    SIGN = "SIGN"


class ProvenanceAgentType(str, Enum):
    AUTHOR = "author"
    INFORMANT = "informant"
    VERIFIER = "verifier"
    ENTERER = "enterer"
    PERFORMER = "performer"
    CUSTODIAN = "custodian"
