"""Relationship & Referential-Integrity Validator.

The store never enforces references between collections, so every
cross-entity invariant of the data model is checked here, inside the write
transaction, over the records a write affects:

    - referenced entity exists (advisory in ADVISORY mode)
    - role-specific detail records hang off a role of the matching type
    - orgs referenced as employer / provider org / plan sponsor hold that role
    - status lifecycles (contract, employment, usability) only move forward
    - org structure trees and portfolio nesting stay acyclic and levelled
    - single preferred/primary winner among siblings
    - one subscriber per coverage; dependents reference that subscriber
    - accumulator scope matches the limit level; totals never decrease
    - composition chains keep exactly one current version, the newest
    - provenance is append-only; created_at never changes

Failures are reported as Findings. The caller raises the first enforced
finding as a RelationshipViolation; advisory findings are only logged.
Nothing is coerced or repaired.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Iterable, Optional
from uuid import UUID

from edm_registry.domain.enums import (
    CompositionStatus,
    ContractStatus,
    EligibilityStatus,
    EmploymentStatus,
    LimitLevel,
    MemberType,
    RoleType,
    UsabilityStatus,
)
from edm_registry.domain.models import (
    Accumulator,
    BenefitPlan,
    ContactRecord,
    Contract,
    Coverage,
    Eligibility,
    Employee,
    EntityRecord,
    HealthRecordComposition,
    HealthRecordProvenance,
    IdentifierRecord,
    OrgRelationship,
    OrgStructureNode,
    PlanMember,
    Portfolio,
    RoleDetailsRecord,
    SourceTrackedRecord,
    utcnow,
)
from edm_registry.domain.models.health_record import PROVENANCE_TARGETS
from edm_registry.domain.ports import RelationshipViolation, StorageTransaction
from edm_registry.domain.services.preferred_resolution import SINGLE_WINNER_RULES

logger = logging.getLogger(__name__)


class ValidationMode(str, Enum):
    """STRICT rejects dangling references; ADVISORY only reports them."""
    STRICT = "strict"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class ForeignKey:
    """A reference field and the entity it points at.

    Attributes:
        entity: Entity holding the reference
        field: Reference field (a UUID, or a list of UUIDs when ``many``)
        target: Referenced entity
        required_role: Role the referenced Org must hold (Org targets only)
        many: The field holds a list of references
    """
    entity: str
    field: str
    target: str
    required_role: Optional[RoleType] = None
    many: bool = False


def _clinical_keys(entity: str, encounter: bool = True) -> tuple[ForeignKey, ...]:
    keys = (
        ForeignKey(entity, "member_id", "Person"),
        ForeignKey(entity, "composition_id", "HealthRecordComposition"),
    )
    if encounter:
        keys += (ForeignKey(entity, "encounter_id", "EncounterRecord"),)
    return keys


# References to the claims domain (rx_claim_id, medical_claim_id,
# clinical_admission_id, diagnostic_report_id) point outside this model and
# are not listed.
FOREIGN_KEYS: tuple[ForeignKey, ...] = (
    # Organization
    ForeignKey("OrgIdentifier", "org_id", "Org"),
    ForeignKey("OrgContact", "org_id", "Org"),
    ForeignKey("OrgRole", "org_id", "Org"),
    ForeignKey("EmployerDetails", "org_role_id", "OrgRole"),
    ForeignKey("ClientDetails", "org_role_id", "OrgRole"),
    ForeignKey("VendorDetails", "org_role_id", "OrgRole"),
    ForeignKey("BrokerDetails", "org_role_id", "OrgRole"),
    ForeignKey("CarrierDetails", "org_role_id", "OrgRole"),
    ForeignKey("HealthPlanSponsorDetails", "org_role_id", "OrgRole"),
    ForeignKey("ProviderOrgDetails", "org_role_id", "OrgRole"),
    ForeignKey("OrgRelationship", "org_id_source", "Org"),
    ForeignKey("OrgRelationship", "org_id_target", "Org"),
    ForeignKey("Contract", "org_relationship_id", "OrgRelationship"),
    ForeignKey("OrgStructure", "org_id", "Org"),
    ForeignKey("OrgStructureNode", "org_structure_id", "OrgStructure"),
    ForeignKey("OrgStructureNode", "parent_node_id", "OrgStructureNode"),
    # Portfolio
    ForeignKey("Portfolio", "owner_org_id", "Org"),
    ForeignKey("Portfolio", "owner_person_id", "Person"),
    ForeignKey("Portfolio", "parent_portfolio_id", "Portfolio"),
    ForeignKey("PortfolioMember", "portfolio_id", "Portfolio"),
    ForeignKey("PortfolioMember", "org_id", "Org"),
    # Person
    ForeignKey("PersonIdentifier", "person_id", "Person"),
    ForeignKey("PersonContact", "person_id", "Person"),
    ForeignKey("Employee", "person_id", "Person"),
    ForeignKey("Employee", "employer_org_id", "Org", required_role=RoleType.EMPLOYER),
    ForeignKey("Provider", "person_id", "Person"),
    ForeignKey("ProviderAffiliation", "provider_id", "Provider"),
    ForeignKey("ProviderAffiliation", "provider_org_id", "Org", required_role=RoleType.PROVIDER_ORG),
    ForeignKey("HouseholdParticipant", "household_id", "Household"),
    ForeignKey("HouseholdParticipant", "person_id", "Person"),
    # Benefits
    ForeignKey("BenefitPlan", "sponsor_org_id", "Org", required_role=RoleType.HEALTH_PLAN_SPONSOR),
    ForeignKey("BenefitPlan", "org_structure_node_id", "OrgStructureNode"),
    ForeignKey("CoverageType", "benefit_plan_id", "BenefitPlan"),
    ForeignKey("PlanLimit", "benefit_plan_id", "BenefitPlan"),
    ForeignKey("Eligibility", "employee_id", "Employee"),
    ForeignKey("Eligibility", "benefit_plan_id", "BenefitPlan"),
    ForeignKey("Coverage", "coverage_type_id", "CoverageType"),
    ForeignKey("Coverage", "benefit_plan_id", "BenefitPlan"),
    ForeignKey("PlanMember", "person_id", "Person"),
    ForeignKey("PlanMember", "coverage_id", "Coverage"),
    ForeignKey("PlanMember", "subscriber_plan_member_id", "PlanMember"),
    ForeignKey("Accumulator", "plan_limit_id", "PlanLimit"),
    ForeignKey("Accumulator", "plan_member_id", "PlanMember"),
    ForeignKey("Accumulator", "coverage_id", "Coverage"),
    ForeignKey("AccumulatorPosting", "accumulator_id", "Accumulator"),
    ForeignKey("AccumulatorPosting", "plan_limit_id", "PlanLimit"),
    # Health record
    ForeignKey("HealthRecordComposition", "member_id", "Person"),
    ForeignKey("HealthRecordComposition", "employer_id", "Org"),
    ForeignKey("HealthRecordComposition", "preceding_version_id", "HealthRecordComposition"),
    *_clinical_keys("Problem"),
    *_clinical_keys("Allergy", encounter=False),
    *_clinical_keys("Medication", encounter=False),
    *_clinical_keys("VitalSign"),
    *_clinical_keys("LabResult"),
    *_clinical_keys("ProcedureRecord"),
    *_clinical_keys("Immunization"),
    *_clinical_keys("ClinicalNote"),
    *_clinical_keys("CarePlan"),
    ForeignKey("CarePlan", "addresses_conditions", "Problem", many=True),
    *_clinical_keys("EncounterRecord", encounter=False),
    ForeignKey("EncounterRecord", "diagnosis_ids", "Problem", many=True),
)

# Allowed status moves; statuses absent from a table's keys are terminal
CONTRACT_TRANSITIONS: dict[ContractStatus, frozenset] = {
    ContractStatus.DRAFT: frozenset({ContractStatus.ACTIVE, ContractStatus.TERMINATED}),
    ContractStatus.ACTIVE: frozenset({ContractStatus.EXPIRED, ContractStatus.TERMINATED, ContractStatus.RENEWED}),
}

EMPLOYMENT_TRANSITIONS: dict[EmploymentStatus, frozenset] = {
    EmploymentStatus.ACTIVE: frozenset({EmploymentStatus.TERMINATED, EmploymentStatus.LOA, EmploymentStatus.RETIRED}),
    EmploymentStatus.LOA: frozenset({EmploymentStatus.ACTIVE, EmploymentStatus.TERMINATED, EmploymentStatus.RETIRED}),
}

USABILITY_TRANSITIONS: dict[UsabilityStatus, frozenset] = {
    UsabilityStatus.ACTIVE: frozenset({UsabilityStatus.INACTIVE, UsabilityStatus.KNOWN_ERROR}),
    UsabilityStatus.INACTIVE: frozenset({UsabilityStatus.ARCHIVED, UsabilityStatus.KNOWN_ERROR}),
}

_PROVENANCE_ENTITIES = {target: model.__name__ for model, target in PROVENANCE_TARGETS.items()}


@dataclass(frozen=True)
class Finding:
    """One broken cross-entity invariant."""
    rule: str
    message: str
    entity: str
    record_id: Optional[UUID] = None
    field: Optional[str] = None
    related_entity: Optional[str] = None
    related_id: Optional[UUID] = None
    advisory: bool = False

    def to_violation(self) -> RelationshipViolation:
        return RelationshipViolation(
            self.message,
            entity=self.entity,
            rule=self.rule,
            record_id=self.record_id,
            field=self.field,
            related_entity=self.related_entity,
            related_id=self.related_id,
        )


def composition_chain(view: StorageTransaction, composition_id: UUID) -> list[HealthRecordComposition]:
    """All versions of the logical record containing ``composition_id``, oldest first."""
    entity = "HealthRecordComposition"
    start = view.get(entity, composition_id)
    if start is None:
        return []

    # Walk back to version 1, then forward along successors
    root, seen = start, {start.id}
    while root.preceding_version_id is not None:
        previous = view.get(entity, root.preceding_version_id)
        if previous is None or previous.id in seen:
            break
        seen.add(previous.id)
        root = previous

    chain, visited = [root], {root.id}
    frontier = [root]
    while frontier:
        successors = view.find(entity, preceding_version_id=frontier.pop().id)
        for successor in successors:
            if successor.id not in visited:
                visited.add(successor.id)
                chain.append(successor)
                frontier.append(successor)
    return sorted(chain, key=lambda c: c.version_number)


class RelationshipValidator:
    """Checks the cross-entity invariants affected by a single write.

    Parameters:
        mode: STRICT rejects dangling references, ADVISORY reports them
        enforce_enrollment: Reject ELIGIBLE_ENROLLED eligibility without an
            enrolled plan member (advisory otherwise)
        clock: Returns today's date; injectable for tests
    """

    def __init__(
        self,
        mode: ValidationMode = ValidationMode.STRICT,
        enforce_enrollment: bool = False,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.mode = ValidationMode(mode)
        self.enforce_enrollment = enforce_enrollment
        self.clock = clock or (lambda: utcnow().date())
        self._foreign_keys: dict[str, list[ForeignKey]] = {}
        for fk in FOREIGN_KEYS:
            self._foreign_keys.setdefault(fk.entity, []).append(fk)

    def foreign_keys(self, entity: str) -> list[ForeignKey]:
        return list(self._foreign_keys.get(entity, []))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def check_write(
        self,
        view: StorageTransaction,
        candidate: EntityRecord,
        previous: Optional[EntityRecord] = None,
        operation: str = "write",
    ) -> list[Finding]:
        """Return every finding for writing ``candidate`` over ``previous``.

        Parameters:
            view: Transaction the write happens in (sees its own writes)
            candidate: Record about to be stored
            previous: Stored record being replaced, None on insert
            operation: "write" for ordinary writes, "supersede" when the
                composition versioning service retires a version
        """
        findings: list[Finding] = []
        findings += self._check_immutable(candidate, previous)
        findings += self._check_references(view, candidate)

        checks = (
            (RoleDetailsRecord, self._check_role_details),
            (OrgRelationship, self._check_org_relationship),
            (Contract, self._check_contract),
            (Employee, self._check_employee),
            (IdentifierRecord, self._check_usability),
            (ContactRecord, self._check_usability),
            (OrgStructureNode, self._check_structure_node),
            (Portfolio, self._check_portfolio),
            (Coverage, self._check_coverage),
            (PlanMember, self._check_plan_member),
            (Eligibility, self._check_eligibility),
            (BenefitPlan, self._check_benefit_plan),
            (Accumulator, self._check_accumulator),
            (SourceTrackedRecord, self._check_clinical_entry),
            (HealthRecordProvenance, self._check_provenance),
        )
        for model, check in checks:
            if isinstance(candidate, model):
                findings += check(view, candidate, previous)
        if isinstance(candidate, HealthRecordComposition):
            findings += self._check_composition(view, candidate, previous, operation)

        findings += self._check_single_winner(view, candidate)
        return findings

    def enforce(
        self,
        view: StorageTransaction,
        candidate: EntityRecord,
        previous: Optional[EntityRecord] = None,
        operation: str = "write",
    ) -> list[Finding]:
        """Run ``check_write``; raise the first enforced finding.

        Returns:
            list[Finding]: Advisory findings (already logged)

        Raises:
            RelationshipViolation: If any finding is not advisory
        """
        findings = self.check_write(view, candidate, previous, operation)
        self._raise_enforced(findings)
        return findings

    def audit_coverage(self, view: StorageTransaction, coverage_id: UUID) -> list[Finding]:
        """Reconcile the member set of a coverage.

        Exactly one active SUBSCRIBER; every active DEPENDENT references it.
        """
        members = [m for m in view.find("PlanMember", coverage_id=coverage_id) if m.is_active]
        subscribers = [m for m in members if m.member_type == MemberType.SUBSCRIBER]
        findings = []
        if len(subscribers) != 1:
            findings.append(Finding(
                "single_subscriber",
                f"coverage {coverage_id} has {len(subscribers)} active subscribers, expected exactly one",
                "Coverage", record_id=coverage_id,
            ))
        subscriber_ids = {s.id for s in subscribers}
        for member in members:
            if member.member_type == MemberType.DEPENDENT and member.subscriber_plan_member_id not in subscriber_ids:
                findings.append(Finding(
                    "subscriber_reference",
                    f"dependent {member.id} does not reference the subscriber of coverage {coverage_id}",
                    "PlanMember", record_id=member.id, field="subscriber_plan_member_id",
                    related_entity="PlanMember", related_id=member.subscriber_plan_member_id,
                ))
        return findings

    def audit_composition_chain(self, view: StorageTransaction, composition_id: UUID) -> list[Finding]:
        """Reconcile a composition version chain.

        Versions are numbered 1..n without gaps or forks, and exactly one
        version is current: the one with the highest version number.
        """
        chain = composition_chain(view, composition_id)
        if not chain:
            return [Finding(
                "fk_exists", f"composition {composition_id} not found",
                "HealthRecordComposition", record_id=composition_id,
            )]
        findings = []
        numbers = [c.version_number for c in chain]
        if numbers != list(range(1, len(chain) + 1)):
            findings.append(Finding(
                "composition_chain", f"version numbers {numbers} are not consecutive from 1",
                "HealthRecordComposition", record_id=chain[0].id,
            ))
        current = [c for c in chain if c.is_current]
        if len(current) != 1 or current[0].id != chain[-1].id:
            findings.append(Finding(
                "single_current",
                f"chain of {chain[0].id} has {len(current)} current versions; only version {numbers[-1]} may be current",
                "HealthRecordComposition", record_id=chain[-1].id,
            ))
        return findings

    # ------------------------------------------------------------------
    # Generic rules
    # ------------------------------------------------------------------

    def _raise_enforced(self, findings: Iterable[Finding]) -> None:
        enforced = None
        for finding in findings:
            logger.warning(
                f"{'Advisory' if finding.advisory else 'Rejected'} [{finding.rule}] {finding.message}",
                extra={"entity": finding.entity, "rule": finding.rule},
            )
            if enforced is None and not finding.advisory:
                enforced = finding
        if enforced is not None:
            raise enforced.to_violation()

    def _check_immutable(self, candidate: EntityRecord, previous: Optional[EntityRecord]) -> list[Finding]:
        if previous is None:
            return []
        entity = type(candidate).__name__
        if candidate.append_only:
            return [Finding("append_only", f"{entity} records cannot be modified", entity, record_id=candidate.id)]
        if candidate.created_at != previous.created_at:
            return [Finding("immutable_created_at", "created_at cannot change", entity,
                            record_id=candidate.id, field="created_at")]
        return []

    def _check_references(self, view: StorageTransaction, candidate: EntityRecord) -> list[Finding]:
        entity = type(candidate).__name__
        advisory = self.mode == ValidationMode.ADVISORY
        findings = []
        for fk in self._foreign_keys.get(entity, []):
            value = getattr(candidate, fk.field)
            if value is None:
                continue
            for related_id in (value if fk.many else [value]):
                if fk.target == entity and related_id == candidate.id:
                    # Self references are rejected by the model or cycle checks
                    continue
                if view.get(fk.target, related_id) is None:
                    findings.append(Finding(
                        "fk_exists", f"{entity}.{fk.field} references missing {fk.target} {related_id}",
                        entity, record_id=candidate.id, field=fk.field,
                        related_entity=fk.target, related_id=related_id, advisory=advisory,
                    ))
                elif fk.required_role is not None and not self._has_role(view, related_id, fk.required_role):
                    findings.append(Finding(
                        "required_role",
                        f"{entity}.{fk.field} must reference an org with an active {fk.required_role.value} role",
                        entity, record_id=candidate.id, field=fk.field,
                        related_entity=fk.target, related_id=related_id,
                    ))
        return findings

    @staticmethod
    def _has_role(view: StorageTransaction, org_id: UUID, role: RoleType) -> bool:
        return bool(view.find("OrgRole", org_id=org_id, role_type=role, is_active=True))

    @staticmethod
    def _transition(
        entity: str, record_id: UUID, field: str, table: dict, old: Enum, new: Enum
    ) -> list[Finding]:
        if old == new or new in table.get(old, frozenset()):
            return []
        return [Finding(
            "status_transition", f"{entity}.{field} cannot move from {old.value} to {new.value}",
            entity, record_id=record_id, field=field,
        )]

    def _reaches(
        self, view: StorageTransaction, entity: str, start_id: Optional[UUID], parent_field: str, target_id: UUID
    ) -> bool:
        """Follow ``parent_field`` from ``start_id``; True on reaching ``target_id`` or a loop."""
        visited: set[UUID] = set()
        current = start_id
        while current is not None:
            if current == target_id or current in visited:
                return True
            visited.add(current)
            record = view.get(entity, current)
            if record is None:
                return False
            current = getattr(record, parent_field)
        return False

    def _check_single_winner(self, view: StorageTransaction, candidate: EntityRecord) -> list[Finding]:
        entity = type(candidate).__name__
        findings = []
        for rule in SINGLE_WINNER_RULES.get(entity, ()):
            if not getattr(candidate, rule.flag):
                continue
            winners = [s for s in rule.siblings(view, candidate) if getattr(s, rule.flag)]
            if winners:
                findings.append(Finding(
                    "single_winner",
                    f"{entity}.{rule.flag} is already set on {winners[0].id} for the same {', '.join(rule.scope_fields)}",
                    entity, record_id=candidate.id, field=rule.flag,
                    related_entity=entity, related_id=winners[0].id,
                ))
        return findings

    # ------------------------------------------------------------------
    # Organization and person rules
    # ------------------------------------------------------------------

    def _check_role_details(self, view, candidate: RoleDetailsRecord, previous) -> list[Finding]:
        role = view.get("OrgRole", candidate.org_role_id)
        if role is None or role.role_type == candidate.role_type:
            return []
        entity = type(candidate).__name__
        return [Finding(
            "role_type",
            f"{entity} requires an org role of type {candidate.role_type.value}, not {role.role_type.value}",
            entity, record_id=candidate.id, field="org_role_id",
            related_entity="OrgRole", related_id=role.id,
        )]

    def _check_org_relationship(self, view, candidate: OrgRelationship, previous) -> list[Finding]:
        if candidate.is_active and candidate.termination_date is not None and candidate.termination_date < self.clock():
            return [Finding(
                "active_consistency",
                f"active relationship cannot have a past termination_date ({candidate.termination_date})",
                "OrgRelationship", record_id=candidate.id, field="is_active",
            )]
        return []

    def _check_contract(self, view, candidate: Contract, previous: Optional[Contract]) -> list[Finding]:
        if previous is None:
            return []
        return self._transition(
            "Contract", candidate.id, "status", CONTRACT_TRANSITIONS, previous.status, candidate.status
        )

    def _check_employee(self, view, candidate: Employee, previous: Optional[Employee]) -> list[Finding]:
        if previous is None:
            return []
        return self._transition(
            "Employee", candidate.id, "employment_status", EMPLOYMENT_TRANSITIONS,
            previous.employment_status, candidate.employment_status,
        )

    def _check_usability(self, view, candidate, previous) -> list[Finding]:
        if previous is None:
            return []
        return self._transition(
            type(candidate).__name__, candidate.id, "usability_status", USABILITY_TRANSITIONS,
            previous.usability_status, candidate.usability_status,
        )

    def _check_structure_node(
        self, view, candidate: OrgStructureNode, previous: Optional[OrgStructureNode]
    ) -> list[Finding]:
        entity = "OrgStructureNode"
        findings = []
        if candidate.parent_node_id is not None:
            parent = view.get(entity, candidate.parent_node_id)
            if parent is not None:
                if parent.org_structure_id != candidate.org_structure_id:
                    findings.append(Finding(
                        "hierarchy_structure", "parent node belongs to a different org structure",
                        entity, record_id=candidate.id, field="parent_node_id",
                        related_entity=entity, related_id=parent.id,
                    ))
                if candidate.level != parent.level + 1:
                    findings.append(Finding(
                        "hierarchy_level", f"level must be {parent.level + 1} (parent level + 1)",
                        entity, record_id=candidate.id, field="level",
                        related_entity=entity, related_id=parent.id,
                    ))
                if self._reaches(view, entity, parent.id, "parent_node_id", candidate.id):
                    findings.append(Finding(
                        "hierarchy_cycle", "parent_node_id would create a cycle",
                        entity, record_id=candidate.id, field="parent_node_id",
                        related_entity=entity, related_id=parent.id,
                    ))
        if previous is not None and (
            previous.org_structure_id != candidate.org_structure_id or previous.level != candidate.level
        ):
            if view.find(entity, parent_node_id=candidate.id):
                findings.append(Finding(
                    "hierarchy_subtree",
                    "org_structure_id and level of a node with children cannot change",
                    entity, record_id=candidate.id, field="org_structure_id",
                ))
        return findings

    def _check_portfolio(self, view, candidate: Portfolio, previous) -> list[Finding]:
        if candidate.parent_portfolio_id is None:
            return []
        if self._reaches(view, "Portfolio", candidate.parent_portfolio_id, "parent_portfolio_id", candidate.id):
            return [Finding(
                "hierarchy_cycle", "parent_portfolio_id would create a cycle",
                "Portfolio", record_id=candidate.id, field="parent_portfolio_id",
                related_entity="Portfolio", related_id=candidate.parent_portfolio_id,
            )]
        return []

    # ------------------------------------------------------------------
    # Benefits rules
    # ------------------------------------------------------------------

    def _check_benefit_plan(self, view, candidate: BenefitPlan, previous) -> list[Finding]:
        if candidate.org_structure_node_id is None:
            return []
        node = view.get("OrgStructureNode", candidate.org_structure_node_id)
        structure = view.get("OrgStructure", node.org_structure_id) if node else None
        if structure is not None and structure.org_id != candidate.sponsor_org_id:
            return [Finding(
                "plan_structure", "org_structure_node_id must belong to a structure of the sponsor org",
                "BenefitPlan", record_id=candidate.id, field="org_structure_node_id",
                related_entity="OrgStructureNode", related_id=node.id,
            )]
        return []

    def _check_coverage(self, view, candidate: Coverage, previous) -> list[Finding]:
        coverage_type = view.get("CoverageType", candidate.coverage_type_id)
        if coverage_type is not None and coverage_type.benefit_plan_id != candidate.benefit_plan_id:
            return [Finding(
                "coverage_plan", "coverage_type_id belongs to a different benefit plan",
                "Coverage", record_id=candidate.id, field="coverage_type_id",
                related_entity="CoverageType", related_id=coverage_type.id,
            )]
        return []

    def _check_plan_member(self, view, candidate: PlanMember, previous: Optional[PlanMember]) -> list[Finding]:
        entity = "PlanMember"
        findings = []
        if candidate.member_type == MemberType.SUBSCRIBER and candidate.is_active:
            others = [
                m for m in view.find(entity, coverage_id=candidate.coverage_id, member_type=MemberType.SUBSCRIBER)
                if m.id != candidate.id and m.is_active
            ]
            if others:
                findings.append(Finding(
                    "single_subscriber", f"coverage {candidate.coverage_id} already has subscriber {others[0].id}",
                    entity, record_id=candidate.id, field="member_type",
                    related_entity=entity, related_id=others[0].id,
                ))
        if candidate.member_type == MemberType.DEPENDENT:
            subscriber = view.get(entity, candidate.subscriber_plan_member_id)
            if subscriber is not None:
                if subscriber.member_type != MemberType.SUBSCRIBER:
                    findings.append(Finding(
                        "subscriber_reference", "subscriber_plan_member_id references another dependent",
                        entity, record_id=candidate.id, field="subscriber_plan_member_id",
                        related_entity=entity, related_id=subscriber.id,
                    ))
                elif subscriber.coverage_id != candidate.coverage_id:
                    findings.append(Finding(
                        "subscriber_reference", "subscriber belongs to a different coverage",
                        entity, record_id=candidate.id, field="subscriber_plan_member_id",
                        related_entity=entity, related_id=subscriber.id,
                    ))
                elif candidate.is_active and not subscriber.is_active:
                    findings.append(Finding(
                        "subscriber_reference", "an active dependent must reference an active subscriber",
                        entity, record_id=candidate.id, field="subscriber_plan_member_id",
                        related_entity=entity, related_id=subscriber.id,
                    ))
            if self._reaches(
                view, entity, candidate.subscriber_plan_member_id, "subscriber_plan_member_id", candidate.id
            ):
                findings.append(Finding(
                    "hierarchy_cycle", "subscriber references form a cycle",
                    entity, record_id=candidate.id, field="subscriber_plan_member_id",
                ))
        if previous is not None and previous.member_type == MemberType.SUBSCRIBER:
            dependents = view.find(entity, subscriber_plan_member_id=candidate.id)
            if dependents and (
                candidate.member_type != MemberType.SUBSCRIBER or candidate.coverage_id != previous.coverage_id
            ):
                findings.append(Finding(
                    "subscriber_reference", "a subscriber with dependents cannot change type or coverage",
                    entity, record_id=candidate.id, field="member_type",
                ))
            elif previous.is_active and not candidate.is_active:
                active = [d for d in dependents if d.is_active]
                if active:
                    findings.append(Finding(
                        "subscriber_reference", f"{len(active)} active dependent(s) still reference this subscriber",
                        entity, record_id=candidate.id, field="is_active",
                        related_entity=entity, related_id=active[0].id,
                    ))
        return findings

    def _check_eligibility(self, view, candidate: Eligibility, previous) -> list[Finding]:
        if candidate.status != EligibilityStatus.ELIGIBLE_ENROLLED:
            return []
        employee = view.get("Employee", candidate.employee_id)
        if employee is None:
            return []
        for member in view.find("PlanMember", person_id=employee.person_id, is_active=True):
            coverage = view.get("Coverage", member.coverage_id)
            if coverage is not None and coverage.benefit_plan_id == candidate.benefit_plan_id:
                return []
        return [Finding(
            "enrollment", "ELIGIBLE_ENROLLED without an active plan member in a coverage of the plan",
            "Eligibility", record_id=candidate.id, field="status",
            related_entity="BenefitPlan", related_id=candidate.benefit_plan_id,
            advisory=not self.enforce_enrollment,
        )]

    def _check_accumulator(self, view, candidate: Accumulator, previous: Optional[Accumulator]) -> list[Finding]:
        entity = "Accumulator"
        findings = []
        limit = view.get("PlanLimit", candidate.plan_limit_id)
        if limit is not None:
            if limit.level == LimitLevel.INDIVIDUAL and candidate.plan_member_id is None:
                findings.append(Finding(
                    "accumulator_scope", "INDIVIDUAL limits accumulate per plan member",
                    entity, record_id=candidate.id, field="plan_member_id",
                    related_entity="PlanLimit", related_id=limit.id,
                ))
            if limit.level == LimitLevel.FAMILY and candidate.coverage_id is None:
                findings.append(Finding(
                    "accumulator_scope", "FAMILY limits accumulate per coverage",
                    entity, record_id=candidate.id, field="coverage_id",
                    related_entity="PlanLimit", related_id=limit.id,
                ))

        scope = {"plan_member_id": candidate.plan_member_id} if candidate.plan_member_id else {"coverage_id": candidate.coverage_id}
        for other in view.find(entity, plan_limit_id=candidate.plan_limit_id, **scope):
            if other.id != candidate.id and other.period_start < candidate.period_end and candidate.period_start < other.period_end:
                findings.append(Finding(
                    "accumulator_overlap", f"period overlaps accumulator {other.id}",
                    entity, record_id=candidate.id, field="period_start",
                    related_entity=entity, related_id=other.id,
                ))

        if previous is not None:
            if (previous.period_start, previous.period_end) != (candidate.period_start, candidate.period_end) or (
                previous.plan_member_id, previous.coverage_id, previous.plan_limit_id
            ) != (candidate.plan_member_id, candidate.coverage_id, candidate.plan_limit_id):
                findings.append(Finding(
                    "accumulator_period", "period and scope of an accumulator cannot change; roll over instead",
                    entity, record_id=candidate.id, field="period_start",
                ))
            if candidate.accumulated_amount < previous.accumulated_amount or (
                candidate.accumulated_count < previous.accumulated_count
            ):
                findings.append(Finding(
                    "accumulator_monotonic", "accumulated totals cannot decrease within a period",
                    entity, record_id=candidate.id, field="accumulated_amount",
                ))
        return findings

    # ------------------------------------------------------------------
    # Health record rules
    # ------------------------------------------------------------------

    def _check_clinical_entry(self, view, candidate: SourceTrackedRecord, previous) -> list[Finding]:
        if candidate.composition_id is None:
            return []
        composition = view.get("HealthRecordComposition", candidate.composition_id)
        if composition is not None and composition.member_id != candidate.member_id:
            entity = type(candidate).__name__
            return [Finding(
                "composition_member", "entry and composition belong to different members",
                entity, record_id=candidate.id, field="composition_id",
                related_entity="HealthRecordComposition", related_id=composition.id,
            )]
        return []

    def _check_composition(
        self,
        view,
        candidate: HealthRecordComposition,
        previous: Optional[HealthRecordComposition],
        operation: str,
    ) -> list[Finding]:
        entity = "HealthRecordComposition"
        findings = []
        if previous is None:
            if candidate.preceding_version_id is not None:
                predecessor = view.get(entity, candidate.preceding_version_id)
                if predecessor is not None:
                    if predecessor.member_id != candidate.member_id or (
                        predecessor.version_number != candidate.version_number - 1
                    ):
                        findings.append(Finding(
                            "composition_chain",
                            f"version {candidate.version_number} must follow version "
                            f"{candidate.version_number - 1} of the same member",
                            entity, record_id=candidate.id, field="preceding_version_id",
                            related_entity=entity, related_id=predecessor.id,
                        ))
                    if predecessor.is_current:
                        findings.append(Finding(
                            "single_current", "the preceding version is still current; supersede it first",
                            entity, record_id=candidate.id, field="is_current",
                            related_entity=entity, related_id=predecessor.id,
                        ))
                    forks = [c for c in view.find(entity, preceding_version_id=predecessor.id) if c.id != candidate.id]
                    if forks:
                        findings.append(Finding(
                            "composition_chain", f"version {predecessor.id} already has a successor",
                            entity, record_id=candidate.id, field="preceding_version_id",
                            related_entity=entity, related_id=forks[0].id,
                        ))
            return findings

        for field in ("member_id", "version_number", "preceding_version_id"):
            if getattr(previous, field) != getattr(candidate, field):
                findings.append(Finding(
                    "composition_chain", f"{field} of a composition version cannot change",
                    entity, record_id=candidate.id, field=field,
                ))
        if previous.status in (CompositionStatus.SUPERSEDED, CompositionStatus.DELETED) and (
            candidate.status != previous.status
        ):
            findings.append(Finding(
                "status_transition", f"a {previous.status.value} composition cannot change status",
                entity, record_id=candidate.id, field="status",
            ))
        elif candidate.status == CompositionStatus.SUPERSEDED and previous.status != CompositionStatus.SUPERSEDED:
            if operation != "supersede":
                findings.append(Finding(
                    "single_current", "compositions are superseded only by writing a new version",
                    entity, record_id=candidate.id, field="status",
                ))
        return findings

    def _check_provenance(self, view, candidate: HealthRecordProvenance, previous) -> list[Finding]:
        target_entity = _PROVENANCE_ENTITIES[candidate.target_type]
        if view.get(target_entity, candidate.target_id) is not None:
            return []
        return [Finding(
            "fk_exists", f"provenance target {target_entity} {candidate.target_id} not found",
            "HealthRecordProvenance", record_id=candidate.id, field="target_id",
            related_entity=target_entity, related_id=candidate.target_id,
            advisory=self.mode == ValidationMode.ADVISORY,
        )]
