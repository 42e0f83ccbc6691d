"""Tests for cross-entity invariants enforced on the write path."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest

from edm_registry.domain.enums import (
    CompositionStatus,
    ContactType,
    ContractStatus,
    CoverageStatus,
    CoverageTier,
    EligibilityStatus,
    EmploymentStatus,
    EncounterClass,
    EncounterStatus,
    MemberType,
    OrgContactLabel,
    OrgIdentifierType,
    OrgRelationshipType,
    PortfolioType,
    ProblemClinicalStatus,
    RoleType,
    StructureType,
    UsabilityStatus,
)
from edm_registry.domain.models import (
    BrokerDetails,
    Contract,
    Coverage,
    CoverageType,
    Eligibility,
    Employee,
    EmployerDetails,
    EncounterRecord,
    HealthRecordComposition,
    OrgContact,
    OrgIdentifier,
    OrgRelationship,
    OrgStructure,
    OrgStructureNode,
    PlanMember,
    Portfolio,
    Problem,
)
from edm_registry.domain.ports import RelationshipViolation
from edm_registry.domain.services import ProvenanceAgent, RecordService, RelationshipValidator, ValidationMode


def rule_of(result):
    assert result.is_failure(), "write was expected to be rejected"
    assert result.error_type == "RelationshipViolation"
    return result.error_details["rule"]


def employee(person, employer, status=EmploymentStatus.ACTIVE):
    return Employee.new(
        person_id=person.id, employer_org_id=employer.id, hire_date=date(2020, 1, 1),
        employment_status=status, is_active=status in (EmploymentStatus.ACTIVE, EmploymentStatus.LOA),
    )


def contact(org_id, preferred=True, **fields):
    return OrgContact.new(
        org_id=org_id, label=OrgContactLabel.HEADQUARTERS, contact_type=ContactType.EMAIL,
        is_preferred=preferred, usability_status=UsabilityStatus.ACTIVE,
        usability_status_date=date(2024, 1, 1), **fields,
    )


class TestRoleDetails:
    """Role-specific details hang off a role of the matching type."""

    def test_employer_details_on_broker_role_rejected(self, records, build, storage):
        """Test that EmployerDetails cannot hang off a BROKER role."""
        _, broker_role = build.org_with_role(RoleType.BROKER)

        result = records.create(EmployerDetails.new(org_role_id=broker_role.id, industry="Retail"))

        assert rule_of(result) == "role_type"
        assert result.error_details["field"] == "org_role_id"
        assert result.error_details["related_id"] == str(broker_role.id)
        assert storage.count("EmployerDetails") == 0

    def test_matching_role_accepted(self, records, build):
        """Test that details on a matching role are accepted."""
        _, broker_role = build.org_with_role(RoleType.BROKER)

        result = records.create(BrokerDetails.new(org_role_id=broker_role.id, license_state="MA"))

        assert result.is_success()

    def test_one_detail_record_per_role(self, records, build):
        """Test that a role has at most one detail record."""
        _, role = build.org_with_role(RoleType.EMPLOYER)
        build.create(EmployerDetails.new(org_role_id=role.id))

        result = records.create(EmployerDetails.new(org_role_id=role.id))

        assert rule_of(result) == "unique:org_role_id_1"


class TestForeignKeys:
    """References must resolve in STRICT mode."""

    def test_dangling_reference_rejected(self, records):
        """Test that a reference to a missing record is rejected."""
        missing = uuid4()

        result = records.create(contact(missing))

        assert rule_of(result) == "fk_exists"
        assert result.error_details["field"] == "org_id"
        assert result.error_details["related_entity"] == "Org"
        assert result.error_details["related_id"] == str(missing)

    def test_advisory_mode_accepts_dangling_reference(self, storage, retry):
        """Test that ADVISORY mode accepts a dangling reference."""
        records = RecordService(
            storage, relationships=RelationshipValidator(mode=ValidationMode.ADVISORY), retry=retry
        )

        result = records.create(contact(uuid4()))

        assert result.is_success()
        assert storage.count("OrgContact") == 1

    def test_required_role_missing(self, records, build):
        """Test that a reference needing a role fails without it."""
        org = build.org("No Roles Ltd")

        result = records.create(employee(build.person(), org))

        assert rule_of(result) == "required_role"
        assert result.error_details["field"] == "employer_org_id"

    def test_inactive_role_does_not_count(self, records, build):
        """Test that an inactive role does not satisfy a required role."""
        org = build.org("Former Employer")
        build.role(org, RoleType.EMPLOYER, is_active=False)

        assert rule_of(records.create(employee(build.person(), org))) == "required_role"

    def test_active_role_satisfies_reference(self, records, build):
        """Test that an active role satisfies a required role."""
        org, _ = build.org_with_role(RoleType.EMPLOYER)
        assert records.create(employee(build.person(), org)).is_success()

    def test_list_references_checked(self, records, build):
        """Test that list-valued references are checked."""
        person = build.person()
        problem = build.create(Problem.new(
            member_id=person.id, archetype_id="openEHR-EHR-EVALUATION.problem_diagnosis.v1",
            problem_name="Asthma", clinical_status=ProblemClinicalStatus.ACTIVE, recorded_date=datetime(2024, 3, 1),
        ))

        encounter = EncounterRecord.new(
            member_id=person.id, archetype_id="openEHR-EHR-COMPOSITION.encounter.v1",
            encounter_class=EncounterClass.AMBULATORY, status=EncounterStatus.FINISHED,
            period_start=datetime(2024, 3, 1, 9), diagnosis_ids=[problem.id, uuid4()],
        )
        result = records.create(encounter)

        assert rule_of(result) == "fk_exists"
        assert result.error_details["field"] == "diagnosis_ids"


class TestLifecycles:
    """Statuses only move along their allowed transitions."""

    @pytest.fixture
    def relationship(self, build):
        source, _ = build.org_with_role(RoleType.BROKER, name="Broker Co")
        target, _ = build.org_with_role(RoleType.CLIENT, name="Client Co")
        return build.create(OrgRelationship.new(
            org_id_source=source.id, org_id_target=target.id,
            relationship_type=OrgRelationshipType.BROKER_CLIENT, is_active=True, effective_date=date(2024, 1, 1),
        ))

    def test_contract_moves_forward(self, records, build, relationship):
        """Test allowed and rejected contract status transitions."""
        contract = build.create(Contract.new(
            org_relationship_id=relationship.id, status=ContractStatus.DRAFT, effective_date=date(2024, 1, 1),
        ))

        activated = records.update("Contract", contract.id, {"status": "ACTIVE"}).unwrap()
        assert activated.status == ContractStatus.ACTIVE
        assert activated.revision == 1

        assert rule_of(records.update("Contract", contract.id, {"status": "DRAFT"})) == "status_transition"

    def test_renewed_contract_is_terminal(self, records, build, relationship):
        """Test that RENEWED is terminal."""
        contract = build.create(Contract.new(
            org_relationship_id=relationship.id, status=ContractStatus.ACTIVE, effective_date=date(2024, 1, 1),
        ))
        records.update("Contract", contract.id, {"status": "RENEWED"}).unwrap()

        assert rule_of(records.update("Contract", contract.id, {"status": "ACTIVE"})) == "status_transition"

    def test_terminated_employee_cannot_return(self, records, build):
        """Test that TERMINATED is terminal for employees."""
        org, _ = build.org_with_role(RoleType.EMPLOYER)
        hired = build.create(employee(build.person(), org))
        records.update("Employee", hired.id, {"employment_status": "TERMINATED", "is_active": False}).unwrap()

        result = records.update("Employee", hired.id, {"employment_status": "ACTIVE", "is_active": True})

        assert rule_of(result) == "status_transition"
        assert result.error_details["field"] == "employment_status"

    def test_leave_of_absence_round_trip(self, records, build):
        """Test ACTIVE to LOA and back."""
        org, _ = build.org_with_role(RoleType.EMPLOYER)
        hired = build.create(employee(build.person(), org))

        records.update("Employee", hired.id, {"employment_status": "LOA"}).unwrap()
        back = records.update("Employee", hired.id, {"employment_status": "ACTIVE"}).unwrap()

        assert back.employment_status == EmploymentStatus.ACTIVE
        assert back.revision == 2

    def test_usability_status_cannot_reactivate(self, records, build):
        """Test that a retired usability status cannot return to ACTIVE."""
        org = build.org()
        identifier = build.create(OrgIdentifier.new(
            org_id=org.id, identifier_type=OrgIdentifierType.FEIN, identifier_value="12-3456789",
            usability_status=UsabilityStatus.INACTIVE, usability_status_date=date(2024, 1, 1),
        ))

        result = records.update("OrgIdentifier", identifier.id, {"usability_status": "ACTIVE"})

        assert rule_of(result) == "status_transition"

    def test_active_relationship_with_past_termination(self, storage, retry, build):
        """Test that an active relationship cannot have ended already."""
        records = RecordService(
            storage, relationships=RelationshipValidator(clock=lambda: date(2024, 6, 1)), retry=retry
        )
        source, target = build.org("Source"), build.org("Target")

        def relationship(**fields):
            return OrgRelationship.new(
                org_id_source=source.id, org_id_target=target.id,
                relationship_type=OrgRelationshipType.VENDOR_CLIENT, effective_date=date(2024, 1, 1), **fields,
            )

        past = records.create(relationship(is_active=True, termination_date=date(2024, 3, 1)))
        assert rule_of(past) == "active_consistency"
        assert records.create(relationship(is_active=True, termination_date=date(2024, 12, 31))).is_success()
        assert records.create(relationship(is_active=False, termination_date=date(2024, 3, 1))).is_success()


class TestHierarchies:
    """Trees stay levelled, acyclic and within one structure."""

    @pytest.fixture
    def structure(self, build):
        org = build.org()
        return build.create(OrgStructure.new(
            org_id=org.id, structure_type=StructureType.REPORTING, name="Reporting",
            is_active=True, effective_date=date(2024, 1, 1),
        ))

    @staticmethod
    def node(structure, name, parent=None, level=0):
        return OrgStructureNode.new(
            org_structure_id=structure.id, parent_node_id=parent.id if parent else None, name=name,
            level=level, is_active=True, effective_date=date(2024, 1, 1),
        )

    def test_child_level_must_follow_parent(self, records, build, structure):
        """Test that a child node sits one level below its parent."""
        root = build.create(self.node(structure, "Root"))

        assert rule_of(records.create(self.node(structure, "Deep", parent=root, level=2))) == "hierarchy_level"
        assert records.create(self.node(structure, "Child", parent=root, level=1)).is_success()

    def test_cycle_rejected(self, records, build, structure):
        """Test that a node hierarchy cycle is rejected."""
        root = build.create(self.node(structure, "Root"))
        child = build.create(self.node(structure, "Child", parent=root, level=1))

        result = records.update("OrgStructureNode", root.id, {"parent_node_id": child.id, "level": 2})

        assert rule_of(result) == "hierarchy_cycle"

    def test_parent_in_other_structure(self, records, build, structure):
        """Test that a parent must be in the same structure."""
        other = build.create(OrgStructure.new(
            org_id=structure.org_id, structure_type=StructureType.FINANCIAL, name="Finance",
            is_active=True, effective_date=date(2024, 1, 1),
        ))
        root = build.create(self.node(structure, "Root"))

        assert rule_of(records.create(self.node(other, "Stray", parent=root, level=1))) == "hierarchy_structure"

    def test_portfolio_cycle_rejected(self, records, build):
        """Test that portfolio nesting cannot form a cycle."""
        def portfolio(name, parent=None):
            return Portfolio.new(
                name=name, portfolio_type=PortfolioType.WELLNECITY, is_active=True,
                effective_date=date(2024, 1, 1), parent_portfolio_id=parent.id if parent else None,
            )

        outer = build.create(portfolio("Outer"))
        inner = build.create(portfolio("Inner", parent=outer))

        result = records.update("Portfolio", outer.id, {"parent_portfolio_id": inner.id})

        assert rule_of(result) == "hierarchy_cycle"


class TestBenefitsRules:
    """Plans, coverages and members agree with each other."""

    def test_plan_node_must_belong_to_sponsor(self, build):
        """Test that a plan's structure node belongs to its sponsor."""
        stranger = build.org("Stranger Org")
        structure = build.create(OrgStructure.new(
            org_id=stranger.id, structure_type=StructureType.BENEFIT_ADMIN, name="Benefits",
            is_active=True, effective_date=date(2024, 1, 1),
        ))
        node = build.create(OrgStructureNode.new(
            org_structure_id=structure.id, name="Root", level=0, is_active=True, effective_date=date(2024, 1, 1),
        ))

        with pytest.raises(RelationshipViolation) as exc_info:
            build.plan(org_structure_node_id=node.id)

        assert exc_info.value.rule == "plan_structure"

    def test_coverage_type_from_other_plan(self, records, build):
        """Test that a coverage type must belong to the coverage's plan."""
        plan, other_plan = build.plan(), build.plan(plan_name="Silver HMO")
        coverage_type = build.create(CoverageType.new(
            benefit_plan_id=plan.id, name=CoverageTier.SINGLE, effective_date=date(2024, 1, 1), is_active=True,
        ))

        result = records.create(Coverage.new(
            coverage_type_id=coverage_type.id, benefit_plan_id=other_plan.id,
            status=CoverageStatus.ACTIVE, effective_date=date(2024, 1, 1),
        ))

        assert rule_of(result) == "coverage_plan"

    def test_coverage_tier_unique_per_plan(self, records, build):
        """Test that a coverage tier is unique within a plan."""
        plan = build.plan()
        build.coverage(plan, CoverageTier.FAMILY)

        result = records.create(CoverageType.new(
            benefit_plan_id=plan.id, name=CoverageTier.FAMILY, effective_date=date(2024, 1, 1), is_active=True,
        ))

        assert rule_of(result) == "unique:benefit_plan_id_1_name_1"

    def test_second_subscriber_rejected(self, records, build):
        """Test that a coverage has one active subscriber."""
        coverage = build.coverage(build.plan())
        build.subscriber(coverage)

        result = records.create(PlanMember.new(
            person_id=build.person("Grace", "Hopper").id, coverage_id=coverage.id,
            member_type=MemberType.SUBSCRIBER, effective_date=date(2024, 1, 1), is_active=True,
        ))

        assert rule_of(result) == "single_subscriber"

    def test_new_subscriber_after_deactivation(self, records, build):
        """Test that a new subscriber may follow a deactivated one."""
        coverage = build.coverage(build.plan())
        first = build.subscriber(coverage)
        records.deactivate("PlanMember", first.id, on=date(2024, 6, 30)).unwrap()

        assert records.create(PlanMember.new(
            person_id=build.person("Grace", "Hopper").id, coverage_id=coverage.id,
            member_type=MemberType.SUBSCRIBER, effective_date=date(2024, 7, 1), is_active=True,
        )).is_success()

    def test_subscriber_with_active_dependents_stays_active(self, records, build):
        """Test that a subscriber cannot be retired while active dependents reference it."""
        coverage = build.coverage(build.plan())
        subscriber = build.subscriber(coverage)
        dependent = build.dependent(coverage, subscriber)

        assert rule_of(records.deactivate("PlanMember", subscriber.id)) == "subscriber_reference"
        assert rule_of(records.create(PlanMember.new(
            person_id=build.person("Grace", "Hopper").id, coverage_id=coverage.id,
            member_type=MemberType.SUBSCRIBER, effective_date=date(2024, 7, 1), is_active=True,
        ))) == "single_subscriber"

        records.deactivate("PlanMember", dependent.id).unwrap()
        assert records.deactivate("PlanMember", subscriber.id).is_success()

    def test_dependent_of_inactive_subscriber_rejected(self, records, build):
        """Test that an active dependent must reference an active subscriber."""
        coverage = build.coverage(build.plan())
        subscriber = build.subscriber(coverage)
        records.deactivate("PlanMember", subscriber.id, on=date(2024, 6, 30)).unwrap()

        result = records.create(PlanMember.new(
            person_id=build.person("Ada", "Junior").id, coverage_id=coverage.id,
            member_type=MemberType.DEPENDENT, subscriber_plan_member_id=subscriber.id,
            effective_date=date(2024, 1, 1), is_active=True,
        ))

        assert rule_of(result) == "subscriber_reference"
        findings = RelationshipValidator().audit_coverage(records.storage, coverage.id)
        assert [f.rule for f in findings] == ["single_subscriber"]

    def test_dependent_must_reference_subscriber(self, records, build):
        """Test that a dependent cannot reference another dependent."""
        coverage = build.coverage(build.plan())
        subscriber = build.subscriber(coverage)
        dependent = build.dependent(coverage, subscriber)

        result = records.create(PlanMember.new(
            person_id=build.person("Ada", "Junior").id, coverage_id=coverage.id,
            member_type=MemberType.DEPENDENT, subscriber_plan_member_id=dependent.id,
            effective_date=date(2024, 1, 1), is_active=True,
        ))

        assert rule_of(result) == "subscriber_reference"

    def test_dependent_in_other_coverage(self, records, build):
        """Test that a dependent's subscriber is in the same coverage."""
        plan = build.plan()
        coverage = build.coverage(plan, CoverageTier.FAMILY)
        other = build.coverage(plan, CoverageTier.SINGLE_SPOUSE)
        subscriber = build.subscriber(coverage)

        result = records.create(PlanMember.new(
            person_id=build.person("Ada", "Junior").id, coverage_id=other.id,
            member_type=MemberType.DEPENDENT, subscriber_plan_member_id=subscriber.id,
            effective_date=date(2024, 1, 1), is_active=True,
        ))

        assert rule_of(result) == "subscriber_reference"

    def test_audit_coverage(self, build, storage):
        """Test reconciling the member set of a coverage."""
        validator = RelationshipValidator()
        coverage = build.coverage(build.plan())
        assert [f.rule for f in validator.audit_coverage(storage, coverage.id)] == ["single_subscriber"]

        subscriber = build.subscriber(coverage)
        build.dependent(coverage, subscriber)
        assert validator.audit_coverage(storage, coverage.id) == []

    def test_enrollment_is_advisory_by_default(self, records, build):
        """Test that ELIGIBLE_ENROLLED without enrollment is accepted by default."""
        plan = build.plan()
        employer, _ = build.org_with_role(RoleType.EMPLOYER)
        hired = build.create(employee(build.person(), employer))

        result = records.create(Eligibility.new(
            employee_id=hired.id, benefit_plan_id=plan.id,
            status=EligibilityStatus.ELIGIBLE_ENROLLED, effective_date=date(2024, 1, 1),
        ))

        assert result.is_success()

    def test_enrollment_enforced(self, storage, retry, build):
        """Test that enforce_enrollment requires an enrolled member."""
        records = RecordService(storage, relationships=RelationshipValidator(enforce_enrollment=True), retry=retry)
        plan = build.plan()
        employer, _ = build.org_with_role(RoleType.EMPLOYER)
        person = build.person()
        hired = build.create(employee(person, employer))

        def eligibility():
            return Eligibility.new(
                employee_id=hired.id, benefit_plan_id=plan.id,
                status=EligibilityStatus.ELIGIBLE_ENROLLED, effective_date=date(2024, 1, 1),
            )

        assert rule_of(records.create(eligibility())) == "enrollment"

        build.subscriber(build.coverage(plan), person=person)
        assert records.create(eligibility()).is_success()


class TestHealthRecordRules:
    """Clinical entries agree with their composition; provenance is append-only."""

    def test_entry_member_must_match_composition(self, records, build):
        """Test that an entry and its composition share the member."""
        composition = build.composition()
        stranger = build.person("Grace", "Hopper")

        result = records.create(Problem.new(
            member_id=stranger.id, composition_id=composition.id,
            archetype_id="openEHR-EHR-EVALUATION.problem_diagnosis.v1", problem_name="Asthma",
            clinical_status=ProblemClinicalStatus.ACTIVE, recorded_date=datetime(2024, 3, 1),
        ))

        assert rule_of(result) == "composition_member"

    def test_version_behind_current_version_rejected(self, records, build, storage):
        """Test that a new version cannot be inserted while its predecessor is still current."""
        first = build.composition()

        result = records.create(HealthRecordComposition.new(
            member_id=first.member_id, employer_id=first.employer_id, archetype_id=first.archetype_id,
            composition_type=first.composition_type, category=first.category,
            context_start_time=first.context_start_time, version_number=2, preceding_version_id=first.id,
            is_current=False, status=CompositionStatus.SUPERSEDED,
        ))

        assert rule_of(result) == "single_current"
        assert RelationshipValidator().audit_composition_chain(storage, first.id) == []

    def test_version_behind_deleted_version_rejected(self, records, build):
        """Test that a deleted chain accepts no further versions."""
        first = build.composition()
        records.deactivate("HealthRecordComposition", first.id).unwrap()

        result = records.create(HealthRecordComposition.new(
            member_id=first.member_id, employer_id=first.employer_id, archetype_id=first.archetype_id,
            composition_type=first.composition_type, category=first.category,
            context_start_time=first.context_start_time, version_number=2, preceding_version_id=first.id,
            is_current=True, status=CompositionStatus.ACTIVE,
        ))

        assert rule_of(result) == "single_current"

    def test_provenance_cannot_be_modified(self, records, build, storage):
        """Test that provenance entries cannot be updated or deactivated."""
        person = build.person()
        records.create(Problem.new(
            member_id=person.id, archetype_id="openEHR-EHR-EVALUATION.problem_diagnosis.v1",
            problem_name="Asthma", clinical_status=ProblemClinicalStatus.ACTIVE, recorded_date=datetime(2024, 3, 1),
        ), agent=ProvenanceAgent("clinician-7")).unwrap()
        (entry,) = storage.find("HealthRecordProvenance")

        assert rule_of(records.update("HealthRecordProvenance", entry.id, {"reason": "edited"})) == "append_only"
        assert rule_of(records.deactivate("HealthRecordProvenance", entry.id)) == "soft_lifecycle"


class TestCheckWrite:
    """check_write reports findings without raising."""

    def test_created_at_is_immutable(self, build, storage):
        """Test that created_at cannot change."""
        org = build.org()
        backdated = org.model_copy(update={"created_at": org.created_at - timedelta(days=1), "revision": 1})

        with storage.transaction() as tx:
            findings = RelationshipValidator().check_write(tx, backdated, previous=org)

        assert [f.rule for f in findings] == ["immutable_created_at"]

    def test_second_winner_reported(self, build, storage):
        """Test that a second preferred winner is reported."""
        org = build.org()
        build.create(contact(org.id, email="first@acme.test"))

        with storage.transaction() as tx:
            findings = RelationshipValidator().check_write(tx, contact(org.id, email="second@acme.test"))

        assert [f.rule for f in findings] == ["single_winner"]

    def test_advisory_findings_are_returned(self, storage):
        """Test that advisory findings are returned without raising."""
        validator = RelationshipValidator(mode=ValidationMode.ADVISORY)
        orphan = contact(uuid4())

        with storage.transaction() as tx:
            findings = validator.enforce(tx, orphan)

        assert len(findings) == 1
        assert findings[0].advisory
        assert findings[0].to_violation().rule == "fk_exists"
