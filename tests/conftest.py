"""Shared fixtures: stores, a fast-retry record service and a graph builder."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import pytest

from edm_registry.adapters.storage import DuckDBAdapter, InMemoryStorageAdapter
from edm_registry.domain.enums import (
    BenefitType,
    CompositionCategory,
    CompositionStatus,
    CompositionType,
    CoverageStatus,
    CoverageTier,
    LimitLevel,
    LimitType,
    MemberType,
    NetworkType,
    PeriodType,
    PlanType,
    RoleType,
)
from edm_registry.domain.guardrails import RetryConfig, RetryPolicy
from edm_registry.domain.models import (
    BenefitPlan,
    Coverage,
    CoverageType,
    HealthRecordComposition,
    Org,
    OrgRole,
    Person,
    PlanLimit,
    PlanMember,
)
from edm_registry.domain.registry import REGISTRY
from edm_registry.domain.services import RecordService, RelationshipValidator

EFFECTIVE = date(2024, 1, 1)


def fast_retry(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(RetryConfig(max_attempts=max_attempts, min_wait=0, max_wait=0))


class GraphBuilder:
    """Creates valid records through the write path, one helper per entity."""

    def __init__(self, records: RecordService):
        self.records = records

    def create(self, record):
        return self.records.create(record).unwrap()

    def org(self, name: str = "Acme Corp", **fields) -> Org:
        fields.setdefault("is_active", True)
        return self.create(Org.new(name=name, **fields))

    def role(self, org: Org, role_type: RoleType, **fields) -> OrgRole:
        fields.setdefault("effective_date", EFFECTIVE)
        fields.setdefault("is_active", True)
        return self.create(OrgRole.new(org_id=org.id, role_type=role_type, **fields))

    def org_with_role(self, role_type: RoleType, name: str = "Acme Corp") -> tuple[Org, OrgRole]:
        org = self.org(name)
        return org, self.role(org, role_type)

    def person(self, first_name: str = "Ada", last_name: str = "Lovelace", **fields) -> Person:
        fields.setdefault("is_active", True)
        return self.create(Person.new(first_name=first_name, last_name=last_name, **fields))

    def plan(self, effective_date: date = EFFECTIVE, **fields) -> BenefitPlan:
        sponsor, _ = self.org_with_role(RoleType.HEALTH_PLAN_SPONSOR, name="Sponsor Inc")
        fields.setdefault("plan_name", "Gold PPO")
        fields.setdefault("plan_type", PlanType.PPO)
        fields.setdefault("benefit_type", BenefitType.MEDICAL)
        fields.setdefault("is_active", True)
        return self.create(BenefitPlan.new(sponsor_org_id=sponsor.id, effective_date=effective_date, **fields))

    def coverage(self, plan: BenefitPlan, tier: CoverageTier = CoverageTier.FAMILY) -> Coverage:
        coverage_type = self.create(CoverageType.new(
            benefit_plan_id=plan.id, name=tier, effective_date=plan.effective_date, is_active=True,
        ))
        return self.create(Coverage.new(
            coverage_type_id=coverage_type.id, benefit_plan_id=plan.id,
            status=CoverageStatus.ACTIVE, effective_date=plan.effective_date,
        ))

    def subscriber(self, coverage: Coverage, person: Optional[Person] = None, **fields) -> PlanMember:
        person = person or self.person()
        fields.setdefault("is_active", True)
        return self.create(PlanMember.new(
            person_id=person.id, coverage_id=coverage.id, member_type=MemberType.SUBSCRIBER,
            effective_date=coverage.effective_date, **fields,
        ))

    def dependent(self, coverage: Coverage, subscriber: PlanMember, person: Optional[Person] = None) -> PlanMember:
        person = person or self.person("Byron", "Lovelace")
        return self.create(PlanMember.new(
            person_id=person.id, coverage_id=coverage.id, member_type=MemberType.DEPENDENT,
            subscriber_plan_member_id=subscriber.id, effective_date=coverage.effective_date, is_active=True,
        ))

    def limit(
        self,
        plan: BenefitPlan,
        level: LimitLevel = LimitLevel.INDIVIDUAL,
        period_type: PeriodType = PeriodType.CALENDAR_YEAR,
        limit_amount: Optional[Decimal] = Decimal("1500.00"),
        **fields,
    ) -> PlanLimit:
        fields.setdefault("effective_date", plan.effective_date)
        fields.setdefault("limit_type", LimitType.DEDUCTIBLE)
        fields.setdefault("network_type", NetworkType.IN_NETWORK)
        fields.setdefault("is_active", True)
        return self.create(PlanLimit.new(
            benefit_plan_id=plan.id, level=level, period_type=period_type, limit_amount=limit_amount, **fields,
        ))

    def composition(self, member: Optional[Person] = None, employer: Optional[Org] = None, **fields):
        member = member or self.person()
        employer = employer or self.org("Employer LLC")
        fields.setdefault("archetype_id", "openEHR-EHR-COMPOSITION.encounter.v1")
        fields.setdefault("composition_type", CompositionType.ENCOUNTER)
        fields.setdefault("category", CompositionCategory.EVENT)
        fields.setdefault("context_start_time", datetime(2024, 3, 1, 9, 30))
        fields.setdefault("version_number", 1)
        fields.setdefault("is_current", True)
        fields.setdefault("status", CompositionStatus.ACTIVE)
        return self.create(HealthRecordComposition.new(member_id=member.id, employer_id=employer.id, **fields))


@pytest.fixture
def storage():
    adapter = InMemoryStorageAdapter()
    adapter.initialize_schema(REGISTRY)
    yield adapter
    adapter.close()


@pytest.fixture
def duckdb_storage():
    adapter = DuckDBAdapter(db_path=":memory:")
    adapter.initialize_schema(REGISTRY).unwrap()
    yield adapter
    adapter.close()


@pytest.fixture(params=["memory", "duckdb"])
def any_storage(request):
    """Each storage adapter in turn."""
    return request.getfixturevalue("storage" if request.param == "memory" else "duckdb_storage")


@pytest.fixture
def retry() -> RetryPolicy:
    return fast_retry()


@pytest.fixture
def records(storage, retry) -> RecordService:
    return RecordService(storage, relationships=RelationshipValidator(), retry=retry)


@pytest.fixture
def build(records) -> GraphBuilder:
    return GraphBuilder(records)


@pytest.fixture
def any_records(any_storage, retry) -> RecordService:
    return RecordService(any_storage, retry=retry)


@pytest.fixture
def any_build(any_records) -> GraphBuilder:
    return GraphBuilder(any_records)
