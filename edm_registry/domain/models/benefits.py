"""Benefits domain models.

A BenefitPlan is sponsored by an Org holding the HEALTH_PLAN_SPONSOR role
and composes coverage tiers (CoverageType) and limit templates (PlanLimit).
Coverages instantiate a tier; PlanMembers enroll Persons in a Coverage as
one SUBSCRIBER plus any number of DEPENDENTs. Accumulators keep running
totals against a PlanLimit per member (individual) or per coverage (family)
and per period.

Monetary amounts are Decimals so that stored values keep their exact scale.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from edm_registry.domain.enums import (
    BenefitCategory,
    BenefitType,
    CoverageStatus,
    CoverageTier,
    EligibilityStatus,
    LimitLevel,
    LimitType,
    MemberType,
    NetworkType,
    PeriodType,
    PlanType,
    SubscriberRelationshipType,
)
from edm_registry.domain.models.base import EffectiveDatedRecord, TrackedRecord, consistency_error


class BenefitPlan(EffectiveDatedRecord):
    """Benefit plan offered by a sponsor org, optionally scoped to a structure node."""

    sponsor_org_id: UUID
    org_structure_node_id: Optional[UUID] = None
    plan_name: str
    plan_code: Optional[str] = None
    plan_type: PlanType
    benefit_type: BenefitType
    is_active: bool


class CoverageType(EffectiveDatedRecord):
    """Coverage tier of a plan with its cost-sharing parameters.

    Parameters:
        benefit_plan_id: Owning plan
        name: Tier (SINGLE, FAMILY, ...), unique per plan
        in_network_*/out_of_network_*: Deductibles, coinsurance percentage and
            out-of-pocket maximums per network
        copay_*: Flat copays by visit type
    """

    benefit_plan_id: UUID
    name: CoverageTier
    in_network_deductible_individual: Optional[Decimal] = None
    in_network_deductible_family: Optional[Decimal] = None
    in_network_coinsurance: Optional[Decimal] = Field(None, ge=0, le=100)
    in_network_oop_max_individual: Optional[Decimal] = None
    in_network_oop_max_family: Optional[Decimal] = None
    out_of_network_deductible_individual: Optional[Decimal] = None
    out_of_network_deductible_family: Optional[Decimal] = None
    out_of_network_coinsurance: Optional[Decimal] = Field(None, ge=0, le=100)
    out_of_network_oop_max_individual: Optional[Decimal] = None
    out_of_network_oop_max_family: Optional[Decimal] = None
    copay_primary_care: Optional[Decimal] = None
    copay_specialist: Optional[Decimal] = None
    copay_emergency: Optional[Decimal] = None
    copay_urgent_care: Optional[Decimal] = None
    is_active: bool


class PlanLimit(EffectiveDatedRecord):
    """Limit template keyed by limit_type x network_type x level."""

    benefit_plan_id: UUID
    limit_type: LimitType
    benefit_category: Optional[BenefitCategory] = None
    network_type: NetworkType
    level: LimitLevel
    limit_amount: Optional[Decimal] = None
    limit_count: Optional[int] = None
    period_type: PeriodType
    is_active: bool


class Eligibility(EffectiveDatedRecord):
    """Eligibility of an Employee for a BenefitPlan."""

    employee_id: UUID
    benefit_plan_id: UUID
    status: EligibilityStatus


class Coverage(EffectiveDatedRecord):
    """Instantiation of a CoverageType."""

    coverage_type_id: UUID
    benefit_plan_id: UUID
    status: CoverageStatus


class PlanMember(EffectiveDatedRecord):
    """Person enrolled in a Coverage.

    A SUBSCRIBER carries no subscriber reference; a DEPENDENT references the
    subscriber of the same coverage through ``subscriber_plan_member_id``.
    """

    person_id: UUID
    coverage_id: UUID
    member_type: MemberType
    subscriber_plan_member_id: Optional[UUID] = None
    subscriber_relationship_type: Optional[SubscriberRelationshipType] = None
    wellnecity_id: Optional[str] = None
    subscriber_id: Optional[str] = None
    is_active: bool

    @model_validator(mode="after")
    def check_subscriber_reference(self) -> "PlanMember":
        if self.member_type == MemberType.SUBSCRIBER and self.subscriber_plan_member_id is not None:
            raise consistency_error("subscriber_plan_member_id", "a SUBSCRIBER cannot reference a subscriber")
        if self.member_type == MemberType.DEPENDENT:
            if self.subscriber_plan_member_id is None:
                raise consistency_error("subscriber_plan_member_id", "a DEPENDENT must reference its subscriber")
            if self.subscriber_plan_member_id == self.id:
                raise consistency_error("subscriber_plan_member_id", "a DEPENDENT cannot reference itself")
        return self


class Accumulator(TrackedRecord):
    """Running total against a PlanLimit over [period_start, period_end).

    Exactly one of ``plan_member_id`` (individual scope) and ``coverage_id``
    (family scope) is set.
    """

    plan_limit_id: UUID
    plan_member_id: Optional[UUID] = None
    coverage_id: Optional[UUID] = None
    period_start: date
    period_end: date
    accumulated_amount: Decimal = Field(Decimal("0"), ge=0)
    accumulated_count: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_scope_and_period(self) -> "Accumulator":
        if (self.plan_member_id is None) == (self.coverage_id is None):
            raise consistency_error("coverage_id", "exactly one of plan_member_id and coverage_id must be set")
        if self.period_start >= self.period_end:
            raise consistency_error("period_end", "period_end must be after period_start")
        return self


class AccumulatorPosting(TrackedRecord):
    """Applied accumulator event, recorded under its idempotency key.

    Replaying an event with a key already posted is a no-op.
    """

    idempotency_key: str = Field(..., max_length=255)
    accumulator_id: UUID
    plan_limit_id: UUID
    event_date: date
    amount: Decimal = Field(Decimal("0"), ge=0)
    count: int = Field(0, ge=0)
