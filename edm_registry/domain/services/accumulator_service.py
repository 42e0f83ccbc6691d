"""Accumulator Service - applies spend and utilization events to plan limits.

An event against a PlanLimit for a member (INDIVIDUAL limits) or a coverage
(FAMILY limits) lands on the Accumulator row whose [period_start, period_end)
contains the event date. The row is created on first use and only ever
incremented. A new period starts a new row at zero; rows of earlier periods
are left as they were.

Events carrying an idempotency key are recorded as AccumulatorPosting rows
in the same transaction as the increment, so a replayed event is a no-op.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

from edm_registry.domain.enums import PeriodType
from edm_registry.domain.models import Accumulator, AccumulatorPosting, PlanLimit
from edm_registry.domain.ports import (
    FieldViolation,
    RelationshipViolation,
    Result,
    StorageTransaction,
    StructuralViolation,
)
from edm_registry.domain.services.record_service import RecordService

logger = logging.getLogger(__name__)

LIFETIME_END = date(9999, 12, 31)


@dataclass(frozen=True)
class MemberScope:
    """Individual scope: one plan member."""
    plan_member_id: UUID

    def criteria(self) -> dict[str, Any]:
        return {"plan_member_id": self.plan_member_id, "coverage_id": None}


@dataclass(frozen=True)
class CoverageScope:
    """Family scope: every member of one coverage."""
    coverage_id: UUID

    def criteria(self) -> dict[str, Any]:
        return {"plan_member_id": None, "coverage_id": self.coverage_id}


AccumulatorScope = Union[MemberScope, CoverageScope]


@dataclass(frozen=True)
class Period:
    """Half-open accumulation window [start, end)."""
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


@dataclass(frozen=True)
class AccumulatorEvent:
    """A claim-like event counted against a plan limit.

    Attributes:
        plan_limit_id: Limit the event counts against
        scope: Member or coverage the event belongs to
        event_date: Date of service; selects the period
        amount: Monetary amount to add (never negative)
        count: Utilization count to add (never negative)
        idempotency_key: External key; an event seen before is not applied again
    """
    plan_limit_id: UUID
    scope: AccumulatorScope
    event_date: date
    amount: Decimal = Decimal("0")
    count: int = 0
    idempotency_key: Optional[str] = None


def _anniversary(anchor: date, year: int) -> date:
    # Feb 29 anchors fall on Feb 28 in common years
    if anchor.month == 2 and anchor.day == 29:
        try:
            return anchor.replace(year=year)
        except ValueError:
            return date(year, 2, 28)
    return anchor.replace(year=year)


class AccumulatorService:
    """Locate-or-create and increment accumulators through the record service.

    Example Usage:
        ```python
        accumulators = AccumulatorService(records)
        result = accumulators.apply_event(AccumulatorEvent(
            plan_limit_id=limit.id,
            scope=MemberScope(member.id),
            event_date=date(2024, 3, 1),
            amount=Decimal("125.00"),
            idempotency_key="claim-884213-line-1",
        ))
        ```
    """

    def __init__(self, records: RecordService):
        self.records = records

    def period_for(self, view: StorageTransaction, limit: PlanLimit, day: date) -> Period:
        """Accumulation period of ``limit`` containing ``day``.

        CALENDAR_YEAR periods run Jan 1 to Jan 1. PLAN_YEAR periods run from
        one anniversary of the plan's effective date to the next. LIFETIME is
        a single period from the limit's effective date.
        """
        if limit.period_type == PeriodType.CALENDAR_YEAR:
            return Period(date(day.year, 1, 1), date(day.year + 1, 1, 1))
        if limit.period_type == PeriodType.LIFETIME:
            return Period(limit.effective_date, LIFETIME_END)

        plan = view.get("BenefitPlan", limit.benefit_plan_id)
        anchor = plan.effective_date if plan is not None else limit.effective_date
        start_year = day.year if _anniversary(anchor, day.year) <= day else day.year - 1
        return Period(_anniversary(anchor, start_year), _anniversary(anchor, start_year + 1))

    def apply_event(self, event: AccumulatorEvent) -> Result[Accumulator]:
        """Add ``event`` to the accumulator of its period.

        Returns:
            Result[Accumulator]: The accumulator after the increment, or the
            current one when the idempotency key was already posted
        """
        violations = []
        if event.amount < 0:
            violations.append(FieldViolation("amount", "minimum", "amount must not be negative", event.amount))
        if event.count < 0:
            violations.append(FieldViolation("count", "minimum", "count must not be negative", event.count))
        if violations:
            return Result.failure_result(StructuralViolation("Accumulator", violations))

        return self.records.transact(lambda tx: self._apply(tx, event))

    def rollover(self, plan_limit_id: UUID, scope: AccumulatorScope, as_of: date) -> Result[Accumulator]:
        """Open the period containing ``as_of`` at zero.

        Existing rows, including the one of the period being closed, are not
        touched. Rolling over into a period that already has a row returns
        that row.
        """
        def unit(tx: StorageTransaction) -> Accumulator:
            limit = self._get_limit(tx, plan_limit_id, as_of)
            accumulator = self._locate_or_create(tx, limit, scope, self.period_for(tx, limit, as_of))
            logger.info(
                f"Rolled over limit {plan_limit_id} to period "
                f"{accumulator.period_start}..{accumulator.period_end} ({accumulator.id})"
            )
            return accumulator

        return self.records.transact(unit)

    def balance(self, plan_limit_id: UUID, scope: AccumulatorScope, on: date) -> Optional[Accumulator]:
        """Accumulator of the period containing ``on``, if any event reached it."""
        storage = self.records.storage
        limit = storage.get("PlanLimit", plan_limit_id)
        if limit is None:
            return None
        period = self.period_for(storage, limit, on)
        rows = storage.find("Accumulator", plan_limit_id=plan_limit_id, period_start=period.start, **scope.criteria())
        return rows[0] if rows else None

    def remaining(self, plan_limit_id: UUID, scope: AccumulatorScope, on: date) -> Optional[Decimal]:
        """Amount left before ``limit_amount`` is reached; None for count-only limits."""
        limit = self.records.storage.get("PlanLimit", plan_limit_id)
        if limit is None or limit.limit_amount is None:
            return None
        accumulator = self.balance(plan_limit_id, scope, on)
        used = accumulator.accumulated_amount if accumulator else Decimal("0")
        return max(limit.limit_amount - used, Decimal("0"))

    def _apply(self, tx: StorageTransaction, event: AccumulatorEvent) -> Accumulator:
        if event.idempotency_key is not None:
            postings = tx.find("AccumulatorPosting", idempotency_key=event.idempotency_key)
            if postings:
                logger.info(f"Event {event.idempotency_key} already posted; skipping")
                return tx.get("Accumulator", postings[0].accumulator_id)

        limit = self._get_limit(tx, event.plan_limit_id, event.event_date)
        current = self._locate_or_create(tx, limit, event.scope, self.period_for(tx, limit, event.event_date))
        incremented = self.records.revise(current, {
            "accumulated_amount": current.accumulated_amount + event.amount,
            "accumulated_count": current.accumulated_count + event.count,
        })
        stored = self.records.write(tx, incremented, previous=current)

        if event.idempotency_key is not None:
            self.records.write(tx, AccumulatorPosting.new(
                idempotency_key=event.idempotency_key,
                accumulator_id=stored.id,
                plan_limit_id=limit.id,
                event_date=event.event_date,
                amount=event.amount,
                count=event.count,
            ))
        logger.debug(f"Accumulator {stored.id} now {stored.accumulated_amount} / {stored.accumulated_count}")
        return stored

    @staticmethod
    def _get_limit(tx: StorageTransaction, plan_limit_id: UUID, day: date) -> PlanLimit:
        limit = tx.get("PlanLimit", plan_limit_id)
        if limit is None:
            raise RelationshipViolation(
                f"PlanLimit {plan_limit_id} not found", entity="Accumulator", rule="fk_exists",
                field="plan_limit_id", related_entity="PlanLimit", related_id=plan_limit_id,
            )
        if day < limit.effective_date or (limit.termination_date is not None and day > limit.termination_date):
            raise RelationshipViolation(
                f"{day} is outside the effective window of PlanLimit {plan_limit_id}",
                entity="Accumulator", rule="accumulator_period", field="period_start",
                related_entity="PlanLimit", related_id=plan_limit_id,
            )
        return limit

    def _locate_or_create(
        self, tx: StorageTransaction, limit: PlanLimit, scope: AccumulatorScope, period: Period
    ) -> Accumulator:
        rows = tx.find("Accumulator", plan_limit_id=limit.id, period_start=period.start, **scope.criteria())
        if rows:
            return rows[0]
        created = Accumulator.new(
            plan_limit_id=limit.id,
            period_start=period.start,
            period_end=period.end,
            **scope.criteria(),
        )
        logger.info(f"Opened accumulator {created.id} for limit {limit.id} over {period.start}..{period.end}")
        return self.records.write(tx, created)
