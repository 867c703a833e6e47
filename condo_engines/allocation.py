"""
Module: condo_engines.allocation
Responsibility:
    Plan how one confirmed amount is distributed across a house's expected
    charges: whole units fill charges FIFO (by period, then by concept
    priority), the sub-unit part goes to the accumulated-cents bucket and
    anything left over becomes credit.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import condo_kernel/domain, condo_kernel/db/types and
    condo_kernel/logging_config.

Invariants enforced:
    - Conservation: total_allocated + surplus_credit + cents_added == amount,
      asserted on every plan.
    - Concept priority: penalties, maintenance, water, extraordinary fee,
      other.  A charge is filled completely before the next one starts.
    - Each planned line records the outstanding amount before the payment
      as its expected amount; its status is derived from the two.
    - Accumulated cents stay in [0, 1); each whole unit crossed converts
      to credit.

Failure modes:
    - NonPositiveAllocationError for amount <= 0.
    - InvalidAmountError for amounts with more than two decimals.
    - AllocationConservationError if the plan does not add up.

Audit relevance:
    The plan is what the allocation service persists, line for line, so
    replaying the same charges and amount reproduces the same rows.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from uuid import UUID

from condo_engines.tracer import traced_engine
from condo_kernel.db.types import ZERO, round_money, split_units
from condo_kernel.domain.payments import ConceptType, PaymentStatus, concept_rank
from condo_kernel.exceptions import (
    AllocationConservationError,
    InvalidAmountError,
    NonPositiveAllocationError,
)
from condo_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class ChargeLine:
    """One expected charge with what has already been paid against it."""

    period_id: UUID
    period_label: str
    period_start: date
    concept_type: ConceptType
    expected_amount: Decimal
    already_paid: Decimal = ZERO

    @property
    def outstanding(self) -> Decimal:
        return max(self.expected_amount - self.already_paid, ZERO)


@dataclass(frozen=True)
class PlannedAllocation:
    period_id: UUID
    period_label: str
    concept_type: ConceptType
    allocated_amount: Decimal
    expected_amount: Decimal
    payment_status: PaymentStatus


@dataclass(frozen=True)
class AllocationPlan:
    """
    Distribution of one amount.

    Guarantees:
        ``total_allocated + surplus_credit + cents_added == amount``.
    """

    amount: Decimal
    lines: tuple[PlannedAllocation, ...]
    surplus_credit: Decimal
    cents_added: Decimal
    accumulated_cents_before: Decimal
    accumulated_cents_after: Decimal
    cents_converted: Decimal

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.allocated_amount for line in self.lines), ZERO)

    @property
    def credit_increase(self) -> Decimal:
        return self.surplus_credit + self.cents_converted


def accumulate_cents(current: Decimal, added: Decimal) -> tuple[Decimal, Decimal]:
    """
    Add ``added`` to the cents bucket.

    Returns (new bucket value in [0, 1), whole units converted to credit).

    >>> accumulate_cents(Decimal("0.85"), Decimal("0.30"))
    (Decimal('0.15'), Decimal('1'))
    """
    total = current + added
    units = total.to_integral_value(rounding=ROUND_FLOOR)
    return total - units, units


class PaymentAllocationEngine:
    """
    FIFO allocation planner.

    Contract:
        Pure.  Receives the charges in any order; sorts them by period
        start then concept priority.

    Non-goals:
        - Does NOT decide which periods are eligible; the caller passes
          the arrears, the target period and the bounded lookahead.
        - Does NOT touch balances; it only reports the deltas.
    """

    @traced_engine(
        "payment_allocation", "1.0",
        fingerprint_fields=("amount", "charges", "accumulated_cents"),
    )
    def plan(
        self,
        amount: Decimal,
        charges: Sequence[ChargeLine],
        accumulated_cents: Decimal = ZERO,
    ) -> AllocationPlan:
        if amount <= 0:
            raise NonPositiveAllocationError(str(amount))
        if round_money(amount) != amount:
            raise InvalidAmountError(str(amount))

        whole, cents = split_units(amount)

        ordered = sorted(
            charges,
            key=lambda c: (c.period_start, concept_rank(c.concept_type)),
        )

        remaining = whole
        lines: list[PlannedAllocation] = []
        for charge in ordered:
            if remaining <= 0:
                break
            outstanding = charge.outstanding
            if outstanding <= 0:
                continue
            take = min(remaining, outstanding)
            lines.append(PlannedAllocation(
                period_id=charge.period_id,
                period_label=charge.period_label,
                concept_type=charge.concept_type,
                allocated_amount=take,
                expected_amount=outstanding,
                payment_status=PaymentStatus.derive(take, outstanding),
            ))
            remaining -= take

        new_cents, converted = accumulate_cents(accumulated_cents, cents)

        plan = AllocationPlan(
            amount=amount,
            lines=tuple(lines),
            surplus_credit=remaining,
            cents_added=cents,
            accumulated_cents_before=accumulated_cents,
            accumulated_cents_after=new_cents,
            cents_converted=converted,
        )

        accounted = plan.total_allocated + plan.surplus_credit + plan.cents_added
        if accounted != amount:
            raise AllocationConservationError(str(amount), str(accounted))

        logger.debug("allocation_planned", extra={
            "amount": str(amount),
            "lines": len(lines),
            "total_allocated": str(plan.total_allocated),
            "surplus_credit": str(plan.surplus_credit),
            "cents_added": str(cents),
            "cents_converted": str(converted),
        })
        return plan
