"""
condo_engines.matching -- Deposit to voucher matching and decision rule.

Responsibility:
    For one unconfirmed deposit and the pool of unconfirmed vouchers,
    find the vouchers with the same amount, score each by date proximity
    and house agreement, and decide: auto-confirm, manual review,
    not-found or house conflict.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import condo_kernel/domain, condo_kernel/logging_config and
    sibling engines.

Invariants enforced:
    - Candidates are exact amount matches (|delta| < amount_tolerance).
    - score = date_score * house_factor, in [0, 1], four decimal places,
      where date_score = max(0, 1 - hours / date_tolerance_hours).
    - Candidates are ordered by score desc, date difference asc, then
      voucher id, so identical inputs give identical decisions.
    - Ambiguity never raises: it routes to REQUIRES_MANUAL.
    - A house conflict always short-circuits to CONFLICT; the amount
      candidates are still reported.

Failure modes:
    - None for well-formed snapshots.

Audit relevance:
    ``MatchDecision.to_metadata()`` records every candidate with its score
    and the reason text shown to operators.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from condo_engines.house_identifier import HouseIdentification, HouseIdentifier
from condo_engines.tracer import traced_engine
from condo_kernel.domain.reconciliation import CandidateSnapshot, ValidationStatus
from condo_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

SCORE_QUANTUM = Decimal("0.0001")
HOURS_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class MatchingPolicy:
    """
    Immutable matching thresholds.

    Built from configuration by ``condo_config.bridges``.
    """

    date_tolerance_hours: Decimal = Decimal("36")
    auto_confirm_threshold: Decimal = Decimal("0.95")
    closeness_threshold: Decimal = Decimal("0.05")
    house_mismatch_factor: Decimal = Decimal("0.5")
    amount_tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class DepositSnapshot:
    deposit_id: UUID
    amount: Decimal
    date: date
    time: time | None = None
    concept: str | None = None


@dataclass(frozen=True)
class VoucherSnapshot:
    voucher_id: UUID
    amount: Decimal
    date: date
    time: time | None = None
    house_number: int | None = None


@dataclass(frozen=True)
class ScoredCandidate:
    voucher_id: UUID
    score: Decimal
    date_difference_hours: Decimal
    voucher_house_number: int | None = None

    def to_snapshot(self) -> CandidateSnapshot:
        return CandidateSnapshot(
            voucher_id=self.voucher_id,
            score=self.score,
            date_difference_hours=self.date_difference_hours,
            voucher_house_number=self.voucher_house_number,
        )


class MatchDecisionType(str, Enum):
    AUTO_CONFIRM = "auto_confirm"
    REQUIRES_MANUAL = "requires_manual"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class MatchDecision:
    """
    Outcome of matching one deposit.

    Contract:
        ``chosen`` and ``house_number`` are set only for AUTO_CONFIRM.
    """

    decision: MatchDecisionType
    identification: HouseIdentification
    candidates: tuple[ScoredCandidate, ...]
    reason: str
    tie_count: int = 0
    chosen: ScoredCandidate | None = None
    house_number: int | None = None

    @property
    def validation_status(self) -> ValidationStatus:
        match self.decision:
            case MatchDecisionType.AUTO_CONFIRM:
                return ValidationStatus.CONFIRMED
            case MatchDecisionType.REQUIRES_MANUAL:
                return ValidationStatus.REQUIRES_MANUAL
            case MatchDecisionType.NOT_FOUND:
                return ValidationStatus.NOT_FOUND
            case MatchDecisionType.CONFLICT:
                return ValidationStatus.CONFLICT

    def to_metadata(self) -> dict[str, Any]:
        data = self.identification.to_metadata()
        data.update({
            "decision": self.decision.value,
            "tie_count": self.tie_count,
            "candidates": [c.to_snapshot().to_json() for c in self.candidates],
        })
        if self.candidates:
            data["top_score"] = str(self.candidates[0].score)
        return data


def date_difference_hours(
    first_date: date,
    first_time: time | None,
    second_date: date,
    second_time: time | None,
) -> Decimal:
    """
    Absolute difference in hours.

    When either side has no time the comparison is by date only.
    """
    if first_time is None or second_time is None:
        days = abs((first_date - second_date).days)
        return Decimal(days * 24).quantize(HOURS_QUANTUM)
    delta = abs(
        datetime.combine(first_date, first_time)
        - datetime.combine(second_date, second_time)
    )
    seconds = Decimal(delta.days * 86400 + delta.seconds)
    return (seconds / Decimal(3600)).quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)


class DepositMatcher:
    """
    Scores voucher candidates for a deposit and applies the decision rule.

    Contract:
        Pure.  ``decide`` never mutates its inputs; callers pass the ids of
        vouchers already consumed in the current run as
        ``excluded_voucher_ids``.

    Guarantees:
        - 0 candidates -> NOT_FOUND.
        - 1 candidate -> AUTO_CONFIRM when score >= threshold, else manual.
        - 2+ candidates -> manual when two or more lie within the closeness
          threshold of the leader; otherwise AUTO_CONFIRM when the leader
          reaches the threshold, else manual.
        - AUTO_CONFIRM requires a resolvable house (hint or voucher house).

    Non-goals:
        - Does NOT persist anything or touch balances.
    """

    def __init__(
        self,
        policy: MatchingPolicy | None = None,
        identifier: HouseIdentifier | None = None,
    ):
        self.policy = policy or MatchingPolicy()
        self.identifier = identifier or HouseIdentifier()

    def score_candidate(
        self,
        deposit: DepositSnapshot,
        voucher: VoucherSnapshot,
        house_hint: int | None,
    ) -> ScoredCandidate:
        hours = date_difference_hours(deposit.date, deposit.time, voucher.date, voucher.time)
        date_score = max(
            Decimal("0"),
            Decimal("1") - hours / self.policy.date_tolerance_hours,
        )
        house_factor = Decimal("1")
        if (
            house_hint is not None
            and voucher.house_number is not None
            and voucher.house_number != house_hint
        ):
            house_factor = self.policy.house_mismatch_factor

        score = (date_score * house_factor).quantize(SCORE_QUANTUM, rounding=ROUND_HALF_UP)
        return ScoredCandidate(
            voucher_id=voucher.voucher_id,
            score=score,
            date_difference_hours=hours,
            voucher_house_number=voucher.house_number,
        )

    @traced_engine("deposit_matcher", "1.0", fingerprint_fields=("deposit", "vouchers"))
    def decide(
        self,
        deposit: DepositSnapshot,
        vouchers: Sequence[VoucherSnapshot],
        excluded_voucher_ids: Collection[UUID] = frozenset(),
    ) -> MatchDecision:
        identification = self.identifier.identify(deposit.amount, deposit.concept)

        logger.debug("match_search_started", extra={
            "deposit_id": str(deposit.deposit_id),
            "voucher_pool": len(vouchers),
        })

        candidates = sorted(
            (
                self.score_candidate(deposit, voucher, identification.hint)
                for voucher in vouchers
                if voucher.voucher_id not in excluded_voucher_ids
                and abs(voucher.amount - deposit.amount) < self.policy.amount_tolerance
            ),
            key=lambda c: (-c.score, c.date_difference_hours, str(c.voucher_id)),
        )
        candidates = tuple(candidates)

        decision = self._apply_rule(identification, candidates)

        logger.info("match_decided", extra={
            "deposit_id": str(deposit.deposit_id),
            "decision": decision.decision.value,
            "candidate_count": len(candidates),
            "tie_count": decision.tie_count,
            "top_score": str(candidates[0].score) if candidates else "0",
            "house_outcome": identification.outcome.value,
        })
        return decision

    def _apply_rule(
        self,
        identification: HouseIdentification,
        candidates: tuple[ScoredCandidate, ...],
    ) -> MatchDecision:
        if identification.is_conflict:
            return MatchDecision(
                decision=MatchDecisionType.CONFLICT,
                identification=identification,
                candidates=candidates,
                reason=(
                    f"House conflict: cents indicate house {identification.cents_house}, "
                    f"concept indicates house {identification.concept_house}"
                ),
            )

        if not candidates:
            hint = identification.hint
            reason = (
                f"No voucher found, house {hint} identified"
                if hint is not None
                else "No voucher found and no valid cents to identify house (voucher required)"
            )
            return MatchDecision(
                decision=MatchDecisionType.NOT_FOUND,
                identification=identification,
                candidates=(),
                reason=reason,
            )

        leader = candidates[0]
        tie_count = sum(
            1 for c in candidates
            if leader.score - c.score <= self.policy.closeness_threshold
        )

        def manual(reason: str) -> MatchDecision:
            return MatchDecision(
                decision=MatchDecisionType.REQUIRES_MANUAL,
                identification=identification,
                candidates=candidates,
                reason=reason,
                tie_count=tie_count,
            )

        if len(candidates) > 1 and tie_count >= 2:
            return manual(
                f"{tie_count} vouchers with the same amount and similar scores"
            )
        if leader.score < self.policy.auto_confirm_threshold:
            return manual(
                f"Best candidate score {leader.score} below auto-confirm threshold "
                f"{self.policy.auto_confirm_threshold}"
            )

        house_number = identification.hint
        if house_number is None:
            house_number = leader.voucher_house_number
        if house_number is None or not self.identifier.bounds.contains(house_number):
            return manual("Voucher matched but no valid house number could be identified")

        return MatchDecision(
            decision=MatchDecisionType.AUTO_CONFIRM,
            identification=identification,
            candidates=candidates,
            reason=f"Matched voucher with score {leader.score}",
            tie_count=tie_count,
            chosen=leader,
            house_number=house_number,
        )
