"""
Tests for the deposit matcher.

Covers:
- Date proximity scoring and the house mismatch factor
- Decision rule: auto-confirm, ties, below threshold, not-found, conflict
- Deterministic candidate ordering
- Metadata stored for operators
"""

from datetime import date, time
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from condo_engines.matching import (
    DepositMatcher,
    DepositSnapshot,
    MatchDecisionType,
    MatchingPolicy,
    VoucherSnapshot,
    date_difference_hours,
)
from condo_kernel.domain.reconciliation import ValidationStatus

DAY = date(2025, 3, 15)


def _deposit(amount="1500.15", on=DAY, at=time(10, 0), concept=None) -> DepositSnapshot:
    return DepositSnapshot(
        deposit_id=uuid4(),
        amount=Decimal(amount),
        date=on,
        time=at,
        concept=concept,
    )


def _voucher(amount="1500.15", on=DAY, at=time(10, 0), house=None, voucher_id=None) -> VoucherSnapshot:
    return VoucherSnapshot(
        voucher_id=voucher_id or uuid4(),
        amount=Decimal(amount),
        date=on,
        time=at,
        house_number=house,
    )


class TestDateDifference:

    def test_same_moment(self):
        assert date_difference_hours(DAY, time(10, 0), DAY, time(10, 0)) == Decimal("0")

    def test_hours_and_minutes(self):
        hours = date_difference_hours(DAY, time(10, 0), date(2025, 3, 16), time(16, 30))
        assert hours == Decimal("30.5")

    def test_symmetric(self):
        a = date_difference_hours(DAY, time(8, 0), date(2025, 3, 14), time(20, 0))
        b = date_difference_hours(date(2025, 3, 14), time(20, 0), DAY, time(8, 0))
        assert a == b == Decimal("12")

    def test_date_only_when_time_missing(self):
        assert date_difference_hours(DAY, None, date(2025, 3, 17), time(23, 0)) == Decimal("48")


class TestScoring:

    def setup_method(self):
        self.matcher = DepositMatcher()

    def test_same_moment_scores_one(self):
        scored = self.matcher.score_candidate(_deposit(), _voucher(), house_hint=15)
        assert scored.score == Decimal("1")

    def test_score_decays_linearly(self):
        scored = self.matcher.score_candidate(
            _deposit(), _voucher(at=time(22, 0)), house_hint=None,
        )
        # 12 hours of 36
        assert scored.score == Decimal("0.6667")
        assert scored.date_difference_hours == Decimal("12")

    def test_score_floor_is_zero(self):
        scored = self.matcher.score_candidate(
            _deposit(), _voucher(on=date(2025, 3, 20)), house_hint=None,
        )
        assert scored.score == Decimal("0")

    def test_house_mismatch_halves_score(self):
        scored = self.matcher.score_candidate(_deposit(), _voucher(house=20), house_hint=15)
        assert scored.score == Decimal("0.5")

    def test_no_penalty_without_hint(self):
        scored = self.matcher.score_candidate(_deposit(), _voucher(house=20), house_hint=None)
        assert scored.score == Decimal("1")


class TestDecisionRule:
    """Auto-confirm, manual review and not-found routing."""

    def setup_method(self):
        self.matcher = DepositMatcher()

    def test_single_exact_candidate_auto_confirms(self):
        voucher = _voucher(house=15)
        decision = self.matcher.decide(_deposit(), [voucher])

        assert decision.decision is MatchDecisionType.AUTO_CONFIRM
        assert decision.chosen.voucher_id == voucher.voucher_id
        assert decision.house_number == 15
        assert decision.validation_status is ValidationStatus.CONFIRMED

    def test_threshold_is_inclusive(self):
        # 1h48m of 36h gives exactly 0.95
        decision = self.matcher.decide(_deposit(), [_voucher(at=time(11, 48))])
        assert decision.candidates[0].score == Decimal("0.95")
        assert decision.decision is MatchDecisionType.AUTO_CONFIRM

    def test_single_candidate_below_threshold_is_manual(self):
        decision = self.matcher.decide(_deposit(), [_voucher(at=time(22, 0))])
        assert decision.decision is MatchDecisionType.REQUIRES_MANUAL
        assert "below auto-confirm threshold" in decision.reason
        assert decision.chosen is None

    def test_two_equal_candidates_are_manual(self):
        decision = self.matcher.decide(
            _deposit(amount="800.00"),
            [_voucher(amount="800.00"), _voucher(amount="800.00")],
        )
        assert decision.decision is MatchDecisionType.REQUIRES_MANUAL
        assert decision.validation_status is ValidationStatus.REQUIRES_MANUAL
        assert decision.tie_count == 2
        assert len(decision.candidates) == 2
        assert decision.reason == "2 vouchers with the same amount and similar scores"

    def test_clear_leader_auto_confirms(self):
        near = _voucher()
        far = _voucher(on=date(2025, 3, 16))
        decision = self.matcher.decide(_deposit(), [far, near])

        assert decision.decision is MatchDecisionType.AUTO_CONFIRM
        assert decision.chosen.voucher_id == near.voucher_id
        assert decision.tie_count == 1

    def test_candidates_within_closeness_count_as_tie(self):
        # 1.0 vs 0.9722 (one hour apart): inside the 0.05 closeness window
        decision = self.matcher.decide(
            _deposit(), [_voucher(), _voucher(at=time(11, 0))],
        )
        assert decision.decision is MatchDecisionType.REQUIRES_MANUAL
        assert decision.tie_count == 2

    def test_different_amount_is_not_a_candidate(self):
        decision = self.matcher.decide(_deposit(), [_voucher(amount="1500.16")])
        assert decision.decision is MatchDecisionType.NOT_FOUND
        assert decision.candidates == ()

    def test_not_found_with_house_hint(self):
        decision = self.matcher.decide(_deposit(), [])
        assert decision.decision is MatchDecisionType.NOT_FOUND
        assert decision.validation_status is ValidationStatus.NOT_FOUND
        assert decision.reason == "No voucher found, house 15 identified"

    def test_not_found_without_house(self):
        decision = self.matcher.decide(_deposit(amount="800.00"), [])
        assert decision.reason == (
            "No voucher found and no valid cents to identify house (voucher required)"
        )

    def test_excluded_vouchers_are_skipped(self):
        voucher = _voucher()
        decision = self.matcher.decide(
            _deposit(), [voucher], excluded_voucher_ids={voucher.voucher_id},
        )
        assert decision.decision is MatchDecisionType.NOT_FOUND

    def test_house_from_voucher_when_no_hint(self):
        decision = self.matcher.decide(_deposit(amount="800.00"), [_voucher(amount="800.00", house=12)])
        assert decision.decision is MatchDecisionType.AUTO_CONFIRM
        assert decision.house_number == 12

    def test_no_resolvable_house_is_manual(self):
        decision = self.matcher.decide(_deposit(amount="800.00"), [_voucher(amount="800.00")])
        assert decision.decision is MatchDecisionType.REQUIRES_MANUAL
        assert "no valid house number" in decision.reason

    def test_voucher_house_mismatch_is_manual(self):
        decision = self.matcher.decide(_deposit(), [_voucher(house=20)])
        assert decision.decision is MatchDecisionType.REQUIRES_MANUAL
        assert decision.candidates[0].score == Decimal("0.5")


class TestConflict:

    def setup_method(self):
        self.matcher = DepositMatcher()

    def test_conflict_short_circuits(self):
        voucher = _voucher(amount="1500.20")
        decision = self.matcher.decide(
            _deposit(amount="1500.20", concept="pago casa 15"), [voucher],
        )
        assert decision.decision is MatchDecisionType.CONFLICT
        assert decision.validation_status is ValidationStatus.CONFLICT
        assert decision.reason == (
            "House conflict: cents indicate house 20, concept indicates house 15"
        )
        # candidates are still reported for the operator
        assert [c.voucher_id for c in decision.candidates] == [voucher.voucher_id]
        assert decision.chosen is None


class TestDeterminism:

    def test_ties_ordered_by_voucher_id(self):
        ids = [UUID(int=3), UUID(int=1), UUID(int=2)]
        vouchers = [_voucher(amount="800.00", voucher_id=i) for i in ids]
        decision = DepositMatcher().decide(_deposit(amount="800.00"), vouchers)
        assert [c.voucher_id for c in decision.candidates] == sorted(ids, key=str)

    def test_same_inputs_same_decision(self):
        deposit = _deposit()
        vouchers = [_voucher(), _voucher(at=time(9, 0))]
        first = DepositMatcher().decide(deposit, vouchers)
        second = DepositMatcher().decide(deposit, list(reversed(vouchers)))
        assert first.candidates == second.candidates
        assert first.decision is second.decision


class TestPolicy:

    def test_custom_threshold(self):
        matcher = DepositMatcher(policy=MatchingPolicy(auto_confirm_threshold=Decimal("0.6")))
        decision = matcher.decide(_deposit(), [_voucher(at=time(22, 0))])
        assert decision.decision is MatchDecisionType.AUTO_CONFIRM

    @pytest.mark.parametrize("tolerance, expected", [("24", "0.5"), ("48", "0.75")])
    def test_date_tolerance(self, tolerance, expected):
        matcher = DepositMatcher(policy=MatchingPolicy(date_tolerance_hours=Decimal(tolerance)))
        scored = matcher.score_candidate(_deposit(), _voucher(at=time(22, 0)), None)
        assert scored.score == Decimal(expected)


class TestMetadata:

    def test_metadata_lists_candidates(self):
        decision = DepositMatcher().decide(
            _deposit(amount="800.00"),
            [_voucher(amount="800.00"), _voucher(amount="800.00")],
        )
        meta = decision.to_metadata()
        assert meta["decision"] == "requires_manual"
        assert meta["tie_count"] == 2
        assert meta["top_score"] == "1.0000"
        assert len(meta["candidates"]) == 2
        assert meta["candidates"][0]["score"] == "1.0000"
        assert meta["house_outcome"] == "none"

    def test_engine_trace_emitted(self, captured_logs):
        DepositMatcher().decide(_deposit(), [_voucher()])
        traces = [
            r for r in captured_logs()
            if r.get("trace_type") == "CONDO_ENGINE_TRACE"
            and r["engine_name"] == "deposit_matcher"
        ]
        assert len(traces) == 1
        assert len(traces[0]["input_fingerprint"]) == 16
