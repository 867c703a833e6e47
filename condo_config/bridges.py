"""
Config -> Kernel/Engine Bridges.

Functions that convert CondoSettings into the value objects the kernel and
engines accept.  They live here because neither the kernel nor the engines
may import condo_config.

Usage:
    from condo_config import get_active_settings
    from condo_config.bridges import build_matching_policy, build_house_bounds

    settings = get_active_settings()
    matcher = DepositMatcher(
        build_matching_policy(settings),
        build_house_identifier(settings),
    )
"""

from __future__ import annotations

from condo_config.schema import CondoSettings
from condo_engines.house_identifier import ConceptConfidence, HouseIdentifier
from condo_engines.matching import DepositMatcher, MatchingPolicy
from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.domain.payments import ChargeFallbacks


def build_house_bounds(settings: CondoSettings) -> HouseNumberBounds:
    return HouseNumberBounds(
        min_number=settings.houses.min_number,
        max_number=settings.houses.max_number,
    )


def build_matching_policy(settings: CondoSettings) -> MatchingPolicy:
    rec = settings.reconciliation
    return MatchingPolicy(
        date_tolerance_hours=rec.date_tolerance_hours,
        auto_confirm_threshold=rec.auto_confirm_threshold,
        closeness_threshold=rec.closeness_threshold,
        house_mismatch_factor=rec.house_mismatch_factor,
        amount_tolerance=rec.amount_tolerance,
    )


def build_house_identifier(settings: CondoSettings) -> HouseIdentifier:
    return HouseIdentifier(
        bounds=build_house_bounds(settings),
        min_concept_confidence=ConceptConfidence(
            settings.reconciliation.min_concept_confidence
        ),
    )


def build_deposit_matcher(settings: CondoSettings) -> DepositMatcher:
    return DepositMatcher(
        policy=build_matching_policy(settings),
        identifier=build_house_identifier(settings),
    )


def build_charge_fallbacks(settings: CondoSettings) -> ChargeFallbacks:
    pay = settings.payments
    return ChargeFallbacks(
        maintenance_amount=pay.maintenance_amount,
        water_amount=pay.water_amount,
        extraordinary_fee_amount=pay.extraordinary_fee_amount,
        late_payment_penalty_amount=pay.late_payment_penalty_amount,
        cents_credit_threshold=pay.cents_credit_threshold,
        payment_due_day=pay.payment_due_day,
        max_periods_for_distribution=pay.max_periods_for_distribution,
    )
