"""
CondoSettings schema.

Typed, frozen view of ``defaults.yaml`` (or an operator-supplied file).
The loader parses YAML into these types; bridges turn them into kernel
and engine inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class HouseSettings:
    min_number: int = 1
    max_number: int = 66


@dataclass(frozen=True)
class ReconciliationSettings:
    """Matching thresholds and batch sizing."""

    date_tolerance_hours: Decimal = Decimal("36")
    auto_confirm_threshold: Decimal = Decimal("0.95")
    closeness_threshold: Decimal = Decimal("0.05")
    house_mismatch_factor: Decimal = Decimal("0.5")
    amount_tolerance: Decimal = Decimal("0.01")
    min_concept_confidence: str = "medium"
    chunk_size: int = 500


@dataclass(frozen=True)
class PaymentDefaults:
    """Fallback charge amounts used when no PeriodConfig value is set."""

    maintenance_amount: Decimal = Decimal("800")
    water_amount: Decimal = Decimal("0")
    extraordinary_fee_amount: Decimal = Decimal("0")
    late_payment_penalty_amount: Decimal = Decimal("100")
    cents_credit_threshold: Decimal = Decimal("100")
    payment_due_day: int = 15
    max_periods_for_distribution: int = 12


@dataclass(frozen=True)
class SystemIds:
    user_id: UUID = UUID("00000000-0000-0000-0000-000000000000")
    record_id: UUID = UUID("00000000-0000-0000-0000-000000000000")


@dataclass(frozen=True)
class CondoSettings:
    """The complete runtime configuration."""

    name: str = "default"
    version: int = 1
    currency: str = "MXN"
    houses: HouseSettings = field(default_factory=HouseSettings)
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    payments: PaymentDefaults = field(default_factory=PaymentDefaults)
    system: SystemIds = field(default_factory=SystemIds)
    checksum: str = ""
