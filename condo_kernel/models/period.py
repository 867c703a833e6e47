"""
Module: condo_kernel.models.period
Responsibility: ORM persistence for billing periods, the effective-dated
    charge configuration, per-house overrides and the materialized
    expected charges of each house and period.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (year, month) is unique per Period.
    - (house, period, concept) is unique for overrides and for charges.
    - HousePeriodCharge.expected_amount is write-once: a before_update
      listener rejects any change, and before_delete rejects removal.
    - A condoned charge stays condoned: condoned_at may be set once and
      never cleared.
    - At most one active PeriodConfig is open-ended.  PeriodService closes
      the prior one before inserting a new one; this module only stores.

Failure modes:
    - IntegrityError on a duplicate period or a concurrent double
      materialization of the same charge.
    - ImmutabilityViolationError on charge mutation.

Audit relevance:
    HousePeriodCharge.source explains where every expected amount came
    from (override, period config, fallback, manual initial debt or penalty
    assessment).  Condonation is recorded on the charge, never by deleting it.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from condo_kernel.db.base import TrackedBase, UUIDString
from condo_kernel.exceptions import ImmutabilityViolationError

CONCEPT_CHECK = (
    "concept_type IN ('penalties', 'maintenance', 'water', "
    "'extraordinary_fee', 'other')"
)


class Period(TrackedBase):
    """
    A calendar month of billing.

    Concept flags decide whether water and extraordinary fee charges are
    materialized for houses in this period.
    """

    __tablename__ = "periods"

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_period_year_month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="chk_period_month"),
        Index("idx_period_start", "start_date"),
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    water_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    extraordinary_fee_active: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __repr__(self) -> str:
        return f"<Period {self.label}>"


class PeriodConfig(TrackedBase):
    """
    Effective-dated charge defaults.

    Contract:
        A null default amount means "use the hard-coded fallback".
        effective_until null means open-ended.
    """

    __tablename__ = "period_configs"

    __table_args__ = (
        CheckConstraint(
            "effective_until IS NULL OR effective_until >= effective_from",
            name="chk_period_config_range",
        ),
        CheckConstraint(
            "payment_due_day BETWEEN 1 AND 31",
            name="chk_period_config_due_day",
        ),
        Index("idx_period_config_effective", "is_active", "effective_from"),
    )

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)

    effective_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    default_maintenance_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    default_water_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    default_extraordinary_fee_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    payment_due_day: Mapped[int] = mapped_column(Integer, default=15, nullable=False)

    late_payment_penalty_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    cents_credit_threshold: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def is_applicable_for(self, as_of: date) -> bool:
        if not self.is_active or as_of < self.effective_from:
            return False
        return self.effective_until is None or as_of <= self.effective_until

    def default_amount_for(self, concept_type: str) -> Decimal | None:
        """Configured default for a concept, or None when unset."""
        match concept_type:
            case "maintenance":
                return self.default_maintenance_amount
            case "water":
                return self.default_water_amount
            case "extraordinary_fee":
                return self.default_extraordinary_fee_amount
            case "penalties":
                return self.late_payment_penalty_amount
            case _:
                return None

    def __repr__(self) -> str:
        return f"<PeriodConfig {self.effective_from}..{self.effective_until}>"


class HousePeriodOverride(TrackedBase):
    """Custom expected amount for one house, period and concept."""

    __tablename__ = "house_period_overrides"

    __table_args__ = (
        UniqueConstraint(
            "house_id", "period_id", "concept_type",
            name="uq_house_period_override",
        ),
        CheckConstraint(CONCEPT_CHECK, name="chk_override_concept"),
        CheckConstraint("custom_amount >= 0", name="chk_override_amount"),
    )

    house_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("houses.id"),
        nullable=False,
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("periods.id"),
        nullable=False,
    )

    concept_type: Mapped[str] = mapped_column(String(30), nullable=False)

    custom_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)


class HousePeriodCharge(TrackedBase):
    """
    Materialized expected charge.  Write-once.

    Guarantees:
        - UNIQUE(house_id, period_id, concept_type).
        - expected_amount never changes after the first flush.
        - condoned_at is set at most once.
    """

    __tablename__ = "house_period_charges"

    __table_args__ = (
        UniqueConstraint(
            "house_id", "period_id", "concept_type",
            name="uq_house_period_charge",
        ),
        CheckConstraint(CONCEPT_CHECK, name="chk_charge_concept"),
        CheckConstraint("expected_amount >= 0", name="chk_charge_amount"),
        CheckConstraint(
            "source IN ('override', 'period_config', 'fallback', 'penalty', 'manual')",
            name="chk_charge_source",
        ),
        Index("idx_charge_house_period", "house_id", "period_id"),
    )

    house_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("houses.id"),
        nullable=False,
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("periods.id"),
        nullable=False,
    )

    concept_type: Mapped[str] = mapped_column(String(30), nullable=False)

    expected_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    source: Mapped[str] = mapped_column(String(20), nullable=False)

    condoned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    condoned_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def amount_due(self) -> Decimal:
        """What the house owes for this charge; zero once condoned."""
        if self.condoned_at is not None:
            return Decimal("0")
        return self.expected_amount

    def __repr__(self) -> str:
        return (
            f"<HousePeriodCharge house={self.house_id} period={self.period_id} "
            f"{self.concept_type}={self.expected_amount}>"
        )


@event.listens_for(HousePeriodCharge, "before_update")
def prevent_charge_amount_update(mapper, connection, target):
    """Expected amounts are write-once."""
    if inspect(target).attrs.expected_amount.history.has_changes():
        raise ImmutabilityViolationError(
            entity_type="HousePeriodCharge",
            entity_id=str(target.id),
            reason="Expected charge amount is immutable once materialized",
        )
    condoned = inspect(target).attrs.condoned_at.history
    if condoned.has_changes() and any(v is not None for v in condoned.deleted):
        raise ImmutabilityViolationError(
            entity_type="HousePeriodCharge",
            entity_id=str(target.id),
            reason="A condonation cannot be changed or revoked",
        )


@event.listens_for(HousePeriodCharge, "before_delete")
def prevent_charge_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="HousePeriodCharge",
        entity_id=str(target.id),
        reason="Materialized charges cannot be deleted",
    )
