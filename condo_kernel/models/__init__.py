"""ORM models for the condominium reconciliation kernel."""

from condo_kernel.models.balance import HouseBalance, PaymentAllocation
from condo_kernel.models.bank import BankTransaction, Voucher
from condo_kernel.models.house import House, User
from condo_kernel.models.period import (
    HousePeriodCharge,
    HousePeriodOverride,
    Period,
    PeriodConfig,
)
from condo_kernel.models.reconciliation import (
    ManualValidationApproval,
    PaymentRecord,
    TransactionStatus,
)

__all__ = [
    "BankTransaction",
    "Voucher",
    "User",
    "House",
    "Period",
    "PeriodConfig",
    "HousePeriodOverride",
    "HousePeriodCharge",
    "HouseBalance",
    "PaymentAllocation",
    "TransactionStatus",
    "ManualValidationApproval",
    "PaymentRecord",
]
