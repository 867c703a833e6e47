"""Kernel services: persistence primitives that flush but never commit."""

from condo_kernel.services.balance_service import HouseBalanceService
from condo_kernel.services.base import BaseService
from condo_kernel.services.house_service import HouseService
from condo_kernel.services.period_service import (
    PeriodService,
    period_bounds,
)

__all__ = [
    "BaseService",
    "HouseBalanceService",
    "HouseService",
    "PeriodService",
    "period_bounds",
]
