"""
Module: condo_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors are the read side of the kernel: queue listings, manual case
    listings and statistics.
Architecture position: Kernel > Selectors.  May import from db/, domain/
    and models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit() or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never
      ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from condo_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.

    Non-goals:
        - BaseSelector does NOT define any domain query; subclasses do.
    """

    def __init__(self, session: Session):
        self.session = session

    def _count(self, stmt: Select) -> int:
        """Row count of ``stmt`` ignoring ordering and paging."""
        return self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
