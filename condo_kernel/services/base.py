"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``session_scope()``, an orchestration service, or a test) owns
      commit/rollback.

Failure modes:
    - A subclass that commits breaks the atomicity of multi-step
      operations such as confirm-then-allocate.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from condo_kernel.db.base import Base
from condo_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and an optional
        ``Clock``.  Persists via ``session.flush()`` within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-model listings -- those belong in
          ``condo_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source; defaults to the system clock.
        """
        self.session = session
        self.clock = clock or SystemClock()
