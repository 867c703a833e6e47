"""Database layer - engine, base classes and money helpers."""

from condo_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from condo_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from condo_kernel.db.types import ZERO, is_whole_units, round_money, split_units

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ZERO",
    "round_money",
    "split_units",
    "is_whole_units",
]
