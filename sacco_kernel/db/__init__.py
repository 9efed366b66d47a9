"""Database layer - engine, base classes, and column types."""

from sacco_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from sacco_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from sacco_kernel.db.types import FixedDecimal, UTCDateTime, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "FixedDecimal",
    "UTCDateTime",
    "round_money",
]
