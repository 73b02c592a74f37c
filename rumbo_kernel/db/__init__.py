"""Database layer - engine, base classes, types."""

from rumbo_kernel.db.base import Base, TrackedBase, UUIDString, enum_column
from rumbo_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from rumbo_kernel.db.types import SUPPORTED_CURRENCIES, round_money, validate_currency

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "enum_column",
    "SUPPORTED_CURRENCIES",
    "round_money",
    "validate_currency",
]
