"""Database layer - engine, base classes and column types."""

from order_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from order_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
    transaction_scope,
)
from order_kernel.db.types import MONEY_TYPE, RATE_TYPE, round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "transaction_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MONEY_TYPE",
    "RATE_TYPE",
    "round_money",
]
