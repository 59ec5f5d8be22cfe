"""Database layer - engine, base classes, amount helpers."""

from recurrence_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from recurrence_kernel.db.engine import (
    create_tables,
    enable_sqlite_savepoints,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from recurrence_kernel.db.types import is_positive_amount, to_money

__all__ = [
    "init_engine_from_url",
    "enable_sqlite_savepoints",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "to_money",
    "is_positive_amount",
]
