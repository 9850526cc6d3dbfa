"""Database layer: declarative base and engine/session management."""

from billing_kernel.db.base import Base, TimestampedBase, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TimestampedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
