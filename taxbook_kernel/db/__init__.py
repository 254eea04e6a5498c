"""Database layer - engine, declarative base and session scope."""

from taxbook_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from taxbook_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
