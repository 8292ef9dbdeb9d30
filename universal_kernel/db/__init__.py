"""Database layer: engine lifecycle, declarative base and shared columns."""

from universal_kernel.db.base import (
    Base,
    SoftDeletable,
    TenantScoped,
    TrackedBase,
    UUIDString,
)
from universal_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "Base",
    "SoftDeletable",
    "TenantScoped",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "session_scope",
]
