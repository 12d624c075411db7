"""Database layer - engine and declarative base."""

from rollstock_kernel.db.base import Base
from rollstock_kernel.db.engine import build_engine, session_scope

__all__ = [
    "Base",
    "build_engine",
    "session_scope",
]
