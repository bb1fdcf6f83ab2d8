"""Database layer - declarative base, session factory, append-only enforcement."""

from issuance_kernel.db.base import UUID, Base, UUIDString
from issuance_kernel.db.engine import create_session_factory

__all__ = [
    "Base",
    "UUID",
    "UUIDString",
    "create_session_factory",
]
