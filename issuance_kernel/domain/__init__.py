"""
Pure domain layer.

Immutable records and the injectable clock, with NO dependencies on:
- ORM (SQLAlchemy)
- HTTP
- Wall-clock time (except SystemClock)
"""

from issuance_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from issuance_kernel.domain.records import (
    AuditAction,
    AuditEntry,
    InventoryItem,
    IssuanceRecord,
    IssuanceStatus,
    ItemStatus,
    Request,
    RequestStatus,
    User,
    parse_decimal,
    parse_int,
    parse_inventory_items,
    parse_requests,
    parse_timestamp,
    parse_users,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "Clock",
    "DeterministicClock",
    "InventoryItem",
    "IssuanceRecord",
    "IssuanceStatus",
    "ItemStatus",
    "Request",
    "RequestStatus",
    "SystemClock",
    "User",
    "parse_decimal",
    "parse_int",
    "parse_inventory_items",
    "parse_requests",
    "parse_timestamp",
    "parse_users",
]
