"""
issuance_services -- imperative shell around the pure engines.

Owns all I/O: the REST client, the audit stores, and the workflow service
that wires them to the reconciliation engines.
"""

from issuance_services.audit_store import (
    AuditStore,
    FileKeyValueStorage,
    InMemoryAuditStore,
    KeyValueAuditStore,
    SqlAuditStore,
    build_key_value_store,
    newest_first,
)
from issuance_services.inventory_api import InventoryApiClient
from issuance_services.issuance_service import (
    IssuanceService,
    SourceSnapshot,
    build_service,
)

__all__ = [
    "AuditStore",
    "FileKeyValueStorage",
    "InMemoryAuditStore",
    "InventoryApiClient",
    "IssuanceService",
    "KeyValueAuditStore",
    "SourceSnapshot",
    "SqlAuditStore",
    "build_key_value_store",
    "build_service",
    "newest_first",
]
