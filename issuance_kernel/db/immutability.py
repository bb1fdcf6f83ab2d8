"""
ORM-level append-only enforcement for the audit log.

The audit log is append-only: rows are inserted, never updated, never
deleted.  These mapper listeners intercept UPDATE and DELETE on
AuditEntryModel and raise ImmutabilityViolationError before SQL is emitted.

Usage:
    from issuance_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

In tests that need to bypass the rule:
    from issuance_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event

from issuance_kernel.exceptions import ImmutabilityViolationError
from issuance_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_audit_entry_update(mapper, connection, target):
    """Prevent any updates to AuditEntryModel rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEntry",
        entity_id=str(target.id),
        reason="Audit entries are append-only and cannot be modified",
    )


def _check_audit_entry_delete(mapper, connection, target):
    """Prevent deletion of AuditEntryModel rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEntry",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="AuditEntry",
        entity_id=str(target.id),
        reason="Audit entries cannot be deleted",
    )


def register_immutability_listeners() -> None:
    """Register append-only listeners (idempotent)."""
    from issuance_kernel.models.audit_entry import AuditEntryModel

    if not event.contains(AuditEntryModel, "before_update", _check_audit_entry_update):
        event.listen(AuditEntryModel, "before_update", _check_audit_entry_update)
    if not event.contains(AuditEntryModel, "before_delete", _check_audit_entry_delete):
        event.listen(AuditEntryModel, "before_delete", _check_audit_entry_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove append-only listeners.

    WARNING: Only use this in tests.
    """
    from issuance_kernel.models.audit_entry import AuditEntryModel

    _safe_remove_listener(AuditEntryModel, "before_update", _check_audit_entry_update)
    _safe_remove_listener(AuditEntryModel, "before_delete", _check_audit_entry_delete)
