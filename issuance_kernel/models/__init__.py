"""ORM models for the issuance kernel."""

from issuance_kernel.models.audit_entry import AuditEntryModel

__all__ = ["AuditEntryModel"]
