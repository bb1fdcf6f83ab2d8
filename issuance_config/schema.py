"""
IssuanceConfig schema.

The typed form of the YAML configuration file.  The loader parses YAML into
this frozen dataclass; services and adapters only ever see the dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class IssuanceConfig:
    """Runtime settings for the issuance client."""

    api_base_url: str
    request_timeout_seconds: float = 10.0
    overdue_after_days: int = 30
    recent_within_days: int = 7
    audit_storage_key: str = "issuanceAuditTrail"
    default_return_note: str = "Item returned to inventory"
    default_issue_note: str = "Item issued to employee"
    unknown_label: str = "Unknown"

    def __post_init__(self) -> None:
        if not self.api_base_url:
            raise ValueError("api_base_url is required")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        if self.overdue_after_days < 0:
            raise ValueError("overdue_after_days cannot be negative")
        if self.recent_within_days < 0:
            raise ValueError("recent_within_days cannot be negative")
        if not self.audit_storage_key:
            raise ValueError("audit_storage_key is required")
