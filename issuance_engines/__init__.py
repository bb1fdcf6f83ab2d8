"""
Module: issuance_engines
Responsibility:
    Package entrypoint re-exporting the pure derivation engines.  This is the
    canonical import surface for issuance_services and UI adapters.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import issuance_kernel (domain, logging) and sibling modules.
    MUST NOT import issuance_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  The evaluation time is
      passed in as ``as_of``; callers (services) read it from a Clock.
    - Decimal-only arithmetic for monetary totals.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from issuance_engines import derive_issuance_view, filter_inventory
"""

from issuance_engines.dates import days_since, explicit_issue_date, resolve_issue_date
from issuance_engines.filtering import (
    STATUS_ALL,
    STATUS_ISSUED,
    FilterResult,
    IssuanceFilter,
    Scenario,
    filter_inventory,
)
from issuance_engines.legacy import (
    LegacyFields,
    append_issue_note,
    append_return_note,
    decode_legacy_description,
)
from issuance_engines.reconciliation import (
    DEFAULT_OVERDUE_AFTER_DAYS,
    DEFAULT_RECENT_WITHIN_DAYS,
    IssuanceStats,
    IssuanceView,
    derive_issuance_view,
)
from issuance_engines.resolution import (
    ItemFacets,
    RequestIndex,
    UserDirectory,
    resolve_facets,
)

__all__ = [
    "DEFAULT_OVERDUE_AFTER_DAYS",
    "DEFAULT_RECENT_WITHIN_DAYS",
    "FilterResult",
    "IssuanceFilter",
    "IssuanceStats",
    "IssuanceView",
    "ItemFacets",
    "LegacyFields",
    "RequestIndex",
    "STATUS_ALL",
    "STATUS_ISSUED",
    "Scenario",
    "UserDirectory",
    "append_issue_note",
    "append_return_note",
    "days_since",
    "decode_legacy_description",
    "derive_issuance_view",
    "explicit_issue_date",
    "filter_inventory",
    "resolve_facets",
    "resolve_issue_date",
]
