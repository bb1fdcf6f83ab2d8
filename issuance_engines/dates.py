"""
Module: issuance_engines.dates
Responsibility:
    Resolve the issue date of an inventory item from its legacy date fields
    and compute whole days elapsed since issue.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The evaluation time is
    always passed in as ``as_of``.

Invariants enforced:
    - Issue-date priority: ``issued_date`` -> ``date_of_issue`` ->
      ``last_modified_date`` -> ``as_of``.  First non-null wins.
    - ``days_since`` floors toward negative infinity, so an issue date in
      the future yields a negative age.

Usage:
    from issuance_engines.dates import resolve_issue_date, days_since

    issued = resolve_issue_date(item, as_of=now)
    age = days_since(issued, as_of=now)
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from issuance_kernel.domain.records import InventoryItem

_ONE_DAY = timedelta(days=1)


def resolve_issue_date(item: InventoryItem, as_of: datetime) -> datetime:
    """Resolve an item's issue date using the legacy field priority.

    An item with none of the date fields is treated as issued at ``as_of``.
    """
    for candidate in (item.issued_date, item.date_of_issue, item.last_modified_date):
        if candidate is not None:
            return candidate
    return as_of


def explicit_issue_date(item: InventoryItem) -> datetime | None:
    """Issue date from the issue-date fields only, or None.

    Unlike ``resolve_issue_date`` this never falls back to the modification
    date or to the evaluation time.
    """
    if item.issued_date is not None:
        return item.issued_date
    return item.date_of_issue


def days_since(moment: datetime, as_of: datetime) -> int:
    """Whole days from ``moment`` to ``as_of`` (floor)."""
    return math.floor((as_of - moment) / _ONE_DAY)
