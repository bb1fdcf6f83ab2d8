"""
Module: issuance_engines.reconciliation
Responsibility:
    Derive the issued-items view-model from the three server collections
    (inventory items, requests, users): one ``IssuanceRecord`` per issued
    item, the direct / request-based partition, approved requests not yet
    fulfilled, and aggregate statistics.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import issuance_kernel.domain and sibling engine modules.

Invariants enforced:
    - Exactly one record per inventory item whose status is ``issued``; no
      record for any other status.
    - ``status == overdue`` iff ``days_since_issued > overdue_after_days``.
    - ``direct_issues`` and ``request_based_issues`` partition ``records``.
    - ``stats.total == len(records) + len(approved_not_issued)``.
    - Purity: no clock access (the evaluation time is ``as_of``); identical
      inputs produce equal views.

Failure modes:
    - None for missing optional data: absent collections behave as empty.
      Structural errors (records without ids) are raised earlier, by the
      payload parsers.

Usage:
    from issuance_engines.reconciliation import derive_issuance_view

    view = derive_issuance_view(items, requests, users, as_of=clock.now())
    view.stats.overdue
    view.record_for(item_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from issuance_engines.dates import days_since, explicit_issue_date
from issuance_engines.resolution import (
    UNKNOWN_LABEL,
    UNKNOWN_USER_ID,
    RequestIndex,
    UserDirectory,
    resolve_facets,
)
from issuance_engines.tracer import traced_engine
from issuance_kernel.domain.records import (
    InventoryItem,
    IssuanceRecord,
    IssuanceStatus,
    Request,
    User,
)
from issuance_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

DEFAULT_OVERDUE_AFTER_DAYS = 30
DEFAULT_RECENT_WITHIN_DAYS = 7
DIRECT_ISSUE_PURPOSE = "Direct Issue"


@dataclass(frozen=True)
class IssuanceStats:
    """Aggregate figures shown on the issued-items stat cards."""

    total: int
    direct: int
    request_based: int
    active: int
    overdue: int
    returned: int
    recent: int
    total_value: Decimal
    active_issuances: int
    departments: int
    avg_days_out: int


@dataclass(frozen=True)
class IssuanceView:
    """
    Complete derived view of issued inventory.

    Guarantees:
        - ``direct_issues + request_based_issues`` is a disjoint cover of
          ``records``.
        - ``approved_not_issued`` holds approved requests whose id is not
          the ``request_id`` of any record.
    """

    as_of: datetime
    records: tuple[IssuanceRecord, ...]
    direct_issues: tuple[IssuanceRecord, ...]
    request_based_issues: tuple[IssuanceRecord, ...]
    approved_not_issued: tuple[Request, ...]
    stats: IssuanceStats

    def record_for(self, item_id: str) -> IssuanceRecord | None:
        """The record derived for an inventory item, if it is issued."""
        for record in self.records:
            if record.item_id == item_id:
                return record
        return None

    def overdue_records(self) -> tuple[IssuanceRecord, ...]:
        return tuple(r for r in self.records if r.status == IssuanceStatus.OVERDUE)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _build_record(
    item: InventoryItem,
    directory: UserDirectory,
    index: RequestIndex,
    as_of: datetime,
    overdue_after_days: int,
    unknown_label: str,
) -> IssuanceRecord:
    facets = resolve_facets(item, directory, index, as_of, unknown_label)
    age = days_since(facets.issue_date, as_of)

    issued_by_user = directory.resolve(item.issued_by) or directory.resolve(facets.issued_by)
    issued_to_user = directory.resolve(item.issued_to) or directory.resolve(facets.issued_to)

    request = facets.request
    if request is not None:
        purpose = request.purpose
        notes = request.remarks
    else:
        purpose = facets.legacy.purpose or DIRECT_ISSUE_PURPOSE
        notes = ""

    return IssuanceRecord(
        id=item.id,
        item_id=item.id,
        item_name=item.asset_name,
        issued_to=facets.issued_to,
        issued_by=facets.issued_by,
        issued_by_id=issued_by_user.id if issued_by_user is not None else UNKNOWN_USER_ID,
        issued_date=facets.issue_date,
        days_since_issued=age,
        status=IssuanceStatus.OVERDUE if age > overdue_after_days else IssuanceStatus.ACTIVE,
        purpose=purpose,
        notes=notes,
        department=(issued_to_user.department if issued_to_user and issued_to_user.department
                    else unknown_label),
        location=item.location,
        request_id=facets.request_id,
        expected_return_date=item.expected_return_date,
        actual_return_date=None,
    )


def _average_days_out(issued_items: Iterable[InventoryItem], as_of: datetime) -> int:
    # Items without an issue date are left out of the mean entirely.
    ages = [
        days_since(issued_on, as_of)
        for issued_on in (explicit_issue_date(item) for item in issued_items)
        if issued_on is not None
    ]
    if not ages:
        return 0
    return _round_half_up(Decimal(sum(ages)) / Decimal(len(ages)))


@traced_engine(
    "issuance_reconciliation",
    "1.0",
    fingerprint_fields=("as_of", "overdue_after_days", "recent_within_days"),
    summarize=lambda view: {
        "record_count": len(view.records),
        "approved_not_issued_count": len(view.approved_not_issued),
    },
)
def derive_issuance_view(
    inventory: Iterable[InventoryItem] | None,
    requests: Iterable[Request] | None,
    users: Iterable[User] | None,
    *,
    as_of: datetime,
    overdue_after_days: int = DEFAULT_OVERDUE_AFTER_DAYS,
    recent_within_days: int = DEFAULT_RECENT_WITHIN_DAYS,
    unknown_label: str = UNKNOWN_LABEL,
) -> IssuanceView:
    """
    Derive the issued-items view-model.

    Preconditions:
        - ``as_of`` is timezone-aware.
        - Any of the three collections may be None (still loading or
          failed); it is treated as empty.
    Postconditions:
        - See module invariants.
    """
    inventory = tuple(inventory or ())
    requests = tuple(requests or ())
    directory = UserDirectory(users or ())
    index = RequestIndex(requests)

    issued_items = tuple(item for item in inventory if item.is_issued)
    records = tuple(
        _build_record(item, directory, index, as_of, overdue_after_days, unknown_label)
        for item in issued_items
    )

    direct = tuple(r for r in records if r.request_id is None)
    request_based = tuple(r for r in records if r.request_id is not None)

    fulfilled_ids = {r.request_id for r in request_based}
    approved_not_issued = tuple(
        req for req in requests if req.is_approved and req.id not in fulfilled_ids
    )

    active = sum(1 for r in records if r.status == IssuanceStatus.ACTIVE)
    stats = IssuanceStats(
        total=len(records) + len(approved_not_issued),
        direct=len(direct),
        request_based=len(request_based) + len(approved_not_issued),
        active=active,
        overdue=sum(1 for r in records if r.status == IssuanceStatus.OVERDUE),
        returned=sum(1 for r in records if r.status == IssuanceStatus.RETURNED),
        recent=sum(1 for r in records if r.days_since_issued <= recent_within_days),
        total_value=sum((item.total_cost for item in issued_items), Decimal("0")),
        active_issuances=active,
        departments=len({r.department for r in records}),
        avg_days_out=_average_days_out(issued_items, as_of),
    )

    logger.debug("issuance_view_derived", extra={
        "inventory_count": len(inventory),
        "request_count": len(requests),
        "record_count": len(records),
        "direct_count": len(direct),
        "request_based_count": len(request_based),
        "approved_not_issued_count": len(approved_not_issued),
        "overdue_count": stats.overdue,
    })

    return IssuanceView(
        as_of=as_of,
        records=records,
        direct_issues=direct,
        request_based_issues=request_based,
        approved_not_issued=approved_not_issued,
        stats=stats,
    )
