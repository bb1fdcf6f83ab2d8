"""
Module: issuance_engines.filtering
Responsibility:
    Search / status / scenario / date-range refinement of the inventory
    shown in the issued-items tables.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - All criteria compose by logical AND.
    - Search is a case-insensitive substring match of the raw term (not
      trimmed) OR-ed across asset name, location, resolved issued-to name
      and resolved issued-by name.
    - The date range is inclusive on both ends and only applies when both
      bounds are given.  A plain ``date`` bound covers that whole UTC day.
    - ``direct`` and ``request_based`` ignore the scenario criterion so both
      tables can be shown side by side under "all".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Iterable

from issuance_engines.resolution import (
    UNKNOWN_LABEL,
    ItemFacets,
    RequestIndex,
    UserDirectory,
    resolve_facets,
)
from issuance_engines.tracer import traced_engine
from issuance_kernel.domain.records import InventoryItem, ItemStatus, Request, User


class Scenario(str, Enum):
    """Which issuances a table shows."""

    ALL = "all"
    DIRECT = "direct"
    REQUEST_BASED = "request-based"


STATUS_ALL = "all"
STATUS_ISSUED = ItemStatus.ISSUED.value
_STATUSES = frozenset({STATUS_ALL, STATUS_ISSUED})


def _lower_bound(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _upper_bound(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


@dataclass(frozen=True)
class IssuanceFilter:
    """
    Filter criteria for the issued-items tables.

    Raises:
        ValueError: on an unknown status or scenario.
    """

    search_term: str = ""
    status: str = STATUS_ISSUED
    scenario: str = Scenario.ALL.value
    start: date | datetime | None = None
    end: date | datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in _STATUSES:
            raise ValueError(f"Unknown status filter: {self.status!r}")
        if self.scenario not in {s.value for s in Scenario}:
            raise ValueError(f"Unknown scenario filter: {self.scenario!r}")

    def date_bounds(self) -> tuple[datetime, datetime] | None:
        if self.start is None or self.end is None:
            return None
        return _lower_bound(self.start), _upper_bound(self.end)

    def matches_search(self, item: InventoryItem, facets: ItemFacets) -> bool:
        term = self.search_term.lower()
        if not term:
            return True
        haystacks = (item.asset_name, item.location, facets.issued_to, facets.issued_by)
        return any(term in (text or "").lower() for text in haystacks)

    def matches_status(self, item: InventoryItem) -> bool:
        return self.status == STATUS_ALL or item.status == self.status

    def matches_scenario(self, facets: ItemFacets) -> bool:
        if self.scenario == Scenario.DIRECT.value:
            return facets.request_id is None
        if self.scenario == Scenario.REQUEST_BASED.value:
            return facets.request_id is not None
        return True

    def matches_dates(self, facets: ItemFacets) -> bool:
        bounds = self.date_bounds()
        if bounds is None:
            return True
        start, end = bounds
        return start <= facets.issue_date <= end


@dataclass(frozen=True)
class FilterResult:
    """Items passing the filter, plus the per-scenario split."""

    items: tuple[InventoryItem, ...]
    direct: tuple[InventoryItem, ...]
    request_based: tuple[InventoryItem, ...]


@traced_engine(
    "issuance_filter",
    "1.0",
    fingerprint_fields=("criteria", "as_of"),
    summarize=lambda result: {"match_count": len(result.items)},
)
def filter_inventory(
    inventory: Iterable[InventoryItem] | None,
    requests: Iterable[Request] | None,
    users: Iterable[User] | None,
    criteria: IssuanceFilter,
    *,
    as_of: datetime,
    unknown_label: str = UNKNOWN_LABEL,
) -> FilterResult:
    """Apply ``criteria`` to the inventory, preserving collection order."""
    directory = UserDirectory(users or ())
    index = RequestIndex(requests or ())

    items: list[InventoryItem] = []
    direct: list[InventoryItem] = []
    request_based: list[InventoryItem] = []

    for item in inventory or ():
        facets = resolve_facets(item, directory, index, as_of, unknown_label)
        if not (
            criteria.matches_search(item, facets)
            and criteria.matches_status(item)
            and criteria.matches_dates(facets)
        ):
            continue
        if facets.request_id is None:
            direct.append(item)
        else:
            request_based.append(item)
        if criteria.matches_scenario(facets):
            items.append(item)

    return FilterResult(
        items=tuple(items),
        direct=tuple(direct),
        request_based=tuple(request_based),
    )
