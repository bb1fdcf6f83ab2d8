"""
Module: issuance_engines.resolution
Responsibility:
    Per-item facet resolution shared by the reconciliation view-model and
    the filters: display names for ``issuedto``/``issuedby``, the resolved
    issue date, and the approved request an issuance is attributed to.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Display name: a value equal to a user id resolves to that user's
      name; any other value is already a name; absent values fall back to
      the legacy description markers, then to the unknown label.
    - Request join: ``(employee_name, item_type)`` over APPROVED requests
      only, indexed once per derivation pass.  When several approved
      requests share a key the first one in collection order wins.

Known limitation:
    The request join is a heuristic on string equality; there is no foreign
    key between requests and inventory items.  Two employees sharing a name,
    or one employee holding two approved requests for the same item type,
    are indistinguishable here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from issuance_engines.dates import resolve_issue_date
from issuance_engines.legacy import LegacyFields, decode_legacy_description
from issuance_kernel.domain.records import InventoryItem, Request, User

UNKNOWN_LABEL = "Unknown"
UNKNOWN_USER_ID = "unknown"


class UserDirectory:
    """Lookup of users by id and by name (first occurrence wins for both)."""

    def __init__(self, users: Iterable[User] = ()):
        self._by_id: dict[str, User] = {}
        self._by_name: dict[str, User] = {}
        for user in users:
            self._by_id.setdefault(user.id, user)
            if user.name:
                self._by_name.setdefault(user.name, user)

    def resolve(self, value: str | None) -> User | None:
        """Find the user a reference points to: by id first, then by name."""
        if not value:
            return None
        return self._by_id.get(value) or self._by_name.get(value)

    def display_name(self, value: str | None) -> str | None:
        """Human-readable name for a user reference, or None if absent."""
        if not value:
            return None
        user = self._by_id.get(value)
        if user is not None and user.name:
            return user.name
        return value


class RequestIndex:
    """
    ``(employee_name, item_type) -> approved request`` lookup.

    Built once per derivation pass in place of a linear scan per item.
    Each key keeps the first approved request in collection order together
    with its position, so lookups over several candidate names can still
    honour collection order.
    """

    def __init__(self, requests: Iterable[Request] = ()):
        self._index: dict[tuple[str, str], tuple[int, Request]] = {}
        for position, request in enumerate(requests):
            if not request.is_approved:
                continue
            key = (request.employee_name, request.item_type)
            self._index.setdefault(key, (position, request))

    def __len__(self) -> int:
        return len(self._index)

    def match(self, employee_names: Iterable[str | None], item_type: str) -> Request | None:
        """First approved request (collection order) matching any candidate name."""
        best: tuple[int, Request] | None = None
        for name in employee_names:
            if not name:
                continue
            hit = self._index.get((name, item_type))
            if hit is not None and (best is None or hit[0] < best[0]):
                best = hit
        return best[1] if best is not None else None


@dataclass(frozen=True)
class ItemFacets:
    """Resolved, display-ready attributes of one inventory item."""

    issued_to: str
    issued_by: str
    issue_date: datetime
    request: Request | None
    legacy: LegacyFields

    @property
    def request_id(self) -> str | None:
        return self.request.id if self.request is not None else None


def resolve_facets(
    item: InventoryItem,
    directory: UserDirectory,
    index: RequestIndex,
    as_of: datetime,
    unknown_label: str = UNKNOWN_LABEL,
) -> ItemFacets:
    """Resolve display names, issue date and attributed request for an item."""
    # Purpose only exists as a description marker, so always decode.
    legacy = decode_legacy_description(item.description)

    issued_to = directory.display_name(item.issued_to or legacy.issued_to) or unknown_label
    issued_by = directory.display_name(item.issued_by or legacy.issued_by) or unknown_label

    candidates = [issued_to]
    if item.issued_to and item.issued_to != issued_to:
        candidates.append(item.issued_to)
    request = index.match(candidates, item.asset_name)

    return ItemFacets(
        issued_to=issued_to,
        issued_by=issued_by,
        issue_date=resolve_issue_date(item, as_of),
        request=request,
        legacy=legacy,
    )
