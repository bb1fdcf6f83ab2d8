"""
Records -- immutable domain records for inventory issuance.

Responsibility:
    Parse the lower-cased, flattened REST payloads (``assetname``,
    ``issuedto``, ``dateofissue`` ...) into frozen dataclasses, and define the
    two client-owned record types: the derived ``IssuanceRecord`` and the
    append-only ``AuditEntry``.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Imported by engines and services.

Invariants enforced:
    - Parsing is total for optional fields: absent or unparsable values take
      neutral defaults (``None``, ``""``, ``0``).
    - Only a missing identifier is a structural error
      (``MissingIdentifierError``).
    - Timestamps are always timezone-aware UTC ``datetime`` values.
    - Monetary amounts are ``Decimal``.

Failure modes:
    - MissingIdentifierError when a payload has neither ``id`` nor ``_id``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Mapping

from issuance_kernel.exceptions import MissingIdentifierError


class ItemStatus(str, Enum):
    """Lifecycle status of an inventory item, as stored by the backend."""

    AVAILABLE = "available"
    ISSUED = "issued"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class RequestStatus(str, Enum):
    """Review status of an item request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class IssuanceStatus(str, Enum):
    """Derived status of an issuance record."""

    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"


class AuditAction(str, Enum):
    """Actions recorded in the local audit log."""

    ISSUE = "issue"
    RETURN = "return"


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a payload timestamp to an aware UTC datetime.

    Accepts ``datetime``, ``date``, ISO-8601 strings (trailing ``Z`` allowed)
    and epoch milliseconds. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parse_timestamp(parsed)
    return None


def parse_decimal(value: Any) -> Decimal:
    """Coerce a payload number to Decimal, defaulting to zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not result.is_finite():
        return Decimal("0")
    return result


def parse_int(value: Any) -> int:
    """Coerce a payload integer, defaulting to zero."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _text(value: Any) -> str | None:
    """Flatten a payload scalar or populated reference to a string."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        # Populated user reference: {"_id": ..., "name": ...}
        name = value.get("name")
        if name:
            return str(name)
        ref_id = value.get("_id") or value.get("id")
        return str(ref_id) if ref_id else None
    text = str(value).strip()
    return text or None


def _require_id(payload: Mapping[str, Any], record_type: str) -> str:
    raw = payload.get("id") or payload.get("_id")
    if raw is None or str(raw).strip() == "":
        raise MissingIdentifierError(record_type)
    return str(raw)


# ---------------------------------------------------------------------------
# Server-owned records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryItem:
    """
    An inventory item as returned by ``GET /inventory``.

    Several legacy date fields coexist (``issueddate``, ``dateofissue``,
    ``lastmodifieddate``); all are kept so the engines can apply the
    issue-date priority rule.
    """

    id: str
    asset_name: str = ""
    category_name: str = ""
    status: str = ItemStatus.AVAILABLE.value
    location: str = ""
    issued_to: str | None = None
    issued_by: str | None = None
    issued_date: datetime | None = None
    date_of_issue: datetime | None = None
    last_modified_date: datetime | None = None
    last_modified_by: str | None = None
    expected_return_date: datetime | None = None
    total_cost: Decimal = Decimal("0")
    balance_quantity: int = 0
    description: str = ""

    @property
    def is_issued(self) -> bool:
        return self.status == ItemStatus.ISSUED.value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> InventoryItem:
        return cls(
            id=_require_id(payload, "InventoryItem"),
            asset_name=_text(payload.get("assetname")) or "",
            category_name=_text(payload.get("categoryname")) or "",
            status=(_text(payload.get("status")) or ItemStatus.AVAILABLE.value).lower(),
            location=_text(payload.get("locationofitem")) or "",
            issued_to=_text(payload.get("issuedto")),
            issued_by=_text(payload.get("issuedby")),
            issued_date=parse_timestamp(payload.get("issueddate")),
            date_of_issue=parse_timestamp(payload.get("dateofissue")),
            last_modified_date=parse_timestamp(payload.get("lastmodifieddate")),
            last_modified_by=_text(payload.get("lastmodifiedby")),
            expected_return_date=parse_timestamp(payload.get("expectedreturndate")),
            total_cost=parse_decimal(payload.get("totalcost")),
            balance_quantity=parse_int(payload.get("balancequantityinstock")),
            description=str(payload.get("description") or ""),
        )


@dataclass(frozen=True)
class Request:
    """An item request as returned by ``GET /requests``."""

    id: str
    employee_name: str = ""
    item_type: str = ""
    status: str = RequestStatus.PENDING.value
    department: str = ""
    purpose: str = ""
    remarks: str = ""
    reviewed_at: datetime | None = None
    inventory_item_id: str | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == RequestStatus.APPROVED.value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Request:
        return cls(
            id=_require_id(payload, "Request"),
            employee_name=_text(payload.get("employeename")) or "",
            item_type=_text(payload.get("itemtype")) or "",
            status=(_text(payload.get("status")) or RequestStatus.PENDING.value).lower(),
            department=_text(payload.get("department")) or "",
            purpose=_text(payload.get("purpose")) or "",
            remarks=_text(payload.get("remarks")) or "",
            reviewed_at=parse_timestamp(payload.get("reviewedat")),
            inventory_item_id=_text(payload.get("inventoryitemid")),
        )


@dataclass(frozen=True)
class User:
    """A user as returned by ``GET /users``."""

    id: str
    name: str = ""
    role: str = ""
    department: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> User:
        return cls(
            id=_require_id(payload, "User"),
            name=_text(payload.get("name")) or "",
            role=_text(payload.get("role")) or "",
            department=_text(payload.get("department")) or "",
        )


def parse_inventory_items(payloads: Iterable[Mapping[str, Any]] | None) -> tuple[InventoryItem, ...]:
    return tuple(InventoryItem.from_payload(p) for p in payloads or ())


def parse_requests(payloads: Iterable[Mapping[str, Any]] | None) -> tuple[Request, ...]:
    return tuple(Request.from_payload(p) for p in payloads or ())


def parse_users(payloads: Iterable[Mapping[str, Any]] | None) -> tuple[User, ...]:
    return tuple(User.from_payload(p) for p in payloads or ())


# ---------------------------------------------------------------------------
# Client-owned records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssuanceRecord:
    """
    Derived view of one issued inventory item.

    Not persisted anywhere: recomputed from the source collections on every
    derivation pass.
    """

    id: str
    item_id: str
    item_name: str
    issued_to: str
    issued_by: str
    issued_by_id: str
    issued_date: datetime
    days_since_issued: int
    status: IssuanceStatus
    purpose: str
    notes: str
    department: str
    location: str
    request_id: str | None = None
    expected_return_date: datetime | None = None
    actual_return_date: datetime | None = None

    @property
    def is_request_based(self) -> bool:
        return self.request_id is not None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class AuditEntry:
    """
    One issue/return action in the local audit log.

    Serialized with camelCase keys so the persisted log keeps the same shape
    the browser client wrote.
    """

    action: str
    item_id: str
    item_name: str
    issued_to: str
    issued_by: str
    notes: str
    previous_status: str
    new_status: str
    returned_by: str | None = None
    returned_by_id: str | None = None
    return_date: datetime | None = None
    issue_date: datetime | None = None
    expected_return_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "action": self.action,
            "itemId": self.item_id,
            "itemName": self.item_name,
            "issuedTo": self.issued_to,
            "issuedBy": self.issued_by,
            "notes": self.notes,
            "previousStatus": self.previous_status,
            "newStatus": self.new_status,
        }
        if self.returned_by is not None:
            data["returnedBy"] = self.returned_by
        if self.returned_by_id is not None:
            data["returnedById"] = self.returned_by_id
        if self.return_date is not None:
            data["returnDate"] = _iso(self.return_date)
        if self.issue_date is not None:
            data["issueDate"] = _iso(self.issue_date)
        if self.expected_return_date is not None:
            data["expectedReturnDate"] = _iso(self.expected_return_date)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuditEntry:
        return cls(
            action=str(data.get("action") or ""),
            item_id=str(data.get("itemId") or ""),
            item_name=str(data.get("itemName") or ""),
            issued_to=str(data.get("issuedTo") or ""),
            issued_by=str(data.get("issuedBy") or ""),
            notes=str(data.get("notes") or ""),
            previous_status=str(data.get("previousStatus") or ""),
            new_status=str(data.get("newStatus") or ""),
            returned_by=_text(data.get("returnedBy")),
            returned_by_id=_text(data.get("returnedById")),
            return_date=parse_timestamp(data.get("returnDate")),
            issue_date=parse_timestamp(data.get("issueDate")),
            expected_return_date=parse_timestamp(data.get("expectedReturnDate")),
        )

    @property
    def occurred_at(self) -> datetime | None:
        """Timestamp of the action, for newest-first display ordering."""
        if self.action == AuditAction.RETURN.value:
            return self.return_date
        return self.issue_date
