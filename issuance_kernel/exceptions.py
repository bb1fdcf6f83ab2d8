"""
Typed Exception Hierarchy for the Issuance Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI adapters, CLI tools, tests) must decide how to surface a failure
without parsing message strings:

    try:
        service.return_item(item_id, notes="ok")
    except InventoryItemNotFoundError as e:
        show_error(f"Item {e.item_id} not found")       # abort
    except UpstreamError as e:
        show_retry(e.code, e.status_code)                # retryable

Every exception carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable)
  3. Structured DATA attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    IssuanceError (base)
    |
    +-- RecordError
    |   +-- MissingIdentifierError
    |
    +-- NotFoundError
    |   +-- InventoryItemNotFoundError
    |
    +-- IssuanceStateError
    |   +-- ItemAlreadyIssuedError
    |   +-- OutOfStockError
    |
    +-- UpstreamError
    |   +-- SessionExpiredError
    |
    +-- AuditError
        +-- MalformedDataError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                      | When Raised
-----------|---------------------------|-------------------------------------------
Record     | MISSING_IDENTIFIER        | Server payload has no id
-----------|---------------------------|-------------------------------------------
NotFound   | NOT_FOUND                 | Referenced record absent from sources
           | INVENTORY_ITEM_NOT_FOUND  | Item id not in the inventory collection
-----------|---------------------------|-------------------------------------------
State      | ITEM_ALREADY_ISSUED       | Issuing an item that is already issued
           | OUT_OF_STOCK              | Issuing an item with no stock left
-----------|---------------------------|-------------------------------------------
Upstream   | UPSTREAM_ERROR            | REST call failed (transport or non-2xx)
           | SESSION_EXPIRED           | REST call answered 401
-----------|---------------------------|-------------------------------------------
Audit      | MALFORMED_AUDIT_DATA      | Local audit store content unparsable
           | IMMUTABILITY_VIOLATION    | UPDATE/DELETE attempted on an audit row

===============================================================================
PROPAGATION
===============================================================================

Derivation functions are total: they never raise for missing optional fields.
Only MissingIdentifierError escapes parsing. User-visible failures are limited
to the mutating operations (issue, return). MalformedDataError is recovered
inside the audit store and never reaches the caller.
"""


class IssuanceError(Exception):
    """
    Base exception for all issuance kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ISSUANCE_ERROR"


# Record parsing


class RecordError(IssuanceError):
    """Base exception for structurally invalid server records."""

    code: str = "RECORD_ERROR"


class MissingIdentifierError(RecordError):
    """A server record has no identifier."""

    code: str = "MISSING_IDENTIFIER"

    def __init__(self, record_type: str):
        self.record_type = record_type
        super().__init__(f"{record_type} record has no id")


# Lookups


class NotFoundError(IssuanceError):
    """Referenced record is absent from the source collections."""

    code: str = "NOT_FOUND"

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} not found: {record_id}")


class InventoryItemNotFoundError(NotFoundError):
    """Inventory item with given ID was not found."""

    code: str = "INVENTORY_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__("Inventory item", item_id)


# Issuance state


class IssuanceStateError(IssuanceError):
    """Base exception for operations invalid in the item's current state."""

    code: str = "ISSUANCE_STATE_ERROR"


class ItemAlreadyIssuedError(IssuanceStateError):
    """Item is already issued and cannot be issued again."""

    code: str = "ITEM_ALREADY_ISSUED"

    def __init__(self, item_id: str, issued_to: str | None = None):
        self.item_id = item_id
        self.issued_to = issued_to
        super().__init__(f"Item {item_id} is already issued to {issued_to or 'Unknown'}")


class OutOfStockError(IssuanceStateError):
    """Item has no balance left in stock."""

    code: str = "OUT_OF_STOCK"

    def __init__(self, item_id: str, balance: int):
        self.item_id = item_id
        self.balance = balance
        super().__init__(f"Item {item_id} is out of stock (balance={balance})")


# Upstream (REST backend)


class UpstreamError(IssuanceError):
    """
    A call to the REST backend failed.

    Retryable from the caller's point of view. Local state is left as
    previously read, except for audit entries already appended.
    """

    code: str = "UPSTREAM_ERROR"

    def __init__(
        self,
        method: str,
        url: str,
        reason: str,
        status_code: int | None = None,
    ):
        self.method = method
        self.url = url
        self.reason = reason
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{method} {url} failed{status}: {reason}")


class SessionExpiredError(UpstreamError):
    """The backend rejected the bearer token."""

    code: str = "SESSION_EXPIRED"


# Audit log


class AuditError(IssuanceError):
    """Base exception for audit log errors."""

    code: str = "AUDIT_ERROR"


class MalformedDataError(AuditError):
    """
    Persisted audit log content could not be parsed.

    Recovered locally by treating the log as empty; never surfaced to users.
    """

    code: str = "MALFORMED_AUDIT_DATA"

    def __init__(self, storage_key: str, reason: str):
        self.storage_key = storage_key
        self.reason = reason
        super().__init__(f"Malformed audit data under '{storage_key}': {reason}")


class ImmutabilityViolationError(AuditError):
    """Attempted to modify or delete an append-only audit row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
