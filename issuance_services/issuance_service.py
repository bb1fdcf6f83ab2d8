"""
IssuanceService -- issued-items workflow over the REST backend.

Responsibility:
    Load the three source collections, derive the issued-items view-model,
    and run the two mutating operations (issue, return) with their local
    audit-log side effect.

Architecture position:
    Services -- imperative shell.  Owns the Clock read and all I/O; the
    derivation itself is delegated to issuance_engines.

Invariants enforced:
    - Source collections load independently: a failed fetch yields an empty
      collection (recorded in ``SourceSnapshot.errors``) and never blocks
      the others.
    - Inventory is refetched on every load.
    - Audit entries are appended BEFORE the server mutation and are never
      rolled back.
    - Descriptions are appended to, never overwritten.
    - After a successful mutation the cached snapshot is dropped, so the
      next view is derived from refreshed data.

Failure modes:
    - InventoryItemNotFoundError: item id absent from the inventory snapshot.
    - ItemAlreadyIssuedError / OutOfStockError: issue preconditions.
    - UpstreamError (incl. SessionExpiredError): server mutation failed;
      the audit entry already appended stays in the log.

Known limitations:
    - Issue and return are not transactional across the audit append and
      the server call; a retried call can append a duplicate audit entry.
    - Concurrent returns of the same item from two clients are not
      coordinated; the server keeps the last write.

Usage:
    service = IssuanceService(api, audit_store, SystemClock(), current_user, config)
    view = service.current_view()
    service.return_item(item_id, notes="Returned in good condition")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, TypeVar

from issuance_config.schema import IssuanceConfig
from issuance_engines.filtering import FilterResult, IssuanceFilter, filter_inventory
from issuance_engines.legacy import append_issue_note, append_return_note
from issuance_engines.reconciliation import (
    DIRECT_ISSUE_PURPOSE,
    IssuanceView,
    derive_issuance_view,
)
from issuance_engines.resolution import RequestIndex, UserDirectory, resolve_facets
from issuance_kernel.domain.clock import Clock
from issuance_kernel.domain.records import (
    AuditAction,
    AuditEntry,
    InventoryItem,
    ItemStatus,
    Request,
    User,
)
from issuance_kernel.exceptions import (
    InventoryItemNotFoundError,
    ItemAlreadyIssuedError,
    MissingIdentifierError,
    OutOfStockError,
    UpstreamError,
)
from issuance_kernel.logging_config import LogContext, get_logger
from issuance_services.audit_store import AuditStore, newest_first
from issuance_services.inventory_api import InventoryApiClient

logger = get_logger("services.issuance_service")

T = TypeVar("T")


@dataclass(frozen=True)
class SourceSnapshot:
    """The three server collections as last read, plus per-collection errors."""

    inventory: tuple[InventoryItem, ...] = ()
    requests: tuple[Request, ...] = ()
    users: tuple[User, ...] = ()
    errors: Mapping[str, str] = field(default_factory=dict)

    def find_item(self, item_id: str) -> InventoryItem | None:
        for item in self.inventory:
            if item.id == item_id:
                return item
        return None

    @property
    def is_complete(self) -> bool:
        return not self.errors


class IssuanceService:
    """
    Issued-items workflow.

    Contract:
        Reads go through ``load_sources``; ``current_view`` and ``filtered``
        derive from an explicit snapshot or the most recently loaded one.
    Non-goals:
        - Does NOT coordinate with other clients.
        - Does NOT retry failed mutations.
    """

    def __init__(
        self,
        api: InventoryApiClient,
        audit_store: AuditStore,
        clock: Clock,
        current_user: User | None,
        config: IssuanceConfig,
    ):
        self._api = api
        self._audit = audit_store
        self._clock = clock
        self._user = current_user
        self._config = config
        self._snapshot: SourceSnapshot | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch(
        self,
        name: str,
        fetch: Callable[[], list[dict[str, Any]]],
        parse: Callable[[Mapping[str, Any]], T],
        errors: dict[str, str],
    ) -> tuple[T, ...]:
        try:
            payloads = fetch()
        except UpstreamError as exc:
            logger.warning("source_fetch_failed", extra={
                "collection": name,
                "error_code": exc.code,
                "status_code": exc.status_code,
            })
            errors[name] = str(exc)
            return ()

        parsed: list[T] = []
        for payload in payloads:
            try:
                parsed.append(parse(payload))
            except MissingIdentifierError as exc:
                logger.warning("source_record_skipped", extra={
                    "collection": name,
                    "error_code": exc.code,
                })
        return tuple(parsed)

    def load_sources(self) -> SourceSnapshot:
        """Fetch inventory, requests and users; each degrades independently."""
        errors: dict[str, str] = {}
        snapshot = SourceSnapshot(
            inventory=self._fetch("inventory", self._api.list_inventory, InventoryItem.from_payload, errors),
            requests=self._fetch("requests", self._api.list_requests, Request.from_payload, errors),
            users=self._fetch("users", self._api.list_users, User.from_payload, errors),
            errors=errors,
        )
        self._snapshot = snapshot
        logger.info("sources_loaded", extra={
            "inventory_count": len(snapshot.inventory),
            "request_count": len(snapshot.requests),
            "user_count": len(snapshot.users),
            "failed_collections": sorted(errors),
        })
        return snapshot

    def _resolve_snapshot(self, snapshot: SourceSnapshot | None) -> SourceSnapshot:
        if snapshot is not None:
            return snapshot
        if self._snapshot is not None:
            return self._snapshot
        return self.load_sources()

    def current_view(self, snapshot: SourceSnapshot | None = None) -> IssuanceView:
        """Derive the view-model from ``snapshot`` (or the latest one)."""
        snap = self._resolve_snapshot(snapshot)
        return derive_issuance_view(
            snap.inventory,
            snap.requests,
            snap.users,
            as_of=self._clock.now(),
            overdue_after_days=self._config.overdue_after_days,
            recent_within_days=self._config.recent_within_days,
            unknown_label=self._config.unknown_label,
        )

    def filtered(
        self,
        criteria: IssuanceFilter,
        snapshot: SourceSnapshot | None = None,
    ) -> FilterResult:
        """Apply table filters to the inventory of ``snapshot``."""
        snap = self._resolve_snapshot(snapshot)
        return filter_inventory(
            snap.inventory,
            snap.requests,
            snap.users,
            criteria,
            as_of=self._clock.now(),
            unknown_label=self._config.unknown_label,
        )

    def item_audit_trail(self, item_id: str, newest: bool = False) -> list[AuditEntry]:
        """Audit entries for one item, oldest first unless ``newest``."""
        entries = list(self._audit.query_by_item(item_id))
        return newest_first(entries) if newest else entries

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @property
    def _actor_name(self) -> str:
        if self._user is not None and self._user.name:
            return self._user.name
        return self._config.unknown_label

    @property
    def _actor_id(self) -> str | None:
        return self._user.id if self._user is not None else None

    def _require_item(self, snap: SourceSnapshot, item_id: str) -> InventoryItem:
        item = snap.find_item(item_id)
        if item is None:
            logger.warning("inventory_item_not_found", extra={"item_id": item_id})
            raise InventoryItemNotFoundError(item_id)
        return item

    def _push_update(self, item: InventoryItem, payload: dict[str, Any], action: str) -> None:
        try:
            self._api.update_inventory_item(item.id, payload)
        except UpstreamError:
            # The audit entry is already in the log and stays there.
            logger.error("inventory_mutation_failed", exc_info=True, extra={
                "action": action,
                "item_id": item.id,
                "audit_entry_retained": True,
            })
            raise
        self._snapshot = None

    def return_item(
        self,
        item_id: str,
        notes: str | None = None,
        snapshot: SourceSnapshot | None = None,
    ) -> AuditEntry:
        """
        Return an issued item to stock.

        Appends a ``return`` audit entry, then PUTs the item back to
        ``available`` with the issuance fields cleared, stock incremented by
        one and a return block appended to its description.

        Raises:
            InventoryItemNotFoundError: item not in the inventory snapshot.
            UpstreamError: the server mutation failed.
        """
        snap = self._resolve_snapshot(snapshot)
        with LogContext.bind(item_id=item_id, actor_id=self._actor_id):
            item = self._require_item(snap, item_id)
            now = self._clock.now()
            facets = resolve_facets(
                item,
                UserDirectory(snap.users),
                RequestIndex(snap.requests),
                now,
                self._config.unknown_label,
            )
            note = notes or self._config.default_return_note

            entry = AuditEntry(
                action=AuditAction.RETURN.value,
                item_id=item.id,
                item_name=item.asset_name,
                issued_to=facets.issued_to,
                issued_by=facets.issued_by,
                notes=note,
                previous_status=ItemStatus.ISSUED.value,
                new_status=ItemStatus.AVAILABLE.value,
                returned_by=self._actor_name,
                returned_by_id=self._actor_id,
                return_date=now,
            )
            self._audit.append(entry)

            payload: dict[str, Any] = {
                "status": ItemStatus.AVAILABLE.value,
                "issuedto": None,
                "issuedby": None,
                "dateofissue": None,
                "expectedreturndate": None,
                "lastmodifiedby": self._actor_name,
                "lastmodifieddate": now,
                "balancequantityinstock": item.balance_quantity + 1,
                "description": append_return_note(item.description, now, self._actor_name, note),
            }
            self._push_update(item, payload, AuditAction.RETURN.value)

            logger.info("item_returned", extra={
                "item_id": item.id,
                "issued_to": facets.issued_to,
                "request_id": facets.request_id,
                "balance_after": item.balance_quantity + 1,
            })
            return entry

    def issue_item(
        self,
        item_id: str,
        issued_to: str,
        expected_return_date: datetime | None = None,
        purpose: str | None = None,
        notes: str | None = None,
        snapshot: SourceSnapshot | None = None,
    ) -> AuditEntry:
        """
        Issue an available item to an employee.

        ``issued_to`` is a user id or name.  Appends an ``issue`` audit
        entry, then PUTs the item to ``issued`` with stock decremented by one
        and an issue block appended to its description.

        Raises:
            InventoryItemNotFoundError: item not in the inventory snapshot.
            ItemAlreadyIssuedError: item is currently issued.
            OutOfStockError: no balance left.
            UpstreamError: the server mutation failed.
        """
        snap = self._resolve_snapshot(snapshot)
        with LogContext.bind(item_id=item_id, actor_id=self._actor_id):
            item = self._require_item(snap, item_id)
            directory = UserDirectory(snap.users)
            if item.is_issued:
                raise ItemAlreadyIssuedError(item.id, directory.display_name(item.issued_to))
            if item.balance_quantity <= 0:
                raise OutOfStockError(item.id, item.balance_quantity)

            now = self._clock.now()
            recipient = directory.display_name(issued_to) or self._config.unknown_label

            entry = AuditEntry(
                action=AuditAction.ISSUE.value,
                item_id=item.id,
                item_name=item.asset_name,
                issued_to=recipient,
                issued_by=self._actor_name,
                notes=notes or self._config.default_issue_note,
                previous_status=item.status,
                new_status=ItemStatus.ISSUED.value,
                issue_date=now,
                expected_return_date=expected_return_date,
            )
            self._audit.append(entry)

            payload: dict[str, Any] = {
                "status": ItemStatus.ISSUED.value,
                "issuedto": issued_to,
                "issuedby": self._actor_name,
                "dateofissue": now,
                "expectedreturndate": expected_return_date,
                "lastmodifiedby": self._actor_name,
                "lastmodifieddate": now,
                "balancequantityinstock": item.balance_quantity - 1,
                "description": append_issue_note(
                    item.description,
                    now,
                    recipient,
                    self._actor_name,
                    purpose or DIRECT_ISSUE_PURPOSE,
                ),
            }
            self._push_update(item, payload, AuditAction.ISSUE.value)

            logger.info("item_issued", extra={
                "item_id": item.id,
                "issued_to": recipient,
                "balance_after": item.balance_quantity - 1,
            })
            return entry


def build_service(
    config: IssuanceConfig,
    audit_store: AuditStore,
    clock: Clock,
    current_user: User | None = None,
    token: str | None = None,
) -> IssuanceService:
    """Wire an IssuanceService against the configured backend."""
    api = InventoryApiClient(
        config.api_base_url,
        token=token,
        timeout=config.request_timeout_seconds,
    )
    return IssuanceService(api, audit_store, clock, current_user, config)
