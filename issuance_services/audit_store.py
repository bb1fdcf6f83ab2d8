"""
AuditStore -- append-only local log of issue/return actions.

Responsibility:
    Persist ``AuditEntry`` records in insertion order and answer per-item
    queries.  The log is advisory: it records what this client did, and is
    independent of server state.

Architecture position:
    Services -- imperative shell.  Injected into IssuanceService; never a
    module-level singleton.

Implementations:
    InMemoryAuditStore   -- list-backed, for tests.
    KeyValueAuditStore   -- JSON array under one key of a string key/value
                            store (the browser-storage layout).
    FileKeyValueStorage  -- a MutableMapping that keeps each key in a file,
                            so KeyValueAuditStore survives restarts.
    SqlAuditStore        -- SQLAlchemy table with append-only listeners.

Invariants enforced:
    - Append-only: no update, delete or compaction API exists.
    - ``query_by_item`` re-scans the full log on every call and yields
      entries oldest first.

Failure modes:
    - KeyValueAuditStore: absent key -> empty log.  Unparsable content
      (bad JSON, undecodable bytes, runaway nesting) -> MalformedDataError,
      logged and recovered as an empty log.  The next append starts a fresh
      sequence under the key.

Known limitations:
    - No size bound or compaction.
    - Two clients (or browser tabs) each see only their own entries.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator, MutableMapping
from pathlib import Path
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from issuance_config.schema import IssuanceConfig
from issuance_kernel.domain.records import AuditEntry
from issuance_kernel.exceptions import MalformedDataError
from issuance_kernel.logging_config import get_logger
from issuance_kernel.models.audit_entry import AuditEntryModel

logger = get_logger("services.audit_store")

DEFAULT_STORAGE_KEY = "issuanceAuditTrail"


def newest_first(entries: Iterable[AuditEntry]) -> list[AuditEntry]:
    """Display order for an audit trail; the log itself is never reordered.

    Entries without a timestamp sort last; ties keep insertion order reversed.
    """
    indexed = list(enumerate(entries))
    indexed.sort(
        key=lambda pair: (
            pair[1].occurred_at is not None,
            pair[1].occurred_at.timestamp() if pair[1].occurred_at else 0.0,
            pair[0],
        ),
        reverse=True,
    )
    return [entry for _, entry in indexed]


class AuditStore(ABC):
    """Capability interface for the audit log."""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        """Add ``entry`` to the end of the log."""
        ...

    @abstractmethod
    def entries(self) -> Iterator[AuditEntry]:
        """All entries, oldest first."""
        ...

    def query_by_item(self, item_id: str) -> Iterator[AuditEntry]:
        """Entries for one item, oldest first. Each call re-scans the log."""
        return (entry for entry in self.entries() if entry.item_id == item_id)


class InMemoryAuditStore(AuditStore):
    """List-backed store for tests and short-lived processes."""

    def __init__(self, entries: Iterable[AuditEntry] = ()):
        self._entries: list[AuditEntry] = list(entries)

    def append(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> Iterator[AuditEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class KeyValueAuditStore(AuditStore):
    """
    Audit log stored as a JSON array under a single well-known key.

    ``storage`` is any ``MutableMapping[str, str]``; a plain dict stands in
    for browser storage in tests, ``FileKeyValueStorage`` persists to disk.
    """

    def __init__(
        self,
        storage: MutableMapping[str, str],
        key: str = DEFAULT_STORAGE_KEY,
    ):
        self._storage = storage
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def _decode(self) -> list[dict]:
        try:
            raw = self._storage.get(self._key)
            if raw is None:
                return []
            data = json.loads(raw)
        except UnicodeDecodeError as exc:
            raise MalformedDataError(self._key, f"undecodable bytes: {exc}") from exc
        except RecursionError as exc:
            raise MalformedDataError(self._key, "nesting too deep") from exc
        except (TypeError, ValueError) as exc:
            raise MalformedDataError(self._key, f"invalid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise MalformedDataError(self._key, f"expected a JSON array, got {type(data).__name__}")
        return data

    def _load(self) -> list[dict]:
        try:
            return self._decode()
        except MalformedDataError as exc:
            logger.warning("audit_log_malformed_reset", extra={
                "storage_key": exc.storage_key,
                "reason": exc.reason,
            })
            return []

    def append(self, entry: AuditEntry) -> None:
        data = self._load()
        data.append(entry.to_dict())
        self._storage[self._key] = json.dumps(data)
        logger.info("audit_entry_appended", extra={
            "storage_key": self._key,
            "action": entry.action,
            "item_id": entry.item_id,
            "log_length": len(data),
        })

    def entries(self) -> Iterator[AuditEntry]:
        for raw in self._load():
            if not isinstance(raw, dict):
                logger.warning("audit_entry_skipped", extra={
                    "storage_key": self._key,
                    "entry_type": type(raw).__name__,
                })
                continue
            yield AuditEntry.from_dict(raw)


def build_key_value_store(
    config: IssuanceConfig,
    storage: MutableMapping[str, str],
) -> KeyValueAuditStore:
    """Key/value audit store under the configured ``audit_storage_key``."""
    return KeyValueAuditStore(storage, key=config.audit_storage_key)


class FileKeyValueStorage(MutableMapping):
    """
    String key/value storage with one file per key under ``directory``.

    Writes go to a temporary file first and are renamed into place, so a
    crash mid-write leaves the previous value intact.
    """

    def __init__(self, directory: Path | str):
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise KeyError(key)
        return self._directory / f"{key}.json"

    def __getitem__(self, key: str) -> str:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise KeyError(key) from None

    def __setitem__(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def __delitem__(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            raise KeyError(key) from None

    def __iter__(self) -> Iterator[str]:
        return (p.stem for p in sorted(self._directory.glob("*.json")))

    def __len__(self) -> int:
        return sum(1 for _ in self._directory.glob("*.json"))


class SqlAuditStore(AuditStore):
    """
    Audit log in the ``issuance_audit_entries`` table.

    Each append runs in its own transaction and takes the next ``seq``.
    Call ``register_immutability_listeners()`` at startup to block UPDATE
    and DELETE through the ORM.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def append(self, entry: AuditEntry) -> None:
        with self._session_factory() as session:
            with session.begin():
                next_seq = session.scalar(
                    select(func.coalesce(func.max(AuditEntryModel.seq), 0) + 1)
                )
                session.add(AuditEntryModel.from_entry(entry, seq=next_seq))
        logger.info("audit_entry_appended", extra={
            "storage": "sql",
            "action": entry.action,
            "item_id": entry.item_id,
            "seq": next_seq,
        })

    def _scan(self, item_id: str | None) -> Iterator[AuditEntry]:
        stmt = select(AuditEntryModel).order_by(AuditEntryModel.seq)
        if item_id is not None:
            stmt = stmt.where(AuditEntryModel.item_id == item_id)
        with self._session_factory() as session:
            rows = session.scalars(stmt).all()
            entries = [row.to_entry() for row in rows]
        yield from entries

    def entries(self) -> Iterator[AuditEntry]:
        return self._scan(None)

    def query_by_item(self, item_id: str) -> Iterator[AuditEntry]:
        return self._scan(item_id)
