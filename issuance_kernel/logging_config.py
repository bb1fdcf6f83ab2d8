"""
Structured logging for issuance operations.

Responsibility:
    Emit every ``issuance_kernel.*`` log record as one JSON object per line,
    stamped with the item and actor of the issue/return in progress.

Architecture position:
    Kernel -- imported by engines and services through ``get_logger``.

Record layout:
    ts, level, logger, message   always present
    item_id, actor_id            when bound through ``LogContext``
    <extra keys>                 anything passed via ``extra=``
    exc_*, traceback             when logged with ``exc_info``; typed
                                 issuance errors contribute ``exc_code`` and
                                 one ``exc_<attr>`` per public attribute

Values the json module cannot encode natively are written as ISO-8601
(datetime, date) or as their ``str()`` form (Decimal, UUID, anything else).
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from typing import Any, Iterator

_LOGGER_PREFIX = "issuance_kernel"


class LogContext:
    """Item and actor of the operation being logged, held in context vars."""

    _vars: dict[str, ContextVar[str | None]] = {
        "item_id": ContextVar("issuance_log_item_id", default=None),
        "actor_id": ContextVar("issuance_log_actor_id", default=None),
    }

    @classmethod
    def set(cls, *, item_id: str | None = None, actor_id: str | None = None) -> None:
        """Overwrite the given fields; None leaves a field untouched."""
        for name, value in (("item_id", item_id), ("actor_id", actor_id)):
            if value is not None:
                cls._vars[name].set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        values = {name: var.get() for name, var in cls._vars.items()}
        return {name: value for name, value in values.items() if value is not None}

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(
        cls,
        *,
        item_id: str | None = None,
        actor_id: str | None = None,
    ) -> Iterator[type[LogContext]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (cls._vars[name], cls._vars[name].set(value))
            for name, value in (("item_id", item_id), ("actor_id", actor_id))
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else came from ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for attr, value in vars(exc).items():
        if attr.startswith("_") or attr in ("args", "code"):
            continue
        fields[f"exc_{attr}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """``issuance_kernel.<name>`` logger."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``issuance_kernel`` logger.

    Only the first call has any effect; later calls return immediately so
    that library entry points may call this unconditionally.
    """
    global _installed
    with _lock:
        if _installed is not None:
            return
        _installed = handler or logging.StreamHandler(stream or sys.stderr)
        _installed.setFormatter(StructuredFormatter())

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_installed)


def reset_logging() -> None:
    """Undo ``configure_logging``. Test use only."""
    global _installed
    with _lock:
        _installed = None
        root = logging.getLogger(_LOGGER_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        root.propagate = True
