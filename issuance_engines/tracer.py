"""
issuance_engines.tracer -- ISSUANCE_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` logs one record per derivation pass: engine name and
    version, a fingerprint of the inputs that decide the result (``as_of``,
    thresholds, filter criteria), wall time, and an optional summary of the
    result (record counts and the like).

Architecture position:
    Engines -- support for the pure derivation layer.  Emits a log record
    and nothing else; engines stay free of I/O.

Fingerprint:
    SHA-256 over the selected arguments as sorted-key JSON, truncated to
    ``FINGERPRINT_LENGTH`` hex characters.  Arguments are bound against the
    engine signature with defaults applied, so ``f(x, limit=3)`` and
    ``f(x)`` with ``limit=3`` as default fingerprint the same.  Absent
    fields encode as null.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from typing import Any

_logger = logging.getLogger("issuance_kernel.engines.tracer")

TRACE_MESSAGE = "ISSUANCE_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16


def _encode(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    selected = {field: arguments.get(field) for field in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"), default=_encode)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], Mapping[str, Any]] | None = None,
) -> Callable:
    """Decorate a pure engine so every call logs ISSUANCE_ENGINE_TRACE.

    Args:
        engine_name: e.g. ``"issuance_reconciliation"``.
        engine_version: bumped when the derivation rules change.
        fingerprint_fields: parameter names hashed into ``input_fingerprint``.
        summarize: maps the engine result to extra trace fields.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = None
            if fingerprint_fields:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            trace: dict[str, Any] = {
                "trace_type": TRACE_MESSAGE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "function": func.__qualname__,
                "input_fingerprint": fingerprint,
                "duration_ms": round(elapsed_ms, 3),
            }
            if summarize is not None:
                trace.update(summarize(result))
            _logger.info(TRACE_MESSAGE, extra=trace)
            return result

        return wrapper

    return decorator
