"""
Pytest fixtures for the issuance test suite.

Provides:
- Structured logging setup and log capture
- A deterministic clock pinned to AS_OF
- Payload builders in the backend's lower-cased field layout
- An in-memory SQLite session factory for the SQL audit store
- A fake HTTP session for the REST client
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Any

import pytest

from issuance_config.schema import IssuanceConfig
from issuance_kernel.db.engine import create_session_factory
from issuance_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from issuance_kernel.domain.clock import DeterministicClock
from issuance_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

AS_OF = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def days_ago(days: int, hours: int = 0) -> str:
    """ISO timestamp ``days`` (and ``hours``) before AS_OF, as the server sends it."""
    return (AS_OF - timedelta(days=days, hours=hours)).isoformat().replace("+00:00", "Z")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture issuance_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "item_returned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("issuance_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time and configuration
# =============================================================================


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture(name="days_ago")
def days_ago_fixture():
    return days_ago


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(AS_OF)


@pytest.fixture
def config() -> IssuanceConfig:
    return IssuanceConfig(api_base_url="http://inventory.test/api")


# =============================================================================
# Payload builders
# =============================================================================


@pytest.fixture
def make_item():
    """Build an inventory payload with backend field names."""

    def _make(item_id: str = "1", **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": item_id,
            "assetname": "Laptop",
            "categoryname": "IT Equipment",
            "status": "issued",
            "locationofitem": "Head Office",
            "issuedto": "Alice",
            "issuedby": "Stock Manager",
            "issueddate": days_ago(5),
            "totalcost": 1200,
            "balancequantityinstock": 3,
            "description": "",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def make_request():
    """Build a request payload with backend field names."""

    def _make(request_id: str = "r1", **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": request_id,
            "employeename": "Alice",
            "itemtype": "Laptop",
            "status": "approved",
            "department": "Engineering",
            "purpose": "Onboarding",
            "remarks": "Approved by IT",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def sample_users() -> list[dict[str, Any]]:
    return [
        {"id": "u1", "name": "Alice", "role": "employee", "department": "Engineering"},
        {"id": "u2", "name": "Bob", "role": "employee", "department": "Finance"},
        {"id": "u3", "name": "Stock Manager", "role": "stock-manager", "department": "Stores"},
    ]


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database with append-only listeners."""
    factory = create_session_factory("sqlite://")
    register_immutability_listeners()
    yield factory
    unregister_immutability_listeners()
    factory.kw["bind"].dispose()


# =============================================================================
# HTTP
# =============================================================================


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, body: Any = None, reason: str = "OK"):
        self.status_code = status_code
        self._body = body
        self.reason = reason

    def json(self) -> Any:
        if isinstance(self._body, str):
            return json.loads(self._body)
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeHttpSession:
    """
    Records calls and answers from a route table.

    Routes map ``(METHOD, path)`` to a FakeResponse or an exception instance
    to raise.  Unrouted calls answer 404.
    """

    def __init__(self, base_url: str = "http://inventory.test/api"):
        self.base_url = base_url
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[dict[str, Any]] = []

    def route(self, method: str, path: str, response: Any) -> None:
        self.routes[(method, path)] = response

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = url[len(self.base_url):]
        self.calls.append({
            "method": method,
            "path": path,
            "json": json,
            "headers": headers or {},
            "timeout": timeout,
        })
        response = self.routes.get((method, path))
        if response is None:
            return FakeResponse(404, {"success": False, "message": "Not found"}, "Not Found")
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, method: str, path: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method and c["path"] == path]


@pytest.fixture
def http_session() -> FakeHttpSession:
    return FakeHttpSession()


@pytest.fixture
def respond():
    """Factory for FakeResponse objects."""
    return FakeResponse
