"""
InventoryApiClient -- REST collaborator for inventory, requests and users.

Responsibility:
    Thin HTTP layer over the inventory backend.  Reads return raw payload
    dicts (lower-cased field names, exactly as the server sends them);
    parsing into domain records happens in the service.

Architecture position:
    Services -- imperative shell, the only module that performs network I/O.

Wire format:
    - Responses use the envelope ``{"success": bool, "data": ...}``; a bare
      JSON list is accepted as well.
    - ``PUT /inventory/{id}`` takes a partial update with the backend's
      lower-cased keys (``status``, ``issuedto``, ``issuedby``,
      ``dateofissue``, ``expectedreturndate``, ``lastmodifiedby``,
      ``lastmodifieddate``, ``balancequantityinstock``, ``description``).
    - Inventory reads always bypass HTTP caches.

Failure modes:
    - SessionExpiredError on HTTP 401.
    - UpstreamError on transport failure, any other non-2xx status, an
      unparsable body, or an envelope with ``success: false``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

import requests

from issuance_kernel.exceptions import SessionExpiredError, UpstreamError
from issuance_kernel.logging_config import get_logger

logger = get_logger("services.inventory_api")


def _wire_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class InventoryApiClient:
    """HTTP client for the inventory backend (``requests``-based)."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._token = token

    def set_token(self, token: str | None) -> None:
        self._token = token

    def _headers(self, no_cache: bool = False) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if no_cache:
            headers["Cache-Control"] = "no-cache"
        return headers

    def _call(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        no_cache: bool = False,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                json=json_body,
                headers=self._headers(no_cache=no_cache),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("upstream_transport_failed", extra={
                "method": method,
                "url": url,
                "error": str(exc),
            })
            raise UpstreamError(method, url, str(exc)) from exc

        if response.status_code == 401:
            logger.warning("upstream_session_expired", extra={"method": method, "url": url})
            raise SessionExpiredError(method, url, "session expired", status_code=401)

        if not 200 <= response.status_code < 300:
            reason = self._error_message(response)
            logger.warning("upstream_request_failed", extra={
                "method": method,
                "url": url,
                "status_code": response.status_code,
                "reason": reason,
            })
            raise UpstreamError(method, url, reason, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(
                method, url, "response body is not JSON", status_code=response.status_code,
            ) from exc

        if isinstance(body, dict) and body.get("success") is False:
            raise UpstreamError(
                method, url, str(body.get("message") or "request rejected"),
                status_code=response.status_code,
            )

        logger.debug("upstream_request_completed", extra={
            "method": method,
            "url": url,
            "status_code": response.status_code,
        })
        return body

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason or f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.reason or f"HTTP {response.status_code}"

    @staticmethod
    def _unwrap_list(body: Any) -> list[dict[str, Any]]:
        data = body.get("data") if isinstance(body, dict) else body
        if isinstance(data, dict):
            # Paginated shape: {"data": {"items": [...]}}
            data = data.get("items") or data.get("results") or []
        if not isinstance(data, list):
            return []
        return [row for row in data if isinstance(row, dict)]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_inventory(self) -> list[dict[str, Any]]:
        """``GET /inventory`` -- always refetched, never served from cache."""
        return self._unwrap_list(self._call("GET", "/inventory", no_cache=True))

    def list_requests(self) -> list[dict[str, Any]]:
        """``GET /requests``."""
        return self._unwrap_list(self._call("GET", "/requests"))

    def list_users(self) -> list[dict[str, Any]]:
        """``GET /users``."""
        return self._unwrap_list(self._call("GET", "/users"))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_inventory_item(self, item_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """``PUT /inventory/{id}`` with a partial-update payload."""
        body = self._call(
            "PUT",
            f"/inventory/{item_id}",
            json_body={key: _wire_value(value) for key, value in payload.items()},
        )
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}
