"""
Checklist REST API gateway.

The remote document store seen from the client side. Every request to
``/api/v1/migrations`` goes through this class and comes back as a
``GatewayResult``; network errors and non-2xx responses are folded into the
result, never raised.

No retries: a failed load or save is terminal and the caller decides when
to try again (``MigrationSession.retry()`` / ``refetch()``).

Testability: pass a mock ``session`` to ChecklistGateway() in tests instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
_DEFAULT_BASE_URL = "http://localhost:5000/api/v1"


class GatewayResult:
    """Structured return value from ChecklistGateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed response payload, unwrapped to the document for
                        single-migration calls; None on failure.
        error:          Technical error description or None.
        message:        Human-readable message supplied by the server in the
                        failure payload ("message", else "error" key), or None.
        duration_ms:    Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: Any,
        error: str | None,
        message: str | None = None,
        duration_ms: int = 0,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.message = message
        self.duration_ms = duration_ms

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


def _server_message(resp: requests.Response) -> str | None:
    """Pull the human-readable message out of a failure payload, if any."""
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    for key in ("message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


class ChecklistGateway:
    """HTTP client for the checklist service.

    Usage:
        gateway = ChecklistGateway("https://checklist.example.com/api/v1", token="…")
        result = gateway.fetch_migration("4f1c…")
        if result.ok:
            document = result.data
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session

    @classmethod
    def from_env(cls, session: requests.Session | None = None) -> "ChecklistGateway":
        """Build a gateway from CHECKLIST_API_URL / CHECKLIST_API_TOKEN."""
        return cls(
            base_url=os.getenv("CHECKLIST_API_URL", _DEFAULT_BASE_URL),
            token=os.getenv("CHECKLIST_API_TOKEN") or None,
            session=session,
        )

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    # ── Core request dispatcher ──────────────────────────────────────────────

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
    ) -> GatewayResult:
        """Execute one request against the checklist API.

        Returns:
            GatewayResult: always returns (never raises). Callers check .ok.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": self.timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning("Checklist API timed out method=%s url=%s", method, url)
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error=f"Request timed out after {self.timeout}s",
                duration_ms=int(self.timeout * 1000),
            )
        except requests.RequestException as exc:
            logger.warning("Checklist API network error method=%s url=%s error=%s", method, url, exc)
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error=str(exc)[:500],
                duration_ms=int((time.perf_counter() - t0) * 1000),
            )

        duration_ms = int((time.perf_counter() - t0) * 1000)

        if resp.ok:
            try:
                data = resp.json() if resp.content else {}
            except ValueError:
                data = {}
            logger.debug("Checklist API %s %s → %d (%dms)", method, url, resp.status_code, duration_ms)
            return GatewayResult(
                ok=True,
                status_code=resp.status_code,
                data=data,
                error=None,
                duration_ms=duration_ms,
            )

        logger.warning(
            "Checklist API request failed method=%s status=%d url=%s",
            method, resp.status_code, url,
        )
        return GatewayResult(
            ok=False,
            status_code=resp.status_code,
            data=None,
            error=f"HTTP {resp.status_code}: {resp.text[:500]}",
            message=_server_message(resp),
            duration_ms=duration_ms,
        )

    @staticmethod
    def _unwrap(result: GatewayResult, key: str) -> GatewayResult:
        """Replace ``data`` with ``data[key]`` on success."""
        if result.ok:
            body = result.data if isinstance(result.data, dict) else {}
            result.data = body.get(key)
        return result

    # ── Migration operations ─────────────────────────────────────────────────

    def list_migrations(self, client_name: str | None = None) -> GatewayResult:
        """GET /migrations → data = {"items": [...], "total": n}."""
        params = {"clientName": client_name} if client_name else None
        return self.request("GET", "/migrations", params=params)

    def create_migration(self, client_info: dict | None = None) -> GatewayResult:
        """POST /migrations → data = created migration document."""
        result = self.request("POST", "/migrations", json_body={"clientInfo": client_info or {}})
        return self._unwrap(result, "migration")

    def fetch_migration(self, migration_id: str) -> GatewayResult:
        """GET /migrations/<id> → data = migration document."""
        result = self.request("GET", f"/migrations/{migration_id}")
        return self._unwrap(result, "migration")

    def save_migration(self, migration_id: str, payload: dict) -> GatewayResult:
        """PUT /migrations/<id> with {clientInfo, questions} → data = stored document."""
        result = self.request("PUT", f"/migrations/{migration_id}", json_body=payload)
        return self._unwrap(result, "migration")

    def add_delta(self, migration_id: str, parent_id: str, name: str | None = None) -> GatewayResult:
        """POST a new delta item under a deltaParent question → data = delta item."""
        body = {"name": name} if name else {}
        result = self.request(
            "POST", f"/migrations/{migration_id}/questions/{parent_id}/deltas", json_body=body,
        )
        return self._unwrap(result, "delta")

    def remove_delta(self, migration_id: str, parent_id: str, delta_id: str) -> GatewayResult:
        """DELETE one delta item."""
        return self.request(
            "DELETE", f"/migrations/{migration_id}/questions/{parent_id}/deltas/{delta_id}",
        )
