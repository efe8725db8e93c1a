"""httpx-based client for a running dashboard API.

All methods return decoded JSON or raise DashboardOfflineError / DashboardError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.api.models import DashboardHealth

logger = logging.getLogger(__name__)


class DashboardOfflineError(Exception):
    """Raised when the dashboard is unreachable."""


class DashboardError(Exception):
    """Raised when the dashboard returns an error."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Dashboard error {status_code}: {detail}")


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return resp.text


class DashboardClient:
    """Synchronous httpx client for the dashboard API."""

    def __init__(self, base_url: str, timeout: float = 15.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        try:
            with httpx.Client(timeout=timeout or self._timeout) as client:
                resp = client.request(
                    method,
                    f"{self._base_url}{path}",
                    params=params,
                    json=json_data,
                )
        except httpx.ConnectError as e:
            raise DashboardOfflineError(f"Dashboard at {self._base_url} is unreachable") from e
        except httpx.TimeoutException as e:
            raise DashboardOfflineError("Dashboard request timed out") from e

        if resp.status_code >= 400:
            raise DashboardError(resp.status_code, _error_detail(resp))
        return resp

    @staticmethod
    def _project_params(project_path: str, provider: str | None) -> dict[str, str]:
        params = {"projectPath": project_path}
        if provider:
            params["provider"] = provider
        return params

    # ── High-level methods ───────────────────────────────────────────────

    def health(self) -> DashboardHealth:
        """GET /api/health"""
        resp = self._request("GET", "/api/health", timeout=5.0)
        return DashboardHealth(**resp.json())

    def providers(self) -> dict[str, Any]:
        """GET /api/providers"""
        return self._request("GET", "/api/providers").json()

    def project_status(self, project_path: str, provider: str | None = None) -> dict[str, Any]:
        """GET /api/project-status?projectPath=...&provider=..."""
        resp = self._request(
            "GET", "/api/project-status", params=self._project_params(project_path, provider),
        )
        return resp.json()

    def export_diagnostics(self, project_path: str, provider: str | None = None) -> dict[str, Any]:
        """GET /api/export-diagnostics — the bundle as a dict."""
        resp = self._request(
            "GET",
            "/api/export-diagnostics",
            params=self._project_params(project_path, provider),
            timeout=60.0,
        )
        return resp.json()

    def save_snapshot(
        self,
        project_path: str,
        snapshot_text: str = "",
        provider: str | None = None,
    ) -> dict[str, Any]:
        """POST /api/codex-status-snapshot"""
        payload: dict[str, Any] = {"projectPath": project_path, "snapshotText": snapshot_text}
        if provider:
            payload["provider"] = provider
        return self._request("POST", "/api/codex-status-snapshot", json_data=payload).json()
