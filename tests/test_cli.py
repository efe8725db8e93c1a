"""Tests for the dashboard HTTP client and the `status` CLI command."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest
from rich.table import Table

from src.client.dashboard import DashboardClient, DashboardError, DashboardOfflineError
from src.main import main, render_status, run_status

RECORD = {
    "provider": "codex",
    "status": {"status": "running"},
    "codexQuotaEffective": {
        "source": "snapshot",
        "fiveHour": {"status": "ok", "remainingPercent": 55, "resetLabel": "3:07 PM"},
        "weekly": {"status": "unknown", "remainingPercent": None},
    },
    "runtime": {"processesCount": 1, "runtimeHealthy": True},
    "diagnostics": {"rootCause": "The loop is running normally.", "recommendation": "No action needed."},
}


class TestDashboardClient:
    def test_health(self):
        resp = httpx.Response(
            200, json={"ok": True, "name": "ralph-control", "version": "0.1.0", "timestamp": "t"},
        )
        with patch.object(httpx.Client, "request", return_value=resp):
            health = DashboardClient("http://127.0.0.1:3001").health()
        assert health.ok is True
        assert health.name == "ralph-control"

    def test_project_status_params(self):
        resp = httpx.Response(200, json=RECORD)
        with patch.object(httpx.Client, "request", return_value=resp) as request:
            data = DashboardClient("http://dash/").project_status("/work/app", provider="codex")
        assert data["provider"] == "codex"
        args, kwargs = request.call_args
        assert args == ("GET", "http://dash/api/project-status")
        assert kwargs["params"] == {"projectPath": "/work/app", "provider": "codex"}

    def test_error_detail(self):
        resp = httpx.Response(400, json={"detail": "Invalid projectPath"})
        with patch.object(httpx.Client, "request", return_value=resp):
            with pytest.raises(DashboardError) as exc:
                DashboardClient("http://dash").project_status("/nope")
        assert exc.value.status_code == 400
        assert exc.value.detail == "Invalid projectPath"

    def test_non_json_error(self):
        resp = httpx.Response(502, text="bad gateway")
        with patch.object(httpx.Client, "request", return_value=resp):
            with pytest.raises(DashboardError, match="bad gateway"):
                DashboardClient("http://dash").providers()

    def test_offline(self):
        with patch.object(httpx.Client, "request", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(DashboardOfflineError):
                DashboardClient("http://dash").project_status("/work/app")

    def test_timeout(self):
        with patch.object(httpx.Client, "request", side_effect=httpx.ReadTimeout("slow")):
            with pytest.raises(DashboardOfflineError, match="timed out"):
                DashboardClient("http://dash").project_status("/work/app")


class TestStatusCommand:
    def test_render_status(self):
        table = render_status(RECORD)
        assert isinstance(table, Table)
        assert table.row_count == 2
        assert "snapshot" in str(table.caption)

    def test_render_empty_record(self):
        assert render_status({}).row_count == 2

    def test_run_status_ok(self):
        with patch.object(DashboardClient, "project_status", return_value=RECORD):
            assert run_status("/work/app", None, "http://dash") == 0

    def test_run_status_offline(self):
        with patch.object(
            DashboardClient, "project_status", side_effect=DashboardOfflineError("unreachable"),
        ):
            assert run_status("/work/app", None, "http://dash") == 1

    def test_run_status_error(self):
        with patch.object(
            DashboardClient, "project_status", side_effect=DashboardError(400, "Invalid projectPath"),
        ):
            assert run_status("/nope", None, "http://dash") == 1

    def test_main_exit_code(self):
        with patch("src.main.run_status", return_value=1) as run:
            with pytest.raises(SystemExit) as exc:
                main(["status", "/work/app", "--provider", "gemini", "--url", "http://dash"])
        assert exc.value.code == 1
        run.assert_called_once_with("/work/app", "gemini", "http://dash")

    def test_main_without_command(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
