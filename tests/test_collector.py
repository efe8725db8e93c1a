"""Tests for project-status collection and the diagnostics bundle."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from src.quota.models import utc_now
from src.runtime.collector import collect_project_status, export_diagnostics
from src.runtime.processes import RuntimeProcess

LOOP_PROCESS = RuntimeProcess(pid=100, ppid=1, etime="00:10", command="bash ralph_loop.sh")


def _one_process(provider):
    return [LOOP_PROCESS]


def _no_processes(provider):
    return []


def _write(project: Path, relative: str, text: str) -> Path:
    path = project / ".ralph" / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestCollectProjectStatus:
    def test_healthy_running_project(self, project, dashboard_config, write_status):
        write_status(status="running", timestamp=utc_now().isoformat(), loop_count=3)
        _write(project, "logs/ralph.log", "loop started\ncall 3 ok\n")
        _write(project, "fix_plan.md", "- [ ] fix tests\n")
        _write(project, "codex_status_snapshot.txt", "5h 55% (resets 14:30)\nWeekly 70%\n")

        record = collect_project_status(
            project, dashboard_config.provider("codex"), dashboard_config,
            process_lister=_one_process,
        ).to_dict()

        assert record["provider"] == "codex"
        assert record["status"]["status"] == "running"
        assert record["logs"].endswith("call 3 ok")
        assert record["fixPlan"] == "- [ ] fix tests\n"
        assert record["codexQuotaEffective"]["source"] == "snapshot"
        assert record["codexQuotaEffective"]["fiveHour"]["remainingPercent"] == 55
        assert record["codexStatusSnapshot"]["isStale"] is False
        assert record["runtime"]["runtimeHealthy"] is True
        assert record["diagnostics"]["rootCause"] == "The loop is running normally."
        assert record["processes"] == [LOOP_PROCESS.to_dict()]

    def test_canonical_quota_in_status_file(self, project, dashboard_config, write_status):
        write_status(
            status="running",
            timestamp=utc_now().isoformat(),
            codex_quota_effective={
                "five_hour": {"remaining_percent": 55},
                "weekly": {"remaining_percent": 70},
                "source": "codex_status_snapshot",
            },
        )
        _write(project, "codex_status_snapshot.txt", "5h 10% left\n")

        status = collect_project_status(
            project, dashboard_config.provider(), dashboard_config, process_lister=_one_process,
        )
        assert status.effective_quota.source == "codex_status_snapshot"
        assert status.effective_quota.five_hour.remaining_percent == 55

    def test_orphaned_loop_is_overlaid(self, project, dashboard_config, write_status):
        write_status(status="running", timestamp=(utc_now() - timedelta(minutes=2)).isoformat())

        record = collect_project_status(
            project, dashboard_config.provider(), dashboard_config, process_lister=_no_processes,
        ).to_dict()

        assert record["status"]["status"] == "stopped_unexpected"
        assert record["statusOriginal"]["status"] == "running"
        assert record["runtime"]["orphaned"] is True
        assert "process is gone" in record["diagnostics"]["rootCause"]

    def test_orphaned_loop_ignores_fresh_report(self, project, dashboard_config, write_status):
        write_status(status="running", timestamp=(utc_now() - timedelta(minutes=2)).isoformat())
        _write(
            project,
            "diagnostics_summary.json",
            json.dumps({
                "generated_at": (utc_now() - timedelta(minutes=1)).isoformat(),
                "root_cause": "The loop is running normally.",
                "recommendation": "No action needed.",
            }),
        )

        diagnostics = collect_project_status(
            project, dashboard_config.provider(), dashboard_config, process_lister=_no_processes,
        ).diagnostics

        assert diagnostics.source == "derived"
        assert diagnostics.is_stale is False
        assert "process is gone" in diagnostics.root_cause

    def test_session_journal_used_without_snapshot(
        self, project, dashboard_config, write_rollout, rate_limit_event,
    ):
        write_rollout("sessions/rollout-1.jsonl", [rate_limit_event(primary_used=45.0)])
        status = collect_project_status(
            project, dashboard_config.provider(), dashboard_config, process_lister=_no_processes,
        )
        assert status.effective_quota.source == "codex_sessions"
        assert status.session_rate_limits is not None
        assert status.to_dict()["sessionRateLimits"]["fiveHour"]["remainingPercent"] == 55

    def test_provider_without_snapshot_or_journal(
        self, project, dashboard_config, write_rollout, rate_limit_event,
    ):
        write_rollout("sessions/rollout-1.jsonl", [rate_limit_event()])
        _write(project, "codex_status_snapshot.txt", "5h 55%\n")
        _write(project, "logs/gemini_stderr_1.log", "5-hour quota limit reached\n")

        status = collect_project_status(
            project, dashboard_config.provider("gemini"), dashboard_config,
            process_lister=_no_processes,
        )
        assert status.snapshot is None
        assert status.session_rate_limits is None
        assert status.effective_quota.source == "heuristics_logs"
        assert status.effective_quota.five_hour.status.value == "limited"

    def test_empty_project(self, project, dashboard_config):
        record = collect_project_status(
            project, dashboard_config.provider(), dashboard_config, process_lister=_no_processes,
        ).to_dict()
        assert record["status"] is None
        assert record["logs"] == ""
        assert record["fixPlan"] == ""
        assert record["codexStatusSnapshot"] is None
        assert record["runtime"]["runtimeHealthy"] is False
        assert record["diagnostics"]["source"] == "derived"


class TestExportDiagnostics:
    def test_bundle(self, project, dashboard_config, write_status):
        write_status(status="completed", timestamp=utc_now().isoformat())
        _write(project, "logs/ralph.log", "done\n")
        _write(project, "logs/codex_stderr_1.log", "warning: slow\n")
        _write(project, ".codex_session_id", "abc-123\n")
        _write(project, ".response_analysis", "looks fine")

        bundle = export_diagnostics(
            collect_project_status(
                project, dashboard_config.provider(), dashboard_config,
                process_lister=_no_processes,
            )
        )

        assert bundle["projectPath"] == str(project)
        assert bundle["provider"] == "codex"
        assert bundle["sessionId"] == "abc-123"
        assert bundle["responseAnalysis"] == "looks fine"
        assert bundle["status"]["status"] == "completed"
        assert bundle["logs"]["ralphTail100"] == "done"
        assert set(bundle["logs"]["recentFiles"]) == {"ralph.log", "codex_stderr_1.log"}
        assert "python" in bundle["environment"]
        assert bundle["codexQuotaEffective"]["source"] == "heuristics_logs"
