"""Assemble the full project-status record from every artifact.

Each call re-reads everything (status file, logs, snapshot, session journal,
process table) and recomputes the merge; nothing is kept in memory.
"""

from __future__ import annotations

import logging
import platform
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from src.config import DashboardConfig
from src.providers.registry import ProviderSpec
from src.quota.heuristics import scan_log_quota
from src.quota.models import (
    EffectiveQuota,
    HeuristicQuota,
    SessionRateLimits,
    StatusSnapshot,
    utc_now,
)
from src.quota.resolver import build_effective_quota
from src.quota.sessions import read_latest_rate_limits
from src.quota.snapshot import attach_capture_metadata, parse_status_snapshot_text
from src.runtime.artifacts import (
    ProjectArtifacts,
    file_mtime,
    list_recent_files,
    safe_read_json,
    safe_read_text,
    tail_file,
)
from src.runtime.health import (
    DiagnosticsSummary,
    RuntimeHealth,
    build_diagnostics_summary,
    evaluate_runtime_health,
)
from src.runtime.processes import RuntimeProcess, list_runtime_processes

logger = logging.getLogger(__name__)

ProcessLister = Callable[[ProviderSpec], list[RuntimeProcess]]

# Keys under which the loop may embed its own canonical quota in status.json
STATUS_QUOTA_KEYS = ("codex_quota_effective", "quota_effective")


@dataclass
class ProjectStatus:
    """Everything the dashboard knows about one project at one instant."""

    provider: ProviderSpec
    project_path: Path
    status: dict[str, Any] | None  # possibly overlaid
    status_original: dict[str, Any] | None
    logs: str
    fix_plan: str
    heuristic_quota: HeuristicQuota
    snapshot: StatusSnapshot | None
    session_rate_limits: SessionRateLimits | None
    effective_quota: EffectiveQuota
    runtime: RuntimeHealth
    diagnostics: DiagnosticsSummary
    processes: list[RuntimeProcess] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.id,
            "projectPath": str(self.project_path),
            "status": self.status,
            "statusOriginal": self.status_original,
            "logs": self.logs,
            "fixPlan": self.fix_plan,
            "codexQuota": self.heuristic_quota.to_dict(),
            "codexStatusSnapshot": self.snapshot.to_dict() if self.snapshot else None,
            "sessionRateLimits": (
                self.session_rate_limits.to_dict() if self.session_rate_limits else None
            ),
            "codexQuotaEffective": self.effective_quota.to_dict(),
            "runtime": self.runtime.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
            "processes": [p.to_dict() for p in self.processes],
            "generatedAt": self.generated_at.isoformat(),
        }


# ── Individual sources ───────────────────────────────────────────────────────


def read_status(artifacts: ProjectArtifacts) -> dict[str, Any] | None:
    data = safe_read_json(artifacts.status_file)
    return data if isinstance(data, dict) else None


def load_snapshot(
    artifacts: ProjectArtifacts,
    provider: ProviderSpec,
    config: DashboardConfig,
    now: datetime | None = None,
) -> StatusSnapshot | None:
    """Parse the provider's snapshot file and stamp its age from the mtime."""
    if not provider.supports_quota_snapshot:
        return None
    path = artifacts.snapshot_file(provider.snapshot_filename)
    snapshot = parse_status_snapshot_text(safe_read_text(path), now=now)
    if snapshot is None:
        return None
    return attach_capture_metadata(
        snapshot, file_mtime(path), config.snapshot_stale_seconds, now=now,
    )


def load_session_rate_limits(
    provider: ProviderSpec,
    config: DashboardConfig,
) -> SessionRateLimits | None:
    if not provider.supports_session_journal:
        return None
    return read_latest_rate_limits(
        config.codex_home,
        tail_line_count=config.session_tail_lines,
        files_limit=config.session_files_limit,
    )


def load_heuristic_quota(
    artifacts: ProjectArtifacts,
    provider: ProviderSpec,
    config: DashboardConfig,
    now: datetime | None = None,
) -> HeuristicQuota:
    return scan_log_quota(
        artifacts.log_dir,
        log_filename=provider.log_filename,
        stderr_prefix=provider.stderr_prefix,
        weekly_missing_note=provider.weekly_unavailable_note,
        log_tail=config.quota_log_tail_lines,
        stderr_tail=config.stderr_tail_lines,
        stderr_files=config.stderr_files_limit,
        now=now,
    )


def _status_quota(status: dict[str, Any] | None) -> Any:
    if not status:
        return None
    return next((status[k] for k in STATUS_QUOTA_KEYS if status.get(k)), None)


# ── Composition ──────────────────────────────────────────────────────────────


def collect_project_status(
    project_path: Path,
    provider: ProviderSpec,
    config: DashboardConfig,
    now: datetime | None = None,
    process_lister: ProcessLister = list_runtime_processes,
) -> ProjectStatus:
    """Read every artifact for a project and merge them into one record."""
    now = now or utc_now()
    artifacts = ProjectArtifacts(project_path)

    status = read_status(artifacts)
    processes = process_lister(provider)
    heuristic_quota = load_heuristic_quota(artifacts, provider, config, now)
    snapshot = load_snapshot(artifacts, provider, config, now)
    session_rate_limits = load_session_rate_limits(provider, config)

    effective_quota = build_effective_quota(
        snapshot, heuristic_quota, session_rate_limits, _status_quota(status), now=now,
    )
    effective_status, runtime = evaluate_runtime_health(
        status,
        len(processes),
        now=now,
        fresh_seconds=config.status_fresh_seconds,
        orphan_threshold_seconds=config.orphan_threshold_seconds,
    )
    diagnostics = build_diagnostics_summary(
        safe_read_json(artifacts.diagnostics_file),
        effective_status,
        five_hour_remaining=effective_quota.five_hour.remaining_percent,
        reset_label=effective_quota.five_hour.reset_label,
        status_fresh=runtime.status_fresh,
        now=now,
        stale_after_seconds=config.diagnostics_stale_seconds,
        orphaned=runtime.orphaned,
    )

    logger.debug(
        "Collected %s status for %s: quota=%s healthy=%s",
        provider.id, project_path, effective_quota.source, runtime.runtime_healthy,
    )
    return ProjectStatus(
        provider=provider,
        project_path=project_path,
        status=effective_status,
        status_original=status,
        logs=tail_file(artifacts.log_file(provider.log_filename), config.status_log_tail_lines),
        fix_plan=safe_read_text(artifacts.fix_plan_file),
        heuristic_quota=heuristic_quota,
        snapshot=snapshot,
        session_rate_limits=session_rate_limits,
        effective_quota=effective_quota,
        runtime=runtime,
        diagnostics=diagnostics,
        processes=processes,
        generated_at=now,
    )


def export_diagnostics(
    project_status: ProjectStatus,
    recent_files_limit: int = 10,
    recent_tail_lines: int = 120,
) -> dict[str, Any]:
    """Bundle the status record with raw artifacts for offline debugging."""
    artifacts = ProjectArtifacts(project_status.project_path)
    record = project_status.to_dict()
    recent = {
        path.name: tail_file(path, recent_tail_lines)
        for path in list_recent_files(artifacts.log_dir, limit=recent_files_limit)
    }
    return {
        "exportedAt": utc_now().isoformat(),
        "projectPath": str(project_status.project_path),
        "provider": project_status.provider.id,
        "environment": {
            "python": platform.python_version(),
            "platform": sys.platform,
        },
        "status": record["status"],
        "statusOriginal": record["statusOriginal"],
        "fixPlan": record["fixPlan"],
        "sessionId": safe_read_text(artifacts.session_id_file).strip(),
        "responseAnalysis": safe_read_text(artifacts.response_analysis_file),
        "codexQuota": record["codexQuota"],
        "codexStatusSnapshot": record["codexStatusSnapshot"],
        "sessionRateLimits": record["sessionRateLimits"],
        "codexQuotaEffective": record["codexQuotaEffective"],
        "runtime": record["runtime"],
        "diagnostics": record["diagnostics"],
        "processes": record["processes"],
        "logs": {
            "ralphTail100": tail_file(artifacts.log_file(project_status.provider.log_filename), 100),
            "recentFiles": recent,
        },
    }
