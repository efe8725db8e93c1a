"""Dashboard API routes.

Endpoints:
  GET  /api/health                        — liveness + version
  GET  /api/providers                     — provider capability table
  GET  /api/processes                     — live loop processes for a provider
  POST /api/run                           — launch the loop detached
  POST /api/stop                          — SIGTERM a loop pid
  GET  /api/project-status                — full status record for one project
  POST /api/codex-status-snapshot         — save a pasted (or journal-built) snapshot
  POST /api/codex-status-snapshot/clear   — delete the snapshot file
  GET  /api/export-diagnostics            — downloadable JSON bundle
  POST /api/diagnostics/refresh           — write the derived diagnostics report
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import Response

from src.api.models import (
    DashboardHealth,
    ProjectRequest,
    RunRequest,
    RunResult,
    SnapshotRequest,
    StopRequest,
    StopResult,
)
from src.config import APP_NAME, APP_VERSION, DashboardConfig
from src.providers.registry import ProviderSpec, UnknownProviderError
from src.quota.models import utc_now
from src.quota.snapshot import (
    attach_capture_metadata,
    build_snapshot_text,
    parse_status_snapshot_text,
)
from src.runtime.artifacts import ProjectArtifacts, file_mtime, write_json, write_text
from src.runtime.cache import SNAPSHOT_FIELDS, StatusCache
from src.runtime.collector import (
    ProjectStatus,
    collect_project_status,
    export_diagnostics as build_diagnostics_export,
    load_session_rate_limits,
)
from src.runtime.control import LaunchError, launch_loop, stop_loop
from src.runtime.health import build_diagnostics_summary, diagnostics_report
from src.runtime.processes import list_runtime_processes
from src.runtime.safety import SafetyError

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_COMMAND_RE = re.compile(r"^/status\s*$", re.IGNORECASE)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_config(request: Request) -> DashboardConfig:
    return request.app.state.config  # type: ignore[no-any-return]


def _get_cache(request: Request) -> StatusCache | None:
    return getattr(request.app.state, "status_cache", None)


def _resolve_project_path(project_path: str | None) -> Path:
    """Existing project directory or 400."""
    if not project_path:
        raise HTTPException(status_code=400, detail="Invalid projectPath")
    path = Path(project_path).expanduser()
    if not path.is_dir():
        raise HTTPException(status_code=400, detail="Invalid projectPath")
    return path


def _resolve_provider(request: Request, provider_id: str | None) -> ProviderSpec:
    try:
        return _get_config(request).provider(provider_id)
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _require_capability(provider: ProviderSpec, capability: str, label: str) -> None:
    if not getattr(provider, capability):
        raise HTTPException(
            status_code=400,
            detail=f"Provider '{provider.id}' does not support {label}",
        )


def _collect(request: Request, project_path: Path, provider: ProviderSpec) -> ProjectStatus:
    return collect_project_status(
        project_path,
        provider,
        _get_config(request),
        process_lister=list_runtime_processes,
    )


# ── Service endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=DashboardHealth)
def health() -> DashboardHealth:
    return DashboardHealth(
        ok=True,
        name=APP_NAME,
        version=APP_VERSION,
        timestamp=utc_now().isoformat(),
    )


@router.get("/providers")
def providers(request: Request) -> dict[str, Any]:
    config = _get_config(request)
    return {
        "default": config.default_provider,
        "providers": config.providers.to_dict(),
    }


@router.get("/processes")
def processes(request: Request, provider: str | None = None) -> dict[str, Any]:
    provider_spec = _resolve_provider(request, provider)
    return {
        "provider": provider_spec.id,
        "processes": [p.to_dict() for p in list_runtime_processes(provider_spec)],
    }


# ── Loop control ─────────────────────────────────────────────────────────────


@router.post("/run", response_model=RunResult)
def run_loop(body: RunRequest, request: Request) -> RunResult:
    """Start the loop detached; output goes to .ralph/logs/ui_run_<ts>.log."""
    project_path = _resolve_project_path(body.projectPath)
    provider_spec = _resolve_provider(request, body.provider)
    args = body.args if body.args is not None else _get_config(request).default_run_args

    try:
        result = launch_loop(project_path, provider_spec, args, script=body.ralphScript)
    except SafetyError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except LaunchError as e:
        logger.error("Launch failed for %s: %s", project_path, e)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return RunResult(**result.to_dict())


@router.post("/stop", response_model=StopResult)
def stop(body: StopRequest) -> StopResult:
    try:
        stop_loop(body.pid)
    except SafetyError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (ProcessLookupError, PermissionError) as e:
        raise HTTPException(status_code=400, detail=f"Could not stop pid {body.pid}: {e}") from e
    return StopResult(stopped=True, pid=body.pid)


# ── Project status ───────────────────────────────────────────────────────────


@router.get("/project-status")
def project_status(
    request: Request,
    background_tasks: BackgroundTasks,
    projectPath: str | None = None,
    provider: str | None = None,
) -> dict[str, Any]:
    """Live status record, with empty fields backfilled from the last good response."""
    path = _resolve_project_path(projectPath)
    provider_spec = _resolve_provider(request, provider)
    record = _collect(request, path, provider_spec).to_dict()

    filled: list[str] = []
    cache = _get_cache(request)
    if cache is not None:
        record, filled = cache.backfill(provider_spec.id, path, record)
        background_tasks.add_task(cache.store, provider_spec.id, path, record)

    record["cacheBackfilled"] = filled
    return record


# ── Status snapshot ──────────────────────────────────────────────────────────


@router.post("/codex-status-snapshot")
def save_status_snapshot(body: SnapshotRequest, request: Request) -> dict[str, Any]:
    """Save pasted /status output, or build it from the session journal.

    Empty text (or the bare "/status" command) asks the dashboard to render the
    latest session-journal rate limits instead.
    """
    path = _resolve_project_path(body.projectPath)
    provider_spec = _resolve_provider(request, body.provider)
    _require_capability(provider_spec, "supports_quota_snapshot", "status snapshots")

    text = body.snapshotText.strip()
    if not text or _STATUS_COMMAND_RE.match(text):
        latest = load_session_rate_limits(provider_spec, _get_config(request))
        if latest is not None:
            text = build_snapshot_text(latest)
        elif not text:
            raise HTTPException(
                status_code=400,
                detail="Paste the /status output, or retry once a local session snapshot exists",
            )

    snapshot_file = ProjectArtifacts(path).snapshot_file(provider_spec.snapshot_filename)
    try:
        write_text(snapshot_file, text)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Could not save snapshot: {e}") from e
    logger.info("Saved %s status snapshot for %s", provider_spec.id, path)

    parsed = parse_status_snapshot_text(text)
    captured_at = file_mtime(snapshot_file)
    if parsed is not None and captured_at is not None:
        # Just written: age 0 regardless of clock skew against the mtime
        parsed = attach_capture_metadata(parsed, captured_at, 0, now=captured_at)

    return {
        "saved": True,
        "file": str(snapshot_file),
        "parsed": parsed.to_dict() if parsed else None,
    }


@router.post("/codex-status-snapshot/clear")
def clear_status_snapshot(body: ProjectRequest, request: Request) -> dict[str, Any]:
    path = _resolve_project_path(body.projectPath)
    provider_spec = _resolve_provider(request, body.provider)
    _require_capability(provider_spec, "supports_quota_snapshot", "status snapshots")

    snapshot_file = ProjectArtifacts(path).snapshot_file(provider_spec.snapshot_filename)
    try:
        snapshot_file.unlink(missing_ok=True)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Could not clear snapshot: {e}") from e

    cache = _get_cache(request)
    if cache is not None:
        cache.forget(provider_spec.id, path, SNAPSHOT_FIELDS)
    return {"cleared": True, "file": str(snapshot_file)}


# ── Diagnostics ──────────────────────────────────────────────────────────────


def _export_filename(now: datetime) -> str:
    stamp = now.isoformat().replace(":", "-").replace(".", "-")
    return f"ralph-diagnostics-{stamp}.json"


@router.get("/export-diagnostics")
def export_diagnostics(
    request: Request,
    projectPath: str | None = None,
    provider: str | None = None,
) -> Response:
    path = _resolve_project_path(projectPath)
    provider_spec = _resolve_provider(request, provider)
    bundle = build_diagnostics_export(_collect(request, path, provider_spec))

    return Response(
        content=json.dumps(bundle, indent=2, ensure_ascii=False, default=str),
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{_export_filename(utc_now())}"',
        },
    )


@router.post("/diagnostics/refresh")
def refresh_diagnostics(body: ProjectRequest, request: Request) -> dict[str, Any]:
    """Recompute the root cause from live state and write it as the report artifact."""
    path = _resolve_project_path(body.projectPath)
    provider_spec = _resolve_provider(request, body.provider)
    _require_capability(provider_spec, "supports_diagnostics_refresh", "diagnostics refresh")

    now = utc_now()
    current = _collect(request, path, provider_spec)
    summary = build_diagnostics_summary(
        None,
        current.status,
        five_hour_remaining=current.effective_quota.five_hour.remaining_percent,
        reset_label=current.effective_quota.five_hour.reset_label,
        status_fresh=current.runtime.status_fresh,
        now=now,
    )
    report = diagnostics_report(summary, now)

    report_file = ProjectArtifacts(path).diagnostics_file
    try:
        write_json(report_file, report)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Could not write diagnostics: {e}") from e
    logger.info("Refreshed diagnostics for %s: %s", path, summary.root_cause)

    return {"refreshed": True, "file": str(report_file), "report": report}
