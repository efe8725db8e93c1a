"""Pydantic models for dashboard API requests and responses."""

from __future__ import annotations

from pydantic import BaseModel

# ── Shared responses ─────────────────────────────────────────────────────────


class DashboardHealth(BaseModel):
    ok: bool
    name: str
    version: str
    timestamp: str


class RunResult(BaseModel):
    started: bool
    pid: int
    logFile: str
    command: str


class StopResult(BaseModel):
    stopped: bool
    pid: int


# ── Requests ─────────────────────────────────────────────────────────────────


class RunRequest(BaseModel):
    projectPath: str
    provider: str | None = None
    args: str | None = None  # None = configured default_run_args
    ralphScript: str | None = None  # None = provider script


class StopRequest(BaseModel):
    pid: int


class ProjectRequest(BaseModel):
    projectPath: str
    provider: str | None = None


class SnapshotRequest(ProjectRequest):
    snapshotText: str = ""
