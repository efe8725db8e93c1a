"""Read and write the Ralph loop's on-disk artifacts.

Layout under a target project (written by the loop, read here):

    <project>/.ralph/status.json                self-reported loop state
    <project>/.ralph/fix_plan.md                current plan
    <project>/.ralph/logs/ralph.log             main loop log
    <project>/.ralph/logs/<provider>_stderr_*   per-call agent CLI stderr
    <project>/.ralph/<provider>_status_snapshot.txt   pasted quota snapshot
    <project>/.ralph/diagnostics_summary.json   last diagnostics report

Readers never raise: a missing or unreadable file is an empty value.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".ralph"


# ── Readers ──────────────────────────────────────────────────────────────────


def safe_read_text(path: Path) -> str:
    """Return file contents, or '' when absent or unreadable."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug("Could not read %s: %s", path, e)
        return ""


def safe_read_json(path: Path) -> Any | None:
    """Return parsed JSON, or None when absent, unreadable or malformed."""
    text = safe_read_text(path)
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError) as e:
        logger.debug("Malformed JSON in %s: %s", path, e)
        return None


def tail_lines(path: Path, count: int) -> list[str]:
    """Last ``count`` non-empty lines of a file, read with bounded memory."""
    if count <= 0:
        return []
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return list(deque((line.rstrip("\n") for line in f if line.strip()), maxlen=count))
    except OSError as e:
        logger.debug("Could not tail %s: %s", path, e)
        return []


def tail_file(path: Path, count: int = 80) -> str:
    """Last ``count`` lines of a file as one string ('' when absent)."""
    if count <= 0:
        return ""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return "".join(deque(f, maxlen=count)).rstrip("\n")
    except OSError as e:
        logger.debug("Could not tail %s: %s", path, e)
        return ""


def file_mtime(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return None


def list_recent_files(directory: Path, prefix: str = "", limit: int = 8) -> list[Path]:
    """Regular files in ``directory`` (optionally by name prefix), newest first."""
    candidates: list[tuple[float, Path]] = []
    try:
        entries = list(directory.iterdir())
    except OSError:
        return []
    for entry in entries:
        if prefix and not entry.name.startswith(prefix):
            continue
        try:
            if entry.is_file():
                candidates.append((entry.stat().st_mtime, entry))
        except OSError:
            continue
    candidates.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in candidates[:limit]]


# ── Writers ──────────────────────────────────────────────────────────────────


def write_text(path: Path, text: str) -> None:
    """Persist text, creating parent directories. Errors propagate."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def write_json(path: Path, data: Any) -> None:
    write_text(path, json.dumps(data, indent=2, ensure_ascii=False, default=str))


# ── Project layout ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectArtifacts:
    """Paths of one project's loop artifacts."""

    project_path: Path

    @property
    def state_dir(self) -> Path:
        return self.project_path / STATE_DIR_NAME

    @property
    def log_dir(self) -> Path:
        return self.state_dir / "logs"

    @property
    def status_file(self) -> Path:
        return self.state_dir / "status.json"

    @property
    def fix_plan_file(self) -> Path:
        return self.state_dir / "fix_plan.md"

    @property
    def session_id_file(self) -> Path:
        return self.state_dir / ".codex_session_id"

    @property
    def response_analysis_file(self) -> Path:
        return self.state_dir / ".response_analysis"

    @property
    def diagnostics_file(self) -> Path:
        return self.state_dir / "diagnostics_summary.json"

    def log_file(self, filename: str = "ralph.log") -> Path:
        return self.log_dir / filename

    def snapshot_file(self, filename: str) -> Path:
        return self.state_dir / filename
