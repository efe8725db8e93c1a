"""Read rate-limit telemetry from the Codex CLI's own session journal.

Codex writes one JSONL "rollout" file per run under ~/.codex/sessions
(date-nested) and moves old ones to ~/.codex/archived_sessions. Token-count
events carry the server's view of the rate-limit windows:

    {"type": "event_msg", "timestamp": "...",
     "payload": {"type": "token_count",
                 "rate_limits": {"primary": {"used_percent": 77.0, "resets_at": 1760...},
                                 "secondary": {...}}}}

``primary`` is the five-hour window, ``secondary`` the weekly one.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

from src.quota.line_parser import format_reset_label_from_epoch
from src.quota.models import QuotaWindow, SessionRateLimits, clamp_percent, round_half_up, to_number
from src.runtime.artifacts import tail_lines

logger = logging.getLogger(__name__)

SESSION_DIRS = ("sessions", "archived_sessions")
_ROLLOUT_RE = re.compile(r"^rollout-.*\.jsonl$", re.IGNORECASE)


def default_codex_home() -> Path:
    return Path(os.environ.get("CODEX_HOME", "") or "~/.codex").expanduser()


def list_recent_session_files(
    codex_home: Path | None = None,
    limit: int = 30,
    max_depth: int = 5,
) -> list[Path]:
    """Return rollout files under the session roots, newest first."""
    codex_home = codex_home or default_codex_home()
    found: list[tuple[float, Path]] = []

    def _walk(dir_path: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = list(os.scandir(dir_path))
        except OSError:
            return
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    _walk(Path(entry.path), depth + 1)
                elif entry.is_file() and _ROLLOUT_RE.match(entry.name):
                    found.append((entry.stat().st_mtime, Path(entry.path)))
            except OSError:
                continue

    for name in SESSION_DIRS:
        root = codex_home / name
        if root.is_dir():
            _walk(root, 0)

    found.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in found[:limit]]


def _window_from_event(data: Any) -> QuotaWindow:
    if not isinstance(data, dict):
        return QuotaWindow()
    used = to_number(data.get("used_percent"))
    if used is None:
        return QuotaWindow(reset_label=format_reset_label_from_epoch(data.get("resets_at")))
    return QuotaWindow.from_percentages(
        remaining=round_half_up(clamp_percent(100 - used)),
        reset_label=format_reset_label_from_epoch(data.get("resets_at")),
    )


def _rate_limits_from_line(line: str) -> dict[str, Any] | None:
    try:
        event = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(event, dict) or event.get("type") != "event_msg":
        return None
    payload = event.get("payload")
    if not isinstance(payload, dict) or payload.get("type") != "token_count":
        return None
    rate_limits = payload.get("rate_limits")
    if not isinstance(rate_limits, dict):
        return None
    if not rate_limits.get("primary") and not rate_limits.get("secondary"):
        return None
    return {"timestamp": event.get("timestamp"), "rate_limits": rate_limits}


def read_latest_rate_limits(
    codex_home: Path | None = None,
    tail_line_count: int = 600,
    files_limit: int = 30,
) -> SessionRateLimits | None:
    """Return the most recent rate-limit event across recent sessions, or None."""
    for path in list_recent_session_files(codex_home, limit=files_limit):
        for line in reversed(tail_lines(path, tail_line_count)):
            if '"rate_limits"' not in line:
                continue
            found = _rate_limits_from_line(line)
            if found is None:
                continue
            rate_limits = found["rate_limits"]
            logger.debug("Rate limits found in %s", path)
            return SessionRateLimits(
                source_file=str(path),
                event_timestamp=found["timestamp"],
                five_hour=_window_from_event(rate_limits.get("primary")),
                weekly=_window_from_event(rate_limits.get("secondary")),
            )
    return None
