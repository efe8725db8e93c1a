"""Last-resort quota signal: scan loop logs and agent stderr for limit phrases.

Never yields percentages, only limited/ok/unknown plus the evidence line.
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from src.quota.models import HeuristicQuota, QuotaStatus, QuotaWindow, utc_now
from src.quota.text import normalize_status_line
from src.runtime.artifacts import list_recent_files, tail_lines

LOG_SIGNAL_SOURCE = "ralph/agent logs"
NO_SIGNAL_NOTE = "no recent limit signals"

FIVE_HOUR_PATTERNS = (
    re.compile(r"5[\s-]?hour", re.IGNORECASE),
    re.compile(r"usage limit reached", re.IGNORECASE),
    re.compile(r"api usage limit", re.IGNORECASE),
    re.compile(r"try again in about an hour", re.IGNORECASE),
)
WEEKLY_PATTERNS = (
    re.compile(r"weekly", re.IGNORECASE),
    re.compile(r"week(?:ly)?\s+limit", re.IGNORECASE),
    re.compile(r"7[\s-]?day", re.IGNORECASE),
)
_LIMITED_RE = re.compile(r"(limit reached|rate limit reached|exceeded|blocked|try again)", re.IGNORECASE)


def _last_match(lines: list[str], patterns: tuple[re.Pattern[str], ...]) -> str:
    for line in reversed(lines):
        if any(p.search(line) for p in patterns):
            return line
    return ""


def _signal_window(line: str, missing_note: str) -> QuotaWindow:
    if not line:
        return QuotaWindow(status=QuotaStatus.UNKNOWN, line="", source=missing_note)
    status = QuotaStatus.LIMITED if _LIMITED_RE.search(line) else QuotaStatus.OK
    return QuotaWindow(status=status, line=normalize_status_line(line), source=LOG_SIGNAL_SOURCE)


def scan_quota_lines(
    lines: list[str],
    weekly_missing_note: str = "",
    now: datetime | None = None,
) -> HeuristicQuota:
    """Classify both windows from an already-collected corpus (oldest first)."""
    lines = [line for line in lines if line.strip()]
    return HeuristicQuota(
        five_hour=_signal_window(_last_match(lines, FIVE_HOUR_PATTERNS), NO_SIGNAL_NOTE),
        weekly=_signal_window(
            _last_match(lines, WEEKLY_PATTERNS),
            weekly_missing_note or NO_SIGNAL_NOTE,
        ),
        updated_at=now or utc_now(),
    )


def scan_log_quota(
    log_dir: Path,
    log_filename: str = "ralph.log",
    stderr_prefix: str = "",
    weekly_missing_note: str = "",
    log_tail: int = 2000,
    stderr_tail: int = 120,
    stderr_files: int = 8,
    now: datetime | None = None,
) -> HeuristicQuota:
    """Scan the main log tail plus recent stderr files for quota signals."""
    corpus = tail_lines(log_dir / log_filename, log_tail)
    if stderr_prefix:
        for path in list_recent_files(log_dir, prefix=stderr_prefix, limit=stderr_files):
            corpus.extend(tail_lines(path, stderr_tail))
    return scan_quota_lines(corpus, weekly_missing_note=weekly_missing_note, now=now)
