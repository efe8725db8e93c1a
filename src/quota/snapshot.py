"""Parse a user-captured status snapshot.

Two encodings are accepted. The structured one is a newline-separated
``key=value`` block (what the Ralph loop writes when it captures quota
itself); anything else is treated as the CLI's status popup pasted verbatim
and scanned line by line.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from src.quota.line_parser import format_reset_label_from_epoch, parse_limit_line
from src.quota.models import (
    QuotaWindow,
    SessionRateLimits,
    StatusSnapshot,
    to_number,
    utc_now,
)
from src.quota.text import normalize_status_line, strip_ansi

logger = logging.getLogger(__name__)

SNAPSHOT_KEYS = (
    "5h_remaining_percent",
    "5h_used_percent",
    "5h_resets_at",
    "weekly_remaining_percent",
    "weekly_used_percent",
    "weekly_resets_at",
    "5h_human",
    "weekly_human",
    "source",
)

_KV_RE = re.compile(r"^([a-zA-Z0-9_]+)=(.*)$")
_FIVE_HOUR_RES = (re.compile(r"5[\s-]?hour", re.IGNORECASE), re.compile(r"\b5h\b", re.IGNORECASE))
_WEEKLY_RES = (
    re.compile(r"weekly", re.IGNORECASE),
    re.compile(r"\bweek\b", re.IGNORECASE),
    re.compile(r"7[\s-]?day", re.IGNORECASE),
)


def _reset_label(raw: str | None) -> str | None:
    if not raw:
        return None
    return format_reset_label_from_epoch(raw) or raw


def _parse_structured(pairs: dict[str, str], raw: str, now: datetime) -> StatusSnapshot:
    five_hour = QuotaWindow.from_percentages(
        remaining=pairs.get("5h_remaining_percent"),
        used=pairs.get("5h_used_percent"),
        reset_label=_reset_label(pairs.get("5h_resets_at")),
        line=pairs.get("5h_human", ""),
    )
    weekly = QuotaWindow.from_percentages(
        remaining=pairs.get("weekly_remaining_percent"),
        used=pairs.get("weekly_used_percent"),
        reset_label=_reset_label(pairs.get("weekly_resets_at")),
        line=pairs.get("weekly_human", ""),
    )
    return StatusSnapshot(
        five_hour=five_hour,
        weekly=weekly,
        raw=raw,
        source=pairs.get("source") or "snapshot_kv",
        updated_at=now,
    )


def _first_matching(lines: list[str], patterns: tuple[re.Pattern[str], ...]) -> str:
    return next((line for line in lines if any(p.search(line) for p in patterns)), "")


def parse_status_snapshot_text(raw_text: str | None, now: datetime | None = None) -> StatusSnapshot | None:
    """Parse a pasted status block; None for empty input.

    Structured keys win outright: if any recognized ``key=value`` line is
    present, the free-text scan is not consulted at all.
    """
    text = str(raw_text or "").strip()
    if not text:
        return None
    now = now or utc_now()
    raw = strip_ansi(text)

    lines = [normalize_status_line(line) for line in text.split("\n")]

    pairs: dict[str, str] = {}
    for line in lines:
        kv = _KV_RE.match(line)
        if kv and kv.group(1) in SNAPSHOT_KEYS:
            pairs[kv.group(1)] = kv.group(2).strip()
    if pairs:
        return _parse_structured(pairs, raw, now)

    lines = [line for line in lines if line]
    five_hour = parse_limit_line(_first_matching(lines, _FIVE_HOUR_RES)) or QuotaWindow()
    weekly = parse_limit_line(_first_matching(lines, _WEEKLY_RES)) or QuotaWindow()
    return StatusSnapshot(
        five_hour=five_hour,
        weekly=weekly,
        raw=raw,
        source="snapshot_text",
        updated_at=now,
    )


def attach_capture_metadata(
    snapshot: StatusSnapshot,
    captured_at: datetime | None,
    stale_after_seconds: int,
    now: datetime | None = None,
) -> StatusSnapshot:
    """Stamp capture time, age and staleness from the snapshot file's mtime."""
    if captured_at is None:
        return snapshot
    now = now or utc_now()
    age = max(0, int((now - captured_at).total_seconds()))
    snapshot.captured_at = captured_at
    snapshot.age_seconds = age
    snapshot.is_stale = age > stale_after_seconds
    return snapshot


def build_snapshot_text(rate_limits: SessionRateLimits | None) -> str:
    """Render session rate limits in the status-popup shape for saving."""
    if rate_limits is None:
        return ""

    def _part(label: str, window: QuotaWindow) -> str:
        if window.remaining_percent is None:
            return f"{label} --"
        reset = f" (resets {window.reset_label})" if window.reset_label else ""
        return f"{label} {window.remaining_percent}%{reset}"

    return "\n".join(
        [
            "Rate limits remaining",
            _part("5h", rate_limits.five_hour),
            _part("Weekly", rate_limits.weekly),
        ]
    )
