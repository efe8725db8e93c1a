"""Quota data model — windows, effective quota, and the one classification rule.

Every place that turns a remaining-percent into a status goes through
``classify_remaining``; there is no per-call-site threshold.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

WARNING_REMAINING_PERCENT = 10


class QuotaStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    LIMITED = "limited"
    UNKNOWN = "unknown"


class QuotaSource(str, Enum):
    """Provenance of an effective quota, in resolution order."""

    STATUS_JSON = "status_json"
    SNAPSHOT = "snapshot"
    CODEX_SESSIONS = "codex_sessions"
    SNAPSHOT_STALE = "snapshot_stale"
    HEURISTICS_LOGS = "heuristics_logs"
    NONE = "none"


# ── Numeric helpers ──────────────────────────────────────────────────────────


def is_number(value: Any) -> bool:
    """True for finite ints/floats (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def to_number(value: Any) -> int | float | None:
    """Coerce a number or numeric string; None for anything else.

    Integral values come back as int so percentages serialize as 23, not 23.0.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        num = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    if isinstance(num, float) and num.is_integer():
        return int(num)
    return num


def clamp_percent(value: float) -> int | float:
    clamped = max(0, min(100, value))
    if isinstance(clamped, float) and clamped.is_integer():
        return int(clamped)
    return clamped


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def classify_remaining(remaining: Any) -> QuotaStatus:
    """unknown / limited (<= 0) / warning (<= 10) / ok."""
    if not is_number(remaining):
        return QuotaStatus.UNKNOWN
    if remaining <= 0:
        return QuotaStatus.LIMITED
    if remaining <= WARNING_REMAINING_PERCENT:
        return QuotaStatus.WARNING
    return QuotaStatus.OK


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Windows ──────────────────────────────────────────────────────────────────


@dataclass
class QuotaWindow:
    """One tracked rate-limit window (five-hour or weekly)."""

    status: QuotaStatus = QuotaStatus.UNKNOWN
    remaining_percent: int | float | None = None
    usage_percent: int | float | None = None
    reset_label: str | None = None
    line: str = ""
    source: str | None = None  # explanation attached by the log heuristics

    def __post_init__(self) -> None:
        # remaining + usage == 100 whenever both are known; remaining wins
        if is_number(self.remaining_percent):
            self.usage_percent = clamp_percent(100 - self.remaining_percent)
        elif is_number(self.usage_percent):
            self.remaining_percent = clamp_percent(100 - self.usage_percent)

    @classmethod
    def from_percentages(
        cls,
        remaining: Any = None,
        used: Any = None,
        reset_label: str | None = None,
        line: str = "",
    ) -> QuotaWindow:
        """Build a window from raw numbers, classifying with the canonical rule."""
        remaining_num = to_number(remaining)
        used_num = to_number(used)
        window = cls(
            remaining_percent=clamp_percent(remaining_num) if remaining_num is not None else None,
            usage_percent=clamp_percent(used_num) if used_num is not None else None,
            reset_label=reset_label,
            line=line,
        )
        window.status = classify_remaining(window.remaining_percent)
        return window

    @property
    def has_numbers(self) -> bool:
        return is_number(self.remaining_percent)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "remainingPercent": self.remaining_percent,
            "usagePercent": self.usage_percent,
            "resetLabel": self.reset_label,
            "line": self.line,
        }
        if self.source is not None:
            data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> QuotaWindow:
        data = data or {}
        try:
            status = QuotaStatus(data.get("status", "unknown"))
        except ValueError:
            status = QuotaStatus.UNKNOWN
        return cls(
            status=status,
            remaining_percent=to_number(data.get("remainingPercent")),
            usage_percent=to_number(data.get("usagePercent")),
            reset_label=data.get("resetLabel"),
            line=data.get("line") or "",
            source=data.get("source"),
        )


@dataclass
class EffectiveQuota:
    """The single quota view chosen by the resolver."""

    five_hour: QuotaWindow
    weekly: QuotaWindow
    updated_at: datetime = field(default_factory=utc_now)
    source: str = QuotaSource.NONE.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "fiveHour": self.five_hour.to_dict(),
            "weekly": self.weekly.to_dict(),
            "updatedAt": _iso(self.updated_at),
            "source": self.source,
        }


@dataclass
class StatusSnapshot:
    """A parsed, user-captured status block."""

    five_hour: QuotaWindow
    weekly: QuotaWindow
    raw: str
    source: str
    updated_at: datetime = field(default_factory=utc_now)
    captured_at: datetime | None = None
    age_seconds: int | None = None
    is_stale: bool = False

    @property
    def has_numbers(self) -> bool:
        return self.five_hour.has_numbers or self.weekly.has_numbers

    def to_dict(self) -> dict[str, Any]:
        return {
            "fiveHour": self.five_hour.to_dict(),
            "weekly": self.weekly.to_dict(),
            "updatedAt": _iso(self.updated_at),
            "source": self.source,
            "raw": self.raw,
            "capturedAt": _iso(self.captured_at),
            "ageSeconds": self.age_seconds,
            "isStale": self.is_stale,
        }


@dataclass
class SessionRateLimits:
    """Latest rate-limit event found in the agent CLI's session journal."""

    source_file: str
    event_timestamp: str | None
    five_hour: QuotaWindow
    weekly: QuotaWindow

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceFile": self.source_file,
            "eventTimestamp": self.event_timestamp,
            "fiveHour": self.five_hour.to_dict(),
            "weekly": self.weekly.to_dict(),
        }


@dataclass
class HeuristicQuota:
    """Binary-ish quota status recovered from free-text logs."""

    five_hour: QuotaWindow
    weekly: QuotaWindow
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fiveHour": self.five_hour.to_dict(),
            "weekly": self.weekly.to_dict(),
            "updatedAt": _iso(self.updated_at),
        }
