"""Pick one effective quota from the available sources.

Resolution order, first applicable wins, sources are never blended:

1. canonical payload embedded in status.json (``codex_quota_effective``)
2. fresh pasted snapshot
3. Codex session journal
4. stale pasted snapshot (a stale number beats a guess)
5. log heuristics
6. nothing
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from src.quota.line_parser import format_reset_label_from_epoch
from src.quota.models import (
    EffectiveQuota,
    HeuristicQuota,
    QuotaSource,
    QuotaStatus,
    QuotaWindow,
    SessionRateLimits,
    StatusSnapshot,
    classify_remaining,
    is_number,
    utc_now,
)


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _canonical_window(data: Any) -> QuotaWindow:
    if not isinstance(data, dict):
        return QuotaWindow()
    reset_label = (
        data.get("resetLabel")
        or data.get("reset_label_local")
        or format_reset_label_from_epoch(data.get("resets_at_epoch"))
    )
    window = QuotaWindow.from_percentages(
        remaining=_first_present(data, "remainingPercent", "remaining_percent"),
        used=_first_present(data, "usagePercent", "used_percent"),
        reset_label=reset_label,
    )
    # An explicit "limited" from the loop is kept even if the numbers lag behind
    declared = str(data.get("status") or "").lower()
    if declared == QuotaStatus.LIMITED.value:
        window.status = QuotaStatus.LIMITED
    elif window.status is QuotaStatus.UNKNOWN and declared in {s.value for s in QuotaStatus}:
        window.status = QuotaStatus(declared)
    return window


def normalize_status_quota(payload: Any, now: datetime | None = None) -> EffectiveQuota | None:
    """Normalize a canonical quota payload; None unless it carries a number."""
    if not isinstance(payload, dict):
        return None
    five = payload.get("five_hour") or payload.get("fiveHour") or {}
    weekly = payload.get("weekly") or {}
    if not isinstance(five, dict) or not isinstance(weekly, dict):
        return None

    has_numbers = any(
        is_number(window.get(key))
        for window in (five, weekly)
        for key in ("remaining_percent", "remainingPercent")
    )
    if not has_numbers:
        return None

    return EffectiveQuota(
        five_hour=_canonical_window(five),
        weekly=_canonical_window(weekly),
        updated_at=now or utc_now(),
        source=str(payload.get("source") or QuotaSource.STATUS_JSON.value),
    )


def _copy_window(window: QuotaWindow) -> QuotaWindow:
    return QuotaWindow(
        status=window.status,
        remaining_percent=window.remaining_percent,
        usage_percent=window.usage_percent,
        reset_label=window.reset_label,
        line=window.line,
        source=window.source,
    )


def _from_snapshot(snapshot: StatusSnapshot, source: QuotaSource) -> EffectiveQuota:
    return EffectiveQuota(
        five_hour=_copy_window(snapshot.five_hour),
        weekly=_copy_window(snapshot.weekly),
        updated_at=snapshot.updated_at,
        source=source.value,
    )


def _from_sessions(rate_limits: SessionRateLimits, now: datetime) -> EffectiveQuota:
    def _window(w: QuotaWindow) -> QuotaWindow:
        return QuotaWindow(
            status=classify_remaining(w.remaining_percent),
            remaining_percent=w.remaining_percent,
            usage_percent=w.usage_percent,
            reset_label=w.reset_label,
        )

    return EffectiveQuota(
        five_hour=_window(rate_limits.five_hour),
        weekly=_window(rate_limits.weekly),
        updated_at=now,
        source=QuotaSource.CODEX_SESSIONS.value,
    )


def build_effective_quota(
    snapshot: StatusSnapshot | None,
    heuristic_quota: HeuristicQuota | None,
    session_rate_limits: SessionRateLimits | None,
    status_quota: Any = None,
    now: datetime | None = None,
) -> EffectiveQuota:
    """Resolve the single effective quota (see module docstring for order)."""
    now = now or utc_now()

    canonical = normalize_status_quota(status_quota, now=now)
    if canonical is not None:
        return canonical

    snapshot_has_numbers = snapshot is not None and snapshot.has_numbers
    if snapshot_has_numbers and not snapshot.is_stale:
        return _from_snapshot(snapshot, QuotaSource.SNAPSHOT)

    if session_rate_limits is not None:
        return _from_sessions(session_rate_limits, now)

    if snapshot_has_numbers:
        return _from_snapshot(snapshot, QuotaSource.SNAPSHOT_STALE)

    if heuristic_quota is not None:
        return EffectiveQuota(
            five_hour=_copy_window(heuristic_quota.five_hour),
            weekly=_copy_window(heuristic_quota.weekly),
            updated_at=heuristic_quota.updated_at,
            source=QuotaSource.HEURISTICS_LOGS.value,
        )

    return EffectiveQuota(
        five_hour=QuotaWindow(),
        weekly=QuotaWindow(),
        updated_at=now,
        source=QuotaSource.NONE.value,
    )
