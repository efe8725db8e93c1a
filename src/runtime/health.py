"""Runtime health inference — is the loop the status file describes actually alive?

The Ralph loop writes status.json at points we don't control. If the process
dies between writes, the file keeps saying "running" forever. Cross-checking
it against the live process table and the status age catches that "orphan"
state; a fixed decision table then turns the result into one root cause and
one recommended next action.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from src.quota.models import is_number, utc_now

logger = logging.getLogger(__name__)

ACTIVE_STATES = frozenset({"running", "paused", "retrying", "executing"})
TERMINAL_STATES = frozenset({"error", "failed", "halted", "stopped", "completed", "stopped_unexpected"})
ERROR_STATES = frozenset({"error", "failed", "halted"})

ORPHAN_STATE = "stopped_unexpected"
ORPHAN_REASON = "process_missing"

_PERMISSION_RE = re.compile(r"permission|denied|eacces|eperm|sandbox", re.IGNORECASE)
_TIMEOUT_RE = re.compile(r"timeout|timed[_\s-]?out", re.IGNORECASE)
_RATE_LIMIT_RE = re.compile(r"rate[_\s-]?limit|quota|usage[_\s-]?limit|limit[_\s-]?reached", re.IGNORECASE)
_ERROR_RE = re.compile(r"error|fail|crash", re.IGNORECASE)


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class RuntimeHealth:
    processes_count: int
    status_age_seconds: int | None
    status_fresh: bool
    runtime_healthy: bool
    orphaned: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "processesCount": self.processes_count,
            "statusAgeSeconds": self.status_age_seconds,
            "statusFresh": self.status_fresh,
            "runtimeHealthy": self.runtime_healthy,
            "orphaned": self.orphaned,
        }


@dataclass
class DiagnosticsSummary:
    """Derived, non-authoritative explanation of the current loop state."""

    source: str  # "diagnostics_file" | "derived"
    generated_at: datetime | None
    generated_age_seconds: int | None
    is_stale: bool
    root_cause: str
    recommendation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "generatedAt": self.generated_at.isoformat() if self.generated_at else None,
            "generatedAgeSeconds": self.generated_age_seconds,
            "isStale": self.is_stale,
            "rootCause": self.root_cause,
            "recommendation": self.recommendation,
        }


# ── Status age ───────────────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-8601 (``Z`` accepted; naive = local time) or epoch seconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def age_seconds(moment: datetime | None, now: datetime | None = None) -> int | None:
    if moment is None:
        return None
    now = now or utc_now()
    return max(0, int((now - moment).total_seconds()))


def status_age_seconds(status: dict[str, Any] | None, now: datetime | None = None) -> int | None:
    """Whole seconds since the status record's timestamp; None if unknown."""
    if not isinstance(status, dict):
        return None
    return age_seconds(parse_timestamp(status.get("timestamp")), now)


def _state(status: dict[str, Any] | None) -> str:
    if not isinstance(status, dict):
        return ""
    return str(status.get("status") or "").strip().lower()


# ── Orphan overlay + health flag ─────────────────────────────────────────────


def apply_orphan_overlay(
    status: dict[str, Any] | None,
    processes_count: int,
    status_age: int | None,
    orphan_threshold_seconds: int = 45,
) -> dict[str, Any] | None:
    """Return a copy marked stopped_unexpected if the loop died silently.

    The input mapping is never mutated; when no overlay applies the same
    object is returned.
    """
    if not isinstance(status, dict):
        return status
    if _state(status) not in ACTIVE_STATES or processes_count > 0:
        return status
    if status_age is None or status_age <= orphan_threshold_seconds:
        return status

    overlaid = dict(status)
    overlaid.update(
        {
            "status": ORPHAN_STATE,
            "previous_status": status.get("status"),
            "last_action": ORPHAN_REASON,
            "exit_reason": ORPHAN_REASON,
            "derived": True,
        }
    )
    logger.info(
        "Status reports %r but no process is alive (age %ss) — marking %s",
        status.get("status"), status_age, ORPHAN_STATE,
    )
    return overlaid


def evaluate_runtime_health(
    status: dict[str, Any] | None,
    processes_count: int,
    now: datetime | None = None,
    fresh_seconds: int = 30,
    orphan_threshold_seconds: int = 45,
) -> tuple[dict[str, Any] | None, RuntimeHealth]:
    """Overlay orphan state if needed and compute the health flags."""
    age = status_age_seconds(status, now)
    effective = apply_orphan_overlay(status, processes_count, age, orphan_threshold_seconds)
    fresh = age is not None and age <= fresh_seconds
    healthy = (
        processes_count > 0
        and effective is not None
        and fresh
        and _state(effective) not in TERMINAL_STATES
    )
    return effective, RuntimeHealth(
        processes_count=processes_count,
        status_age_seconds=age,
        status_fresh=fresh,
        runtime_healthy=healthy,
        orphaned=effective is not status,
    )


# ── Root cause ───────────────────────────────────────────────────────────────


def derive_root_cause(
    status: dict[str, Any] | None,
    five_hour_remaining: Any = None,
    status_fresh: bool = False,
    reset_label: str | None = None,
) -> tuple[str, str]:
    """Map the (possibly overlaid) status to (root cause, recommendation).

    Priority: permission > timeout > rate limit > orphan/stale > error >
    paused > running > unknown.
    """
    if not isinstance(status, dict):
        return (
            "No status file found for this project.",
            "Start the loop, or check that the project path points at a Ralph project.",
        )

    state = _state(status)
    exit_reason = str(status.get("exit_reason") or "").strip()
    last_action = str(status.get("last_action") or "").strip()
    signals = " ".join(part for part in (exit_reason, last_action, state) if part)
    reason_note = f" (exit reason: {exit_reason})" if exit_reason else ""

    if _PERMISSION_RE.search(signals):
        return (
            f"The agent CLI was denied permission{reason_note}.",
            "Re-run with a sandbox mode that allows writes (e.g. --sandbox workspace-write) "
            "or fix file permissions in the project.",
        )

    if _TIMEOUT_RE.search(signals):
        return (
            f"The last agent call timed out{reason_note}.",
            "Increase --timeout or split the current task into smaller steps.",
        )

    quota_exhausted = is_number(five_hour_remaining) and five_hour_remaining <= 0
    if _RATE_LIMIT_RE.search(signals) or quota_exhausted:
        when = f" (resets {reset_label})" if reset_label else ""
        return (
            "The agent CLI hit its usage limit.",
            f"Wait for the 5-hour window to reset{when} before restarting the loop.",
        )

    if state == ORPHAN_STATE or ORPHAN_REASON in signals:
        return (
            "The loop process is gone but status.json still reported it as active.",
            "Check the log tail for the last action, then restart the loop.",
        )
    if state in ACTIVE_STATES and not status_fresh:
        return (
            f"status.json reports '{state}' but has not been updated recently.",
            "Check whether the loop is hung; stop and restart it if the log is not advancing.",
        )

    if state in ERROR_STATES or _ERROR_RE.search(exit_reason):
        return (
            f"The loop stopped with an error{reason_note}.",
            "Inspect the log tail and export diagnostics for details.",
        )

    if state == "paused":
        return ("The loop is paused.", "Resume the loop when ready.")

    if state == "retrying":
        return (
            "The loop is retrying after a failed call.",
            "Watch the next few calls; stop the loop if the retries keep failing.",
        )
    if state in ACTIVE_STATES:
        return ("The loop is running normally.", "No action needed.")

    if state in TERMINAL_STATES:
        return (
            f"The loop finished{reason_note}.",
            "Review the fix plan and start a new run if work remains.",
        )
    return (
        "The loop state could not be determined.",
        "Export diagnostics and check status.json.",
    )


def build_diagnostics_summary(
    report: Any,
    status: dict[str, Any] | None,
    five_hour_remaining: Any = None,
    reset_label: str | None = None,
    status_fresh: bool = False,
    now: datetime | None = None,
    stale_after_seconds: int = 900,
    orphaned: bool = False,
) -> DiagnosticsSummary:
    """Prefer a fresh diagnostics report; otherwise derive from the decision table.

    An orphaned loop always uses the decision table, since any report was
    written while the loop was still alive.
    """
    now = now or utc_now()
    report = report if isinstance(report, dict) else {}
    generated_at = parse_timestamp(report.get("generated_at") or report.get("generatedAt"))
    generated_age = age_seconds(generated_at, now)
    is_stale = generated_age is None or generated_age > stale_after_seconds
    use_report = not is_stale and not orphaned

    root_cause, recommendation = derive_root_cause(
        status, five_hour_remaining, status_fresh, reset_label,
    )
    if use_report:
        root_cause = str(report.get("root_cause") or report.get("rootCause") or root_cause)
        recommendation = str(report.get("recommendation") or recommendation)

    return DiagnosticsSummary(
        source="diagnostics_file" if use_report else "derived",
        generated_at=generated_at,
        generated_age_seconds=generated_age,
        is_stale=is_stale,
        root_cause=root_cause,
        recommendation=recommendation,
    )


def diagnostics_report(summary: DiagnosticsSummary, now: datetime | None = None) -> dict[str, Any]:
    """Serialize a summary into the on-disk report shape."""
    return {
        "generated_at": (now or utc_now()).isoformat(),
        "root_cause": summary.root_cause,
        "recommendation": summary.recommendation,
        "source": "dashboard",
    }
