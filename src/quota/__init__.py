"""Quota parsing — text cleanup, line/snapshot/session/log parsers, resolver."""

from src.quota.heuristics import scan_log_quota, scan_quota_lines
from src.quota.line_parser import format_reset_label_from_epoch, parse_limit_line
from src.quota.models import (
    EffectiveQuota,
    HeuristicQuota,
    QuotaSource,
    QuotaStatus,
    QuotaWindow,
    SessionRateLimits,
    StatusSnapshot,
    classify_remaining,
)
from src.quota.resolver import build_effective_quota, normalize_status_quota
from src.quota.sessions import list_recent_session_files, read_latest_rate_limits
from src.quota.snapshot import attach_capture_metadata, build_snapshot_text, parse_status_snapshot_text
from src.quota.text import normalize_status_line, strip_ansi

__all__ = [
    "EffectiveQuota",
    "HeuristicQuota",
    "QuotaSource",
    "QuotaStatus",
    "QuotaWindow",
    "SessionRateLimits",
    "StatusSnapshot",
    "attach_capture_metadata",
    "build_effective_quota",
    "build_snapshot_text",
    "classify_remaining",
    "format_reset_label_from_epoch",
    "list_recent_session_files",
    "normalize_status_line",
    "normalize_status_quota",
    "parse_limit_line",
    "parse_status_snapshot_text",
    "read_latest_rate_limits",
    "scan_log_quota",
    "scan_quota_lines",
    "strip_ansi",
]
