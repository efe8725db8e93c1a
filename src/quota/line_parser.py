"""Extract a quota percentage and reset label from one free-text status line.

Handles the shapes the agent CLI prints in its status popup and logs:

    5h limit: [████░░] 22% left (resets 14:30)
    Weekly limit 24% used (resets Oct 21)
    5h 22% 1760000000
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from src.quota.models import QuotaStatus, QuotaWindow, clamp_percent, classify_remaining, to_number
from src.quota.text import normalize_status_line

logger = logging.getLogger(__name__)

_LEFT_RE = re.compile(r"(?<!\d)(\d{1,3})\s*%\s*left", re.IGNORECASE)
_USED_RE = re.compile(r"(?<!\d)(\d{1,3})\s*%\s*used", re.IGNORECASE)
_PERCENT_RE = re.compile(r"(?<!\d)(\d{1,3})\s*%", re.IGNORECASE)
_RESET_PAREN_RE = re.compile(r"\(resets?\s+([^)]+)\)", re.IGNORECASE)
_TRAILING_RE = re.compile(r"(?<!\d)(\d{1,3})\s*%\s*(.+)$", re.IGNORECASE)
_QUALIFIER_RE = re.compile(r"left|used", re.IGNORECASE)
_LIMITED_RE = re.compile(
    r"(limit reached|rate limit reached|exceeded|blocked|no .*left|\b0\s*%\s*left\b)",
    re.IGNORECASE,
)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_reset_label_from_epoch(value: Any) -> str | None:
    """Render epoch seconds as 'Oct 18, 3:07 PM' in the local timezone.

    Returns None for missing, non-numeric, non-positive or out-of-range input.
    """
    epoch = to_number(value)
    if epoch is None or epoch <= 0:
        return None
    try:
        local = datetime.fromtimestamp(epoch).astimezone()
    except (OverflowError, OSError, ValueError):
        logger.debug("Epoch out of range for reset label: %r", value)
        return None
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{_MONTHS[local.month - 1]} {local.day}, {hour}:{local.minute:02d} {meridiem}"


def _extract_reset_label(normalized: str) -> str | None:
    paren = _RESET_PAREN_RE.search(normalized)
    if paren:
        label = paren.group(1).strip()
    else:
        trailing = _TRAILING_RE.search(normalized)
        if not trailing:
            return None
        label = trailing.group(2).strip()
        if not label or _QUALIFIER_RE.search(label):
            return None

    # Purely numeric label = epoch seconds
    epoch = to_number(label)
    if epoch is not None and epoch > 0:
        return format_reset_label_from_epoch(epoch)
    return label or None


def parse_limit_line(line: str | None) -> QuotaWindow | None:
    """Parse one status line; None when the line is empty after normalizing."""
    normalized = normalize_status_line(line)
    if not normalized:
        return None

    remaining: int | float | None = None
    used: int | float | None = None

    left_match = _LEFT_RE.search(normalized)
    used_match = _USED_RE.search(normalized)
    percent_match = _PERCENT_RE.search(normalized)
    if left_match:
        remaining = clamp_percent(int(left_match.group(1)))
    elif used_match:
        used = clamp_percent(int(used_match.group(1)))
    elif percent_match:
        # The status popup reports "Rate limits remaining", so a bare % is remaining
        remaining = clamp_percent(int(percent_match.group(1)))

    window = QuotaWindow(
        remaining_percent=remaining,
        usage_percent=used,
        reset_label=_extract_reset_label(normalized),
        line=normalized,
    )

    if _LIMITED_RE.search(normalized) or window.remaining_percent == 0:
        window.status = QuotaStatus.LIMITED
    else:
        window.status = classify_remaining(window.remaining_percent)
    return window
