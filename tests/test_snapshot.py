"""Tests for status snapshot parsing and rendering."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.quota.models import QuotaStatus, QuotaWindow, SessionRateLimits
from src.quota.snapshot import (
    attach_capture_metadata,
    build_snapshot_text,
    parse_status_snapshot_text,
)

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

POPUP = """
╭──────────────────────────────────────────╮
│ Rate limits remaining                    │
│ 5h limit: 55% left (resets 14:30)        │
│ Weekly limit: 30% used (resets Oct 21)   │
╰──────────────────────────────────────────╯
"""


class TestStructuredSnapshot:
    def test_key_value_block(self):
        snap = parse_status_snapshot_text(
            "5h_remaining_percent=23\nweekly_used_percent=24\nsource=loop_capture",
            now=NOW,
        )
        assert snap is not None
        assert snap.five_hour.remaining_percent == 23
        assert snap.five_hour.usage_percent == 77
        assert snap.five_hour.status is QuotaStatus.OK
        assert snap.weekly.remaining_percent == 76
        assert snap.source == "loop_capture"
        assert snap.updated_at == NOW

    def test_default_source(self):
        snap = parse_status_snapshot_text("5h_remaining_percent=5", now=NOW)
        assert snap.source == "snapshot_kv"
        assert snap.five_hour.status is QuotaStatus.WARNING

    def test_empty_value_is_unknown(self):
        snap = parse_status_snapshot_text(
            "5h_remaining_percent=\nweekly_remaining_percent=50", now=NOW,
        )
        assert snap.five_hour.remaining_percent is None
        assert snap.five_hour.status is QuotaStatus.UNKNOWN
        assert snap.weekly.remaining_percent == 50

    def test_human_text_kept_as_line(self):
        snap = parse_status_snapshot_text(
            "5h_remaining_percent=40\n5h_human=5h 40% left", now=NOW,
        )
        assert snap.five_hour.line == "5h 40% left"

    def test_non_epoch_reset_kept_verbatim(self):
        snap = parse_status_snapshot_text(
            "5h_remaining_percent=40\n5h_resets_at=tomorrow", now=NOW,
        )
        assert snap.five_hour.reset_label == "tomorrow"

    def test_structured_keys_win_over_free_text(self):
        snap = parse_status_snapshot_text(
            "5h limit: 90% left\n5h_remaining_percent=12", now=NOW,
        )
        assert snap.five_hour.remaining_percent == 12
        assert snap.source == "snapshot_kv"


class TestFreeTextSnapshot:
    def test_popup_paste(self):
        snap = parse_status_snapshot_text(POPUP, now=NOW)
        assert snap.source == "snapshot_text"
        assert snap.five_hour.remaining_percent == 55
        assert snap.five_hour.reset_label == "14:30"
        assert snap.weekly.remaining_percent == 70
        assert snap.weekly.reset_label == "Oct 21"

    def test_ansi_removed_from_raw(self):
        snap = parse_status_snapshot_text("\x1b[32m5h 40% left\x1b[0m", now=NOW)
        assert "\x1b" not in snap.raw
        assert snap.five_hour.remaining_percent == 40

    def test_missing_window_is_unknown(self):
        snap = parse_status_snapshot_text("5h 40% left", now=NOW)
        assert snap.weekly.status is QuotaStatus.UNKNOWN
        assert not snap.weekly.has_numbers

    def test_empty_input(self):
        assert parse_status_snapshot_text("", now=NOW) is None
        assert parse_status_snapshot_text("   \n ", now=NOW) is None
        assert parse_status_snapshot_text(None, now=NOW) is None


class TestCaptureMetadata:
    def test_stale_after_threshold(self):
        snap = parse_status_snapshot_text("5h 40% left", now=NOW)
        attach_capture_metadata(snap, NOW - timedelta(seconds=301), 300, now=NOW)
        assert snap.age_seconds == 301
        assert snap.is_stale is True

    def test_fresh_at_threshold(self):
        snap = parse_status_snapshot_text("5h 40% left", now=NOW)
        attach_capture_metadata(snap, NOW - timedelta(seconds=300), 300, now=NOW)
        assert snap.is_stale is False
        assert snap.captured_at == NOW - timedelta(seconds=300)

    def test_unknown_capture_time_leaves_snapshot(self):
        snap = parse_status_snapshot_text("5h 40% left", now=NOW)
        attach_capture_metadata(snap, None, 300, now=NOW)
        assert snap.age_seconds is None
        assert snap.is_stale is False


class TestBuildSnapshotText:
    def test_renders_both_windows(self):
        limits = SessionRateLimits(
            source_file="rollout.jsonl",
            event_timestamp=None,
            five_hour=QuotaWindow.from_percentages(remaining=55, reset_label="Oct 18, 3:07 PM"),
            weekly=QuotaWindow(),
        )
        text = build_snapshot_text(limits)
        assert text == "Rate limits remaining\n5h 55% (resets Oct 18, 3:07 PM)\nWeekly --"

    def test_rendered_text_parses_back(self):
        limits = SessionRateLimits(
            source_file="rollout.jsonl",
            event_timestamp=None,
            five_hour=QuotaWindow.from_percentages(remaining=55, reset_label="Oct 18, 3:07 PM"),
            weekly=QuotaWindow.from_percentages(remaining=70),
        )
        snap = parse_status_snapshot_text(build_snapshot_text(limits), now=NOW)
        assert snap.five_hour.remaining_percent == 55
        assert snap.five_hour.reset_label == "Oct 18, 3:07 PM"
        assert snap.weekly.remaining_percent == 70

    def test_none(self):
        assert build_snapshot_text(None) == ""

    def test_full_structured_block(self):
        snap = parse_status_snapshot_text(
            "source=X\n"
            "5h_remaining_percent=23\n"
            "5h_used_percent=77\n"
            "weekly_remaining_percent=76\n"
            "weekly_used_percent=24\n",
            now=NOW,
        )
        assert snap.source == "X"
        assert snap.five_hour.remaining_percent == 23
        assert snap.five_hour.usage_percent == 77
        assert snap.weekly.remaining_percent == 76
        assert snap.weekly.usage_percent == 24
