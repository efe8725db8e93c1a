"""Terminal text cleanup shared by every quota parser."""

from __future__ import annotations

import re

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")
_BOX_RE = re.compile(r"[│╭╮╰╯]")
_SPACE_RE = re.compile(r"\s+")


def strip_ansi(text: str | None) -> str:
    """Remove ANSI color sequences."""
    return _ANSI_RE.sub("", str(text or ""))


def normalize_status_line(text: str | None) -> str:
    """Strip colors and box-drawing glyphs, collapse whitespace, trim."""
    cleaned = _BOX_RE.sub(" ", strip_ansi(text))
    return _SPACE_RE.sub(" ", cleaned).strip()
