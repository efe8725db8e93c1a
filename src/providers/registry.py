"""Provider registry — the closed table of agent CLIs the Ralph loop can drive.

Each provider carries its own defaults (loop script, log filename, process
pattern) and capability flags as data. Callers ask ``provider.supports_*``
instead of comparing provider ids. Individual fields can be overridden from
an optional providers.yaml; unknown providers in that file are ignored.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class UnknownProviderError(ValueError):
    """Raised when a provider id is not in the registry."""


# ── Data model ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProviderSpec:
    """Defaults and capabilities of one agent CLI provider."""

    id: str
    label: str
    script_path: str
    process_pattern: str  # regex matched against `ps` command lines
    log_filename: str = "ralph.log"
    stderr_prefix: str = ""
    snapshot_filename: str = ""
    weekly_unavailable_note: str = ""

    supports_quota_snapshot: bool = False
    supports_session_journal: bool = False
    supports_diagnostics_refresh: bool = False

    @property
    def process_regex(self) -> re.Pattern[str]:
        return re.compile(self.process_pattern)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "scriptPath": self.script_path,
            "logFilename": self.log_filename,
            "stderrPrefix": self.stderr_prefix,
            "snapshotFilename": self.snapshot_filename,
            "capabilities": {
                "quotaSnapshot": self.supports_quota_snapshot,
                "sessionJournal": self.supports_session_journal,
                "diagnosticsRefresh": self.supports_diagnostics_refresh,
            },
        }


CODEX = ProviderSpec(
    id="codex",
    label="Codex",
    script_path="~/ralph-codex/ralph_loop.sh",
    process_pattern=r"ralph_loop\.sh|ralph --|codex exec",
    stderr_prefix="codex_stderr_",
    snapshot_filename="codex_status_snapshot.txt",
    weekly_unavailable_note="Codex CLI does not expose weekly usage directly in normal flow",
    supports_quota_snapshot=True,
    supports_session_journal=True,
    supports_diagnostics_refresh=True,
)

GEMINI = ProviderSpec(
    id="gemini",
    label="Gemini",
    script_path="~/ralph-gemini/ralph_loop.sh",
    process_pattern=r"ralph_loop\.sh|ralph --|gemini( |$)",
    stderr_prefix="gemini_stderr_",
    snapshot_filename="gemini_status_snapshot.txt",
    weekly_unavailable_note="Gemini CLI does not report a weekly quota window",
)

DEFAULT_PROVIDERS: dict[str, ProviderSpec] = {p.id: p for p in (CODEX, GEMINI)}

# Fields that may be overridden from providers.yaml (id is the key, not a field)
_OVERRIDABLE = {f.name for f in fields(ProviderSpec)} - {"id"}


# ── Registry ─────────────────────────────────────────────────────────────────


class ProviderRegistry:
    """Built-in provider table with optional per-field YAML overrides."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._providers: dict[str, ProviderSpec] = dict(DEFAULT_PROVIDERS)
        self._loaded = False

    def load(self, force: bool = False) -> dict[str, ProviderSpec]:
        """Apply overrides from the providers file (if any) and return the table."""
        if self._loaded and not force:
            return self._providers

        self._providers = dict(DEFAULT_PROVIDERS)
        self._loaded = True
        if self._path is None or not self._path.exists():
            return self._providers

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            return self._providers

        table = (raw.get("providers") or {}) if isinstance(raw, dict) else raw
        if not isinstance(table, dict):
            logger.error("Ignoring %s: expected a mapping of provider overrides", self._path)
            return self._providers

        for provider_id, overrides in table.items():
            base = self._providers.get(provider_id)
            if base is None:
                logger.warning("Ignoring unknown provider in %s: %s", self._path, provider_id)
                continue
            if not isinstance(overrides, dict):
                continue
            self._providers[provider_id] = _apply_overrides(base, overrides)

        logger.info("Provider table loaded with overrides from %s", self._path)
        return self._providers

    @property
    def providers(self) -> list[ProviderSpec]:
        return list(self.load().values())

    def get(self, provider_id: str) -> ProviderSpec | None:
        return self.load().get((provider_id or "").strip().lower())

    def require(self, provider_id: str) -> ProviderSpec:
        provider = self.get(provider_id)
        if provider is None:
            known = ", ".join(sorted(self.load()))
            raise UnknownProviderError(f"Unknown provider '{provider_id}' (known: {known})")
        return provider

    def to_dict(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in self.providers]


def _apply_overrides(base: ProviderSpec, overrides: dict[str, Any]) -> ProviderSpec:
    accepted: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in _OVERRIDABLE:
            logger.warning("Ignoring unknown provider field '%s' for %s", key, base.id)
            continue
        if key.startswith("supports_"):
            value = bool(value)
        elif value is not None:
            value = str(value)
        accepted[key] = value
    if "process_pattern" in accepted:
        try:
            re.compile(accepted["process_pattern"])
        except re.error as e:
            logger.warning("Invalid process_pattern for %s (%s), keeping default", base.id, e)
            accepted.pop("process_pattern")
    return replace(base, **accepted)
