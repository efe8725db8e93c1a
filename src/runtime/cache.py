"""Best-effort on-disk cache of the last project-status response.

Availability fallback only: the live result is always computed first, and a
cached value is used for a field only when the live one is empty (e.g. the
status file is mid-rewrite). Concurrent writers for the same project race
last-write-wins.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from src.quota.models import QuotaSource, QuotaStatus
from src.runtime.artifacts import safe_read_json, write_text

logger = logging.getLogger(__name__)

# Fields that may be backfilled; processes/runtime are live truth and never are.
# The status snapshot is user-owned: a missing file means it was cleared.
BACKFILL_FIELDS = ("status", "logs", "fixPlan")
EFFECTIVE_QUOTA_FIELD = "codexQuotaEffective"
SNAPSHOT_FIELDS = ("codexStatusSnapshot", EFFECTIVE_QUOTA_FIELD)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == {} or value == []


def _quota_is_empty(quota: Any) -> bool:
    """No source, or log heuristics that found no signal for either window."""
    if not isinstance(quota, dict):
        return True
    source = quota.get("source", QuotaSource.NONE.value)
    if source == QuotaSource.NONE.value:
        return True
    if source != QuotaSource.HEURISTICS_LOGS.value:
        return False
    windows = (quota.get("fiveHour") or {}, quota.get("weekly") or {})
    return all(w.get("status", QuotaStatus.UNKNOWN.value) == QuotaStatus.UNKNOWN.value for w in windows)


class StatusCache:
    """Per-(provider, project) JSON files under a cache directory."""

    def __init__(self, cache_dir: Path) -> None:
        self._dir = cache_dir

    def path_for(self, provider_id: str, project_path: Path) -> Path:
        key = f"{provider_id}:{project_path.resolve()}"
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
        return self._dir / f"{provider_id}-{digest}.json"

    def load(self, provider_id: str, project_path: Path) -> dict[str, Any] | None:
        data = safe_read_json(self.path_for(provider_id, project_path))
        return data if isinstance(data, dict) else None

    def backfill(
        self,
        provider_id: str,
        project_path: Path,
        live: dict[str, Any],
    ) -> tuple[dict[str, Any], list[str]]:
        """Fill empty live fields from the cache; returns (merged, filled field names)."""
        cached = self.load(provider_id, project_path)
        if not cached:
            return live, []

        merged = dict(live)
        filled: list[str] = []
        for name in BACKFILL_FIELDS:
            if _is_empty(merged.get(name)) and not _is_empty(cached.get(name)):
                merged[name] = cached[name]
                filled.append(name)

        cached_quota = cached.get(EFFECTIVE_QUOTA_FIELD)
        if _quota_is_empty(merged.get(EFFECTIVE_QUOTA_FIELD)) and not _quota_is_empty(cached_quota):
            merged[EFFECTIVE_QUOTA_FIELD] = cached_quota
            filled.append(EFFECTIVE_QUOTA_FIELD)

        if filled:
            logger.info("Backfilled %s from cache for %s", ", ".join(filled), project_path)
        return merged, filled

    def forget(self, provider_id: str, project_path: Path, fields: tuple[str, ...]) -> None:
        """Drop fields from the cached record so they cannot be backfilled."""
        cached = self.load(provider_id, project_path)
        if not cached:
            return
        for name in fields:
            cached.pop(name, None)
        self.store(provider_id, project_path, cached)

    def store(self, provider_id: str, project_path: Path, record: dict[str, Any]) -> None:
        """Persist the merged record; failures are logged, never raised."""
        path = self.path_for(provider_id, project_path)
        try:
            write_text(path, json.dumps(record, ensure_ascii=False, default=str))
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write status cache %s: %s", path, e)
