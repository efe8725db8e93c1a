"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from src.config import DashboardConfig
from src.providers.registry import ProviderRegistry


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project directory with an empty .ralph/logs tree."""
    root = tmp_path / "project"
    (root / ".ralph" / "logs").mkdir(parents=True)
    return root


@pytest.fixture
def codex_home(tmp_path: Path) -> Path:
    home = tmp_path / "codex_home"
    home.mkdir()
    return home


@pytest.fixture
def registry() -> ProviderRegistry:
    """Built-in provider table, no overrides file."""
    reg = ProviderRegistry(path=None)
    reg.load()
    return reg


@pytest.fixture
def dashboard_config(tmp_path: Path, codex_home: Path, registry: ProviderRegistry) -> DashboardConfig:
    return DashboardConfig(
        providers=registry,
        default_provider="codex",
        codex_home=codex_home,
        cache_dir=tmp_path / "cache",
        default_run_args="--calls 3 --verbose",
    )


@pytest.fixture
def write_status(project: Path) -> Callable[..., Path]:
    """Write .ralph/status.json from keyword fields."""

    def _write(**fields: Any) -> Path:
        path = project / ".ralph" / "status.json"
        path.write_text(json.dumps(fields), encoding="utf-8")
        return path

    return _write


def _rate_limit_event(
    primary_used: float | None = 45.0,
    secondary_used: float | None = 30.0,
    primary_resets_at: int | None = 1760800000,
    timestamp: str = "2026-10-18T10:00:00Z",
) -> str:
    """One session-journal token_count line."""
    rate_limits: dict[str, Any] = {}
    if primary_used is not None:
        rate_limits["primary"] = {"used_percent": primary_used, "resets_at": primary_resets_at}
    if secondary_used is not None:
        rate_limits["secondary"] = {"used_percent": secondary_used}
    return json.dumps(
        {
            "type": "event_msg",
            "timestamp": timestamp,
            "payload": {"type": "token_count", "rate_limits": rate_limits},
        }
    )


@pytest.fixture
def rate_limit_event() -> Callable[..., str]:
    return _rate_limit_event


@pytest.fixture
def write_rollout(codex_home: Path) -> Callable[..., Path]:
    """Write a rollout-*.jsonl file under <codex_home>/<relative>."""

    def _write(relative: str, lines: list[str]) -> Path:
        path = codex_home / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
