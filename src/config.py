from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic_settings import BaseSettings

from src.providers.registry import ProviderRegistry, ProviderSpec
from src.quota.sessions import default_codex_home

APP_NAME = "ralph-control"
APP_VERSION = "0.1.0"


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 3001

    # Dashboard URL used by the `status` CLI command
    dashboard_url: str = "http://127.0.0.1:3001"

    # Logging
    log_level: str = "INFO"

    # Providers
    default_provider: str = "codex"  # "codex" | "gemini"
    providers_file: str = "providers.yaml"  # optional per-field overrides
    default_run_args: str = "--sandbox workspace-write --full-auto --timeout 20 --calls 30 --verbose"

    # Codex home (session journal lives under <codex_home>/sessions)
    # Empty = $CODEX_HOME or ~/.codex
    codex_home: str = ""

    # Staleness thresholds (seconds)
    # Snapshot threshold: 300 matches the original dashboard, 900 the later revision
    snapshot_stale_seconds: int = 300
    status_fresh_seconds: int = 30
    orphan_threshold_seconds: int = 45
    diagnostics_stale_seconds: int = 900

    # Tail sizes
    status_log_tail_lines: int = 100
    quota_log_tail_lines: int = 2000
    stderr_tail_lines: int = 120
    stderr_files_limit: int = 8
    session_tail_lines: int = 600
    session_files_limit: int = 30

    # Response cache (availability fallback only)
    cache_enabled: bool = True
    cache_dir: str = ""  # empty = ~/.cache/ralph-control


settings = Settings()


# ── Runtime value object ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class DashboardConfig:
    """Configuration resolved once at process start and passed to components."""

    providers: ProviderRegistry
    default_provider: str
    codex_home: Path
    cache_dir: Path | None  # None = cache disabled
    default_run_args: str

    snapshot_stale_seconds: int = 300
    status_fresh_seconds: int = 30
    orphan_threshold_seconds: int = 45
    diagnostics_stale_seconds: int = 900

    status_log_tail_lines: int = 100
    quota_log_tail_lines: int = 2000
    stderr_tail_lines: int = 120
    stderr_files_limit: int = 8
    session_tail_lines: int = 600
    session_files_limit: int = 30

    def provider(self, provider_id: str | None = None) -> ProviderSpec:
        """Resolve a provider id (or the default) — raises UnknownProviderError."""
        return self.providers.require(provider_id or self.default_provider)


def build_dashboard_config(source: Settings | None = None) -> DashboardConfig:
    """Turn Settings into the immutable DashboardConfig the app runs with."""
    s = source or settings

    providers_path = Path(s.providers_file).expanduser()
    if not providers_path.is_absolute():
        providers_path = Path.cwd() / providers_path
    registry = ProviderRegistry(path=providers_path)
    registry.load()

    cache_dir: Path | None = None
    if s.cache_enabled:
        cache_dir = Path(s.cache_dir or "~/.cache/ralph-control").expanduser()

    return DashboardConfig(
        providers=registry,
        default_provider=s.default_provider,
        codex_home=Path(s.codex_home).expanduser() if s.codex_home else default_codex_home(),
        cache_dir=cache_dir,
        default_run_args=s.default_run_args,
        snapshot_stale_seconds=s.snapshot_stale_seconds,
        status_fresh_seconds=s.status_fresh_seconds,
        orphan_threshold_seconds=s.orphan_threshold_seconds,
        diagnostics_stale_seconds=s.diagnostics_stale_seconds,
        status_log_tail_lines=s.status_log_tail_lines,
        quota_log_tail_lines=s.quota_log_tail_lines,
        stderr_tail_lines=s.stderr_tail_lines,
        stderr_files_limit=s.stderr_files_limit,
        session_tail_lines=s.session_tail_lines,
        session_files_limit=s.session_files_limit,
    )
