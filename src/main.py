"""Entry point for the Ralph control dashboard."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.client.dashboard import DashboardClient, DashboardError, DashboardOfflineError
from src.config import APP_NAME, APP_VERSION, settings

console = Console()

_STATUS_STYLES = {
    "ok": "green",
    "warning": "yellow",
    "limited": "bold red",
    "unknown": "dim",
}


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(
        Panel.fit(
            f"[bold]{APP_NAME} {APP_VERSION}[/bold]\n"
            f"Bind:     {settings.api_host}:{settings.api_port}\n"
            f"Provider: {settings.default_provider}\n"
            f"Cache:    {'on' if settings.cache_enabled else 'off'}",
            title="Ralph Control",
            border_style="green",
        )
    )
    uvicorn.run(
        "src.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


def _window_row(label: str, window: dict[str, Any] | None) -> list[str]:
    window = window or {}
    status = str(window.get("status") or "unknown")
    remaining = window.get("remainingPercent")
    style = _STATUS_STYLES.get(status, "")
    return [
        label,
        f"[{style}]{status}[/{style}]" if style else status,
        "--" if remaining is None else f"{remaining}%",
        str(window.get("resetLabel") or ""),
    ]


def render_status(record: dict[str, Any]) -> Table:
    """Summarize a project-status record: quota windows, runtime, root cause."""
    quota = record.get("codexQuotaEffective") or {}
    runtime = record.get("runtime") or {}
    diagnostics = record.get("diagnostics") or {}
    status = record.get("status") or {}

    table = Table(title=f"{record.get('provider', '?')} · {status.get('status', 'no status')}")
    table.add_column("Window")
    table.add_column("Status")
    table.add_column("Remaining", justify="right")
    table.add_column("Resets")
    table.add_row(*_window_row("5h", quota.get("fiveHour")))
    table.add_row(*_window_row("Weekly", quota.get("weekly")))
    table.caption = (
        f"quota source: {quota.get('source', 'none')} | "
        f"processes: {runtime.get('processesCount', 0)} | "
        f"healthy: {runtime.get('runtimeHealthy')} | "
        f"cause: {diagnostics.get('rootCause', '-')}"
    )
    return table


def run_status(project_path: str, provider: str | None, url: str) -> int:
    """Fetch and print one project's status from a running dashboard."""
    client = DashboardClient(url)
    try:
        record = client.project_status(project_path, provider)
    except DashboardOfflineError as e:
        console.print(f"[bold red]{e}[/bold red] — start it with `ralph-control serve`.")
        return 1
    except DashboardError as e:
        console.print(f"[bold red]{e.detail}[/bold red]")
        return 1

    console.print(render_status(record))
    diagnostics = record.get("diagnostics") or {}
    if diagnostics.get("recommendation"):
        console.print(Panel(diagnostics["recommendation"], title="Recommendation", style="blue"))
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ralph loop control dashboard")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server")

    # Status mode
    status_parser = sub.add_parser("status", help="Show a project's status from a running dashboard")
    status_parser.add_argument("project_path", help="Project directory containing .ralph/")
    status_parser.add_argument("--provider", default=None, help="codex | gemini")
    status_parser.add_argument("--url", default=settings.dashboard_url, help="Dashboard base URL")

    args = parser.parse_args(argv)
    _configure_logging()

    if args.command == "serve":
        run_server()
    elif args.command == "status":
        sys.exit(run_status(args.project_path, args.provider, args.url))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
