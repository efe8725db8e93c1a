"""Start and stop the Ralph loop for a project.

Thin plumbing: the loop is spawned detached in its own session with its
output redirected to a timestamped log under .ralph/logs, and stopped with
SIGTERM. Supervision (restarts, retries) is the loop's own business.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from src.providers.registry import ProviderSpec
from src.quota.models import utc_now
from src.runtime.artifacts import ProjectArtifacts
from src.runtime.safety import validate_launch_args, validate_stop_pid

logger = logging.getLogger(__name__)


class LaunchError(Exception):
    """Raised when the loop cannot be started."""


@dataclass
class LaunchResult:
    pid: int
    log_file: Path
    command: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "started": True,
            "pid": self.pid,
            "logFile": str(self.log_file),
            "command": self.command,
        }


def _run_log_name(now: datetime) -> str:
    stamp = now.isoformat().replace(":", "-").replace(".", "-")
    return f"ui_run_{stamp}.log"


def build_launch_command(script: Path, args: list[str], log_file: Path) -> str:
    """Shell line that runs the loop with stdout+stderr captured to log_file."""
    parts = [shlex.quote(str(script)), *(shlex.quote(a) for a in args)]
    return f"{' '.join(parts)} > {shlex.quote(str(log_file))} 2>&1"


def launch_loop(
    project_path: Path,
    provider: ProviderSpec,
    args: str,
    script: str | None = None,
    now: datetime | None = None,
) -> LaunchResult:
    """Spawn the loop detached from the dashboard. Raises SafetyError / LaunchError."""
    words = validate_launch_args(args)
    script_path = Path(script or provider.script_path).expanduser()
    if not script_path.is_file():
        raise LaunchError(f"Loop script not found: {script_path}")

    artifacts = ProjectArtifacts(project_path)
    artifacts.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = artifacts.log_dir / _run_log_name(now or utc_now())
    command = build_launch_command(script_path, words, log_file)

    try:
        child = subprocess.Popen(
            ["bash", "-lc", command],
            cwd=str(project_path),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        raise LaunchError(f"Could not start loop: {e}") from e

    logger.info("RUN [%s] pid=%d in %s: %s", provider.id, child.pid, project_path, command)
    return LaunchResult(pid=child.pid, log_file=log_file, command=command)


def stop_loop(pid: int) -> None:
    """Send SIGTERM. ProcessLookupError / PermissionError propagate."""
    validate_stop_pid(pid)
    os.kill(pid, signal.SIGTERM)
    logger.info("STOP pid=%d (SIGTERM)", pid)
