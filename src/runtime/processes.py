"""Live process table lookup for the Ralph loop and its agent CLI."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any

from src.providers.registry import ProviderSpec

logger = logging.getLogger(__name__)

PS_COMMAND = ["ps", "-axo", "pid,ppid,etime,command"]


@dataclass
class RuntimeProcess:
    pid: int
    ppid: int
    etime: str  # ps elapsed time, e.g. "01:02:03"
    command: str

    def to_dict(self) -> dict[str, Any]:
        return {"pid": self.pid, "ppid": self.ppid, "etime": self.etime, "command": self.command}


def parse_process_table(output: str) -> list[RuntimeProcess]:
    """Parse `ps -o pid,ppid,etime,command` rows, skipping the header and junk."""
    processes: list[RuntimeProcess] = []
    for line in (output or "").splitlines():
        parts = line.strip().split(None, 3)
        if len(parts) < 4:
            continue
        try:
            pid, ppid = int(parts[0]), int(parts[1])
        except ValueError:
            continue
        processes.append(RuntimeProcess(pid=pid, ppid=ppid, etime=parts[2], command=parts[3]))
    return processes


def list_runtime_processes(provider: ProviderSpec, timeout_sec: int = 5) -> list[RuntimeProcess]:
    """Processes whose command line matches the provider's pattern; [] on failure."""
    try:
        result = subprocess.run(
            PS_COMMAND,
            capture_output=True,
            text=True,
            timeout=timeout_sec,
            encoding="utf-8",
            errors="replace",
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning("Process listing failed: %s", e)
        return []
    if result.returncode != 0:
        logger.warning("ps exited with %d: %s", result.returncode, result.stderr.strip())
        return []

    pattern = provider.process_regex
    own_pid = os.getpid()
    return [
        p for p in parse_process_table(result.stdout)
        if p.pid != own_pid and pattern.search(p.command)
    ]
