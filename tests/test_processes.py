"""Tests for the process-table lookup."""

from __future__ import annotations

import os
import subprocess
from unittest.mock import MagicMock, patch

from src.providers.registry import CODEX, GEMINI
from src.runtime.processes import list_runtime_processes, parse_process_table


def _ps_output() -> str:
    return "\n".join(
        [
            "  PID  PPID     ELAPSED COMMAND",
            "  100     1    01:02:03 bash /home/u/ralph-codex/ralph_loop.sh --calls 30",
            "  101   100       00:42 codex exec --full-auto fix tests",
            "  102   100       00:10 gemini --prompt hello",
            "  103     1  2-03:04:05 vim notes.md",
            f"  {os.getpid()}     1       00:01 python -m pytest ralph_loop.sh",
            "garbage",
        ]
    )


def _completed(stdout: str = "", returncode: int = 0) -> MagicMock:
    result = MagicMock()
    result.stdout = stdout
    result.stderr = "ps: failed" if returncode else ""
    result.returncode = returncode
    return result


class TestParseProcessTable:
    def test_skips_header_and_junk(self):
        rows = parse_process_table(_ps_output())
        assert [p.pid for p in rows][:4] == [100, 101, 102, 103]
        assert rows[0].ppid == 1
        assert rows[0].etime == "01:02:03"
        assert rows[0].command == "bash /home/u/ralph-codex/ralph_loop.sh --calls 30"

    def test_empty(self):
        assert parse_process_table("") == []


class TestListRuntimeProcesses:
    def test_codex_filter_excludes_self(self):
        with patch("src.runtime.processes.subprocess.run", return_value=_completed(_ps_output())):
            rows = list_runtime_processes(CODEX)
        assert [p.pid for p in rows] == [100, 101]

    def test_gemini_filter(self):
        with patch("src.runtime.processes.subprocess.run", return_value=_completed(_ps_output())):
            rows = list_runtime_processes(GEMINI)
        assert [p.pid for p in rows] == [100, 102]

    def test_nonzero_exit_is_empty(self):
        with patch("src.runtime.processes.subprocess.run", return_value=_completed(returncode=1)):
            assert list_runtime_processes(CODEX) == []

    def test_spawn_failure_is_empty(self):
        with patch("src.runtime.processes.subprocess.run", side_effect=OSError("no ps")):
            assert list_runtime_processes(CODEX) == []

    def test_timeout_is_empty(self):
        with patch(
            "src.runtime.processes.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="ps", timeout=5),
        ):
            assert list_runtime_processes(CODEX) == []

    def test_to_dict(self):
        row = parse_process_table(_ps_output())[1]
        assert row.to_dict() == {
            "pid": 101,
            "ppid": 100,
            "etime": "00:42",
            "command": "codex exec --full-auto fix tests",
        }
