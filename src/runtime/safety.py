"""Safety layer — guards for the launch command line and stop signals."""

from __future__ import annotations

import os
import re

# Anything that would let loop arguments escape into a second shell command
_SHELL_META = re.compile(r"[;&|`$<>\n\r]|\$\(")

# Loop arguments are plain flags and values
_ALLOWED_ARG = re.compile(r"^[\w@%+=:,./\-]+$")


class SafetyError(Exception):
    """Raised when a launch or stop request violates safety rules."""


def validate_launch_args(args: str) -> list[str]:
    """Check loop arguments and return them split into words."""
    if _SHELL_META.search(args):
        raise SafetyError(
            "Blocked: loop arguments may not contain shell operators "
            "(; & | ` $ < > or newlines)."
        )
    words = args.split()
    for word in words:
        if not _ALLOWED_ARG.match(word):
            raise SafetyError(f"Blocked: unsupported characters in loop argument {word!r}.")
    return words


def validate_stop_pid(pid: int) -> None:
    """Refuse to signal init, process groups, or the dashboard itself."""
    if pid <= 1:
        raise SafetyError(f"Blocked: refusing to signal pid {pid}.")
    if pid == os.getpid():
        raise SafetyError("Blocked: refusing to stop the dashboard process itself.")
