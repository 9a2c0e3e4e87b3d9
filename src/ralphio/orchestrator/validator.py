"""Post-iteration validation commands (tests, builds, linters)."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from ralphio.orchestrator.backend.cli_backend import terminate_process

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.1


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of one validation command run."""

    command: str
    passed: bool
    output: str
    duration_seconds: float


class ValidationCancelled(RuntimeError):
    """The stop event was set while the validation command was running."""


def run_validation(
    command: str,
    *,
    stop_event: threading.Event | None = None,
    timeout_seconds: float | None = None,
    cwd: Path | None = None,
) -> ValidationResult:
    """Run ``command`` split on whitespace, without a shell.

    The first token is the executable, the rest are arguments, so shell
    metacharacters are passed through literally. Combined stdout and stderr
    are captured; the command passes when it exits with code 0.
    """

    argv = command.split()
    if not argv:
        return ValidationResult(
            command=command,
            passed=False,
            output="empty command",
            duration_seconds=0.0,
        )

    start = time.monotonic()
    try:
        process = subprocess.Popen(  # noqa: S603
            argv,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=os.name != "nt",
        )
    except (OSError, ValueError) as error:
        return ValidationResult(
            command=command,
            passed=False,
            output=f"failed to start validation command: {error}",
            duration_seconds=time.monotonic() - start,
        )

    deadline = start + timeout_seconds if timeout_seconds else None
    while True:
        try:
            output, _ = process.communicate(timeout=_POLL_INTERVAL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if stop_event is not None and stop_event.is_set():
                terminate_process(process)
                raise ValidationCancelled(f"Validation cancelled: {command}") from None
            if deadline is not None and time.monotonic() >= deadline:
                terminate_process(process)
                output, _ = process.communicate()
                logger.warning("Validation command timed out: %s", command)
                return ValidationResult(
                    command=command,
                    passed=False,
                    output=f"{output or ''}\nvalidation timed out after {timeout_seconds:g}s",
                    duration_seconds=time.monotonic() - start,
                )

    return ValidationResult(
        command=command,
        passed=process.returncode == 0,
        output=output or "",
        duration_seconds=time.monotonic() - start,
    )
