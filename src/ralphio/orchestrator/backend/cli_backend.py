"""Subprocess-based adapter for CLI coding agents."""

from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from pathlib import Path

from ralphio.orchestrator.backend.base import (
    AGENT_COMMANDS,
    AgentRunCancelled,
    AgentRunError,
    AgentType,
    CommandConfig,
    supports_model_selection,
)
from ralphio.orchestrator.backend.stream import parse_stream_line

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.1
_TERMINATE_GRACE_SECONDS = 2.0
_TIMEOUT_EXIT_CODE = 124


class CliAgentAdapter:
    """Run one agent CLI per prompt and stream its normalized output."""

    def __init__(
        self,
        agent: AgentType,
        model: str = "",
        *,
        command: CommandConfig | None = None,
        cwd: Path | None = None,
    ) -> None:
        self._agent = agent
        self._model = model.strip() if supports_model_selection(agent) else ""
        self.command = command or AGENT_COMMANDS[agent]
        self.cwd = cwd

    @property
    def name(self) -> AgentType:
        return self._agent

    @property
    def model(self) -> str:
        return self._model

    def supports_model_selection(self) -> bool:
        return supports_model_selection(self._agent)

    def execute(
        self,
        prompt: str,
        on_output: Callable[[str], None],
        *,
        stop_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """Run the agent with ``prompt`` and block until it exits.

        Raises:
            AgentRunCancelled: ``stop_event`` was set; the process was terminated.
            AgentRunError: the agent could not start, timed out or exited non-zero.
        """

        run_args = build_run_args(self.command, prompt=prompt, model=self._model)
        env = os.environ.copy()
        env.update(self.command.env)

        try:
            process = subprocess.Popen(  # noqa: S603
                run_args,
                env=env,
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=os.name != "nt",
            )
        except FileNotFoundError as error:
            raise AgentRunError(f"Agent command not found: {run_args[0]}") from error
        except (OSError, ValueError) as error:
            # ValueError: argv with an embedded NUL byte
            raise AgentRunError(f"Agent failed to start: {error}") from error

        logger.debug("Started %s agent pid=%s", self._agent.value, process.pid)
        try:
            returncode = _stream_process(
                process=process,
                on_output=on_output,
                stop_event=stop_event,
                timeout_seconds=timeout_seconds,
            )
        finally:
            if process.poll() is None:
                terminate_process(process)
            if process.stdout is not None:
                process.stdout.close()

        if returncode != 0:
            raise AgentRunError(
                f"{self._agent.value} agent exited with code {returncode}",
                exit_code=returncode,
            )


def build_run_args(config: CommandConfig, *, prompt: str, model: str) -> list[str]:
    """Return argv: base command, optional ``--model <model>``, then the prompt."""

    if not config.command:
        raise AgentRunError("Agent command template is empty.")
    args = list(config.command)
    if model:
        args.extend(("--model", model))
    args.append(prompt)
    return args


def _stream_process(
    *,
    process: subprocess.Popen[str],
    on_output: Callable[[str], None],
    stop_event: threading.Event | None,
    timeout_seconds: float | None,
) -> int:
    lines: queue.Queue[str | None] = queue.Queue()
    reader = threading.Thread(
        target=_pump_lines,
        args=(process, lines),
        daemon=True,
        name="agent-output-reader",
    )
    reader.start()

    deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
    eof = False
    while True:
        _check_interrupts(process, stop_event=stop_event, deadline=deadline)
        if eof:
            returncode = process.poll()
            if returncode is not None:
                reader.join(timeout=_TERMINATE_GRACE_SECONDS)
                return returncode
            time.sleep(_POLL_INTERVAL_SECONDS)
            continue
        try:
            line = lines.get(timeout=_POLL_INTERVAL_SECONDS)
        except queue.Empty:
            continue
        if line is None:
            eof = True
            continue
        text = parse_stream_line(line)
        if text:
            on_output(text)


def _pump_lines(process: subprocess.Popen[str], lines: queue.Queue[str | None]) -> None:
    try:
        if process.stdout is not None:
            for line in process.stdout:
                lines.put(line)
    except (OSError, ValueError):
        # stdout closed while the process was being terminated
        pass
    finally:
        lines.put(None)


def _check_interrupts(
    process: subprocess.Popen[str],
    *,
    stop_event: threading.Event | None,
    deadline: float | None,
) -> None:
    if stop_event is not None and stop_event.is_set():
        terminate_process(process)
        raise AgentRunCancelled("Agent run cancelled", exit_code=process.returncode)
    if deadline is not None and time.monotonic() >= deadline:
        terminate_process(process)
        raise AgentRunError(
            "Agent timed out",
            exit_code=_TIMEOUT_EXIT_CODE,
            timed_out=True,
        )


def terminate_process(process: subprocess.Popen[str]) -> None:
    """Terminate the process (group), escalating to kill after a grace period."""

    try:
        _signal_process(process, kill=False)
    except OSError:
        return
    try:
        process.wait(timeout=_TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        try:
            _signal_process(process, kill=True)
        except OSError:
            return
        process.wait(timeout=_TERMINATE_GRACE_SECONDS)


def _signal_process(process: subprocess.Popen[str], *, kill: bool) -> None:
    if process.poll() is not None:
        return
    if os.name == "nt":
        if kill:
            process.kill()
        else:
            process.terminate()
        return
    os.killpg(process.pid, signal.SIGKILL if kill else signal.SIGTERM)
