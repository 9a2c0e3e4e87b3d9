"""Shared test fixtures."""

from __future__ import annotations

import sys

import pytest

from ralphio.orchestrator.backend.base import CommandConfig

ECHO_AGENT_COMMAND = (sys.executable, "-m", "ralphio.orchestrator.backend.echo_agent")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep developer RALPHIO_* settings out of the tests."""
    for name in (
        "RALPHIO_PROJECT_DIR",
        "RALPHIO_AGENT",
        "RALPHIO_AGENT_MODEL",
        "RALPHIO_MAX_RETRIES",
        "RALPHIO_RETRY_DELAY_SECONDS",
        "RALPHIO_AGENT_TIMEOUT_SECONDS",
        "RALPHIO_ITERATION_DELAY_SECONDS",
        "RALPHIO_MAX_ITERATIONS",
        "RALPHIO_VALIDATION_TIMEOUT_SECONDS",
        "RALPHIO_EVENT_QUEUE_SIZE",
        "RALPHIO_SHOW_AGENT_OUTPUT",
        "RALPHIO_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def echo_command():
    """Command config that runs the local echo agent with extra CLI flags."""

    def _build(*flags: str) -> CommandConfig:
        return CommandConfig(command=(*ECHO_AGENT_COMMAND, *flags))

    return _build
