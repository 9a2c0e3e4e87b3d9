"""Model enumeration for agents that accept ``--model``."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable

from ralphio.orchestrator.backend.base import AgentType, supports_model_selection

logger = logging.getLogger(__name__)

_LISTING_TIMEOUT_SECONDS = 30
_PI_SKIP_PREFIXES = ("provider", "warning", "error")

CommandRunner = Callable[[list[str]], str]


class ModelListingError(RuntimeError):
    """Agent binary failed to list its models."""


class ModelCatalog:
    """Per-agent model lists, cached for the catalog's lifetime.

    ``clear`` forces the next ``fetch_models`` to query the binaries again.
    """

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or _run_listing_command
        self._cache: dict[AgentType, list[str]] = {}
        self._lock = threading.Lock()

    def fetch_models(self, agent: AgentType) -> list[str]:
        if not supports_model_selection(agent):
            return []
        with self._lock:
            cached = self._cache.get(agent)
        if cached is not None:
            return list(cached)

        models = self._fetch_uncached(agent)
        with self._lock:
            self._cache[agent] = models
        logger.debug("Cached %d models for %s", len(models), agent.value)
        return list(models)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _fetch_uncached(self, agent: AgentType) -> list[str]:
        if agent in (AgentType.OPENCODE, AgentType.KILO):
            return parse_model_lines(self._run([agent.value, "models"]))
        if agent == AgentType.PI:
            return parse_pi_model_lines(self._run(["pi", "--list-models"]))
        raise ModelListingError(f"Model listing not supported for agent {agent.value!r}")

    def _run(self, args: list[str]) -> str:
        try:
            return self._runner(args)
        except ModelListingError:
            raise
        except (OSError, subprocess.SubprocessError) as error:
            raise ModelListingError(f"Fetching models for {args[0]} failed: {error}") from error


def parse_model_lines(output: str) -> list[str]:
    """One model id per non-empty line (opencode, kilo)."""

    return [line.strip() for line in output.splitlines() if line.strip()]


def parse_pi_model_lines(output: str) -> list[str]:
    """Join ``provider model`` columns into ``provider/model``, skipping headers."""

    models: list[str] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or line.lower().startswith(_PI_SKIP_PREFIXES):
            continue
        parts = line.split()
        if len(parts) >= 2:
            models.append(f"{parts[0]}/{parts[1]}")
    return models


def _run_listing_command(args: list[str]) -> str:
    completed = subprocess.run(  # noqa: S603
        args,
        check=False,
        capture_output=True,
        text=True,
        timeout=_LISTING_TIMEOUT_SECONDS,
    )
    if completed.returncode != 0:
        raise ModelListingError(
            f"{' '.join(args)} exited with code {completed.returncode}: "
            f"{completed.stderr.strip()[:300]}",
        )
    return completed.stdout
