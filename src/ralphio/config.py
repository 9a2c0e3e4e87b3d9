"""Runtime configuration for the orchestrator loop and its agent backends."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ralphio.orchestrator.backend.base import DEFAULT_AGENT, VALID_AGENTS

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class AgentSettings:
    """External agent selection and invocation limits."""

    name: str = DEFAULT_AGENT.value
    model: str = ""
    timeout_seconds: float = 1_800.0


@dataclass(slots=True)
class LoopTuningSettings:
    """Pacing and retry budget of the control loop."""

    max_retries: int = 3
    retry_delay_seconds: float = 5.0
    iteration_delay_seconds: float = 2.0
    max_iterations: int = 0
    event_queue_size: int = 256


@dataclass(slots=True)
class ValidationSettings:
    timeout_seconds: float = 600.0


@dataclass(slots=True)
class OutputSettings:
    """Console rendering of loop events."""

    show_agent_output: bool = True
    log_level: str = "WARNING"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    project_dir: Path = Path(".")
    agent: AgentSettings = field(default_factory=AgentSettings)
    loop: LoopTuningSettings = field(default_factory=LoopTuningSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    @classmethod
    def from_env(cls, project_dir: Path | None = None) -> Settings:
        """Load settings from ``RALPHIO_*`` environment variables with local defaults."""

        return cls(
            project_dir=project_dir or Path(os.getenv("RALPHIO_PROJECT_DIR", ".")),
            agent=AgentSettings(
                name=os.getenv("RALPHIO_AGENT", DEFAULT_AGENT.value).strip().lower(),
                model=os.getenv("RALPHIO_AGENT_MODEL", "").strip(),
                timeout_seconds=_env_float("RALPHIO_AGENT_TIMEOUT_SECONDS", 1_800.0),
            ),
            loop=LoopTuningSettings(
                max_retries=_env_int("RALPHIO_MAX_RETRIES", 3),
                retry_delay_seconds=_env_float("RALPHIO_RETRY_DELAY_SECONDS", 5.0),
                iteration_delay_seconds=_env_float("RALPHIO_ITERATION_DELAY_SECONDS", 2.0),
                max_iterations=_env_int("RALPHIO_MAX_ITERATIONS", 0),
                event_queue_size=_env_int("RALPHIO_EVENT_QUEUE_SIZE", 256),
            ),
            validation=ValidationSettings(
                timeout_seconds=_env_float("RALPHIO_VALIDATION_TIMEOUT_SECONDS", 600.0),
            ),
            output=OutputSettings(
                show_agent_output=_env_bool("RALPHIO_SHOW_AGENT_OUTPUT", default=True),
                log_level=os.getenv("RALPHIO_LOG_LEVEL", "WARNING").strip().upper(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error naming the offending variable."""

        valid_names = {agent.value for agent in VALID_AGENTS}
        if self.agent.name not in valid_names:
            raise ValueError(
                f"RALPHIO_AGENT must be one of {', '.join(sorted(valid_names))}, "
                f"got {self.agent.name!r}.",
            )
        if self.agent.timeout_seconds < 0:
            raise ValueError("RALPHIO_AGENT_TIMEOUT_SECONDS must be >= 0 (0 disables it).")
        if self.loop.max_retries <= 0:
            raise ValueError("RALPHIO_MAX_RETRIES must be a positive integer.")
        if self.loop.retry_delay_seconds < 0:
            raise ValueError("RALPHIO_RETRY_DELAY_SECONDS must be >= 0.")
        if self.loop.iteration_delay_seconds < 0:
            raise ValueError("RALPHIO_ITERATION_DELAY_SECONDS must be >= 0.")
        if self.loop.max_iterations < 0:
            raise ValueError("RALPHIO_MAX_ITERATIONS must be >= 0 (0 means unlimited).")
        if self.loop.event_queue_size <= 0:
            raise ValueError("RALPHIO_EVENT_QUEUE_SIZE must be a positive integer.")
        if self.validation.timeout_seconds < 0:
            raise ValueError("RALPHIO_VALIDATION_TIMEOUT_SECONDS must be >= 0 (0 disables it).")
        if self.output.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"RALPHIO_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, "
                f"got {self.output.log_level!r}.",
            )

    @property
    def log_level_number(self) -> int:
        return logging.getLevelNamesMapping().get(self.output.log_level, logging.WARNING)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
