"""Backend interface for agent adapters."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class AgentType(str, Enum):
    """Supported external AI coding agents."""

    CURSOR = "cursor"
    CLAUDE = "claude"
    CODEX = "codex"
    OPENCODE = "opencode"
    KILO = "kilo"
    PI = "pi"


VALID_AGENTS: tuple[AgentType, ...] = (
    AgentType.CURSOR,
    AgentType.CLAUDE,
    AgentType.CODEX,
    AgentType.OPENCODE,
    AgentType.KILO,
    AgentType.PI,
)

AGENTS_SUPPORTING_MODEL: tuple[AgentType, ...] = (
    AgentType.OPENCODE,
    AgentType.KILO,
    AgentType.PI,
)

DEFAULT_AGENT = AgentType.CLAUDE


@dataclass(frozen=True, slots=True)
class CommandConfig:
    """Base argv (without the prompt) and extra environment for one agent."""

    command: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict)


AGENT_COMMANDS: dict[AgentType, CommandConfig] = {
    AgentType.CURSOR: CommandConfig(
        command=(
            "agent",
            "-p",
            "--force",
            "--output-format",
            "stream-json",
            "--stream-partial-output",
        ),
    ),
    AgentType.CLAUDE: CommandConfig(
        command=(
            "claude",
            "-p",
            "--dangerously-skip-permissions",
            "--output-format",
            "stream-json",
            "--verbose",
        ),
    ),
    AgentType.CODEX: CommandConfig(command=("codex", "exec", "--full-auto", "--json")),
    AgentType.OPENCODE: CommandConfig(
        command=("opencode", "run", "--format", "json"),
        env={"OPENCODE_PERMISSION": '{"*":"allow"}'},
    ),
    AgentType.KILO: CommandConfig(
        command=("kilo", "run", "--format", "json"),
        env={"KILO_PERMISSION": '{"*":"allow"}'},
    ),
    AgentType.PI: CommandConfig(command=("pi", "--mode", "json", "-p")),
}


class AgentRunError(RuntimeError):
    """Agent invocation failed: spawn failure, non-zero exit or timeout."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out


class AgentRunCancelled(AgentRunError):
    """The caller's stop event was set while the agent was running."""


def supports_model_selection(agent: AgentType) -> bool:
    return agent in AGENTS_SUPPORTING_MODEL


class AgentAdapter(Protocol):
    """Protocol implemented by agent adapters."""

    @property
    def name(self) -> AgentType: ...

    @property
    def model(self) -> str: ...

    def supports_model_selection(self) -> bool: ...

    def execute(
        self,
        prompt: str,
        on_output: Callable[[str], None],
        *,
        stop_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """Run the agent, streaming displayable text to ``on_output`` until it exits."""
