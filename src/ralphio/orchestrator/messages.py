"""Typed messages exchanged between the orchestrator loop and its host UI.

Events flow from the loop to the UI over a bounded queue and may be dropped
when it is full; every event is eventually followed by a ``LoopSnapshot``
that restates the authoritative state. Commands flow from the UI to the loop
and are applied between iterations only.
"""

from __future__ import annotations

from dataclasses import dataclass

from ralphio.orchestrator.models import LoopMode, LoopStatus, Task
from ralphio.orchestrator.validator import ValidationResult

# --- events: orchestrator -> UI ---------------------------------------------


@dataclass(frozen=True, slots=True)
class LoopSnapshot:
    """Full, self-consistent restatement of the orchestrator state."""

    iteration: int
    total_tasks: int
    completed_tasks: int
    current_task: Task | None
    tasks: tuple[Task, ...]
    status: LoopStatus
    loop_mode: LoopMode | None
    active_agent: str
    active_model: str


@dataclass(frozen=True, slots=True)
class AgentOutput:
    """One chunk of displayable agent output."""

    text: str


@dataclass(frozen=True, slots=True)
class IterationStarted:
    iteration: int
    task_id: str
    task_title: str


@dataclass(frozen=True, slots=True)
class IterationCompleted:
    """Outcome of one iteration; ``validation`` is None when no command ran."""

    iteration: int
    task_id: str
    validation: ValidationResult | None
    passed: bool
    duration_seconds: float
    failure_reason: str | None = None


@dataclass(frozen=True, slots=True)
class LoopDone:
    reason: str = "all tasks settled"


@dataclass(frozen=True, slots=True)
class LoopError:
    """Human-readable failure with iteration context; the loop has ended."""

    message: str
    iteration: int | None = None
    task_id: str | None = None


@dataclass(frozen=True, slots=True)
class LoopPaused:
    pass


@dataclass(frozen=True, slots=True)
class LoopResumed:
    pass


@dataclass(frozen=True, slots=True)
class LoopModeChanged:
    mode: LoopMode
    reason: str = ""


LoopEvent = (
    LoopSnapshot
    | AgentOutput
    | IterationStarted
    | IterationCompleted
    | LoopDone
    | LoopError
    | LoopPaused
    | LoopResumed
    | LoopModeChanged
)

# --- commands: UI -> orchestrator -------------------------------------------


@dataclass(frozen=True, slots=True)
class RetryCommand:
    """Retry the current task next, with its retry counter reset."""


@dataclass(frozen=True, slots=True)
class SkipCommand:
    """Settle the current task as skipped at the next selection."""


@dataclass(frozen=True, slots=True)
class TogglePauseCommand:
    pass


@dataclass(frozen=True, slots=True)
class ChangeAdapterCommand:
    """Use another agent (and model) from the next iteration on."""

    agent: str
    model: str = ""


@dataclass(frozen=True, slots=True)
class ChangeModeCommand:
    mode: LoopMode


@dataclass(frozen=True, slots=True)
class StopCommand:
    """Signal only: the host cancels the loop by setting the stop event."""


LoopCommand = (
    RetryCommand
    | SkipCommand
    | TogglePauseCommand
    | ChangeAdapterCommand
    | ChangeModeCommand
    | StopCommand
)
