"""Controllers for ralphio CLI commands."""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from ralphio.config import Settings
from ralphio.orchestrator.backend import AdapterFactory, resolve_agent
from ralphio.orchestrator.backend.base import supports_model_selection
from ralphio.orchestrator.loop import LoopOrchestrator, LoopSettings
from ralphio.orchestrator.messages import (
    AgentOutput,
    ChangeAdapterCommand,
    ChangeModeCommand,
    IterationCompleted,
    IterationStarted,
    LoopCommand,
    LoopDone,
    LoopError,
    LoopEvent,
    LoopModeChanged,
    LoopPaused,
    LoopResumed,
    LoopSnapshot,
    RetryCommand,
    SkipCommand,
    StopCommand,
    TogglePauseCommand,
)
from ralphio.orchestrator.models import LoopMode, LoopStatus, TaskStatus
from ralphio.orchestrator.prompts import (
    AGENTS_FILE,
    BUILD_PROMPT_FILE,
    PLAN_PROMPT_FILE,
    PromptBuilder,
)
from ralphio.orchestrator.state import load_state, state_path
from ralphio.orchestrator.storage import tmp_path_for, to_rfc3339
from ralphio.orchestrator.tasks import TaskStore, count_completed
from ralphio.orchestrator.validator import run_validation

logger = logging.getLogger(__name__)

CONSOLE_HELP = (
    "Console commands: p/pause, s/skip, r/retry, q/stop, "
    "mode planning|building, agent <name> [model]"
)
_EVENT_POLL_SECONDS = 0.1
_VALIDATION_OUTPUT_TAIL = 20


@dataclass(slots=True)
class RunLoopCommand:
    """CLI input for the orchestrator loop."""

    project_dir: Path | None
    agent: str | None
    model: str | None
    max_iterations: int | None
    console: TextIO | None = None


@dataclass(slots=True)
class ListTasksCommand:
    project_dir: Path | None
    status: str | None = None


@dataclass(slots=True)
class ShowStatusCommand:
    project_dir: Path | None


@dataclass(slots=True)
class ListModelsCommand:
    """CLI input for model listing of one agent."""

    agent: str
    refresh: bool = False


@dataclass(slots=True)
class ValidateCommand:
    """CLI input for a one-off validation run."""

    project_dir: Path | None
    command: str
    timeout_seconds: float | None = None


@dataclass(slots=True)
class CommandResult:
    """Report lines to render in CLI plus the overall outcome."""

    lines: list[str]
    success: bool


class RalphioCliController:
    """Coordinates the loop, task inspection and agent tooling CLI operations."""

    def __init__(self, adapter_factory: AdapterFactory | None = None) -> None:
        self._adapter_factory = adapter_factory

    def run_loop(
        self,
        command: RunLoopCommand,
        *,
        on_line: Callable[[str], None],
    ) -> CommandResult:
        """Run the orchestrator in a worker thread and render its events live."""

        settings = Settings.from_env(project_dir=command.project_dir)
        if command.agent:
            settings.agent.name = command.agent.strip().lower()
        if command.model is not None:
            settings.agent.model = command.model.strip()
        if command.max_iterations is not None:
            settings.loop.max_iterations = command.max_iterations
        settings.validate()

        factory = self._factory(settings.project_dir)
        events: queue.Queue[LoopEvent] = queue.Queue(maxsize=settings.loop.event_queue_size)
        commands: queue.Queue[LoopCommand] = queue.Queue()
        orchestrator = LoopOrchestrator(
            settings.project_dir,
            factory(settings.agent.name, settings.agent.model),
            events,
            commands,
            settings=LoopSettings.from_settings(settings),
            adapter_factory=factory,
        )
        stop_event = threading.Event()
        renderer = EventRenderer(show_agent_output=settings.output.show_agent_output)
        worker = threading.Thread(
            target=orchestrator.run,
            args=(stop_event,),
            daemon=True,
            name="ralphio-loop",
        )

        with _signal_handlers(stop_event):
            worker.start()
            if command.console is not None:
                on_line(CONSOLE_HELP)
                threading.Thread(
                    target=_read_console,
                    args=(command.console, commands, stop_event, on_line),
                    daemon=True,
                    name="ralphio-console",
                ).start()
            while worker.is_alive() or not events.empty():
                try:
                    event = events.get(timeout=_EVENT_POLL_SECONDS)
                except queue.Empty:
                    continue
                for line in renderer.render(event):
                    on_line(line)
            worker.join()

        state = orchestrator.state
        return CommandResult(
            lines=[
                "Loop finished: "
                f"status={state.loop_status.value} iterations={state.current_iteration} "
                f"completed={count_completed(orchestrator.tasks)}/{len(orchestrator.tasks)}",
            ],
            success=state.loop_status != LoopStatus.ERROR,
        )

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        settings = Settings.from_env(project_dir=command.project_dir)
        store = TaskStore(settings.project_dir)
        if not store.exists():
            return [f"No task list at {store.path}"]
        status_filter = _parse_status(command.status)
        tasks = store.load_tasks()
        shown = [task for task in tasks if status_filter is None or task.status == status_filter]

        lines = [f"Tasks: {len(tasks)} completed={count_completed(tasks)}"]
        for task in shown:
            budget = task.effective_max_retries(settings.loop.max_retries)
            lines.append(
                f"  {task.id} status={task.status.value} priority={task.priority} "
                f"retries={task.retry_count}/{budget} "
                f"title={task.title or '-'}",
            )
        return lines

    def show_status(self, command: ShowStatusCommand) -> list[str]:
        settings = Settings.from_env(project_dir=command.project_dir)
        path = state_path(settings.project_dir)
        if not path.exists() and not tmp_path_for(path).exists():
            return [f"No run state at {path}"]
        state = load_state(settings.project_dir)
        tasks = TaskStore(settings.project_dir).load_tasks()
        prompts = PromptBuilder(settings.project_dir)
        return [
            f"State: {path}",
            f"Status: {state.loop_status.value}",
            f"Mode: {state.loop_mode.value if state.loop_mode else '-'}",
            f"Iteration: {state.current_iteration}",
            f"Current task: {state.current_task_id or '-'}",
            f"Agent: {state.active_adapter} model={state.active_model or 'default'}",
            f"Tasks: {count_completed(tasks)}/{len(tasks)} completed",
            f"Last updated: {to_rfc3339(state.last_updated) if state.last_updated else '-'}",
            "Prompt files: "
            f"{BUILD_PROMPT_FILE}={_present(prompts.has_build_prompt())} "
            f"{PLAN_PROMPT_FILE}={_present(prompts.has_plan_prompt())} "
            f"{AGENTS_FILE}={_present(prompts.has_agents_md())}",
        ]

    def list_models(self, command: ListModelsCommand) -> list[str]:
        agent = resolve_agent(command.agent)
        if not supports_model_selection(agent):
            return [f"Agent {agent.value} does not support model selection."]
        factory = self._factory(None)
        if command.refresh:
            factory.clear_model_cache()
        models = factory.fetch_models(agent)
        lines = [f"Models for {agent.value}: {len(models)}"]
        lines.extend(f"  {model}" for model in models)
        return lines

    def validate(self, command: ValidateCommand) -> CommandResult:
        settings = Settings.from_env(project_dir=command.project_dir)
        timeout = command.timeout_seconds
        if timeout is None:
            timeout = settings.validation.timeout_seconds or None
        result = run_validation(
            command.command,
            timeout_seconds=timeout,
            cwd=settings.project_dir,
        )
        lines = [
            f"Validation {'passed' if result.passed else 'failed'}: "
            f"{result.command} ({result.duration_seconds:.1f}s)",
        ]
        output_lines = result.output.rstrip().splitlines()
        lines.extend(f"  {line}" for line in output_lines[-_VALIDATION_OUTPUT_TAIL:])
        return CommandResult(lines=lines, success=result.passed)

    def _factory(self, project_dir: Path | None) -> AdapterFactory:
        if self._adapter_factory is not None:
            return self._adapter_factory
        return AdapterFactory(cwd=project_dir)


class EventRenderer:
    """Turns loop events into console lines; repeated identical snapshots are muted."""

    def __init__(self, *, show_agent_output: bool = True) -> None:
        self.show_agent_output = show_agent_output
        self._last_summary: str | None = None

    def render(self, event: LoopEvent) -> list[str]:  # noqa: C901, PLR0911
        if isinstance(event, LoopSnapshot):
            summary = (
                f"[{event.status.value}] "
                f"mode={event.loop_mode.value if event.loop_mode else '-'} "
                f"tasks={event.completed_tasks}/{event.total_tasks} "
                f"agent={event.active_agent}"
                + (f" model={event.active_model}" if event.active_model else "")
            )
            if summary == self._last_summary:
                return []
            self._last_summary = summary
            return [summary]
        if isinstance(event, AgentOutput):
            return event.text.rstrip("\n").splitlines() if self.show_agent_output else []
        if isinstance(event, IterationStarted):
            if not event.task_id:
                return [f"=== Iteration {event.iteration}: planning ==="]
            return [f"=== Iteration {event.iteration}: {event.task_id} {event.task_title} ==="]
        if isinstance(event, IterationCompleted):
            outcome = "passed" if event.passed else f"failed ({event.failure_reason})"
            return [
                f"--- Iteration {event.iteration} {outcome} "
                f"in {event.duration_seconds:.1f}s ---",
            ]
        if isinstance(event, LoopDone):
            return [f"Done: {event.reason}"]
        if isinstance(event, LoopError):
            context = []
            if event.iteration is not None:
                context.append(f"iteration={event.iteration}")
            if event.task_id:
                context.append(f"task={event.task_id}")
            suffix = f" ({' '.join(context)})" if context else ""
            return [f"Error: {event.message}{suffix}"]
        if isinstance(event, LoopPaused):
            return ["Paused. Press p to resume."]
        if isinstance(event, LoopResumed):
            return ["Resumed."]
        if isinstance(event, LoopModeChanged):
            reason = f": {event.reason}" if event.reason else ""
            return [f"Mode -> {event.mode.value}{reason}"]
        return []


def parse_console_command(line: str) -> LoopCommand | None:
    """Map one console line to a loop command; blank input yields None."""

    parts = line.split()
    if not parts:
        return None
    keyword = parts[0].lower()
    if keyword in {"p", "pause"}:
        return TogglePauseCommand()
    if keyword in {"s", "skip"}:
        return SkipCommand()
    if keyword in {"r", "retry"}:
        return RetryCommand()
    if keyword in {"q", "quit", "stop"}:
        return StopCommand()
    if keyword in {"m", "mode"}:
        if len(parts) != 2:
            raise ValueError("Usage: mode planning|building")
        try:
            return ChangeModeCommand(mode=LoopMode(parts[1].lower()))
        except ValueError as error:
            raise ValueError(f"Unknown mode: {parts[1]!r}") from error
    if keyword in {"a", "agent"}:
        if len(parts) not in {2, 3}:
            raise ValueError("Usage: agent <name> [model]")
        return ChangeAdapterCommand(agent=parts[1], model=parts[2] if len(parts) == 3 else "")
    raise ValueError(f"Unknown command: {parts[0]!r}. {CONSOLE_HELP}")


def _read_console(
    console: TextIO,
    commands: queue.Queue[LoopCommand],
    stop_event: threading.Event,
    on_line: Callable[[str], None],
) -> None:
    for line in console:
        if stop_event.is_set():
            return
        try:
            command = parse_console_command(line)
        except ValueError as error:
            on_line(str(error))
            continue
        if command is None:
            continue
        commands.put(command)
        if isinstance(command, StopCommand):
            stop_event.set()
            return


@contextmanager
def _signal_handlers(stop_event: threading.Event) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        # Signal handlers can only be installed in main thread.
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s, stopping after the current step", name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def _present(flag: bool) -> str:
    return "yes" if flag else "no"


def _parse_status(value: str | None) -> TaskStatus | None:
    if value is None:
        return None
    try:
        return TaskStatus(value.strip().lower())
    except ValueError as error:
        raise ValueError(f"Unsupported task status: {value!r}") from error
