"""Single-threaded control loop that drives the agent through tasks.json."""

from __future__ import annotations

import functools
import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ralphio.orchestrator.backend.base import AgentAdapter, AgentRunCancelled, AgentRunError
from ralphio.orchestrator.backend.factory import new_adapter
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
from ralphio.orchestrator.models import (
    DEFAULT_MAX_RETRIES,
    LoopMode,
    LoopStatus,
    RunState,
    Task,
    TaskStatus,
)
from ralphio.orchestrator.prompts import PromptBuilder
from ralphio.orchestrator.state import load_state, save_state
from ralphio.orchestrator.storage import StoreParseError
from ralphio.orchestrator.tasks import TaskStore, count_completed, find_task, has_pending, next_task
from ralphio.orchestrator.validator import ValidationCancelled, ValidationResult, run_validation

if TYPE_CHECKING:
    from ralphio.config import Settings

logger = logging.getLogger(__name__)

AdapterBuilder = Callable[[str, str], AgentAdapter]
Validator = Callable[..., ValidationResult]


@dataclass(slots=True)
class LoopSettings:
    """Orchestrator tunables; ``None`` timeouts disable the limit."""

    iteration_delay_seconds: float = 2.0
    retry_delay_seconds: float = 5.0
    pause_poll_seconds: float = 0.1
    default_max_retries: int = DEFAULT_MAX_RETRIES
    agent_timeout_seconds: float | None = None
    validation_timeout_seconds: float | None = None
    max_iterations: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> LoopSettings:
        return cls(
            iteration_delay_seconds=settings.loop.iteration_delay_seconds,
            retry_delay_seconds=settings.loop.retry_delay_seconds,
            default_max_retries=settings.loop.max_retries,
            agent_timeout_seconds=settings.agent.timeout_seconds or None,
            validation_timeout_seconds=settings.validation.timeout_seconds or None,
            max_iterations=settings.loop.max_iterations,
        )


def apply_retry_policy(task: Task, *, passed: bool, default_max_retries: int) -> None:
    """Settle ``task`` after one iteration.

    pass -> completed with the counter reset; fail within budget -> pending
    with the counter incremented; fail with the budget spent -> skipped.
    """

    if passed:
        task.status = TaskStatus.COMPLETED
        task.retry_count = 0
        return
    if task.retry_count < task.effective_max_retries(default_max_retries):
        task.status = TaskStatus.PENDING
        task.retry_count += 1
        return
    task.status = TaskStatus.SKIPPED


class LoopOrchestrator:
    """Runs planning and building iterations until the task list is settled.

    All mutable state is owned by the thread that calls :meth:`run`. The host
    talks to it only through two queues: ``events`` (loop -> host, bounded,
    lossy) and ``commands`` (host -> loop, drained between iterations).
    """

    def __init__(
        self,
        project_dir: Path,
        adapter: AgentAdapter,
        events: queue.Queue[LoopEvent],
        commands: queue.Queue[LoopCommand],
        *,
        settings: LoopSettings | None = None,
        adapter_factory: AdapterBuilder | None = None,
        validator: Validator = run_validation,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.adapter = adapter
        self.events = events
        self.commands = commands
        self.settings = settings or LoopSettings()
        self.adapter_factory = adapter_factory or functools.partial(
            new_adapter,
            cwd=self.project_dir,
        )
        self.validator = validator
        self.prompts = prompt_builder or PromptBuilder(self.project_dir)
        self.task_store = TaskStore(self.project_dir)
        self.state = RunState()
        self.tasks: list[Task] = []
        self._retry_task_id: str | None = None
        self._skip_task_id: str | None = None
        self._session_iterations = 0
        self._planning_failures = 0

    def run(self, stop_event: threading.Event) -> RunState:
        """Block until the loop settles, fails or ``stop_event`` is set."""

        try:
            self.state = load_state(self.project_dir)
        except (StoreParseError, OSError) as error:
            logger.error("Cannot load run state: %s", error)
            self.state.loop_status = LoopStatus.ERROR
            self._emit(LoopError(message=f"Loading run state failed: {error}"))
            self._emit_snapshot()
            return self.state

        self.state.loop_status = LoopStatus.RUNNING
        self.state.active_adapter = self.adapter.name.value
        self.state.active_model = self.adapter.model
        if self.state.loop_mode is None:
            self.state.loop_mode = LoopMode.BUILDING

        try:
            self._prepare_tasks()
            save_state(self.project_dir, self.state)
            self._emit_snapshot()
            self._run_loop(stop_event)
        except (AgentRunCancelled, ValidationCancelled):
            logger.info("Iteration %d cancelled", self.state.current_iteration)
            self._shutdown(LoopStatus.STOPPED)
        except (StoreParseError, OSError) as error:
            logger.error("Loop terminated: %s", error)
            self._fail(str(error))
        except Exception as error:  # noqa: BLE001
            logger.exception("Loop crashed")
            self._fail(f"Unexpected error: {error!r}")
        return self.state

    def _prepare_tasks(self) -> None:
        if self.task_store.create_initial_tasks():
            self._set_mode(LoopMode.PLANNING, "created empty tasks.json, planning first")
        self.tasks = self.task_store.load_tasks()

        stale = [task for task in self.tasks if task.status == TaskStatus.IN_PROGRESS]
        for task in stale:
            task.status = TaskStatus.PENDING
        if stale:
            logger.warning(
                "Reset %d task(s) left in_progress by an interrupted run: %s",
                len(stale),
                ", ".join(task.id for task in stale),
            )
            self.task_store.save_tasks(self.tasks)

    def _run_loop(self, stop_event: threading.Event) -> None:
        while True:
            self._drain_commands()

            if stop_event.is_set():
                self._shutdown(LoopStatus.STOPPED)
                return

            if self.state.loop_status == LoopStatus.PAUSED:
                stop_event.wait(self.settings.pause_poll_seconds)
                continue

            self.tasks = self.task_store.load_tasks()
            task = self._select_task()
            planning = self.state.loop_mode == LoopMode.PLANNING or not self.tasks
            if not planning and task is None:
                self._finish("all tasks settled")
                return
            limit = self.settings.max_iterations
            if limit and self._session_iterations >= limit:
                self._finish("iteration limit reached")
                return

            if planning or task is None:
                passed = self._run_planning_iteration(stop_event)
            else:
                passed = self._run_task_iteration(task, stop_event)

            self.tasks = self.task_store.load_tasks()
            self._emit_snapshot()

            if planning and not self._after_planning(passed):
                return

            delay = (
                self.settings.iteration_delay_seconds
                if passed
                else self.settings.retry_delay_seconds
            )
            if delay > 0:
                stop_event.wait(delay)

    def _select_task(self) -> Task | None:
        """Apply queued retry/skip intents, then pick the next pending task."""

        changed = False
        forced: Task | None = None
        if self._retry_task_id is not None:
            task = find_task(self.tasks, self._retry_task_id)
            if task is not None:
                task.status = TaskStatus.PENDING
                task.retry_count = 0
                forced = task
                changed = True
            self._retry_task_id = None
        if self._skip_task_id is not None:
            task = find_task(self.tasks, self._skip_task_id)
            if task is not None and task.status != TaskStatus.COMPLETED:
                task.status = TaskStatus.SKIPPED
                changed = True
            self._skip_task_id = None
        if changed:
            self.task_store.save_tasks(self.tasks)
        return forced or next_task(self.tasks)

    def _run_task_iteration(self, task: Task, stop_event: threading.Event) -> bool:
        self.state.current_iteration += 1
        self._session_iterations += 1
        iteration = self.state.current_iteration
        self.state.current_task_id = task.id
        self._record_adapter()

        task.status = TaskStatus.IN_PROGRESS
        self.task_store.save_tasks(self.tasks)
        self._emit(IterationStarted(iteration=iteration, task_id=task.id, task_title=task.title))
        self._emit_snapshot()
        logger.info("Iteration %d: task %s (%s)", iteration, task.id, task.title)

        started = time.monotonic()
        prompt = self.prompts.build(self.state.loop_mode or LoopMode.BUILDING, task)
        failure_reason = self._execute_agent(prompt, stop_event)
        validation: ValidationResult | None = None
        if failure_reason is None and task.validation_command:
            validation = self.validator(
                task.validation_command,
                stop_event=stop_event,
                timeout_seconds=self.settings.validation_timeout_seconds,
                cwd=self.project_dir,
            )
            if not validation.passed:
                failure_reason = "validation failed"
        passed = failure_reason is None
        duration = time.monotonic() - started

        # the agent may have rewritten tasks.json; settle the task on the fresh copy
        self.tasks = self.task_store.load_tasks()
        settled = find_task(self.tasks, task.id)
        if settled is None:
            logger.warning(
                "Task %s disappeared from tasks.json during iteration %d",
                task.id,
                iteration,
            )
        else:
            apply_retry_policy(
                settled,
                passed=passed,
                default_max_retries=self.settings.default_max_retries,
            )

        self._emit(
            IterationCompleted(
                iteration=iteration,
                task_id=task.id,
                validation=validation,
                passed=passed,
                duration_seconds=duration,
                failure_reason=failure_reason,
            ),
        )
        if settled is not None:
            self.task_store.save_tasks(self.tasks)
        save_state(self.project_dir, self.state)
        return passed

    def _run_planning_iteration(self, stop_event: threading.Event) -> bool:
        self.state.current_iteration += 1
        self._session_iterations += 1
        iteration = self.state.current_iteration
        self.state.current_task_id = ""
        self._record_adapter()

        self._emit(IterationStarted(iteration=iteration, task_id="", task_title=""))
        logger.info("Iteration %d: planning", iteration)

        started = time.monotonic()
        failure_reason = self._execute_agent(self.prompts.build(LoopMode.PLANNING), stop_event)
        passed = failure_reason is None
        self._emit(
            IterationCompleted(
                iteration=iteration,
                task_id="",
                validation=None,
                passed=passed,
                duration_seconds=time.monotonic() - started,
                failure_reason=failure_reason,
            ),
        )
        save_state(self.project_dir, self.state)
        return passed

    def _after_planning(self, passed: bool) -> bool:
        """Decide whether to keep looping after a planning iteration."""

        if not passed:
            self._planning_failures += 1
            if self._planning_failures >= self.settings.default_max_retries:
                self._fail(
                    f"Planning failed {self._planning_failures} times in a row",
                    iteration=self.state.current_iteration,
                )
                return False
            return True

        self._planning_failures = 0
        if not has_pending(self.tasks):
            self._finish("planning produced no pending tasks")
            return False
        if self.state.loop_mode != LoopMode.BUILDING:
            self._set_mode(LoopMode.BUILDING, "plan has pending tasks")
        return True

    def _execute_agent(self, prompt: str, stop_event: threading.Event) -> str | None:
        """Run the adapter; return a failure reason, or None on success."""

        try:
            self.adapter.execute(
                prompt,
                self._on_output,
                stop_event=stop_event,
                timeout_seconds=self.settings.agent_timeout_seconds,
            )
        except AgentRunCancelled:
            raise
        except AgentRunError as error:
            if stop_event.is_set():
                raise AgentRunCancelled(str(error), exit_code=error.exit_code) from error
            logger.warning("Agent %s failed: %s", self.adapter.name.value, error)
            if error.timed_out:
                return "agent timed out"
            return f"agent error: {error}"
        if stop_event.is_set():
            raise AgentRunCancelled("Agent run cancelled")
        return None

    def _on_output(self, text: str) -> None:
        self._emit(AgentOutput(text=text))

    def _drain_commands(self) -> None:
        handled = False
        while True:
            try:
                command = self.commands.get_nowait()
            except queue.Empty:
                break
            self._handle_command(command)
            handled = True
        if handled:
            self._emit_snapshot()

    def _handle_command(self, command: LoopCommand) -> None:
        if isinstance(command, TogglePauseCommand):
            if self.state.loop_status == LoopStatus.PAUSED:
                self.state.loop_status = LoopStatus.RUNNING
                self._emit(LoopResumed())
            else:
                self.state.loop_status = LoopStatus.PAUSED
                self._emit(LoopPaused())
        elif isinstance(command, RetryCommand):
            if not self.state.current_task_id:
                logger.info("Retry ignored: no current task")
                return
            self._retry_task_id = self.state.current_task_id
            self._skip_task_id = None
        elif isinstance(command, SkipCommand):
            if not self.state.current_task_id:
                logger.info("Skip ignored: no current task")
                return
            self._skip_task_id = self.state.current_task_id
            self._retry_task_id = None
        elif isinstance(command, ChangeAdapterCommand):
            self.adapter = self.adapter_factory(command.agent, command.model)
            self._record_adapter()
            logger.info(
                "Switched agent to %s (model=%s)",
                self.state.active_adapter,
                self.state.active_model or "default",
            )
        elif isinstance(command, ChangeModeCommand):
            if command.mode != self.state.loop_mode:
                self._planning_failures = 0
                self._set_mode(command.mode, "requested")
        elif isinstance(command, StopCommand):
            logger.info("Stop requested; waiting for the host to set the stop event")
        else:
            logger.warning("Ignoring unknown command %r", command)

    def _set_mode(self, mode: LoopMode, reason: str) -> None:
        self.state.loop_mode = mode
        self._emit(LoopModeChanged(mode=mode, reason=reason))

    def _record_adapter(self) -> None:
        self.state.active_adapter = self.adapter.name.value
        self.state.active_model = self.adapter.model

    def _finish(self, reason: str) -> None:
        self.state.loop_status = LoopStatus.STOPPED
        save_state(self.project_dir, self.state)
        logger.info("Loop done: %s", reason)
        self._emit(LoopDone(reason=reason))
        self._emit_snapshot()

    def _shutdown(self, status: LoopStatus) -> None:
        self.state.loop_status = status
        self._save_state_best_effort()
        self._emit_snapshot()

    def _fail(self, message: str, *, iteration: int | None = None) -> None:
        if iteration is None:
            iteration = self.state.current_iteration or None
        self.state.loop_status = LoopStatus.ERROR
        self._save_state_best_effort()
        self._emit(
            LoopError(
                message=message,
                iteration=iteration,
                task_id=self.state.current_task_id or None,
            ),
        )
        self._emit_snapshot()

    def _save_state_best_effort(self) -> None:
        try:
            save_state(self.project_dir, self.state)
        except OSError as error:
            logger.warning("Final run state save failed: %s", error)

    def _emit_snapshot(self) -> None:
        current = find_task(self.tasks, self.state.current_task_id)
        if current is None or current.status != TaskStatus.IN_PROGRESS:
            current = None
        self._emit(
            LoopSnapshot(
                iteration=self.state.current_iteration,
                total_tasks=len(self.tasks),
                completed_tasks=count_completed(self.tasks),
                current_task=current.copy() if current is not None else None,
                tasks=tuple(task.copy() for task in self.tasks),
                status=self.state.loop_status,
                loop_mode=self.state.loop_mode,
                active_agent=self.state.active_adapter,
                active_model=self.state.active_model,
            ),
        )

    def _emit(self, event: LoopEvent) -> None:
        try:
            self.events.put_nowait(event)
        except queue.Full:
            logger.debug("Event queue full, dropped %s", type(event).__name__)
