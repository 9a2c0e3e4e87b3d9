from __future__ import annotations

import json
import queue
import threading
from collections.abc import Callable
from pathlib import Path

import allure

from ralphio.orchestrator.backend.base import AgentRunCancelled, AgentRunError, AgentType
from ralphio.orchestrator.backend.cli_backend import CliAgentAdapter
from ralphio.orchestrator.loop import LoopOrchestrator, LoopSettings, apply_retry_policy
from ralphio.orchestrator.messages import (
    AgentOutput,
    ChangeAdapterCommand,
    ChangeModeCommand,
    IterationCompleted,
    IterationStarted,
    LoopDone,
    LoopError,
    LoopModeChanged,
    LoopPaused,
    LoopResumed,
    LoopSnapshot,
    RetryCommand,
    SkipCommand,
    TogglePauseCommand,
)
from ralphio.orchestrator.models import LoopMode, LoopStatus, RunState, Task, TaskStatus
from ralphio.orchestrator.prompts import PLANNING_PROMPT
from ralphio.orchestrator.state import save_state, state_path
from ralphio.orchestrator.validator import ValidationResult, run_validation

pytestmark = [
    allure.epic("Orchestrator"),
    allure.feature("Control Loop"),
]

_FAST = LoopSettings(
    iteration_delay_seconds=0,
    retry_delay_seconds=0,
    pause_poll_seconds=0.01,
)


class _StubAdapter:
    """Adapter double: scripted outcomes, optional side effect while "running"."""

    def __init__(
        self,
        agent: AgentType = AgentType.CLAUDE,
        model: str = "",
        *,
        outcomes: list[Exception | None] | None = None,
        on_execute: Callable[[threading.Event | None], None] | None = None,
    ) -> None:
        self._agent = agent
        self._model = model
        self.outcomes = list(outcomes or [])
        self.on_execute = on_execute
        self.prompts: list[str] = []

    @property
    def name(self) -> AgentType:
        return self._agent

    @property
    def model(self) -> str:
        return self._model

    def supports_model_selection(self) -> bool:
        return self._agent in (AgentType.OPENCODE, AgentType.KILO, AgentType.PI)

    def execute(self, prompt, on_output, *, stop_event=None, timeout_seconds=None) -> None:
        self.prompts.append(prompt)
        on_output(f"{self._agent.value} working")
        if self.on_execute is not None:
            self.on_execute(stop_event)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is not None:
            raise outcome


class _ScriptedValidator:
    def __init__(self, *results: bool) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, Path | None]] = []

    def __call__(self, command, *, stop_event=None, timeout_seconds=None, cwd=None):
        self.calls.append((command, cwd))
        passed = self.results.pop(0)
        return ValidationResult(
            command=command,
            passed=passed,
            output="ok" if passed else "1 failed",
            duration_seconds=0.01,
        )


def _write_tasks(project_dir: Path, tasks: list[dict]) -> None:
    (project_dir / "tasks.json").write_text(json.dumps(tasks, indent=2), "utf-8")


def _read_tasks(project_dir: Path) -> dict[str, dict]:
    raw = json.loads((project_dir / "tasks.json").read_text("utf-8"))
    return {task["id"]: task for task in raw}


def _drain(events: queue.Queue) -> list[object]:
    drained: list[object] = []
    while True:
        try:
            drained.append(events.get_nowait())
        except queue.Empty:
            return drained


def _run(
    project_dir: Path,
    adapter: _StubAdapter,
    *,
    commands: tuple[object, ...] = (),
    settings: LoopSettings = _FAST,
    **kwargs,
) -> tuple[RunState, list[object]]:
    events: queue.Queue = queue.Queue()
    command_queue: queue.Queue = queue.Queue()
    for command in commands:
        command_queue.put(command)
    orchestrator = LoopOrchestrator(
        project_dir,
        adapter,
        events,
        command_queue,
        settings=settings,
        **kwargs,
    )
    state = orchestrator.run(threading.Event())
    return state, _drain(events)


def _of_type(events: list[object], event_type: type) -> list:
    return [event for event in events if isinstance(event, event_type)]


def _index_of(events: list[object], event_type: type) -> int:
    return next(index for index, event in enumerate(events) if isinstance(event, event_type))


def test_single_successful_iteration_completes_task_and_persists_state(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "title": "One", "priority": 1, "status": "pending"}])
    adapter = _StubAdapter()

    state, events = _run(tmp_path, adapter)

    task = _read_tasks(tmp_path)["t1"]
    assert task["status"] == "completed"
    assert task["retryCount"] == 0
    [completed] = _of_type(events, IterationCompleted)
    assert completed.passed is True
    assert completed.iteration == 1
    assert completed.task_id == "t1"
    assert completed.validation is None
    assert completed.failure_reason is None
    persisted = json.loads(state_path(tmp_path).read_text("utf-8"))
    assert persisted["currentIteration"] == 1
    assert persisted["currentTaskId"] == "t1"
    assert persisted["loopStatus"] == "stopped"
    assert state.loop_status == LoopStatus.STOPPED
    assert "Task ID: t1" in adapter.prompts[0]


def test_iteration_events_are_ordered_and_end_with_final_snapshot(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "title": "One", "priority": 1}])

    _, events = _run(tmp_path, _StubAdapter())

    assert isinstance(events[0], LoopSnapshot)
    assert (
        _index_of(events, IterationStarted)
        < _index_of(events, AgentOutput)
        < _index_of(events, IterationCompleted)
        < _index_of(events, LoopDone)
    )
    assert _of_type(events, AgentOutput)[0].text == "claude working"
    assert _of_type(events, LoopDone)[0].reason == "all tasks settled"
    final = events[-1]
    assert isinstance(final, LoopSnapshot)
    assert final.status == LoopStatus.STOPPED
    assert final.completed_tasks == 1
    assert final.total_tasks == 1
    running = events[_index_of(events, IterationStarted) + 1]
    assert isinstance(running, LoopSnapshot)
    assert running.current_task is not None
    assert running.current_task.id == "t1"
    assert running.current_task.status == TaskStatus.IN_PROGRESS


def test_failed_iterations_increment_retries_then_skip(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1, "maxRetries": 2}])
    seen_retry_counts: list[int] = []

    def _record_retry_count(_stop_event) -> None:
        seen_retry_counts.append(_read_tasks(tmp_path)["t1"]["retryCount"])

    adapter = _StubAdapter(
        outcomes=[AgentRunError("boom", exit_code=1)] * 3,
        on_execute=_record_retry_count,
    )

    _, events = _run(tmp_path, adapter)

    assert seen_retry_counts == [0, 1, 2]
    completed = _of_type(events, IterationCompleted)
    assert [event.passed for event in completed] == [False, False, False]
    assert completed[0].failure_reason == "agent error: boom"
    task = _read_tasks(tmp_path)["t1"]
    assert task["status"] == "skipped"
    assert task["retryCount"] == 2


def test_validation_decides_outcome_after_successful_agent_run(tmp_path: Path) -> None:
    _write_tasks(
        tmp_path,
        [{"id": "t1", "priority": 1, "validationCommand": "make test"}],
    )
    validator = _ScriptedValidator(False, True)

    _, events = _run(tmp_path, _StubAdapter(), validator=validator)

    assert validator.calls == [("make test", tmp_path), ("make test", tmp_path)]
    first, second = _of_type(events, IterationCompleted)
    assert first.passed is False
    assert first.failure_reason == "validation failed"
    assert first.validation is not None
    assert first.validation.output == "1 failed"
    assert second.passed is True
    task = _read_tasks(tmp_path)["t1"]
    assert task["status"] == "completed"
    assert task["retryCount"] == 0


def test_validator_is_not_run_when_agent_fails(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1, "validationCommand": "make test"}])
    validator = _ScriptedValidator(True)
    adapter = _StubAdapter(outcomes=[AgentRunError("crashed", exit_code=2), None])

    _, events = _run(tmp_path, adapter, validator=validator)

    assert len(validator.calls) == 1
    assert [event.passed for event in _of_type(events, IterationCompleted)] == [False, True]


def test_agent_timeout_is_reported_as_failure_reason(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])
    timeout = AgentRunError("Agent timed out", exit_code=124, timed_out=True)
    adapter = _StubAdapter(outcomes=[timeout])

    _, events = _run(tmp_path, adapter)

    first = _of_type(events, IterationCompleted)[0]
    assert first.failure_reason == "agent timed out"
    assert _read_tasks(tmp_path)["t1"]["status"] == "completed"


def test_tasks_are_selected_by_priority_and_agent_additions_are_kept(tmp_path: Path) -> None:
    _write_tasks(
        tmp_path,
        [
            {"id": "b", "priority": 2},
            {"id": "a", "priority": 1},
        ],
    )
    added = False

    def _agent_adds_task(_stop_event) -> None:
        nonlocal added
        if added:
            return
        added = True
        raw = json.loads((tmp_path / "tasks.json").read_text("utf-8"))
        raw.append({"id": "c", "title": "Found while working", "priority": 0})
        (tmp_path / "tasks.json").write_text(json.dumps(raw), "utf-8")

    _, events = _run(tmp_path, _StubAdapter(on_execute=_agent_adds_task))

    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["a", "c", "b"]
    tasks = _read_tasks(tmp_path)
    assert {task_id: task["status"] for task_id, task in tasks.items()} == {
        "a": "completed",
        "b": "completed",
        "c": "completed",
    }
    assert tasks["c"]["title"] == "Found while working"


def test_task_removed_by_agent_is_not_resurrected(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}, {"id": "t2", "priority": 2}])

    def _agent_drops_t1(_stop_event) -> None:
        raw = json.loads((tmp_path / "tasks.json").read_text("utf-8"))
        (tmp_path / "tasks.json").write_text(
            json.dumps([task for task in raw if task["id"] != "t1"]),
            "utf-8",
        )

    _, events = _run(tmp_path, _StubAdapter(on_execute=_agent_drops_t1))

    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["t1", "t2"]
    assert list(_read_tasks(tmp_path)) == ["t2"]


def test_stale_in_progress_task_is_reset_and_rerun(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1, "status": "in_progress", "retryCount": 1}])

    _, events = _run(tmp_path, _StubAdapter())

    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["t1"]
    assert _read_tasks(tmp_path)["t1"]["status"] == "completed"


def test_iteration_counter_continues_from_persisted_state(tmp_path: Path) -> None:
    save_state(tmp_path, RunState(current_iteration=41))
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])

    state, events = _run(tmp_path, _StubAdapter())

    assert _of_type(events, IterationStarted)[0].iteration == 42
    assert state.current_iteration == 42


def test_skip_command_settles_current_task_without_running_it(tmp_path: Path) -> None:
    save_state(tmp_path, RunState(current_task_id="t1"))
    _write_tasks(
        tmp_path,
        [{"id": "t1", "priority": 1, "retryCount": 1}, {"id": "t2", "priority": 2}],
    )

    _, events = _run(tmp_path, _StubAdapter(), commands=(SkipCommand(),))

    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["t2"]
    tasks = _read_tasks(tmp_path)
    assert tasks["t1"]["status"] == "skipped"
    assert tasks["t1"]["retryCount"] == 1
    assert tasks["t2"]["status"] == "completed"


def test_retry_command_resets_counter_and_selects_task_next(tmp_path: Path) -> None:
    save_state(tmp_path, RunState(current_task_id="t1"))
    _write_tasks(
        tmp_path,
        [
            {"id": "t1", "priority": 5, "status": "skipped", "retryCount": 3},
            {"id": "t2", "priority": 1},
        ],
    )

    _, events = _run(tmp_path, _StubAdapter(), commands=(RetryCommand(),))

    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["t1", "t2"]
    tasks = _read_tasks(tmp_path)
    assert tasks["t1"]["status"] == "completed"
    assert tasks["t1"]["retryCount"] == 0


def test_latest_of_retry_and_skip_wins(tmp_path: Path) -> None:
    save_state(tmp_path, RunState(current_task_id="t1"))
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])

    _, events = _run(tmp_path, _StubAdapter(), commands=(RetryCommand(), SkipCommand()))

    assert _of_type(events, IterationStarted) == []
    assert _read_tasks(tmp_path)["t1"]["status"] == "skipped"


def test_pause_and_resume_emit_events_and_hold_work(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])
    events: queue.Queue = queue.Queue()
    commands: queue.Queue = queue.Queue()
    commands.put(TogglePauseCommand())
    orchestrator = LoopOrchestrator(tmp_path, _StubAdapter(), events, commands, settings=_FAST)
    resume = threading.Timer(0.2, commands.put, args=(TogglePauseCommand(),))
    resume.start()

    try:
        state = orchestrator.run(threading.Event())
    finally:
        resume.cancel()

    drained = _drain(events)
    paused_index = _index_of(drained, LoopPaused)
    assert drained[paused_index + 1].status == LoopStatus.PAUSED
    assert paused_index < _index_of(drained, LoopResumed) < _index_of(drained, IterationStarted)
    assert state.loop_status == LoopStatus.STOPPED


def test_stop_event_during_agent_run_shuts_down_without_settling_task(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])

    def _host_stops(stop_event) -> None:
        stop_event.set()

    state, events = _run(tmp_path, _StubAdapter(on_execute=_host_stops))

    assert state.loop_status == LoopStatus.STOPPED
    assert _of_type(events, IterationCompleted) == []
    assert _of_type(events, LoopError) == []
    assert isinstance(events[-1], LoopSnapshot)
    assert events[-1].status == LoopStatus.STOPPED
    assert _read_tasks(tmp_path)["t1"]["status"] == "in_progress"
    assert json.loads(state_path(tmp_path).read_text("utf-8"))["loopStatus"] == "stopped"


def test_adapter_cancellation_is_a_clean_shutdown(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])
    adapter = _StubAdapter(outcomes=[AgentRunCancelled("Agent run cancelled")])

    state, events = _run(tmp_path, adapter)

    assert state.loop_status == LoopStatus.STOPPED
    assert _of_type(events, LoopError) == []
    assert _read_tasks(tmp_path)["t1"]["retryCount"] == 0


def test_change_adapter_command_swaps_agent_for_next_iteration(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])
    built: list[_StubAdapter] = []

    def _factory(agent: str, model: str) -> _StubAdapter:
        adapter = _StubAdapter(AgentType(agent), model)
        built.append(adapter)
        return adapter

    original = _StubAdapter()
    state, events = _run(
        tmp_path,
        original,
        commands=(ChangeAdapterCommand(agent="opencode", model="anthropic/claude"),),
        adapter_factory=_factory,
    )

    assert original.prompts == []
    assert len(built[0].prompts) == 1
    assert state.active_adapter == "opencode"
    assert state.active_model == "anthropic/claude"
    assert _of_type(events, AgentOutput)[0].text == "opencode working"
    assert events[-1].active_agent == "opencode"
    persisted = json.loads(state_path(tmp_path).read_text("utf-8"))
    assert persisted["activeAdapter"] == "opencode"


def test_planning_mode_runs_free_planning_then_switches_to_building(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])
    adapter = _StubAdapter()

    state, events = _run(
        tmp_path,
        adapter,
        commands=(ChangeModeCommand(mode=LoopMode.PLANNING),),
    )

    assert adapter.prompts[0] == PLANNING_PROMPT
    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["", "t1"]
    assert [event.mode for event in _of_type(events, LoopModeChanged)] == [
        LoopMode.PLANNING,
        LoopMode.BUILDING,
    ]
    assert state.loop_mode == LoopMode.BUILDING
    assert _read_tasks(tmp_path)["t1"]["status"] == "completed"


def test_missing_task_list_is_created_and_planned_first(tmp_path: Path) -> None:
    def _agent_writes_plan(_stop_event) -> None:
        if _read_tasks(tmp_path):
            return
        _write_tasks(tmp_path, [{"id": "t1", "title": "Planned", "priority": 1}])

    state, events = _run(tmp_path, _StubAdapter(on_execute=_agent_writes_plan))

    mode_changes = _of_type(events, LoopModeChanged)
    assert mode_changes[0].mode == LoopMode.PLANNING
    assert mode_changes[-1].mode == LoopMode.BUILDING
    assert [event.task_id for event in _of_type(events, IterationStarted)] == ["", "t1"]
    assert _read_tasks(tmp_path)["t1"]["status"] == "completed"
    assert state.loop_status == LoopStatus.STOPPED


def test_planning_that_adds_nothing_finishes_the_loop(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [])

    _, events = _run(tmp_path, _StubAdapter())

    assert len(_of_type(events, IterationStarted)) == 1
    assert _of_type(events, LoopDone)[0].reason == "planning produced no pending tasks"


def test_repeated_planning_failures_are_fatal(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [])
    adapter = _StubAdapter(outcomes=[AgentRunError("no auth", exit_code=1)] * 5)
    settings = LoopSettings(
        iteration_delay_seconds=0,
        retry_delay_seconds=0,
        default_max_retries=2,
    )

    state, events = _run(tmp_path, adapter, settings=settings)

    assert len(adapter.prompts) == 2
    [error] = _of_type(events, LoopError)
    assert error.message == "Planning failed 2 times in a row"
    assert error.iteration == 2
    assert state.loop_status == LoopStatus.ERROR


def test_malformed_task_file_after_agent_run_is_fatal(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])

    def _agent_corrupts_tasks(_stop_event) -> None:
        (tmp_path / "tasks.json").write_text("[{broken", "utf-8")

    state, events = _run(tmp_path, _StubAdapter(on_execute=_agent_corrupts_tasks))

    [error] = _of_type(events, LoopError)
    assert "invalid JSON" in error.message
    assert error.iteration == 1
    assert error.task_id == "t1"
    assert isinstance(events[-1], LoopSnapshot)
    assert events[-1].status == LoopStatus.ERROR
    assert state.loop_status == LoopStatus.ERROR
    assert json.loads(state_path(tmp_path).read_text("utf-8"))["loopStatus"] == "error"


def test_malformed_state_file_stops_before_touching_anything(tmp_path: Path) -> None:
    path = state_path(tmp_path)
    path.parent.mkdir()
    path.write_text("{bad", "utf-8")

    state, events = _run(tmp_path, _StubAdapter())

    [error] = _of_type(events, LoopError)
    assert error.message.startswith("Loading run state failed")
    assert state.loop_status == LoopStatus.ERROR
    assert path.read_text("utf-8") == "{bad"
    assert not (tmp_path / "tasks.json").exists()


def test_unreadable_state_path_is_reported_as_error(tmp_path: Path) -> None:
    state_path(tmp_path).mkdir(parents=True)

    state, events = _run(tmp_path, _StubAdapter())

    [error] = _of_type(events, LoopError)
    assert error.message.startswith("Loading run state failed")
    assert isinstance(events[-1], LoopSnapshot)
    assert state.loop_status == LoopStatus.ERROR


def test_nul_byte_in_validation_command_fails_iteration_not_loop(tmp_path: Path) -> None:
    _write_tasks(
        tmp_path,
        [{"id": "t1", "priority": 1, "maxRetries": 1, "validationCommand": "true\u0000x"}],
    )

    state, events = _run(tmp_path, _StubAdapter(), validator=run_validation)

    completed = _of_type(events, IterationCompleted)
    assert [event.failure_reason for event in completed] == ["validation failed"] * 2
    assert "failed to start validation command" in completed[0].validation.output
    assert _of_type(events, LoopError) == []
    assert _read_tasks(tmp_path)["t1"]["status"] == "skipped"
    assert state.loop_status == LoopStatus.STOPPED


def test_nul_byte_in_task_description_fails_agent_start(echo_command, tmp_path: Path) -> None:
    _write_tasks(
        tmp_path,
        [{"id": "t1", "priority": 1, "maxRetries": 1, "description": "a\u0000b"}],
    )
    adapter = CliAgentAdapter(AgentType.CLAUDE, command=echo_command(), cwd=tmp_path)

    state, events = _run(tmp_path, adapter)

    completed = _of_type(events, IterationCompleted)
    assert len(completed) == 2
    assert completed[0].failure_reason.startswith("agent error: Agent failed to start")
    assert _of_type(events, LoopError) == []
    assert _read_tasks(tmp_path)["t1"]["status"] == "skipped"
    assert state.loop_status == LoopStatus.STOPPED


def test_unexpected_adapter_exception_ends_loop_with_error_and_snapshot(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}])

    state, events = _run(tmp_path, _StubAdapter(outcomes=[RuntimeError("adapter bug")]))

    [error] = _of_type(events, LoopError)
    assert error.message == "Unexpected error: RuntimeError('adapter bug')"
    assert error.iteration == 1
    assert error.task_id == "t1"
    assert isinstance(events[-1], LoopSnapshot)
    assert events[-1].status == LoopStatus.ERROR
    assert state.loop_status == LoopStatus.ERROR
    assert json.loads(state_path(tmp_path).read_text("utf-8"))["loopStatus"] == "error"


def test_iteration_limit_ends_the_loop(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}, {"id": "t2", "priority": 2}])
    settings = LoopSettings(iteration_delay_seconds=0, retry_delay_seconds=0, max_iterations=1)

    _, events = _run(tmp_path, _StubAdapter(), settings=settings)

    assert len(_of_type(events, IterationStarted)) == 1
    assert _of_type(events, LoopDone)[0].reason == "iteration limit reached"
    assert _read_tasks(tmp_path)["t2"]["status"] == "pending"


def test_full_event_queue_drops_events_instead_of_blocking(tmp_path: Path) -> None:
    _write_tasks(tmp_path, [{"id": "t1", "priority": 1}, {"id": "t2", "priority": 2}])
    events: queue.Queue = queue.Queue(maxsize=1)
    orchestrator = LoopOrchestrator(tmp_path, _StubAdapter(), events, queue.Queue(), settings=_FAST)

    state = orchestrator.run(threading.Event())

    assert events.qsize() == 1
    assert state.loop_status == LoopStatus.STOPPED
    assert {task["status"] for task in _read_tasks(tmp_path).values()} == {"completed"}


def test_apply_retry_policy_transitions() -> None:
    passed = Task(id="a", status=TaskStatus.IN_PROGRESS, retry_count=2)
    apply_retry_policy(passed, passed=True, default_max_retries=3)
    assert (passed.status, passed.retry_count) == (TaskStatus.COMPLETED, 0)

    within_budget = Task(id="b", status=TaskStatus.IN_PROGRESS, retry_count=2)
    apply_retry_policy(within_budget, passed=False, default_max_retries=3)
    assert (within_budget.status, within_budget.retry_count) == (TaskStatus.PENDING, 3)

    exhausted = Task(id="c", status=TaskStatus.IN_PROGRESS, retry_count=3)
    apply_retry_policy(exhausted, passed=False, default_max_retries=3)
    assert (exhausted.status, exhausted.retry_count) == (TaskStatus.SKIPPED, 3)

    own_budget = Task(id="d", status=TaskStatus.IN_PROGRESS, retry_count=1, max_retries=1)
    apply_retry_policy(own_budget, passed=False, default_max_retries=3)
    assert own_budget.status == TaskStatus.SKIPPED
