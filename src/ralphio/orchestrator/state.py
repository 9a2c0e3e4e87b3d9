"""Crash-safe persistence of the orchestrator run state (.ralph/state.json)."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from ralphio.orchestrator.models import LoopMode, LoopStatus, RunState
from ralphio.orchestrator.storage import (
    StoreParseError,
    from_rfc3339,
    read_json,
    tmp_path_for,
    to_rfc3339,
    utc_now,
    write_json_atomic,
)

logger = logging.getLogger(__name__)

STATE_DIR = ".ralph"
STATE_FILE = "state.json"


def state_path(project_dir: Path) -> Path:
    return Path(project_dir) / STATE_DIR / STATE_FILE


def load_state(project_dir: Path) -> RunState:
    """Load run state, recovering an interrupted write when needed.

    When ``state.json`` is missing but ``state.json.tmp`` exists, the temp
    file is renamed into place before reading. Missing both yields defaults.
    """

    path = state_path(project_dir)
    tmp_path = tmp_path_for(path)
    if not path.exists() and tmp_path.exists():
        os.replace(tmp_path, path)
        logger.warning("Recovered run state from interrupted write: %s", tmp_path)

    if not path.exists():
        return RunState()

    raw = read_json(path)
    if not isinstance(raw, dict):
        raise StoreParseError(path, "expected a JSON object")
    try:
        return _state_from_dict(raw)
    except (TypeError, ValueError) as error:
        raise StoreParseError(path, str(error)) from error


def save_state(project_dir: Path, state: RunState) -> None:
    """Stamp ``last_updated`` and persist via write-temp-then-rename."""

    state.last_updated = utc_now()
    path = state_path(project_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_json_atomic(path, _state_to_dict(state))


def _state_to_dict(state: RunState) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "currentIteration": state.current_iteration,
        "currentTaskId": state.current_task_id,
        "loopStatus": state.loop_status.value,
        "activeAdapter": state.active_adapter,
        "activeModel": state.active_model,
        "lastUpdated": to_rfc3339(state.last_updated or utc_now()),
    }
    if state.loop_mode is not None:
        payload["loopMode"] = state.loop_mode.value
    return payload


def _state_from_dict(raw: dict[str, Any]) -> RunState:
    defaults = RunState()
    iteration = raw.get("currentIteration", 0)
    if isinstance(iteration, bool) or not isinstance(iteration, int) or iteration < 0:
        raise ValueError(f"currentIteration must be a non-negative integer, got {iteration!r}")

    loop_mode_raw = raw.get("loopMode")
    last_updated_raw = raw.get("lastUpdated")
    if last_updated_raw is not None and not isinstance(last_updated_raw, str):
        raise TypeError(f"lastUpdated must be an RFC3339 string, got {last_updated_raw!r}")
    return RunState(
        current_iteration=iteration,
        current_task_id=_optional_str(raw, "currentTaskId", defaults.current_task_id),
        loop_status=LoopStatus(raw.get("loopStatus", defaults.loop_status.value)),
        loop_mode=LoopMode(loop_mode_raw) if loop_mode_raw else None,
        active_adapter=_optional_str(raw, "activeAdapter", defaults.active_adapter),
        active_model=_optional_str(raw, "activeModel", defaults.active_model),
        last_updated=from_rfc3339(last_updated_raw) if last_updated_raw else None,
    )


def _optional_str(raw: dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {value!r}")
    return value
