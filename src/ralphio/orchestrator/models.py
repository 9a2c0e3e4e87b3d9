"""Domain models for the task list and the orchestrator run state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

DEFAULT_MAX_RETRIES = 3


class TaskStatus(str, Enum):
    """Task lifecycle states persisted in tasks.json."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class LoopStatus(str, Enum):
    """Orchestrator loop states persisted in the run state."""

    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    ERROR = "error"


class LoopMode(str, Enum):
    """Which prompt and policy apply to the next iteration."""

    PLANNING = "planning"
    BUILDING = "building"


_TASK_FIELDS = (
    "id",
    "title",
    "description",
    "priority",
    "status",
    "retryCount",
    "maxRetries",
    "validationCommand",
)


@dataclass(slots=True)
class Task:
    """One unit of work handed to the agent."""

    id: str
    title: str = ""
    description: str = ""
    priority: int = 0
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    max_retries: int = 0
    validation_command: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def effective_max_retries(self, default: int = DEFAULT_MAX_RETRIES) -> int:
        """Return the retry budget, treating 0 as "use the default"."""

        return self.max_retries if self.max_retries > 0 else default

    def copy(self) -> Task:
        return replace(self, extra=dict(self.extra))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status.value,
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
            "validationCommand": self.validation_command,
        }
        for key, value in self.extra.items():
            payload.setdefault(key, value)
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        """Build a task from one JSON object, raising ValueError on bad fields."""

        task_id = raw.get("id")
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValueError(f"Task id must be a non-empty string, got {task_id!r}")
        status_raw = raw.get("status", TaskStatus.PENDING.value)
        try:
            status = TaskStatus(status_raw)
        except ValueError as error:
            raise ValueError(f"Unknown status {status_raw!r} for task {task_id!r}") from error
        return cls(
            id=task_id,
            title=_str_field(raw, "title", task_id),
            description=_str_field(raw, "description", task_id),
            priority=_int_field(raw, "priority", task_id),
            status=status,
            retry_count=_int_field(raw, "retryCount", task_id, minimum=0),
            max_retries=_int_field(raw, "maxRetries", task_id),
            validation_command=_str_field(raw, "validationCommand", task_id),
            extra={key: value for key, value in raw.items() if key not in _TASK_FIELDS},
        )


@dataclass(slots=True)
class RunState:
    """Resumable progress of the orchestrator itself, disjoint from task data."""

    current_iteration: int = 0
    current_task_id: str = ""
    loop_status: LoopStatus = LoopStatus.STOPPED
    loop_mode: LoopMode | None = None
    active_adapter: str = "claude"
    active_model: str = ""
    last_updated: datetime | None = None


def _str_field(raw: dict[str, Any], key: str, task_id: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"Field {key!r} of task {task_id!r} must be a string")
    return value


def _int_field(raw: dict[str, Any], key: str, task_id: str, *, minimum: int | None = None) -> int:
    value = raw.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Field {key!r} of task {task_id!r} must be an integer")
    if minimum is not None and value < minimum:
        raise ValueError(f"Field {key!r} of task {task_id!r} must be >= {minimum}")
    return value
