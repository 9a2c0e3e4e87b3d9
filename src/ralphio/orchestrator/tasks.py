"""Task list persistence and selection policy for tasks.json."""

from __future__ import annotations

import logging
from pathlib import Path

from ralphio.orchestrator.models import Task, TaskStatus
from ralphio.orchestrator.storage import (
    StoreParseError,
    read_json,
    tmp_path_for,
    write_json_atomic,
)

logger = logging.getLogger(__name__)

TASKS_FILE = "tasks.json"


class TaskStore:
    """Reads and writes the ordered task list of one project directory.

    The file is shared with the external agent, which may rewrite it between
    iterations, so callers reload before every decision.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = Path(project_dir)

    @property
    def path(self) -> Path:
        return self.project_dir / TASKS_FILE

    @property
    def tmp_path(self) -> Path:
        return tmp_path_for(self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def load_tasks(self) -> list[Task]:
        """Return tasks in file order; a missing file yields an empty list."""

        if not self.path.exists():
            return []
        raw = read_json(self.path)
        if not isinstance(raw, list):
            raise StoreParseError(self.path, "expected a JSON array of tasks")
        tasks: list[Task] = []
        for index, entry in enumerate(raw):
            if not isinstance(entry, dict):
                raise StoreParseError(self.path, f"task #{index} is not a JSON object")
            try:
                tasks.append(Task.from_dict(entry))
            except ValueError as error:
                raise StoreParseError(self.path, f"task #{index}: {error}") from error
        return tasks

    def save_tasks(self, tasks: list[Task]) -> None:
        self.project_dir.mkdir(parents=True, exist_ok=True)
        write_json_atomic(self.path, [task.to_dict() for task in tasks])

    def create_initial_tasks(self) -> bool:
        """Create an empty tasks.json for the agent to fill; False if it already exists."""

        if self.path.exists():
            return False
        self.save_tasks([])
        logger.info("Created empty task list at %s", self.path)
        return True


def next_task(tasks: list[Task]) -> Task | None:
    """Return the pending task with the lowest priority, first one on ties.

    The returned object is the element of ``tasks`` itself, so mutating it
    mutates the caller's list.
    """

    selected: Task | None = None
    for task in tasks:
        if task.status != TaskStatus.PENDING:
            continue
        if selected is None or task.priority < selected.priority:
            selected = task
    return selected


def update_task(tasks: list[Task], task_id: str, status: TaskStatus, retry_count: int) -> bool:
    """Mutate the first task with ``task_id`` in place; callers re-save."""

    task = find_task(tasks, task_id)
    if task is None:
        return False
    task.status = status
    task.retry_count = retry_count
    return True


def find_task(tasks: list[Task], task_id: str) -> Task | None:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def count_completed(tasks: list[Task]) -> int:
    return sum(1 for task in tasks if task.status == TaskStatus.COMPLETED)


def has_pending(tasks: list[Task]) -> bool:
    return any(task.status == TaskStatus.PENDING for task in tasks)
