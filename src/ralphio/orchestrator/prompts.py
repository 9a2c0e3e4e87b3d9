"""Prompt templates for planning and building iterations."""

from __future__ import annotations

from pathlib import Path

from ralphio.orchestrator.models import LoopMode, Task

BUILD_PROMPT_FILE = "PROMPT_build.md"
PLAN_PROMPT_FILE = "PROMPT_plan.md"
AGENTS_FILE = "AGENTS.md"

PLANNING_PROMPT = """\
Study @PRD.md (if present) to understand the product requirements. Study @tasks.json to \
understand the plan so far.
Based on @PRD.md (or specs/* if no PRD.md), create or update @tasks.json as a JSON array \
sorted by priority (1 = highest) of items yet to be implemented. Each task must follow the \
schema: id, title, description, priority, status ("pending"), retryCount (0), maxRetries, \
validationCommand.

IMPORTANT: Plan only. Do NOT implement anything.
"""

BUILD_TASK_PROMPT = """\
You are working through the task list in @tasks.json. Implement exactly this task:

Task ID: {task_id}
Title: {title}

Description:
{description}

Validation command: {validation_command}

Rules:
1. Search the codebase before assuming something is missing.
2. Implement the task completely; do not leave placeholders.
3. Run the validation command (or the relevant tests) before finishing.
4. When you discover new issues, add them as new pending tasks in @tasks.json.
5. Do not change the status of this task in @tasks.json; the loop records the outcome.
"""


def build_task_prompt(task: Task) -> str:
    """Interpolate one task into the fixed building template."""

    return BUILD_TASK_PROMPT.format(
        task_id=task.id,
        title=task.title or "(untitled)",
        description=task.description or "(no description)",
        validation_command=task.validation_command or "none",
    )


class PromptBuilder:
    """Composes iteration prompts, honouring project-level prompt files.

    ``PROMPT_build.md`` / ``PROMPT_plan.md`` in the project directory are
    prepended as project instructions when present.
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        build_file: Path | None = None,
        plan_file: Path | None = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.build_file = build_file or self.project_dir / BUILD_PROMPT_FILE
        self.plan_file = plan_file or self.project_dir / PLAN_PROMPT_FILE

    def build(self, mode: LoopMode, task: Task | None = None) -> str:
        """Return the prompt for one iteration; ``task`` is None for free planning."""

        if task is None:
            # PROMPT_plan.md replaces the embedded planning prompt entirely
            return self._read_instructions(LoopMode.PLANNING) or PLANNING_PROMPT
        body = build_task_prompt(task)
        instructions = self._read_instructions(mode)
        if instructions:
            return f"{instructions.rstrip()}\n\n{body}"
        return body

    def has_build_prompt(self) -> bool:
        return self.build_file.is_file()

    def has_plan_prompt(self) -> bool:
        return self.plan_file.is_file()

    def has_agents_md(self) -> bool:
        return (self.project_dir / AGENTS_FILE).is_file()

    def _read_instructions(self, mode: LoopMode) -> str:
        path = self.plan_file if mode == LoopMode.PLANNING else self.build_file
        if not path.is_file():
            return ""
        return path.read_text("utf-8").strip()
