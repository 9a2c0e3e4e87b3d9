"""Local stand-in agent for adapter and orchestrator integration tests.

Prints NDJSON in the claude/opencode stream formats, optionally marks a task
completed in tasks.json the way a real agent would, and exits with the
requested code. The prompt is the final positional argument.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--stderr-line", default=None)
    parser.add_argument("--mark-completed", default=None, help="tasks.json to edit.")
    parser.add_argument("--task-id", default=None)
    parser.add_argument("--model", default=None)
    parser.add_argument("prompt")
    args = parser.parse_args(argv)

    _emit({"type": "step_start"})
    first_line = args.prompt.strip().splitlines()[0] if args.prompt.strip() else ""
    _emit(
        {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": f"echo: {first_line}"}]},
        },
    )
    if args.model:
        _emit({"type": "text", "part": {"text": f"model={args.model}"}})
    print("plain progress line", flush=True)
    if args.stderr_line:
        print(args.stderr_line, file=sys.stderr, flush=True)
    if args.sleep > 0:
        time.sleep(args.sleep)
    if args.mark_completed and args.task_id:
        _mark_completed(Path(args.mark_completed), args.task_id)
    _emit({"type": "step_finish"})
    _emit(
        {
            "type": "result",
            "subtype": "success" if args.exit_code == 0 else "error",
            "result": "done",
        },
    )
    return args.exit_code


def _emit(payload: dict[str, object]) -> None:
    print(json.dumps(payload), flush=True)


def _mark_completed(tasks_path: Path, task_id: str) -> None:
    tasks = json.loads(tasks_path.read_text("utf-8"))
    for task in tasks:
        if task.get("id") == task_id:
            task["status"] = "completed"
    tasks_path.write_text(json.dumps(tasks, indent=2), "utf-8")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
