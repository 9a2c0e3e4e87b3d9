"""CLI entrypoint for ralphio."""

import logging
import sys
from pathlib import Path

import rich_click as click

from ralphio import __version__
from ralphio.config import Settings
from ralphio.controllers import (
    ListModelsCommand,
    ListTasksCommand,
    RalphioCliController,
    RunLoopCommand,
    ShowStatusCommand,
    ValidateCommand,
)
from ralphio.orchestrator.backend import VALID_AGENTS, ModelListingError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = RalphioCliController()
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
AGENT_NAMES = [agent.value for agent in VALID_AGENTS]


@click.group()
@click.version_option(version=__version__, prog_name="ralphio")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level for diagnostics on stderr. Defaults to `RALPHIO_LOG_LEVEL` or WARNING.",
)
def ralphio(log_level: str | None) -> None:
    """Run an AI coding agent against `tasks.json` until every task is settled."""

    try:
        settings = Settings.from_env()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    if log_level:
        settings.output.log_level = log_level.upper()
    logging.basicConfig(level=settings.log_level_number, format=LOG_FORMAT)


@ralphio.command("run")
@click.option(
    "--project-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory holding tasks.json. Defaults to `RALPHIO_PROJECT_DIR` or cwd.",
)
@click.option(
    "--agent",
    type=click.Choice(AGENT_NAMES, case_sensitive=False),
    default=None,
    help="Agent CLI to drive. Defaults to `RALPHIO_AGENT` or claude.",
)
@click.option("--model", default=None, help="Model for agents that support selection.")
@click.option(
    "--max-iterations",
    type=click.IntRange(min=0),
    default=None,
    help="Stop after this many iterations; 0 means unlimited.",
)
@click.option(
    "--console/--no-console",
    default=None,
    help="Read control commands from stdin. Defaults to on when stdin is a terminal.",
)
def run(
    project_dir: Path | None,
    agent: str | None,
    model: str | None,
    max_iterations: int | None,
    console: bool | None,
) -> None:
    """Run the orchestrator loop.

    While it runs, type `p` to pause or resume, `s` to skip and `r` to retry the
    current task, `mode planning|building`, `agent <name> [model]`, or `q` to stop.
    """

    use_console = sys.stdin.isatty() if console is None else console
    try:
        result = CONTROLLER.run_loop(
            RunLoopCommand(
                project_dir=project_dir,
                agent=agent,
                model=model,
                max_iterations=max_iterations,
                console=sys.stdin if use_console else None,
            ),
            on_line=click.echo,
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Loop terminated with an error.")


@ralphio.command("tasks")
@click.option("--project-dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.option(
    "--status",
    type=click.Choice(
        ["pending", "in_progress", "completed", "failed", "skipped"],
        case_sensitive=False,
    ),
    default=None,
    help="Optional status filter.",
)
def tasks(project_dir: Path | None, status: str | None) -> None:
    """List tasks with status, priority and retries."""

    try:
        lines = CONTROLLER.list_tasks(ListTasksCommand(project_dir=project_dir, status=status))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@ralphio.command("status")
@click.option("--project-dir", type=click.Path(path_type=Path, file_okay=False), default=None)
def status(project_dir: Path | None) -> None:
    """Show the persisted run state."""

    try:
        lines = CONTROLLER.show_status(ShowStatusCommand(project_dir=project_dir))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@ralphio.command("models")
@click.option(
    "--agent",
    type=click.Choice(AGENT_NAMES, case_sensitive=False),
    required=True,
    help="Agent whose models to list.",
)
@click.option("--refresh", is_flag=True, default=False, help="Ignore cached listings.")
def models(agent: str, refresh: bool) -> None:
    """List models available to an agent (opencode, kilo, pi)."""

    try:
        lines = CONTROLLER.list_models(ListModelsCommand(agent=agent, refresh=refresh))
    except ModelListingError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@ralphio.command("validate")
@click.option("--project-dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.option("--command", "validation_command", required=True, help="Command to run.")
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Timeout in seconds. Defaults to `RALPHIO_VALIDATION_TIMEOUT_SECONDS`.",
)
def validate(
    project_dir: Path | None,
    validation_command: str,
    timeout_seconds: float | None,
) -> None:
    """Run a validation command once, the way the loop does after an iteration."""

    result = CONTROLLER.validate(
        ValidateCommand(
            project_dir=project_dir,
            command=validation_command,
            timeout_seconds=timeout_seconds,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Validation failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ralphio()
