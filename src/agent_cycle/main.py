"""CLI entrypoint for agent-cycle."""

from pathlib import Path

import rich_click as click

from agent_cycle import __version__
from agent_cycle.config import Settings
from agent_cycle.cycle.controllers import (
    CycleCliController,
    CycleSmokeCommand,
    HistoryRollbackCommand,
    HistoryShowCommand,
)
from agent_cycle.errors import AgentCycleError, ConfigurationError

click.rich_click.USE_MARKDOWN = True
CYCLE_CONTROLLER = CycleCliController()


@click.group()
@click.version_option(version=__version__, prog_name="agent-cycle")
def agent_cycle() -> None:
    """Agent execution and improvement-cycle CLI."""

    try:
        Settings.from_env().configure_logging()
    except ConfigurationError as error:
        raise click.ClickException(error.message) from error


@agent_cycle.group()
def cycle() -> None:
    """Improvement cycle commands."""


@cycle.command("smoke")
@click.option(
    "--rounds",
    type=click.IntRange(min=1),
    default=3,
    show_default=True,
    help="Stop after this many rounds.",
)
@click.option(
    "--target-score",
    type=click.FloatRange(min=0, max=100),
    default=None,
    help="Stop once the average score reaches this value.",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Eval cases executed at once. Defaults to AGENT_CYCLE_CONCURRENCY.",
)
@click.option(
    "--history-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Where to save the cycle history JSON.",
)
@click.option(
    "--prefect/--no-prefect",
    "use_prefect",
    default=False,
    show_default=True,
    help="Run the cycle as a Prefect flow.",
)
def cycle_smoke(
    rounds: int,
    target_score: float | None,
    concurrency: int | None,
    history_path: Path | None,
    use_prefect: bool,
) -> None:
    """Run an improvement cycle with the built-in echo agent, judge and improver."""

    result = CYCLE_CONTROLLER.smoke(
        CycleSmokeCommand(
            rounds=rounds,
            target_score=target_score,
            concurrency=concurrency,
            history_path=history_path,
            use_prefect=use_prefect,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Improvement cycle smoke failed.")


@agent_cycle.group()
def history() -> None:
    """Saved cycle history commands."""


@history.command("show")
@click.argument("path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
def history_show(path: Path) -> None:
    """Print the rounds recorded in a cycle history file."""

    try:
        lines = CYCLE_CONTROLLER.show_history(HistoryShowCommand(path=path))
    except AgentCycleError as error:
        raise click.ClickException(error.message) from error
    _emit_lines(lines)


@history.command("rollback")
@click.argument("path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--round", "round_number", type=click.IntRange(min=1), required=True, help="Round.")
@click.option(
    "--output",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Write the prompt snapshot JSON here instead of printing it.",
)
def history_rollback(path: Path, round_number: int, output: Path | None) -> None:
    """Print or save the prompt snapshot that a recorded round used."""

    try:
        lines = CYCLE_CONTROLLER.rollback(
            HistoryRollbackCommand(path=path, round_number=round_number, output=output),
        )
    except AgentCycleError as error:
        raise click.ClickException(error.message) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_cycle()
