"""CLI entrypoint for exec-gateway."""

import logging
from pathlib import Path

import rich_click as click

from exec_gateway import __version__
from exec_gateway.config import Settings
from exec_gateway.controllers import (
    CommandSpec,
    ExecCliController,
    ExecRunCommand,
    parse_command_spec,
)

click.rich_click.USE_MARKDOWN = True
EXEC_CONTROLLER = ExecCliController()


@click.group()
@click.version_option(version=__version__, prog_name="exec-gateway")
@click.option(
    "--log-level",
    type=click.Choice(["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"], case_sensitive=False),
    default=None,
    help="Logging level. If omitted, EXEC_GATEWAY_LOG_LEVEL is used.",
)
def exec_gateway(log_level: str | None) -> None:
    """Queued execution of external commands."""

    level = log_level.upper() if log_level else Settings.from_env().log_level
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _parse_specs(
    _ctx: click.Context,
    _param: click.Parameter,
    values: tuple[str, ...],
) -> tuple[CommandSpec, ...]:
    try:
        return tuple(parse_command_spec(value) for value in values)
    except ValueError as error:
        raise click.BadParameter(str(error)) from error


@exec_gateway.command("run")
@click.argument("specs", nargs=-1, required=True, callback=_parse_specs)
@click.option(
    "--working-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory commands run in. If omitted, EXEC_GATEWAY_WORKING_DIR or the current one.",
)
@click.option(
    "--timeout-ms",
    type=int,
    default=None,
    help="Per-command timeout in milliseconds; 0 or less disables it.",
)
@click.option(
    "--shutdown-timeout-ms",
    type=click.IntRange(min=0),
    default=None,
    help="How long to wait for running commands on exit.",
)
def run(
    specs: tuple[CommandSpec, ...],
    working_dir: Path | None,
    timeout_ms: int | None,
    shutdown_timeout_ms: int | None,
) -> None:
    """Run `QUEUE=COMMAND` specs; commands sharing a queue run one after another."""

    result = EXEC_CONTROLLER.run_commands(
        ExecRunCommand(
            specs=specs,
            working_dir=working_dir,
            timeout_ms=timeout_ms,
            shutdown_timeout_ms=shutdown_timeout_ms,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("At least one command failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    exec_gateway()
