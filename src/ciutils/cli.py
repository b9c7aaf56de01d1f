"""CLI for ciutils."""

import asyncio
import json
import typing as t
from pathlib import Path

import rich
import rich.console
import rich.table
import typer

import ciutils.github as gh
import ciutils.logger as logger
from ciutils.ci import get_ci_platform, is_ci
from ciutils.command import run_command, to_shell_command
from ciutils.configuration import ConfigBox, load_config
from ciutils.exceptions import CIUtilsError
from ciutils.runner import SafeRunOptions, safe_run

app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
)

console = rich.console.Console()

DEFAULT_COMMAND_TIMEOUT = 600.0
"""Seconds a command may run when no timeout is given."""


@app.callback()
def main(
    ctx: typer.Context,
    config: t.Annotated[
        t.Optional[Path],
        typer.Option(
            ...,
            "--config",
            "-c",
            help="Path to a configuration file.",
            envvar="CIUTILS_CONFIG",
        ),
    ] = None,
    log_level: t.Annotated[
        t.Optional[str],
        typer.Option(
            ...,
            "--log-level",
            "-l",
            help="The log level to use.",
            envvar="LOG_LEVEL",
        ),
    ] = None,
) -> None:
    """ciutils: CI environment helpers and a supervised runner."""
    try:
        ctx.obj = load_config(config) if config else load_config()
    except CIUtilsError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(2) from e
    try:
        logger.set_level(log_level or logger.level_from_config(ctx.obj))
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="'--log-level'") from e


@app.command(rich_help_panel="Environment")
def detect(
    json_output: t.Annotated[
        bool, typer.Option("--json", help="Print the result as JSON.")
    ] = False,
) -> None:
    """:mag: Detect the CI platform this process runs on."""
    platform = get_ci_platform()
    in_ci = is_ci()
    if json_output:
        typer.echo(json.dumps({"ci": in_ci, "platform": platform.value}))
        return
    if in_ci:
        console.print(f"Running in CI on [bold green]{platform.value}[/bold green]")
    else:
        console.print("[yellow]Not running in CI[/yellow]")


@app.command(rich_help_panel="Environment")
def github() -> None:
    """:octopus: Print the GitHub Actions context of the current run."""
    table = rich.table.Table(title="GitHub Actions")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    repository = gh.get_github_repository()
    rows = {
        "repository": str(repository) if repository else None,
        "event": gh.get_github_event_name(),
        "ref": gh.get_github_ref(),
        "sha": gh.get_github_sha(),
        "workflow": gh.get_github_workflow(),
        "job": gh.get_github_job(),
        "run_id": gh.get_github_run_id(),
        "run_attempt": gh.get_github_run_attempt(),
        "actor": gh.get_github_actor(),
        "pull_request": gh.get_github_pull_request_number(),
        "debug": gh.is_github_debug(),
        "api_url": gh.get_github_api_url(),
        "server_url": gh.get_github_server_url(),
    }
    for key, value in rows.items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def _exit(code: int) -> None:
    raise typer.Exit(code)


@app.command(
    rich_help_panel="Execution",
    context_settings={"ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    command: t.Annotated[
        t.List[str], typer.Argument(help="The command and its arguments.")
    ],
    timeout: t.Annotated[
        float,
        typer.Option("--timeout", "-t", help="Seconds before the command is killed."),
    ] = DEFAULT_COMMAND_TIMEOUT,
    exit_code: t.Annotated[
        t.Optional[int],
        typer.Option(
            "--exit-code", "-x", help="Exit code to use when the command fails."
        ),
    ] = None,
) -> None:
    """:runner: Run a shell command under supervision."""
    config = t.cast(ConfigBox, ctx.obj)
    overrides: t.Dict[str, t.Any] = {"exit_on_failed": True, "terminate": _exit}
    if exit_code is not None:
        overrides["exit_fail_code"] = exit_code
    cmdline = to_shell_command(command[0], command[1:])
    try:
        options = SafeRunOptions.from_config(
            config.get("runner") if config else None,
            on_before=lambda: logger.info("Running [bold]%s[/bold]", cmdline),
            on_after=lambda: console.print(f"[green]Finished[/green] {cmdline}"),
            on_fail=lambda err: console.print(f"[red]Failed:[/red] {err}"),
            **overrides,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    asyncio.run(
        safe_run(lambda: run_command(command[0], command[1:], timeout=timeout), options)
    )


if __name__ == "__main__":
    app()
