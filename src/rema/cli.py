"""CLI interface for rema."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import structlog
import typer

from rema import __version__
from rema.config import GlobalConfig
from rema.exceptions import RemaError
from rema.infra.command import CommandRunner
from rema.orchestrator import Action, Orchestrator, RunReport
from rema.pending import PendingStore
from rema.settings import RemaSettings

logger = structlog.get_logger()

app = typer.Typer(
    name="rema",
    help="Pull, build and clean every repository under your source directories.",
    add_completion=False,
)


def configure_logging(verbose: bool = False) -> None:
    """Send structlog output to stderr, at debug level when verbose."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"rema version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to the global config file",
            dir_okay=False,
        ),
    ] = None,
    pending_file: Annotated[
        Path | None,
        typer.Option(
            "--pending-file",
            help="Where `pull` records repositories for `update`",
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log debug output, including skipped entries."),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """rema - keep a directory full of repositories pulled and built."""
    configure_logging(verbose)

    if ctx.invoked_subcommand is None:
        typer.echo("No command given", err=True)
        typer.echo("Try 'rema --help' for help.", err=True)
        raise typer.Exit(1)

    try:
        ctx.obj = RemaSettings().with_overrides(
            config_path=config, pending_path=pending_file
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def _settings(ctx: typer.Context) -> RemaSettings:
    settings: RemaSettings = ctx.obj
    return settings


def _orchestrator(ctx: typer.Context, *, dry_run: bool = False) -> Orchestrator:
    settings = _settings(ctx)
    try:
        config = GlobalConfig.load(settings.config_path)
    except RemaError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    return Orchestrator(
        config,
        CommandRunner(dry_run=dry_run),
        PendingStore(settings.pending_path),
        dry_run=dry_run,
    )


def _print_report(report: RunReport) -> None:
    """Print a per-pass summary and every failure."""
    for entry in report.failures:
        label = typer.style(entry.action.value, fg=typer.colors.RED)
        typer.echo(f"{label}: {entry.path}", err=True)
        if entry.detail:
            typer.echo(f"    {entry.detail}", err=True)

    counts = report.count()
    parts = [
        f"{counts[action]} {action.value}"
        for action in Action
        if counts[action] and action is not Action.SKIPPED
    ]
    summary = ", ".join(parts) if parts else "no repositories"
    typer.echo(f"{report.command}: {summary}")

    skipped = counts[Action.SKIPPED]
    if skipped:
        typer.echo(f"  ({skipped} entries skipped; use --verbose to see why)")


def _run(ctx: typer.Context, command: str, *, dry_run: bool = False) -> RunReport:
    orchestrator = _orchestrator(ctx, dry_run=dry_run)
    log = logger.bind(command=command)
    try:
        report: RunReport = getattr(orchestrator, command)()
    except RemaError as e:
        log.error("Aborted", error=str(e))
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    _print_report(report)
    return report


@app.command()
def pull(ctx: typer.Context) -> None:
    """Pull every repository and remember which ones need a build.

    Repositories with autoupdate are built right away instead.
    """
    report = _run(ctx, "pull")
    if report.pending:
        typer.echo(f"{len(report.pending)} repositories pending; run `rema update`.")
    if report.failed:
        raise typer.Exit(1)


@app.command()
def update(
    ctx: typer.Context,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Log build commands instead of running them"),
    ] = False,
) -> None:
    """Build the repositories recorded by the last `rema pull`."""
    report = _run(ctx, "update", dry_run=dry_run)
    if report.failed:
        raise typer.Exit(1)


@app.command()
def clean(
    ctx: typer.Context,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Log clean commands instead of running them"),
    ] = False,
) -> None:
    """Run the clean commands of every repository."""
    report = _run(ctx, "clean", dry_run=dry_run)
    if report.failed:
        raise typer.Exit(1)


@app.command("list")
def list_repos(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List discovered repositories and their build settings."""
    orchestrator = _orchestrator(ctx)
    try:
        listed = orchestrator.list_repositories()
    except RemaError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps([r.to_dict() for r in listed], indent=2))
        return

    if not listed:
        typer.echo("No repositories found.")
        return

    for repo in listed:
        if repo.config is None:
            status = typer.style("invalid rema.toml", fg=typer.colors.RED)
            typer.echo(f"[{repo.label}] {repo.path}  {status}")
            typer.echo(f"    {repo.error}")
            continue

        flags = [
            name
            for name, on in (
                ("autoupdate", repo.config.autoupdate),
                ("autoclean", repo.config.autoclean),
            )
            if on
        ]
        flag_str = f" ({', '.join(flags)})" if flags else ""
        typer.echo(f"[{repo.label}] {repo.config.name}{flag_str}")
        if repo.config.name != str(repo.path):
            typer.echo(f"    path: {repo.path}")
        typer.echo(
            f"    build: {len(repo.config.build)} commands, "
            f"clean: {len(repo.config.clean)} commands"
        )


@app.command()
def pending(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show repositories waiting for `rema update`."""
    store = PendingStore(_settings(ctx).pending_path)
    try:
        pending_set = store.load()
    except RemaError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps(pending_set.to_dict(), indent=2))
        return

    if not pending_set.repos:
        typer.echo("Nothing pending.")
        return

    typer.echo(f"Pending since {pending_set.written_at}:")
    for path in pending_set.repos:
        typer.echo(f"  {path}")


if __name__ == "__main__":
    app()
