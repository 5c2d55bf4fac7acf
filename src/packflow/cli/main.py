"""Packflow CLI - Main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from packflow import __version__
from packflow.config.logging import configure_logging
from packflow.config.settings import get_settings

from .helpers import console

app = typer.Typer(
    name="packflow",
    help="Plan, validate and run LLM agent team workflows.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]packflow[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Override the configured log level."),
    ] = None,
):
    """Packflow - dependency-aware agent team workflows.

    [bold]Quick Start:[/bold]

        packflow validate team.yaml          Score a workflow file
        packflow plan team.yaml              Show execution levels
        packflow optimize team.yaml -o out   Drop redundant dependencies
        packflow run team.yaml -r "..."      Execute with mock agents
    """
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        format=settings.log_format,
        sanitize_logs=settings.sanitize_logs,
    )


@app.command("version")
def version_cmd() -> None:
    """Show Packflow version."""
    console.print(f"[bold cyan]packflow[/bold cyan] version {__version__}")


# =============================================================================
# Register commands
# =============================================================================

from .commands.design import optimize, plan, validate  # noqa: E402
from .commands.run import run  # noqa: E402

app.command()(validate)
app.command()(plan)
app.command()(optimize)
app.command()(run)


if __name__ == "__main__":
    app()
