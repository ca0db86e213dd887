"""
Grove CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging

import typer
from rich.console import Console

from grove import __version__
from grove.cli import workstream

app = typer.Typer(
    name="grove",
    help="Run parallel workstreams in isolated git worktrees",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"grove {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the grove version and exit",
    ),
) -> None:
    """
    Grove - parallel workstreams in isolated git worktrees.

    Quick Start:
        grove ws create fix-login -t "Fix the login redirect"
        grove ws run fix-login -c "make test"
        grove ws run-all -j 4
        grove ws remove fix-login --delete-branch
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.obj = {"debug": debug}


app.add_typer(workstream.app, name="ws")


__all__ = ["app"]
