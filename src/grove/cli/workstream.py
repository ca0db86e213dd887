"""
Grove CLI - Workstream commands.

Create, inspect, run, and remove workstreams, each living in its own
git worktree.
"""

import shlex
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from grove.cli.errors import (
    ExitCode,
    print_error,
    print_not_git_repo_error,
    print_workstream_not_found_error,
)
from grove.core.config import GroveConfig, load_config
from grove.core.state import WorkstreamStateStore
from grove.core.workstream import (
    RichDisplay,
    WorkstreamExecutor,
    WorkstreamResult,
    WorkstreamValidationError,
    inspect_workstream,
)
from grove.core.worktree import (
    GitWorktreeManager,
    NotInGitRepoError,
    WorktreeError,
    WorktreeNotFoundError,
)

app = typer.Typer(
    name="ws",
    help="Manage and run parallel workstreams",
    no_args_is_help=True,
)

console = Console()


def _project_dir() -> Path:
    return Path.cwd()


def _manager(project_dir: Path, config: GroveConfig) -> GitWorktreeManager:
    return GitWorktreeManager(
        project_dir,
        branch_namespace=config.workstreams.branch_namespace,
        worktree_dir=config.workstreams.worktree_dir,
    )


def _run_options(config: GroveConfig, mode: str | None, command: str | None) -> dict[str, Any]:
    options: dict[str, Any] = {"mode": mode or config.workstreams.default_mode}
    if command:
        options["command"] = shlex.split(command)
    elif config.workstreams.command:
        options["command"] = list(config.workstreams.command)
    return options


def _exit_for(results: list[WorkstreamResult]) -> None:
    if any(not r.success for r in results):
        raise typer.Exit(ExitCode.GENERAL_ERROR)


def _interrupted() -> NoReturn:
    console.print("\n[yellow]Run interrupted by user[/yellow]")
    raise typer.Exit(ExitCode.SIGINT)


@app.command()
def create(
    slug: str = typer.Argument(..., help="Short identifier for the workstream"),
    branch: str | None = typer.Option(
        None,
        "--branch",
        "-b",
        help="Branch to check out (defaults to <namespace>/<slug>)",
    ),
    base: str | None = typer.Option(
        None,
        "--base",
        help="Start point for a new branch (defaults to HEAD)",
    ),
    task: str | None = typer.Option(
        None,
        "--task",
        "-t",
        help="Task description recorded with the workstream",
    ),
) -> None:
    """
    Create a workstream in a new worktree.

    Existing local branches are checked out as-is; branches that only
    exist on origin are tracked locally.

    Examples:
        grove ws create fix-login
        grove ws create pr-42 --branch feature/search
        grove ws create docs --base develop -t "Rewrite the README"
    """
    project_dir = _project_dir()
    config = load_config(project_dir)

    try:
        entry = _manager(project_dir, config).create(
            slug, branch=branch, base_branch=base, task=task
        )
    except NotInGitRepoError:
        print_not_git_repo_error()
        raise typer.Exit(ExitCode.USER_ERROR)
    except WorktreeError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"[green]✓[/green] Created workstream [magenta]{entry.slug}[/magenta]")
    console.print(f"  Path: {entry.path}", highlight=False)
    console.print(f"  Branch: [cyan]{entry.branch}[/cyan]")


@app.command(name="list")
def list_workstreams(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show state and creation time",
    ),
) -> None:
    """
    Show all registered workstreams.

    Workstreams whose directory was deleted are shown as missing.
    """
    project_dir = _project_dir()
    config = load_config(project_dir)
    entries = _manager(project_dir, config).list()

    if not entries:
        console.print("[yellow]No workstreams found[/yellow]")
        return

    store = WorkstreamStateStore(project_dir)

    table = Table(title="Workstreams")
    table.add_column("Slug", style="magenta")
    table.add_column("Branch", style="green")
    table.add_column("Worktree")
    if verbose:
        table.add_column("State", style="cyan")
        table.add_column("Created", style="dim")

    for entry in entries:
        tree = "present" if entry.active else "[red]missing[/red]"
        if verbose:
            state = store.read(entry.slug)
            table.add_row(
                entry.slug,
                entry.branch,
                tree,
                state.status.value if state else "-",
                entry.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        else:
            table.add_row(entry.slug, entry.branch, tree)

    console.print(table)


@app.command()
def status(
    slug: str = typer.Argument(..., help="Workstream to inspect"),
) -> None:
    """
    Show the state and git status of a workstream.
    """
    project_dir = _project_dir()
    config = load_config(project_dir)
    entry = _manager(project_dir, config).info(slug)

    if entry is None:
        print_workstream_not_found_error(slug)
        raise typer.Exit(ExitCode.USER_ERROR)

    state = WorkstreamStateStore(project_dir).read(slug)
    console.print(f"[bold]Workstream:[/bold] {entry.slug}")
    console.print(f"Branch: [cyan]{entry.branch}[/cyan]")
    console.print(f"Created: {entry.created_at.isoformat()}")
    console.print(f"Status: {state.status.value if state else 'unknown'}")
    if state and state.extra_fields.get("task"):
        console.print(f"Task: {state.extra_fields['task']}", highlight=False)

    git_status = inspect_workstream(entry)
    if not git_status.exists:
        console.print("\n[yellow]⚠️  Worktree directory does not exist[/yellow]")
        return

    console.print("\nGit Status:")
    console.print(f"  Uncommitted changes: {'Yes' if git_status.uncommitted_changes else 'No'}")
    if git_status.upstream_exists:
        console.print(f"  Unpushed commits: {'Yes' if git_status.unpushed_commits else 'No'}")
        console.print(f"  Behind upstream: {'Yes' if git_status.behind_upstream else 'No'}")
    else:
        console.print("  Upstream: none (local branch)")
    if git_status.last_commit_date:
        console.print(f"  Last commit: {git_status.last_commit_date.isoformat()}")


@app.command()
def remove(
    slug: str = typer.Argument(..., help="Workstream to remove"),
    delete_branch: bool = typer.Option(
        False,
        "--delete-branch",
        "-D",
        help="Also delete the workstream's local branch",
    ),
) -> None:
    """
    Remove a workstream's worktree and unregister it.

    Examples:
        grove ws remove fix-login
        grove ws remove fix-login --delete-branch
    """
    project_dir = _project_dir()
    config = load_config(project_dir)

    try:
        _manager(project_dir, config).remove(slug, delete_branch=delete_branch)
    except WorktreeNotFoundError:
        print_workstream_not_found_error(slug)
        raise typer.Exit(ExitCode.USER_ERROR)
    except NotInGitRepoError:
        print_not_git_repo_error()
        raise typer.Exit(ExitCode.USER_ERROR)
    except WorktreeError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"[green]✓[/green] Removed workstream: {slug}")
    if delete_branch:
        console.print("  Branch deleted")


@app.command()
def prune() -> None:
    """
    Unregister workstreams whose worktree directory was deleted.
    """
    project_dir = _project_dir()
    config = load_config(project_dir)

    try:
        removed = _manager(project_dir, config).prune()
    except NotInGitRepoError:
        print_not_git_repo_error()
        raise typer.Exit(ExitCode.USER_ERROR)
    except WorktreeError as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    if not removed:
        console.print("[yellow]No stale workstreams to prune[/yellow]")
        return

    console.print(f"[green]✓[/green] Pruned {len(removed)} stale workstream(s)")
    for slug in removed:
        console.print(f"  - {slug}")


@app.command()
def run(
    slugs: list[str] = typer.Argument(..., help="Workstreams to run"),
    max_concurrent: int | None = typer.Option(
        None,
        "--max-concurrent",
        "-j",
        min=1,
        help="Maximum workstreams running at once (default from config)",
    ),
    mode: str | None = typer.Option(None, "--mode", help="Runner mode"),
    command: str | None = typer.Option(
        None,
        "--command",
        "-c",
        help="Command to run in each worktree (default from config)",
    ),
) -> None:
    """
    Run workstreams in parallel.

    Examples:
        grove ws run fix-login add-search -c "make test"
        grove ws run fix-login -j 1
    """
    project_dir = _project_dir()
    config = load_config(project_dir)
    executor = _executor(project_dir, config, max_concurrent)

    try:
        results = executor.execute_parallel(slugs, _run_options(config, mode, command))
    except WorkstreamValidationError as e:
        print_error(str(e), solution="grove ws list")
        raise typer.Exit(ExitCode.USER_ERROR)
    except KeyboardInterrupt:
        _interrupted()

    _exit_for(results)


@app.command(name="run-all")
def run_all(
    max_concurrent: int | None = typer.Option(
        None,
        "--max-concurrent",
        "-j",
        min=1,
        help="Maximum workstreams running at once (default from config)",
    ),
    mode: str | None = typer.Option(None, "--mode", help="Runner mode"),
    command: str | None = typer.Option(
        None,
        "--command",
        "-c",
        help="Command to run in each worktree (default from config)",
    ),
) -> None:
    """
    Run every workstream whose worktree exists.
    """
    project_dir = _project_dir()
    config = load_config(project_dir)
    executor = _executor(project_dir, config, max_concurrent)

    try:
        results = executor.execute_all(_run_options(config, mode, command))
    except KeyboardInterrupt:
        _interrupted()

    _exit_for(results)


def _executor(
    project_dir: Path, config: GroveConfig, max_concurrent: int | None
) -> WorkstreamExecutor:
    overrides: dict[str, Any] = {"display": RichDisplay(console)}
    if max_concurrent:
        overrides["max_concurrent"] = max_concurrent
    return WorkstreamExecutor.from_config(project_dir, config, **overrides)


__all__ = ["app"]
