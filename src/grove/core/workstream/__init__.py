"""
Workstream execution.

This module runs registered workstreams, each in its own worktree, on a
bounded worker pool and reports a result per workstream.

Example:
    >>> from grove.core.workstream import WorkstreamExecutor
    >>> executor = WorkstreamExecutor(project_dir, max_concurrent=3)
    >>> results = executor.execute_all({"command": ["make", "test"]})
"""

from .executor import (
    PROCESS_EXIT_MARKER,
    DisplaySink,
    ExecutionSummary,
    ResultStatus,
    RichDisplay,
    WorkstreamExecutor,
    WorkstreamResult,
    WorkstreamValidationError,
    format_duration,
    summarize,
)
from .git_status import WorkstreamGitStatus, inspect_workstream
from .runner import CommandRunner, Runner, RunnerError, RunnerFactory, default_runner_factory

__all__ = [
    "PROCESS_EXIT_MARKER",
    "CommandRunner",
    "DisplaySink",
    "ExecutionSummary",
    "ResultStatus",
    "RichDisplay",
    "Runner",
    "RunnerError",
    "RunnerFactory",
    "WorkstreamExecutor",
    "WorkstreamGitStatus",
    "WorkstreamResult",
    "WorkstreamValidationError",
    "default_runner_factory",
    "format_duration",
    "inspect_workstream",
    "summarize",
]
