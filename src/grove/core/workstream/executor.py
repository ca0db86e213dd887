"""
Parallel workstream execution.

This module provides the WorkstreamExecutor class for running multiple
workstreams concurrently on a bounded thread pool, each in its own
worktree, with per-workstream failure isolation and state tracking.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from rich.console import Console

from grove.core.config.models import GroveConfig
from grove.core.state import WorkstreamStateStore, WorkstreamStatus
from grove.core.workstream.runner import RunnerFactory, default_runner_factory
from grove.core.worktree import GitWorktreeManager, WorktreeBackend, WorktreeEntry

logger = logging.getLogger(__name__)

# Stable marker carried by every failed result's error message
PROCESS_EXIT_MARKER = "Process exited with code 1"

DEFAULT_MODE = "execute"
DEFAULT_MAX_CONCURRENT = 3


class WorkstreamValidationError(ValueError):
    """Raised when a batch names workstreams that are not registered."""

    pass


class ResultStatus(str, Enum):
    """Outcome of one workstream execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class WorkstreamResult:
    """
    Result from executing one workstream.

    Attributes:
        slug: Workstream that was executed
        status: completed, failed (runner failed or raised) or error
            (never started, e.g. unknown slug)
        exit_code: 0 when completed, 1 otherwise
        started_at: When execution started
        completed_at: When execution finished
        error: Error message if not completed
        worktree_path: Worktree the runner was pointed at
    """

    slug: str
    status: ResultStatus
    exit_code: int
    started_at: datetime
    completed_at: datetime
    error: str | None = None
    worktree_path: Path | None = None

    @property
    def duration(self) -> float:
        """Seconds between start and completion."""
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def success(self) -> bool:
        return self.status == ResultStatus.COMPLETED


@dataclass
class ExecutionSummary:
    """
    Aggregate view of a batch of workstream results.

    Attributes:
        total: Number of results
        completed: Results with status completed
        failed: Results with status failed or error
        total_duration: Sum of individual durations
        failures: The results that did not complete
    """

    total: int = 0
    completed: int = 0
    failed: int = 0
    total_duration: float = 0.0
    failures: list[WorkstreamResult] = field(default_factory=list)

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.total if self.total else 0.0


def summarize(results: Iterable[WorkstreamResult]) -> ExecutionSummary:
    """Count and time a batch of results."""
    summary = ExecutionSummary()
    for result in results:
        summary.total += 1
        summary.total_duration += result.duration
        if result.success:
            summary.completed += 1
        else:
            summary.failed += 1
            summary.failures.append(result)
    return summary


def format_duration(seconds: float) -> str:
    """
    Format a duration for humans.

    Examples:
        >>> format_duration(45.7)
        '45.7s'
        >>> format_duration(125.3)
        '2m 5s'
        >>> format_duration(7325)
        '2h 2m'
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


class DisplaySink(Protocol):
    """Protocol for human-readable progress output."""

    def display(self, message: str, style: str = "info") -> None:
        """
        Show one line of output.

        Args:
            message: Formatted text
            style: One of info, success, warning, error, muted
        """
        ...


class _NoOpDisplay:
    """Default display that discards output."""

    def display(self, message: str, style: str = "info") -> None:
        """No-op display handler."""
        pass


class RichDisplay:
    """Display sink that prints through a rich Console."""

    STYLES = {
        "info": None,
        "success": "green",
        "warning": "yellow",
        "error": "red",
        "muted": "dim",
    }

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def display(self, message: str, style: str = "info") -> None:
        self.console.print(message, style=self.STYLES.get(style), markup=False, highlight=False)


class WorkstreamExecutor:
    """
    Executes workstreams in parallel on a fixed-size worker pool.

    Each workstream runs in its own worktree through a runner produced by
    ``runner_factory(path, mode, options)``. Runner failures and exceptions
    are captured in the WorkstreamResult and never reach the caller.

    Example:
        >>> executor = WorkstreamExecutor(project_dir, max_concurrent=2)
        >>> results = executor.execute_parallel(["fix-login", "add-search"])
        >>> print(sum(r.success for r in results), "completed")
    """

    def __init__(
        self,
        project_dir: Path,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        runner_factory: RunnerFactory | None = None,
        worktree_manager: WorktreeBackend | None = None,
        state_store: WorkstreamStateStore | None = None,
        display: DisplaySink | None = None,
    ):
        """
        Initialize the executor.

        Args:
            project_dir: Root project directory
            max_concurrent: Maximum workstreams running at once
            runner_factory: Builds the runner for a worktree
            worktree_manager: Worktree backend used to resolve slugs
            state_store: Store receiving lifecycle transitions
            display: Sink for progress and summary lines
        """
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")

        self.project_dir = project_dir
        self.max_concurrent = max_concurrent
        self.runner_factory: RunnerFactory = runner_factory or default_runner_factory
        self.worktree_manager: WorktreeBackend = worktree_manager or GitWorktreeManager(
            project_dir
        )
        self.state_store = state_store or WorkstreamStateStore(project_dir)
        self._display: DisplaySink = display or _NoOpDisplay()
        self._lock = threading.Lock()
        self._results: dict[str, WorkstreamResult] = {}
        self._start_times: dict[str, datetime] = {}
        self._in_flight: set[str] = set()

    @classmethod
    def from_config(
        cls,
        project_dir: Path,
        config: GroveConfig,
        **kwargs: Any,
    ) -> WorkstreamExecutor:
        """Build an executor using the workstreams section of a config."""
        settings = config.workstreams
        kwargs.setdefault("max_concurrent", settings.max_concurrent)
        if "worktree_manager" not in kwargs:
            kwargs["worktree_manager"] = GitWorktreeManager(
                project_dir,
                branch_namespace=settings.branch_namespace,
                worktree_dir=settings.worktree_dir,
            )
        return cls(project_dir, **kwargs)

    @property
    def results(self) -> dict[str, WorkstreamResult]:
        """Snapshot of the latest result per slug."""
        with self._lock:
            return dict(self._results)

    @property
    def start_times(self) -> dict[str, datetime]:
        """Snapshot of the latest start time per slug."""
        with self._lock:
            return dict(self._start_times)

    def execute_parallel(
        self,
        slugs: Iterable[str],
        options: Mapping[str, Any] | None = None,
    ) -> list[WorkstreamResult]:
        """
        Execute workstreams in parallel.

        Args:
            slugs: Workstreams to execute (duplicates run once)
            options: Execution options passed to the runner factory

        Returns:
            One result per slug, in completion order

        Raises:
            WorkstreamValidationError: If any slug is not registered; nothing
                is scheduled in that case
        """
        slugs = list(dict.fromkeys(slugs))
        self._validate_workstreams(slugs)

        if not slugs:
            return []

        self._display.display(
            f"🚀 Starting parallel execution of {len(slugs)} workstreams "
            f"(max {self.max_concurrent} concurrent)"
        )

        results: list[WorkstreamResult] = []
        max_workers = min(self.max_concurrent, len(slugs))

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="grove-ws") as pool:
            futures: dict[Future[WorkstreamResult], str] = {}
            for slug in slugs:
                futures[pool.submit(self.execute_workstream, slug, options)] = slug

            for future in as_completed(futures):
                slug = futures[future]
                try:
                    results.append(future.result())
                except (Exception, SystemExit) as e:
                    logger.exception("Workstream %s escaped its task", slug)
                    now = datetime.now(timezone.utc)
                    results.append(
                        WorkstreamResult(
                            slug=slug,
                            status=ResultStatus.FAILED,
                            exit_code=1,
                            started_at=now,
                            completed_at=now,
                            error=f"{PROCESS_EXIT_MARKER}: {e}",
                        )
                    )

        self._display_summary(results)
        return results

    def execute_all(self, options: Mapping[str, Any] | None = None) -> list[WorkstreamResult]:
        """
        Execute every workstream whose worktree directory currently exists.

        Returns:
            Results as for execute_parallel; empty if nothing is active
        """
        active = [entry.slug for entry in self.worktree_manager.list() if entry.active]

        if not active:
            self._display.display("⚠️  No active workstreams found", style="warning")
            return []

        return self.execute_parallel(active, options)

    def execute_workstream(
        self,
        slug: str,
        options: Mapping[str, Any] | None = None,
    ) -> WorkstreamResult:
        """
        Execute a single workstream.

        Never raises: unknown slugs produce an ``error`` result without
        touching state, runner failures produce a ``failed`` result.

        Args:
            slug: Workstream to execute
            options: Execution options; ``mode`` selects the runner mode

        Returns:
            WorkstreamResult for this execution
        """
        options = dict(options or {})

        entry = self.worktree_manager.info(slug)
        if entry is None:
            return self._error_result(slug, f"Workstream '{slug}' not found")
        if not entry.active:
            return self._error_result(
                slug, f"Worktree for workstream '{slug}' not found at {entry.path}"
            )

        with self._lock:
            if slug in self._in_flight:
                return self._error_result(slug, f"Workstream '{slug}' is already running")
            self._in_flight.add(slug)

        try:
            return self._run(entry, options)
        finally:
            with self._lock:
                self._in_flight.discard(slug)

    def _run(self, entry: WorktreeEntry, options: dict[str, Any]) -> WorkstreamResult:
        slug = entry.slug
        worktree_path = entry.path
        mode = str(options.get("mode", DEFAULT_MODE))

        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        with self._lock:
            self._start_times[slug] = started_at

        self._display.display(f"▶️  [{slug}] Starting execution in {worktree_path}")

        status, exit_code = ResultStatus.FAILED, 1
        error: str | None = PROCESS_EXIT_MARKER
        try:
            self._write_state(slug, WorkstreamStatus.ACTIVE, started_at=_iso(started_at))
            runner = self.runner_factory(worktree_path, mode, options)
            outcome = runner.run()
            reported = _outcome_status(outcome)
            if reported == ResultStatus.COMPLETED.value:
                status, exit_code, error = ResultStatus.COMPLETED, 0, None
            else:
                logger.info("Workstream %s reported status %r", slug, reported)
                error = _failure_message(outcome)
        except (Exception, SystemExit) as e:
            logger.warning("Workstream %s raised %s: %s", slug, type(e).__name__, e)
            logger.debug("Traceback for workstream %s", slug, exc_info=True)
            error = f"{PROCESS_EXIT_MARKER}: {type(e).__name__}: {e}"
        finally:
            completed_at = started_at + timedelta(seconds=time.monotonic() - started)
            final_fields: dict[str, Any] = {
                "started_at": _iso(started_at),
                "completed_at": _iso(completed_at),
                "exit_code": exit_code,
            }
            if error:
                final_fields["error"] = error
            self._write_state(slug, WorkstreamStatus(status.value), **final_fields)

        result = WorkstreamResult(
            slug=slug,
            status=status,
            exit_code=exit_code,
            started_at=started_at,
            completed_at=completed_at,
            error=error,
            worktree_path=worktree_path,
        )

        with self._lock:
            self._results[slug] = result

        if result.success:
            self._display.display(
                f"✅ [{slug}] Completed in {format_duration(result.duration)}", style="success"
            )
        else:
            self._display.display(
                f"❌ [{slug}] Failed in {format_duration(result.duration)}", style="error"
            )

        return result

    def _error_result(self, slug: str, message: str) -> WorkstreamResult:
        """Result for a workstream that never started."""
        now = datetime.now(timezone.utc)
        logger.info(message)
        return WorkstreamResult(
            slug=slug,
            status=ResultStatus.ERROR,
            exit_code=1,
            started_at=now,
            completed_at=now,
            error=message,
        )

    def _write_state(self, slug: str, status: WorkstreamStatus, **fields: Any) -> None:
        try:
            self.state_store.write(slug, status, **fields)
        except Exception as e:
            logger.warning("Could not record %s state for %s: %s", status.value, slug, e)

    def _validate_workstreams(self, slugs: list[str]) -> None:
        missing = [slug for slug in slugs if not self.worktree_manager.exists(slug)]
        if missing:
            raise WorkstreamValidationError(f"Workstreams not found: {', '.join(missing)}")

    def _display_summary(self, results: list[WorkstreamResult]) -> None:
        summary = summarize(results)

        self._display.display("=" * 60, style="muted")
        self._display.display("📊 Execution Summary")
        self._display.display(
            f"Total: {summary.total} | Completed: {summary.completed} | Failed: {summary.failed}"
        )
        self._display.display(
            f"Total Duration: {format_duration(summary.total_duration)} | "
            f"Average: {format_duration(summary.average_duration)}"
        )

        if summary.failures:
            self._display.display("❌ Failed Workstreams:", style="error")
            for result in summary.failures:
                self._display.display(f"  - {result.slug}: {result.error}", style="error")

        self._display.display("=" * 60, style="muted")


def _outcome_field(outcome: Any, name: str) -> Any:
    if isinstance(outcome, Mapping):
        return outcome.get(name)
    return getattr(outcome, name, None)


def _outcome_status(outcome: Any) -> str | None:
    """Extract the reported status from a runner's return value."""
    status = _outcome_field(outcome, "status")
    if isinstance(status, Enum):
        status = status.value
    return str(status) if status is not None else None


def _failure_message(outcome: Any, tail_chars: int = 200) -> str:
    """
    Build the error message for a runner that reported failure.

    The marker always comes first; the runner's own exit code and the
    last line of its stderr follow when it reported them.
    """
    exit_code = _outcome_field(outcome, "exit_code")
    stderr = _outcome_field(outcome, "stderr")
    tail = ""
    if stderr:
        lines = str(stderr).strip().splitlines()
        tail = lines[-1][-tail_chars:] if lines else ""

    message = PROCESS_EXIT_MARKER
    if exit_code is not None:
        message += f" (runner exit_code={exit_code})"
    if tail:
        message += f": {tail}"
    return message


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
