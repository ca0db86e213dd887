"""
Runner interface for workstream execution.

The executor never does the work itself: it asks a runner factory for a
runner bound to a worktree and calls ``run()``. Anything with that shape
works, which keeps executor tests deterministic.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class RunnerError(Exception):
    """Raised when a runner cannot be started."""

    pass


class Runner(Protocol):
    """Protocol for objects that perform a workstream's work."""

    def run(self) -> Any:
        """
        Perform the work.

        Returns:
            A mapping (or object) with at least a ``status`` of
            "completed" or "failed". May raise instead of returning.
        """
        ...


RunnerFactory = Callable[[Path, str, Mapping[str, Any]], Runner]


class CommandRunner:
    """
    Runs a command in the workstream's worktree.

    The command is taken from ``options["command"]`` as an argv list and
    executed with the worktree as the working directory.

    Example:
        >>> runner = CommandRunner(path, "execute", {"command": ["make", "test"]})
        >>> runner.run()
        {'status': 'completed', 'exit_code': 0}
    """

    def __init__(self, path: Path, mode: str, options: Mapping[str, Any]):
        self.path = path
        self.mode = mode
        self.options = options

    def build_command(self) -> list[str]:
        command = self.options.get("command")
        if not command:
            raise RunnerError("No command configured for workstream execution")
        if isinstance(command, str):
            return [command]
        return [str(part) for part in command]

    def run(self) -> dict[str, Any]:
        cmd = self.build_command()
        logger.debug("Running %s in %s (mode=%s)", cmd, self.path, self.mode)

        result = subprocess.run(
            cmd,
            cwd=self.path,
            capture_output=True,
            text=True,
            timeout=self.options.get("timeout"),
        )

        status = "completed" if result.returncode == 0 else "failed"
        outcome: dict[str, Any] = {"status": status, "exit_code": result.returncode}
        if result.returncode != 0:
            outcome["stderr"] = result.stderr
        return outcome


def default_runner_factory(path: Path, mode: str, options: Mapping[str, Any]) -> Runner:
    """Build a CommandRunner; the default factory for WorkstreamExecutor."""
    return CommandRunner(path, mode, options)
