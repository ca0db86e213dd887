"""
Worktree registry stores.

The registry maps workstream slugs to their worktree entries and is the
single source of truth for which workstreams exist. Writers are
serialized: the JSON store holds an in-process lock plus an exclusive
``flock`` on a sibling lock file for the whole read-modify-write.

Example:
    >>> registry = JsonWorktreeRegistry(project_dir)
    >>> with registry.lock():
    ...     if registry.get("fix-login") is None:
    ...         registry.put(entry)
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

from grove.core.worktree.models import WorktreeEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class WorktreeRegistry(Protocol):
    """Protocol for registry storage implementations."""

    def load(self) -> dict[str, WorktreeEntry]:
        """Return every registered entry keyed by slug."""
        ...

    def get(self, slug: str) -> WorktreeEntry | None:
        """Return the entry for ``slug`` or None."""
        ...

    def put(self, entry: WorktreeEntry) -> None:
        """Insert or replace the entry for ``entry.slug``."""
        ...

    def delete(self, slug: str) -> bool:
        """Remove ``slug``; returns whether it was registered."""
        ...

    def lock(self) -> Any:
        """Context manager giving exclusive, re-entrant write access."""
        ...


class JsonWorktreeRegistry:
    """
    Registry persisted as a JSON object in .grove/worktrees.json.

    File format::

        {"<slug>": {"path": "...", "branch": "...", "created_at": "...Z"}}
    """

    REGISTRY_FILE = ".grove/worktrees.json"
    LOCK_FILE = ".grove/worktrees.lock"

    def __init__(self, project_dir: Path) -> None:
        """
        Initialize the registry.

        Args:
            project_dir: Project root directory
        """
        self.project_dir = project_dir
        self._file_path = project_dir / self.REGISTRY_FILE
        self._lock_path = project_dir / self.LOCK_FILE
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._lock_file: IO[str] | None = None

    @property
    def file_path(self) -> Path:
        """Get the path to the registry file."""
        return self._file_path

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold exclusive access to the registry.

        Re-entrant within a thread; the file lock is taken only by the
        outermost holder so nested calls never self-deadlock.
        """
        with self._thread_lock:
            if self._depth == 0:
                self._lock_path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self._lock_path, "w")
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                self._lock_file = lock_file
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0 and self._lock_file is not None:
                    fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
                    self._lock_file.close()
                    self._lock_file = None

    def _read_raw(self) -> dict[str, Any]:
        """Read the registry file, treating a missing or corrupt file as empty."""
        if not self._file_path.exists():
            return {}

        try:
            data = json.loads(self._file_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable worktree registry %s: %s", self._file_path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed worktree registry %s", self._file_path)
            return {}
        return data

    def _write_raw(self, data: dict[str, Any]) -> None:
        """Write the registry atomically (temp file + replace)."""
        self._file_path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self._file_path.parent,
            prefix=".worktrees_",
            suffix=".json.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(temp_path, self._file_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        logger.debug("Wrote %d registry entries to %s", len(data), self._file_path)

    def load(self) -> dict[str, WorktreeEntry]:
        entries: dict[str, WorktreeEntry] = {}
        for slug, record in self._read_raw().items():
            if not isinstance(record, dict):
                continue
            try:
                entries[slug] = WorktreeEntry.from_registry(slug, record)
            except (KeyError, ValueError) as e:
                logger.warning("Skipping invalid registry entry %r: %s", slug, e)
        return entries

    def get(self, slug: str) -> WorktreeEntry | None:
        return self.load().get(slug)

    def put(self, entry: WorktreeEntry) -> None:
        with self.lock():
            data = self._read_raw()
            data[entry.slug] = entry.to_registry()
            self._write_raw(data)

    def delete(self, slug: str) -> bool:
        with self.lock():
            data = self._read_raw()
            if slug not in data:
                return False
            del data[slug]
            self._write_raw(data)
            return True


class InMemoryWorktreeRegistry:
    """Registry held in memory, for tests and the fake manager."""

    def __init__(self, entries: dict[str, WorktreeEntry] | None = None) -> None:
        self._entries: dict[str, WorktreeEntry] = dict(entries or {})
        self._lock = threading.RLock()

    @contextmanager
    def lock(self) -> Iterator[None]:
        with self._lock:
            yield

    def load(self) -> dict[str, WorktreeEntry]:
        with self._lock:
            return dict(self._entries)

    def get(self, slug: str) -> WorktreeEntry | None:
        with self._lock:
            return self._entries.get(slug)

    def put(self, entry: WorktreeEntry) -> None:
        with self._lock:
            self._entries[entry.slug] = entry.model_copy(update={"active": False})

    def delete(self, slug: str) -> bool:
        with self._lock:
            return self._entries.pop(slug, None) is not None
