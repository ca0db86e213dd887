"""
Workstream state store.

Persists the latest WorkstreamState for each slug. This is a
last-writer-wins record: each write replaces the whole file, and the
executor owns all transition logic. Only the task running a slug writes
its state, so atomic file replacement is the only protection needed.

Example:
    >>> store = WorkstreamStateStore(project_dir)
    >>> store.write("fix-login", WorkstreamStatus.ACTIVE, started_at="2026-01-01T00:00:00Z")
    >>> store.read("fix-login").status
    <WorkstreamStatus.ACTIVE: 'active'>
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import WorkstreamState, WorkstreamStatus

logger = logging.getLogger(__name__)


class WorkstreamStateStore:
    """Reads and writes .grove/workstreams/<slug>/state.json files."""

    STATE_DIR = ".grove/workstreams"
    STATE_FILE = "state.json"

    def __init__(self, project_dir: Path) -> None:
        """
        Initialize the state store.

        Args:
            project_dir: Project root directory
        """
        self.project_dir = project_dir
        self.state_dir = project_dir / self.STATE_DIR

    def state_path(self, slug: str) -> Path:
        """Get the state file path for a slug."""
        return self.state_dir / slug / self.STATE_FILE

    def write(
        self,
        slug: str,
        status: WorkstreamStatus | str,
        **extra_fields: Any,
    ) -> WorkstreamState:
        """
        Persist the latest status for a slug.

        Args:
            slug: Workstream identifier
            status: New status
            **extra_fields: Additional fields stored with the status

        Returns:
            The state that was written
        """
        state = WorkstreamState(
            slug=slug,
            status=WorkstreamStatus(status),
            updated_at=datetime.now(timezone.utc),
            **extra_fields,
        )

        path = self.state_path(slug)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".json.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_file(), f, indent=2)
                f.write("\n")
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        logger.debug("Workstream %s -> %s", slug, state.status.value)
        return state

    def read(self, slug: str) -> WorkstreamState | None:
        """
        Read the current state for a slug.

        Returns:
            WorkstreamState if a valid state file exists, None otherwise
        """
        path = self.state_path(slug)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text())
            return WorkstreamState(slug=slug, **data)
        except (json.JSONDecodeError, OSError, TypeError, ValidationError) as e:
            logger.warning("Ignoring unreadable state for %s: %s", slug, e)
            return None

    def list(self) -> list[WorkstreamState]:
        """Return every readable state, most recently updated first."""
        if not self.state_dir.is_dir():
            return []

        states = []
        for child in self.state_dir.iterdir():
            if child.is_dir():
                state = self.read(child.name)
                if state is not None:
                    states.append(state)
        return sorted(states, key=lambda s: (s.updated_at, s.slug), reverse=True)

    def is_stalled(self, slug: str, threshold_seconds: int = 3600) -> bool:
        """
        Check whether an active workstream has stopped reporting.

        Args:
            slug: Workstream identifier
            threshold_seconds: Age after which an active state counts as stalled

        Returns:
            True if the state is active and older than the threshold
        """
        state = self.read(slug)
        if state is None or state.status != WorkstreamStatus.ACTIVE:
            return False

        updated = state.updated_at
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - updated).total_seconds()
        return age > threshold_seconds
