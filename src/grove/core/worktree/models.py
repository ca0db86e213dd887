"""
Worktree registry models.

Provides the Pydantic model for a registered worktree and the helpers used
to (de)serialize the registry file at .grove/worktrees.json.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Fields persisted per slug in the registry file
REGISTRY_FIELDS = ("path", "branch", "created_at")


class WorktreeEntry(BaseModel):
    """
    A registered worktree for one workstream.

    The registry is the source of truth for which slugs exist; ``active``
    is not persisted and is computed from the filesystem whenever an
    entry is read back through a manager.
    """

    slug: str = Field(..., description="Unique workstream identifier")
    path: Path = Field(..., description="Absolute path of the working tree")
    branch: str = Field(..., description="Branch checked out in the working tree")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the worktree was created",
    )
    active: bool = Field(
        default=False,
        description="Whether the working tree directory currently exists",
    )

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, v: Any) -> Any:
        """Accept ISO-8601 strings with a trailing Z."""
        if isinstance(v, str):
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        return v

    def with_activity(self) -> WorktreeEntry:
        """Return a copy with ``active`` refreshed from disk."""
        return self.model_copy(update={"active": self.path.is_dir()})

    def to_registry(self) -> dict[str, str]:
        """Serialize to the per-slug registry record."""
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return {
            "path": str(self.path),
            "branch": self.branch,
            "created_at": created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }

    @classmethod
    def from_registry(cls, slug: str, data: dict[str, Any]) -> WorktreeEntry:
        """Build an entry from a registry record keyed by ``slug``."""
        return cls.model_validate(
            {"slug": slug, **{k: data[k] for k in REGISTRY_FIELDS if k in data}}
        )
