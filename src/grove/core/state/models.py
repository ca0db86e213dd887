"""
Workstream state models.

These models represent the durable lifecycle record of a workstream and
are serialized to .grove/workstreams/<slug>/state.json.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkstreamStatus(str, Enum):
    """Lifecycle status of a workstream run."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkstreamState(BaseModel):
    """
    Latest recorded state of one workstream.

    Besides ``status`` and ``updated_at`` the record carries whatever extra
    fields the writer supplied (``started_at``, ``task``, ``exit_code``...).
    """

    model_config = ConfigDict(extra="allow")

    slug: str = Field(..., description="Workstream identifier")
    status: WorkstreamStatus = Field(..., description="Current lifecycle status")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the status was last written",
    )

    @field_validator("updated_at", mode="before")
    @classmethod
    def parse_updated_at(cls, v: Any) -> Any:
        if isinstance(v, str):
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        return v

    @property
    def extra_fields(self) -> dict[str, Any]:
        """Fields stored alongside status/updated_at."""
        return dict(self.model_extra or {})

    def to_file(self) -> dict[str, Any]:
        """Serialize to the on-disk record (slug is implied by the path)."""
        data = self.model_dump(mode="json", exclude={"slug"})
        data["updated_at"] = self.updated_at.astimezone(timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.%fZ"
        )
        return data
