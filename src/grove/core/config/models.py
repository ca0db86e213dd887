"""
Configuration data models for grove.

These models define the structure of .grove.json and
~/.config/grove/config.json files, with validation via Pydantic.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkstreamsConfig(BaseModel):
    """
    Settings for creating and executing workstreams.
    """
    max_concurrent: int = Field(
        default=3,
        ge=1,
        description="Maximum workstreams executing at the same time"
    )
    branch_namespace: str = Field(
        default="grove",
        min_length=1,
        description="Prefix for default branch names (<namespace>/<slug>)"
    )
    worktree_dir: str = Field(
        default=".worktrees",
        min_length=1,
        description="Directory under the project root holding worktrees"
    )
    default_mode: str = Field(
        default="execute",
        description="Runner mode used when none is given"
    )
    command: Optional[list[str]] = Field(
        default=None,
        description="Command run in each worktree by the default runner"
    )

    @field_validator("branch_namespace")
    @classmethod
    def strip_namespace_slashes(cls, v: str) -> str:
        """Normalize 'grove/' to 'grove'."""
        stripped = v.strip("/")
        if not stripped:
            raise ValueError("branch_namespace must not be empty")
        return stripped


class GroveConfig(BaseModel):
    """
    Top-level grove configuration.

    Unknown keys are kept so newer config files still load.
    """

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
    )

    workstreams: WorkstreamsConfig = Field(default_factory=WorkstreamsConfig)
