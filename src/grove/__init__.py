"""
Grove - Parallel workstreams in isolated git worktrees.

Runs several independent units of work concurrently, each in its own
git worktree, with bounded parallelism and crash-safe state tracking.
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from grove.core.config.models import GroveConfig
from grove.core.state.models import WorkstreamState, WorkstreamStatus
from grove.core.worktree.models import WorktreeEntry

__all__ = ["GroveConfig", "WorkstreamState", "WorkstreamStatus", "WorktreeEntry", "__version__"]
