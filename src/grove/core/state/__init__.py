"""
Durable per-workstream lifecycle state.

This module provides the state model and the last-writer-wins JSON store
the executor uses to record pending/active/completed/failed transitions.
"""

from .models import WorkstreamState, WorkstreamStatus
from .store import WorkstreamStateStore

__all__ = [
    "WorkstreamState",
    "WorkstreamStateStore",
    "WorkstreamStatus",
]
