"""
Git worktree management for parallel workstreams.

This module provides worktree management for grove: each workstream gets
an isolated git worktree with its own branch, recorded in a per-project
registry so multiple workstreams can run concurrently without conflicts.

Example:
    >>> from grove.core.worktree import GitWorktreeManager
    >>> manager = GitWorktreeManager(project_dir)
    >>> entry = manager.create("fix-login", task="Fix the login redirect")
    >>> print(f"Workstream tree: {entry.path}")

    >>> from grove.core.worktree import FakeWorktreeManager
    >>> fake = FakeWorktreeManager(tmp_path, remote_branches={"pr-42"})
"""

from .errors import (
    InvalidSlugError,
    NotInGitRepoError,
    WorktreeError,
    WorktreeExistsError,
    WorktreeNotFoundError,
)
from .fake import FakeWorktreeManager
from .manager import BaseWorktreeManager, GitWorktreeManager, WorktreeBackend
from .models import WorktreeEntry
from .registry import InMemoryWorktreeRegistry, JsonWorktreeRegistry, WorktreeRegistry

__all__ = [
    "BaseWorktreeManager",
    "FakeWorktreeManager",
    "GitWorktreeManager",
    "InMemoryWorktreeRegistry",
    "InvalidSlugError",
    "JsonWorktreeRegistry",
    "NotInGitRepoError",
    "WorktreeBackend",
    "WorktreeEntry",
    "WorktreeError",
    "WorktreeExistsError",
    "WorktreeNotFoundError",
    "WorktreeRegistry",
]
