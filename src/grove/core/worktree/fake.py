"""
Filesystem-only worktree manager.

FakeWorktreeManager follows the same registry rules as GitWorktreeManager
(uniqueness, self-healing, idempotent removal) but creates plain
directories instead of git worktrees. Branches are tracked in memory so
the resolution policy can still be asserted in fast tests.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from grove.core.state import WorkstreamStateStore
from grove.core.worktree.errors import NotInGitRepoError
from grove.core.worktree.manager import (
    DEFAULT_BRANCH_NAMESPACE,
    DEFAULT_WORKTREE_DIR,
    BaseWorktreeManager,
)
from grove.core.worktree.models import WorktreeEntry
from grove.core.worktree.registry import InMemoryWorktreeRegistry, WorktreeRegistry


class FakeWorktreeManager(BaseWorktreeManager):
    """
    Worktree manager backed by plain directories.

    Attributes:
        local_branches: Branch names that exist "locally"
        remote_branches: Branch names that exist only on "origin"
        checkouts: Branch name -> start point used when it was checked out
    """

    def __init__(
        self,
        project_dir: Path,
        registry: WorktreeRegistry | None = None,
        state_store: WorkstreamStateStore | None = None,
        branch_namespace: str = DEFAULT_BRANCH_NAMESPACE,
        worktree_dir: str = DEFAULT_WORKTREE_DIR,
        local_branches: set[str] | None = None,
        remote_branches: set[str] | None = None,
        in_git_repo: bool = True,
    ) -> None:
        super().__init__(
            project_dir,
            registry=registry if registry is not None else InMemoryWorktreeRegistry(),
            state_store=state_store,
            branch_namespace=branch_namespace,
            worktree_dir=worktree_dir,
        )
        self.local_branches: set[str] = set(local_branches or ())
        self.remote_branches: set[str] = set(remote_branches or ())
        self.checkouts: dict[str, str] = {}
        self.in_git_repo = in_git_repo

    def _ensure_ready(self) -> None:
        if not self.in_git_repo:
            raise NotInGitRepoError(f"Not a git repository: {self.project_dir}")

    def _checkout(self, path: Path, branch: str, base_branch: str | None) -> None:
        if branch in self.local_branches:
            self.checkouts.setdefault(branch, branch)
        elif branch in self.remote_branches:
            self.local_branches.add(branch)
            self.checkouts[branch] = f"origin/{branch}"
        else:
            self.local_branches.add(branch)
            self.checkouts[branch] = base_branch or "HEAD"

        path.mkdir(parents=True)

    def _teardown(self, entry: WorktreeEntry, delete_branch: bool) -> None:
        shutil.rmtree(entry.path, ignore_errors=True)
        if delete_branch:
            self.local_branches.discard(entry.branch)
            self.checkouts.pop(entry.branch, None)
