"""
Git status inspection for workstream worktrees.

Gathers the information an operator needs before deciding whether a
workstream can be removed: uncommitted changes, unpushed commits, and
whether the branch is behind its upstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from grove.core.worktree import WorktreeEntry

logger = logging.getLogger(__name__)


@dataclass
class WorkstreamGitStatus:
    """
    Git status of a workstream's worktree.

    Attributes:
        exists: Whether the worktree directory exists
        uncommitted_changes: Dirty tree or untracked files
        upstream_exists: Whether the branch tracks a remote branch
        unpushed_commits: Commits not on the upstream
        behind_upstream: Upstream commits not in the branch
        last_commit_date: Date of the HEAD commit
    """

    exists: bool
    uncommitted_changes: bool = False
    upstream_exists: bool = False
    unpushed_commits: bool = False
    behind_upstream: bool = False
    last_commit_date: datetime | None = None

    @property
    def has_risk(self) -> bool:
        """True if removing the worktree could lose work."""
        return self.uncommitted_changes or self.unpushed_commits


def inspect_workstream(entry: WorktreeEntry) -> WorkstreamGitStatus:
    """
    Inspect the git state of a workstream's worktree.

    Args:
        entry: Registered worktree

    Returns:
        WorkstreamGitStatus; only ``exists=False`` for a vanished tree
    """
    if not entry.path.is_dir():
        return WorkstreamGitStatus(exists=False)

    try:
        repo = Repo(entry.path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        logger.debug("Worktree %s is not a git checkout", entry.path)
        return WorkstreamGitStatus(exists=True)

    status = WorkstreamGitStatus(exists=True)
    status.uncommitted_changes = repo.is_dirty(untracked_files=True)

    try:
        status.last_commit_date = repo.head.commit.committed_datetime
    except ValueError:
        # Unborn branch
        return status

    if repo.head.is_detached:
        return status

    upstream = repo.active_branch.tracking_branch()
    if upstream is None or not upstream.is_valid():
        return status

    status.upstream_exists = True
    try:
        status.unpushed_commits = _has_commits(repo, f"{upstream.name}..HEAD")
        status.behind_upstream = _has_commits(repo, f"HEAD..{upstream.name}")
    except GitCommandError as e:
        logger.warning("Could not compare %s with %s: %s", entry.branch, upstream.name, e)

    return status


def _has_commits(repo: Repo, rev_range: str) -> bool:
    return next(repo.iter_commits(rev_range, max_count=1), None) is not None
