"""
Git worktree manager implementation.

This module provides the WorktreeBackend protocol and the GitWorktreeManager
that creates, lists, and removes isolated git worktrees for workstreams.
Every worktree is recorded in the project's registry, which is the source
of truth; the filesystem may lag behind it and is reconciled on access.
"""

from __future__ import annotations

import builtins
import logging
import re
import shutil
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from grove.core.state import WorkstreamStateStore, WorkstreamStatus
from grove.core.worktree.errors import (
    InvalidSlugError,
    NotInGitRepoError,
    WorktreeError,
    WorktreeExistsError,
    WorktreeNotFoundError,
)
from grove.core.worktree.models import WorktreeEntry
from grove.core.worktree.registry import JsonWorktreeRegistry, WorktreeRegistry

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

DEFAULT_BRANCH_NAMESPACE = "grove"
DEFAULT_WORKTREE_DIR = ".worktrees"


@runtime_checkable
class WorktreeBackend(Protocol):
    """
    Capability interface shared by the real and fake worktree managers.

    The executor depends only on this protocol, so tests can inject the
    filesystem-only FakeWorktreeManager instead of touching git.
    """

    project_dir: Path

    def create(
        self,
        slug: str,
        branch: str | None = None,
        base_branch: str | None = None,
        task: str | None = None,
    ) -> WorktreeEntry:
        """Create and register a worktree for ``slug``."""
        ...

    def remove(self, slug: str, delete_branch: bool = False) -> None:
        """Remove the worktree for ``slug`` and unregister it."""
        ...

    def list(self) -> list[WorktreeEntry]:
        """Return all registered worktrees."""
        ...

    def exists(self, slug: str) -> bool:
        """Check registry membership for ``slug``."""
        ...

    def info(self, slug: str) -> WorktreeEntry | None:
        """Return the entry for ``slug`` or None."""
        ...

    def find_by_branch(self, branch: str) -> WorktreeEntry | None:
        """Return the entry whose branch matches ``branch`` or None."""
        ...

    def prune(self) -> list[str]:
        """Unregister worktrees whose directories are gone."""
        ...


class BaseWorktreeManager(ABC):
    """
    Registry-backed worktree bookkeeping shared by all backends.

    Subclasses supply the backend-specific pieces: ``_ensure_ready``,
    ``_checkout``, ``_teardown``, ``_discard_stale`` and ``_prune_backend``.
    """

    MARKER_DIR = ".grove"

    def __init__(
        self,
        project_dir: Path | None = None,
        registry: WorktreeRegistry | None = None,
        state_store: WorkstreamStateStore | None = None,
        branch_namespace: str = DEFAULT_BRANCH_NAMESPACE,
        worktree_dir: str = DEFAULT_WORKTREE_DIR,
    ) -> None:
        """
        Initialize the manager.

        Args:
            project_dir: Project root directory (defaults to current directory)
            registry: Registry store (defaults to .grove/worktrees.json)
            state_store: Workstream state store used to record tasks
            branch_namespace: Prefix for default branch names
            worktree_dir: Directory under the project root holding worktrees
        """
        self.project_dir = (project_dir or Path.cwd()).resolve()
        self.registry: WorktreeRegistry = (
            registry if registry is not None else JsonWorktreeRegistry(self.project_dir)
        )
        self.state_store = (
            state_store if state_store is not None else WorkstreamStateStore(self.project_dir)
        )
        self.branch_namespace = branch_namespace
        self.worktree_base = self.project_dir / worktree_dir

    def path_for(self, slug: str) -> Path:
        """Worktree path for a slug: <project>/<worktree_dir>/<slug>."""
        return self.worktree_base / slug

    def default_branch(self, slug: str) -> str:
        """Default branch name for a slug: <namespace>/<slug>."""
        return f"{self.branch_namespace}/{slug}"

    def create(
        self,
        slug: str,
        branch: str | None = None,
        base_branch: str | None = None,
        task: str | None = None,
    ) -> WorktreeEntry:
        """
        Create a new worktree for a workstream.

        A registered slug whose directory has vanished is treated as stale
        and recreated rather than rejected.

        Args:
            slug: Workstream identifier (used for the directory name)
            branch: Branch name (defaults to <namespace>/<slug>)
            base_branch: Start point for a brand new branch (defaults to HEAD)
            task: Optional task description recorded as pending state

        Returns:
            The registered WorktreeEntry

        Raises:
            InvalidSlugError: If the slug is not a safe directory name
            NotInGitRepoError: If the project is not a git checkout
            WorktreeExistsError: If the slug is already live
            WorktreeError: If the backend fails to create the worktree
        """
        if not SLUG_PATTERN.match(slug):
            raise InvalidSlugError(f"Invalid workstream slug: {slug!r}")

        self._ensure_ready()

        branch = branch or self.default_branch(slug)
        worktree_path = self.path_for(slug)

        with self.registry.lock():
            existing = self.registry.get(slug)
            if existing is not None:
                if existing.path.is_dir():
                    raise WorktreeExistsError(f"Worktree already exists at: {existing.path}")
                logger.info("Recreating stale worktree %s (missing %s)", slug, existing.path)
                self._discard_stale(existing)

            if worktree_path.exists():
                raise WorktreeExistsError(f"Worktree directory already exists at: {worktree_path}")

            self.worktree_base.mkdir(parents=True, exist_ok=True)
            self._checkout(worktree_path, branch, base_branch)
            (worktree_path / self.MARKER_DIR).mkdir(parents=True, exist_ok=True)

            entry = WorktreeEntry(
                slug=slug,
                path=worktree_path,
                branch=branch,
                created_at=datetime.now(timezone.utc),
            )
            self.registry.put(entry)

        logger.info("Created worktree %s at %s on %s", slug, worktree_path, branch)

        if task is not None:
            self.state_store.write(slug, WorkstreamStatus.PENDING, task=task)

        return entry.with_activity()

    def remove(self, slug: str, delete_branch: bool = False) -> None:
        """
        Remove a worktree and optionally its branch.

        Safe to call when the directory was already deleted out-of-band.

        Raises:
            WorktreeNotFoundError: If the slug is not registered
        """
        with self.registry.lock():
            entry = self.registry.get(slug)
            if entry is None:
                raise WorktreeNotFoundError(f"Worktree '{slug}' not found")

            self._teardown(entry, delete_branch)
            self.registry.delete(slug)

        logger.info("Removed worktree %s", slug)

    def list(self) -> builtins.list[WorktreeEntry]:
        entries = [entry.with_activity() for entry in self.registry.load().values()]
        return sorted(entries, key=lambda e: (e.created_at, e.slug))

    def exists(self, slug: str) -> bool:
        return self.registry.get(slug) is not None

    def info(self, slug: str) -> WorktreeEntry | None:
        entry = self.registry.get(slug)
        return entry.with_activity() if entry is not None else None

    def find_by_branch(self, branch: str) -> WorktreeEntry | None:
        """
        Find a worktree by branch name.

        The returned entry's ``active`` flag is False when the directory was
        deleted but the registration remains.
        """
        if branch.startswith("refs/heads/"):
            branch = branch[len("refs/heads/") :]

        for entry in self.registry.load().values():
            if entry.branch == branch:
                return entry.with_activity()
        return None

    def prune(self) -> builtins.list[str]:
        """
        Unregister worktrees whose directories no longer exist.

        Returns:
            Slugs that were unregistered
        """
        removed: builtins.list[str] = []
        with self.registry.lock():
            self._prune_backend()
            for slug, entry in self.registry.load().items():
                if not entry.path.is_dir():
                    self.registry.delete(slug)
                    removed.append(slug)

        if removed:
            logger.info("Pruned stale worktrees: %s", ", ".join(removed))
        return removed

    @abstractmethod
    def _ensure_ready(self) -> None:
        """Raise NotInGitRepoError if the backend cannot host worktrees."""
        ...

    @abstractmethod
    def _checkout(self, path: Path, branch: str, base_branch: str | None) -> None:
        """Materialize ``branch`` at ``path``."""
        ...

    @abstractmethod
    def _teardown(self, entry: WorktreeEntry, delete_branch: bool) -> None:
        """Remove the worktree directory and optionally its branch."""
        ...

    def _discard_stale(self, entry: WorktreeEntry) -> None:
        pass

    def _prune_backend(self) -> None:
        pass


class GitWorktreeManager(BaseWorktreeManager):
    """
    Manages git worktrees for parallel workstreams.

    Branch resolution when creating a worktree, in order:

    1. an existing local branch is checked out as-is;
    2. a branch that only exists as ``origin/<branch>`` gets a local
       tracking branch, so remote-only PR content is used instead of HEAD;
    3. otherwise a new branch is created from ``base_branch`` or HEAD.

    Example:
        >>> manager = GitWorktreeManager(project_dir)
        >>> entry = manager.create("fix-login")
        >>> print(f"Created worktree at: {entry.path}")
        >>> manager.remove("fix-login", delete_branch=True)
    """

    REMOTE = "origin"

    def __init__(
        self,
        project_dir: Path | None = None,
        registry: WorktreeRegistry | None = None,
        state_store: WorkstreamStateStore | None = None,
        branch_namespace: str = DEFAULT_BRANCH_NAMESPACE,
        worktree_dir: str = DEFAULT_WORKTREE_DIR,
    ) -> None:
        super().__init__(
            project_dir,
            registry=registry,
            state_store=state_store,
            branch_namespace=branch_namespace,
            worktree_dir=worktree_dir,
        )
        self._repo: Repo | None = None

    @property
    def repo(self) -> Repo:
        """
        The project's git repository, opened on first use.

        Raises:
            NotInGitRepoError: If the project is not inside a git checkout
        """
        if self._repo is None:
            try:
                self._repo = Repo(self.project_dir, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise NotInGitRepoError(f"Not a git repository: {self.project_dir}") from e
        return self._repo

    def local_branch_exists(self, branch: str) -> bool:
        return self._ref_exists(f"refs/heads/{branch}")

    def remote_branch_exists(self, branch: str) -> bool:
        return self._ref_exists(f"refs/remotes/{self.REMOTE}/{branch}")

    def _ref_exists(self, ref: str) -> bool:
        try:
            self.repo.git.show_ref("--verify", "--quiet", ref)
            return True
        except GitCommandError:
            return False

    def _ensure_ready(self) -> None:
        self.repo  # raises NotInGitRepoError

    def _worktree_add_args(
        self, source: str, path: Path, branch: str, base_branch: str | None
    ) -> builtins.list[str]:
        """Build `git worktree add` arguments for a resolution source."""
        if source == "local":
            return ["add", str(path), branch]
        if source == "remote":
            return ["add", "--track", "-b", branch, str(path), f"{self.REMOTE}/{branch}"]

        args = ["add", "-b", branch, str(path)]
        if base_branch:
            args.append(base_branch)
        return args

    def _checkout(self, path: Path, branch: str, base_branch: str | None) -> None:
        if self.local_branch_exists(branch):
            source = "local"
        elif self.remote_branch_exists(branch):
            source = "remote"
        else:
            source = "new"

        prune_attempted = False
        while True:
            args = self._worktree_add_args(source, path, branch, base_branch)
            logger.debug("git worktree %s", " ".join(args))
            try:
                self.repo.git.worktree(*args)
                return
            except GitCommandError as e:
                error_output = _command_output(e)

                if source == "new" and _branch_already_exists(error_output, branch):
                    logger.debug("Branch %s appeared concurrently; checking it out", branch)
                    source = "local"
                    continue

                if not prune_attempted and _missing_registered_worktree(error_output):
                    logger.debug("Pruning missing registered worktree at %s", path)
                    self.repo.git.worktree("prune")
                    prune_attempted = True
                    continue

                raise WorktreeError(f"Failed to create worktree: {error_output}") from e

    def _teardown(self, entry: WorktreeEntry, delete_branch: bool) -> None:
        if entry.path.exists():
            try:
                self.repo.git.worktree("remove", "--force", str(entry.path))
            except GitCommandError as e:
                logger.warning(
                    "git worktree remove failed for %s, deleting directory: %s",
                    entry.path,
                    _command_output(e),
                )
                shutil.rmtree(entry.path, ignore_errors=True)
                self._discard_stale(entry)
        else:
            self._discard_stale(entry)

        if delete_branch:
            try:
                self.repo.git.branch("-D", entry.branch)
            except GitCommandError as e:
                logger.warning("Could not delete branch %s: %s", entry.branch, _command_output(e))

    def _discard_stale(self, entry: WorktreeEntry) -> None:
        try:
            self.repo.git.worktree("prune")
        except GitCommandError as e:
            logger.warning("git worktree prune failed: %s", _command_output(e))

    def _prune_backend(self) -> None:
        try:
            self.repo.git.worktree("prune")
        except GitCommandError as e:
            raise WorktreeError(f"Failed to prune worktrees: {_command_output(e)}") from e


def _command_output(error: GitCommandError) -> str:
    """Prefer stderr, fall back to stdout, for a failed git command."""
    stderr = str(error.stderr or "").strip()
    stdout = str(error.stdout or "").strip()
    return stderr or stdout or str(error)


def _branch_already_exists(error_output: str, branch: str) -> bool:
    normalized = error_output.lower()
    name = branch.lower()
    return (
        f"branch '{name}' already exists" in normalized
        or f"a branch named '{name}' already exists" in normalized
    )


def _missing_registered_worktree(error_output: str) -> bool:
    return "missing but already registered worktree" in error_output.lower()
