"""
Pytest configuration and shared fixtures.

Provides temporary git repositories, fake worktree managers, state stores,
and isolation of user configuration for the test suite.
"""

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from grove.core.config import clear_cache
from grove.core.state import WorkstreamStateStore
from grove.core.worktree import FakeWorktreeManager


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    _git(path, "init", "-q")
    _git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(path, "config", "user.email", "test@example.com")
    _git(path, "config", "user.name", "Test User")
    _git(path, "config", "commit.gpgsign", "false")
    return path


# ==============================================================================
# Environment Isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config and GROVE_* env vars out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("GROVE_MAX_CONCURRENT", raising=False)
    monkeypatch.delenv("GROVE_BRANCH_NAMESPACE", raising=False)
    clear_cache()
    yield
    clear_cache()


# ==============================================================================
# Git Fixtures
# ==============================================================================


@pytest.fixture
def run_git() -> Callable[..., str]:
    """Run a git command in a directory and return its stdout."""
    return _git


@pytest.fixture
def git_project(tmp_path):
    """
    Provide a git repository with one commit on main.

    Creates:
    - README.md (committed)
    """
    project = _init_repo(tmp_path / "repo")
    (project / "README.md").write_text("# Test Project\n")
    _git(project, "add", "README.md")
    _git(project, "commit", "-q", "-m", "Initial commit")
    return project


@pytest.fixture
def origin_remote(tmp_path, git_project):
    """
    Provide a bare 'origin' remote for git_project with main pushed.

    Returns:
        Path to the bare repository
    """
    remote = tmp_path / "origin.git"
    _git(tmp_path, "init", "-q", "--bare", str(remote))
    _git(git_project, "remote", "add", "origin", str(remote))
    _git(git_project, "push", "-q", "-u", "origin", "main")
    return remote


@pytest.fixture
def push_remote_branch(tmp_path, origin_remote):
    """
    Push a branch with one extra file to origin from a separate clone.

    Returns a callable taking (branch, filename, content).
    """

    def push(branch: str, filename: str, content: str) -> None:
        clone = tmp_path / f"clone-{branch.replace('/', '-')}"
        _git(tmp_path, "clone", "-q", str(origin_remote), str(clone))
        _git(clone, "config", "user.email", "remote@example.com")
        _git(clone, "config", "user.name", "Remote User")
        _git(clone, "config", "commit.gpgsign", "false")
        _git(clone, "checkout", "-q", "-b", branch, "origin/main")
        (clone / filename).write_text(content)
        _git(clone, "add", filename)
        _git(clone, "commit", "-q", "-m", f"Add {filename}")
        _git(clone, "push", "-q", "origin", branch)

    return push


# ==============================================================================
# Fake Backends
# ==============================================================================


@pytest.fixture
def project_dir(tmp_path):
    """Provide a plain project directory for filesystem-only tests."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def state_store(project_dir):
    """Provide a WorkstreamStateStore rooted at project_dir."""
    return WorkstreamStateStore(project_dir)


@pytest.fixture
def fake_manager(project_dir, state_store):
    """Provide a FakeWorktreeManager rooted at project_dir."""
    return FakeWorktreeManager(project_dir, state_store=state_store)
