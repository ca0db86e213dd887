"""
Tests for FakeWorktreeManager.

The fake follows the same registry rules as the git-backed manager, so
these tests pin down the backend-independent contract: uniqueness,
self-healing, idempotent removal and branch resolution order.
"""

import shutil

import pytest

from grove.core.worktree import (
    BaseWorktreeManager,
    FakeWorktreeManager,
    InvalidSlugError,
    NotInGitRepoError,
    WorktreeBackend,
    WorktreeExistsError,
    WorktreeNotFoundError,
)


class TestFakeCreate:
    """Test creating workstreams in the fake backend."""

    def test_create_makes_directory(self, fake_manager):
        """Test create produces a live directory and registry entry."""
        entry = fake_manager.create("a")

        assert entry.path.is_dir()
        assert (entry.path / ".grove").is_dir()
        assert entry.active is True
        assert fake_manager.exists("a")

    def test_create_duplicate(self, fake_manager):
        """Test a live slug cannot be created twice."""
        fake_manager.create("a")

        with pytest.raises(WorktreeExistsError):
            fake_manager.create("a")

    def test_self_heal(self, fake_manager):
        """Test a registered slug whose directory vanished is recreated."""
        entry = fake_manager.create("a")
        shutil.rmtree(entry.path)

        healed = fake_manager.create("a")

        assert healed.active is True
        assert len(fake_manager.list()) == 1

    def test_not_in_git_repo(self, project_dir):
        """Test the fake can simulate running outside git."""
        manager = FakeWorktreeManager(project_dir, in_git_repo=False)

        with pytest.raises(NotInGitRepoError):
            manager.create("a")
        assert not manager.exists("a")

    def test_invalid_slug(self, fake_manager):
        """Test slug validation applies to every backend."""
        with pytest.raises(InvalidSlugError):
            fake_manager.create("../a")

    def test_task_recorded(self, fake_manager, state_store):
        """Test a task is stored as pending state."""
        fake_manager.create("a", task="Write docs")

        assert state_store.read("a").extra_fields == {"task": "Write docs"}

    def test_satisfies_backend_protocol(self, fake_manager):
        """Test the fake is a WorktreeBackend."""
        assert isinstance(fake_manager, WorktreeBackend)


class TestFakeBranchResolution:
    """Test the fake records where each branch was checked out from."""

    def test_local_branch(self, project_dir):
        """Test an existing local branch is used as-is."""
        manager = FakeWorktreeManager(project_dir, local_branches={"feature/a"})

        manager.create("a", branch="feature/a")

        assert manager.checkouts["feature/a"] == "feature/a"

    def test_remote_only_branch(self, project_dir):
        """Test a remote-only branch is tracked from origin."""
        manager = FakeWorktreeManager(project_dir, remote_branches={"pr-42"})

        manager.create("pr", branch="pr-42")

        assert manager.checkouts["pr-42"] == "origin/pr-42"
        assert "pr-42" in manager.local_branches

    def test_local_preferred_over_remote(self, project_dir):
        """Test local wins when a branch exists in both places."""
        manager = FakeWorktreeManager(
            project_dir, local_branches={"shared"}, remote_branches={"shared"}
        )

        manager.create("s", branch="shared")

        assert manager.checkouts["shared"] == "shared"

    def test_new_branch_from_head_or_base(self, project_dir):
        """Test unknown branches start from HEAD or base_branch."""
        manager = FakeWorktreeManager(project_dir)

        manager.create("a")
        manager.create("b", base_branch="develop")

        assert manager.checkouts == {"grove/a": "HEAD", "grove/b": "develop"}


class TestFakeRemoveAndQueries:
    """Test removal and lookups in the fake backend."""

    def test_remove(self, fake_manager):
        """Test remove deletes the directory and the entry."""
        entry = fake_manager.create("a")

        fake_manager.remove("a")

        assert not entry.path.exists()
        assert not fake_manager.exists("a")

    def test_remove_unknown(self, fake_manager):
        """Test removing an unknown slug raises."""
        with pytest.raises(WorktreeNotFoundError):
            fake_manager.remove("ghost")

    def test_remove_after_directory_deleted(self, fake_manager):
        """Test removal is safe when the directory is already gone."""
        entry = fake_manager.create("a")
        shutil.rmtree(entry.path)

        fake_manager.remove("a")

        assert not fake_manager.exists("a")

    def test_remove_delete_branch(self, fake_manager):
        """Test delete_branch forgets the branch."""
        fake_manager.create("a")

        fake_manager.remove("a", delete_branch=True)

        assert "grove/a" not in fake_manager.local_branches

    def test_remove_keeps_branch_by_default(self, fake_manager):
        """Test the branch survives a plain removal and is reused."""
        fake_manager.create("a")
        fake_manager.remove("a")

        fake_manager.create("a")

        assert fake_manager.checkouts["grove/a"] == "HEAD"
        assert "grove/a" in fake_manager.local_branches

    def test_find_by_branch_inactive(self, fake_manager):
        """Test a vanished worktree is found by branch but inactive."""
        entry = fake_manager.create("a")
        shutil.rmtree(entry.path)

        found = fake_manager.find_by_branch("grove/a")

        assert found.slug == "a"
        assert found.active is False

    def test_list_sorted_by_creation(self, fake_manager):
        """Test list returns entries oldest first."""
        for slug in ["c", "a", "b"]:
            fake_manager.create(slug)

        entries = fake_manager.list()
        created = [e.created_at for e in entries]

        assert {e.slug for e in entries} == {"a", "b", "c"}
        assert created == sorted(created)

    def test_prune(self, fake_manager):
        """Test prune unregisters only vanished worktrees."""
        fake_manager.create("keep")
        gone = fake_manager.create("gone")
        shutil.rmtree(gone.path)

        assert fake_manager.prune() == ["gone"]
        assert [e.slug for e in fake_manager.list()] == ["keep"]


class TestBackendContract:
    """Test the hooks a backend must provide."""

    def test_incomplete_backend_rejected(self, project_dir):
        """Test a backend without a teardown hook cannot be instantiated."""

        class CheckoutOnly(BaseWorktreeManager):
            def _ensure_ready(self):
                pass

            def _checkout(self, path, branch, base_branch):
                path.mkdir(parents=True)

        with pytest.raises(TypeError, match="_teardown"):
            CheckoutOnly(project_dir)

    def test_required_hooks(self, fake_manager):
        """Test exactly the three backend hooks are required."""
        assert isinstance(fake_manager, BaseWorktreeManager)
        assert BaseWorktreeManager.__abstractmethods__ == {
            "_ensure_ready",
            "_checkout",
            "_teardown",
        }
