"""
Tests for the `grove ws` CLI commands.
"""

import json
import shlex
import shutil
import sys
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from grove import __version__
from grove.cli import app
from grove.core.state import WorkstreamStateStore, WorkstreamStatus
from grove.core.workstream import WorkstreamExecutor

runner = CliRunner()


def _command(code):
    return shlex.join([sys.executable, "-c", code])


@pytest.fixture
def in_project(git_project, monkeypatch):
    """Run CLI commands from inside git_project."""
    monkeypatch.chdir(git_project)
    return git_project


class TestMain:
    """Test the top-level app."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


@pytest.mark.integration
class TestCreateAndList:
    """Test `grove ws create` and `grove ws list`."""

    def test_create(self, in_project):
        """Test create registers the worktree and prints its branch."""
        result = runner.invoke(app, ["ws", "create", "fix-login"])

        assert result.exit_code == 0
        assert "Created workstream" in result.output
        assert "grove/fix-login" in result.output
        registry = json.loads((in_project / ".grove" / "worktrees.json").read_text())
        assert list(registry) == ["fix-login"]

    def test_create_with_task(self, in_project):
        """Test --task records pending state."""
        runner.invoke(app, ["ws", "create", "docs", "-t", "Rewrite the README"])

        state = WorkstreamStateStore(in_project).read("docs")
        assert state.status == WorkstreamStatus.PENDING
        assert state.extra_fields["task"] == "Rewrite the README"

    def test_create_duplicate(self, in_project):
        """Test a duplicate slug fails with a general error."""
        runner.invoke(app, ["ws", "create", "dup"])

        result = runner.invoke(app, ["ws", "create", "dup"])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_create_outside_git(self, tmp_path, monkeypatch):
        """Test create outside a repository is a user error."""
        plain = tmp_path / "plain"
        plain.mkdir()
        monkeypatch.chdir(plain)

        result = runner.invoke(app, ["ws", "create", "x"])

        assert result.exit_code == 2
        assert "Not a git repository" in result.output

    def test_list_empty(self, in_project):
        result = runner.invoke(app, ["ws", "list"])

        assert result.exit_code == 0
        assert "No workstreams found" in result.output

    def test_list_verbose(self, in_project):
        """Test verbose listing shows state."""
        runner.invoke(app, ["ws", "create", "a", "-t", "task"])

        result = runner.invoke(app, ["ws", "list", "-v"])

        assert result.exit_code == 0
        assert "pending" in result.output


@pytest.mark.integration
class TestStatusRemovePrune:
    """Test `grove ws status`, `remove` and `prune`."""

    def test_status(self, in_project):
        """Test status shows task and git status."""
        runner.invoke(app, ["ws", "create", "a", "-t", "Fix it"])

        result = runner.invoke(app, ["ws", "status", "a"])

        assert result.exit_code == 0
        assert "Task: Fix it" in result.output
        assert "Uncommitted changes: No" in result.output

    def test_status_unknown(self, in_project):
        result = runner.invoke(app, ["ws", "status", "ghost"])

        assert result.exit_code == 2
        assert "Workstream 'ghost' not found" in result.output

    def test_remove(self, in_project):
        """Test remove deletes the worktree."""
        runner.invoke(app, ["ws", "create", "a"])

        result = runner.invoke(app, ["ws", "remove", "a", "--delete-branch"])

        assert result.exit_code == 0
        assert "Removed workstream: a" in result.output
        assert not (in_project / ".worktrees" / "a").exists()

    def test_remove_unknown(self, in_project):
        result = runner.invoke(app, ["ws", "remove", "ghost"])

        assert result.exit_code == 2
        assert "not found" in result.output

    def test_prune(self, in_project):
        """Test prune reports vanished worktrees."""
        runner.invoke(app, ["ws", "create", "a"])
        shutil.rmtree(in_project / ".worktrees" / "a")

        result = runner.invoke(app, ["ws", "prune"])

        assert result.exit_code == 0
        assert "Pruned 1 stale workstream(s)" in result.output


@pytest.mark.integration
class TestRun:
    """Test `grove ws run` and `grove ws run-all`."""

    def test_run_success(self, in_project):
        """Test a successful command exits zero and records completion."""
        runner.invoke(app, ["ws", "create", "a"])

        result = runner.invoke(app, ["ws", "run", "a", "-c", _command("pass")])

        assert result.exit_code == 0
        assert "Total: 1 | Completed: 1 | Failed: 0" in result.output
        assert WorkstreamStateStore(in_project).read("a").status == WorkstreamStatus.COMPLETED

    def test_run_failure(self, in_project):
        """Test a failing command exits non-zero."""
        runner.invoke(app, ["ws", "create", "a"])

        result = runner.invoke(app, ["ws", "run", "a", "-c", _command("raise SystemExit(4)")])

        assert result.exit_code == 1
        assert WorkstreamStateStore(in_project).read("a").status == WorkstreamStatus.FAILED

    def test_run_unknown_slug(self, in_project):
        """Test unknown slugs are rejected before anything runs."""
        runner.invoke(app, ["ws", "create", "a"])

        result = runner.invoke(app, ["ws", "run", "a", "ghost", "-c", _command("pass")])

        assert result.exit_code == 2
        assert "Workstreams not found: ghost" in result.output
        assert WorkstreamStateStore(in_project).read("a") is None

    def test_run_uses_config_command(self, in_project):
        """Test the command falls back to .grove.json."""
        (in_project / ".grove.json").write_text(
            json.dumps({"workstreams": {"command": [sys.executable, "-c", "pass"]}})
        )
        runner.invoke(app, ["ws", "create", "a"])

        result = runner.invoke(app, ["ws", "run", "a"])

        assert result.exit_code == 0

    def test_run_all(self, in_project):
        """Test run-all runs every active workstream."""
        runner.invoke(app, ["ws", "create", "a"])
        runner.invoke(app, ["ws", "create", "b"])

        result = runner.invoke(app, ["ws", "run-all", "-j", "2", "-c", _command("pass")])

        assert result.exit_code == 0
        assert "Total: 2 | Completed: 2 | Failed: 0" in result.output

    def test_run_all_nothing_active(self, in_project):
        result = runner.invoke(app, ["ws", "run-all", "-c", _command("pass")])

        assert result.exit_code == 0
        assert "No active workstreams found" in result.output


class TestInterrupt:
    """Test Ctrl+C during a run."""

    @pytest.fixture(autouse=True)
    def in_plain_project(self, project_dir, monkeypatch):
        monkeypatch.chdir(project_dir)

    def test_run_interrupted(self):
        """Test an interrupted run exits with the SIGINT code."""
        with patch.object(WorkstreamExecutor, "execute_parallel", side_effect=KeyboardInterrupt):
            result = runner.invoke(app, ["ws", "run", "a", "-c", "true"])

        assert result.exit_code == 130
        assert "Run interrupted by user" in result.output

    def test_run_all_interrupted(self):
        """Test an interrupted run-all exits with the SIGINT code."""
        with patch.object(WorkstreamExecutor, "execute_all", side_effect=KeyboardInterrupt):
            result = runner.invoke(app, ["ws", "run-all", "-c", "true"])

        assert result.exit_code == 130
