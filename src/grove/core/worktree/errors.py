"""Worktree exceptions."""


class WorktreeError(Exception):
    """Base exception for worktree operations."""

    pass


class NotInGitRepoError(WorktreeError):
    """Raised when the project directory is not inside a git checkout."""

    pass


class WorktreeExistsError(WorktreeError):
    """Raised when creating a worktree whose slug is already live."""

    pass


class WorktreeNotFoundError(WorktreeError):
    """Raised when a slug is not in the registry."""

    pass


class InvalidSlugError(WorktreeError):
    """Raised when a slug cannot be used as a directory name."""

    pass
