"""Index lock check run before every write to a repository."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.errors import GitError

__all__ = ["INITIAL_DELAY", "MAX_ATTEMPTS", "MAX_DELAY", "resolve_git_dir", "wait_for_index_lock"]

INITIAL_DELAY = 0.2
MAX_DELAY = 5.0
MAX_ATTEMPTS = 5


def resolve_git_dir(repo_path: Path) -> Path:
    """The repository's git directory, following a worktree ``.git`` file."""
    dot_git = repo_path / ".git"
    if dot_git.is_file():
        try:
            content = dot_git.read_text(encoding="utf-8").strip()
        except OSError:
            return dot_git
        if content.startswith("gitdir:"):
            target = Path(content[len("gitdir:") :].strip())
            return target if target.is_absolute() else (repo_path / target)
    return dot_git


def wait_for_index_lock(
    repo_path: Path,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Result[None, GitError]:
    """Wait for ``index.lock`` to disappear with exponential backoff.

    Delays are 0.2s, 0.4s, 0.8s, 1.6s, 3.2s (capped at 5s); the lock is
    re-checked after each. A lock still present after the last attempt
    fails with ``repository_locked``.
    """
    lock = resolve_git_dir(repo_path) / "index.lock"
    delay = INITIAL_DELAY
    for _ in range(MAX_ATTEMPTS):
        if not lock.exists():
            return Ok(None)
        sleep(delay)
        delay = min(delay * 2, MAX_DELAY)

    if not lock.exists():
        return Ok(None)
    return Err(
        GitError(
            kind="repository_locked",
            message=f"Repository is locked: {lock} exists",
            hint="Another git process may be running; remove the lock file if it is stale",
        )
    )
