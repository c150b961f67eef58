"""Local and remote branch operations.

Every helper that moves HEAD or rewrites refs invalidates the status cache
entry for the repository afterwards.
"""

from __future__ import annotations

import re

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.cache import status_cache
from gitgrip.git.errors import GitError
from gitgrip.git.repository import Repository

__all__ = [
    "branch_exists",
    "checkout",
    "commits_between",
    "create_and_checkout",
    "delete_local",
    "has_commits_ahead",
    "is_merged",
    "is_worktree_conflict",
    "list_local",
    "list_remote",
    "remote_branch_exists",
    "worktree_conflict_path",
]

# Newer git says "is already used by worktree at", older releases say
# "is already checked out at".
_WORKTREE_CONFLICT_RE = re.compile(r"is already (?:used by worktree|checked out) at(?: '([^']*)')?")
_CHECKOUT_HINT = "Either use that worktree or create a new branch with 'gr branch <name>'"
_CREATE_HINT = "Use a different branch name or work in that worktree."


def is_worktree_conflict(stderr: str) -> bool:
    """True when git refused because another worktree holds the branch."""
    return _WORKTREE_CONFLICT_RE.search(stderr) is not None


def worktree_conflict_path(stderr: str) -> str | None:
    match = _WORKTREE_CONFLICT_RE.search(stderr)
    if match is None:
        return None
    return match.group(1) or None


def _worktree_conflict(branch: str, stderr: str, advice: str) -> GitError:
    path = worktree_conflict_path(stderr)
    if path is not None:
        message = f"Branch '{branch}' is checked out in another worktree at '{path}'. {advice}"
    else:
        message = f"Branch '{branch}' is already checked out in another worktree. {advice}"
    return GitError(kind="operation_failed", message=message, command="checkout")


def _invalidate(repo: Repository) -> None:
    status_cache.invalidate(repo.path.resolve())


def branch_exists(repo: Repository, name: str) -> bool:
    return isinstance(repo.run_raw(["rev-parse", "--verify", "--quiet", f"refs/heads/{name}"]), Ok)


def remote_branch_exists(repo: Repository, name: str, remote: str = "origin") -> bool:
    return isinstance(repo.run_raw(["rev-parse", "--verify", "--quiet", f"refs/remotes/{remote}/{name}"]), Ok)


def create_and_checkout(repo: Repository, name: str, start_point: str | None = None) -> Result[None, GitError]:
    """``git checkout -b name [start_point]``."""
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    args = ["checkout", "-b", name]
    if start_point:
        args.append(start_point)
    match repo.run_raw(args):
        case Ok(_):
            _invalidate(repo)
            return Ok(None)
        case Err(e):
            if is_worktree_conflict(e.stderr):
                return Err(_worktree_conflict(name, e.stderr, _CREATE_HINT))
            return Err(GitError(kind="operation_failed", message=e.detail, command="checkout"))


def checkout(repo: Repository, name: str) -> Result[None, GitError]:
    """Switch to an existing local branch."""
    if not branch_exists(repo, name):
        return Err(GitError(kind="branch_not_found", message=f"Branch not found: {name}", command="checkout"))
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    match repo.run_raw(["checkout", name]):
        case Ok(_):
            _invalidate(repo)
            return Ok(None)
        case Err(e):
            if is_worktree_conflict(e.stderr):
                return Err(_worktree_conflict(name, e.stderr, _CHECKOUT_HINT))
            return Err(GitError(kind="operation_failed", message=e.detail, command="checkout"))


def delete_local(repo: Repository, name: str, *, force: bool = False) -> Result[None, GitError]:
    current = repo.current_branch()
    if isinstance(current, Err):
        return current
    if current.value == name:
        return Err(
            GitError(
                kind="operation_failed",
                message="Cannot delete the currently checked out branch",
                command="branch",
            )
        )
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    match repo.run_raw(["branch", "-D" if force else "-d", name]):
        case Ok(_):
            _invalidate(repo)
            return Ok(None)
        case Err(e):
            if "not fully merged" in e.stderr:
                return Err(
                    GitError(
                        kind="operation_failed",
                        message=f"Branch '{name}' is not fully merged. Use force to delete anyway.",
                        command="branch",
                        hint="Re-run with --force",
                    )
                )
            return Err(GitError(kind="operation_failed", message=e.detail, command="branch"))


def is_merged(repo: Repository, name: str, target: str) -> Result[bool, GitError]:
    """True if ``name`` is reachable from ``target``."""
    match repo.run_raw(["branch", "--format=%(refname:short)", "--merged", target]):
        case Ok(stdout):
            return Ok(any(line.strip() == name for line in stdout.splitlines()))
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command="branch"))


def list_local(repo: Repository) -> Result[list[str], GitError]:
    match repo.run_raw(["branch", "--format=%(refname:short)"]):
        case Ok(stdout):
            return Ok([line.strip() for line in stdout.splitlines() if line.strip()])
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command="branch"))


def list_remote(repo: Repository, remote: str = "origin") -> Result[list[str], GitError]:
    """Branch names on ``remote`` (without the ``remote/`` prefix)."""
    prefix = f"{remote}/"
    match repo.run_raw(["branch", "-r", "--format=%(refname:short)"]):
        case Ok(stdout):
            names = [line.strip()[len(prefix) :] for line in stdout.splitlines() if line.strip().startswith(prefix)]
            return Ok([n for n in names if n and n != "HEAD"])
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command="branch"))


def commits_between(repo: Repository, base: str, head: str | None = None) -> Result[list[str], GitError]:
    """SHAs reachable from ``head`` (default: current branch) but not ``base``."""
    if head is None:
        current = repo.current_branch()
        if isinstance(current, Err):
            return current
        head = "HEAD" if current.value.startswith("(HEAD detached") else current.value
    match repo.run_raw(["rev-list", f"{base}..{head}"]):
        case Ok(stdout):
            return Ok([line.strip() for line in stdout.splitlines() if line.strip()])
        case Err(e):
            return Err(GitError(kind="reference", message=e.detail, command="rev-list"))


def has_commits_ahead(repo: Repository, base: str) -> Result[bool, GitError]:
    return commits_between(repo, base).map(lambda commits: len(commits) > 0)
