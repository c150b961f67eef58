"""Linked worktrees backing griptrees."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.branch import branch_exists
from gitgrip.git.errors import GitError
from gitgrip.git.repository import Repository

__all__ = ["WorktreeInfo", "add_worktree", "list_worktrees", "prune_worktrees", "remove_worktree"]


@dataclass(frozen=True, slots=True)
class WorktreeInfo:
    path: Path
    branch: str | None
    head: str | None
    locked: bool = False


def add_worktree(
    repo: Repository,
    dest: Path,
    branch: str,
    *,
    start_point: str | None = None,
) -> Result[Repository, GitError]:
    """Create a worktree at ``dest`` on ``branch``.

    An existing local branch is checked out as-is; otherwise the branch is
    created at ``start_point`` (default: the source repo's HEAD).
    """
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    dest.parent.mkdir(parents=True, exist_ok=True)
    if branch_exists(repo, branch):
        args = ["worktree", "add", str(dest), branch]
    else:
        args = ["worktree", "add", "-b", branch, str(dest)]
        if start_point:
            args.append(start_point)
    match repo.run_raw(args):
        case Ok(_):
            return Ok(Repository(dest))
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command="worktree"))


def remove_worktree(repo: Repository, dest: Path, *, force: bool = False) -> Result[None, GitError]:
    args = ["worktree", "remove", str(dest)]
    if force:
        args.insert(2, "--force")
    match repo.run_raw(args):
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command="worktree"))


def prune_worktrees(repo: Repository) -> Result[None, GitError]:
    return repo.git("worktree", "prune").map(lambda _: None)


def list_worktrees(repo: Repository) -> Result[list[WorktreeInfo], GitError]:
    result = repo.git("worktree", "list", "--porcelain")
    if isinstance(result, Err):
        return result

    worktrees: list[WorktreeInfo] = []
    current: dict[str, str] = {}
    for line in [*result.value.splitlines(), ""]:
        if not line.strip():
            if "worktree" in current:
                branch = current.get("branch")
                if branch and branch.startswith("refs/heads/"):
                    branch = branch[len("refs/heads/") :]
                worktrees.append(
                    WorktreeInfo(
                        path=Path(current["worktree"]),
                        branch=branch,
                        head=current.get("HEAD"),
                        locked="locked" in current,
                    )
                )
            current = {}
            continue
        key, _, value = line.partition(" ")
        current[key] = value
    return Ok(worktrees)
