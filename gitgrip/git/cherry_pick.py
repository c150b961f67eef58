"""Cherry-pick a commit that may exist in only some repositories."""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.cache import status_cache
from gitgrip.git.errors import GitError
from gitgrip.git.repository import Repository

__all__ = [
    "Applied",
    "CherryPickOutcome",
    "CommitNotFound",
    "Conflict",
    "PickError",
    "cherry_pick",
    "cherry_pick_abort",
    "cherry_pick_continue",
    "cherry_pick_in_progress",
    "commit_exists",
]


@dataclass(frozen=True, slots=True)
class Applied:
    pass


@dataclass(frozen=True, slots=True)
class CommitNotFound:
    pass


@dataclass(frozen=True, slots=True)
class Conflict:
    text: str


@dataclass(frozen=True, slots=True)
class PickError:
    text: str


type CherryPickOutcome = Applied | CommitNotFound | Conflict | PickError


def commit_exists(repo: Repository, sha: str) -> bool:
    match repo.run_raw(["cat-file", "-t", "--", sha]):
        case Ok(stdout):
            return stdout.strip() == "commit"
        case Err(_):
            return False


def cherry_pick(repo: Repository, sha: str) -> CherryPickOutcome:
    """Apply ``sha``; a conflict leaves the cherry-pick in progress."""
    if not commit_exists(repo, sha):
        return CommitNotFound()
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return PickError(locked.error.message)

    result = repo.run_raw(["cherry-pick", sha])
    status_cache.invalidate(repo.path.resolve())
    match result:
        case Ok(_):
            return Applied()
        case Err(e):
            text = e.stderr + e.stdout
            if "CONFLICT" in text or "conflict" in text:
                return Conflict(e.detail)
            return PickError(e.detail)


def cherry_pick_in_progress(repo: Repository) -> bool:
    return repo.in_progress("CHERRY_PICK_HEAD")


def cherry_pick_abort(repo: Repository) -> Result[None, GitError]:
    result = repo.run_raw(["cherry-pick", "--abort"])
    status_cache.invalidate(repo.path.resolve())
    match result:
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(
                GitError(
                    kind="operation_failed",
                    message=f"cherry-pick --abort failed: {e.detail}",
                    command="cherry-pick",
                )
            )


def cherry_pick_continue(repo: Repository) -> Result[None, GitError]:
    # Reuse the recorded message without opening an editor
    result = repo.run_raw(["-c", "core.editor=true", "cherry-pick", "--continue"])
    status_cache.invalidate(repo.path.resolve())
    match result:
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(
                GitError(
                    kind="operation_failed",
                    message=f"cherry-pick --continue failed: {e.detail}",
                    command="cherry-pick",
                )
            )
