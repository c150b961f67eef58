"""Clone, fetch, pull and push.

Network commands run with the long git timeout. Every write goes through
the index lock check and invalidates the status cache afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.branch import commits_between, remote_branch_exists
from gitgrip.git.cache import status_cache
from gitgrip.git.errors import GitError
from gitgrip.git.repository import Repository
from gitgrip.platform.process import run as run_process

__all__ = [
    "PullMode",
    "PullOutcome",
    "clone",
    "delete_remote_branch",
    "fetch",
    "has_commits_to_push",
    "interpret_push_error",
    "pull",
    "push",
    "reset_hard",
    "safe_pull_latest",
    "set_remote_url",
]

type PullMode = Literal["merge", "rebase"]

_CLONE_TIMEOUT_SECONDS = 3 * 60.0


@dataclass(frozen=True, slots=True)
class PullOutcome:
    """What a safe pull did.

    Attributes:
        action: ``pulled`` (working copy updated), ``fetched`` (refs only),
            ``skipped`` (left untouched) or ``failed``.
        message: Short operator-facing detail.
    """

    action: Literal["pulled", "fetched", "skipped", "failed"]
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.action != "failed"


def _invalidate(repo: Repository) -> None:
    status_cache.invalidate(repo.path.resolve())


def clone(url: str, dest: Path, branch: str | None = None) -> Result[Repository, GitError]:
    """Clone ``url`` into ``dest``.

    When ``branch`` is missing on the remote, the clone is retried without
    ``-b`` and the remote HEAD is accepted.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    if branch:
        result = run_process(
            ["git", "clone", "-b", branch, url, str(dest)],
            cwd=dest.parent,
            timeout=_CLONE_TIMEOUT_SECONDS,
        )
        if isinstance(result, Ok):
            return Ok(Repository(dest))
        stderr = result.error.stderr
        if not ("Remote branch" in stderr and "not found" in stderr):
            return Err(
                GitError(kind="operation_failed", message=f"git clone failed: {stderr.strip()}", command="clone")
            )

    match run_process(["git", "clone", url, str(dest)], cwd=dest.parent, timeout=_CLONE_TIMEOUT_SECONDS):
        case Ok(_):
            return Ok(Repository(dest))
        case Err(e):
            return Err(GitError(kind="operation_failed", message=f"git clone failed: {e.detail}", command="clone"))


def interpret_push_error(stderr: str) -> str:
    """Turn common push/fetch failures into actionable text."""
    lower = stderr.lower()
    original = stderr.strip()
    if "non-fast-forward" in lower or ("[rejected]" in lower and "fetch first" in lower):
        return f"Push rejected: remote has changes. Pull first with `gr sync`, then try again.\n(Original: {original})"
    if "could not read from remote" in lower or "repository not found" in lower:
        return f"Cannot reach remote. Check your network connection and repository URL.\n(Original: {original})"
    if "permission denied" in lower or "authentication failed" in lower:
        return f"Authentication failed. Run `gh auth login` to refresh credentials.\n(Original: {original})"
    return original


def fetch(repo: Repository, remote: str = "origin", *, prune: bool = False) -> Result[None, GitError]:
    args = ["fetch", remote]
    if prune:
        args.append("--prune")
    match repo.run_raw(args):
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(GitError(kind="operation_failed", message=interpret_push_error(e.detail), command="fetch"))


def pull(repo: Repository, remote: str = "origin", mode: PullMode = "merge") -> Result[None, GitError]:
    """``git pull`` in the requested mode; pulls from ``remote`` when no upstream is set."""
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    args = ["pull"]
    if mode == "rebase":
        args.append("--rebase")
    else:
        args.append("--no-rebase")
    if not repo.has_upstream():
        args.append(remote)

    result = repo.run_raw(args)
    _invalidate(repo)
    match result:
        case Ok(_):
            return Ok(None)
        case Err(e):
            text = e.stderr + e.stdout
            if "CONFLICT" in text:
                message = "Merge conflict occurred. Resolve conflicts manually."
            elif "non-fast-forward" in text or "Not possible to fast-forward" in text:
                message = "Non-fast-forward merge required. Please merge manually."
            else:
                message = e.detail
            return Err(GitError(kind="operation_failed", message=message, command="pull"))


def _update_from(repo: Repository, target: str, mode: PullMode) -> Result[None, GitError]:
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    args = ["rebase", target] if mode == "rebase" else ["merge", "--ff-only", target]
    result = repo.run_raw(args)
    _invalidate(repo)
    match result:
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command=args[0]))


def safe_pull_latest(
    repo: Repository,
    default_branch: str,
    remote: str = "origin",
    mode: PullMode = "merge",
    *,
    upstream_override: str | None = None,
    base_mapped: bool = False,
) -> Result[PullOutcome, GitError]:
    """Pull without ever clobbering local work.

    * dirty working copy: skipped, nothing touched
    * on the default branch: fetch, then merge/rebase from the upstream
      (fetch only when no upstream is configured)
    * on a feature branch: fetch only
    * griptree override: fetch, then fast-forward the base branch from the
      mapped upstream unless it carries local commits
    """
    if not repo.is_clean():
        return Ok(PullOutcome(action="skipped", message="dirty, skipped"))

    current = repo.current_branch()
    if isinstance(current, Err):
        return current
    branch = current.value

    fetched = fetch(repo, remote)
    if isinstance(fetched, Err):
        return Ok(PullOutcome(action="failed", message=fetched.error.message))

    if upstream_override is not None:
        if branch != default_branch:
            return Ok(PullOutcome(action="fetched", message=f"fetched (on {branch})"))
        counts = repo.ahead_behind(upstream_override)
        if counts is None:
            return Ok(PullOutcome(action="failed", message=f"Unknown upstream '{upstream_override}'"))
        ahead, behind = counts
        if ahead > 0 and base_mapped:
            if behind > 0:
                return Ok(PullOutcome(action="skipped", message="diverged, local ahead"))
            return Ok(PullOutcome(action="fetched", message="local ahead"))
        if behind == 0:
            return Ok(PullOutcome(action="fetched", message="up to date"))
        updated = _update_from(repo, upstream_override, mode)
        if isinstance(updated, Err):
            return Ok(PullOutcome(action="failed", message=updated.error.message))
        return Ok(PullOutcome(action="pulled", message=f"updated from {upstream_override}"))

    if branch != default_branch:
        return Ok(PullOutcome(action="fetched", message=f"fetched (on {branch})"))

    if not repo.has_upstream():
        return Ok(PullOutcome(action="fetched", message="fetched (no upstream)"))

    before = repo.head_sha()
    pulled = pull(repo, remote, mode)
    if isinstance(pulled, Err):
        return Ok(PullOutcome(action="failed", message=pulled.error.message))
    if isinstance(before, Ok) and repo.head_sha() == before:
        return Ok(PullOutcome(action="fetched", message="up to date"))
    return Ok(PullOutcome(action="pulled", message="pulled"))


def push(
    repo: Repository,
    branch: str,
    remote: str = "origin",
    *,
    set_upstream: bool = False,
    force: bool = False,
) -> Result[None, GitError]:
    args = ["push"]
    if set_upstream:
        args.append("-u")
    if force:
        args.append("--force-with-lease")
    args.extend([remote, branch])
    match repo.run_raw(args):
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(GitError(kind="operation_failed", message=interpret_push_error(e.detail), command="push"))


def delete_remote_branch(repo: Repository, branch: str, remote: str = "origin") -> Result[None, GitError]:
    match repo.run_raw(["push", remote, "--delete", branch]):
        case Ok(_):
            return Ok(None)
        case Err(e):
            return Err(GitError(kind="operation_failed", message=e.detail, command="push"))


def has_commits_to_push(repo: Repository, branch: str, remote: str = "origin") -> Result[bool, GitError]:
    """True when ``branch`` has commits its remote counterpart lacks.

    A branch with no remote counterpart always needs a push.
    """
    if not remote_branch_exists(repo, branch, remote):
        return Ok(True)
    return commits_between(repo, f"{remote}/{branch}", branch).map(lambda commits: len(commits) > 0)


def reset_hard(repo: Repository, target: str) -> Result[None, GitError]:
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    result = repo.git("reset", "--hard", target)
    _invalidate(repo)
    return result.map(lambda _: None)


def set_remote_url(repo: Repository, url: str, remote: str = "origin") -> Result[None, GitError]:
    return repo.git("remote", "set-url", remote, url).map(lambda _: None)
