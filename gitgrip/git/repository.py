"""Git repository abstraction.

:class:`Repository` wraps the git binary for one working copy. Every
method that can fail returns a Result; write operations go through the
index lock check first.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.status():
        case Ok(status):
            print(f"Branch: {status.branch}")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.cache import status_cache
from gitgrip.git.errors import GitError, from_process
from gitgrip.git.lock import wait_for_index_lock
from gitgrip.platform.process import ProcessError
from gitgrip.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone", "ls-remote"})

__all__ = [
    "GitStatus",
    "Repository",
    "StatusEntry",
]


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_staged(self) -> bool:
        return self.xy != "??" and self.xy[0] != " "

    @property
    def is_unstaged(self) -> bool:
        return self.xy != "??" and self.xy[1] != " "

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed ``git status --porcelain=v1 -b``.

    Attributes:
        branch: Current branch name (``HEAD (no branch)`` when detached)
        upstream: Upstream branch (e.g., "origin/main"), None if not set
        ahead: Commits ahead of upstream
        behind: Commits behind upstream
        entries: Staged, unstaged and untracked entries
    """

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0

    @property
    def staged_count(self) -> int:
        return sum(1 for e in self.entries if e.is_staged)

    @property
    def unstaged_count(self) -> int:
        return sum(1 for e in self.entries if e.is_unstaged)

    @property
    def untracked_count(self) -> int:
        return sum(1 for e in self.entries if e.is_untracked)


class Repository:
    """One git working copy (a main checkout or a linked worktree).

    Attributes:
        path: Working tree root
    """

    def __init__(self, path: Path, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.path = path
        self._sleep = sleep

    @classmethod
    def open(cls, path: Path) -> Result[Repository, GitError]:
        if not path.exists():
            return Err(GitError(kind="not_found", message=f"Path does not exist: {path}"))
        repo = cls(path)
        if not repo.exists():
            return Err(GitError(kind="not_a_repo", message=f"Not a git repository: {path}"))
        return Ok(repo)

    def exists(self) -> bool:
        """True when ``.git`` is present (directory, or file for worktrees)."""
        return (self.path / ".git").exists()

    # -------------------------------------------------------------------------
    # Command execution
    # -------------------------------------------------------------------------

    def run_raw(self, args: list[str], *, timeout: float | None = None) -> Result[str, ProcessError]:
        """Run a git command in this repository without error mapping."""
        command = args[0] if args else ""
        if timeout is None:
            timeout = _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def git(self, *args: str, write: bool = False, timeout: float | None = None) -> Result[str, GitError]:
        """Run ``git <args>``.

        ``write=True`` checks the index lock first and drops the cached
        status for this repository afterwards.
        """
        if write:
            locked = self.wait_for_lock()
            if isinstance(locked, Err):
                return locked
        result = self.run_raw(list(args), timeout=timeout)
        if write:
            status_cache.invalidate(self.path.resolve())
        if isinstance(result, Err):
            return Err(from_process(result.error, args[0] if args else ""))
        return Ok(result.value)

    def wait_for_lock(self) -> Result[None, GitError]:
        return wait_for_index_lock(self.path, sleep=self._sleep)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def status(self) -> Result[GitStatus, GitError]:
        result = self.run_raw(["status", "--porcelain=v1", "-b"])
        match result:
            case Err(e):
                return Err(GitError(kind="git", message=e.stderr.strip() or "git status failed", command="status"))
            case Ok(stdout):
                return Ok(_parse_status(stdout))

    def is_clean(self) -> bool:
        """True if the working tree has no changes (False if undeterminable)."""
        match self.run_raw(["status", "--porcelain"]):
            case Ok(stdout):
                return stdout.strip() == ""
            case Err(_):
                return False

    def current_branch(self) -> Result[str, GitError]:
        """Short branch name, or ``(HEAD detached at <sha7>)``."""
        match self.run_raw(["symbolic-ref", "--short", "-q", "HEAD"]):
            case Ok(stdout) if stdout.strip():
                return Ok(stdout.strip())
            case _:
                pass
        match self.run_raw(["rev-parse", "--short=7", "HEAD"]):
            case Ok(stdout):
                return Ok(f"(HEAD detached at {stdout.strip()})")
            case Err(e):
                return Err(GitError(kind="reference", message=e.detail, command="rev-parse"))

    def is_detached(self) -> bool:
        return isinstance(self.run_raw(["symbolic-ref", "-q", "HEAD"]), Err)

    def head_sha(self, *, short: bool = False) -> Result[str, GitError]:
        args = ["rev-parse", "--short=7", "HEAD"] if short else ["rev-parse", "HEAD"]
        match self.run_raw(args):
            case Ok(stdout):
                return Ok(stdout.strip())
            case Err(e):
                return Err(GitError(kind="reference", message=e.detail, command="rev-parse"))

    def upstream(self) -> str | None:
        """Configured upstream of the current branch (``origin/main``)."""
        match self.run_raw(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"]):
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def has_upstream(self) -> bool:
        return self.upstream() is not None

    def rev_exists(self, ref: str) -> bool:
        return isinstance(self.run_raw(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"]), Ok)

    def ahead_behind(self, base: str, head: str = "HEAD") -> tuple[int, int] | None:
        """(ahead, behind) of ``head`` relative to ``base``; None if either is unknown."""
        match self.run_raw(["rev-list", "--left-right", "--count", f"{base}...{head}"]):
            case Ok(stdout):
                parts = stdout.split()
                if len(parts) != 2:
                    return None
                behind, ahead = int(parts[0]), int(parts[1])
                return (ahead, behind)
            case Err(_):
                return None

    def remote_url(self, remote: str = "origin") -> str | None:
        match self.run_raw(["remote", "get-url", remote]):
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def in_progress(self, marker: str) -> bool:
        """True while a rebase/cherry-pick/merge leaves ``marker`` in the git dir."""
        match self.run_raw(["rev-parse", "--git-path", marker]):
            case Ok(stdout):
                path = Path(stdout.strip())
                if not path.is_absolute():
                    path = self.path / path
                return path.exists()
            case Err(_):
                return False


# -----------------------------------------------------------------------------
# Status parsing
# -----------------------------------------------------------------------------


def _parse_status(output: str) -> GitStatus:
    lines = [ln for ln in output.splitlines() if ln.strip()]
    if not lines:
        return GitStatus(branch="")

    # First line: ## branch...upstream [ahead N, behind M]
    branch, upstream = _parse_branch_line(lines[0])
    ahead, behind = _parse_ahead_behind(lines[0])

    entries: list[StatusEntry] = []
    for line in lines[1:]:
        if len(line) < 4:
            continue
        entries.append(StatusEntry(xy=line[:2], path=line[3:]))

    return GitStatus(branch=branch, upstream=upstream, ahead=ahead, behind=behind, entries=tuple(entries))


def _parse_branch_line(line: str) -> tuple[str, str | None]:
    s = line.strip()
    if s.startswith("##"):
        s = s[2:].lstrip()
    s = s.split(" [", 1)[0].strip()
    if s.startswith("No commits yet on "):
        s = s[len("No commits yet on ") :]
    if "..." in s:
        left, right = s.split("...", 1)
        return (left.strip(), right.strip())
    return (s, None)


def _parse_ahead_behind(line: str) -> tuple[int, int]:
    match = re.search(r"\[([^\]]+)\]", line)
    if not match:
        return (0, 0)
    inside = match.group(1)
    ahead_match = re.search(r"ahead\s+(\d+)", inside)
    behind_match = re.search(r"behind\s+(\d+)", inside)
    return (
        int(ahead_match.group(1)) if ahead_match else 0,
        int(behind_match.group(1)) if behind_match else 0,
    )
