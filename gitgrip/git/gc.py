"""Garbage collection and ``.git`` size accounting."""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.errors import GitError
from gitgrip.git.lock import resolve_git_dir
from gitgrip.git.repository import Repository
from gitgrip.platform.files import dir_size

__all__ = ["GcResult", "format_bytes", "git_dir_size", "run_gc"]

_KB = 1024
_MB = 1024 * _KB
_GB = 1024 * _MB

_GC_TIMEOUT_SECONDS = 15 * 60.0


@dataclass(frozen=True, slots=True)
class GcResult:
    size_before: int
    size_after: int
    success: bool

    @property
    def saved(self) -> int:
        return max(self.size_before - self.size_after, 0)


def git_dir_size(repo: Repository) -> int:
    return dir_size(resolve_git_dir(repo.path))


def run_gc(repo: Repository, *, aggressive: bool = False) -> Result[GcResult, GitError]:
    locked = repo.wait_for_lock()
    if isinstance(locked, Err):
        return locked
    before = git_dir_size(repo)
    args = ["gc", "--quiet"]
    if aggressive:
        args.append("--aggressive")
    result = repo.run_raw(args, timeout=_GC_TIMEOUT_SECONDS)
    after = git_dir_size(repo)
    return Ok(GcResult(size_before=before, size_after=after, success=isinstance(result, Ok)))


def format_bytes(size: int) -> str:
    """``1536`` -> ``1.5 KB`` (1024-based units)."""
    if size >= _GB:
        return f"{size / _GB:.1f} GB"
    if size >= _MB:
        return f"{size / _MB:.1f} MB"
    if size >= _KB:
        return f"{size / _KB:.1f} KB"
    return f"{size} B"
