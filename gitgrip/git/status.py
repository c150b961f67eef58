"""Per-repo status used by ``gr status`` and friends."""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.git.cache import CachedStatus, StatusCache, status_cache
from gitgrip.git.errors import GitError
from gitgrip.git.repository import Repository

__all__ = ["RepoStatusInfo", "get_cached_status", "get_repo_status"]


@dataclass(frozen=True, slots=True)
class RepoStatusInfo:
    """Status of one manifest repo.

    ``ahead``/``behind`` are relative to the upstream; ``ahead_main`` and
    ``behind_main`` are relative to ``origin/<default_branch>`` (or the local
    default branch when there is no remote copy).
    """

    name: str
    exists: bool
    branch: str = ""
    is_clean: bool = True
    staged: int = 0
    modified: int = 0
    untracked: int = 0
    ahead: int = 0
    behind: int = 0
    ahead_main: int = 0
    behind_main: int = 0
    default_branch: str = "main"
    reference: bool = False

    @property
    def changes(self) -> int:
        return self.staged + self.modified + self.untracked

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "exists": self.exists,
            "branch": self.branch,
            "clean": self.is_clean,
            "staged": self.staged,
            "modified": self.modified,
            "untracked": self.untracked,
            "ahead": self.ahead,
            "behind": self.behind,
            "aheadMain": self.ahead_main,
            "behindMain": self.behind_main,
            "defaultBranch": self.default_branch,
            "reference": self.reference,
        }


def get_cached_status(repo: Repository, *, cache: StatusCache | None = None) -> Result[CachedStatus, GitError]:
    """Working-copy status, served from ``cache`` while fresh."""
    cache = cache if cache is not None else status_cache
    key = repo.path.resolve()
    hit = cache.get(key)
    if hit is not None:
        return Ok(hit)

    status = repo.status()
    if isinstance(status, Err):
        return status
    branch = repo.current_branch()
    if isinstance(branch, Err):
        return branch

    st = status.value
    ahead, behind = (0, 0)
    if repo.has_upstream():
        ahead, behind = repo.ahead_behind("@{upstream}") or (0, 0)

    value = CachedStatus(
        current_branch=branch.value,
        is_clean=st.is_clean,
        staged=st.staged_count,
        modified=st.unstaged_count,
        untracked=st.untracked_count,
        ahead=ahead,
        behind=behind,
    )
    cache.put(key, value)
    return Ok(value)


def get_repo_status(info: RepoInfo, *, cache: StatusCache | None = None) -> Result[RepoStatusInfo, GitError]:
    if not info.exists():
        return Ok(
            RepoStatusInfo(
                name=info.name,
                exists=False,
                default_branch=info.default_branch,
                reference=info.reference,
            )
        )

    repo = Repository(info.absolute_path)
    cached = get_cached_status(repo, cache=cache)
    if isinstance(cached, Err):
        return cached
    st = cached.value

    ahead_main, behind_main = (0, 0)
    if st.current_branch != info.default_branch:
        base = f"origin/{info.default_branch}"
        if not repo.rev_exists(base):
            base = info.default_branch
        ahead_main, behind_main = repo.ahead_behind(base) or (0, 0)

    return Ok(
        RepoStatusInfo(
            name=info.name,
            exists=True,
            branch=st.current_branch,
            is_clean=st.is_clean,
            staged=st.staged,
            modified=st.modified,
            untracked=st.untracked,
            ahead=st.ahead,
            behind=st.behind,
            ahead_main=ahead_main,
            behind_main=behind_main,
            default_branch=info.default_branch,
            reference=info.reference,
        )
    )
