"""Which repos take part in a cross-repo PR, and which PRs they have.

The git half is synchronous and runs first; the hosting half takes its
values-only output and queries every repo concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.git.branch import has_commits_ahead
from gitgrip.git.repository import Repository
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.registry import AdapterCache
from gitgrip.services.pr.errors import CoordinatorError
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["BranchTarget", "FoundPR", "Lookup", "collect_targets", "common_branch", "find_prs"]


@dataclass(frozen=True, slots=True)
class BranchTarget:
    """A repo checked out on a feature branch."""

    info: RepoInfo
    branch: str
    has_changes: bool

    @property
    def name(self) -> str:
        return self.info.name


@dataclass(frozen=True, slots=True)
class FoundPR:
    target: BranchTarget
    number: int
    url: str

    @property
    def name(self) -> str:
        return self.target.name


@dataclass(frozen=True, slots=True)
class Lookup:
    """Per-repo discovery results in target order."""

    found: tuple[FoundPR, ...] = ()
    missing: tuple[BranchTarget, ...] = ()
    errors: tuple[tuple[str, PlatformError], ...] = ()


def _base_ref(repo: Repository, default_branch: str) -> str:
    remote = f"origin/{default_branch}"
    return remote if repo.rev_exists(remote) else default_branch


def collect_targets(workspace: Workspace, selection: RepoSelection | None = None) -> list[BranchTarget]:
    """Non-reference repos (manifest repo last) that sit on a non-default branch."""
    targets: list[BranchTarget] = []
    for info in select_repos(workspace, selection, include_reference=False, include_manifest=True):
        if not info.exists():
            continue
        repo = Repository(info.absolute_path)
        branch = repo.current_branch()
        if isinstance(branch, Err) or branch.value == info.default_branch or repo.is_detached():
            continue
        ahead = has_commits_ahead(repo, _base_ref(repo, info.default_branch)).unwrap_or(False)
        targets.append(BranchTarget(info, branch.value, ahead))
    return targets


def common_branch(targets: Sequence[BranchTarget]) -> Result[str | None, CoordinatorError]:
    """The one branch shared by every target, None when there are no targets."""
    branches = sorted({t.branch for t in targets})
    if not branches:
        return Ok(None)
    if len(branches) > 1:
        detail = ", ".join(f"{t.name} on '{t.branch}'" for t in targets)
        return Err(
            CoordinatorError(
                kind="branch_mismatch",
                message=f"Repositories are on different branches: {detail}",
                hint="Run 'gr checkout <branch>' so every repo is on the same branch",
            )
        )
    return Ok(branches[0])


async def _find_one(target: BranchTarget, adapters: AdapterCache) -> Result[FoundPR | None, PlatformError]:
    adapter = adapters.for_repo(target.info)
    found = await adapter.find_pr_by_branch(target.info.owner, target.info.repo, target.branch)
    if isinstance(found, Err):
        return found
    if found.value is None:
        return Ok(None)
    return Ok(FoundPR(target, found.value.number, found.value.url))


async def find_prs(targets: Sequence[BranchTarget], adapters: AdapterCache) -> Lookup:
    results = await asyncio.gather(*(_find_one(t, adapters) for t in targets))
    found: list[FoundPR] = []
    missing: list[BranchTarget] = []
    errors: list[tuple[str, PlatformError]] = []
    for target, result in zip(targets, results, strict=True):
        match result:
            case Ok(None):
                missing.append(target)
            case Ok(pr):
                found.append(pr)
            case Err(e):
                errors.append((target.name, e))
    return Lookup(tuple(found), tuple(missing), tuple(errors))
