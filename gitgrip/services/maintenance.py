"""``gr gc`` and ``gr prune``."""

from __future__ import annotations

from dataclasses import dataclass, field

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok
from gitgrip.core.workspace import Workspace
from gitgrip.git.branch import delete_local, is_merged, list_local
from gitgrip.git.gc import GcResult, format_bytes, git_dir_size, run_gc
from gitgrip.git.remote import fetch
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.executor import Executor, Failed, Outcome, RepoOutcome, Success
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["GcReport", "MaintenanceService", "PruneReport", "merged_branches"]


@dataclass(frozen=True, slots=True)
class GcReport:
    outcomes: tuple[RepoOutcome, ...]
    results: dict[str, GcResult] = field(default_factory=dict[str, GcResult])

    @property
    def total_before(self) -> int:
        return sum(r.size_before for r in self.results.values())

    @property
    def total_saved(self) -> int:
        return sum(r.saved for r in self.results.values())

    def to_dict(self) -> dict[str, object]:
        return {
            "repos": [
                {"repo": name, "sizeBefore": r.size_before, "sizeAfter": r.size_after, "success": r.success}
                for name, r in self.results.items()
            ],
            "totalSaved": self.total_saved,
        }


@dataclass(frozen=True, slots=True)
class PruneReport:
    branches: dict[str, list[str]]
    executed: bool

    @property
    def total(self) -> int:
        return sum(len(b) for b in self.branches.values())

    def to_dict(self) -> dict[str, object]:
        return {"executed": self.executed, "branches": self.branches, "total": self.total}


def merged_branches(repo: Repository, default_branch: str) -> list[str]:
    """Local branches merged into ``default_branch``, current and default excluded."""
    current = repo.current_branch().unwrap_or("")
    branches = list_local(repo)
    if isinstance(branches, Err):
        return []
    found: list[str] = []
    for branch in branches.value:
        if branch in (current, default_branch):
            continue
        if is_merged(repo, branch, default_branch).unwrap_or(False):
            found.append(branch)
    return found


class MaintenanceService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def gc(
        self,
        selection: RepoSelection | None = None,
        *,
        aggressive: bool = False,
        dry_run: bool = False,
    ) -> GcReport:
        results: dict[str, GcResult] = {}
        repos = select_repos(self._workspace, selection, include_manifest=True)
        title = "Garbage collecting"
        if aggressive:
            title += " (aggressive)"
        self._console.header(f"{title} {len(repos)} repos...")
        self._console.newline()

        def visit(info: RepoInfo, repo: Repository) -> Outcome:
            if dry_run:
                return Success(f".git is {format_bytes(git_dir_size(repo))}")
            match run_gc(repo, aggressive=aggressive):
                case Ok(gc):
                    results[info.name] = gc
                    if not gc.success:
                        return Failed("git gc failed")
                    return Success(
                        f"{format_bytes(gc.size_before)} -> {format_bytes(gc.size_after)} "
                        f"(saved {format_bytes(gc.saved)})"
                    )
                case Err(e):
                    return Failed(e.message)

        outcomes = Executor(console=self._console).for_each_repo(repos, visit, label="Collecting")
        report = GcReport(outcomes=tuple(outcomes), results=results)
        if not dry_run:
            self._console.newline()
            self._console.success(f"Total saved: {format_bytes(report.total_saved)}")
        return report

    def prune(
        self,
        selection: RepoSelection | None = None,
        *,
        execute: bool = False,
        remote: bool = False,
    ) -> PruneReport:
        self._console.header("Pruning merged branches..." if execute else "Pruning merged branches (dry run)...")
        self._console.newline()

        pruned: dict[str, list[str]] = {}
        for info in select_repos(self._workspace, selection, include_reference=False):
            if not info.exists():
                continue
            repo = Repository(info.absolute_path)
            candidates = merged_branches(repo, info.default_branch)
            if candidates:
                self._console.print(f"{info.name}:")
            done: list[str] = []
            for branch in candidates:
                if not execute:
                    self._console.print(f"  Would delete: {branch}")
                    done.append(branch)
                    continue
                match delete_local(repo, branch):
                    case Ok(_):
                        self._console.success(f"  Deleted: {branch}")
                        done.append(branch)
                    case Err(e):
                        self._console.failure(f"  Failed to delete '{branch}': {e.message}")
            if done:
                pruned[info.name] = done
            if remote:
                fetched = fetch(repo, prune=True)
                if isinstance(fetched, Err):
                    self._console.warning(f"{info.name}: failed to prune remote refs: {fetched.error.message}")

        report = PruneReport(branches=pruned, executed=execute)
        self._console.newline()
        if report.total == 0:
            self._console.success("No merged branches to prune.")
        elif execute:
            self._console.success(f"Pruned {report.total} branch(es) across {len(pruned)} repo(s).")
        else:
            self._console.info(f"Found {report.total} merged branch(es) across {len(pruned)} repo(s).")
            self._console.warning("Run with --execute to actually delete them.")
        return report
