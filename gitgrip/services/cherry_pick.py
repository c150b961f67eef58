"""``gr cherry-pick`` across repos.

A commit usually exists in one repo only, so repos without it are skipped
without a per-repo line.
"""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err
from gitgrip.core.workspace import Workspace
from gitgrip.git.cherry_pick import (
    Applied,
    CommitNotFound,
    Conflict,
    PickError,
    cherry_pick,
    cherry_pick_abort,
    cherry_pick_continue,
    cherry_pick_in_progress,
)
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.executor import Executor, Failed, Outcome, RepoOutcome, Skipped, Success, Summary, print_outcome
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["CherryPickReport", "CherryPickService"]

_NOT_FOUND = "commit not found"


@dataclass(frozen=True, slots=True)
class CherryPickReport:
    sha: str
    outcomes: tuple[RepoOutcome, ...]

    @property
    def summary(self) -> Summary:
        return Summary.from_outcomes(self.outcomes)

    def summary_line(self) -> str:
        s = self.summary
        return f"Cherry-picked into {s.success_count} repo(s), {s.skip_count} skipped."

    def to_dict(self) -> dict[str, object]:
        return {
            "sha": self.sha,
            "applied": [o.name for o in self.outcomes if isinstance(o.outcome, Success)],
            "skipped": [o.name for o in self.outcomes if isinstance(o.outcome, Skipped)],
            "summary": self.summary.to_dict(),
        }


class CherryPickService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def _repos(self, selection: RepoSelection | None) -> list[RepoInfo]:
        return select_repos(self._workspace, selection, include_reference=False)

    def pick(self, sha: str, selection: RepoSelection | None = None) -> CherryPickReport:
        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            match cherry_pick(repo, sha):
                case Applied():
                    return Success("applied")
                case CommitNotFound():
                    return Skipped(_NOT_FOUND)
                case Conflict(text):
                    return Failed(f"conflict - resolve and run 'gr cherry-pick --continue'\n{text}")
                case PickError(text):
                    return Failed(text)

        self._console.header(f"Cherry-picking {sha[:7]}")
        outcomes = Executor(console=self._console, echo=False).for_each_repo(
            self._repos(selection), visit, label="Cherry-picking"
        )
        for result in outcomes:
            if result.outcome != Skipped(_NOT_FOUND):
                print_outcome(self._console, result)

        report = CherryPickReport(sha=sha, outcomes=tuple(outcomes))
        self._console.newline()
        if report.summary.has_errors:
            report.summary.report(self._console)
        else:
            self._console.success(report.summary_line())
        return report

    def abort(self, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if not cherry_pick_in_progress(repo):
                return Skipped("no cherry-pick in progress")
            result = cherry_pick_abort(repo)
            if isinstance(result, Err):
                return Failed(result.error.message)
            return Success("cherry-pick aborted")

        return Executor(console=self._console).for_each_repo(self._repos(selection), visit, label="Aborting")

    def resume(self, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if not cherry_pick_in_progress(repo):
                return Skipped("no cherry-pick in progress")
            result = cherry_pick_continue(repo)
            if isinstance(result, Err):
                return Failed(result.error.message)
            return Success("cherry-pick continued")

        return Executor(console=self._console).for_each_repo(self._repos(selection), visit, label="Continuing")
