"""``gr grep`` and ``gr forall``."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok
from gitgrip.core.workspace import Workspace
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.process import run_shell
from gitgrip.services.executor import Executor, Failed, Outcome, RepoOutcome, Skipped, Success
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["ForallResult", "GrepMatch", "SearchService", "repo_env"]


@dataclass(frozen=True, slots=True)
class GrepMatch:
    repo: str
    line: str

    def render(self) -> str:
        return f"{self.repo}:{self.line}"


@dataclass(frozen=True, slots=True)
class ForallResult:
    repo: str
    returncode: int
    output: str

    def to_dict(self) -> dict[str, object]:
        return {"repo": self.repo, "exitCode": self.returncode, "output": self.output}


def repo_env(workspace: Workspace, info: RepoInfo, branch: str) -> dict[str, str]:
    env = workspace.env_vars()
    env.update(
        {
            "REPO_NAME": info.name,
            "REPO_PATH": str(info.absolute_path),
            "REPO_URL": info.url,
            "REPO_BRANCH": branch,
        }
    )
    return env


class SearchService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol, parallel: bool = False) -> None:
        self._workspace = workspace
        self._console = console
        self._parallel = parallel

    def grep(
        self,
        pattern: str,
        pathspecs: list[str] | None = None,
        selection: RepoSelection | None = None,
        *,
        ignore_case: bool = False,
    ) -> tuple[list[GrepMatch], list[RepoOutcome]]:
        """Search tracked files; ``git grep`` exiting 1 means no matches."""
        found: dict[str, list[GrepMatch]] = {}
        lock = threading.Lock()

        def visit(info: RepoInfo, repo: Repository) -> Outcome:
            args = ["grep", "-n", "--no-color"]
            if ignore_case:
                args.append("-i")
            args.extend(["-e", pattern])
            if pathspecs:
                args.extend(["--", *pathspecs])
            match repo.run_raw(args):
                case Ok(stdout):
                    matches = [GrepMatch(info.name, line) for line in stdout.splitlines() if line]
                    with lock:
                        found[info.name] = matches
                    return Success(f"{len(matches)} match(es)")
                case Err(e) if e.returncode == 1 and not e.stderr.strip():
                    return Skipped("no matches")
                case Err(e):
                    return Failed(e.detail)

        repos = select_repos(self._workspace, selection, include_manifest=True)
        executor = Executor(console=self._console, parallel=self._parallel, echo=False)
        outcomes = executor.for_each_repo(repos, visit, label="Searching")

        ordered: list[GrepMatch] = []
        for result in outcomes:
            ordered.extend(found.get(result.name, []))
            if isinstance(result.outcome, Failed):
                self._console.failure(f"{result.name}: {result.outcome.message}")
        return ordered, outcomes

    def forall(
        self,
        command: str,
        selection: RepoSelection | None = None,
        *,
        changed_only: bool = False,
        include_reference: bool = False,
    ) -> tuple[list[ForallResult], list[RepoOutcome]]:
        captured: dict[str, ForallResult] = {}
        lock = threading.Lock()

        def visit(info: RepoInfo, repo: Repository) -> Outcome:
            if changed_only and repo.is_clean():
                return Skipped("no changes")
            branch = repo.current_branch().unwrap_or("")
            outcome = run_shell(command, info.absolute_path, repo_env(self._workspace, info, branch))
            with lock:
                captured[info.name] = ForallResult(info.name, outcome.returncode, outcome.output)
            if outcome.success:
                return Success()
            return Failed(f"exit {outcome.returncode}")

        repos = select_repos(self._workspace, selection, include_reference=include_reference)
        executor = Executor(console=self._console, parallel=self._parallel, echo=False)
        outcomes = executor.for_each_repo(repos, visit, label="Running")

        results: list[ForallResult] = []
        for result in outcomes:
            entry = captured.get(result.name)
            if entry is None:
                continue
            results.append(entry)
            self._console.header(result.name)
            if entry.output.strip():
                self._console.print(entry.output.rstrip("\n"))
            if isinstance(result.outcome, Failed):
                self._console.failure(f"{result.name}: {result.outcome.message}")
        return results, outcomes

    def render_matches(self, matches: list[GrepMatch]) -> None:
        if not matches:
            self._console.print("No matches", Style.DIM)
            return
        for match in matches:
            self._console.print(match.render())
