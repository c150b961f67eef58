"""``gr pr status``, ``gr pr checks``, ``gr pr diff`` and the state refresh."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.state import CheckDetails, LinkedPR, StateFile
from gitgrip.core.workspace import Workspace
from gitgrip.hosting.contract import HostingPlatform
from gitgrip.hosting.registry import AdapterCache, get_platform_adapter
from gitgrip.hosting.types import PRState
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.services.pr.discovery import BranchTarget, FoundPR, collect_targets, find_prs
from gitgrip.services.pr.errors import CoordinatorError
from gitgrip.services.pr.readiness import Readiness, assess_all
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["PRDiff", "PRStatusReport", "PRStatusService"]


@dataclass(frozen=True, slots=True)
class PRStatusReport:
    rows: tuple[Readiness, ...]
    missing: tuple[BranchTarget, ...] = ()
    errors: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "prs": [r.to_dict() for r in self.rows],
            "withoutPr": [{"repo": t.name, "branch": t.branch, "hasChanges": t.has_changes} for t in self.missing],
            "errors": [{"repo": n, "error": m} for n, m in self.errors],
        }


@dataclass(frozen=True, slots=True)
class PRDiff:
    repo_name: str
    number: int
    diff: str

    def to_dict(self) -> dict[str, object]:
        return {"repo": self.repo_name, "number": self.number, "diff": self.diff}


def _yes_no(value: bool | None) -> str:
    if value is None:
        return "?"
    return "yes" if value else "no"


class PRStatusService:
    def __init__(
        self,
        *,
        workspace: Workspace,
        console: ConsoleProtocol,
        adapters: AdapterCache | None = None,
    ) -> None:
        self._workspace = workspace
        self._console = console
        self._adapters = adapters or AdapterCache(console=console)

    # -------------------------------------------------------------------------
    # status / checks
    # -------------------------------------------------------------------------

    def status(self, selection: RepoSelection | None = None) -> PRStatusReport:
        targets = collect_targets(self._workspace, selection)
        if not targets:
            return PRStatusReport(rows=())
        with self._console.progress("Fetching PR status..."):
            return asyncio.run(self._status(targets))

    async def _status(self, targets: Sequence[BranchTarget]) -> PRStatusReport:
        lookup = await find_prs(targets, self._adapters)
        rows = await assess_all(lookup.found, self._adapters)
        errors = tuple((name, e.message) for name, e in lookup.errors)
        return PRStatusReport(tuple(rows), lookup.missing, errors)

    def render_status(self, report: PRStatusReport) -> None:
        if not report.rows and not report.missing and not report.errors:
            self._console.info("No repositories are on a feature branch.")
            return
        rows = [
            [
                r.name,
                f"#{r.number}",
                r.state,
                _yes_no(r.approved),
                r.checks.state if r.checks is not None else "unknown",
                _yes_no(r.mergeable),
                "ready" if r.ready else "not ready",
            ]
            for r in report.rows
        ]
        for target in report.missing:
            rows.append([target.name, "-", "no PR yet" if target.has_changes else "no PR", "", "", "", ""])
        self._console.table(["Repo", "PR", "State", "Approved", "Checks", "Mergeable", "Ready"], rows)
        for name, message in report.errors:
            self._console.failure(f"{name}: {message}")
        for r in report.rows:
            if r.error is not None:
                self._console.failure(f"{r.name}: {r.error}")
        self._console.newline()
        ready = sum(1 for r in report.rows if r.ready)
        self._console.print(f"{ready}/{len(report.rows)} PR(s) ready to merge", Style.BOLD)

    def render_checks(self, report: PRStatusReport) -> None:
        if not report.rows:
            self._console.info("No open PRs found.")
            return
        for r in report.rows:
            line = f"{r.name} PR #{r.number}"
            match r.checks:
                case None:
                    self._console.warning(f"{line}: check status unknown")
                case checks:
                    tally = f"{checks.passed} passed, {checks.failed} failed, {checks.pending} pending ({checks.total} total)"
                    if checks.state == "success":
                        self._console.success(f"{line}: {tally}")
                    elif checks.state == "failure":
                        self._console.failure(f"{line}: {tally}")
                    else:
                        self._console.warning(f"{line}: {tally}")

    # -------------------------------------------------------------------------
    # diff
    # -------------------------------------------------------------------------

    def diff(self, selection: RepoSelection | None = None) -> Result[list[PRDiff], CoordinatorError]:
        targets = collect_targets(self._workspace, selection)
        if not targets:
            return Err(CoordinatorError(kind="no_prs", message="No repositories are on a feature branch."))
        return asyncio.run(self._diff(targets))

    async def _diff(self, targets: Sequence[BranchTarget]) -> Result[list[PRDiff], CoordinatorError]:
        lookup = await find_prs(targets, self._adapters)
        if lookup.errors:
            name, error = lookup.errors[0]
            return Err(CoordinatorError.from_platform(name, error))
        if not lookup.found:
            return Err(CoordinatorError(kind="no_prs", message="No open PRs found for any repository."))

        async def one(pr: FoundPR) -> Result[PRDiff, CoordinatorError]:
            info = pr.target.info
            text = await self._adapters.for_repo(info).get_pull_request_diff(info.owner, info.repo, pr.number)
            if isinstance(text, Err):
                return Err(CoordinatorError.from_platform(pr.name, text.error))
            return Ok(PRDiff(pr.name, pr.number, text.value))

        diffs: list[PRDiff] = []
        for result in await asyncio.gather(*(one(pr) for pr in lookup.found)):
            if isinstance(result, Err):
                return result
            diffs.append(result.value)
        return Ok(diffs)

    def render_diff(self, diffs: Sequence[PRDiff]) -> None:
        for item in diffs:
            self._console.header(f"{item.repo_name} PR #{item.number}")
            self._console.print(item.diff.rstrip("\n"))
            self._console.newline()

    # -------------------------------------------------------------------------
    # refresh
    # -------------------------------------------------------------------------

    def _adapter_for(self, link: LinkedPR, infos: dict[str, RepoInfo]) -> HostingPlatform:
        info = infos.get(link.repo_name)
        if info is not None:
            return self._adapters.for_repo(info)
        match link.platform_type:
            case "gitlab" | "azure-devops" | "bitbucket" as platform:
                return get_platform_adapter(platform, console=self._console)
            case _:
                return get_platform_adapter("github", console=self._console)

    def refresh(self) -> Result[int, CoordinatorError]:
        """Re-read every tracked linked PR from its host and persist the state file.

        Returns the number of linked PRs updated.
        """
        loaded = StateFile.load(self._workspace.state_path)
        if isinstance(loaded, Err):
            return Err(CoordinatorError(kind="state", message=loaded.error.message, hint=loaded.error.hint))
        state = loaded.value
        links = [link for group in state.pr_links.values() for link in group]
        if not links:
            return Ok(0)
        infos = {i.name: i for i in select_repos(self._workspace, include_manifest=True)}
        updated = asyncio.run(self._refresh_links(links, infos))
        saved = state.save(self._workspace.state_path)
        if isinstance(saved, Err):
            return Err(CoordinatorError(kind="state", message=saved.error.message))
        return Ok(updated)

    async def _refresh_links(self, links: Sequence[LinkedPR], infos: dict[str, RepoInfo]) -> int:
        async def one(link: LinkedPR) -> bool:
            adapter = self._adapter_for(link, infos)
            fetched = await adapter.get_pull_request(link.owner, link.repo, link.number)
            if isinstance(fetched, Err):
                self._console.warning(f"{link.repo_name}: PR #{link.number} not refreshed - {fetched.error.message}")
                return False
            pr = fetched.value
            approved, checks = await asyncio.gather(
                adapter.is_pull_request_approved(link.owner, link.repo, link.number),
                adapter.get_status_checks(link.owner, link.repo, pr.head.sha or pr.head.ref),
            )
            state: PRState = "merged" if pr.merged else pr.state
            link.state = state
            link.approved = approved.unwrap_or(link.approved)
            link.mergeable = pr.mergeable is True
            if isinstance(checks, Ok):
                details = checks.value.details()
                link.checks_pass = details.state == "success"
                link.check_details = CheckDetails(
                    state=details.state, passed=details.passed, failed=details.failed, pending=details.pending
                )
            return True

        results = await asyncio.gather(*(one(link) for link in links))
        return sum(1 for ok in results if ok)
