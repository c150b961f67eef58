"""``gr pr merge``.

Under ``all-or-nothing`` nothing is merged unless every PR is ready, and
the run stops at the first failed merge. Under ``independent`` each ready
PR is merged on its own. Merges go in manifest order with the manifest PR
last.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.state import LinkedPR, StateFile
from gitgrip.core.workspace import Workspace
from gitgrip.hosting.contract import HostingPlatform
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.registry import AdapterCache
from gitgrip.hosting.types import MERGE_METHODS, MergeMethod
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.pr.discovery import BranchTarget, FoundPR, collect_targets, find_prs
from gitgrip.services.pr.errors import CoordinatorError
from gitgrip.services.pr.readiness import Readiness, assess_all, blocking_issues
from gitgrip.services.selection import RepoSelection

__all__ = ["MergeOptions", "MergeReport", "PRMergeService"]

UPDATE_SETTLE_SECONDS = 3.0


@dataclass(frozen=True, slots=True)
class MergeOptions:
    method: MergeMethod | None = None
    force: bool = False
    update: bool = False
    auto: bool = False
    wait: bool = False
    timeout: float = 600.0
    poll_interval: float = 15.0
    selection: RepoSelection = field(default_factory=RepoSelection)


@dataclass(frozen=True, slots=True)
class MergeReport:
    merged: tuple[str, ...] = ()
    failed: tuple[tuple[str, str], ...] = ()
    skipped: tuple[str, ...] = ()
    auto: bool = False

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "auto": self.auto,
            "merged": list(self.merged),
            "skipped": list(self.skipped),
            "failures": [{"repo": n, "error": m} for n, m in self.failed],
        }


async def _pick_method(adapter: HostingPlatform, pr: FoundPR, requested: MergeMethod | None) -> MergeMethod:
    if requested is not None:
        return requested
    allowed = await adapter.get_allowed_merge_methods(pr.target.info.owner, pr.target.info.repo)
    if isinstance(allowed, Ok):
        for method in MERGE_METHODS:
            if allowed.value.allows(method):
                return method
    return "merge"


class PRMergeService:
    def __init__(
        self,
        *,
        workspace: Workspace,
        console: ConsoleProtocol,
        adapters: AdapterCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._workspace = workspace
        self._console = console
        self._adapters = adapters or AdapterCache(console=console)
        self._sleep = sleep
        self._clock = clock

    def merge(self, options: MergeOptions | None = None) -> Result[MergeReport, CoordinatorError]:
        options = options or MergeOptions()
        targets = collect_targets(self._workspace, options.selection)
        if not targets:
            return Err(CoordinatorError(kind="no_prs", message="No repositories are on a feature branch."))
        self._console.header("Merging pull requests...")
        return asyncio.run(self._run(targets, options))

    async def _run(self, targets: Sequence[BranchTarget], options: MergeOptions) -> Result[MergeReport, CoordinatorError]:
        lookup = await find_prs(targets, self._adapters)
        for name, error in lookup.errors:
            self._console.failure(f"{name}: {error.message}")
        if not lookup.found:
            return Err(CoordinatorError(kind="no_prs", message="No open PRs found for any repository."))
        skipped = tuple(t.name for t in lookup.missing)
        if skipped:
            self._console.info(
                f"Merging {len(lookup.found)} repo(s) with open PRs. "
                f"{len(skipped)} repo(s) have no open PRs and will be skipped."
            )
            for name in skipped:
                self._console.info(f"  - {name}: skipped (no open PR)")

        if options.auto:
            return Ok(await self._enable_auto(lookup.found, options, skipped))

        if options.wait:
            waited = await self._wait_until_ready(lookup.found, options.timeout, options.poll_interval)
            if isinstance(waited, Err):
                return waited
            readiness = waited.value
        else:
            readiness = await assess_all(lookup.found, self._adapters)

        all_or_nothing = self._workspace.manifest.settings.merge_strategy == "all-or-nothing"
        issues = blocking_issues(readiness)
        if issues and not options.force:
            if all_or_nothing:
                self._console.warning("Some PRs have issues:")
                for issue in issues:
                    self._console.print(f"  - {issue}")
                lagging = ", ".join(f"{r.name} #{r.number}" for r in readiness if not r.ready)
                return Err(
                    CoordinatorError(
                        kind="not_ready",
                        message=f"Not all PRs are ready to merge: {lagging}",
                        hint="Use --force to merge anyway, or --wait to wait for them",
                    )
                )
            for issue in issues:
                self._console.warning(issue)

        to_merge = [r for r in readiness if r.ready or options.force]
        not_merged = tuple(r.name for r in readiness if not (r.ready or options.force))
        merged: list[str] = []
        failed: list[tuple[str, str]] = []
        for item in to_merge:
            outcome = await self._merge_one(item.pr, options)
            if isinstance(outcome, Ok):
                merged.append(item.name)
                continue
            failed.append((item.name, outcome.error))
            if all_or_nothing and not options.force:
                self._console.error("Stopping due to all-or-nothing merge strategy. Use --force to bypass.")
                self._record(merged, readiness)
                return Err(CoordinatorError(kind="merge_failed", message=f"{item.name}: {outcome.error}"))
            if all_or_nothing:
                self._console.warning(f"{item.name}: merge failed but continuing due to --force flag")

        self._record(merged, readiness)
        report = MergeReport(tuple(merged), tuple(failed), skipped + not_merged)
        self._console.newline()
        if failed:
            self._console.warning(f"{len(merged)} merged, {len(failed)} failed")
        else:
            self._console.success(f"Successfully merged {len(merged)} PR(s).")
        return Ok(report)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _wait_until_ready(
        self, prs: Sequence[FoundPR], timeout: float, interval: float
    ) -> Result[list[Readiness], CoordinatorError]:
        deadline = self._clock() + timeout
        while True:
            readiness = await assess_all(prs, self._adapters)
            pending = [r for r in readiness if not r.ready]
            if not pending:
                return Ok(readiness)
            if any(r.checks is not None and r.checks.state == "failure" for r in pending):
                return Ok(readiness)
            if self._clock() >= deadline:
                names = ", ".join(f"{r.name} #{r.number}" for r in pending)
                return Err(CoordinatorError(kind="timeout", message=f"Timed out waiting for PRs to become ready: {names}"))
            self._console.info(f"Waiting for {len(pending)} PR(s) to become ready...")
            await self._sleep(interval)

    async def _merge_one(self, pr: FoundPR, options: MergeOptions) -> Result[None, str]:
        info = pr.target.info
        adapter = self._adapters.for_repo(info)
        method = await _pick_method(adapter, pr, options.method)
        with self._console.progress(f"Merging {pr.name} PR #{pr.number}..."):
            result = await adapter.merge_pull_request(info.owner, info.repo, pr.number, method, True)
            if isinstance(result, Err) and result.error.kind == "branch_behind" and options.update:
                result = await self._update_and_retry(adapter, pr, method, result.error)

        match result:
            case Ok(True):
                self._console.success(f"{pr.name}: merged PR #{pr.number}")
                return Ok(None)
            case Ok(False):
                return await self._confirm_merged(adapter, pr)
            case Err(PlatformError(kind="branch_behind")):
                self._console.failure(f"{pr.name}: PR #{pr.number} branch is behind base branch")
                self._console.info("  Hint: use 'gr pr merge --update' to update the branch and retry")
                return Err("branch is behind base branch")
            case Err(PlatformError(kind="branch_protected", message=message)):
                self._console.failure(f"{pr.name}: {message}")
                self._console.info("  Hint: use 'gr pr merge --auto' to enable auto-merge when checks pass")
                return Err(message)
            case Err(e):
                self._console.failure(f"{pr.name}: failed - {e.message}")
                return Err(e.message)

    async def _confirm_merged(self, adapter: HostingPlatform, pr: FoundPR) -> Result[None, str]:
        """The host declined the merge; it only counts if the PR is already merged."""
        info = pr.target.info
        match await adapter.get_pull_request(info.owner, info.repo, pr.number):
            case Ok(current) if current.merged:
                self._console.success(f"{pr.name}: PR #{pr.number} was already merged")
                return Ok(None)
            case Ok(_):
                self._console.failure(f"{pr.name}: PR #{pr.number} could not be merged (not mergeable)")
                return Err("PR is not mergeable")
            case Err(e):
                self._console.failure(f"{pr.name}: merge not confirmed - {e.message}")
                return Err(f"merge not confirmed: {e.message}")

    async def _update_and_retry(
        self, adapter: HostingPlatform, pr: FoundPR, method: MergeMethod, error: PlatformError
    ) -> Result[bool, PlatformError]:
        info = pr.target.info
        self._console.info(f"{pr.name}: branch behind base, updating...")
        updated = await adapter.update_branch(info.owner, info.repo, pr.number)
        match updated:
            case Ok(True):
                await self._sleep(UPDATE_SETTLE_SECONDS)
                return await adapter.merge_pull_request(info.owner, info.repo, pr.number, method, True)
            case Ok(False):
                self._console.info(f"{pr.name}: branch already up to date")
            case Err(e):
                self._console.warning(f"{pr.name}: branch update failed - {e.message}")
        return Err(error)

    async def _enable_auto(self, prs: Sequence[FoundPR], options: MergeOptions, skipped: tuple[str, ...]) -> MergeReport:
        enabled: list[str] = []
        failed: list[tuple[str, str]] = []
        for pr in prs:
            info = pr.target.info
            adapter = self._adapters.for_repo(info)
            method = await _pick_method(adapter, pr, options.method)
            match await adapter.enable_auto_merge(info.owner, info.repo, pr.number, method):
                case Ok(True):
                    self._console.success(f"{pr.name}: PR #{pr.number} will auto-merge when checks pass")
                    enabled.append(pr.name)
                case Ok(False):
                    self._console.failure(f"{pr.name}: PR #{pr.number} auto-merge could not be enabled")
                    failed.append((pr.name, "auto-merge could not be enabled"))
                case Err(e):
                    self._console.failure(f"{pr.name}: failed - {e.message}")
                    failed.append((pr.name, e.message))
        self._console.newline()
        if failed:
            self._console.warning(f"{len(enabled)} auto-merge enabled, {len(failed)} failed")
        else:
            self._console.success(
                f"Auto-merge enabled for {len(enabled)} PR(s). They will merge when all checks pass."
            )
        return MergeReport(tuple(enabled), tuple(failed), skipped, auto=True)

    def _record(self, merged: Sequence[str], readiness: Sequence[Readiness]) -> None:
        """Mark merged PRs in the state file when they are tracked there."""
        if not merged:
            return
        loaded = StateFile.load(self._workspace.state_path)
        if isinstance(loaded, Err):
            self._console.warning(f"State not updated: {loaded.error.message}")
            return
        state = loaded.value
        branch = readiness[0].pr.target.branch
        anchor = state.get_pr_for_branch(branch)
        if anchor is None:
            return

        def mark_merged(link: LinkedPR) -> None:
            link.state = "merged"

        for name in merged:
            state.update_linked_pr(anchor, name, mark_merged)
        saved = state.save(self._workspace.state_path)
        if isinstance(saved, Err):
            self._console.warning(f"State not updated: {saved.error.message}")
