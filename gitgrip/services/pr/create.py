"""``gr pr create``: one PR per changed repo, all sharing one branch."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from gitgrip.core.repo import MANIFEST_REPO_NAME
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.state import LinkedPR, StateFile
from gitgrip.core.workspace import Workspace
from gitgrip.git.remote import push
from gitgrip.git.repository import Repository
from gitgrip.hosting.linked_prs import upsert_linked_pr_comment
from gitgrip.hosting.registry import AdapterCache
from gitgrip.hosting.types import LinkedPRRef
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.pr.discovery import BranchTarget, collect_targets, common_branch, find_prs
from gitgrip.services.pr.errors import CoordinatorError
from gitgrip.services.selection import RepoSelection

__all__ = [
    "CreateOptions",
    "CreateReport",
    "CreatedPR",
    "PRCreateService",
    "prefixed_title",
    "title_from_branch",
]

_BRANCH_PREFIXES = ("feat/", "fix/", "chore/")


def title_from_branch(branch: str) -> str:
    """``feat/add-login`` -> ``Add login``."""
    title = branch
    for prefix in _BRANCH_PREFIXES:
        title = title.removeprefix(prefix)
    title = title.replace("-", " ").replace("_", " ")
    return title[:1].upper() + title[1:]


def prefixed_title(prefix: str, title: str) -> str:
    if not prefix or title.startswith(prefix):
        return title
    return f"{prefix} {title}"


@dataclass(frozen=True, slots=True)
class CreateOptions:
    title: str | None = None
    body: str | None = None
    draft: bool = False
    push: bool = False
    dry_run: bool = False
    selection: RepoSelection = field(default_factory=RepoSelection)


@dataclass(frozen=True, slots=True)
class CreatedPR:
    repo_name: str
    number: int
    url: str
    existing: bool = False

    def to_dict(self) -> dict[str, object]:
        return {"repo": self.repo_name, "number": self.number, "url": self.url, "existing": self.existing}


@dataclass(frozen=True, slots=True)
class CreateReport:
    branch: str
    title: str
    repos: tuple[str, ...]
    created: tuple[CreatedPR, ...] = ()
    failed: tuple[tuple[str, str], ...] = ()
    dry_run: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "success": not self.failed,
            "branch": self.branch,
            "title": self.title,
            "dryRun": self.dry_run,
            "repos": list(self.repos),
            "prs": [pr.to_dict() for pr in self.created],
            "failures": [{"repo": n, "error": m} for n, m in self.failed],
        }


class PRCreateService:
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

    def create(self, options: CreateOptions | None = None) -> Result[CreateReport, CoordinatorError]:
        options = options or CreateOptions()
        targets = [t for t in collect_targets(self._workspace, options.selection) if t.has_changes]
        branch = common_branch(targets)
        if isinstance(branch, Err):
            return branch
        if branch.value is None:
            return Err(
                CoordinatorError(
                    kind="no_changes",
                    message="No repositories have changes to create PRs for.",
                    hint="Commit on a feature branch first",
                )
            )

        settings = self._workspace.manifest.settings
        title = prefixed_title(settings.pr_prefix, options.title or title_from_branch(branch.value))
        names = tuple(t.name for t in targets)

        if options.dry_run:
            self._preview(targets, branch.value, title, options)
            return Ok(CreateReport(branch.value, title, names, dry_run=True))

        self._console.header("Creating pull requests...")
        if options.push:
            self._push_all(targets, branch.value)

        report = asyncio.run(self._create_all(targets, branch.value, title, options))
        saved = self._record(report, targets)
        if isinstance(saved, Err):
            return saved

        self._console.newline()
        if not report.created:
            self._console.warning("No PRs were created.")
        else:
            self._console.success(f"Created {len(report.created)} PR(s):")
            for pr in report.created:
                self._console.print(f"  {pr.repo_name}: #{pr.number} - {pr.url}")
        return Ok(report)

    def _preview(self, targets: Sequence[BranchTarget], branch: str, title: str, options: CreateOptions) -> None:
        self._console.header("PR Preview")
        self._console.info(f"Branch: {branch}")
        self._console.info(f"Title: {title}")
        if options.body:
            self._console.info(f"Body: {options.body}")
        if options.draft:
            self._console.info("Type: Draft PR")
        self._console.newline()
        self._console.print("Repositories that would create PRs:")
        for target in targets:
            self._console.print(f"  - {target.name} ({target.info.owner}/{target.info.repo})")
        self._console.newline()
        self._console.warning("Run without --dry-run to actually create the PRs.")

    def _push_all(self, targets: Sequence[BranchTarget], branch: str) -> None:
        self._console.info("Pushing branches first...")
        for target in targets:
            with self._console.progress(f"Pushing {target.name}..."):
                pushed = push(Repository(target.info.absolute_path), branch, set_upstream=True)
            if isinstance(pushed, Err):
                self._console.failure(f"{target.name}: push failed - {pushed.error.message}")
            else:
                self._console.success(f"{target.name}: pushed")

    async def _create_all(
        self,
        targets: Sequence[BranchTarget],
        branch: str,
        title: str,
        options: CreateOptions,
    ) -> CreateReport:
        lookup = await find_prs(targets, self._adapters)
        by_name: dict[str, CreatedPR] = {}
        failed: list[tuple[str, str]] = []

        for pr in lookup.found:
            self._console.info(f"{pr.name}: PR #{pr.number} already exists - {pr.url}")
            by_name[pr.name] = CreatedPR(pr.name, pr.number, pr.url, existing=True)
        for name, error in lookup.errors:
            self._console.failure(f"{name}: {error.message}")
            failed.append((name, error.message))

        async def open_pr(target: BranchTarget) -> None:
            info = target.info
            adapter = self._adapters.for_repo(info)
            result = await adapter.create_pull_request(
                info.owner, info.repo, branch, info.default_branch, title, options.body, options.draft
            )
            match result:
                case Ok(created):
                    self._console.success(f"{info.name}: created PR #{created.number} - {created.url}")
                    by_name[info.name] = CreatedPR(info.name, created.number, created.url)
                case Err(e):
                    self._console.failure(f"{info.name}: failed - {e.message}")
                    failed.append((info.name, e.message))

        await asyncio.gather(*(open_pr(t) for t in lookup.missing))

        created = tuple(by_name[t.name] for t in targets if t.name in by_name)
        if len(created) > 1:
            await self._link_bodies(created, targets)
        return CreateReport(branch, title, tuple(t.name for t in targets), created, tuple(failed))

    async def _link_bodies(self, created: Sequence[CreatedPR], targets: Sequence[BranchTarget]) -> None:
        """Write the sibling list into every PR body, replacing any earlier block."""
        refs = [LinkedPRRef(pr.repo_name, pr.number) for pr in created]
        infos = {t.name: t.info for t in targets}

        async def rewrite(pr: CreatedPR) -> None:
            info = infos[pr.repo_name]
            adapter = self._adapters.for_repo(info)
            fetched = await adapter.get_pull_request(info.owner, info.repo, pr.number)
            if isinstance(fetched, Err):
                self._console.warning(f"{pr.repo_name}: could not link PR #{pr.number} - {fetched.error.message}")
                return
            body = upsert_linked_pr_comment(fetched.value.body, refs)
            if body == fetched.value.body:
                return
            updated = await adapter.update_pull_request_body(info.owner, info.repo, pr.number, body)
            if isinstance(updated, Err):
                self._console.warning(f"{pr.repo_name}: could not link PR #{pr.number} - {updated.error.message}")

        await asyncio.gather(*(rewrite(pr) for pr in created))

    def _record(self, report: CreateReport, targets: Sequence[BranchTarget]) -> Result[None, CoordinatorError]:
        """Key the linked PRs by the manifest PR, or by the first PR without one."""
        if not report.created:
            return Ok(None)
        loaded = StateFile.load(self._workspace.state_path)
        if isinstance(loaded, Err):
            return Err(CoordinatorError(kind="state", message=loaded.error.message, hint=loaded.error.hint))
        state = loaded.value
        anchor = next((pr for pr in report.created if pr.repo_name == MANIFEST_REPO_NAME), report.created[0])
        state.set_pr_for_branch(report.branch, anchor.number)
        state.current_manifest_pr = anchor.number
        infos = {t.name: t.info for t in targets}
        links = [
            LinkedPR(
                repo_name=pr.repo_name,
                owner=infos[pr.repo_name].owner,
                repo=infos[pr.repo_name].repo,
                number=pr.number,
                url=pr.url,
                platform_type=infos[pr.repo_name].platform_type,
            )
            for pr in report.created
        ]
        state.set_linked_prs(anchor.number, links)
        saved = state.save(self._workspace.state_path)
        if isinstance(saved, Err):
            return Err(CoordinatorError(kind="state", message=saved.error.message))
        return Ok(None)
