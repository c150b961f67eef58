"""``gr sync`` and ``gr pull``.

Sync clones missing repos and safe-pulls the rest, manifest repo first and
gripspaces second.
Inside a griptree, repos sitting on the griptree branch are fast-forwarded
from their mapped upstream instead of their own tracking branch.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from gitgrip.core.repo import RepoInfo, get_manifest_repo_info
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace, load_workspace
from gitgrip.git.branch import has_commits_ahead, is_worktree_conflict
from gitgrip.git.remote import PullMode, PullOutcome, clone, fetch, safe_pull_latest
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.agent import AgentService
from gitgrip.services.errors import ServiceError
from gitgrip.services.executor import (
    Executor,
    Failed,
    Outcome,
    RepoOutcome,
    Skipped,
    Success,
    Summary,
    print_outcome,
)
from gitgrip.services.gripspaces import GripspaceService
from gitgrip.services.hooks import HookResult, run_hooks
from gitgrip.services.links import LinkService
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["SyncOptions", "SyncReport", "SyncService"]


@dataclass(frozen=True, slots=True)
class SyncOptions:
    selection: RepoSelection = field(default_factory=RepoSelection)
    parallel: bool = True
    reset_refs: bool = False
    no_hooks: bool = False
    no_links: bool = False


@dataclass(frozen=True, slots=True)
class SyncReport:
    outcomes: tuple[RepoOutcome, ...]
    changed: tuple[str, ...] = ()
    hooks: tuple[HookResult, ...] = ()
    links_applied: int = 0
    gripspaces: tuple[RepoOutcome, ...] = ()

    @property
    def summary(self) -> Summary:
        return Summary.from_outcomes(self.outcomes)

    def to_dict(self) -> dict[str, object]:
        summary = self.summary
        return {
            "success": not summary.has_errors,
            "repos": [_outcome_dict(o, o.name in self.changed) for o in self.outcomes],
            "hooks": [h.to_dict() for h in self.hooks],
            "links": self.links_applied,
            "gripspaces": [_outcome_dict(o, False) for o in self.gripspaces],
            "summary": summary.to_dict(),
        }


def _outcome_dict(result: RepoOutcome, changed: bool) -> dict[str, object]:
    match result.outcome:
        case Success(message):
            return {"name": result.name, "status": "ok", "message": message, "changed": changed}
        case Skipped(reason):
            return {"name": result.name, "status": "skipped", "message": reason, "changed": False}
        case Failed(message):
            return {"name": result.name, "status": "error", "message": message, "changed": False}


def _from_pull(outcome: PullOutcome) -> Outcome:
    match outcome.action:
        case "pulled" | "fetched":
            return Success(outcome.message)
        case "skipped":
            return Skipped(outcome.message)
        case "failed":
            return Failed(outcome.message)


class SyncService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console
        self._changed: set[str] = set()
        self._lock = threading.Lock()

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    def _mark_changed(self, name: str) -> None:
        with self._lock:
            self._changed.add(name)

    # -------------------------------------------------------------------------
    # Per-repo steps
    # -------------------------------------------------------------------------

    def _griptree_upstream(self, info: RepoInfo, branch: str) -> Result[str | None, ServiceError]:
        """Mapped upstream when ``info`` sits on the griptree branch, else None."""
        griptree = self._workspace.griptree
        if griptree is None or branch != griptree.branch:
            return Ok(None)
        match griptree.upstream_for_repo(info.name, info.default_branch):
            case Ok(upstream):
                return Ok(upstream)
            case Err(e):
                return Err(ServiceError(kind="user", message=e.message))

    def _clone(self, info: RepoInfo) -> Outcome:
        result = clone(info.url, info.absolute_path, info.default_branch)
        if isinstance(result, Err):
            return Failed(f"clone failed - {result.error.message}")
        self._mark_changed(info.name)
        actual = result.value.current_branch()
        if isinstance(actual, Ok) and actual.value != info.default_branch:
            return Success(f"cloned (on '{actual.value}', manifest specifies '{info.default_branch}')")
        return Success("cloned")

    def _reset_reference(self, info: RepoInfo, repo: Repository) -> Outcome:
        upstream = f"origin/{info.default_branch}"
        griptree = self._workspace.griptree
        if griptree is not None:
            mapped = griptree.upstream_for_repo(info.name, info.default_branch)
            if isinstance(mapped, Err):
                return Failed(mapped.error.message)
            upstream = mapped.value
        remote, _, branch = upstream.partition("/")

        if not repo.is_clean():
            self._console.warning(f"{info.name}: --reset-refs will discard local changes")
        fetched = fetch(repo, remote)
        if isinstance(fetched, Err):
            return Failed(fetched.error.message)
        if has_commits_ahead(repo, upstream).unwrap_or(False):
            self._console.warning(f"{info.name}: --reset-refs will discard local commits not in {upstream}")

        checked_out = repo.git("checkout", "-B", branch, upstream, write=True)
        if isinstance(checked_out, Err):
            if not is_worktree_conflict(checked_out.error.message):
                return Failed(checked_out.error.message)
            detached = repo.git("checkout", "--detach", upstream, write=True)
            if isinstance(detached, Err):
                return Failed(f"{checked_out.error.message} (fallback detach failed: {detached.error.message})")
            self._mark_changed(info.name)
            return Success(f"reset to {upstream} (detached)")
        reset = repo.git("reset", "--hard", upstream, write=True)
        if isinstance(reset, Err):
            return Failed(reset.error.message)
        self._mark_changed(info.name)
        return Success(f"reset to {upstream}")

    def _pull(self, info: RepoInfo, repo: Repository, mode: PullMode) -> Outcome:
        current = repo.current_branch()
        if isinstance(current, Err):
            return Failed(current.error.message)
        upstream = self._griptree_upstream(info, current.value)
        if isinstance(upstream, Err):
            return Failed(upstream.error.message)

        if upstream.value is not None:
            result = safe_pull_latest(
                repo,
                current.value,
                upstream.value.partition("/")[0],
                mode,
                upstream_override=upstream.value,
                base_mapped=True,
            )
        else:
            result = safe_pull_latest(repo, info.default_branch, "origin", mode)

        if isinstance(result, Err):
            return Failed(result.error.message)
        if result.value.action == "pulled":
            self._mark_changed(info.name)
        return _from_pull(result.value)

    def _sync_one(self, info: RepoInfo, *, reset_refs: bool) -> Outcome:
        if not info.exists():
            return self._clone(info)
        repo = Repository(info.absolute_path)
        if info.reference and reset_refs:
            return self._reset_reference(info, repo)
        return self._pull(info, repo, "merge")

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _sync_manifest_repo(self) -> RepoOutcome | None:
        info = get_manifest_repo_info(self._workspace.manifest, self._workspace.root)
        if info is None or not info.exists():
            return None
        with self._console.progress("Syncing manifest..."):
            result = RepoOutcome(info.name, self._pull(info, Repository(info.absolute_path), "merge"))
        print_outcome(self._console, result)
        if info.name in self._changed:
            reloaded = load_workspace(self._workspace.root)
            if isinstance(reloaded, Ok):
                self._workspace = reloaded.value
            else:
                self._console.warning(f"Manifest reload failed: {reloaded.error.message}")
        return result

    def sync_manifest(self) -> Result[RepoOutcome, ServiceError]:
        """Pull only the manifest repository (``gr manifest sync``)."""
        outcome = self._sync_manifest_repo()
        if outcome is None:
            return Err(
                ServiceError(
                    kind="env",
                    message="No manifest repository in this workspace",
                    hint="The manifest directory is not a git clone",
                )
            )
        return Ok(outcome)

    def _sync_gripspaces(self) -> list[RepoOutcome]:
        """Clone or update gripspaces, then re-resolve the manifest.

        When the re-resolved manifest does not load, the pre-sync one stays in use.
        """
        count = len(self._workspace.manifest.gripspaces)
        self._console.header(f"Syncing {count} gripspace(s)...")
        outcomes = GripspaceService(workspace=self._workspace, console=self._console).sync()
        match load_workspace(self._workspace.root):
            case Ok(reloaded):
                self._workspace = reloaded
            case Err(e):
                self._console.warning(f"Gripspace resolution failed: {e.message}. Using the pre-sync manifest.")
        self._console.newline()
        return outcomes

    def _generate_agent_context(self) -> None:
        agent = self._workspace.manifest.workspace.agent
        if agent is None or not agent.targets:
            return
        generated = AgentService(workspace=self._workspace, console=self._console).generate_context()
        if isinstance(generated, Err):
            self._console.warning(f"Agent context generation failed: {generated.error.message}")

    def sync(self, options: SyncOptions | None = None) -> SyncReport:
        options = options or SyncOptions()
        self._changed.clear()
        outcomes: list[RepoOutcome] = []

        manifest_outcome = self._sync_manifest_repo()
        if manifest_outcome is not None:
            outcomes.append(manifest_outcome)

        gripspaces: list[RepoOutcome] = []
        if self._workspace.manifest.gripspaces:
            gripspaces = self._sync_gripspaces()

        repos = select_repos(self._workspace, options.selection)
        executor = Executor(console=self._console, parallel=options.parallel)
        outcomes.extend(
            executor.for_each_info(
                repos, lambda info: self._sync_one(info, reset_refs=options.reset_refs), label="Syncing"
            )
        )

        self._generate_agent_context()

        applied = 0
        if not options.no_links:
            applied, _failed = LinkService(workspace=self._workspace, console=self._console).apply()

        hooks: list[HookResult] = []
        if not options.no_hooks:
            hooks = run_hooks(
                self._workspace.manifest.workspace.hooks.post_sync,
                workspace=self._workspace,
                console=self._console,
                changed_repos=self._changed,
                label="post-sync",
            )

        return SyncReport(
            outcomes=tuple(outcomes),
            changed=tuple(sorted(self._changed)),
            hooks=tuple(hooks),
            links_applied=applied,
            gripspaces=tuple(gripspaces),
        )

    def pull(
        self,
        selection: RepoSelection | None = None,
        *,
        mode: PullMode = "merge",
        parallel: bool = True,
    ) -> list[RepoOutcome]:
        repos = select_repos(self._workspace, selection, include_manifest=True)
        executor = Executor(console=self._console, parallel=parallel)
        return executor.for_each_repo(repos, lambda info, repo: self._pull(info, repo, mode), label="Pulling")
