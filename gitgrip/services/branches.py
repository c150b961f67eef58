"""``gr branch`` and ``gr checkout`` across repos.

Reference repos are never touched. The manifest repo takes part when it is
a versioned checkout.
"""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok
from gitgrip.core.workspace import Workspace
from gitgrip.git.branch import branch_exists, checkout, create_and_checkout, delete_local, list_local
from gitgrip.git.remote import reset_hard
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.executor import Executor, Failed, Outcome, RepoOutcome, Skipped, Success
from gitgrip.services.hooks import run_hooks
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["BranchListing", "BranchService"]


@dataclass(frozen=True, slots=True)
class BranchListing:
    name: str
    current: str
    branches: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {"repo": self.name, "current": self.current, "branches": list(self.branches)}


class BranchService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def _repos(self, selection: RepoSelection | None) -> list[RepoInfo]:
        return select_repos(self._workspace, selection, include_reference=False, include_manifest=True)

    # -------------------------------------------------------------------------
    # branch
    # -------------------------------------------------------------------------

    def create(self, name: str, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        repos = self._repos(selection)
        self._console.header(f"Creating branch '{name}' in {len(repos)} repos...")
        self._console.newline()

        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if branch_exists(repo, name):
                return Success("already exists", note=True)
            match create_and_checkout(repo, name):
                case Ok(_):
                    return Success("created")
                case Err(e):
                    return Failed(e.message)

        return Executor(console=self._console).for_each_repo(repos, visit, label="Branching")

    def delete(self, name: str, selection: RepoSelection | None = None, *, force: bool = False) -> list[RepoOutcome]:
        repos = self._repos(selection)
        self._console.header(f"Deleting branch '{name}'")
        self._console.newline()

        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if not branch_exists(repo, name):
                return Success("branch doesn't exist", note=True)
            match delete_local(repo, name, force=force):
                case Ok(_):
                    return Success("deleted")
                case Err(e):
                    return Failed(e.message)

        return Executor(console=self._console).for_each_repo(repos, visit, label="Deleting")

    def move(self, name: str, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        """Move unpushed commits onto ``name`` and reset the current branch to its remote."""
        repos = self._repos(selection)
        self._console.header(f"Moving commits to branch '{name}' in {len(repos)} repos...")
        self._console.newline()

        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            current = repo.current_branch()
            if isinstance(current, Err):
                return Failed(f"failed to get current branch - {current.error.message}")
            source = current.value
            remote_ref = f"origin/{source}"
            if not repo.rev_exists(remote_ref):
                return Failed(f"no remote tracking branch {remote_ref}")
            if branch_exists(repo, name):
                return Failed(f"branch '{name}' already exists")
            if (repo.ahead_behind(remote_ref) or (0, 0))[0] == 0:
                return Skipped(f"no commits to move on {source}")

            created = repo.git("branch", name, write=True)
            if isinstance(created, Err):
                return Failed(f"failed to create branch - {created.error.message}")
            reset = reset_hard(repo, remote_ref)
            if isinstance(reset, Err):
                return Failed(f"failed to reset to {remote_ref} - {reset.error.message}")
            switched = checkout(repo, name)
            if isinstance(switched, Err):
                return Failed(f"failed to checkout new branch - {switched.error.message}")
            return Success(f"moved commits from {source} to {name}")

        return Executor(console=self._console).for_each_repo(repos, visit, label="Moving")

    def list_branches(self, selection: RepoSelection | None = None) -> list[BranchListing]:
        listings: list[BranchListing] = []
        for info in select_repos(self._workspace, selection, include_manifest=True):
            if not info.exists():
                continue
            repo = Repository(info.absolute_path)
            branches = list_local(repo)
            current = repo.current_branch()
            if isinstance(branches, Err) or isinstance(current, Err):
                self._console.failure(f"{info.name}: could not list branches")
                continue
            listings.append(BranchListing(info.name, current.value, tuple(branches.value)))
        return listings

    def render_list(self, listings: list[BranchListing]) -> None:
        for listing in listings:
            self._console.header(listing.name)
            for branch in listing.branches:
                marker = "*" if branch == listing.current else " "
                self._console.print(f"  {marker} {branch}")

    # -------------------------------------------------------------------------
    # checkout
    # -------------------------------------------------------------------------

    def checkout(
        self,
        name: str,
        selection: RepoSelection | None = None,
        *,
        create: bool = False,
        run_post_hooks: bool = True,
    ) -> list[RepoOutcome]:
        repos = self._repos(selection)
        switched: list[str] = []

        def visit(info: RepoInfo, repo: Repository) -> Outcome:
            current = repo.current_branch()
            if isinstance(current, Ok) and current.value == name:
                return Success(f"already on {name}", note=True)
            if create and not branch_exists(repo, name):
                result = create_and_checkout(repo, name)
                verb = "created and switched to"
            else:
                result = checkout(repo, name)
                verb = "switched to"
            match result:
                case Ok(_):
                    switched.append(info.name)
                    return Success(f"{verb} {name}")
                case Err(e) if e.kind == "branch_not_found":
                    return Skipped(f"branch '{name}' not found")
                case Err(e):
                    return Failed(e.message)

        outcomes = Executor(console=self._console).for_each_repo(repos, visit, label="Checking out")
        if run_post_hooks:
            run_hooks(
                self._workspace.manifest.workspace.hooks.post_checkout,
                workspace=self._workspace,
                console=self._console,
                changed_repos=switched,
                label="post-checkout",
            )
        return outcomes
