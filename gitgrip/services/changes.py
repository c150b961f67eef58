"""Working-copy commands: add, commit, diff, push, rebase."""

from __future__ import annotations

import os
from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok
from gitgrip.core.workspace import Workspace
from gitgrip.git.cache import status_cache
from gitgrip.git.remote import has_commits_to_push, push
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.executor import Executor, Failed, Outcome, RepoOutcome, Skipped, Success
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["ChangeService", "RepoDiff", "commit_identity_args"]


@dataclass(frozen=True, slots=True)
class RepoDiff:
    name: str
    diff: str

    def to_dict(self) -> dict[str, object]:
        return {"repo": self.name, "diff": self.diff}


def commit_identity_args(repo: Repository) -> list[str]:
    """``-c user.name=… -c user.email=…`` when git has no identity configured.

    Falls back to ``GIT_AUTHOR_NAME``/``GIT_AUTHOR_EMAIL`` and then ``USER``.
    """
    args: list[str] = []
    user = os.environ.get("USER") or "gitgrip"
    if isinstance(repo.git("config", "user.name"), Err):
        args.extend(["-c", f"user.name={os.environ.get('GIT_AUTHOR_NAME') or user}"])
    if isinstance(repo.git("config", "user.email"), Err):
        args.extend(["-c", f"user.email={os.environ.get('GIT_AUTHOR_EMAIL') or f'{user}@localhost'}"])
    return args


def _invalidate(repo: Repository) -> None:
    status_cache.invalidate(repo.path.resolve())


def _has_staged(repo: Repository) -> bool:
    match repo.status():
        case Ok(st):
            return st.staged_count > 0
        case Err(_):
            return False


class ChangeService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol, parallel: bool = False) -> None:
        self._workspace = workspace
        self._console = console
        self._parallel = parallel

    def _repos(self, selection: RepoSelection | None) -> list[RepoInfo]:
        return select_repos(self._workspace, selection, include_reference=False, include_manifest=True)

    def _executor(self) -> Executor:
        return Executor(console=self._console, parallel=self._parallel)

    def add(self, paths: list[str], selection: RepoSelection | None = None) -> list[RepoOutcome]:
        """Stage ``paths`` in every repo with changes; ``.`` stages everything."""
        targets = paths or ["."]

        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if repo.is_clean():
                return Skipped("no changes")
            args = ["add", "-A"] if targets == ["."] else ["add", "--", *targets]
            result = repo.git(*args, write=True)
            _invalidate(repo)
            if isinstance(result, Err):
                return Failed(result.error.message)
            return Success("staged")

        return self._executor().for_each_repo(self._repos(selection), visit, label="Staging")

    def commit(self, message: str | None, selection: RepoSelection | None = None, *, amend: bool = False) -> list[RepoOutcome]:
        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if not _has_staged(repo):
                return Skipped("nothing staged")
            args = [*commit_identity_args(repo), "commit"]
            if amend:
                args.append("--amend")
                args.extend(["-m", message] if message else ["--no-edit"])
            else:
                args.extend(["-m", message or ""])
            result = repo.git(*args, write=True)
            _invalidate(repo)
            if isinstance(result, Err):
                return Failed(result.error.message)
            sha = repo.head_sha(short=True).unwrap_or("")
            return Success(f"{'amended' if amend else 'committed'} {sha}".rstrip())

        return self._executor().for_each_repo(self._repos(selection), visit, label="Committing")

    def diff(self, selection: RepoSelection | None = None, *, staged: bool = False, stat: bool = False) -> list[RepoDiff]:
        diffs: list[RepoDiff] = []
        for info in select_repos(self._workspace, selection, include_manifest=True):
            if not info.exists():
                continue
            args = ["diff"]
            if staged:
                args.append("--cached")
            if stat:
                args.append("--stat")
            match Repository(info.absolute_path).git(*args):
                case Ok(text) if text.strip():
                    diffs.append(RepoDiff(info.name, text))
                case Ok(_):
                    pass
                case Err(e):
                    self._console.failure(f"{info.name}: {e.message}")
        return diffs

    def render_diff(self, diffs: list[RepoDiff]) -> None:
        if not diffs:
            self._console.info("No changes")
            return
        for entry in diffs:
            self._console.header(entry.name)
            self._console.print(entry.diff.rstrip("\n"))
            self._console.newline()

    def push(
        self,
        selection: RepoSelection | None = None,
        *,
        set_upstream: bool = False,
        force: bool = False,
    ) -> list[RepoOutcome]:
        self._console.header("Force pushing changes..." if force else "Pushing changes...")
        self._console.newline()

        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            current = repo.current_branch()
            if isinstance(current, Err):
                return Failed(current.error.message)
            branch = current.value
            if repo.is_detached():
                return Skipped("detached HEAD")
            needed = has_commits_to_push(repo, branch)
            if isinstance(needed, Err):
                return Failed(needed.error.message)
            if not needed.value and not force:
                return Success("nothing to push", note=True)
            upstream = set_upstream or not repo.has_upstream()
            result = push(repo, branch, set_upstream=upstream, force=force)
            if isinstance(result, Err):
                return Failed(result.error.message)
            if force:
                return Success("force pushed")
            return Success("pushed and set upstream" if upstream else "pushed")

        return self._executor().for_each_repo(self._repos(selection), visit, label="Pushing")

    # -------------------------------------------------------------------------
    # rebase
    # -------------------------------------------------------------------------

    def rebase(self, onto: str | None = None, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        """Rebase feature branches onto ``onto`` (default ``origin/<default_branch>``)."""
        self._console.header(f"Rebasing onto {onto or 'origin/<default branch>'}")
        self._console.newline()

        def visit(info: RepoInfo, repo: Repository) -> Outcome:
            branch = repo.current_branch()
            if isinstance(branch, Err):
                return Failed(branch.error.message)
            if branch.value == info.default_branch:
                return Skipped(f"on {info.default_branch}")
            target = onto or f"origin/{info.default_branch}"
            result = repo.run_raw(["rebase", target])
            _invalidate(repo)
            match result:
                case Ok(_):
                    return Success("rebased")
                case Err(e) if "CONFLICT" in e.stdout + e.stderr:
                    return Failed("conflicts - resolve and run 'gr rebase --continue'")
                case Err(e):
                    return Failed(e.detail)

        return Executor(console=self._console).for_each_repo(self._repos(selection), visit, label="Rebasing")

    def rebase_abort(self, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if not (repo.in_progress("rebase-merge") or repo.in_progress("rebase-apply")):
                return Skipped("no rebase in progress")
            result = repo.git("rebase", "--abort")
            _invalidate(repo)
            if isinstance(result, Err):
                return Failed("failed to abort")
            return Success("rebase aborted")

        return Executor(console=self._console).for_each_repo(self._repos(selection), visit, label="Aborting")

    def rebase_continue(self, selection: RepoSelection | None = None) -> list[RepoOutcome]:
        def visit(_info: RepoInfo, repo: Repository) -> Outcome:
            if not (repo.in_progress("rebase-merge") or repo.in_progress("rebase-apply")):
                return Skipped("no rebase in progress")
            result = repo.run_raw(["-c", "core.editor=true", "rebase", "--continue"])
            _invalidate(repo)
            match result:
                case Ok(_):
                    return Success("rebase continued")
                case Err(e) if "conflict" in (e.stdout + e.stderr).lower():
                    return Failed("still has conflicts")
                case Err(e):
                    return Failed(f"failed to continue: {e.detail}")

        return Executor(console=self._console).for_each_repo(self._repos(selection), visit, label="Continuing")
