"""Cloning, updating and reporting gripspaces.

Nested gripspaces are discovered from the manifests of the ones already
cloned, so one pass clones a whole include chain.
"""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.gripspace import MAX_GRIPSPACE_DEPTH, gripspace_dir, gripspace_name
from gitgrip.core.manifest import GripspaceConfig, parse_included_manifest
from gitgrip.core.manifest_paths import resolve_manifest_file_in_dir
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.git.errors import GitError
from gitgrip.git.remote import clone, fetch
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.executor import Failed, Outcome, RepoOutcome, Success

__all__ = ["GripspaceService", "GripspaceStatus", "current_rev"]


@dataclass(frozen=True, slots=True)
class GripspaceStatus:
    name: str
    url: str
    cloned: bool
    rev: str | None = None
    pinned: str | None = None

    def describe(self) -> str:
        if not self.cloned:
            return "not cloned"
        return f"✓ (pinned: {self.pinned})" if self.pinned else "✓"

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "url": self.url,
            "cloned": self.cloned,
            "rev": self.rev,
            "pinned": self.pinned,
        }


def current_rev(repo: Repository) -> str | None:
    """Branch name, or the short SHA on a detached HEAD."""
    if repo.is_detached():
        sha = repo.head_sha(short=True)
        return sha.value if isinstance(sha, Ok) else None
    branch = repo.current_branch()
    return branch.value if isinstance(branch, Ok) else None


def _checkout_rev(repo: Repository, rev: str) -> Result[None, GitError]:
    """Check out a branch, tag or SHA, creating a local branch from ``origin/<rev>`` if needed."""
    if isinstance(repo.git("checkout", rev, write=True), Ok):
        return Ok(None)
    match repo.git("checkout", "-B", rev, f"origin/{rev}", write=True):
        case Ok(_):
            return Ok(None)
        case Err(e):
            message = f"Failed to checkout rev '{rev}': {e.message}"
            return Err(GitError(kind="operation_failed", message=message, command="checkout"))


class GripspaceService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def _ensure(self, config: GripspaceConfig) -> Outcome:
        path = gripspace_dir(self._workspace.spaces_dir, config.url)
        if path.exists():
            repo = Repository(path)
            fetched = fetch(repo, "origin")
            if isinstance(fetched, Err):
                return Failed(f"update failed: {fetched.error.message}")
            if config.rev:
                updated = _checkout_rev(repo, config.rev)
            else:
                updated = repo.git("pull", "--ff-only", write=True)
            if isinstance(updated, Err):
                return Failed(f"update failed: {updated.error.message}")
            return Success("updated")

        cloned = clone(config.url, path)
        if isinstance(cloned, Err):
            return Failed(f"clone failed: {cloned.error.message}")
        if config.rev:
            checked_out = _checkout_rev(cloned.value, config.rev)
            if isinstance(checked_out, Err):
                return Failed(checked_out.error.message)
        return Success("cloned")

    def _nested(self, config: GripspaceConfig) -> tuple[GripspaceConfig, ...]:
        manifest_file = resolve_manifest_file_in_dir(gripspace_dir(self._workspace.spaces_dir, config.url))
        if manifest_file is None:
            return ()
        try:
            text = manifest_file.read_text(encoding="utf-8")
        except OSError:
            return ()
        parsed = parse_included_manifest(text)
        return parsed.value.gripspaces if isinstance(parsed, Ok) else ()

    def sync(self) -> list[RepoOutcome]:
        """Clone missing gripspaces and update the rest.

        Failures are reported as warnings; resolution falls back to whatever
        is already on disk.
        """
        outcomes: list[RepoOutcome] = []
        seen: set[str] = set()
        pending = [(config, 0) for config in self._workspace.manifest.gripspaces]
        while pending:
            config, depth = pending.pop(0)
            if config.url in seen or depth >= MAX_GRIPSPACE_DEPTH:
                continue
            seen.add(config.url)
            name = gripspace_name(config.url)
            with self._console.progress(f"Syncing gripspace '{name}'..."):
                outcome = self._ensure(config)
            match outcome:
                case Success(message):
                    self._console.success(f"gripspace '{name}': {message}")
                case Failed(message):
                    self._console.warning(f"gripspace '{name}': {message}")
                case _:
                    pass
            outcomes.append(RepoOutcome(name, outcome))
            pending.extend((nested, depth + 1) for nested in self._nested(config))
        return outcomes

    def status(self) -> list[GripspaceStatus]:
        rows: list[GripspaceStatus] = []
        for config in self._workspace.manifest.gripspaces:
            path = gripspace_dir(self._workspace.spaces_dir, config.url)
            cloned = path.is_dir()
            rows.append(
                GripspaceStatus(
                    name=gripspace_name(config.url),
                    url=config.url,
                    cloned=cloned,
                    rev=current_rev(Repository(path)) if cloned else None,
                    pinned=config.rev,
                )
            )
        return rows

    def render(self, rows: list[GripspaceStatus]) -> None:
        if not rows:
            return
        self._console.newline()
        self._console.table(
            ["Gripspace", "Rev", "Status"],
            [[row.name, row.rev or "-", row.describe()] for row in rows],
        )
