"""Griptrees: sibling workspaces built from git worktrees.

A griptree for branch ``feat/x`` of workspace ``/src/ws`` lives at
``/src/ws-feat-x``. It holds one worktree per non-reference repo, its own
``.gitgrip/`` (config plus manifest), and a ``.griptree`` pointer back to
the main workspace. The main workspace keeps the registry.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from gitgrip.core.griptree import (
    GriptreeConfig,
    GriptreeEntry,
    GriptreeError,
    GriptreePointer,
    GriptreeRegistry,
    GriptreeRepoEntry,
    griptree_config_path,
    sanitize_branch,
)
from gitgrip.core.manifest_paths import GRIPTREE_POINTER_FILE, PRIMARY_FILE_NAME, main_space_dir
from gitgrip.core.repo import RepoInfo, get_manifest_repo_info
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace, load_workspace
from gitgrip.git.branch import branch_exists, checkout, delete_local, remote_branch_exists
from gitgrip.git.cache import status_cache
from gitgrip.git.remote import delete_remote_branch
from gitgrip.git.repository import Repository
from gitgrip.git.worktree import add_worktree, prune_worktrees, remove_worktree
from gitgrip.output.console import ConsoleProtocol
from gitgrip.platform.files import atomic_write_text
from gitgrip.services.errors import ServiceError
from gitgrip.services.links import LinkService
from gitgrip.services.selection import select_repos
from gitgrip.services.sync import SyncOptions, SyncService

__all__ = [
    "CreatedGriptree",
    "GriptreeListing",
    "GriptreeService",
    "ReturnOptions",
    "griptree_path_for",
    "manifest_worktree_branch",
]

type GriptreeStatus = Literal["active", "locked", "missing", "unregistered"]


def griptree_path_for(main_root: Path, branch: str) -> Path:
    return main_root.parent / f"{main_root.name}-{sanitize_branch(branch)}"


def manifest_worktree_branch(branch: str) -> str:
    return f"griptree-{sanitize_branch(branch)}"


def _from_griptree_error(error: GriptreeError) -> ServiceError:
    kind = "io" if error.kind in ("io", "parse") else "user"
    return ServiceError(kind=kind, message=error.message, hint=error.hint)


@dataclass(frozen=True, slots=True)
class CreatedGriptree:
    branch: str
    path: Path
    created: tuple[str, ...]
    failed: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "branch": self.branch,
            "path": str(self.path),
            "repos": list(self.created),
            "failed": [{"repo": n, "error": m} for n, m in self.failed],
        }


@dataclass(frozen=True, slots=True)
class GriptreeListing:
    branch: str
    path: str
    status: GriptreeStatus
    lock_reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"branch": self.branch, "path": self.path, "status": self.status, "lockReason": self.lock_reason}


@dataclass(frozen=True, slots=True)
class ReturnOptions:
    base: str | None = None
    no_sync: bool = False
    autostash: bool = False
    prune_branch: str | None = None
    prune_current: bool = False
    prune_remote: bool = False
    force: bool = False


@dataclass(slots=True)
class _Rollback:
    """Worktrees created so far, torn down if creation fails as a whole."""

    tree_path: Path
    worktrees: list[tuple[Repository, Path]] = field(default_factory=list[tuple[Repository, Path]])

    def record(self, main: Repository, worktree: Path) -> None:
        self.worktrees.append((main, worktree))

    def run(self, console: ConsoleProtocol) -> None:
        for main, worktree in reversed(self.worktrees):
            removed = remove_worktree(main, worktree, force=True)
            if isinstance(removed, Err):
                console.warning(f"rollback: {removed.error.message}")
            prune_worktrees(main)
        shutil.rmtree(self.tree_path, ignore_errors=True)


class GriptreeService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    @property
    def main_root(self) -> Path:
        return self._workspace.main_root

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def _load_registry(self) -> Result[GriptreeRegistry, ServiceError]:
        match GriptreeRegistry.load(self._workspace.griptrees_path):
            case Ok(registry):
                return Ok(registry)
            case Err(e):
                return Err(_from_griptree_error(e))

    def _save_registry(self, registry: GriptreeRegistry) -> Result[None, ServiceError]:
        return registry.save(self._workspace.griptrees_path).map_err(_from_griptree_error)

    def _entry(self, registry: GriptreeRegistry, branch: str) -> Result[GriptreeEntry, ServiceError]:
        entry = registry.griptrees.get(branch)
        if entry is None:
            return Err(
                ServiceError(kind="user", message=f"Griptree for '{branch}' not found", hint="See 'gr tree list'")
            )
        return Ok(entry)

    # -------------------------------------------------------------------------
    # create
    # -------------------------------------------------------------------------

    def create(self, branch: str) -> Result[CreatedGriptree, ServiceError]:
        registry = self._load_registry()
        if isinstance(registry, Err):
            return registry
        if branch in registry.value.griptrees:
            return Err(ServiceError(kind="user", message=f"Griptree for '{branch}' already exists"))

        tree_path = griptree_path_for(self.main_root, branch)
        if tree_path.exists():
            return Err(ServiceError(kind="user", message=f"Directory already exists: {tree_path}"))

        self._console.header(f"Creating griptree for branch '{branch}'")
        try:
            tree_path.mkdir(parents=True)
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to create {tree_path}: {e}"))

        rollback = _Rollback(tree_path)
        config = GriptreeConfig.new(branch, tree_path)
        pointer = GriptreePointer(main_workspace=str(self.main_root), branch=branch, created_at=config.created_at)
        created: list[str] = []
        failed: list[tuple[str, str]] = []

        for info in select_repos(self._workspace, include_reference=False):
            if not info.exists():
                self._console.warning(f"{info.name}: not cloned, skipping")
                continue
            main = Repository(info.absolute_path)
            original = main.current_branch().unwrap_or("")
            dest = tree_path / info.path
            with self._console.progress(f"{info.name}..."):
                result = add_worktree(main, dest, branch)
            match result:
                case Ok(_):
                    rollback.record(main, dest)
                    created.append(info.name)
                    config.repo_upstreams[info.name] = f"origin/{info.default_branch}"
                    pointer.repos.append(
                        GriptreeRepoEntry(
                            name=info.name,
                            original_branch=original,
                            worktree_name=sanitize_branch(branch),
                            worktree_path=str(dest),
                            main_repo_path=str(info.absolute_path),
                        )
                    )
                    self._console.success(f"{info.name}: created on {branch}")
                case Err(e):
                    failed.append((info.name, e.message))
                    self._console.failure(f"{info.name}: failed - {e.message}")

        manifest_result = self._create_manifest_space(tree_path, branch, rollback)
        match manifest_result:
            case Ok(manifest_branch):
                if manifest_branch is not None:
                    pointer.manifest_branch = manifest_branch
                    pointer.manifest_worktree_name = manifest_branch
                    created.append("manifest")
            case Err(message):
                failed.append(("manifest", message))

        if not created:
            self._console.error("Griptree creation failed - no worktrees were created")
            rollback.run(self._console)
            return Err(ServiceError(kind="git", message="Griptree creation failed, rolled back"))

        saved = config.save(griptree_config_path(tree_path))
        if isinstance(saved, Ok):
            saved = pointer.save(tree_path / GRIPTREE_POINTER_FILE)
        if isinstance(saved, Err):
            rollback.run(self._console)
            return Err(_from_griptree_error(saved.error))

        registry.value.griptrees[branch] = GriptreeEntry(branch=branch, path=str(tree_path))
        stored = self._save_registry(registry.value)
        if isinstance(stored, Err):
            return stored

        self._apply_links(tree_path)
        self._console.newline()
        if failed:
            self._console.warning(f"Griptree created with {len(created)} success, {len(failed)} errors")
        else:
            self._console.success(f"Griptree created at {tree_path} with {len(created)} repo(s)")
        return Ok(CreatedGriptree(branch, tree_path, tuple(created), tuple(failed)))

    def _create_manifest_space(
        self, tree_path: Path, branch: str, rollback: _Rollback
    ) -> Result[str | None, str]:
        """Manifest worktree (versioned manifest) or a copy of the manifest file."""
        info = get_manifest_repo_info(self._workspace.manifest, self._workspace.root)
        if info is not None and info.exists():
            dest = tree_path / info.path
            manifest_branch = manifest_worktree_branch(branch)
            main = Repository(info.absolute_path)
            match add_worktree(main, dest, manifest_branch):
                case Ok(_):
                    rollback.record(main, dest)
                    self._console.success(f"manifest: created on {manifest_branch}")
                    return Ok(manifest_branch)
                case Err(e):
                    self._console.failure(f"manifest: failed - {e.message}")
                    return Err(e.message)

        target = main_space_dir(tree_path) / PRIMARY_FILE_NAME
        try:
            atomic_write_text(target, self._workspace.manifest_path.read_text(encoding="utf-8"))
        except OSError as e:
            self._console.failure(f"manifest: copy failed - {e}")
            return Err(str(e))
        return Ok(None)

    def _apply_links(self, tree_path: Path) -> None:
        loaded = load_workspace(tree_path)
        if isinstance(loaded, Err):
            self._console.warning(f"Failed to apply links: {loaded.error.message}")
            return
        _applied, failed = LinkService(workspace=loaded.value, console=self._console).apply()
        if failed:
            self._console.warning(f"{len(failed)} link(s) could not be applied")

    # -------------------------------------------------------------------------
    # list / discovery
    # -------------------------------------------------------------------------

    def discover(self, registry: GriptreeRegistry) -> list[GriptreeListing]:
        """Sibling directories whose pointer targets this workspace but are not registered."""
        registered = {entry.path for entry in registry.griptrees.values()}
        parent = self.main_root.parent
        found: list[GriptreeListing] = []
        try:
            candidates = sorted(p for p in parent.iterdir() if p.is_dir())
        except OSError:
            return found
        for path in candidates:
            if path == self.main_root or str(path) in registered:
                continue
            pointer_file = path / GRIPTREE_POINTER_FILE
            if not pointer_file.is_file():
                continue
            loaded = GriptreePointer.load(pointer_file)
            if isinstance(loaded, Ok) and Path(loaded.value.main_workspace) == self.main_root:
                found.append(GriptreeListing(loaded.value.branch, str(path), "unregistered"))
        return found

    def list_griptrees(self) -> Result[list[GriptreeListing], ServiceError]:
        registry = self._load_registry()
        if isinstance(registry, Err):
            return registry
        listings: list[GriptreeListing] = []
        for branch, entry in sorted(registry.value.griptrees.items()):
            status: GriptreeStatus
            if not Path(entry.path).exists():
                status = "missing"
            elif entry.locked:
                status = "locked"
            else:
                status = "active"
            listings.append(GriptreeListing(branch, entry.path, status, entry.lock_reason))
        listings.extend(self.discover(registry.value))
        return Ok(listings)

    def render_list(self, listings: list[GriptreeListing]) -> None:
        self._console.header("Griptrees")
        registered = [g for g in listings if g.status != "unregistered"]
        if not registered:
            self._console.print("No griptrees configured.")
        for g in registered:
            suffix = "" if g.status == "active" else f" ({g.status})"
            self._console.print(f"  {g.branch} -> {g.path}{suffix}")
            if g.lock_reason:
                self._console.print(f"    Lock reason: {g.lock_reason}")
        unregistered = [g for g in listings if g.status == "unregistered"]
        if unregistered:
            self._console.newline()
            self._console.warning("Found unregistered griptrees:")
            for g in unregistered:
                self._console.print(f"  {g.branch} -> {g.path} (unregistered)")

    # -------------------------------------------------------------------------
    # remove
    # -------------------------------------------------------------------------

    def remove(self, branch: str, *, force: bool = False) -> Result[None, ServiceError]:
        registry = self._load_registry()
        if isinstance(registry, Err):
            return registry
        entry = self._entry(registry.value, branch)
        if isinstance(entry, Err):
            return entry
        if entry.value.locked and not force:
            reason = f" ({entry.value.lock_reason})" if entry.value.lock_reason else ""
            return Err(
                ServiceError(
                    kind="user",
                    message=f"Griptree '{branch}' is locked{reason}",
                    hint="Unlock it with 'gr tree unlock' or pass --force",
                )
            )

        self._console.header(f"Removing griptree for '{branch}'")
        tree_path = Path(entry.value.path)
        for main, worktree in self._worktrees_of(tree_path):
            removed = remove_worktree(main, worktree, force=True)
            if isinstance(removed, Err):
                self._console.warning(f"{worktree}: {removed.error.message}")

        if tree_path.exists():
            try:
                shutil.rmtree(tree_path)
            except OSError as e:
                return Err(ServiceError(kind="io", message=f"Failed to delete {tree_path}: {e}"))

        for main, _info in self._main_repos():
            prune_worktrees(main)

        del registry.value.griptrees[branch]
        saved = self._save_registry(registry.value)
        if isinstance(saved, Err):
            return saved
        self._console.success(f"Griptree '{branch}' removed")
        return Ok(None)

    def _worktrees_of(self, tree_path: Path) -> list[tuple[Repository, Path]]:
        """(main repo, worktree) pairs for a griptree, from its pointer when readable."""
        pointer_file = tree_path / GRIPTREE_POINTER_FILE
        loaded = GriptreePointer.load(pointer_file) if pointer_file.is_file() else None
        if not isinstance(loaded, Ok):
            return [(main, tree_path / info.path) for main, info in self._main_repos()]
        pairs = [
            (Repository(Path(repo.main_repo_path)), Path(repo.worktree_path))
            for repo in loaded.value.repos
            if repo.main_repo_path and repo.worktree_path
        ]
        info = get_manifest_repo_info(self._workspace.manifest, self._workspace.root)
        if info is not None and info.exists():
            pairs.append((Repository(info.absolute_path), tree_path / info.path))
        return pairs

    def _main_repos(self) -> list[tuple[Repository, RepoInfo]]:
        return [
            (Repository(info.absolute_path), info)
            for info in select_repos(self._workspace, include_reference=False, include_manifest=True)
            if info.exists()
        ]

    # -------------------------------------------------------------------------
    # lock / unlock
    # -------------------------------------------------------------------------

    def set_locked(self, branch: str, locked: bool, reason: str | None = None) -> Result[None, ServiceError]:
        registry = self._load_registry()
        if isinstance(registry, Err):
            return registry
        entry = self._entry(registry.value, branch)
        if isinstance(entry, Err):
            return entry
        entry.value.locked = locked
        entry.value.lock_reason = reason if locked else None
        saved = self._save_registry(registry.value)
        if isinstance(saved, Err):
            return saved

        tree_path = Path(entry.value.path)
        config_path = griptree_config_path(tree_path)
        if config_path.is_file():
            config = GriptreeConfig.load(config_path)
            if isinstance(config, Ok):
                if locked:
                    config.value.lock(reason)
                else:
                    config.value.unlock()
                if isinstance(config.value.save(config_path), Err):
                    self._console.warning(f"Failed to update {config_path}")
        pointer_file = tree_path / GRIPTREE_POINTER_FILE
        if pointer_file.is_file():
            pointer = GriptreePointer.load(pointer_file)
            if isinstance(pointer, Ok):
                pointer.value.locked = locked
                if isinstance(pointer.value.save(pointer_file), Err):
                    self._console.warning(f"Failed to update {pointer_file}")

        if locked:
            self._console.success(f"Griptree '{branch}' locked" + (f": {reason}" if reason else ""))
        else:
            self._console.success(f"Griptree '{branch}' unlocked")
        return Ok(None)

    # -------------------------------------------------------------------------
    # return
    # -------------------------------------------------------------------------

    def return_to_base(self, options: ReturnOptions) -> Result[int, ServiceError]:
        """Switch repos back to the griptree base branch.

        Returns the number of repos that could not be switched.
        """
        base = options.base or (self._workspace.griptree.branch if self._workspace.griptree else None)
        if base is None:
            return Err(
                ServiceError(
                    kind="user",
                    message="No griptree config found. Use --base <branch> to specify the base branch.",
                )
            )

        repos = [r for r in select_repos(self._workspace, include_reference=False, include_manifest=True) if r.exists()]
        self._console.header(f"Returning to {base} and syncing upstreams...")

        current: dict[str, str] = {}
        dirty: list[RepoInfo] = []
        for info in repos:
            repo = Repository(info.absolute_path)
            current[info.name] = repo.current_branch().unwrap_or("")
            if not repo.is_clean():
                dirty.append(info)
        if dirty and not options.autostash:
            names = ", ".join(r.name for r in dirty)
            return Err(ServiceError(kind="user", message=f"Uncommitted changes in: {names}. Use --autostash to proceed."))

        stashed: list[RepoInfo] = []
        for info in dirty:
            stash = Repository(info.absolute_path).git("stash", "push", "-u", "-m", "gr tree return", write=True)
            if isinstance(stash, Err):
                self._console.failure(f"{info.name}: stash failed - {stash.error.message}")
            else:
                stashed.append(info)

        failures = 0
        for info in repos:
            repo = Repository(info.absolute_path)
            if current[info.name] == base:
                self._console.success(f"{info.name}: already on {base}")
                continue
            if not branch_exists(repo, base):
                self._console.warning(f"{info.name}: branch '{base}' does not exist, skipping")
                failures += 1
                continue
            match checkout(repo, base):
                case Ok(_):
                    self._console.success(f"{info.name}: checked out {base}")
                case Err(e):
                    self._console.failure(f"{info.name}: {e.message}")
                    failures += 1

        if not options.no_sync:
            SyncService(workspace=self._workspace, console=self._console).sync(SyncOptions(parallel=False))

        if options.prune_branch or options.prune_current:
            self._prune_after_return(repos, current, base, options)

        for info in stashed:
            popped = Repository(info.absolute_path).git("stash", "pop", write=True)
            status_cache.invalidate(info.absolute_path.resolve())
            if isinstance(popped, Err):
                self._console.warning(f"{info.name}: stash pop failed - {popped.error.message}")

        if failures:
            self._console.warning(f"Return completed with {failures} checkout error(s)")
        else:
            self._console.success("Return completed")
        return Ok(failures)

    def _prune_after_return(
        self,
        repos: list[RepoInfo],
        current: dict[str, str],
        base: str,
        options: ReturnOptions,
    ) -> None:
        for info in repos:
            repo = Repository(info.absolute_path)
            target = options.prune_branch or current.get(info.name, "")
            if not target or target == base:
                continue
            if not branch_exists(repo, target):
                self._console.info(f"{info.name}: branch '{target}' not found, skipping")
                continue
            deleted = delete_local(repo, target, force=options.force)
            if isinstance(deleted, Err):
                self._console.warning(f"{info.name}: failed to delete '{target}' - {deleted.error.message}")
                continue
            self._console.success(f"{info.name}: deleted local branch '{target}'")
            if not options.prune_remote:
                continue
            if not remote_branch_exists(repo, target):
                self._console.info(f"{info.name}: remote branch 'origin/{target}' not found, skipping")
                continue
            match delete_remote_branch(repo, target):
                case Ok(_):
                    self._console.success(f"{info.name}: deleted remote branch 'origin/{target}'")
                case Err(e):
                    self._console.warning(f"{info.name}: failed to delete remote 'origin/{target}' - {e.message}")
