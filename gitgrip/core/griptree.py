"""Griptree data model: per-tree config, pointer file and workspace registry.

Files:
- ``<griptree>/.gitgrip/griptree.json``: :class:`GriptreeConfig`
- ``<griptree>/.griptree``: :class:`GriptreePointer` back to the main workspace
- ``<workspace>/.gitgrip/griptrees.json``: :class:`GriptreeRegistry`
"""

from __future__ import annotations

import getpass
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from gitgrip.core.manifest_paths import (
    GITGRIP_DIR,
    GRIPTREE_CONFIG_FILE,
    GRIPTREE_POINTER_FILE,
)
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_bool,
    get_str,
    get_str_map,
)
from gitgrip.platform.files import atomic_write_json

__all__ = [
    "GriptreeConfig",
    "GriptreeEntry",
    "GriptreeError",
    "GriptreePointer",
    "GriptreeRegistry",
    "GriptreeRepoEntry",
    "find_pointer_in_ancestors",
    "griptree_config_path",
    "sanitize_branch",
    "validate_upstream_ref",
]


@dataclass(frozen=True, slots=True)
class GriptreeError:
    kind: Literal["io", "parse", "locked", "not_found", "invalid_upstream", "exists", "failed"]
    message: str
    hint: str | None = None


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def sanitize_branch(branch: str) -> str:
    """Directory/worktree-safe form of a branch name (``/`` becomes ``-``)."""
    return branch.replace("/", "-").replace("\\", "-")


def griptree_config_path(griptree_root: Path) -> Path:
    return griptree_root / GITGRIP_DIR / GRIPTREE_CONFIG_FILE


def validate_upstream_ref(upstream: str) -> Result[str, GriptreeError]:
    """Accept ``<remote>/<branch>`` only."""
    remote, _, branch = upstream.partition("/")
    if not remote.strip() or not branch.strip():
        return Err(
            GriptreeError(
                kind="invalid_upstream",
                message=f"Invalid upstream reference: {upstream}. Expected format: <remote>/<branch>",
            )
        )
    return Ok(upstream)


def _read_json(path: Path) -> Result[StrDict, GriptreeError]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return Err(GriptreeError(kind="io", message=f"Failed to read {path}: {e}"))
    try:
        data_obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(GriptreeError(kind="parse", message=f"Failed to parse {path}: {e}"))
    data = as_str_dict(data_obj)
    if data is None:
        return Err(GriptreeError(kind="parse", message=f"{path} must contain a JSON object"))
    return Ok(data)


def _write_json(path: Path, data: StrDict) -> Result[None, GriptreeError]:
    try:
        atomic_write_json(path, data)
    except OSError as e:
        return Err(GriptreeError(kind="io", message=f"Failed to write {path}: {e}"))
    return Ok(None)


# -----------------------------------------------------------------------------
# GriptreeConfig
# -----------------------------------------------------------------------------


def _empty_upstreams() -> dict[str, str]:
    return {}


@dataclass(slots=True)
class GriptreeConfig:
    """Per-griptree metadata stored inside the griptree itself."""

    branch: str
    path: str
    created_at: str = field(default_factory=_now)
    created_by: str | None = None
    locked: bool = False
    locked_at: str | None = None
    locked_reason: str | None = None
    repo_upstreams: dict[str, str] = field(default_factory=_empty_upstreams)

    @classmethod
    def new(cls, branch: str, path: Path) -> GriptreeConfig:
        try:
            user: str | None = getpass.getuser()
        except (KeyError, OSError):
            user = None
        return cls(branch=branch, path=str(path), created_by=user)

    def upstream_for_repo(self, repo_name: str, default_branch: str) -> Result[str, GriptreeError]:
        """Mapped upstream for ``repo_name``, else ``origin/<default_branch>``."""
        upstream = self.repo_upstreams.get(repo_name, f"origin/{default_branch}")
        return validate_upstream_ref(upstream)

    def lock(self, reason: str | None = None) -> None:
        self.locked = True
        self.locked_at = _now()
        self.locked_reason = reason

    def unlock(self) -> None:
        self.locked = False
        self.locked_at = None
        self.locked_reason = None

    def to_dict(self) -> StrDict:
        data: StrDict = {
            "branch": self.branch,
            "path": self.path,
            "createdAt": self.created_at,
            "locked": self.locked,
        }
        if self.created_by is not None:
            data["createdBy"] = self.created_by
        if self.locked_at is not None:
            data["lockedAt"] = self.locked_at
        if self.locked_reason is not None:
            data["lockedReason"] = self.locked_reason
        if self.repo_upstreams:
            data["repoUpstreams"] = dict(sorted(self.repo_upstreams.items()))
        return data

    @classmethod
    def from_dict(cls, data: StrDict) -> Result[GriptreeConfig, GriptreeError]:
        branch = get_str(data, "branch")
        path = get_str(data, "path")
        if branch is None or path is None:
            return Err(GriptreeError(kind="parse", message="griptree config needs 'branch' and 'path'"))
        return Ok(
            cls(
                branch=branch,
                path=path,
                created_at=get_str(data, "createdAt") or _now(),
                created_by=get_str(data, "createdBy"),
                locked=get_bool(data, "locked"),
                locked_at=get_str(data, "lockedAt"),
                locked_reason=get_str(data, "lockedReason"),
                repo_upstreams=get_str_map(data, "repoUpstreams"),
            )
        )

    @classmethod
    def load(cls, path: Path) -> Result[GriptreeConfig, GriptreeError]:
        data = _read_json(path)
        if isinstance(data, Err):
            return data
        return cls.from_dict(data.value)

    @classmethod
    def load_from_workspace(cls, workspace_root: Path) -> Result[GriptreeConfig | None, GriptreeError]:
        """Config of the griptree rooted at ``workspace_root``; None for a main workspace."""
        path = griptree_config_path(workspace_root)
        if not path.is_file():
            return Ok(None)
        loaded = cls.load(path)
        if isinstance(loaded, Err):
            return loaded
        return Ok(loaded.value)

    def save(self, path: Path) -> Result[None, GriptreeError]:
        return _write_json(path, self.to_dict())


# -----------------------------------------------------------------------------
# GriptreePointer
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GriptreeRepoEntry:
    name: str
    original_branch: str
    is_reference: bool = False
    worktree_name: str | None = None
    worktree_path: str | None = None
    main_repo_path: str | None = None

    def to_dict(self) -> StrDict:
        data: StrDict = {
            "name": self.name,
            "originalBranch": self.original_branch,
            "isReference": self.is_reference,
        }
        if self.worktree_name is not None:
            data["worktreeName"] = self.worktree_name
        if self.worktree_path is not None:
            data["worktreePath"] = self.worktree_path
        if self.main_repo_path is not None:
            data["mainRepoPath"] = self.main_repo_path
        return data

    @classmethod
    def from_dict(cls, data: StrDict) -> GriptreeRepoEntry | None:
        name = get_str(data, "name")
        if name is None:
            return None
        return cls(
            name=name,
            original_branch=get_str(data, "originalBranch") or "",
            is_reference=get_bool(data, "isReference"),
            worktree_name=get_str(data, "worktreeName"),
            worktree_path=get_str(data, "worktreePath"),
            main_repo_path=get_str(data, "mainRepoPath"),
        )


@dataclass(slots=True)
class GriptreePointer:
    """``.griptree`` file: lets a process inside a griptree find its main workspace."""

    main_workspace: str
    branch: str
    locked: bool = False
    created_at: str | None = None
    repos: list[GriptreeRepoEntry] = field(default_factory=list[GriptreeRepoEntry])
    manifest_branch: str | None = None
    manifest_worktree_name: str | None = None

    def to_dict(self) -> StrDict:
        data: StrDict = {
            "mainWorkspace": self.main_workspace,
            "branch": self.branch,
            "locked": self.locked,
            "repos": [repo.to_dict() for repo in self.repos],
        }
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        if self.manifest_branch is not None:
            data["manifestBranch"] = self.manifest_branch
        if self.manifest_worktree_name is not None:
            data["manifestWorktreeName"] = self.manifest_worktree_name
        return data

    @classmethod
    def from_dict(cls, data: StrDict) -> Result[GriptreePointer, GriptreeError]:
        main = get_str(data, "mainWorkspace")
        branch = get_str(data, "branch")
        if main is None or branch is None:
            return Err(GriptreeError(kind="parse", message="griptree pointer needs 'mainWorkspace' and 'branch'"))
        repos: list[GriptreeRepoEntry] = []
        for item in as_obj_list(data.get("repos")) or []:
            item_dict = as_str_dict(item)
            entry = GriptreeRepoEntry.from_dict(item_dict) if item_dict else None
            if entry is not None:
                repos.append(entry)
        return Ok(
            cls(
                main_workspace=main,
                branch=branch,
                locked=get_bool(data, "locked"),
                created_at=get_str(data, "createdAt"),
                repos=repos,
                manifest_branch=get_str(data, "manifestBranch"),
                manifest_worktree_name=get_str(data, "manifestWorktreeName"),
            )
        )

    @classmethod
    def load(cls, path: Path) -> Result[GriptreePointer, GriptreeError]:
        data = _read_json(path)
        if isinstance(data, Err):
            return data
        return cls.from_dict(data.value)

    def save(self, path: Path) -> Result[None, GriptreeError]:
        return _write_json(path, self.to_dict())


def find_pointer_in_ancestors(start: Path) -> tuple[Path, GriptreePointer] | None:
    """Walk up from ``start`` to the first readable ``.griptree`` pointer.

    Symlinked pointer files are ignored, and ``start`` is not resolved, so
    the walk never crosses into a symlink target's ancestry.
    """
    current = start.absolute()
    while True:
        candidate = current / GRIPTREE_POINTER_FILE
        if candidate.is_file() and not candidate.is_symlink():
            loaded = GriptreePointer.load(candidate)
            if isinstance(loaded, Ok):
                return current, loaded.value
        if current.parent == current:
            return None
        current = current.parent


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class GriptreeEntry:
    branch: str
    path: str
    locked: bool = False
    lock_reason: str | None = None

    def to_dict(self) -> StrDict:
        data: StrDict = {"path": self.path, "branch": self.branch, "locked": self.locked}
        if self.lock_reason is not None:
            data["lockReason"] = self.lock_reason
        return data


def _empty_entries() -> dict[str, GriptreeEntry]:
    return {}


@dataclass(slots=True)
class GriptreeRegistry:
    """Workspace-level index of griptrees keyed by branch."""

    griptrees: dict[str, GriptreeEntry] = field(default_factory=_empty_entries)

    @classmethod
    def load(cls, path: Path) -> Result[GriptreeRegistry, GriptreeError]:
        if not path.exists():
            return Ok(cls())
        data = _read_json(path)
        if isinstance(data, Err):
            return data
        entries: dict[str, GriptreeEntry] = {}
        for branch, raw in (as_str_dict(data.value.get("griptrees")) or {}).items():
            item = as_str_dict(raw)
            if item is None:
                continue
            entry_path = get_str(item, "path")
            if entry_path is None:
                continue
            entries[branch] = GriptreeEntry(
                branch=get_str(item, "branch") or branch,
                path=entry_path,
                locked=get_bool(item, "locked"),
                lock_reason=get_str(item, "lockReason"),
            )
        return Ok(cls(griptrees=entries))

    def save(self, path: Path) -> Result[None, GriptreeError]:
        data: StrDict = {
            "griptrees": {branch: entry.to_dict() for branch, entry in sorted(self.griptrees.items())}
        }
        return _write_json(path, data)
