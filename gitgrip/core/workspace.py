"""Workspace detection and loading.

A workspace root is a directory containing ``.gitgrip/``. It is found from
``$GITGRIP_WORKSPACE`` first, then by searching upward from the current
directory. A griptree is itself a workspace root; its ``.griptree`` pointer
leads back to the main workspace that owns the griptree registry.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from gitgrip.core.gripspace import resolve_gripspaces
from gitgrip.core.griptree import GriptreeConfig, GriptreePointer, find_pointer_in_ancestors
from gitgrip.core.manifest import Manifest, load_manifest
from gitgrip.core.manifest_paths import (
    GITGRIP_DIR,
    GRIPTREE_POINTER_FILE,
    ci_results_dir,
    griptrees_registry_path,
    resolve_local_overlay_path,
    resolve_manifest_content_dir,
    resolve_manifest_repo_dir,
    resolve_workspace_manifest_path,
    spaces_dir,
    state_path,
)
from gitgrip.core.result import Err, Ok, Result

__all__ = [
    "WORKSPACE_ENV_VAR",
    "Workspace",
    "WorkspaceError",
    "detect_workspace_root",
    "find_workspace_upward",
    "is_workspace_root",
    "load_workspace",
]

WORKSPACE_ENV_VAR = "GITGRIP_WORKSPACE"


@dataclass(frozen=True, slots=True)
class WorkspaceError:
    kind: Literal["not_found", "no_manifest", "manifest", "griptree"]
    message: str
    searched_from: Path | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class Workspace:
    """A loaded workspace: root directory plus its manifest.

    Attributes:
        root: Workspace root (contains ``.gitgrip/``).
        manifest_path: File the manifest was read from.
        manifest: Parsed manifest with the local overlay and cloned
            gripspaces applied.
        griptree: Config when ``root`` is a griptree, else None.
        pointer: ``.griptree`` pointer when ``root`` is a griptree.
    """

    root: Path
    manifest_path: Path
    manifest: Manifest
    griptree: GriptreeConfig | None = None
    pointer: GriptreePointer | None = None

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def gitgrip_dir(self) -> Path:
        return self.root / GITGRIP_DIR

    @property
    def state_path(self) -> Path:
        return state_path(self.root)

    @property
    def ci_results_dir(self) -> Path:
        return ci_results_dir(self.root)

    @property
    def spaces_dir(self) -> Path:
        return spaces_dir(self.root)

    @property
    def main_root(self) -> Path:
        """Root of the main workspace (differs from ``root`` inside a griptree)."""
        if self.pointer is not None:
            return Path(self.pointer.main_workspace)
        return self.root

    @property
    def griptrees_path(self) -> Path:
        return griptrees_registry_path(self.main_root)

    @property
    def manifest_repo_dir(self) -> Path | None:
        return resolve_manifest_repo_dir(self.root)

    @property
    def manifest_content_dir(self) -> Path:
        return resolve_manifest_content_dir(self.root)

    @property
    def is_griptree(self) -> bool:
        return self.griptree is not None

    def env_vars(self) -> dict[str, str]:
        """Variables exported to hooks, scripts, ``forall`` and CI steps."""
        env = {
            "GITGRIP_WORKSPACE": str(self.root),
            "GITGRIP_MANIFEST": str(self.manifest_path),
        }
        env.update(self.manifest.workspace.env)
        return env


def is_workspace_root(path: Path) -> bool:
    return (path / GITGRIP_DIR).is_dir()


def find_workspace_upward(start: Path) -> Path | None:
    """Closest ancestor of ``start`` (inclusive) holding ``.gitgrip/``."""
    for parent in (start, *start.parents):
        if is_workspace_root(parent):
            return parent
    return None


def detect_workspace_root(
    *,
    start_dir: Path | None = None,
    env_var: str = WORKSPACE_ENV_VAR,
) -> Result[Path, WorkspaceError]:
    """Locate the workspace root.

    Detection order:
    1. ``$GITGRIP_WORKSPACE`` (if set it must be valid)
    2. Search upward from ``start_dir`` (or cwd)
    """
    env_value = os.environ.get(env_var)
    if env_value:
        env_path = Path(env_value).expanduser().absolute()
        if env_path.is_dir() and is_workspace_root(env_path):
            return Ok(env_path)
        return Err(
            WorkspaceError(
                kind="not_found",
                message=f"${env_var} is set to '{env_value}' but it is not a gitgrip workspace",
                searched_from=env_path,
            )
        )

    search_start = (start_dir or Path.cwd()).absolute()
    found = find_workspace_upward(search_start)
    if found is not None:
        return Ok(found)

    pointer = find_pointer_in_ancestors(search_start)
    if pointer is not None:
        return Ok(pointer[0])

    return Err(
        WorkspaceError(
            kind="not_found",
            message="Not in a gitgrip workspace (.gitgrip/ not found)",
            searched_from=search_start,
            hint="Run 'gr init <manifest-url>' or 'gr init --from-dirs' first",
        )
    )


def load_workspace(root: Path) -> Result[Workspace, WorkspaceError]:
    """Load manifest, overlay, gripspaces and griptree metadata for ``root``."""
    manifest_path = resolve_workspace_manifest_path(root)
    if manifest_path is None:
        return Err(
            WorkspaceError(
                kind="no_manifest",
                message=f"No manifest found in {root / GITGRIP_DIR}",
                searched_from=root,
                hint="Expected .gitgrip/spaces/main/gripspace.yml",
            )
        )

    manifest = load_manifest(manifest_path, overlay=resolve_local_overlay_path(root))
    if isinstance(manifest, Err):
        e = manifest.error
        return Err(
            WorkspaceError(
                kind="manifest",
                message=e.message,
                searched_from=e.path,
                hint=e.hint,
            )
        )

    resolved = resolve_gripspaces(manifest.value, spaces_dir(root))
    if isinstance(resolved, Err):
        return Err(WorkspaceError(kind="manifest", message=resolved.error.message, searched_from=root))

    griptree = GriptreeConfig.load_from_workspace(root)
    if isinstance(griptree, Err):
        return Err(WorkspaceError(kind="griptree", message=griptree.error.message, searched_from=root))

    pointer: GriptreePointer | None = None
    pointer_file = root / GRIPTREE_POINTER_FILE
    if pointer_file.is_file():
        loaded = GriptreePointer.load(pointer_file)
        if isinstance(loaded, Err):
            return Err(WorkspaceError(kind="griptree", message=loaded.error.message, searched_from=root))
        pointer = loaded.value

    return Ok(
        Workspace(
            root=root,
            manifest_path=manifest_path,
            manifest=resolved.value,
            griptree=griptree.value,
            pointer=pointer,
        )
    )
