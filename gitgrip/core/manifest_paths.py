"""On-disk layout of a gitgrip workspace.

New layout:    ``.gitgrip/spaces/main/gripspace.yml``
Local overlay: ``.gitgrip/spaces/local/gripspace.yml``
Legacy layout: ``.gitgrip/manifests/manifest.yaml``
Gripspaces:    ``.gitgrip/spaces/<name>/``
"""

from __future__ import annotations

from pathlib import Path

GITGRIP_DIR = ".gitgrip"
SPACES_DIR = ".gitgrip/spaces"
MAIN_SPACE_DIR = ".gitgrip/spaces/main"
LOCAL_SPACE_DIR = ".gitgrip/spaces/local"
LEGACY_MANIFEST_DIR = ".gitgrip/manifests"
PRIMARY_FILE_NAME = "gripspace.yml"
LEGACY_FILE_NAMES = ("manifest.yaml", "manifest.yml")

STATE_FILE = "state.json"
GRIPTREES_FILE = "griptrees.json"
GRIPTREE_CONFIG_FILE = "griptree.json"
GRIPTREE_POINTER_FILE = ".griptree"
CI_RESULTS_DIR = "ci-results"


def gitgrip_dir(workspace_root: Path) -> Path:
    return workspace_root / GITGRIP_DIR


def spaces_dir(workspace_root: Path) -> Path:
    """Parent of the main and local spaces and of every cloned gripspace."""
    return workspace_root / SPACES_DIR


def main_space_dir(workspace_root: Path) -> Path:
    return workspace_root / MAIN_SPACE_DIR


def local_space_dir(workspace_root: Path) -> Path:
    return workspace_root / LOCAL_SPACE_DIR


def legacy_manifest_dir(workspace_root: Path) -> Path:
    return workspace_root / LEGACY_MANIFEST_DIR


def default_workspace_manifest_path(workspace_root: Path) -> Path:
    return main_space_dir(workspace_root) / PRIMARY_FILE_NAME


def resolve_local_overlay_path(workspace_root: Path) -> Path:
    return local_space_dir(workspace_root) / PRIMARY_FILE_NAME


def resolve_manifest_file_in_dir(directory: Path) -> Path | None:
    """Return the first manifest file present in ``directory``."""
    for name in (PRIMARY_FILE_NAME, *LEGACY_FILE_NAMES):
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def resolve_workspace_manifest_path(workspace_root: Path) -> Path | None:
    """Manifest path for ``workspace_root``, new layout first, legacy second."""
    found = resolve_manifest_file_in_dir(main_space_dir(workspace_root))
    if found is not None:
        return found
    return resolve_manifest_file_in_dir(legacy_manifest_dir(workspace_root))


def resolve_manifest_repo_dir(workspace_root: Path) -> Path | None:
    """Directory of the versioned manifest repository, if there is one."""
    for directory in (main_space_dir(workspace_root), legacy_manifest_dir(workspace_root)):
        if (directory / ".git").exists():
            return directory
    return None


def resolve_manifest_content_dir(workspace_root: Path) -> Path:
    """Directory holding manifest content, versioned or not."""
    repo_dir = resolve_manifest_repo_dir(workspace_root)
    if repo_dir is not None:
        return repo_dir
    for directory in (main_space_dir(workspace_root), legacy_manifest_dir(workspace_root)):
        if directory.exists():
            return directory
    return main_space_dir(workspace_root)


def state_path(workspace_root: Path) -> Path:
    return gitgrip_dir(workspace_root) / STATE_FILE


def griptrees_registry_path(workspace_root: Path) -> Path:
    return gitgrip_dir(workspace_root) / GRIPTREES_FILE


def ci_results_dir(workspace_root: Path) -> Path:
    return gitgrip_dir(workspace_root) / CI_RESULTS_DIR
