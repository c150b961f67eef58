"""Core domain types: manifest, repos, state, griptrees, workspace."""

from .errors import ErrorCode
from .manifest import Manifest, ManifestError, RepoConfig, load_manifest, parse_manifest
from .repo import RepoInfo, filter_repos, get_manifest_repo_info
from .result import Err, Ok, Result, is_err, is_ok
from .state import LinkedPR, StateFile
from .workspace import Workspace, WorkspaceError, detect_workspace_root, load_workspace

__all__ = [
    # errors
    "ErrorCode",
    # manifest
    "Manifest",
    "ManifestError",
    "RepoConfig",
    "load_manifest",
    "parse_manifest",
    # repo
    "RepoInfo",
    "filter_repos",
    "get_manifest_repo_info",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
    # state
    "LinkedPR",
    "StateFile",
    # workspace
    "Workspace",
    "WorkspaceError",
    "detect_workspace_root",
    "load_workspace",
]
