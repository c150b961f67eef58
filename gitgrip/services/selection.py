"""Repo selection shared by every fan-out command."""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo, filter_repos, get_manifest_repo_info
from gitgrip.core.workspace import Workspace

__all__ = ["RepoSelection", "select_repos"]


@dataclass(frozen=True, slots=True)
class RepoSelection:
    """``--repo`` / ``--group`` filters as given on the command line."""

    repos: tuple[str, ...] = ()
    groups: tuple[str, ...] = ()

    @property
    def is_filtered(self) -> bool:
        return bool(self.repos or self.groups)


def select_repos(
    workspace: Workspace,
    selection: RepoSelection | None = None,
    *,
    include_reference: bool = True,
    include_manifest: bool = False,
) -> list[RepoInfo]:
    """Manifest repos narrowed by ``selection``, sorted by name.

    The manifest repo is appended last when requested and either no filter
    is active or it is named explicitly.
    """
    selection = selection or RepoSelection()
    repos = filter_repos(
        workspace.manifest,
        workspace.root,
        repo_filter=selection.repos or None,
        group_filter=selection.groups or None,
        include_reference=include_reference,
    )
    if include_manifest:
        manifest_repo = get_manifest_repo_info(workspace.manifest, workspace.root)
        if manifest_repo is not None and _wants_manifest(selection, manifest_repo.name):
            repos.append(manifest_repo)
    return repos


def _wants_manifest(selection: RepoSelection, name: str) -> bool:
    if not selection.is_filtered:
        return True
    return name in selection.repos
