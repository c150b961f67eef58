"""Resolved repository records and manifest filtering.

A :class:`RepoInfo` is a manifest entry projected onto disk: absolute path,
parsed owner/repo and the hosting platform that serves it.
"""

from __future__ import annotations

import os.path
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from gitgrip.core.manifest import (
    Manifest,
    ManifestRepoConfig,
    PlatformType,
    RepoConfig,
)
from gitgrip.core.manifest_paths import resolve_manifest_repo_dir

__all__ = [
    "MANIFEST_REPO_NAME",
    "ParsedUrl",
    "RepoInfo",
    "detect_platform",
    "filter_repos",
    "get_manifest_repo_info",
    "parse_git_url",
]

MANIFEST_REPO_NAME = "manifest"


@dataclass(frozen=True, slots=True)
class ParsedUrl:
    owner: str
    repo: str
    host: str | None = None


@dataclass(frozen=True, slots=True)
class RepoInfo:
    """A manifest repository resolved against a workspace root.

    Attributes:
        name: Manifest key.
        path: Workspace-relative path as written in the manifest.
        absolute_path: ``workspace_root / path``, normalized.
        owner: URL owner; ``ORG/PROJECT`` for Azure DevOps, ``local`` for file URLs.
        repo: URL repository name without ``.git``.
        platform_type: Declared or detected hosting platform.
        platform_base_url: Base URL for self-hosted instances.
    """

    name: str
    path: str
    absolute_path: Path
    url: str
    default_branch: str
    owner: str
    repo: str
    platform_type: PlatformType
    platform_base_url: str | None = None
    groups: tuple[str, ...] = ()
    reference: bool = False
    config: RepoConfig | None = None

    @classmethod
    def from_config(cls, name: str, config: RepoConfig, workspace_root: Path) -> RepoInfo | None:
        parsed = parse_git_url(config.url)
        if parsed is None:
            return None

        root = Path(_normpath(workspace_root))
        absolute = Path(_normpath(root / config.path))
        if root not in absolute.parents:
            return None

        if config.platform is not None:
            platform_type = config.platform.type
            base_url = config.platform.base_url
        else:
            platform_type = detect_platform(config.url)
            base_url = _self_hosted_base_url(parsed, platform_type)

        return cls(
            name=name,
            path=config.path,
            absolute_path=absolute,
            url=config.url,
            default_branch=config.default_branch,
            owner=parsed.owner,
            repo=parsed.repo,
            platform_type=platform_type,
            platform_base_url=base_url,
            groups=config.groups,
            reference=config.reference,
            config=config,
        )

    @property
    def is_local(self) -> bool:
        """True for ``file://`` remotes, which never reach a hosting API."""
        return self.url.startswith("file://")

    def exists(self) -> bool:
        return (self.absolute_path / ".git").exists()


def _normpath(path: Path | str) -> str:
    return os.path.normpath(os.path.abspath(str(path)))


def _strip_git(value: str) -> str:
    value = value.rstrip("/")
    return value[:-4] if value.endswith(".git") else value


def _self_hosted_base_url(parsed: ParsedUrl, platform_type: PlatformType) -> str | None:
    host = parsed.host
    if host is None:
        return None
    public = {
        "github": "github.com",
        "gitlab": "gitlab.com",
        "azure-devops": "dev.azure.com",
        "bitbucket": "bitbucket.org",
    }
    if host == public[platform_type] or host.endswith(".visualstudio.com") or host == "ssh.dev.azure.com":
        return None
    return f"https://{host}"


def parse_git_url(url: str) -> ParsedUrl | None:
    """Extract owner and repository name from an SSH, HTTPS or file URL.

    Returns None when the URL shape is not recognized.
    """
    url = url.strip()

    if url.startswith("file://"):
        path = _strip_git(url[len("file://") :])
        name = path.rsplit("/", 1)[-1]
        if not name:
            return None
        return ParsedUrl(owner="local", repo=name)

    if "://" not in url and ":" in url:
        user_host, path = url.split(":", 1)
        host = user_host.split("@", 1)[-1]
        segments = [s for s in _strip_git(path).split("/") if s]
        if "dev.azure.com" in host or "visualstudio.com" in host:
            if len(segments) >= 4 and segments[0] == "v3":
                return ParsedUrl(owner=f"{segments[1]}/{segments[2]}", repo=segments[3], host=host)
            return None
        if len(segments) >= 2:
            return ParsedUrl(owner="/".join(segments[:-1]), repo=segments[-1], host=host)
        return None

    for scheme in ("https://", "http://", "ssh://"):
        if url.startswith(scheme):
            rest = url[len(scheme) :]
            if "/" not in rest:
                return None
            host, path = rest.split("/", 1)
            host = host.split("@", 1)[-1].split(":", 1)[0]
            segments = [s for s in _strip_git(path).split("/") if s]

            if host == "dev.azure.com":
                if len(segments) >= 4 and segments[2] == "_git":
                    return ParsedUrl(owner=f"{segments[0]}/{segments[1]}", repo=segments[3], host=host)
                return None
            if host.endswith("visualstudio.com"):
                org = host.split(".", 1)[0]
                if len(segments) >= 3 and segments[1] == "_git":
                    return ParsedUrl(owner=f"{org}/{segments[0]}", repo=segments[2], host=host)
                return None
            if host == "ssh.dev.azure.com" and len(segments) >= 4 and segments[0] == "v3":
                return ParsedUrl(owner=f"{segments[1]}/{segments[2]}", repo=segments[3], host=host)

            if len(segments) >= 2:
                return ParsedUrl(owner="/".join(segments[:-1]), repo=segments[-1], host=host)
            return None

    return None


def detect_platform(url: str) -> PlatformType:
    """Classify a remote URL by hostname; GitHub when nothing else matches."""
    lowered = url.lower()
    if "github.com" in lowered:
        return "github"
    if "dev.azure.com" in lowered or "visualstudio.com" in lowered:
        return "azure-devops"
    if "bitbucket" in lowered:
        return "bitbucket"
    if "gitlab" in lowered:
        return "gitlab"
    return "github"


def filter_repos(
    manifest: Manifest,
    workspace_root: Path,
    repo_filter: Sequence[str] | None = None,
    group_filter: Sequence[str] | None = None,
    include_reference: bool = True,
) -> list[RepoInfo]:
    """Resolve manifest repos and narrow them by name, group and reference flag.

    Output is always sorted by repo name.
    """
    repos: list[RepoInfo] = []
    for name, config in manifest.sorted_repos():
        info = RepoInfo.from_config(name, config, workspace_root)
        if info is None:
            continue
        if repo_filter and info.name not in repo_filter:
            continue
        if group_filter and not set(info.groups) & set(group_filter):
            continue
        if not include_reference and info.reference:
            continue
        repos.append(info)
    return repos


def get_manifest_repo_info(manifest: Manifest, workspace_root: Path) -> RepoInfo | None:
    """Synthesized :class:`RepoInfo` for the versioned manifest repository."""
    config: ManifestRepoConfig | None = manifest.manifest
    if config is None:
        return None
    repo_dir = resolve_manifest_repo_dir(workspace_root)
    if repo_dir is None:
        return None

    rel = repo_dir.relative_to(workspace_root).as_posix()
    return RepoInfo.from_config(
        MANIFEST_REPO_NAME,
        RepoConfig(
            url=config.url,
            path=rel,
            default_branch=config.default_branch,
            copyfile=config.copyfile,
            linkfile=config.linkfile,
            platform=config.platform,
        ),
        workspace_root,
    )
