"""Adapter lookup by platform type."""

from __future__ import annotations

import httpx

from gitgrip.core.manifest import PlatformType
from gitgrip.core.repo import RepoInfo, detect_platform
from gitgrip.hosting.azure import AzureDevOpsAdapter
from gitgrip.hosting.bitbucket import BitbucketAdapter
from gitgrip.hosting.contract import HostingPlatform
from gitgrip.hosting.github import GitHubAdapter
from gitgrip.hosting.gitlab import GitLabAdapter
from gitgrip.hosting.local import LocalAdapter
from gitgrip.output.console import ConsoleProtocol

__all__ = ["AdapterCache", "get_platform_adapter", "platform_for_url"]


def get_platform_adapter(
    platform_type: PlatformType,
    base_url: str | None = None,
    *,
    console: ConsoleProtocol | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> HostingPlatform:
    match platform_type:
        case "github":
            return GitHubAdapter(base_url, console=console, http_client=http_client)
        case "gitlab":
            return GitLabAdapter(base_url, console=console, http_client=http_client)
        case "azure-devops":
            return AzureDevOpsAdapter(base_url, console=console, http_client=http_client)
        case "bitbucket":
            return BitbucketAdapter(base_url, console=console, http_client=http_client)


def platform_for_url(
    url: str,
    *,
    console: ConsoleProtocol | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> HostingPlatform:
    return get_platform_adapter(detect_platform(url), console=console, http_client=http_client)


class AdapterCache:
    """One adapter per (platform, base URL) so tokens are resolved once per run."""

    def __init__(
        self,
        *,
        console: ConsoleProtocol | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.console = console
        self.http_client = http_client
        self._adapters: dict[tuple[PlatformType, str | None], HostingPlatform] = {}

    def for_repo(self, repo: RepoInfo) -> HostingPlatform:
        if repo.is_local:
            return LocalAdapter(repo.platform_type)
        key = (repo.platform_type, repo.platform_base_url)
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = get_platform_adapter(
                repo.platform_type, repo.platform_base_url, console=self.console, http_client=self.http_client
            )
            self._adapters[key] = adapter
        return adapter
