"""Hosting platform adapters: GitHub, GitLab, Azure DevOps and Bitbucket."""

from gitgrip.hosting.contract import HostingPlatform
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.registry import AdapterCache, get_platform_adapter

__all__ = ["AdapterCache", "HostingPlatform", "PlatformError", "get_platform_adapter"]
