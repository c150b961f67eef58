"""Tests for core/repo.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from gitgrip.core.manifest import RepoConfig, parse_manifest
from gitgrip.core.repo import ParsedUrl, RepoInfo, detect_platform, filter_repos, parse_git_url
from gitgrip.core.result import Ok


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("git@github.com:acme/web.git", ParsedUrl("acme", "web", "github.com")),
        ("https://github.com/acme/web", ParsedUrl("acme", "web", "github.com")),
        ("https://gitlab.com/group/sub/proj.git", ParsedUrl("group/sub", "proj", "gitlab.com")),
        ("https://dev.azure.com/org/proj/_git/repo", ParsedUrl("org/proj", "repo", "dev.azure.com")),
        ("git@ssh.dev.azure.com:v3/org/proj/repo", ParsedUrl("org/proj", "repo", "ssh.dev.azure.com")),
        ("https://org.visualstudio.com/proj/_git/repo", ParsedUrl("org/proj", "repo", "org.visualstudio.com")),
        ("file:///tmp/remotes/api.git", ParsedUrl("local", "api")),
    ],
)
def test_parse_git_url(url: str, expected: ParsedUrl) -> None:
    assert parse_git_url(url) == expected


@pytest.mark.parametrize("url", ["not a url", "https://github.com/", "git@github.com:lonely"])
def test_parse_git_url_rejects(url: str) -> None:
    assert parse_git_url(url) is None


def test_detect_platform() -> None:
    assert detect_platform("git@github.com:a/b.git") == "github"
    assert detect_platform("https://gitlab.example.com/a/b.git") == "gitlab"
    assert detect_platform("https://bitbucket.org/a/b.git") == "bitbucket"
    assert detect_platform("https://dev.azure.com/o/p/_git/r") == "azure-devops"
    assert detect_platform("https://git.internal/a/b.git") == "github"


def test_self_hosted_base_url(tmp_path: Path) -> None:
    info = RepoInfo.from_config("a", RepoConfig(url="https://gitlab.corp.net/t/a.git", path="a"), tmp_path)
    assert info is not None
    assert info.platform_type == "gitlab"
    assert info.platform_base_url == "https://gitlab.corp.net"


def test_path_outside_root_is_dropped(tmp_path: Path) -> None:
    info = RepoInfo.from_config("a", RepoConfig(url="git@github.com:o/a.git", path="../a"), tmp_path)
    assert info is None


def test_filter_repos(tmp_path: Path) -> None:
    manifest = parse_manifest(
        "repos:\n"
        "  web:\n    url: git@github.com:o/web.git\n    path: web\n    groups: [front]\n"
        "  api:\n    url: git@github.com:o/api.git\n    path: api\n    groups: [back]\n"
        "  docs:\n    url: git@github.com:o/docs.git\n    path: docs\n    reference: true\n"
    )
    assert isinstance(manifest, Ok)
    m = manifest.value

    assert [r.name for r in filter_repos(m, tmp_path)] == ["api", "docs", "web"]
    assert [r.name for r in filter_repos(m, tmp_path, group_filter=["front"])] == ["web"]
    assert [r.name for r in filter_repos(m, tmp_path, repo_filter=["api", "web"])] == ["api", "web"]
    assert [r.name for r in filter_repos(m, tmp_path, include_reference=False)] == ["api", "web"]
