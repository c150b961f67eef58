"""Stand-in adapter for ``file://`` remotes.

A local bare repository has no hosting API behind it, so nothing here
touches the network. Lookups report "no PR"; every write or query on a
PR returns an ``unsupported`` error.
"""

from __future__ import annotations

from gitgrip.core.manifest import PlatformType
from gitgrip.core.result import Err, Ok, Result
from gitgrip.hosting.contract import AdapterDefaults
from gitgrip.hosting.errors import PlatformError, unsupported
from gitgrip.hosting.types import (
    MergeMethod,
    ParsedRepoInfo,
    PRCreateResult,
    PRReview,
    PullRequest,
    StatusCheckResult,
)

__all__ = ["LocalAdapter"]


class LocalAdapter(AdapterDefaults):
    display_name = "local file:// remotes"

    def __init__(self, platform_type: PlatformType = "github") -> None:
        self.platform_type: PlatformType = platform_type

    async def get_token(self) -> Result[str, PlatformError]:
        return Err(unsupported("API authentication", self.display_name))

    def matches_url(self, url: str) -> bool:
        return url.startswith("file://")

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None:
        if not self.matches_url(url):
            return None
        name = url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")
        return ParsedRepoInfo(owner="local", repo=name) if name else None

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str | None = None,
        draft: bool = False,
    ) -> Result[PRCreateResult, PlatformError]:
        return Err(unsupported("Pull request creation", self.display_name))

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]:
        return Err(unsupported("Pull requests", self.display_name))

    async def update_pull_request_body(
        self, owner: str, repo: str, number: int, body: str
    ) -> Result[None, PlatformError]:
        return Err(unsupported("Pull requests", self.display_name))

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: MergeMethod | None = None,
        delete_branch: bool = True,
    ) -> Result[bool, PlatformError]:
        return Err(unsupported("Merging pull requests", self.display_name))

    async def find_pr_by_branch(
        self, owner: str, repo: str, branch: str
    ) -> Result[PRCreateResult | None, PlatformError]:
        return Ok(None)

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        return Err(unsupported("Reviews", self.display_name))

    async def get_pull_request_reviews(
        self, owner: str, repo: str, number: int
    ) -> Result[list[PRReview], PlatformError]:
        return Err(unsupported("Reviews", self.display_name))

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]:
        return Err(unsupported("Status checks", self.display_name))

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]:
        return Err(unsupported("Pull request diffs", self.display_name))
