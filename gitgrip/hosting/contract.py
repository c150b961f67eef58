"""The interface every hosting adapter satisfies.

Adapters are independent implementations of :class:`HostingPlatform`.
:class:`AdapterDefaults` only supplies the optional operations, which
return an ``unsupported`` error unless an adapter overrides them, and the
shared linked-PR comment codec.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from typing import Protocol

from gitgrip.core.manifest import PlatformType
from gitgrip.core.result import Err, Ok, Result
from gitgrip.hosting.errors import PlatformError, unsupported
from gitgrip.hosting.linked_prs import generate_linked_pr_comment, parse_linked_pr_comment
from gitgrip.hosting.types import (
    AllowedMergeMethods,
    LinkedPRRef,
    MergeMethod,
    ParsedRepoInfo,
    PRCreateResult,
    PRReview,
    PullRequest,
    StatusCheckResult,
)

__all__ = ["AdapterDefaults", "HostingPlatform", "token_from_env"]


class HostingPlatform(Protocol):
    platform_type: PlatformType

    async def get_token(self) -> Result[str, PlatformError]: ...

    def matches_url(self, url: str) -> bool: ...

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None: ...

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str | None = None,
        draft: bool = False,
    ) -> Result[PRCreateResult, PlatformError]: ...

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]: ...

    async def update_pull_request_body(
        self, owner: str, repo: str, number: int, body: str
    ) -> Result[None, PlatformError]: ...

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: MergeMethod | None = None,
        delete_branch: bool = True,
    ) -> Result[bool, PlatformError]: ...

    async def find_pr_by_branch(
        self, owner: str, repo: str, branch: str
    ) -> Result[PRCreateResult | None, PlatformError]: ...

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]: ...

    async def get_pull_request_reviews(
        self, owner: str, repo: str, number: int
    ) -> Result[list[PRReview], PlatformError]: ...

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]: ...

    async def get_allowed_merge_methods(self, owner: str, repo: str) -> Result[AllowedMergeMethods, PlatformError]: ...

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]: ...

    async def create_repository(
        self, owner: str, name: str, description: str | None = None, private: bool = True
    ) -> Result[str, PlatformError]: ...

    async def delete_repository(self, owner: str, name: str) -> Result[None, PlatformError]: ...

    async def update_branch(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]: ...

    async def enable_auto_merge(
        self, owner: str, repo: str, number: int, method: MergeMethod | None = None
    ) -> Result[bool, PlatformError]: ...

    def generate_linked_pr_comment(self, links: Sequence[LinkedPRRef]) -> str: ...

    def parse_linked_pr_comment(self, body: str) -> list[LinkedPRRef]: ...


def token_from_env(*names: str) -> str | None:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


class AdapterDefaults:
    display_name = "this platform"

    async def create_repository(
        self, owner: str, name: str, description: str | None = None, private: bool = True
    ) -> Result[str, PlatformError]:
        return Err(unsupported("Repository creation", self.display_name))

    async def delete_repository(self, owner: str, name: str) -> Result[None, PlatformError]:
        return Err(unsupported("Repository deletion", self.display_name))

    async def update_branch(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        return Err(unsupported("Updating a PR branch", self.display_name))

    async def enable_auto_merge(
        self, owner: str, repo: str, number: int, method: MergeMethod | None = None
    ) -> Result[bool, PlatformError]:
        return Err(unsupported("Auto-merge", self.display_name))

    async def get_allowed_merge_methods(self, owner: str, repo: str) -> Result[AllowedMergeMethods, PlatformError]:
        return Ok(AllowedMergeMethods())

    def generate_linked_pr_comment(self, links: Sequence[LinkedPRRef]) -> str:
        return generate_linked_pr_comment(links)

    def parse_linked_pr_comment(self, body: str) -> list[LinkedPRRef]:
        return parse_linked_pr_comment(body)
