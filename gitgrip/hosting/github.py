"""GitHub and GitHub Enterprise adapter (REST v3, GraphQL for auto-merge)."""

from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import quote

import httpx

from gitgrip.core.manifest import PlatformType
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, get_bool, get_int, get_str, get_table, get_text
from gitgrip.hosting.contract import AdapterDefaults, token_from_env
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.transport import HttpTransport, expect_list, expect_object
from gitgrip.hosting.types import (
    AllowedMergeMethods,
    CheckState,
    MergeMethod,
    ParsedRepoInfo,
    PRCreateResult,
    PRRef,
    PRReview,
    PRState,
    PullRequest,
    StatusCheck,
    StatusCheckResult,
)
from gitgrip.output.console import ConsoleProtocol
from gitgrip.platform.process import run as run_process

__all__ = ["DEFAULT_API_URL", "GitHubAdapter", "api_url_for"]

DEFAULT_API_URL = "https://api.github.com"

_JSON_ACCEPT = "application/vnd.github.v3+json"
_DIFF_ACCEPT = "application/vnd.github.v3.diff"

_AUTO_MERGE_MUTATION = """
mutation($id: ID!, $method: PullRequestMergeMethod!) {
  enablePullRequestAutoMerge(input: {pullRequestId: $id, mergeMethod: $method}) {
    pullRequest { number }
  }
}
"""


def api_url_for(base_url: str | None) -> str:
    """REST root for a host: public API, or ``<host>/api/v3`` for Enterprise."""
    if not base_url:
        return DEFAULT_API_URL
    base = base_url.rstrip("/")
    if base == "https://github.com" or base == DEFAULT_API_URL:
        return DEFAULT_API_URL
    if base.endswith("/api/v3"):
        return base
    return f"{base}/api/v3"


def _graphql_url(api_url: str) -> str:
    if api_url == DEFAULT_API_URL:
        return f"{DEFAULT_API_URL}/graphql"
    return api_url.removesuffix("/v3") + "/graphql"


def _check_state(raw: str | None) -> CheckState:
    match raw:
        case "success":
            return "success"
        case "failure" | "error":
            return "failure"
        case _:
            return "pending"


def _parse_pull(data: StrDict) -> Result[PullRequest, PlatformError]:
    number = get_int(data, "number")
    if number is None:
        return Err(PlatformError(kind="parse", message="GitHub: pull request without a number"))
    head = get_table(data, "head") or {}
    base = get_table(data, "base") or {}
    merged = get_bool(data, "merged") or data.get("merged_at") is not None
    state: PRState = "merged" if merged else ("open" if get_str(data, "state") == "open" else "closed")
    mergeable = data.get("mergeable")
    return Ok(
        PullRequest(
            number=number,
            url=get_str(data, "html_url") or "",
            title=get_str(data, "title") or "",
            body=get_text(data, "body"),
            state=state,
            merged=merged,
            head=PRRef(ref=get_str(head, "ref") or "", sha=get_str(head, "sha") or ""),
            base=PRRef(ref=get_str(base, "ref") or "", sha=get_str(base, "sha") or ""),
            mergeable=mergeable if isinstance(mergeable, bool) else None,
        )
    )


class GitHubAdapter(AdapterDefaults):
    """GitHub REST client.

    Tokens come from ``GITHUB_TOKEN``, then ``GH_TOKEN``, then the output of
    ``gh auth token``.
    """

    platform_type: PlatformType = "github"
    display_name = "GitHub"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        console: ConsoleProtocol | None = None,
        wait_on_rate_limit: bool = False,
    ) -> None:
        self.api_url = api_url_for(base_url)
        self._token = token
        self.console = console
        self.transport = HttpTransport(
            platform=self.display_name,
            base_url=self.api_url,
            rate_limit_scheme="x-ratelimit",
            http_client=http_client,
            console=console,
            wait_on_rate_limit=wait_on_rate_limit,
        )

    async def get_token(self) -> Result[str, PlatformError]:
        if self._token:
            return Ok(self._token)
        token = token_from_env("GITHUB_TOKEN", "GH_TOKEN")
        if token is None:
            result = await asyncio.to_thread(run_process, ["gh", "auth", "token"], Path.cwd(), None, timeout=10)
            if isinstance(result, Ok) and result.value.strip():
                token = result.value.strip()
        if token is None:
            return Err(
                PlatformError(
                    kind="auth",
                    message="No GitHub token found. Set GITHUB_TOKEN or run 'gh auth login'",
                )
            )
        self._token = token
        return Ok(token)

    async def _headers(self, accept: str = _JSON_ACCEPT) -> Result[dict[str, str], PlatformError]:
        token = await self.get_token()
        if isinstance(token, Err):
            return token
        return Ok({"Authorization": f"Bearer {token.value}", "Accept": accept, "User-Agent": "gitgrip"})

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> Result[object, PlatformError]:
        headers = await self._headers()
        if isinstance(headers, Err):
            return headers
        return await self.transport.request_json(method, path, headers=headers.value, json=json, params=params)

    def matches_url(self, url: str) -> bool:
        return "github.com" in url or (self.api_url != DEFAULT_API_URL and _host(self.api_url) in url)

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None:
        path: str | None = None
        if url.startswith("git@") and ":" in url:
            path = url.split(":", 1)[1]
        elif "://" in url:
            rest = url.split("://", 1)[1]
            path = rest.split("/", 1)[1] if "/" in rest else None
        if path is None:
            return None
        parts = [p for p in path.removesuffix(".git").split("/") if p]
        if len(parts) < 2:
            return None
        return ParsedRepoInfo(owner=parts[0], repo=parts[-1], platform="github")

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
        payload = {"title": title, "head": head, "base": base, "body": body or "", "draft": draft}
        data = await self._call("POST", f"/repos/{owner}/{repo}/pulls", json=payload)
        if isinstance(data, Err):
            return Err(_with_message(data.error, "Failed to create PR"))
        table = expect_object(data.value, "pull request", self.display_name)
        if isinstance(table, Err):
            return table
        number = get_int(table.value, "number")
        if number is None:
            return Err(PlatformError(kind="parse", message="GitHub: created PR has no number"))
        return Ok(PRCreateResult(number=number, url=get_str(table.value, "html_url") or ""))

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]:
        data = await self._call("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        if isinstance(data, Err):
            return data
        return expect_object(data.value, "pull request", self.display_name).flat_map(_parse_pull)

    async def update_pull_request_body(self, owner: str, repo: str, number: int, body: str) -> Result[None, PlatformError]:
        data = await self._call("PATCH", f"/repos/{owner}/{repo}/pulls/{number}", json={"body": body})
        return data.map(lambda _: None)

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: MergeMethod | None = None,
        delete_branch: bool = True,
    ) -> Result[bool, PlatformError]:
        head_ref: str | None = None
        if delete_branch:
            pr = await self.get_pull_request(owner, repo, number)
            if isinstance(pr, Ok):
                head_ref = pr.value.head.ref

        payload = {"merge_method": method or "merge"}
        data = await self._call("PUT", f"/repos/{owner}/{repo}/pulls/{number}/merge", json=payload)
        if isinstance(data, Err):
            error = data.error
            lowered = error.message.lower()
            if "behind" in lowered or "not up to date" in lowered or "out of date" in lowered:
                return Err(
                    PlatformError(
                        kind="branch_behind",
                        message=f"PR #{number} in {owner}/{repo} is behind its base branch",
                        status=error.status,
                        hint="Re-run with --update to update the branch from its base first",
                    )
                )
            if "protected branch" in lowered:
                return Err(PlatformError(kind="branch_protected", message=error.message, status=error.status))
            if error.status == 405 or "not mergeable" in lowered:
                return Ok(False)
            return Err(_with_message(error, "Failed to merge PR"))

        table = expect_object(data.value, "merge result", self.display_name)
        merged = isinstance(table, Ok) and get_bool(table.value, "merged")
        if merged and head_ref:
            deleted = await self._call("DELETE", f"/repos/{owner}/{repo}/git/refs/heads/{quote(head_ref, safe='/')}")
            if isinstance(deleted, Err) and self.console is not None:
                self.console.warning(f"{repo}: merged, but could not delete branch '{head_ref}': {deleted.error.message}")
        return Ok(merged)

    async def find_pr_by_branch(self, owner: str, repo: str, branch: str) -> Result[PRCreateResult | None, PlatformError]:
        data = await self._call(
            "GET", f"/repos/{owner}/{repo}/pulls", params={"state": "open", "head": f"{owner}:{branch}"}
        )
        if isinstance(data, Err):
            return data
        items = expect_list(data.value, "pull requests", self.display_name)
        if isinstance(items, Err):
            return items
        for item in items.value:
            number = get_int(item, "number")
            if number is not None:
                return Ok(PRCreateResult(number=number, url=get_str(item, "html_url") or ""))
        return Ok(None)

    async def get_pull_request_reviews(self, owner: str, repo: str, number: int) -> Result[list[PRReview], PlatformError]:
        data = await self._call("GET", f"/repos/{owner}/{repo}/pulls/{number}/reviews")
        if isinstance(data, Err):
            return data
        items = expect_list(data.value, "reviews", self.display_name)
        if isinstance(items, Err):
            return items
        return Ok(
            [
                PRReview(state=get_str(r, "state") or "", user=get_str(get_table(r, "user") or {}, "login") or "")
                for r in items.value
            ]
        )

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        """At least one APPROVED and no outstanding CHANGES_REQUESTED."""
        reviews = await self.get_pull_request_reviews(owner, repo, number)
        if isinstance(reviews, Err):
            return reviews
        latest: dict[str, str] = {}
        for review in reviews.value:
            if review.state in ("APPROVED", "CHANGES_REQUESTED", "DISMISSED"):
                latest[review.user] = review.state
        states = set(latest.values())
        return Ok("APPROVED" in states and "CHANGES_REQUESTED" not in states)

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]:
        data = await self._call("GET", f"/repos/{owner}/{repo}/commits/{quote(ref, safe='')}/status")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "combined status", self.display_name)
        if isinstance(table, Err):
            return table
        statuses = tuple(
            StatusCheck(context=get_str(s, "context") or "", state=_check_state(get_str(s, "state")))
            for s in expect_list(table.value.get("statuses", []), "statuses", self.display_name).unwrap_or([])
        )
        if not statuses:
            return Ok(StatusCheckResult(state=_check_state(get_str(table.value, "state")), statuses=()))
        return Ok(StatusCheckResult.from_checks(statuses))

    async def get_allowed_merge_methods(self, owner: str, repo: str) -> Result[AllowedMergeMethods, PlatformError]:
        data = await self._call("GET", f"/repos/{owner}/{repo}")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "repository", self.display_name)
        if isinstance(table, Err):
            return table
        return Ok(
            AllowedMergeMethods(
                merge=get_bool(table.value, "allow_merge_commit", True),
                squash=get_bool(table.value, "allow_squash_merge", True),
                rebase=get_bool(table.value, "allow_rebase_merge", True),
            )
        )

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]:
        headers = await self._headers(_DIFF_ACCEPT)
        if isinstance(headers, Err):
            return headers
        return await self.transport.request_text(f"/repos/{owner}/{repo}/pulls/{number}", headers=headers.value)

    async def update_branch(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        data = await self._call("PUT", f"/repos/{owner}/{repo}/pulls/{number}/update-branch", json={})
        if isinstance(data, Err):
            if data.error.status == 422:
                return Ok(False)
            return data
        return Ok(True)

    async def enable_auto_merge(
        self, owner: str, repo: str, number: int, method: MergeMethod | None = None
    ) -> Result[bool, PlatformError]:
        data = await self._call("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "pull request", self.display_name)
        if isinstance(table, Err):
            return table
        node_id = get_str(table.value, "node_id")
        if node_id is None:
            return Err(PlatformError(kind="parse", message="GitHub: pull request has no node id"))
        query = {"query": _AUTO_MERGE_MUTATION, "variables": {"id": node_id, "method": (method or "merge").upper()}}
        result = await self._call("POST", _graphql_url(self.api_url), json=query)
        if isinstance(result, Err):
            return result
        response = expect_object(result.value, "graphql response", self.display_name)
        if isinstance(response, Err):
            return response
        if response.value.get("errors"):
            return Err(PlatformError(kind="api", message=f"GitHub: auto-merge refused: {response.value['errors']}"))
        return Ok(True)

    async def create_repository(
        self, owner: str, name: str, description: str | None = None, private: bool = True
    ) -> Result[str, PlatformError]:
        user = await self._call("GET", "/user")
        if isinstance(user, Err):
            return user
        login = get_str(expect_object(user.value, "user", self.display_name).unwrap_or({}), "login") or ""
        path = "/user/repos" if owner.lower() == login.lower() else f"/orgs/{owner}/repos"
        payload = {"name": name, "description": description or "", "private": private, "auto_init": True}
        data = await self._call("POST", path, json=payload)
        if isinstance(data, Err):
            return Err(_with_message(data.error, "Failed to create repository"))
        table = expect_object(data.value, "repository", self.display_name)
        if isinstance(table, Err):
            return table
        return Ok(get_str(table.value, "clone_url") or get_str(table.value, "html_url") or "")

    async def delete_repository(self, owner: str, name: str) -> Result[None, PlatformError]:
        data = await self._call("DELETE", f"/repos/{owner}/{name}")
        if isinstance(data, Err):
            return Err(_with_message(data.error, "Failed to delete repository"))
        return Ok(None)


def _host(url: str) -> str:
    return url.split("://", 1)[-1].split("/", 1)[0]


def _with_message(error: PlatformError, prefix: str) -> PlatformError:
    if error.kind != "api":
        return error
    return PlatformError(kind=error.kind, message=f"{prefix}: {error.message}", status=error.status, hint=error.hint)
