"""Bitbucket Cloud adapter (REST 2.0)."""

from __future__ import annotations

import re
from urllib.parse import quote

import httpx

from gitgrip.core.manifest import PlatformType
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_str_dict, get_bool, get_int, get_list, get_str, get_table, get_text
from gitgrip.hosting.contract import AdapterDefaults, token_from_env
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.transport import HttpTransport, expect_object
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

__all__ = ["BitbucketAdapter", "DEFAULT_BASE_URL"]

DEFAULT_BASE_URL = "https://api.bitbucket.org/2.0"

_URL_RE = re.compile(r"bitbucket\.[^/:]+[/:]([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?/?$")

_MERGE_STRATEGIES: dict[MergeMethod, str] = {
    "merge": "merge_commit",
    "squash": "squash",
    "rebase": "fast_forward",
}


def _status_state(raw: str | None) -> CheckState:
    match raw:
        case "SUCCESSFUL":
            return "success"
        case "FAILED" | "STOPPED":
            return "failure"
        case _:
            return "pending"


def _pr_state(raw: str | None) -> PRState:
    match raw:
        case "MERGED":
            return "merged"
        case "OPEN":
            return "open"
        case _:
            return "closed"


def _html_url(data: StrDict) -> str:
    links = get_table(data, "links") or {}
    return get_str(get_table(links, "html") or {}, "href") or ""


def _branch_ref(side: StrDict) -> PRRef:
    branch = get_table(side, "branch") or {}
    commit = get_table(side, "commit") or {}
    return PRRef(ref=get_str(branch, "name") or "", sha=get_str(commit, "hash") or "")


def _reviewers(pr: StrDict) -> list[StrDict]:
    participants = (as_str_dict(p) for p in get_list(pr, "participants") or [])
    return [p for p in participants if p is not None and get_str(p, "role") == "REVIEWER"]


class BitbucketAdapter(AdapterDefaults):
    platform_type: PlatformType = "bitbucket"
    display_name = "Bitbucket"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        console: ConsoleProtocol | None = None,
        wait_on_rate_limit: bool = False,
    ) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._token = token
        self.transport = HttpTransport(
            platform=self.display_name,
            base_url=self.base_url,
            rate_limit_scheme="x-ratelimit",
            http_client=http_client,
            console=console,
            wait_on_rate_limit=wait_on_rate_limit,
        )

    async def get_token(self) -> Result[str, PlatformError]:
        if self._token:
            return Ok(self._token)
        token = token_from_env("BITBUCKET_TOKEN")
        if token is None:
            return Err(PlatformError(kind="auth", message="BITBUCKET_TOKEN not set"))
        self._token = token
        return Ok(token)

    async def _headers(self) -> Result[dict[str, str], PlatformError]:
        token = await self.get_token()
        if isinstance(token, Err):
            return token
        return Ok({"Authorization": f"Bearer {token.value}", "User-Agent": "gitgrip"})

    async def _call(
        self,
        method: str,
        owner: str,
        repo: str,
        endpoint: str,
        *,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> Result[object, PlatformError]:
        headers = await self._headers()
        if isinstance(headers, Err):
            return headers
        path = f"/repositories/{owner}/{repo}{endpoint}"
        return await self.transport.request_json(method, path, headers=headers.value, json=json, params=params)

    async def _pull(self, owner: str, repo: str, number: int) -> Result[StrDict, PlatformError]:
        data = await self._call("GET", owner, repo, f"/pullrequests/{number}")
        if isinstance(data, Err):
            return data
        return expect_object(data.value, "pull request", self.display_name)

    def matches_url(self, url: str) -> bool:
        return "bitbucket." in url

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None:
        match = _URL_RE.search(url.strip())
        if match is None:
            return None
        return ParsedRepoInfo(owner=match.group(1), repo=match.group(2), platform="bitbucket")

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
        payload = {
            "title": title,
            "description": body or "",
            "source": {"branch": {"name": head}},
            "destination": {"branch": {"name": base}},
            "close_source_branch": False,
            "draft": draft,
        }
        data = await self._call("POST", owner, repo, "/pullrequests", json=payload)
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "pull request", self.display_name)
        if isinstance(table, Err):
            return table
        number = get_int(table.value, "id")
        if number is None:
            return Err(PlatformError(kind="parse", message="Bitbucket: created PR has no id"))
        return Ok(PRCreateResult(number=number, url=_html_url(table.value)))

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]:
        pr = await self._pull(owner, repo, number)
        if isinstance(pr, Err):
            return pr
        data = pr.value
        state = _pr_state(get_str(data, "state"))
        return Ok(
            PullRequest(
                number=get_int(data, "id") or number,
                url=_html_url(data),
                title=get_str(data, "title") or "",
                body=get_text(data, "description"),
                state=state,
                merged=state == "merged",
                head=_branch_ref(get_table(data, "source") or {}),
                base=_branch_ref(get_table(data, "destination") or {}),
                mergeable=None,
            )
        )

    async def update_pull_request_body(self, owner: str, repo: str, number: int, body: str) -> Result[None, PlatformError]:
        data = await self._call("PUT", owner, repo, f"/pullrequests/{number}", json={"description": body})
        return data.map(lambda _: None)

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: MergeMethod | None = None,
        delete_branch: bool = True,
    ) -> Result[bool, PlatformError]:
        payload = {
            "close_source_branch": delete_branch,
            "merge_strategy": _MERGE_STRATEGIES[method or "merge"],
        }
        data = await self._call("POST", owner, repo, f"/pullrequests/{number}/merge", json=payload)
        if isinstance(data, Err):
            if data.error.status in (400, 409):
                return Ok(False)
            return data
        return Ok(True)

    async def find_pr_by_branch(self, owner: str, repo: str, branch: str) -> Result[PRCreateResult | None, PlatformError]:
        data = await self._call(
            "GET",
            owner,
            repo,
            "/pullrequests",
            params={"state": "OPEN", "q": f'source.branch.name="{branch}"'},
        )
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "pull request page", self.display_name)
        if isinstance(table, Err):
            return table
        for entry in get_list(table.value, "values") or []:
            pr = as_str_dict(entry)
            if pr is None:
                continue
            number = get_int(pr, "id")
            if number is not None:
                return Ok(PRCreateResult(number=number, url=_html_url(pr)))
        return Ok(None)

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        """Every named reviewer approved, and there is at least one."""
        pr = await self._pull(owner, repo, number)
        if isinstance(pr, Err):
            return pr
        reviewers = _reviewers(pr.value)
        return Ok(bool(reviewers) and all(get_bool(r, "approved") for r in reviewers))

    async def get_pull_request_reviews(self, owner: str, repo: str, number: int) -> Result[list[PRReview], PlatformError]:
        pr = await self._pull(owner, repo, number)
        if isinstance(pr, Err):
            return pr
        reviews: list[PRReview] = []
        for reviewer in _reviewers(pr.value):
            user = get_table(reviewer, "user") or {}
            state = "APPROVED" if get_bool(reviewer, "approved") else (get_str(reviewer, "state") or "PENDING").upper()
            reviews.append(PRReview(state=state, user=get_str(user, "display_name") or ""))
        return Ok(reviews)

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]:
        data = await self._call("GET", owner, repo, f"/commit/{quote(ref, safe='')}/statuses")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "statuses", self.display_name)
        if isinstance(table, Err):
            return table
        checks: list[StatusCheck] = []
        for entry in get_list(table.value, "values") or []:
            status = as_str_dict(entry)
            if status is None:
                continue
            name = get_str(status, "name") or get_str(status, "key") or ""
            checks.append(StatusCheck(context=name, state=_status_state(get_str(status, "state"))))
        return Ok(StatusCheckResult.from_checks(checks))

    async def get_allowed_merge_methods(self, owner: str, repo: str) -> Result[AllowedMergeMethods, PlatformError]:
        return Ok(AllowedMergeMethods(merge=True, squash=True, rebase=False))

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]:
        headers = await self._headers()
        if isinstance(headers, Err):
            return headers
        return await self.transport.request_text(
            f"/repositories/{owner}/{repo}/pullrequests/{number}/diff", headers=headers.value
        )
