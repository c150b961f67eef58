"""GitLab adapter (REST v4). Merge requests stand in for pull requests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import quote

import httpx

from gitgrip.core.manifest import PlatformType
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_str_dict, get_int, get_list, get_str, get_table, get_text
from gitgrip.hosting.contract import AdapterDefaults, token_from_env
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.transport import HttpTransport, expect_list, expect_object
from gitgrip.hosting.types import (
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

__all__ = ["DEFAULT_BASE_URL", "GitLabAdapter", "project_id"]

DEFAULT_BASE_URL = "https://gitlab.com"

_DRAFT_PREFIX = "Draft: "


def project_id(owner: str, repo: str) -> str:
    """URL-encoded ``owner/repo`` path accepted wherever a project id is."""
    return quote(f"{owner}/{repo}", safe="")


def _mr_state(raw: str | None) -> tuple[PRState, bool]:
    match raw:
        case "merged":
            return "merged", True
        case "opened":
            return "open", False
        case _:
            return "closed", False


def _pipeline_state(raw: str | None) -> CheckState:
    match raw:
        case "success":
            return "success"
        case "failed" | "canceled":
            return "failure"
        case _:
            return "pending"


def _parse_mr(data: StrDict) -> Result[PullRequest, PlatformError]:
    iid = get_int(data, "iid")
    if iid is None:
        return Err(PlatformError(kind="parse", message="GitLab: merge request without an iid"))
    state, merged = _mr_state(get_str(data, "state"))
    detailed = get_str(data, "detailed_merge_status")
    legacy = get_str(data, "merge_status")
    mergeable: bool | None = None
    if detailed is not None or legacy is not None:
        mergeable = detailed == "mergeable" or legacy == "can_be_merged"
    refs = get_table(data, "diff_refs") or {}
    return Ok(
        PullRequest(
            number=iid,
            url=get_str(data, "web_url") or "",
            title=get_str(data, "title") or "",
            body=get_text(data, "description"),
            state=state,
            merged=merged,
            head=PRRef(ref=get_str(data, "source_branch") or "", sha=get_str(data, "sha") or ""),
            base=PRRef(ref=get_str(data, "target_branch") or "", sha=get_str(refs, "base_sha") or ""),
            mergeable=mergeable,
        )
    )


def _token_from_glab(output: str) -> str | None:
    for line in output.splitlines():
        if "Token:" in line:
            token = line.split()[-1]
            if token and token != "Token:":
                return token
    return None


class GitLabAdapter(AdapterDefaults):
    platform_type: PlatformType = "gitlab"
    display_name = "GitLab"

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
            base_url=f"{self.base_url}/api/v4",
            rate_limit_scheme="ratelimit",
            http_client=http_client,
            console=console,
            wait_on_rate_limit=wait_on_rate_limit,
        )

    async def get_token(self) -> Result[str, PlatformError]:
        if self._token:
            return Ok(self._token)
        token = token_from_env("GITLAB_TOKEN")
        if token is None:
            result = await asyncio.to_thread(
                run_process, ["glab", "auth", "status", "-t"], Path.cwd(), None, timeout=10
            )
            match result:
                case Ok(stdout):
                    token = _token_from_glab(stdout)
                case Err(e):
                    token = _token_from_glab(e.stdout + e.stderr)
        if token is None:
            return Err(
                PlatformError(kind="auth", message="GitLab token not found. Set GITLAB_TOKEN or run 'glab auth login'")
            )
        self._token = token
        return Ok(token)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> Result[object, PlatformError]:
        token = await self.get_token()
        if isinstance(token, Err):
            return token
        headers = {"PRIVATE-TOKEN": token.value, "User-Agent": "gitgrip"}
        return await self.transport.request_json(method, path, headers=headers, json=json, params=params)

    def matches_url(self, url: str) -> bool:
        return "gitlab" in url or self.base_url.split("://", 1)[-1] in url

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None:
        """GitLab supports nested groups: everything but the last segment is the owner."""
        if url.startswith("git@") and ":" in url:
            path = url.split(":", 1)[1]
        elif "://" in url:
            rest = url.split("://", 1)[1]
            if "/" not in rest:
                return None
            path = rest.split("/", 1)[1]
        else:
            return None
        parts = [p for p in path.removesuffix(".git").split("/") if p]
        if len(parts) < 2:
            return None
        return ParsedRepoInfo(owner="/".join(parts[:-1]), repo=parts[-1], platform="gitlab")

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
            "source_branch": head,
            "target_branch": base,
            "title": f"{_DRAFT_PREFIX}{title}" if draft else title,
            "description": body or "",
        }
        data = await self._call("POST", f"/projects/{project_id(owner, repo)}/merge_requests", json=payload)
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "merge request", self.display_name)
        if isinstance(table, Err):
            return table
        iid = get_int(table.value, "iid")
        if iid is None:
            return Err(PlatformError(kind="parse", message="GitLab: created merge request has no iid"))
        return Ok(PRCreateResult(number=iid, url=get_str(table.value, "web_url") or ""))

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]:
        data = await self._call("GET", f"/projects/{project_id(owner, repo)}/merge_requests/{number}")
        if isinstance(data, Err):
            return data
        return expect_object(data.value, "merge request", self.display_name).flat_map(_parse_mr)

    async def update_pull_request_body(self, owner: str, repo: str, number: int, body: str) -> Result[None, PlatformError]:
        data = await self._call(
            "PUT", f"/projects/{project_id(owner, repo)}/merge_requests/{number}", json={"description": body}
        )
        return data.map(lambda _: None)

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        method: MergeMethod | None = None,
        delete_branch: bool = True,
    ) -> Result[bool, PlatformError]:
        payload: dict[str, object] = {}
        if method == "squash":
            payload["squash"] = True
        if delete_branch:
            payload["should_remove_source_branch"] = True
        data = await self._call(
            "PUT", f"/projects/{project_id(owner, repo)}/merge_requests/{number}/merge", json=payload
        )
        if isinstance(data, Err):
            error = data.error
            lowered = error.message.lower()
            if "rebase" in lowered or "behind" in lowered or "need_rebase" in lowered:
                return Err(
                    PlatformError(
                        kind="branch_behind",
                        message=f"MR !{number} in {owner}/{repo} must be rebased onto its target branch",
                        status=error.status,
                        hint="Re-run with --update to rebase the merge request first",
                    )
                )
            if error.status in (405, 406, 409, 422):
                return Ok(False)
            return data
        return Ok(True)

    async def find_pr_by_branch(self, owner: str, repo: str, branch: str) -> Result[PRCreateResult | None, PlatformError]:
        data = await self._call(
            "GET",
            f"/projects/{project_id(owner, repo)}/merge_requests",
            params={"source_branch": branch, "state": "opened"},
        )
        if isinstance(data, Err):
            return data
        items = expect_list(data.value, "merge requests", self.display_name)
        if isinstance(items, Err):
            return items
        for item in items.value:
            iid = get_int(item, "iid")
            if iid is not None:
                return Ok(PRCreateResult(number=iid, url=get_str(item, "web_url") or ""))
        return Ok(None)

    async def _approvals(self, owner: str, repo: str, number: int) -> Result[StrDict | None, PlatformError]:
        data = await self._call("GET", f"/projects/{project_id(owner, repo)}/merge_requests/{number}/approvals")
        if isinstance(data, Err):
            # The approvals endpoint is missing on tiers without merge request approvals.
            if data.error.kind == "not_found":
                return Ok(None)
            return data
        return expect_object(data.value, "approvals", self.display_name)

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        approvals = await self._approvals(owner, repo, number)
        if isinstance(approvals, Err):
            return approvals
        if approvals.value is None:
            return Ok(False)
        return Ok(approvals.value.get("approved") is True)

    async def get_pull_request_reviews(self, owner: str, repo: str, number: int) -> Result[list[PRReview], PlatformError]:
        approvals = await self._approvals(owner, repo, number)
        if isinstance(approvals, Err):
            return approvals
        if approvals.value is None:
            return Ok([])
        reviews: list[PRReview] = []
        for entry in get_list(approvals.value, "approved_by") or []:
            table = as_str_dict(entry)
            user = get_table(table, "user") if table is not None else None
            if user is not None:
                reviews.append(PRReview(state="APPROVED", user=get_str(user, "username") or ""))
        return Ok(reviews)

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]:
        """Latest pipeline for the commit; no pipeline at all counts as success."""
        data = await self._call(
            "GET", f"/projects/{project_id(owner, repo)}/pipelines", params={"sha": ref, "per_page": "1"}
        )
        if isinstance(data, Err):
            return data
        items = expect_list(data.value, "pipelines", self.display_name)
        if isinstance(items, Err):
            return items
        if not items.value:
            return Ok(StatusCheckResult(state="success"))
        state = _pipeline_state(get_str(items.value[0], "status"))
        return Ok(StatusCheckResult(state=state, statuses=(StatusCheck(context="gitlab-pipeline", state=state),)))

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]:
        data = await self._call("GET", f"/projects/{project_id(owner, repo)}/merge_requests/{number}/changes")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "changes", self.display_name)
        if isinstance(table, Err):
            return table
        chunks: list[str] = []
        for entry in get_list(table.value, "changes") or []:
            change = as_str_dict(entry)
            if change is None:
                continue
            old_path = get_text(change, "old_path")
            new_path = get_text(change, "new_path")
            chunks.append(f"--- a/{old_path}\n+++ b/{new_path}\n{get_text(change, 'diff')}")
        return Ok("".join(chunks))

    async def update_branch(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        data = await self._call("PUT", f"/projects/{project_id(owner, repo)}/merge_requests/{number}/rebase")
        if isinstance(data, Err):
            if data.error.status in (403, 409):
                return Ok(False)
            return data
        return Ok(True)

    async def enable_auto_merge(
        self, owner: str, repo: str, number: int, method: MergeMethod | None = None
    ) -> Result[bool, PlatformError]:
        payload: dict[str, object] = {"merge_when_pipeline_succeeds": True}
        if method == "squash":
            payload["squash"] = True
        data = await self._call(
            "PUT", f"/projects/{project_id(owner, repo)}/merge_requests/{number}/merge", json=payload
        )
        if isinstance(data, Err):
            return data
        return Ok(True)
