"""Azure DevOps adapter (REST 7.0).

The manifest owner for Azure repos is ``ORG/PROJECT``; every request is
scoped to ``{base}/{org}/{project}/_apis``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from gitgrip.core.manifest import PlatformType
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_str_dict, get_int, get_list, get_str, get_table, get_text
from gitgrip.hosting.contract import AdapterDefaults, token_from_env
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.transport import HttpTransport, expect_object
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

__all__ = ["API_VERSION", "AzureDevOpsAdapter", "DEFAULT_BASE_URL"]

DEFAULT_BASE_URL = "https://dev.azure.com"
API_VERSION = "7.0"

_REFS_PREFIX = "refs/heads/"

# Reviewer votes: 10 approved, 5 approved with suggestions, -5 waiting for author, -10 rejected.
_VOTE_STATES = {10: "APPROVED", 5: "APPROVED_WITH_SUGGESTIONS", -5: "WAITING_FOR_AUTHOR", -10: "REJECTED"}


@dataclass(frozen=True, slots=True)
class _Context:
    organization: str
    project: str
    repository: str


def _context(owner: str, repo: str) -> _Context:
    org, _, project = owner.partition("/")
    return _Context(organization=org, project=project or org, repository=repo)


def _strip_ref(ref: str | None) -> str:
    return (ref or "").removeprefix(_REFS_PREFIX)


def _build_state(build: StrDict) -> CheckState:
    result = get_str(build, "result")
    if result in ("failed", "canceled"):
        return "failure"
    if get_str(build, "status") != "completed":
        return "pending"
    return "success"


class AzureDevOpsAdapter(AdapterDefaults):
    platform_type: PlatformType = "azure-devops"
    display_name = "Azure DevOps"

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
        token = token_from_env("AZURE_DEVOPS_TOKEN", "AZURE_DEVOPS_EXT_PAT")
        if token is None:
            return Err(
                PlatformError(
                    kind="auth",
                    message="Azure DevOps token not found. Set AZURE_DEVOPS_TOKEN or use 'az login'",
                )
            )
        self._token = token
        return Ok(token)

    async def _call(
        self,
        method: str,
        ctx: _Context,
        endpoint: str,
        *,
        json: object = None,
        params: dict[str, str] | None = None,
    ) -> Result[object, PlatformError]:
        token = await self.get_token()
        if isinstance(token, Err):
            return token
        # PAT auth is Basic with an empty user name.
        auth = base64.b64encode(f":{token.value}".encode()).decode("ascii")
        headers = {"Authorization": f"Basic {auth}", "User-Agent": "gitgrip"}
        query = {"api-version": API_VERSION, **(params or {})}
        path = f"/{quote(ctx.organization)}/{quote(ctx.project)}/_apis{endpoint}"
        return await self.transport.request_json(method, path, headers=headers, json=json, params=query)

    def pr_url(self, ctx: _Context, number: int) -> str:
        return f"{self.base_url}/{ctx.organization}/{ctx.project}/_git/{ctx.repository}/pullrequest/{number}"

    def matches_url(self, url: str) -> bool:
        return "dev.azure.com" in url or "visualstudio.com" in url

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None:
        if "://" in url:
            rest = url.split("://", 1)[1]
            host, _, path = rest.partition("/")
            host = host.split("@", 1)[-1]
        elif url.startswith("git@") and ":" in url:
            host, path = url.split(":", 1)
            host = host.split("@", 1)[-1]
        else:
            return None
        parts = [p for p in path.removesuffix(".git").split("/") if p]

        # git@ssh.dev.azure.com:v3/org/project/repo
        if parts[:1] == ["v3"] and len(parts) >= 4:
            return ParsedRepoInfo(owner=f"{parts[1]}/{parts[2]}", repo=parts[3], project=parts[2], platform="azure-devops")
        # https://dev.azure.com/org/project/_git/repo
        if "_git" in parts:
            idx = parts.index("_git")
            if idx + 1 >= len(parts):
                return None
            if host.endswith("visualstudio.com") and idx >= 1:
                org = host.split(".", 1)[0]
                project = parts[idx - 1]
            elif idx >= 2:
                org, project = parts[idx - 2], parts[idx - 1]
            else:
                return None
            return ParsedRepoInfo(owner=f"{org}/{project}", repo=parts[idx + 1], project=project, platform="azure-devops")
        return None

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
        ctx = _context(owner, repo)
        payload = {
            "sourceRefName": f"{_REFS_PREFIX}{head}",
            "targetRefName": f"{_REFS_PREFIX}{base}",
            "title": title,
            "description": body or "",
            "isDraft": draft,
        }
        data = await self._call("POST", ctx, f"/git/repositories/{repo}/pullrequests", json=payload)
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "pull request", self.display_name)
        if isinstance(table, Err):
            return table
        number = get_int(table.value, "pullRequestId")
        if number is None:
            return Err(PlatformError(kind="parse", message="Azure DevOps: created PR has no id"))
        return Ok(PRCreateResult(number=number, url=self.pr_url(ctx, number)))

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]:
        ctx = _context(owner, repo)
        data = await self._call("GET", ctx, f"/git/repositories/{repo}/pullrequests/{number}")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "pull request", self.display_name)
        if isinstance(table, Err):
            return table
        pr = table.value
        merge_status = get_str(pr, "mergeStatus")
        state: PRState
        match get_str(pr, "status"):
            case "completed":
                merged = merge_status == "succeeded"
                state = "merged" if merged else "closed"
            case "abandoned":
                state, merged = "closed", False
            case _:
                state, merged = "open", False
        source = get_table(pr, "lastMergeSourceCommit") or {}
        target = get_table(pr, "lastMergeTargetCommit") or {}
        return Ok(
            PullRequest(
                number=get_int(pr, "pullRequestId") or number,
                url=self.pr_url(ctx, number),
                title=get_str(pr, "title") or "",
                body=get_text(pr, "description"),
                state=state,
                merged=merged,
                head=PRRef(ref=_strip_ref(get_str(pr, "sourceRefName")), sha=get_str(source, "commitId") or ""),
                base=PRRef(ref=_strip_ref(get_str(pr, "targetRefName")), sha=get_str(target, "commitId") or ""),
                mergeable=merge_status in ("succeeded", "queued"),
            )
        )

    async def update_pull_request_body(self, owner: str, repo: str, number: int, body: str) -> Result[None, PlatformError]:
        ctx = _context(owner, repo)
        data = await self._call(
            "PATCH", ctx, f"/git/repositories/{repo}/pullrequests/{number}", json={"description": body}
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
        """Complete the PR against the head commit last seen by the server."""
        pr = await self.get_pull_request(owner, repo, number)
        if isinstance(pr, Err):
            return pr
        options: dict[str, object] = {}
        if delete_branch:
            options["deleteSourceBranch"] = True
        match method:
            case "squash":
                options["mergeStrategy"] = "squash"
            case "rebase":
                options["mergeStrategy"] = "rebase"
            case _:
                options["mergeStrategy"] = "noFastForward"
        payload = {
            "status": "completed",
            "lastMergeSourceCommit": {"commitId": pr.value.head.sha},
            "completionOptions": options,
        }
        ctx = _context(owner, repo)
        data = await self._call("PATCH", ctx, f"/git/repositories/{repo}/pullrequests/{number}", json=payload)
        if isinstance(data, Err):
            if data.error.status in (400, 409):
                return Ok(False)
            return data
        return Ok(True)

    async def find_pr_by_branch(self, owner: str, repo: str, branch: str) -> Result[PRCreateResult | None, PlatformError]:
        ctx = _context(owner, repo)
        data = await self._call(
            "GET",
            ctx,
            f"/git/repositories/{repo}/pullrequests",
            params={"searchCriteria.sourceRefName": f"{_REFS_PREFIX}{branch}", "searchCriteria.status": "active"},
        )
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "pull request list", self.display_name)
        if isinstance(table, Err):
            return table
        for entry in get_list(table.value, "value") or []:
            pr = as_str_dict(entry)
            number = get_int(pr, "pullRequestId") if pr is not None else None
            if number is not None:
                return Ok(PRCreateResult(number=number, url=self.pr_url(ctx, number)))
        return Ok(None)

    async def _votes(self, owner: str, repo: str, number: int) -> Result[list[tuple[str, int]], PlatformError]:
        ctx = _context(owner, repo)
        data = await self._call("GET", ctx, f"/git/repositories/{repo}/pullrequests/{number}/reviewers")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "reviewers", self.display_name)
        if isinstance(table, Err):
            return table
        votes: list[tuple[str, int]] = []
        for entry in get_list(table.value, "value") or []:
            reviewer = as_str_dict(entry)
            if reviewer is None:
                continue
            votes.append((get_str(reviewer, "displayName") or "", get_int(reviewer, "vote") or 0))
        return Ok(votes)

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        """Approved when someone voted 5 or 10 and nobody voted -5 or -10."""
        votes = await self._votes(owner, repo, number)
        if isinstance(votes, Err):
            return votes
        values = [v for _, v in votes.value]
        return Ok(any(v >= 5 for v in values) and not any(v <= -5 for v in values))

    async def get_pull_request_reviews(self, owner: str, repo: str, number: int) -> Result[list[PRReview], PlatformError]:
        votes = await self._votes(owner, repo, number)
        if isinstance(votes, Err):
            return votes
        return Ok([PRReview(state=_VOTE_STATES[v], user=name) for name, v in votes.value if v in _VOTE_STATES])

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]:
        """Recent builds of the repository; none at all counts as success."""
        ctx = _context(owner, repo)
        data = await self._call(
            "GET",
            ctx,
            "/build/builds",
            params={"repositoryId": repo, "repositoryType": "TfsGit", "$top": "5"},
        )
        if isinstance(data, Err):
            if data.error.kind == "not_found":
                return Ok(StatusCheckResult(state="success"))
            return data
        table = expect_object(data.value, "builds", self.display_name)
        if isinstance(table, Err):
            return table
        builds = [b for b in (as_str_dict(e) for e in get_list(table.value, "value") or []) if b is not None]
        checks = [
            StatusCheck(
                context=get_str(get_table(b, "definition") or {}, "name") or "azure-pipeline",
                state=_build_state(b),
            )
            for b in builds
        ]
        return Ok(StatusCheckResult.from_checks(checks))

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]:
        """Commit summary: the REST API has no unified-diff endpoint for PRs."""
        ctx = _context(owner, repo)
        data = await self._call("GET", ctx, f"/git/repositories/{repo}/pullRequests/{number}/commits")
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "commits", self.display_name)
        if isinstance(table, Err):
            return table
        commits = [c for c in (as_str_dict(e) for e in get_list(table.value, "value") or []) if c is not None]
        lines = [f"Pull Request #{number} - {len(commits)} commits", ""]
        for commit in commits:
            sha = get_str(commit, "commitId") or ""
            lines.append(f"{sha[:8]}: {get_str(commit, 'comment') or '(no message)'}")
        return Ok("\n".join(lines) + "\n")

    async def create_repository(
        self, owner: str, name: str, description: str | None = None, private: bool = True
    ) -> Result[str, PlatformError]:
        ctx = _context(owner, name)
        data = await self._call("POST", ctx, "/git/repositories", json={"name": name})
        if isinstance(data, Err):
            return data
        table = expect_object(data.value, "repository", self.display_name)
        if isinstance(table, Err):
            return table
        url = get_str(table.value, "sshUrl") or get_str(table.value, "remoteUrl")
        if url is None:
            return Err(PlatformError(kind="parse", message="No clone URL returned from Azure DevOps"))
        return Ok(url)

    async def delete_repository(self, owner: str, name: str) -> Result[None, PlatformError]:
        ctx = _context(owner, name)
        info = await self._call("GET", ctx, f"/git/repositories/{name}")
        if isinstance(info, Err):
            return info
        table = expect_object(info.value, "repository", self.display_name)
        if isinstance(table, Err):
            return table
        repo_id = get_str(table.value, "id")
        if repo_id is None:
            return Err(PlatformError(kind="parse", message="Azure DevOps: repository has no id"))
        deleted = await self._call("DELETE", ctx, f"/git/repositories/{repo_id}")
        return deleted.map(lambda _: None)
