"""Tests for hosting/gitlab.py against a fake REST API."""

from __future__ import annotations

import pytest

from gitgrip.core.result import Err, Ok
from gitgrip.hosting.gitlab import GitLabAdapter, _token_from_glab, project_id
from gitgrip.hosting.types import PRCreateResult
from gitgrip.test.hosting.mock_api import FakeApi

BASE = "/api/v4/projects/group/app"

MR = {
    "iid": 3,
    "web_url": "https://gitlab.com/group/app/-/merge_requests/3",
    "title": "Change",
    "description": "Body",
    "state": "opened",
    "source_branch": "feat/x",
    "target_branch": "main",
    "sha": "abc",
    "detailed_merge_status": "mergeable",
}


def _adapter(api: FakeApi) -> GitLabAdapter:
    return GitLabAdapter(token="glpat", http_client=api.client())


class TestHelpers:
    """Pure helpers."""

    def test_project_id_is_encoded(self) -> None:
        """owner/repo is percent-encoded into one path segment."""
        assert project_id("group/sub", "app") == "group%2Fsub%2Fapp"

    def test_glab_output(self) -> None:
        """The token is the last word of the Token: line."""
        assert _token_from_glab("gitlab.com\n  ✓ Token: glpat-123\n") == "glpat-123"
        assert _token_from_glab("not logged in") is None

    def test_nested_group_url(self) -> None:
        """Subgroups stay in the owner."""
        parsed = GitLabAdapter(token="t").parse_repo_url("git@gitlab.com:group/sub/app.git")
        assert parsed is not None
        assert (parsed.owner, parsed.repo) == ("group/sub", "app")


class TestMergeRequests:
    """MR calls."""

    @pytest.mark.asyncio
    async def test_create_draft(self) -> None:
        """Drafts are marked through the title prefix; the project id stays encoded."""
        api = FakeApi().json("POST", f"{BASE}/merge_requests", MR, status=201)
        result = await _adapter(api).create_pull_request("group", "app", "feat/x", "main", "Change", draft=True)
        assert result == Ok(PRCreateResult(3, MR["web_url"]))
        request = api.last("POST", f"{BASE}/merge_requests")
        assert b"group%2Fapp" in request.url.raw_path
        assert request.headers["PRIVATE-TOKEN"] == "glpat"
        body = api.body("POST", f"{BASE}/merge_requests")
        assert isinstance(body, dict)
        assert body["title"] == "Draft: Change"

    @pytest.mark.asyncio
    async def test_get(self) -> None:
        """State and mergeability are mapped."""
        api = FakeApi().json("GET", f"{BASE}/merge_requests/3", MR)
        pr = (await _adapter(api).get_pull_request("group", "app", 3)).unwrap()
        assert pr.state == "open"
        assert pr.mergeable is True
        assert pr.head.ref == "feat/x"

    @pytest.mark.asyncio
    async def test_get_merged(self) -> None:
        """merged state is merged."""
        api = FakeApi().json("GET", f"{BASE}/merge_requests/3", {**MR, "state": "merged", "detailed_merge_status": "not_open"})
        pr = (await _adapter(api).get_pull_request("group", "app", 3)).unwrap()
        assert pr.merged
        assert pr.mergeable is False

    @pytest.mark.asyncio
    async def test_merge_squash(self) -> None:
        """Squash and source-branch removal are requested."""
        api = FakeApi().json("PUT", f"{BASE}/merge_requests/3/merge", MR)
        assert await _adapter(api).merge_pull_request("group", "app", 3, "squash") == Ok(True)
        assert api.body("PUT", f"{BASE}/merge_requests/3/merge") == {"squash": True, "should_remove_source_branch": True}

    @pytest.mark.asyncio
    async def test_merge_needs_rebase(self) -> None:
        """A rebase requirement is branch_behind."""
        api = FakeApi().json("PUT", f"{BASE}/merge_requests/3/merge", {"message": "Branch cannot be merged, need_rebase"}, status=406)
        result = await _adapter(api).merge_pull_request("group", "app", 3)
        assert isinstance(result, Err)
        assert result.error.kind == "branch_behind"

    @pytest.mark.asyncio
    async def test_merge_refused(self) -> None:
        """Other 405/406 refusals are a plain False."""
        api = FakeApi().json("PUT", f"{BASE}/merge_requests/3/merge", {"message": "Method Not Allowed"}, status=405)
        assert await _adapter(api).merge_pull_request("group", "app", 3) == Ok(False)

    @pytest.mark.asyncio
    async def test_find_by_branch(self) -> None:
        """Open MRs are filtered by source branch."""
        api = FakeApi().json("GET", f"{BASE}/merge_requests", [MR])
        assert await _adapter(api).find_pr_by_branch("group", "app", "feat/x") == Ok(PRCreateResult(3, MR["web_url"]))
        request = api.last("GET", f"{BASE}/merge_requests")
        assert request.url.params["source_branch"] == "feat/x"
        assert request.url.params["state"] == "opened"


class TestApprovalsAndPipelines:
    """Approvals and pipeline status."""

    @pytest.mark.asyncio
    async def test_approved(self) -> None:
        """The approvals flag is used directly."""
        approvals = {"approved": True, "approved_by": [{"user": {"username": "rev"}}]}
        api = FakeApi().json("GET", f"{BASE}/merge_requests/3/approvals", approvals)
        adapter = _adapter(api)
        assert await adapter.is_pull_request_approved("group", "app", 3) == Ok(True)
        reviews = (await adapter.get_pull_request_reviews("group", "app", 3)).unwrap()
        assert [(r.state, r.user) for r in reviews] == [("APPROVED", "rev")]

    @pytest.mark.asyncio
    async def test_approvals_unavailable(self) -> None:
        """A missing approvals endpoint means not approved."""
        assert await _adapter(FakeApi()).is_pull_request_approved("group", "app", 3) == Ok(False)

    @pytest.mark.asyncio
    async def test_pipeline_states(self) -> None:
        """The latest pipeline decides; none at all is success."""
        api = FakeApi().json("GET", f"{BASE}/pipelines", [{"status": "canceled"}])
        assert (await _adapter(api).get_status_checks("group", "app", "abc")).unwrap().state == "failure"
        api = FakeApi().json("GET", f"{BASE}/pipelines", [{"status": "running"}])
        assert (await _adapter(api).get_status_checks("group", "app", "abc")).unwrap().state == "pending"
        api = FakeApi().json("GET", f"{BASE}/pipelines", [])
        assert (await _adapter(api).get_status_checks("group", "app", "abc")).unwrap().state == "success"

    @pytest.mark.asyncio
    async def test_diff_from_changes(self) -> None:
        """Changes are stitched into a unified diff."""
        changes = {"changes": [{"old_path": "a.txt", "new_path": "a.txt", "diff": "@@ -1 +1 @@\n-a\n+b\n"}]}
        api = FakeApi().json("GET", f"{BASE}/merge_requests/3/changes", changes)
        diff = (await _adapter(api).get_pull_request_diff("group", "app", 3)).unwrap()
        assert diff == "--- a/a.txt\n+++ b/a.txt\n@@ -1 +1 @@\n-a\n+b\n"

    @pytest.mark.asyncio
    async def test_rate_limit_headers_use_gitlab_names(self) -> None:
        """GitLab's unprefixed rate-limit headers are read."""
        api = FakeApi().json("GET", f"{BASE}/pipelines", [], headers={"ratelimit-limit": "600", "ratelimit-remaining": "599"})
        adapter = _adapter(api)
        await adapter.get_status_checks("group", "app", "abc")
        assert adapter.transport.last_rate_limit is not None
        assert adapter.transport.last_rate_limit.remaining == 599
