"""Tests for the cross-repo PR services against an in-memory host."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.state import StateFile
from gitgrip.core.workspace import Workspace
from gitgrip.hosting.contract import AdapterDefaults, HostingPlatform
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.linked_prs import parse_linked_pr_comment
from gitgrip.hosting.registry import AdapterCache
from gitgrip.hosting.types import (
    CheckState,
    MergeMethod,
    ParsedRepoInfo,
    PRCreateResult,
    PRRef,
    PRReview,
    PullRequest,
    StatusCheck,
    StatusCheckResult,
)
from gitgrip.output.console import MockConsole
from gitgrip.services.pr import CreateOptions, MergeOptions, PRCreateService, PRMergeService, PRStatusService
from gitgrip.services.pr.create import prefixed_title, title_from_branch
from gitgrip.test.gitfixtures import commit_file, git, load, make_workspace, requires_git
from gitgrip.test.hosting.mock_api import FakeApi


@dataclass
class FakePR:
    number: int
    head: str
    body: str = ""
    approved: bool = True
    checks: CheckState = "success"
    mergeable: bool | None = True
    merged: bool = False


@dataclass
class FakeHost(AdapterDefaults):
    """Pull requests keyed by repository name."""

    prs: dict[str, FakePR] = field(default_factory=dict)
    merge_calls: list[tuple[str, int, MergeMethod]] = field(default_factory=list)
    fail_merge: set[str] = field(default_factory=set)
    refuse_merge: set[str] = field(default_factory=set)
    next_number: int = 100

    display_name = "fake"

    async def get_token(self) -> Result[str, PlatformError]:
        return Ok("token")

    def matches_url(self, url: str) -> bool:
        return True

    def parse_repo_url(self, url: str) -> ParsedRepoInfo | None:
        return None

    def _url(self, repo: str, number: int) -> str:
        return f"https://example.test/{repo}/pull/{number}"

    def _missing(self, repo: str) -> PlatformError:
        return PlatformError(kind="not_found", message=f"no PR in {repo}")

    async def create_pull_request(
        self, owner: str, repo: str, head: str, base: str, title: str, body: str | None = None, draft: bool = False
    ) -> Result[PRCreateResult, PlatformError]:
        self.next_number += 1
        self.prs[repo] = FakePR(self.next_number, head, body or "")
        return Ok(PRCreateResult(self.next_number, self._url(repo, self.next_number)))

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Result[PullRequest, PlatformError]:
        pr = self.prs.get(repo)
        if pr is None:
            return Err(self._missing(repo))
        return Ok(
            PullRequest(
                number=pr.number,
                url=self._url(repo, pr.number),
                title="t",
                body=pr.body,
                state="closed" if pr.merged else "open",
                merged=pr.merged,
                head=PRRef(pr.head, "abc123"),
                base=PRRef("main"),
                mergeable=pr.mergeable,
            )
        )

    async def update_pull_request_body(self, owner: str, repo: str, number: int, body: str) -> Result[None, PlatformError]:
        self.prs[repo].body = body
        return Ok(None)

    async def merge_pull_request(
        self, owner: str, repo: str, number: int, method: MergeMethod | None = None, delete_branch: bool = False
    ) -> Result[bool, PlatformError]:
        self.merge_calls.append((repo, number, method or "merge"))
        if repo in self.fail_merge:
            return Err(PlatformError(kind="api", message="merge conflict"))
        if repo in self.refuse_merge:
            return Ok(False)
        pr = self.prs[repo]
        if pr.merged:
            return Ok(False)
        pr.merged = True
        return Ok(True)

    async def find_pr_by_branch(self, owner: str, repo: str, branch: str) -> Result[PRCreateResult | None, PlatformError]:
        pr = self.prs.get(repo)
        if pr is None or pr.head != branch or pr.merged:
            return Ok(None)
        return Ok(PRCreateResult(pr.number, self._url(repo, pr.number)))

    async def is_pull_request_approved(self, owner: str, repo: str, number: int) -> Result[bool, PlatformError]:
        return Ok(self.prs[repo].approved)

    async def get_pull_request_reviews(self, owner: str, repo: str, number: int) -> Result[list[PRReview], PlatformError]:
        return Ok([])

    async def get_status_checks(self, owner: str, repo: str, ref: str) -> Result[StatusCheckResult, PlatformError]:
        pr = self.prs.get(repo)
        if pr is None:
            return Err(self._missing(repo))
        return Ok(StatusCheckResult.from_checks([StatusCheck("ci", pr.checks)]))

    async def get_pull_request_diff(self, owner: str, repo: str, number: int) -> Result[str, PlatformError]:
        return Ok(f"diff --git a/{repo} b/{repo}\n")


class FakeAdapters(AdapterCache):
    def __init__(self, host: FakeHost) -> None:
        super().__init__()
        self.host = host

    def for_repo(self, repo: RepoInfo) -> HostingPlatform:
        return self.host


def _feature_workspace(tmp_path: Path, names: Sequence[str], *, extra_yaml: str = "") -> Workspace:
    root, _seeds = make_workspace(tmp_path, names, extra_yaml=extra_yaml)
    for name in names:
        git(root / name, "checkout", "-b", "feat/login-page")
        commit_file(root / name, f"{name}.txt", "change")
    return load(root)


class TestTitles:
    def test_title_from_branch(self) -> None:
        assert title_from_branch("feat/add-login") == "Add login"
        assert title_from_branch("fix/null_ptr") == "Null ptr"
        assert title_from_branch("topic") == "Topic"

    def test_prefix_applied_once(self) -> None:
        assert prefixed_title("[x]", "Add") == "[x] Add"
        assert prefixed_title("[x]", "[x] Add") == "[x] Add"
        assert prefixed_title("", "Add") == "Add"


@requires_git
class TestCreate:
    def test_creates_links_and_records(self, tmp_path: Path) -> None:
        """One PR per changed repo, bodies cross-linked, state keyed by the first PR."""
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = FakeHost()
        console = MockConsole()

        report = PRCreateService(workspace=ws, console=console, adapters=FakeAdapters(host)).create(
            CreateOptions(body="Adds the login page")
        ).unwrap()

        assert report.branch == "feat/login-page"
        assert report.title == "[cross-repo] Login page"
        assert [pr.repo_name for pr in report.created] == ["api", "web"]
        assert not report.failed
        for pr in host.prs.values():
            assert pr.body.startswith("Adds the login page")
            assert {ref.repo_name for ref in parse_linked_pr_comment(pr.body)} == {"api", "web"}

        state = StateFile.load(ws.state_path).unwrap()
        anchor = state.get_pr_for_branch("feat/login-page")
        assert anchor is not None
        assert anchor == report.created[0].number
        links = state.get_linked_prs(anchor)
        assert links is not None
        assert sorted(link.repo_name for link in links) == ["api", "web"]

    def test_existing_pr_is_reused(self, tmp_path: Path) -> None:
        """A repo that already has a PR on the branch is not given a second one."""
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = FakeHost(prs={"api": FakePR(7, "feat/login-page")})

        report = PRCreateService(workspace=ws, console=MockConsole(), adapters=FakeAdapters(host)).create().unwrap()

        existing = {pr.repo_name: pr.existing for pr in report.created}
        assert existing == {"api": True, "web": False}
        assert host.prs["api"].number == 7

    def test_dry_run_creates_nothing(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api"])
        host = FakeHost()
        console = MockConsole()

        report = PRCreateService(workspace=ws, console=console, adapters=FakeAdapters(host)).create(
            CreateOptions(title="Custom", dry_run=True)
        ).unwrap()

        assert report.dry_run
        assert report.title == "[cross-repo] Custom"
        assert host.prs == {}
        assert console.find("Run without --dry-run")
        assert not ws.state_path.exists()

    def test_no_changes(self, tmp_path: Path) -> None:
        """Repos on their default branch give nothing to open."""
        root, _seeds = make_workspace(tmp_path, ["api"])

        result = PRCreateService(workspace=load(root), console=MockConsole(), adapters=FakeAdapters(FakeHost())).create()

        assert isinstance(result, Err)
        assert result.error.kind == "no_changes"

    def test_branch_mismatch(self, tmp_path: Path) -> None:
        root, _seeds = make_workspace(tmp_path, ["api", "web"])
        git(root / "api", "checkout", "-b", "feat/a")
        commit_file(root / "api", "a.txt", "a")
        git(root / "web", "checkout", "-b", "feat/b")
        commit_file(root / "web", "b.txt", "b")

        result = PRCreateService(workspace=load(root), console=MockConsole(), adapters=FakeAdapters(FakeHost())).create()

        assert isinstance(result, Err)
        assert result.error.kind == "branch_mismatch"
        assert "api on 'feat/a'" in result.error.message


@requires_git
class TestStatus:
    def test_rows_and_missing(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = FakeHost(prs={"api": FakePR(3, "feat/login-page", checks="pending")})

        report = PRStatusService(workspace=ws, console=MockConsole(), adapters=FakeAdapters(host)).status()

        assert [r.name for r in report.rows] == ["api"]
        row = report.rows[0]
        assert not row.ready
        assert row.to_dict()["checksPass"] is False
        assert [t.name for t in report.missing] == ["web"]

    def test_refresh_persists(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = FakeHost()
        adapters = FakeAdapters(host)
        PRCreateService(workspace=ws, console=MockConsole(), adapters=adapters).create().unwrap()
        host.prs["api"].merged = True

        updated = PRStatusService(workspace=ws, console=MockConsole(), adapters=adapters).refresh()

        assert updated == Ok(2)
        state = StateFile.load(ws.state_path).unwrap()
        anchor = state.get_pr_for_branch("feat/login-page")
        assert anchor is not None
        links = {link.repo_name: link for link in state.get_linked_prs(anchor) or []}
        assert links["api"].state == "merged"
        assert links["web"].state == "open"
        assert links["web"].checks_pass

    def test_file_remotes_never_reach_the_network(self, tmp_path: Path) -> None:
        """Workspaces cloned from file:// remotes report no PRs without any HTTP call."""
        root, _seeds = make_workspace(tmp_path, ["api"])
        git(root / "api", "checkout", "-b", "feat/z")
        commit_file(root / "api", "z.txt", "z")
        api = FakeApi()
        adapters = AdapterCache(http_client=api.client())

        report = PRStatusService(workspace=load(root), console=MockConsole(), adapters=adapters).status()

        assert api.requests == []
        assert report.rows == ()
        assert [t.name for t in report.missing] == ["api"]


@requires_git
class TestMerge:
    def _service(self, ws: Workspace, host: FakeHost, console: MockConsole) -> PRMergeService:
        async def no_sleep(_seconds: float) -> None:
            return None

        return PRMergeService(workspace=ws, console=console, adapters=FakeAdapters(host), sleep=no_sleep)

    def _open_prs(self, **overrides: FakePR) -> FakeHost:
        prs = {"api": FakePR(1, "feat/login-page"), "web": FakePR(2, "feat/login-page")}
        prs.update(overrides)
        return FakeHost(prs=prs)

    def test_all_ready_merges_everything(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = self._open_prs()
        console = MockConsole()

        report = self._service(ws, host, console).merge().unwrap()

        assert report.merged == ("api", "web")
        assert [call[0] for call in host.merge_calls] == ["api", "web"]
        assert console.find("Successfully merged 2 PR(s).")

    def test_all_or_nothing_blocks_before_any_merge(self, tmp_path: Path) -> None:
        """One unapproved PR stops the whole merge before anything lands."""
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = self._open_prs(web=FakePR(2, "feat/login-page", approved=False))
        console = MockConsole()

        result = self._service(ws, host, console).merge()

        assert isinstance(result, Err)
        assert result.error.kind == "not_ready"
        assert "web #2" in result.error.message
        assert host.merge_calls == []
        assert console.find("web PR #2: not approved")

    def test_force_merges_anyway(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = self._open_prs(web=FakePR(2, "feat/login-page", checks="failure"))

        report = self._service(ws, host, MockConsole()).merge(MergeOptions(force=True)).unwrap()

        assert report.merged == ("api", "web")

    def test_independent_merges_ready_only(self, tmp_path: Path) -> None:
        ws = _feature_workspace(
            tmp_path, ["api", "web"], extra_yaml="settings:\n  merge_strategy: independent\n"
        )
        host = self._open_prs(web=FakePR(2, "feat/login-page", mergeable=False))

        report = self._service(ws, host, MockConsole()).merge().unwrap()

        assert report.merged == ("api",)
        assert "web" in report.skipped
        assert [call[0] for call in host.merge_calls] == ["api"]

    def test_failed_merge_stops_run(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = self._open_prs()
        host.fail_merge.add("api")
        console = MockConsole()

        result = self._service(ws, host, console).merge()

        assert isinstance(result, Err)
        assert result.error.kind == "merge_failed"
        assert [call[0] for call in host.merge_calls] == ["api"]
        assert console.has_error()

    def test_declined_merge_is_a_failure(self, tmp_path: Path) -> None:
        """A host that declines without merging stops the run and is not recorded as merged."""
        ws = _feature_workspace(tmp_path, ["api", "web"])
        host = FakeHost()
        PRCreateService(workspace=ws, console=MockConsole(), adapters=FakeAdapters(host)).create().unwrap()
        host.refuse_merge.add("api")
        console = MockConsole()

        result = self._service(ws, host, console).merge()

        assert isinstance(result, Err)
        assert result.error.kind == "merge_failed"
        assert "not mergeable" in result.error.message
        assert [call[0] for call in host.merge_calls] == ["api"]
        assert not host.prs["api"].merged
        assert console.find("api: PR #101 could not be merged")
        state = StateFile.load(ws.state_path).unwrap()
        anchor = state.get_pr_for_branch("feat/login-page")
        assert anchor is not None
        assert all(link.state != "merged" for link in state.get_linked_prs(anchor) or [])

    def test_explicit_method(self, tmp_path: Path) -> None:
        ws = _feature_workspace(tmp_path, ["api"])
        host = FakeHost(prs={"api": FakePR(1, "feat/login-page")})

        self._service(ws, host, MockConsole()).merge(MergeOptions(method="squash")).unwrap()

        assert host.merge_calls == [("api", 1, "squash")]

    def test_no_feature_branches(self, tmp_path: Path) -> None:
        root, _seeds = make_workspace(tmp_path, ["api"])

        result = self._service(load(root), FakeHost(), MockConsole()).merge()

        assert isinstance(result, Err)
        assert result.error.kind == "no_prs"

    def test_auto_skips_readiness_gate(self, tmp_path: Path) -> None:
        """Auto-merge is requested even while checks are pending; unsupported hosts fail per repo."""
        ws = _feature_workspace(tmp_path, ["api"])
        host = FakeHost(prs={"api": FakePR(1, "feat/login-page", checks="pending")})
        console = MockConsole()

        report = self._service(ws, host, console).merge(MergeOptions(auto=True)).unwrap()

        assert report.auto
        assert [name for name, _ in report.failed] == ["api"]
        assert host.merge_calls == []
