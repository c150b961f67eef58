"""Tests for services/sync.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.result import Err
from gitgrip.git.repository import Repository
from gitgrip.output.console import MockConsole
from gitgrip.services.executor import Failed, Skipped, Success
from gitgrip.services.selection import RepoSelection
from gitgrip.services.sync import SyncOptions, SyncService
from gitgrip.test.gitfixtures import commit_file, git, load, make_workspace, requires_git

HOOKS = """\
workspace:
  hooks:
    post-sync:
      - name: on-change
        command: echo ran >> hook.log
        condition: changed
"""


@requires_git
class TestSync:
    def test_clones_missing_repos(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api", "web"], clone_repos=False)
        report = SyncService(workspace=load(root), console=MockConsole()).sync()

        assert [o.outcome for o in report.outcomes] == [Success("cloned"), Success("cloned")]
        assert report.changed == ("api", "web")
        assert (root / "api" / "hello.txt").exists()
        assert report.to_dict()["success"] is True

    def test_pulls_default_branch(self, tmp_path: Path) -> None:
        root, seeds = make_workspace(tmp_path, ["api", "web"], extra_yaml=HOOKS)
        commit_file(seeds["api"], "new.txt", "remote")
        git(seeds["api"], "push")

        report = SyncService(workspace=load(root), console=MockConsole()).sync(SyncOptions(parallel=False))

        by_name = {o.name: o.outcome for o in report.outcomes}
        assert by_name["api"] == Success("pulled")
        assert by_name["web"] == Success("up to date")
        assert report.changed == ("api",)
        assert (root / "api" / "new.txt").exists()
        assert (root / "hook.log").read_text(encoding="utf-8") == "ran\n"

    def test_nothing_changed_skips_changed_hooks(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"], extra_yaml=HOOKS)
        report = SyncService(workspace=load(root), console=MockConsole()).sync()
        assert report.changed == ()
        assert report.hooks[0].skipped
        assert not (root / "hook.log").exists()

    def test_dirty_repo_skipped(self, tmp_path: Path) -> None:
        root, seeds = make_workspace(tmp_path, ["api"])
        commit_file(seeds["api"], "new.txt", "remote")
        git(seeds["api"], "push")
        (root / "api" / "hello.txt").write_text("local\n", encoding="utf-8")

        report = SyncService(workspace=load(root), console=MockConsole()).sync()
        assert report.outcomes[0].outcome == Skipped("dirty, skipped")
        assert not (root / "api" / "new.txt").exists()

    def test_feature_branch_only_fetched(self, tmp_path: Path) -> None:
        root, seeds = make_workspace(tmp_path, ["api"])
        git(root / "api", "checkout", "-b", "feat")
        commit_file(seeds["api"], "new.txt", "remote")
        git(seeds["api"], "push")

        report = SyncService(workspace=load(root), console=MockConsole()).sync()
        assert report.outcomes[0].outcome == Success("fetched (on feat)")
        assert Repository(root / "api").ahead_behind("origin/main") == (0, 1)

    def test_bad_url_fails_without_stopping(self, tmp_path: Path) -> None:
        extra = "  broken:\n    url: file:///nonexistent/broken.git\n    path: broken\n"
        root, _ = make_workspace(tmp_path, ["api"], clone_repos=False)
        manifest = root / ".gitgrip" / "spaces" / "main" / "gripspace.yml"
        manifest.write_text(manifest.read_text(encoding="utf-8") + extra, encoding="utf-8")

        report = SyncService(workspace=load(root), console=MockConsole()).sync()
        by_name = {o.name: o.outcome for o in report.outcomes}
        assert by_name["api"] == Success("cloned")
        assert isinstance(by_name["broken"], Failed)
        assert report.summary.error_count == 1

    def test_selection(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api", "web"], clone_repos=False)
        report = SyncService(workspace=load(root), console=MockConsole()).sync(
            SyncOptions(selection=RepoSelection(repos=("web",)))
        )
        assert [o.name for o in report.outcomes] == ["web"]
        assert not (root / "api").exists()

    def test_reset_refs(self, tmp_path: Path) -> None:
        root, seeds = make_workspace(tmp_path, ["docs"], reference=["docs"])
        commit_file(root / "docs", "local.txt", "local only")
        commit_file(seeds["docs"], "new.txt", "remote")
        git(seeds["docs"], "push")

        report = SyncService(workspace=load(root), console=MockConsole()).sync(SyncOptions(reset_refs=True))
        assert report.outcomes[0].outcome == Success("reset to origin/main")
        assert not (root / "docs" / "local.txt").exists()
        assert (root / "docs" / "new.txt").exists()

    def test_manifest_sync_without_repo(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        result = SyncService(workspace=load(root), console=MockConsole()).sync_manifest()
        assert isinstance(result, Err)
        assert result.error.kind == "env"


@requires_git
class TestPull:
    def test_pull_rebase(self, tmp_path: Path) -> None:
        root, seeds = make_workspace(tmp_path, ["api"])
        commit_file(seeds["api"], "new.txt", "remote")
        git(seeds["api"], "push")

        outcomes = SyncService(workspace=load(root), console=MockConsole()).pull(mode="rebase")
        assert outcomes[0].outcome == Success("pulled")
