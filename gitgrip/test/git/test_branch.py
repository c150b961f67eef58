"""Tests for git/branch.py."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from gitgrip.core.result import Err, Ok
from gitgrip.git.branch import (
    _worktree_conflict,
    branch_exists,
    checkout,
    commits_between,
    create_and_checkout,
    delete_local,
    is_merged,
    is_worktree_conflict,
    list_local,
    list_remote,
    remote_branch_exists,
    worktree_conflict_path,
)
from gitgrip.git.cache import status_cache
from gitgrip.git.repository import Repository
from gitgrip.git.status import get_cached_status
from gitgrip.test.gitfixtures import clone, commit_file, git, init_remote_repo, init_repo, requires_git


class TestWorktreeConflictMessage:
    """Operator-facing worktree conflict text."""

    def test_path_extracted(self) -> None:
        """The conflicting worktree path is quoted back."""
        stderr = "fatal: 'feat' is already used by worktree at '/tmp/ws-feat/app'\n"
        error = _worktree_conflict("feat", stderr, "Use a different branch name or work in that worktree.")
        assert "another worktree at '/tmp/ws-feat/app'" in error.message
        assert error.kind == "operation_failed"

    def test_path_missing(self) -> None:
        """Without a path the generic message is used."""
        error = _worktree_conflict("feat", "is already used by worktree at", "advice")
        assert error.message == "Branch 'feat' is already checked out in another worktree. advice"

    def test_older_git_wording(self) -> None:
        """Older git reports the holder as 'is already checked out at'."""
        stderr = "fatal: 'held' is already checked out at '/tmp/wt'\n"
        assert is_worktree_conflict(stderr)
        assert worktree_conflict_path(stderr) == "/tmp/wt"
        assert "another worktree at '/tmp/wt'" in _worktree_conflict("held", stderr, "advice").message

    def test_unrelated_errors_are_not_conflicts(self) -> None:
        assert not is_worktree_conflict("error: pathspec 'nope' did not match any file(s) known to git")
        assert worktree_conflict_path("fatal: not a git repository") is None


@requires_git
class TestBranchOperations:
    """Branch helpers against a real repository."""

    def test_create_and_checkout(self, tmp_path: Path) -> None:
        """New branch becomes current."""
        repo = Repository(init_repo(tmp_path / "r"))
        assert create_and_checkout(repo, "feature") == Ok(None)
        assert repo.current_branch() == Ok("feature")
        assert branch_exists(repo, "feature")

    def test_checkout_missing_branch(self, tmp_path: Path) -> None:
        """Absent local branch is branch_not_found."""
        repo = Repository(init_repo(tmp_path / "r"))
        result = checkout(repo, "nope")
        assert isinstance(result, Err)
        assert result.error.kind == "branch_not_found"

    def test_checkout_branch_in_other_worktree(self, tmp_path: Path) -> None:
        """Checking out a branch held by a worktree names that worktree."""
        path = init_repo(tmp_path / "r")
        git(path, "branch", "held")
        wt = tmp_path / "wt"
        git(path, "worktree", "add", str(wt), "held")

        result = checkout(Repository(path), "held")

        assert isinstance(result, Err)
        assert "checked out in another worktree" in result.error.message
        assert "gr branch <name>" in result.error.message
        assert "in another worktree at '" in result.error.message

    def test_delete_current_branch_refused(self, tmp_path: Path) -> None:
        """The checked-out branch cannot be deleted."""
        repo = Repository(init_repo(tmp_path / "r"))
        result = delete_local(repo, "main")
        assert isinstance(result, Err)
        assert result.error.message == "Cannot delete the currently checked out branch"

    def test_delete_unmerged_needs_force(self, tmp_path: Path) -> None:
        """Unmerged branches need force."""
        path = init_repo(tmp_path / "r")
        repo = Repository(path)
        create_and_checkout(repo, "wip")
        commit_file(path, "wip.txt", "wip")
        git(path, "checkout", "main")

        result = delete_local(repo, "wip")
        assert isinstance(result, Err)
        assert "not fully merged" in result.error.message

        assert delete_local(repo, "wip", force=True) == Ok(None)
        assert not branch_exists(repo, "wip")

    def test_is_merged_and_list(self, tmp_path: Path) -> None:
        """Merged detection and local listing."""
        path = init_repo(tmp_path / "r")
        repo = Repository(path)
        git(path, "branch", "done")
        assert is_merged(repo, "done", "main") == Ok(True)
        result = list_local(repo)
        assert isinstance(result, Ok)
        assert sorted(result.value) == ["done", "main"]

    def test_commits_between(self, tmp_path: Path) -> None:
        """Commits on head not on base are listed."""
        path = init_repo(tmp_path / "r")
        repo = Repository(path)
        create_and_checkout(repo, "feature")
        sha = commit_file(path, "a.txt", "a")
        assert commits_between(repo, "main") == Ok([sha])

    def test_remote_branches(self, tmp_path: Path) -> None:
        """Remote-tracking branches are listed without the remote prefix."""
        url, _seed = init_remote_repo(tmp_path, "app")
        path = clone(url, tmp_path / "app")
        repo = Repository(path)
        assert remote_branch_exists(repo, "main")
        assert not remote_branch_exists(repo, "other")
        assert list_remote(repo) == Ok(["main"])


@requires_git
class TestStatusCacheInvalidation:
    """Branch writes drop the cached status so the next read sees the new HEAD."""

    def test_checkout_refreshes_branch(self, tmp_path: Path) -> None:
        path = init_repo(tmp_path / "r")
        git(path, "branch", "feat/y")
        repo = Repository(path)
        assert get_cached_status(repo).unwrap().current_branch == "main"

        assert checkout(repo, "feat/y") == Ok(None)

        assert get_cached_status(repo).unwrap().current_branch == "feat/y"

    def test_create_and_delete_refresh_branch(self, tmp_path: Path) -> None:
        path = init_repo(tmp_path / "r")
        repo = Repository(path)
        assert get_cached_status(repo).unwrap().current_branch == "main"

        assert create_and_checkout(repo, "feat/z") == Ok(None)
        assert get_cached_status(repo).unwrap().current_branch == "feat/z"

        git(path, "checkout", "main")
        status_cache.put(path.resolve(), replace(get_cached_status(repo).unwrap(), current_branch="stale"))
        assert delete_local(repo, "feat/z") == Ok(None)
        assert get_cached_status(repo).unwrap().current_branch == "main"

    def test_write_commands_invalidate(self, tmp_path: Path) -> None:
        path = init_repo(tmp_path / "r")
        repo = Repository(path)
        assert get_cached_status(repo).unwrap().current_branch == "main"

        assert isinstance(repo.git("checkout", "-b", "topic", write=True), Ok)

        assert get_cached_status(repo).unwrap().current_branch == "topic"
