"""Tests for git/remote.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.result import Err, Ok
from gitgrip.git.remote import (
    clone,
    has_commits_to_push,
    interpret_push_error,
    push,
    safe_pull_latest,
)
from gitgrip.git.repository import Repository
from gitgrip.test.gitfixtures import commit_file, configure_identity, git, init_remote_repo, requires_git


class TestInterpretPushError:
    """Push error classification."""

    def test_non_fast_forward(self) -> None:
        """Rejected pushes suggest a sync."""
        message = interpret_push_error(" ! [rejected] main -> main (non-fast-forward)")
        assert message.startswith("Push rejected: remote has changes.")
        assert "(Original:" in message

    def test_unreachable_remote(self) -> None:
        """Unreachable remotes mention the network."""
        assert interpret_push_error("fatal: Could not read from remote repository.").startswith(
            "Cannot reach remote."
        )

    def test_auth(self) -> None:
        """Authentication failures suggest re-login."""
        assert interpret_push_error("remote: Permission denied").startswith("Authentication failed.")

    def test_other_passthrough(self) -> None:
        """Unknown errors are returned verbatim."""
        assert interpret_push_error("  weird  ") == "weird"


@requires_git
class TestClone:
    """Clone with branch fallback."""

    def test_clone_existing_branch(self, tmp_path: Path) -> None:
        """A present branch is cloned directly."""
        url, _seed = init_remote_repo(tmp_path, "app")
        result = clone(url, tmp_path / "out" / "app", "main")
        assert isinstance(result, Ok)
        assert result.value.current_branch() == Ok("main")

    def test_clone_missing_branch_falls_back(self, tmp_path: Path) -> None:
        """A missing branch falls back to the remote HEAD."""
        url, _seed = init_remote_repo(tmp_path, "app")
        result = clone(url, tmp_path / "out" / "app", "does-not-exist")
        assert isinstance(result, Ok)
        assert (tmp_path / "out" / "app" / "hello.txt").exists()

    def test_clone_bad_url_fails(self, tmp_path: Path) -> None:
        """Other failures propagate."""
        result = clone((tmp_path / "missing.git").as_uri(), tmp_path / "out", "main")
        assert isinstance(result, Err)
        assert result.error.message.startswith("git clone failed")


@requires_git
class TestSafePull:
    """Crash-safe pull semantics."""

    def _setup(self, tmp_path: Path) -> tuple[Path, Path]:
        url, seed = init_remote_repo(tmp_path, "app")
        work = tmp_path / "work"
        git(tmp_path, "clone", url, str(work))
        configure_identity(work)
        return work, seed

    def test_default_branch_pulls(self, tmp_path: Path) -> None:
        """Upstream changes land on the default branch."""
        work, seed = self._setup(tmp_path)
        commit_file(seed, "new.txt", "remote")
        git(seed, "push")

        result = safe_pull_latest(Repository(work), "main")

        assert result.unwrap().action == "pulled"
        assert (work / "new.txt").exists()

    def test_nothing_new_is_up_to_date(self, tmp_path: Path) -> None:
        """A pull that moves nothing is not reported as a change."""
        work, _seed = self._setup(tmp_path)

        outcome = safe_pull_latest(Repository(work), "main").unwrap()

        assert outcome.action == "fetched"
        assert outcome.message == "up to date"

    def test_dirty_is_skipped(self, tmp_path: Path) -> None:
        """Dirty working copies are left untouched."""
        work, seed = self._setup(tmp_path)
        commit_file(seed, "new.txt", "remote")
        git(seed, "push")
        (work / "hello.txt").write_text("local edit\n", encoding="utf-8")

        outcome = safe_pull_latest(Repository(work), "main").unwrap()

        assert outcome.action == "skipped"
        assert outcome.message == "dirty, skipped"
        assert not (work / "new.txt").exists()

    def test_feature_branch_fetch_only(self, tmp_path: Path) -> None:
        """Feature branches are fetched, never merged."""
        work, seed = self._setup(tmp_path)
        git(work, "checkout", "-b", "feature")
        commit_file(seed, "new.txt", "remote")
        git(seed, "push")

        outcome = safe_pull_latest(Repository(work), "main").unwrap()

        assert outcome.action == "fetched"
        assert not (work / "new.txt").exists()
        assert Repository(work).ahead_behind("origin/main") == (0, 1)

    def test_override_diverged_base_is_skipped(self, tmp_path: Path) -> None:
        """A base-mapped branch with local commits is not updated."""
        work, seed = self._setup(tmp_path)
        commit_file(work, "local.txt", "local")
        commit_file(seed, "new.txt", "remote")
        git(seed, "push")

        outcome = safe_pull_latest(
            Repository(work), "main", upstream_override="origin/main", base_mapped=True
        ).unwrap()

        assert outcome.action == "skipped"
        assert outcome.message == "diverged, local ahead"

    def test_override_fast_forwards(self, tmp_path: Path) -> None:
        """The mapped upstream is fast-forwarded into the base branch."""
        work, seed = self._setup(tmp_path)
        git(seed, "checkout", "-b", "dev")
        commit_file(seed, "dev.txt", "dev")
        git(seed, "push", "-u", "origin", "dev")

        outcome = safe_pull_latest(
            Repository(work), "main", upstream_override="origin/dev", base_mapped=True
        ).unwrap()

        assert outcome.action == "pulled"
        assert (work / "dev.txt").exists()


@requires_git
class TestPush:
    """Push helpers."""

    def test_new_branch_needs_push_then_not(self, tmp_path: Path) -> None:
        """A branch missing on the remote needs a push; after pushing it does not."""
        url, _seed = init_remote_repo(tmp_path, "app")
        work = tmp_path / "work"
        git(tmp_path, "clone", url, str(work))
        configure_identity(work)
        git(work, "checkout", "-b", "feat")
        commit_file(work, "f.txt", "f")
        repo = Repository(work)

        assert has_commits_to_push(repo, "feat") == Ok(True)
        assert push(repo, "feat", set_upstream=True) == Ok(None)
        assert has_commits_to_push(repo, "feat") == Ok(False)
        assert repo.upstream() == "origin/feat"
