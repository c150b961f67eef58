"""Griptree lifecycle against real git worktrees."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.griptree import GriptreeConfig, GriptreePointer, GriptreeRegistry, griptree_config_path
from gitgrip.core.result import Err, Ok
from gitgrip.git.branch import branch_exists
from gitgrip.git.repository import Repository
from gitgrip.output.console import MockConsole
from gitgrip.services.griptrees import GriptreeService, ReturnOptions, griptree_path_for, manifest_worktree_branch
from gitgrip.test.gitfixtures import git, load, make_workspace, requires_git


def test_griptree_path_for() -> None:
    assert griptree_path_for(Path("/src/ws"), "feat/x") == Path("/src/ws-feat-x")
    assert manifest_worktree_branch("feat/x") == "griptree-feat-x"


@requires_git
class TestGriptreeLifecycle:
    def test_create_lock_remove(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api", "web", "docs"], reference=["docs"])
        console = MockConsole()
        service = GriptreeService(workspace=load(root), console=console)

        created = service.create("feat/x")
        assert isinstance(created, Ok)
        tree = tmp_path / "ws-feat-x"
        assert created.value.path == tree
        assert created.value.created == ("api", "web")
        assert Repository(tree / "api").current_branch() == Ok("feat/x")
        assert not (tree / "docs").exists()
        assert (tree / ".gitgrip" / "spaces" / "main" / "gripspace.yml").is_file()

        config = GriptreeConfig.load(griptree_config_path(tree))
        assert isinstance(config, Ok)
        assert config.value.repo_upstreams == {"api": "origin/main", "web": "origin/main"}
        pointer = GriptreePointer.load(tree / ".griptree")
        assert isinstance(pointer, Ok)
        assert pointer.value.main_workspace == str(root)

        listed = service.list_griptrees()
        assert isinstance(listed, Ok)
        assert [(g.branch, g.status) for g in listed.value] == [("feat/x", "active")]

        assert service.set_locked("feat/x", True, "demo") == Ok(None)
        blocked = service.remove("feat/x")
        assert isinstance(blocked, Err)
        assert "locked (demo)" in blocked.error.message
        assert tree.exists()

        assert service.set_locked("feat/x", False) == Ok(None)
        assert service.remove("feat/x") == Ok(None)
        assert not tree.exists()
        registry = GriptreeRegistry.load(root / ".gitgrip" / "griptrees.json")
        assert isinstance(registry, Ok)
        assert registry.value.griptrees == {}
        assert branch_exists(Repository(root / "api"), "feat/x")

    def test_force_removes_locked(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        service = GriptreeService(workspace=load(root), console=MockConsole())
        assert isinstance(service.create("feat"), Ok)
        service.set_locked("feat", True)
        assert service.remove("feat", force=True) == Ok(None)

    def test_duplicate_create_rejected(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        service = GriptreeService(workspace=load(root), console=MockConsole())
        assert isinstance(service.create("feat"), Ok)
        again = service.create("feat")
        assert isinstance(again, Err)
        assert "already exists" in again.error.message

    def test_nothing_cloned_is_not_registered(self, tmp_path: Path) -> None:
        """With no worktree created the directory is removed and no registry entry is written."""
        root, _ = make_workspace(tmp_path, ["api", "web"], clone_repos=False)
        ws = load(root)
        console = MockConsole()

        result = GriptreeService(workspace=ws, console=console).create("feat/x")

        assert isinstance(result, Err)
        assert result.error.kind == "git"
        assert not griptree_path_for(root, "feat/x").exists()
        registry = GriptreeRegistry.load(ws.griptrees_path).unwrap()
        assert "feat/x" not in registry.griptrees
        assert console.find("api: not cloned, skipping")

    def test_unknown_griptree(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        result = GriptreeService(workspace=load(root), console=MockConsole()).set_locked("nope", True)
        assert isinstance(result, Err)
        assert result.error.hint == "See 'gr tree list'"

    def test_workspace_detected_inside_griptree(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        GriptreeService(workspace=load(root), console=MockConsole()).create("feat")
        tree = load(tmp_path / "ws-feat")
        assert tree.is_griptree
        assert tree.main_root == root

    def test_unregistered_griptree_discovered(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        service = GriptreeService(workspace=load(root), console=MockConsole())
        service.create("feat")
        (root / ".gitgrip" / "griptrees.json").unlink()

        listed = service.list_griptrees()
        assert isinstance(listed, Ok)
        assert [(g.branch, g.status) for g in listed.value] == [("feat", "unregistered")]

    def test_return_to_base(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        GriptreeService(workspace=load(root), console=MockConsole()).create("feat")
        tree_root = tmp_path / "ws-feat"
        git(tree_root / "api", "checkout", "-b", "topic")

        service = GriptreeService(workspace=load(tree_root), console=MockConsole())
        result = service.return_to_base(ReturnOptions(no_sync=True, prune_current=True))

        assert result == Ok(0)
        repo = Repository(tree_root / "api")
        assert repo.current_branch() == Ok("feat")
        assert not branch_exists(repo, "topic")

    def test_return_refuses_dirty_without_autostash(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        GriptreeService(workspace=load(root), console=MockConsole()).create("feat")
        tree_root = tmp_path / "ws-feat"
        git(tree_root / "api", "checkout", "-b", "topic")
        (tree_root / "api" / "hello.txt").write_text("dirty\n", encoding="utf-8")

        service = GriptreeService(workspace=load(tree_root), console=MockConsole())
        refused = service.return_to_base(ReturnOptions(no_sync=True))
        assert isinstance(refused, Err)
        assert "--autostash" in refused.error.message

        assert service.return_to_base(ReturnOptions(no_sync=True, autostash=True)) == Ok(0)
        assert (tree_root / "api" / "hello.txt").read_text(encoding="utf-8") == "dirty\n"

    def test_return_needs_base_outside_griptree(self, tmp_path: Path) -> None:
        root, _ = make_workspace(tmp_path, ["api"])
        result = GriptreeService(workspace=load(root), console=MockConsole()).return_to_base(ReturnOptions())
        assert isinstance(result, Err)
        assert "--base" in result.error.message
