"""Tests for core/griptree.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.griptree import (
    GriptreeConfig,
    GriptreeEntry,
    GriptreePointer,
    GriptreeRegistry,
    GriptreeRepoEntry,
    find_pointer_in_ancestors,
    griptree_config_path,
    sanitize_branch,
    validate_upstream_ref,
)
from gitgrip.core.result import Err, Ok


def test_sanitize_branch() -> None:
    assert sanitize_branch("feat/login") == "feat-login"
    assert sanitize_branch("plain") == "plain"


def test_validate_upstream_ref() -> None:
    assert validate_upstream_ref("origin/main") == Ok("origin/main")
    assert validate_upstream_ref("upstream/release/1.x") == Ok("upstream/release/1.x")
    for bad in ("main", "origin/", "/main"):
        result = validate_upstream_ref(bad)
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_upstream"


class TestGriptreeConfig:
    def test_upstream_defaults_to_origin(self) -> None:
        config = GriptreeConfig(branch="feat", path="/w/feat")
        assert config.upstream_for_repo("api", "develop") == Ok("origin/develop")

    def test_upstream_mapping(self) -> None:
        config = GriptreeConfig(branch="feat", path="/w/feat", repo_upstreams={"api": "upstream/main"})
        assert config.upstream_for_repo("api", "develop") == Ok("upstream/main")

    def test_lock_round_trip(self, tmp_path: Path) -> None:
        config = GriptreeConfig.new("feat", tmp_path)
        config.lock("release freeze")
        path = griptree_config_path(tmp_path)
        assert config.save(path) == Ok(None)

        loaded = GriptreeConfig.load_from_workspace(tmp_path)
        assert isinstance(loaded, Ok)
        assert loaded.value is not None
        assert loaded.value.locked
        assert loaded.value.locked_reason == "release freeze"

        loaded.value.unlock()
        assert loaded.value.locked_at is None
        assert "lockedReason" not in loaded.value.to_dict()

    def test_main_workspace_has_no_config(self, tmp_path: Path) -> None:
        assert GriptreeConfig.load_from_workspace(tmp_path) == Ok(None)

    def test_corrupt_config(self, tmp_path: Path) -> None:
        path = griptree_config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("[]", encoding="utf-8")
        result = GriptreeConfig.load_from_workspace(tmp_path)
        assert isinstance(result, Err)
        assert result.error.kind == "parse"


class TestPointer:
    def test_found_from_nested_dir(self, tmp_path: Path) -> None:
        tree = tmp_path / "feat"
        nested = tree / "api" / "src"
        nested.mkdir(parents=True)
        pointer = GriptreePointer(
            main_workspace=str(tmp_path / "main"),
            branch="feat",
            repos=[GriptreeRepoEntry(name="api", original_branch="main")],
        )
        assert pointer.save(tree / ".griptree") == Ok(None)

        found = find_pointer_in_ancestors(nested)
        assert found is not None
        root, loaded = found
        assert root == tree
        assert loaded.repos[0].name == "api"

    def test_symlinked_pointer_ignored(self, tmp_path: Path) -> None:
        real = tmp_path / "real.json"
        GriptreePointer(main_workspace="/m", branch="b").save(real)
        tree = tmp_path / "tree"
        tree.mkdir()
        (tree / ".griptree").symlink_to(real)
        found = find_pointer_in_ancestors(tree)
        assert found is None or found[0] != tree

    def test_pointer_needs_fields(self) -> None:
        result = GriptreePointer.from_dict({"branch": "b"})
        assert isinstance(result, Err)


class TestRegistry:
    def test_missing_is_empty(self, tmp_path: Path) -> None:
        assert GriptreeRegistry.load(tmp_path / "griptrees.json") == Ok(GriptreeRegistry())

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "griptrees.json"
        registry = GriptreeRegistry()
        registry.griptrees["feat"] = GriptreeEntry(branch="feat", path="/w/feat", locked=True, lock_reason="wip")
        assert registry.save(path) == Ok(None)
        loaded = GriptreeRegistry.load(path)
        assert isinstance(loaded, Ok)
        assert loaded.value.griptrees["feat"] == registry.griptrees["feat"]
