"""Tests for core/gripspace.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.gripspace import (
    gripspace_dir,
    gripspace_name,
    resolve_file_source,
    resolve_gripspaces,
    space_dir_name,
)
from gitgrip.core.manifest import FileMapping, GripspaceConfig, Manifest, parse_manifest
from gitgrip.core.result import Err, Ok

LOCAL = """\
version: 1
manifest:
  url: git@github.com:acme/ws.git
  linkfile:
    - src: local/CLAUDE.md
      dest: CLAUDE.md
gripspaces:
  - url: git@github.com:acme/base.git
repos:
  app:
    url: git@github.com:acme/app.git
    path: app
workspace:
  env:
    STAGE: local
  scripts:
    build:
      command: make local
  hooks:
    post-sync:
      - command: echo local
"""

BASE = """\
manifest:
  url: git@github.com:acme/base.git
  linkfile:
    - src: CLAUDE.md
      dest: CLAUDE.md
    - src: editorconfig
      dest: .editorconfig
repos:
  app:
    url: git@github.com:acme/other-app.git
    path: elsewhere
  lib:
    url: git@github.com:acme/lib.git
    path: lib
workspace:
  env:
    STAGE: base
    REGION: eu
  scripts:
    build:
      command: make base
    lint:
      command: make lint
  hooks:
    post-sync:
      - command: echo base
"""


def _space(spaces: Path, name: str, text: str, file_name: str = "gripspace.yml") -> Path:
    path = spaces / name
    path.mkdir(parents=True, exist_ok=True)
    (path / file_name).write_text(text, encoding="utf-8")
    return path


def _local(text: str = LOCAL) -> Manifest:
    return parse_manifest(text).unwrap()


class TestNames:
    def test_url_forms(self) -> None:
        assert gripspace_name("https://github.com/acme/base-space.git") == "base-space"
        assert gripspace_name("git@github.com:acme/base-space.git") == "base-space"
        assert gripspace_name("git@host:base-space.git") == "base-space"
        assert gripspace_name("https://github.com/acme/base-space/") == "base-space"
        assert gripspace_name("file:///srv/remotes/base") == "base"

    def test_reserved_names_get_their_own_directory(self, tmp_path: Path) -> None:
        assert space_dir_name("main") == "main-gripspace"
        assert space_dir_name("local") == "local-gripspace"
        assert gripspace_dir(tmp_path, "git@github.com:acme/main.git") == tmp_path / "main-gripspace"
        assert gripspace_dir(tmp_path, "git@github.com:acme/base.git") == tmp_path / "base"


class TestFileSource:
    def test_plain_source_is_relative_to_base(self, tmp_path: Path) -> None:
        assert resolve_file_source("README.md", tmp_path / "repo", tmp_path / "spaces") == Ok(
            tmp_path / "repo" / "README.md"
        )

    def test_gripspace_source(self, tmp_path: Path) -> None:
        spaces = tmp_path / "spaces"
        assert resolve_file_source("gripspace:base:docs/CLAUDE.md", tmp_path, spaces) == Ok(
            spaces / "base" / "docs" / "CLAUDE.md"
        )
        assert resolve_file_source("gripspace:main:x", tmp_path, spaces) == Ok(spaces / "main-gripspace" / "x")

    def test_traversal_rejected(self, tmp_path: Path) -> None:
        for src in ("gripspace:../../etc:passwd", "gripspace:valid:../../etc/passwd", "gripspace::file.md"):
            result = resolve_file_source(src, tmp_path, tmp_path)
            assert isinstance(result, Err), src
            assert result.error.kind == "path_escape"

    def test_absolute_path_rejected(self, tmp_path: Path) -> None:
        result = resolve_file_source("gripspace:base:/etc/passwd", tmp_path, tmp_path)
        assert isinstance(result, Err)
        assert "path traversal" in result.error.message


class TestParse:
    def test_gripspaces_listed(self) -> None:
        listed = "  - url: u1\n  - url: u2\n    rev: v1\n"
        manifest = _local(LOCAL.replace("  - url: git@github.com:acme/base.git\n", listed))
        assert manifest.gripspaces == (GripspaceConfig("u1"), GripspaceConfig("u2", "v1"))

    def test_entry_without_url(self) -> None:
        result = parse_manifest(LOCAL.replace("  - url: git@github.com:acme/base.git\n", "  - rev: v1\n"))
        assert isinstance(result, Err)
        assert "needs a 'url'" in result.error.message


class TestResolve:
    def test_no_gripspaces_is_a_no_op(self, tmp_path: Path) -> None:
        manifest = _local(LOCAL.replace("gripspaces:\n  - url: git@github.com:acme/base.git\n", ""))
        assert resolve_gripspaces(manifest, tmp_path) == Ok(manifest)

    def test_uncloned_gripspace_is_skipped(self, tmp_path: Path) -> None:
        manifest = _local()
        resolved = resolve_gripspaces(manifest, tmp_path).unwrap()
        assert list(resolved.repos) == ["app"]

    def test_local_values_win(self, tmp_path: Path) -> None:
        _space(tmp_path, "base", BASE)

        resolved = resolve_gripspaces(_local(), tmp_path).unwrap()

        assert sorted(resolved.repos) == ["app", "lib"]
        assert resolved.repos["app"].path == "app"
        assert resolved.workspace.env == {"STAGE": "local", "REGION": "eu"}
        assert resolved.workspace.scripts["build"].command == "make local"
        assert resolved.workspace.scripts["lint"].command == "make lint"
        assert resolved.gripspaces == (GripspaceConfig("git@github.com:acme/base.git"),)

    def test_hooks_run_gripspace_first(self, tmp_path: Path) -> None:
        _space(tmp_path, "base", BASE)
        resolved = resolve_gripspaces(_local(), tmp_path).unwrap()
        assert [h.command for h in resolved.workspace.hooks.post_sync] == ["echo base", "echo local"]

    def test_file_mappings_point_into_the_gripspace(self, tmp_path: Path) -> None:
        _space(tmp_path, "base", BASE)

        section = resolve_gripspaces(_local(), tmp_path).unwrap().manifest

        assert section is not None
        assert section.linkfile == (
            FileMapping("gripspace:base:editorconfig", ".editorconfig"),
            FileMapping("local/CLAUDE.md", "CLAUDE.md"),
        )

    def test_legacy_manifest_file_name(self, tmp_path: Path) -> None:
        _space(tmp_path, "base", BASE, file_name="manifest.yaml")
        assert "lib" in resolve_gripspaces(_local(), tmp_path).unwrap().repos

    def test_nested_includes_resolve_first(self, tmp_path: Path) -> None:
        _space(
            tmp_path,
            "base",
            "gripspaces:\n  - url: git@github.com:acme/core.git\n"
            "repos:\n  lib:\n    url: git@github.com:acme/lib.git\n    path: lib\n",
        )
        _space(
            tmp_path,
            "core",
            "repos:\n  lib:\n    url: git@github.com:acme/core-lib.git\n    path: core-lib\n"
            "  tools:\n    url: git@github.com:acme/tools.git\n    path: tools\n",
        )

        resolved = resolve_gripspaces(_local(), tmp_path).unwrap()

        assert sorted(resolved.repos) == ["app", "lib", "tools"]
        assert resolved.repos["lib"].path == "core-lib"

    def test_shared_include_is_not_a_cycle(self, tmp_path: Path) -> None:
        shared = "gripspaces:\n  - url: git@github.com:acme/shared.git\n"
        _space(tmp_path, "base", shared)
        _space(tmp_path, "extra", shared)
        _space(tmp_path, "shared", "repos:\n  s:\n    url: git@github.com:acme/s.git\n    path: s\n")
        both = "  - url: git@github.com:acme/base.git\n  - url: git@github.com:acme/extra.git\n"
        local = _local(LOCAL.replace("  - url: git@github.com:acme/base.git\n", both))

        assert "s" in resolve_gripspaces(local, tmp_path).unwrap().repos

    def test_cycle_detected(self, tmp_path: Path) -> None:
        _space(tmp_path, "base", "gripspaces:\n  - url: git@github.com:acme/loop.git\n")
        _space(tmp_path, "loop", "gripspaces:\n  - url: git@github.com:acme/base.git\n")

        result = resolve_gripspaces(_local(), tmp_path)

        assert isinstance(result, Err)
        assert result.error.kind == "gripspace"
        assert result.error.message == "Circular gripspace include detected: 'git@github.com:acme/base.git'"

    def test_depth_limit(self, tmp_path: Path) -> None:
        names = ["base", "g1", "g2", "g3", "g4", "g5"]
        for current, nested in zip(names, names[1:], strict=False):
            _space(tmp_path, current, f"gripspaces:\n  - url: git@github.com:acme/{nested}.git\n")
        _space(tmp_path, "g5", "repos: {}\n")

        result = resolve_gripspaces(_local(), tmp_path)

        assert isinstance(result, Err)
        assert result.error.message == "Maximum gripspace include depth (5) exceeded for 'git@github.com:acme/g5.git'"

    def test_cloned_without_manifest(self, tmp_path: Path) -> None:
        (tmp_path / "base").mkdir()
        result = resolve_gripspaces(_local(), tmp_path)
        assert isinstance(result, Err)
        assert "Gripspace 'base' has no manifest" in result.error.message

    def test_merged_manifest_is_validated(self, tmp_path: Path) -> None:
        _space(tmp_path, "base", "repos:\n  evil:\n    url: git@github.com:acme/evil.git\n    path: ../outside\n")
        result = resolve_gripspaces(_local(), tmp_path)
        assert isinstance(result, Err)
        assert result.error.kind == "path_escape"
