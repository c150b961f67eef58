"""Tests for core/manifest.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.manifest import (
    DEFAULT_PR_PREFIX,
    load_manifest,
    merge_overlay,
    parse_manifest,
    path_escapes_root,
)
from gitgrip.core.result import Err, Ok

MINIMAL = """\
version: 1
repos:
  web:
    url: git@github.com:acme/web.git
    path: web
  api:
    url: git@github.com:acme/api.git
    path: services/api
    default_branch: develop
    groups: [backend, core]
"""


class TestParseManifest:
    def test_minimal(self) -> None:
        result = parse_manifest(MINIMAL)
        assert isinstance(result, Ok)
        manifest = result.value
        assert [name for name, _ in manifest.sorted_repos()] == ["api", "web"]
        assert manifest.repos["web"].default_branch == "main"
        assert manifest.repos["api"].groups == ("backend", "core")
        assert manifest.settings.pr_prefix == DEFAULT_PR_PREFIX
        assert manifest.settings.merge_strategy == "all-or-nothing"

    def test_all_groups_sorted_and_unique(self) -> None:
        result = parse_manifest(MINIMAL)
        assert isinstance(result, Ok)
        assert result.value.all_groups() == ["backend", "core"]

    def test_json_is_accepted(self) -> None:
        text = '{"repos": {"a": {"url": "https://github.com/o/a.git", "path": "a"}}}'
        assert isinstance(parse_manifest(text), Ok)

    def test_missing_repos(self) -> None:
        result = parse_manifest("version: 1\n")
        assert isinstance(result, Err)
        assert result.error.kind == "validation"

    def test_empty_repos(self) -> None:
        result = parse_manifest("repos: {}\n")
        assert isinstance(result, Err)
        assert "at least one repository" in result.error.message

    def test_repo_without_url(self) -> None:
        result = parse_manifest("repos:\n  a:\n    path: a\n")
        assert isinstance(result, Err)
        assert result.error.message == "Repository 'a' must have a URL"

    def test_invalid_yaml(self) -> None:
        result = parse_manifest("repos: [unclosed\n")
        assert isinstance(result, Err)
        assert result.error.kind == "parse"

    def test_path_escape_rejected(self) -> None:
        text = "repos:\n  a:\n    url: git@github.com:o/a.git\n    path: ../outside\n"
        result = parse_manifest(text)
        assert isinstance(result, Err)
        assert result.error.kind == "path_escape"
        assert result.error.hint is not None

    def test_linkfile_escape_rejected(self) -> None:
        text = (
            "repos:\n  a:\n    url: git@github.com:o/a.git\n    path: a\n"
            "    linkfile:\n      - src: x\n        dest: /etc/passwd\n"
        )
        result = parse_manifest(text)
        assert isinstance(result, Err)
        assert "dest escapes boundary" in result.error.message

    def test_unknown_merge_strategy(self) -> None:
        text = MINIMAL + "settings:\n  merge_strategy: yolo\n"
        result = parse_manifest(text)
        assert isinstance(result, Err)
        assert "yolo" in result.error.message

    def test_empty_pr_prefix_is_kept(self) -> None:
        result = parse_manifest(MINIMAL + "settings:\n  pr_prefix: ''\n")
        assert isinstance(result, Ok)
        assert result.value.settings.pr_prefix == ""

    def test_script_needs_command_or_steps(self) -> None:
        result = parse_manifest(MINIMAL + "workspace:\n  scripts:\n    build:\n      description: nothing\n")
        assert isinstance(result, Err)
        assert "either 'command' or 'steps'" in result.error.message

    def test_script_cannot_have_both(self) -> None:
        text = MINIMAL + (
            "workspace:\n  scripts:\n    build:\n      command: make\n"
            "      steps:\n        - name: a\n          command: b\n"
        )
        result = parse_manifest(text)
        assert isinstance(result, Err)
        assert "both" in result.error.message

    def test_workspace_section(self) -> None:
        text = MINIMAL + (
            "workspace:\n"
            "  env:\n    STAGE: dev\n"
            "  hooks:\n    post-sync:\n      - command: make deps\n        condition: changed\n        repos: [api]\n"
            "  ci:\n    pipelines:\n      check:\n        steps:\n          - name: lint\n            command: make lint\n"
            "            continue_on_error: true\n"
        )
        result = parse_manifest(text)
        assert isinstance(result, Ok)
        ws = result.value.workspace
        assert ws.env == {"STAGE": "dev"}
        hook = ws.hooks.post_sync[0]
        assert hook.condition == "changed"
        assert hook.repos == ("api",)
        step = ws.pipelines["check"].steps[0]
        assert step.continue_on_error is True

    def test_release_pattern_needs_placeholder(self) -> None:
        text = MINIMAL + (
            "workspace:\n  release:\n    version_files:\n      - path: VERSION\n        pattern: nothing\n"
        )
        result = parse_manifest(text)
        assert isinstance(result, Err)
        assert "{version}" in result.error.message

    def test_workspace_agent(self) -> None:
        text = MINIMAL + (
            "workspace:\n  agent:\n    description: Acme\n    conventions: [small PRs]\n"
            "    workflows:\n      ship: gr release\n    context_source: gripspace:base:AGENTS.md\n"
            "    targets:\n      - format: claude\n        dest: CLAUDE.md\n        compose_with: [notes.md]\n"
        )
        agent = parse_manifest(text).unwrap().workspace.agent
        assert agent is not None
        assert agent.conventions == ("small PRs",)
        assert agent.workflows == {"ship": "gr release"}
        assert agent.context_source == "gripspace:base:AGENTS.md"
        assert [(t.format, t.dest, t.compose_with) for t in agent.targets] == [("claude", "CLAUDE.md", ("notes.md",))]

    def test_agent_target_needs_dest(self) -> None:
        text = MINIMAL + "workspace:\n  agent:\n    targets:\n      - format: claude\n"
        result = parse_manifest(text)
        assert isinstance(result, Err)
        assert result.error.kind == "validation"


class TestPathEscapes:
    def test_relative_inside(self) -> None:
        assert not path_escapes_root("a/b")
        assert not path_escapes_root("a/../b")

    def test_escaping(self) -> None:
        assert path_escapes_root("../a")
        assert path_escapes_root("a/../../b")
        assert path_escapes_root("/abs")
        assert path_escapes_root("C:\\win")
        assert path_escapes_root(".")


class TestOverlay:
    def test_overlay_adds_repo_and_env(self) -> None:
        base = parse_manifest(MINIMAL + "workspace:\n  env:\n    A: '1'\n")
        assert isinstance(base, Ok)
        overlay = (
            "repos:\n  extra:\n    url: git@github.com:acme/extra.git\n    path: extra\n"
            "workspace:\n  env:\n    A: '2'\n    B: '3'\n"
        )
        merged = merge_overlay(base.value, overlay)
        assert isinstance(merged, Ok)
        assert "extra" in merged.value.repos
        assert merged.value.workspace.env == {"A": "2", "B": "3"}

    def test_load_applies_overlay_file(self, tmp_path: Path) -> None:
        main = tmp_path / "gripspace.yml"
        main.write_text(MINIMAL, encoding="utf-8")
        overlay = tmp_path / "local.yml"
        overlay.write_text("repos:\n  web:\n    url: git@github.com:me/web.git\n    path: web\n", encoding="utf-8")
        result = load_manifest(main, overlay=overlay)
        assert isinstance(result, Ok)
        assert result.value.repos["web"].url == "git@github.com:me/web.git"

    def test_load_missing_file(self, tmp_path: Path) -> None:
        result = load_manifest(tmp_path / "missing.yml")
        assert isinstance(result, Err)
        assert result.error.kind == "io"
        assert result.error.path == tmp_path / "missing.yml"

    def test_overlay_error_names_overlay(self, tmp_path: Path) -> None:
        main = tmp_path / "gripspace.yml"
        main.write_text(MINIMAL, encoding="utf-8")
        overlay = tmp_path / "local.yml"
        overlay.write_text("repos:\n  bad:\n    path: bad\n", encoding="utf-8")
        result = load_manifest(main, overlay=overlay)
        assert isinstance(result, Err)
        assert result.error.path == overlay
