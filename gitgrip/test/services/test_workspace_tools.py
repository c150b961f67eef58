"""Tests for verify, scripts, CI pipelines and release."""

from __future__ import annotations

import datetime
import json
from pathlib import Path

import pytest

from gitgrip.core.errors import ErrorCode
from gitgrip.core.manifest_paths import main_space_dir
from gitgrip.core.result import Err, Ok
from gitgrip.core.workspace import Workspace
from gitgrip.output.console import MockConsole
from gitgrip.services.ci import CiService
from gitgrip.services.release import (
    ReleaseOptions,
    ReleaseService,
    bump_custom_file,
    bump_package_json,
    bump_toml_version,
    normalize_version,
    update_changelog,
)
from gitgrip.services.scripts import ScriptService
from gitgrip.services.verify import NO_CHECKS_MESSAGE, VerifyOptions, VerifyReport, VerifyService
from gitgrip.test.gitfixtures import commit_file, git, load, make_workspace, requires_git


def _workspace(tmp_path: Path, body: str) -> Workspace:
    root = tmp_path / "ws"
    space = main_space_dir(root)
    space.mkdir(parents=True)
    text = "version: 1\nrepos:\n  api:\n    url: git@github.com:acme/api.git\n    path: api\n" + body
    (space / "gripspace.yml").write_text(text, encoding="utf-8")
    return load(root)


# -----------------------------------------------------------------------------
# verify
# -----------------------------------------------------------------------------


class TestVerifyOptions:
    def test_no_flags_is_an_error(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, "")

        result = VerifyService(workspace=ws, console=MockConsole()).verify(VerifyOptions())

        assert isinstance(result, Err)
        assert result.error.message == NO_CHECKS_MESSAGE

    def test_no_checks_report(self) -> None:
        data = VerifyReport.no_checks().to_dict()
        assert data["pass"] is False
        assert data["checks"] == [{"name": "no-checks", "pass": False, "details": [{"error": NO_CHECKS_MESSAGE}]}]


@requires_git
class TestVerify:
    def test_clean_and_synced_pass(self, tmp_path: Path) -> None:
        root, _seeds = make_workspace(tmp_path, ["api", "web"])

        report = VerifyService(workspace=load(root), console=MockConsole()).verify(
            VerifyOptions(clean=True, synced=True, links=True, on_branch="main")
        ).unwrap()

        assert report.passed
        assert [c.name for c in report.checks] == ["clean", "links", "on-branch", "synced"]

    def test_failures_carry_details(self, tmp_path: Path) -> None:
        root, _seeds = make_workspace(tmp_path, ["api", "web"])
        (root / "api" / "hello.txt").write_text("edit\n", encoding="utf-8")
        git(root / "web", "checkout", "-b", "feat/x")
        commit_file(root / "web", "x.txt", "x")
        console = MockConsole()
        service = VerifyService(workspace=load(root), console=console)

        report = service.verify(VerifyOptions(clean=True, on_branch="main")).unwrap()

        assert not report.passed
        clean, on_branch = report.checks
        assert [d["repo"] for d in clean.details] == ["api"]
        assert clean.details[0]["modified"] == 1
        assert on_branch.details == ({"repo": "web", "expected": "main", "actual": "feat/x"},)
        service.render(report)
        assert console.find("clean: failed")

    def test_unpushed_commits_are_not_synced(self, tmp_path: Path) -> None:
        root, _seeds = make_workspace(tmp_path, ["api"])
        commit_file(root / "api", "local.txt", "local")

        report = VerifyService(workspace=load(root), console=MockConsole()).verify(VerifyOptions(synced=True)).unwrap()

        assert report.to_dict()["pass"] is False
        assert report.checks[0].details == ({"repo": "api", "ahead": 1, "behind": 0},)

    def test_missing_clone_is_not_clean(self, tmp_path: Path) -> None:
        root, _seeds = make_workspace(tmp_path, ["api"], clone_repos=False)

        report = VerifyService(workspace=load(root), console=MockConsole()).verify(VerifyOptions(clean=True)).unwrap()

        assert report.checks[0].details == ({"repo": "api", "status": "not cloned"},)


# -----------------------------------------------------------------------------
# scripts
# -----------------------------------------------------------------------------

_SCRIPTS = """\
workspace:
  env:
    GREETING: hello
  scripts:
    greet:
      description: Write a greeting
      command: echo "$GREETING" > greeting.txt
    args:
      command: printf '%s\\n' > args.txt
    steps:
      steps:
        - name: first
          command: touch first.txt
        - name: boom
          command: exit 4
        - name: never
          command: touch never.txt
"""


class TestScripts:
    def test_single_command_uses_workspace_env(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _SCRIPTS)
        console = MockConsole()

        results = ScriptService(workspace=ws, console=console).run("greet").unwrap()

        assert [r.returncode for r in results] == [0]
        assert (ws.root / "greeting.txt").read_text(encoding="utf-8") == "hello\n"
        assert console.find("Script 'greet' completed")

    def test_extra_args_are_quoted(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _SCRIPTS)

        ScriptService(workspace=ws, console=MockConsole()).run("args", ["one", "two words"]).unwrap()

        assert (ws.root / "args.txt").read_text(encoding="utf-8").splitlines() == ["one", "two words"]

    def test_steps_stop_at_first_failure(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _SCRIPTS)

        result = ScriptService(workspace=ws, console=MockConsole()).run("steps")

        assert isinstance(result, Err)
        assert result.error.message == "Script 'steps' failed at 'boom' (exit 4)"
        assert (ws.root / "first.txt").exists()
        assert not (ws.root / "never.txt").exists()

    def test_unknown_script_lists_available(self, tmp_path: Path) -> None:
        result = ScriptService(workspace=_workspace(tmp_path, _SCRIPTS), console=MockConsole()).run("nope")

        assert isinstance(result, Err)
        assert result.error.message == "Script 'nope' not found. Available: args, greet, steps"

    def test_env_listing(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _SCRIPTS)
        console = MockConsole()
        service = ScriptService(workspace=ws, console=console)

        env = service.env()
        service.render_env()

        assert env["GITGRIP_WORKSPACE"] == str(ws.root)
        assert env["GREETING"] == "hello"
        assert console.find("  GREETING=hello")


# -----------------------------------------------------------------------------
# ci
# -----------------------------------------------------------------------------

_PIPELINES = """\
workspace:
  ci:
    pipelines:
      lenient:
        description: Keeps going
        steps:
          - name: ok
            command: echo fine
          - name: flaky
            command: exit 3
            continue_on_error: true
          - name: after
            command: echo "$STAGE"
            env:
              STAGE: late
      strict:
        steps:
          - name: fail
            command: exit 1
          - name: skipped
            command: echo no
"""


class TestCi:
    def test_continue_on_error_still_fails_pipeline(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _PIPELINES)

        record = CiService(workspace=ws, console=MockConsole()).run("lenient").unwrap()

        assert not record.success
        assert [s.success for s in record.steps] == [True, False, True]
        assert record.steps[1].exit_code == 3
        assert record.steps[2].output.strip() == "late"
        assert record.passed_steps == 2

    def test_failure_stops_pipeline(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _PIPELINES)
        console = MockConsole()

        record = CiService(workspace=ws, console=console).run("strict").unwrap()

        assert [s.name for s in record.steps] == ["fail"]
        assert console.find("fail: FAILED (exit 1)")
        assert console.has_error()

    def test_results_saved_and_read_back(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _PIPELINES)
        service = CiService(workspace=ws, console=MockConsole())
        service.run("strict", echo=False).unwrap()

        saved = json.loads((ws.ci_results_dir / "strict.json").read_text(encoding="utf-8"))
        results = service.results()

        assert saved["pipeline"] == "strict"
        assert saved["steps"][0]["exitCode"] == 1
        assert [r.pipeline for r in results] == ["strict"]
        assert not results[0].success

    def test_unreadable_result_is_skipped(self, tmp_path: Path) -> None:
        ws = _workspace(tmp_path, _PIPELINES)
        ws.ci_results_dir.mkdir(parents=True)
        (ws.ci_results_dir / "broken.json").write_text("{not json", encoding="utf-8")
        console = MockConsole()

        assert CiService(workspace=ws, console=console).results() == []
        assert console.has_warning()

    def test_list_and_unknown(self, tmp_path: Path) -> None:
        service = CiService(workspace=_workspace(tmp_path, _PIPELINES), console=MockConsole())

        assert service.list_pipelines() == [
            {"name": "lenient", "description": "Keeps going", "steps": 3},
            {"name": "strict", "description": None, "steps": 2},
        ]
        result = service.run("nope")
        assert isinstance(result, Err)
        assert result.error.message == "Pipeline 'nope' not found. Available: lenient, strict"


# -----------------------------------------------------------------------------
# release
# -----------------------------------------------------------------------------


class TestVersionHelpers:
    @pytest.mark.parametrize(
        ("given", "expected"),
        [("1.2.3", ("1.2.3", "v1.2.3")), ("v0.12", ("0.12", "v0.12"))],
    )
    def test_normalize(self, given: str, expected: tuple[str, str]) -> None:
        assert normalize_version(given) == Ok(expected)

    @pytest.mark.parametrize("given", ["1", "x.y.z", "v"])
    def test_normalize_rejects(self, given: str) -> None:
        assert isinstance(normalize_version(given), Err)

    def test_toml_first_version_only(self, tmp_path: Path) -> None:
        path = tmp_path / "Cargo.toml"
        path.write_text('[package]\nversion = "0.1.0"\n\n[dep]\nversion = "9.9.9"\n', encoding="utf-8")

        assert bump_toml_version(path, "1.0.0") == Ok(True)
        assert path.read_text(encoding="utf-8") == '[package]\nversion = "1.0.0"\n\n[dep]\nversion = "9.9.9"\n'
        assert bump_toml_version(path, "1.0.0") == Ok(False)

    def test_package_json_dry_run(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_text('{\n  "name": "x",\n  "version": "0.1.0"\n}\n', encoding="utf-8")

        assert bump_package_json(path, "2.0.0", dry_run=True) == Ok(True)
        assert '"0.1.0"' in path.read_text(encoding="utf-8")

    def test_custom_pattern(self, tmp_path: Path) -> None:
        path = tmp_path / "version.py"
        path.write_text('VERSION = "0.1.0"\nOTHER = "0.1.0"\n', encoding="utf-8")

        assert bump_custom_file(path, 'VERSION = "{version}"', "0.2.0") == Ok(True)
        assert path.read_text(encoding="utf-8") == 'VERSION = "0.2.0"\nOTHER = "0.1.0"\n'

    def test_changelog_section_under_heading(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        path.write_text("# Changelog\n\n## [v1.0.0] - 2025-01-01\n", encoding="utf-8")

        assert update_changelog(path, "v1.1.0", "Faster sync", today=datetime.date(2026, 3, 4)) == Ok(True)
        assert path.read_text(encoding="utf-8") == (
            "# Changelog\n\n## [v1.1.0] - 2026-03-04\n\nFaster sync\n\n## [v1.0.0] - 2025-01-01\n"
        )

    def test_missing_changelog(self, tmp_path: Path) -> None:
        assert update_changelog(tmp_path / "CHANGELOG.md", "v1.0.0") == Ok(False)


class TestReleaseLocalSteps:
    def _release_ws(self, tmp_path: Path, body: str = "") -> Workspace:
        ws = _workspace(tmp_path, body)
        (ws.root / "api").mkdir()
        (ws.root / "api" / "pyproject.toml").write_text('[project]\nversion = "0.1.0"\n', encoding="utf-8")
        (ws.root / "CHANGELOG.md").write_text("# Changelog\n", encoding="utf-8")
        return ws

    def test_dry_run_touches_nothing(self, tmp_path: Path) -> None:
        ws = self._release_ws(tmp_path)

        report = ReleaseService(workspace=ws, console=MockConsole()).run(
            ReleaseOptions(version="0.2.0", dry_run=True, skip_pr=True)
        ).unwrap()

        assert report.version == "v0.2.0"
        assert [s.to_dict() for s in report.steps] == [
            {"name": "bump", "status": "ok", "files": ["api/pyproject.toml"]},
            {"name": "changelog", "status": "ok", "files": ["CHANGELOG.md"]},
            {"name": "build", "status": "skipped"},
            {"name": "branch", "status": "skipped"},
            {"name": "pr", "status": "skipped"},
            {"name": "merge", "status": "skipped"},
        ]
        assert '"0.1.0"' in (ws.root / "api" / "pyproject.toml").read_text(encoding="utf-8")
        assert (ws.root / "CHANGELOG.md").read_text(encoding="utf-8") == "# Changelog\n"

    def test_configured_version_files(self, tmp_path: Path) -> None:
        body = (
            "workspace:\n  release:\n    changelog: docs/CHANGES.md\n    version_files:\n"
            "      - path: VERSION\n        pattern: 'v{version}'\n"
        )
        ws = self._release_ws(tmp_path, body)
        (ws.root / "VERSION").write_text("v0.1.0\n", encoding="utf-8")

        report = ReleaseService(workspace=ws, console=MockConsole()).run(
            ReleaseOptions(version="v0.3.0", skip_pr=True)
        ).unwrap()

        assert (ws.root / "VERSION").read_text(encoding="utf-8") == "v0.3.0\n"
        assert '"0.1.0"' in (ws.root / "api" / "pyproject.toml").read_text(encoding="utf-8")
        assert report.steps[1].status == "skipped"

    def test_invalid_version(self, tmp_path: Path) -> None:
        result = ReleaseService(workspace=self._release_ws(tmp_path), console=MockConsole()).run(
            ReleaseOptions(version="latest")
        )

        assert isinstance(result, Err)
        assert result.error.code == ErrorCode.USER_ERROR
