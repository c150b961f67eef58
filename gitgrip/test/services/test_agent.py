"""Tests for services/agent.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.core.manifest import AgentConfig
from gitgrip.core.result import Err, Ok
from gitgrip.output.console import MockConsole
from gitgrip.services.agent import AgentService, CheckReport, apply_format, repo_skill_content
from gitgrip.test.gitfixtures import init_repo, load, requires_git

MANIFEST = """\
version: 1
repos:
  api:
    url: git@github.com:acme/api.git
    path: api
    groups: [backend]
    agent:
      description: REST API
      language: python
      build: echo built > build.out
      test: "true"
      lint: "false"
  docs:
    url: git@github.com:acme/docs.git
    path: docs
    reference: true
  web:
    url: git@github.com:acme/web.git
    path: web
workspace:
  scripts:
    check:
      command: make check
  agent:
    description: Acme platform
    conventions:
      - Conventional commits
    workflows:
      release: gr release
    context_source: AGENTS.md
    targets:
      - format: claude
        dest: CLAUDE.md
        compose_with: [extra.md]
      - format: cursor
        dest: .cursorrules
      - format: opencode
        dest: .opencode/skills/{repo}/SKILL.md
"""

API_SKILL = "# api\n\nREST API\n\nLanguage: python\nBuild: `echo built > build.out`\nTest: `true`\nLint: `false`\n"


def _workspace(tmp_path: Path, text: str = MANIFEST) -> Path:
    manifest_dir = tmp_path / ".gitgrip" / "spaces" / "main"
    manifest_dir.mkdir(parents=True)
    (manifest_dir / "gripspace.yml").write_text(text, encoding="utf-8")
    (manifest_dir / "AGENTS.md").write_text("# Acme\nRules\n", encoding="utf-8")
    return tmp_path


def _service(root: Path) -> tuple[AgentService, MockConsole]:
    console = MockConsole()
    return AgentService(workspace=load(root), console=console), console


class TestFormats:
    def test_frontmatter_only_for_repo_files(self) -> None:
        assert apply_format("claude", "body") == "body"
        assert apply_format("codex", "body", "api") == "---\nname: api\n---\n\nbody"

    def test_cursor_drops_heading_markers(self) -> None:
        assert apply_format("cursor", "# Title\n## Sub\ntext") == "Title\nSub\ntext\n"

    def test_unknown_format_is_raw(self) -> None:
        assert apply_format("raw", "# x", "api") == "# x"

    def test_skill_content(self) -> None:
        agent = AgentConfig(description="REST API", language="python", build="make")
        assert repo_skill_content("api", agent) == "# api\n\nREST API\n\nLanguage: python\nBuild: `make`\n"


class TestContext:
    def test_markdown(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        service, _ = _service(root)

        lines = service.context().unwrap().to_markdown().splitlines()

        assert lines[:3] == [f"# Workspace: {root}", "Acme platform", ""]
        assert "- Conventional commits" in lines
        assert "- release: `gr release`" in lines
        assert "- check" in lines
        start = lines.index("### api (python) -- REST API")
        assert lines[start : start + 4] == [
            "### api (python) -- REST API",
            "- Status: not cloned",
            "- Commands: [build: echo built > build.out] [test: true] [lint: false]",
            "- Groups: backend",
        ]
        assert "### docs [reference]" in lines

    def test_json(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        service, _ = _service(root)

        data = service.context().unwrap().to_dict()

        assert data["workspace"] == {
            "root": str(root),
            "description": "Acme platform",
            "conventions": ["Conventional commits"],
            "workflows": {"release": "gr release"},
            "scripts": ["check"],
        }
        repos = data["repos"]
        assert isinstance(repos, list)
        assert [r["name"] for r in repos] == ["api", "docs", "web"]
        assert repos[0]["agent"] == {
            "description": "REST API",
            "language": "python",
            "build": "echo built > build.out",
            "test": "true",
            "lint": "false",
        }
        assert repos[1]["reference"] is True
        assert "agent" not in repos[2]
        assert "griptree" not in data

    def test_single_repo(self, tmp_path: Path) -> None:
        service, _ = _service(_workspace(tmp_path))
        assert [r.info.name for r in service.context("web").unwrap().repos] == ["web"]

    def test_unknown_repo(self, tmp_path: Path) -> None:
        service, _ = _service(_workspace(tmp_path))
        result = service.context("nope")
        assert isinstance(result, Err)
        assert result.error.message == "Repository 'nope' not found in manifest"


class TestRun:
    def test_uncloned_repos_are_skipped(self, tmp_path: Path) -> None:
        service, console = _service(_workspace(tmp_path))

        assert service.run("build") == Ok(0)
        assert console.find("api: not cloned")
        assert console.find("No repos have agent.build configured")

    def test_named_repo_without_command(self, tmp_path: Path) -> None:
        service, _ = _service(_workspace(tmp_path))
        result = service.run("test", "web")
        assert isinstance(result, Err)
        assert result.error.message == "Repository 'web' has no agent.test command defined in the manifest"

    def test_named_repo_not_cloned(self, tmp_path: Path) -> None:
        service, _ = _service(_workspace(tmp_path))
        result = service.run("build", "api")
        assert isinstance(result, Err)
        assert result.error.kind == "env"

    @requires_git
    def test_build_runs_in_repo(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        init_repo(root / "api")
        service, console = _service(root)

        assert service.run("build") == Ok(1)
        assert (root / "api" / "build.out").read_text(encoding="utf-8").strip() == "built"
        assert console.find("Building api")
        assert console.find("$ echo built > build.out")
        assert console.find("api built successfully")

    @requires_git
    def test_failing_command_stops(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path, MANIFEST.replace('test: "true"', "test: exit 4"))
        init_repo(root / "api")
        service, _ = _service(root)

        result = service.run("test")

        assert isinstance(result, Err)
        assert result.error.message == "Tests failed for 'api' (exit code: 4)"


class TestVerify:
    def test_nothing_cloned(self, tmp_path: Path) -> None:
        service, console = _service(_workspace(tmp_path))

        assert service.verify() == Ok(CheckReport(passed=0, failed=(), skipped=3))
        assert console.find("No repos have agent checks configured")

    def test_named_repo_without_agent(self, tmp_path: Path) -> None:
        service, _ = _service(_workspace(tmp_path))
        result = service.verify("web")
        assert isinstance(result, Err)
        assert "has no agent config" in result.error.message

    @requires_git
    def test_continues_past_failures(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        init_repo(root / "api")
        service, console = _service(root)

        result = service.verify()

        assert isinstance(result, Err)
        assert result.error.message == "1 verification check(s) failed"
        assert console.find("[api] build passed")
        assert console.find("[api] lint failed")
        assert console.find("Verification: 2 passed, 1 failed, 0 skipped")

    @requires_git
    def test_all_passing(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path, MANIFEST.replace('lint: "false"', 'lint: "true"'))
        init_repo(root / "api")
        service, console = _service(root)

        report = service.verify().unwrap()

        assert report.to_dict() == {"success": True, "passed": 3, "failed": [], "skipped": 0}
        assert console.find("Verification: all 3 checks passed (0 skipped)")


class TestGenerateContext:
    def test_writes_every_target(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        (root / "extra.md").write_text("extra\n", encoding="utf-8")
        service, console = _service(root)

        assert service.generate_context() == Ok(3)

        assert (root / "CLAUDE.md").read_text(encoding="utf-8") == "# Acme\nRules\n\n\nextra\n"
        assert (root / ".cursorrules").read_text(encoding="utf-8") == "Acme\nRules\n"
        skill = root / ".opencode" / "skills" / "api" / "SKILL.md"
        assert skill.read_text(encoding="utf-8") == "---\nname: api\n---\n\n" + API_SKILL
        assert not (root / ".opencode" / "skills" / "web").exists()
        assert console.find("Generated 3 context file(s)")

    def test_dry_run_writes_nothing(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        service, console = _service(root)

        assert service.generate_context(dry_run=True) == Ok(3)

        assert not (root / "CLAUDE.md").exists()
        assert console.find("  cursor -> .cursorrules (11 bytes)")
        assert console.find("Dry run: 3 file(s) would be generated")

    def test_missing_compose_file_is_a_warning(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        service, console = _service(root)

        service.generate_context().unwrap()

        assert console.find("compose_with 'extra.md' not found")
        assert (root / "CLAUDE.md").read_text(encoding="utf-8") == "# Acme\nRules\n"

    def test_missing_source(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        (root / ".gitgrip" / "spaces" / "main" / "AGENTS.md").unlink()
        service, _ = _service(root)

        result = service.generate_context()

        assert isinstance(result, Err)
        assert result.error.kind == "io"

    def test_no_targets(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path, MANIFEST.split("  agent:\n    description: Acme")[0])
        service, console = _service(root)

        assert service.generate_context() == Ok(0)
        assert console.find("No agent context targets configured")
