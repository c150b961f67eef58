"""``gr agent``: workspace context and per-repo commands for coding agents.

``context`` describes the workspace as markdown (for a system prompt) or
JSON. ``build``, ``test`` and ``verify`` run the ``agent`` commands a repo
declares in the manifest. ``generate-context`` writes one context file per
configured target, reformatted for the tool that reads it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gitgrip.core.gripspace import resolve_file_source
from gitgrip.core.manifest import AgentConfig, AgentContextTarget
from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.git.status import RepoStatusInfo, get_repo_status
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.process import run_shell
from gitgrip.services.errors import ServiceError
from gitgrip.services.selection import select_repos
from gitgrip.services.status import describe_changes

__all__ = [
    "AgentCommand",
    "AgentContext",
    "AgentService",
    "CheckReport",
    "RepoContext",
    "apply_format",
    "repo_skill_content",
]

type AgentCommand = Literal["build", "test"]

_VERBS: dict[AgentCommand, tuple[str, str, str]] = {
    "build": ("Building", "built successfully", "Build failed"),
    "test": ("Testing", "tests passed", "Tests failed"),
}


@dataclass(frozen=True, slots=True)
class RepoContext:
    info: RepoInfo
    status: RepoStatusInfo

    @property
    def agent(self) -> AgentConfig | None:
        return self.info.config.agent if self.info.config else None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "name": self.info.name,
            "path": self.info.path,
            "url": self.info.url,
            "default_branch": self.info.default_branch,
            "current_branch": self.status.branch,
            "clean": self.status.is_clean,
            "exists": self.status.exists,
        }
        if self.info.reference:
            data["reference"] = True
        if self.info.groups:
            data["groups"] = list(self.info.groups)
        agent = self.agent
        if agent is not None:
            data["agent"] = {
                key: value
                for key, value in (
                    ("description", agent.description),
                    ("language", agent.language),
                    ("build", agent.build),
                    ("test", agent.test),
                    ("lint", agent.lint),
                    ("format", agent.format),
                )
                if value is not None
            }
        return data

    def markdown(self) -> list[str]:
        agent = self.agent
        language = f" ({agent.language})" if agent and agent.language else ""
        reference = " [reference]" if self.info.reference else ""
        description = f" -- {agent.description}" if agent and agent.description else ""
        lines = [f"### {self.info.name}{language}{reference}{description}"]

        if self.status.exists:
            lines.append(f"- Branch: {self.status.branch} (default: {self.info.default_branch})")
        lines.append(f"- Status: {describe_changes(self.status)}")

        if agent is not None:
            commands = [
                f"{label}: {command}"
                for label, command in (("build", agent.build), ("test", agent.test), ("lint", agent.lint))
                if command
            ]
            if commands:
                lines.append("- Commands: " + " ".join(f"[{c}]" for c in commands))
        if self.info.groups:
            lines.append(f"- Groups: {', '.join(self.info.groups)}")
        lines.append("")
        return lines


@dataclass(frozen=True, slots=True)
class AgentContext:
    """Everything ``gr agent context`` reports."""

    workspace: Workspace
    repos: tuple[RepoContext, ...]

    def to_dict(self) -> dict[str, object]:
        ws = self.workspace
        agent = ws.manifest.workspace.agent
        workspace: dict[str, object] = {"root": str(ws.root)}
        if agent is not None:
            if agent.description:
                workspace["description"] = agent.description
            if agent.conventions:
                workspace["conventions"] = list(agent.conventions)
            if agent.workflows:
                workspace["workflows"] = dict(agent.workflows)
        if ws.manifest.workspace.scripts:
            workspace["scripts"] = sorted(ws.manifest.workspace.scripts)
        if ws.manifest.workspace.env:
            workspace["env"] = dict(ws.manifest.workspace.env)

        data: dict[str, object] = {
            "workspace": workspace,
            "repos": [r.to_dict() for r in self.repos],
        }
        if ws.griptree is not None:
            data["griptree"] = {
                "branch": ws.griptree.branch,
                "path": ws.griptree.path,
                "upstreams": dict(ws.griptree.repo_upstreams),
            }
        return data

    def to_markdown(self) -> str:
        ws = self.workspace
        agent = ws.manifest.workspace.agent
        lines = [f"# Workspace: {ws.root}"]
        if agent is not None and agent.description:
            lines.append(agent.description)
        lines.append("")

        if agent is not None and agent.conventions:
            lines.append("## Conventions")
            lines.extend(f"- {c}" for c in agent.conventions)
            lines.append("")
        if agent is not None and agent.workflows:
            lines.append("## Workflows")
            lines.extend(f"- {name}: `{command}`" for name, command in agent.workflows.items())
            lines.append("")
        if ws.manifest.workspace.scripts:
            lines.append("## Scripts")
            lines.extend(f"- {name}" for name in sorted(ws.manifest.workspace.scripts))
            lines.append("")
        if ws.griptree is not None:
            lines.append(f"## Griptree: {ws.griptree.branch}")
            if ws.griptree.repo_upstreams:
                upstreams = ", ".join(f"{name}:{ref}" for name, ref in sorted(ws.griptree.repo_upstreams.items()))
                lines.append(f"Upstreams: {upstreams}")
            lines.append("")

        lines.append("## Repos")
        lines.append("")
        for repo in self.repos:
            lines.extend(repo.markdown())
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class CheckReport:
    passed: int = 0
    failed: tuple[str, ...] = ()
    skipped: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "success": not self.failed,
            "passed": self.passed,
            "failed": list(self.failed),
            "skipped": self.skipped,
        }


# -----------------------------------------------------------------------------
# Context file formats
# -----------------------------------------------------------------------------


def _frontmatter(content: str, repo_name: str | None) -> str:
    if repo_name is None:
        return content
    return f"---\nname: {repo_name}\n---\n\n{content}"


def _strip_headings(content: str) -> str:
    lines = [line.lstrip("#").strip() if line.startswith("#") else line for line in content.splitlines()]
    return "".join(f"{line}\n" for line in lines)


def apply_format(fmt: str, content: str, repo_name: str | None = None) -> str:
    """Adapt ``content`` for one tool.

    ``claude``, ``opencode`` and ``codex`` add a ``name`` frontmatter to
    per-repo files, ``cursor`` drops heading markers, anything else is
    written unchanged.
    """
    match fmt:
        case "claude" | "opencode" | "codex":
            return _frontmatter(content, repo_name)
        case "cursor":
            return _strip_headings(content)
        case _:
            return content


def repo_skill_content(name: str, agent: AgentConfig) -> str:
    parts = [f"# {name}\n\n"]
    if agent.description:
        parts.append(f"{agent.description}\n\n")
    for label, value in (
        ("Language", agent.language),
        ("Build", agent.build),
        ("Test", agent.test),
        ("Lint", agent.lint),
        ("Format", agent.format),
    ):
        if value:
            parts.append(f"{label}: {value}\n" if label == "Language" else f"{label}: `{value}`\n")
    return "".join(parts)


class AgentService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def _pick(self, repo: str | None, *, include_reference: bool) -> Result[list[RepoInfo], ServiceError]:
        repos = select_repos(self._workspace, include_reference=include_reference)
        if repo is None:
            return Ok(repos)
        picked = [info for info in repos if info.name == repo]
        if not picked:
            return Err(ServiceError(kind="user", message=f"Repository '{repo}' not found in manifest"))
        return Ok(picked)

    # -------------------------------------------------------------------------
    # context
    # -------------------------------------------------------------------------

    def context(self, repo: str | None = None) -> Result[AgentContext, ServiceError]:
        picked = self._pick(repo, include_reference=True)
        if isinstance(picked, Err):
            return picked
        rows: list[RepoContext] = []
        for info in picked.value:
            match get_repo_status(info):
                case Ok(status):
                    rows.append(RepoContext(info, status))
                case Err(e):
                    return Err(ServiceError(kind="git", message=f"{info.name}: {e.message}"))
        return Ok(AgentContext(self._workspace, tuple(rows)))

    # -------------------------------------------------------------------------
    # build / test / verify
    # -------------------------------------------------------------------------

    def run(self, command: AgentCommand, repo: str | None = None) -> Result[int, ServiceError]:
        """Run ``agent.<command>`` in each repo that declares it; stop at the first failure.

        Returns how many repos ran the command.
        """
        picked = self._pick(repo, include_reference=False)
        if isinstance(picked, Err):
            return picked
        heading, done, failed = _VERBS[command]
        env = self._workspace.env_vars()
        ran = 0
        for info in picked.value:
            agent = info.config.agent if info.config else None
            line = getattr(agent, command) if agent is not None else None
            if not line:
                if repo is not None:
                    return Err(
                        ServiceError(
                            kind="user",
                            message=f"Repository '{info.name}' has no agent.{command} command defined in the manifest",
                        )
                    )
                continue
            if not info.exists():
                if repo is not None:
                    return Err(ServiceError(kind="env", message=f"Repository '{info.name}' is not cloned"))
                self._console.skip(f"{info.name}: not cloned")
                continue

            self._console.header(f"{heading} {info.name}")
            self._console.print(f"$ {line}", Style.DIM)
            outcome = run_shell(line, info.absolute_path, env, capture=False)
            if not outcome.success:
                return Err(
                    ServiceError(
                        kind="user",
                        message=f"{failed} for '{info.name}' (exit code: {outcome.returncode})",
                    )
                )
            self._console.success(f"{info.name} {done}")
            ran += 1

        if ran == 0:
            self._console.info(f"No repos have agent.{command} configured")
        return Ok(ran)

    def verify(self, repo: str | None = None) -> Result[CheckReport, ServiceError]:
        """Run build, test and lint for every repo, continuing past failures."""
        picked = self._pick(repo, include_reference=False)
        if isinstance(picked, Err):
            return picked
        env = self._workspace.env_vars()
        passed = 0
        skipped = 0
        failed: list[str] = []
        for info in picked.value:
            agent = info.config.agent if info.config else None
            if agent is None:
                if repo is not None:
                    return Err(
                        ServiceError(
                            kind="user",
                            message=f"Repository '{info.name}' has no agent config defined in the manifest",
                        )
                    )
                continue
            for label, line in (("build", agent.build), ("test", agent.test), ("lint", agent.lint)):
                if not line or not info.exists():
                    skipped += 1
                    continue
                self._console.info(f"[{info.name}] {label} -> {line}")
                if run_shell(line, info.absolute_path, env, capture=False).success:
                    self._console.success(f"[{info.name}] {label} passed")
                    passed += 1
                else:
                    self._console.failure(f"[{info.name}] {label} failed")
                    failed.append(f"{info.name}:{label}")

        report = CheckReport(passed=passed, failed=tuple(failed), skipped=skipped)
        self._console.newline()
        if failed:
            self._console.error(f"Verification: {passed} passed, {len(failed)} failed, {skipped} skipped")
            return Err(ServiceError(kind="user", message=f"{len(failed)} verification check(s) failed"))
        if passed:
            self._console.success(f"Verification: all {passed} checks passed ({skipped} skipped)")
        else:
            self._console.info("No repos have agent checks configured")
        return Ok(report)

    # -------------------------------------------------------------------------
    # generate-context
    # -------------------------------------------------------------------------

    def _source_text(self, source: str) -> Result[str, ServiceError]:
        resolved = resolve_file_source(source, self._workspace.manifest_content_dir, self._workspace.spaces_dir)
        if isinstance(resolved, Err):
            message = f"Failed to resolve context_source '{source}': {resolved.error.message}"
            return Err(ServiceError(kind="user", message=message))
        try:
            return Ok(resolved.value.read_text(encoding="utf-8"))
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to read context_source '{resolved.value}': {e}"))

    def _compose(self, content: str, target: AgentContextTarget) -> str:
        """Append each ``compose_with`` file; workspace-relative paths are tried first."""
        root = self._workspace.root
        for src in target.compose_with:
            path = root / src
            if not path.exists():
                resolved = resolve_file_source(src, self._workspace.manifest_content_dir, self._workspace.spaces_dir)
                if isinstance(resolved, Ok):
                    path = resolved.value
            try:
                content += "\n\n" + path.read_text(encoding="utf-8")
            except OSError as e:
                self._console.warning(f"compose_with '{src}' not found: {e}")
        return content

    def _write(self, dest: str, text: str, target: AgentContextTarget, dry_run: bool) -> Result[None, ServiceError]:
        if dry_run:
            self._console.info(f"  {target.format} -> {dest} ({len(text.encode('utf-8'))} bytes)")
            return Ok(None)
        path = self._workspace.root / dest
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to write {dest}: {e}"))
        return Ok(None)

    def _generate_target(
        self, target: AgentContextTarget, source: str | None, dry_run: bool
    ) -> Result[int, ServiceError]:
        if "{repo}" not in target.dest:
            if source is None:
                return Ok(0)
            text = apply_format(target.format, self._compose(source, target))
            written = self._write(target.dest, text, target, dry_run)
            return written if isinstance(written, Err) else Ok(1)

        count = 0
        for info in select_repos(self._workspace, include_reference=False):
            agent = info.config.agent if info.config else None
            if agent is None:
                continue
            dest = target.dest.replace("{repo}", info.name)
            text = apply_format(target.format, repo_skill_content(info.name, agent), info.name)
            written = self._write(dest, text, target, dry_run)
            if isinstance(written, Err):
                return written
            count += 1
        return Ok(count)

    def generate_context(self, *, dry_run: bool = False) -> Result[int, ServiceError]:
        """Write every ``workspace.agent.targets`` file; returns how many were (or would be) written.

        Workspace-level targets need ``context_source``; ``{repo}`` targets are
        built from each repo's ``agent`` section.
        """
        agent = self._workspace.manifest.workspace.agent
        if agent is None or not agent.targets:
            self._console.info("No agent context targets configured")
            return Ok(0)

        source: str | None = None
        if agent.context_source:
            text = self._source_text(agent.context_source)
            if isinstance(text, Err):
                return text
            source = text.value

        generated = 0
        for target in agent.targets:
            result = self._generate_target(target, source, dry_run)
            if isinstance(result, Err):
                return result
            generated += result.value

        if dry_run:
            self._console.info(f"Dry run: {generated} file(s) would be generated")
        else:
            self._console.success(f"Generated {generated} context file(s)")
        return Ok(generated)
