"""``gr release``: bump, changelog, build, then the cross-repo PR flow.

Every step prints what it would do under ``dry_run`` and touches nothing.
"""

from __future__ import annotations

import datetime
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.hosting.registry import AdapterCache
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.files import atomic_write_text
from gitgrip.platform.process import run_shell
from gitgrip.services.branches import BranchService
from gitgrip.services.changes import ChangeService
from gitgrip.services.errors import ServiceError
from gitgrip.services.executor import Summary
from gitgrip.services.pr.create import CreateOptions, PRCreateService
from gitgrip.services.pr.merge import MergeOptions, PRMergeService
from gitgrip.services.selection import select_repos
from gitgrip.services.sync import SyncOptions, SyncService

__all__ = [
    "ReleaseOptions",
    "ReleaseReport",
    "ReleaseService",
    "ReleaseStep",
    "bump_custom_file",
    "bump_package_json",
    "bump_toml_version",
    "detect_version_files",
    "normalize_version",
    "update_changelog",
]

type StepStatus = Literal["ok", "skipped", "failed"]

_TOML_VERSION_RE = re.compile(r'(?m)^(version\s*=\s*")([^"]+)(")')
_JSON_VERSION_RE = re.compile(r'("version"\s*:\s*")([^"]+)(")')
_DETECTED_FILES = ("Cargo.toml", "package.json", "pyproject.toml")
DEFAULT_CHANGELOG = "CHANGELOG.md"


def normalize_version(version: str) -> Result[tuple[str, str], ServiceError]:
    """``v1.2.3`` or ``1.2.3`` -> ``("1.2.3", "v1.2.3")``."""
    bare = version.removeprefix("v")
    parts = bare.split(".")
    if len(parts) < 2:
        return Err(
            ServiceError(kind="user", message=f"Invalid version '{version}'. Expected format: X.Y.Z (e.g. 0.12.4)")
        )
    if not all(part.isdigit() for part in parts[:2]):
        return Err(
            ServiceError(kind="user", message=f"Invalid version '{version}'. Version components must be numeric.")
        )
    return Ok((bare, f"v{bare}"))


def detect_version_files(workspace: Workspace, repos: list[RepoInfo]) -> list[tuple[str, Path]]:
    found: list[tuple[str, Path]] = []
    for info in repos:
        if info.reference:
            continue
        for name in _DETECTED_FILES:
            path = info.absolute_path / name
            if path.is_file():
                found.append((info.name, path))
    for name in _DETECTED_FILES:
        path = workspace.root / name
        if path.is_file() and all(p != path for _, p in found):
            found.append(("workspace", path))
    return found


def _rewrite(path: Path, transform: Callable[[str], str | None], dry_run: bool) -> Result[bool, ServiceError]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        return Err(ServiceError(kind="io", message=f"Failed to read {path}: {e}"))
    updated = transform(content)
    if updated is None or updated == content:
        return Ok(False)
    if not dry_run:
        try:
            atomic_write_text(path, updated)
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to write {path}: {e}"))
    return Ok(True)


def _replace_version(pattern: re.Pattern[str], version: str) -> Callable[[str], str | None]:
    def transform(content: str) -> str | None:
        match = pattern.search(content)
        if match is None or match.group(2) == version:
            return None
        return pattern.sub(lambda m: f"{m.group(1)}{version}{m.group(3)}", content, count=1)

    return transform


def bump_toml_version(path: Path, version: str, *, dry_run: bool = False) -> Result[bool, ServiceError]:
    """First top-level ``version = "..."`` line (Cargo.toml, pyproject.toml)."""
    return _rewrite(path, _replace_version(_TOML_VERSION_RE, version), dry_run)


def bump_package_json(path: Path, version: str, *, dry_run: bool = False) -> Result[bool, ServiceError]:
    return _rewrite(path, _replace_version(_JSON_VERSION_RE, version), dry_run)


def bump_custom_file(path: Path, pattern: str, version: str, *, dry_run: bool = False) -> Result[bool, ServiceError]:
    """``pattern`` is literal text with a ``{version}`` placeholder."""
    regex = re.compile(re.escape(pattern).replace(re.escape("{version}"), r"""([^\s"']+)"""))
    replacement = pattern.replace("{version}", version)

    def transform(content: str) -> str | None:
        if regex.search(content) is None:
            return None
        return regex.sub(lambda _m: replacement, content, count=1)

    return _rewrite(path, transform, dry_run)


def _bump_detected(path: Path, version: str, dry_run: bool) -> Result[bool, ServiceError]:
    if path.name == "package.json":
        return bump_package_json(path, version, dry_run=dry_run)
    return bump_toml_version(path, version, dry_run=dry_run)


def update_changelog(
    path: Path,
    tag: str,
    notes: str | None = None,
    *,
    dry_run: bool = False,
    today: datetime.date | None = None,
) -> Result[bool, ServiceError]:
    """Insert a ``## [tag] - date`` section under the first heading line."""
    if not path.is_file():
        return Ok(False)
    date = (today or datetime.date.today()).isoformat()
    section = f"## [{tag}] - {date}\n\n" + (f"{notes}\n\n" if notes else "")

    def transform(content: str) -> str:
        head, sep, rest = content.partition("\n")
        if not sep:
            return f"{content}\n\n{section}"
        return f"{head}\n\n{section}" + rest.removeprefix("\n")

    return _rewrite(path, transform, dry_run)


@dataclass(slots=True)
class ReleaseStep:
    name: str
    status: StepStatus = "ok"
    files: list[str] = field(default_factory=list[str])
    url: str | None = None
    number: int | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"name": self.name, "status": self.status}
        if self.files:
            data["files"] = list(self.files)
        if self.url is not None:
            data["url"] = self.url
        if self.number is not None:
            data["number"] = self.number
        return data


@dataclass(frozen=True, slots=True)
class ReleaseOptions:
    version: str
    notes: str | None = None
    dry_run: bool = False
    skip_pr: bool = False
    timeout: float = 600.0


@dataclass(frozen=True, slots=True)
class ReleaseReport:
    version: str
    steps: tuple[ReleaseStep, ...]
    dry_run: bool = False

    def to_dict(self) -> dict[str, object]:
        return {"version": self.version, "dryRun": self.dry_run, "steps": [s.to_dict() for s in self.steps]}


class ReleaseService:
    def __init__(
        self,
        *,
        workspace: Workspace,
        console: ConsoleProtocol,
        adapters: AdapterCache | None = None,
    ) -> None:
        self._workspace = workspace
        self._console = console
        self._adapters = adapters or AdapterCache(console=console)

    def run(self, options: ReleaseOptions) -> Result[ReleaseReport, ServiceError]:
        normalized = normalize_version(options.version)
        if isinstance(normalized, Err):
            return normalized
        bare, tag = normalized.value
        self._console.header(f"Release {tag} (dry run)" if options.dry_run else f"Releasing {tag}")

        steps: list[ReleaseStep] = []
        for step in (
            lambda: self._bump(bare, options.dry_run),
            lambda: self._changelog(tag, options),
            lambda: self._build(options.dry_run),
        ):
            result = step()
            if isinstance(result, Err):
                return result
            steps.append(result.value)

        if options.skip_pr:
            self._console.info("Skipping PR workflow (--skip-pr)")
            steps.extend(ReleaseStep(name, "skipped") for name in ("branch", "pr", "merge"))
        else:
            flow = self._pr_flow(tag, options)
            if isinstance(flow, Err):
                return flow
            steps.extend(flow.value)

        self._console.newline()
        self._console.success(f"Dry run complete for {tag}" if options.dry_run else f"Released {tag}")
        return Ok(ReleaseReport(tag, tuple(steps), options.dry_run))

    # -------------------------------------------------------------------------
    # Local steps
    # -------------------------------------------------------------------------

    def _bump(self, version: str, dry_run: bool) -> Result[ReleaseStep, ServiceError]:
        self._console.info(f"Step 1: Bumping version to {version}")
        step = ReleaseStep("bump")
        release = self._workspace.manifest.workspace.release
        root = self._workspace.root

        if release is not None and release.version_files:
            for vf in release.version_files:
                path = root / vf.path
                if not path.is_file():
                    self._console.warning(f"  Version file not found: {vf.path}")
                    continue
                bumped = bump_custom_file(path, vf.pattern, version, dry_run=dry_run)
                if isinstance(bumped, Err):
                    return bumped
                if bumped.value:
                    step.files.append(vf.path)
                    self._console.success(f"  Updated {vf.path}")
        else:
            repos = select_repos(self._workspace, include_reference=False)
            for owner, path in detect_version_files(self._workspace, repos):
                bumped = _bump_detected(path, version, dry_run)
                if isinstance(bumped, Err):
                    return bumped
                if bumped.value:
                    relative = path.relative_to(root).as_posix()
                    step.files.append(relative)
                    self._console.success(f"  Updated {relative} ({owner})")

        if not step.files:
            self._console.warning("  No version files were updated")
            step.status = "skipped"
        return Ok(step)

    def _changelog(self, tag: str, options: ReleaseOptions) -> Result[ReleaseStep, ServiceError]:
        self._console.info("Step 2: Updating CHANGELOG")
        release = self._workspace.manifest.workspace.release
        relative = (release.changelog if release is not None else None) or DEFAULT_CHANGELOG
        updated = update_changelog(self._workspace.root / relative, tag, options.notes, dry_run=options.dry_run)
        if isinstance(updated, Err):
            return updated
        if not updated.value:
            self._console.info(f"  No {relative} found, skipping")
            return Ok(ReleaseStep("changelog", "skipped"))
        self._console.success(f"  Updated {relative}")
        return Ok(ReleaseStep("changelog", files=[relative]))

    def _build(self, dry_run: bool) -> Result[ReleaseStep, ServiceError]:
        self._console.info("Step 3: Building")
        env = self._workspace.env_vars()
        built = False
        for info in select_repos(self._workspace, include_reference=False):
            command = info.config.agent.build if info.config is not None and info.config.agent is not None else None
            if not command or not info.exists():
                continue
            built = True
            if dry_run:
                self._console.info(f"  Would run in {info.name}: {command}")
                continue
            self._console.info(f"  Building {info.name} ({command})")
            outcome = run_shell(command, info.absolute_path, env)
            if not outcome.success:
                if outcome.output.strip():
                    self._console.print(outcome.output.rstrip(), Style.DIM)
                return Err(
                    ServiceError(kind="user", message=f"Build failed in {info.name} (exit {outcome.returncode})")
                )
            self._console.success(f"  {info.name} built successfully")
        if not built:
            self._console.info("  No agent.build configured, skipping")
            return Ok(ReleaseStep("build", "skipped"))
        return Ok(ReleaseStep("build"))

    # -------------------------------------------------------------------------
    # PR flow
    # -------------------------------------------------------------------------

    def _pr_flow(self, tag: str, options: ReleaseOptions) -> Result[list[ReleaseStep], ServiceError]:
        branch = f"release/{tag}"
        title = f"chore: release {tag}"

        self._console.info(f"Step 4: Creating branch {branch}")
        if options.dry_run:
            self._console.info(f"  Would create branch {branch} across repos")
            self._console.info(f'  Would commit: "{title}"')
            self._console.info("  Would push with upstream tracking")
            self._console.info(f'  Would create PR: "{title}"')
            self._console.info(f"  Would wait {int(options.timeout)}s for CI, then merge")
            return Ok([ReleaseStep("branch"), ReleaseStep("pr"), ReleaseStep("merge")])

        branches = BranchService(workspace=self._workspace, console=self._console)
        changes = ChangeService(workspace=self._workspace, console=self._console)
        for label, outcomes in (
            ("branch", lambda: branches.create(branch)),
            ("stage", lambda: changes.add(["."])),
            ("commit", lambda: changes.commit(title)),
            ("push", lambda: changes.push(set_upstream=True)),
        ):
            summary = Summary.from_outcomes(outcomes())
            if summary.has_errors:
                summary.report(self._console)
                return Err(ServiceError(kind="git", message=f"Release stopped: {label} failed"))

        self._console.info("Step 5: Creating pull request")
        created = PRCreateService(workspace=self._workspace, console=self._console, adapters=self._adapters).create(
            CreateOptions(title=title, body=options.notes)
        )
        if isinstance(created, Err):
            return Err(ServiceError(kind="network", message=created.error.message, hint=created.error.hint))
        first = created.value.created[0] if created.value.created else None
        pr_step = ReleaseStep("pr", url=first.url if first else None, number=first.number if first else None)

        self._console.info("Step 6: Waiting for CI and merging")
        merged = PRMergeService(workspace=self._workspace, console=self._console, adapters=self._adapters).merge(
            MergeOptions(wait=True, timeout=options.timeout)
        )
        if isinstance(merged, Err):
            return Err(ServiceError(kind="network", message=merged.error.message, hint=merged.error.hint))

        self._console.info("Step 7: Syncing after merge")
        repos = select_repos(self._workspace, include_reference=False)
        default_branch = repos[0].default_branch if repos else "main"
        branches.checkout(default_branch, run_post_hooks=False)
        SyncService(workspace=self._workspace, console=self._console).sync(SyncOptions(no_hooks=True))
        return Ok([ReleaseStep("branch"), pr_step, ReleaseStep("merge")])
