"""``gr verify``: pass/fail workspace assertions for scripts and agents."""

from __future__ import annotations

from dataclasses import dataclass, field

from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.git.status import get_repo_status
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.errors import ServiceError
from gitgrip.services.links import LinkService
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["CheckResult", "VerifyOptions", "VerifyReport", "VerifyService", "NO_CHECKS_MESSAGE"]

NO_CHECKS_MESSAGE = "No verification flags provided. Use --clean, --links, --on-branch, or --synced."

_LINK_REASONS = {
    "source_missing": "source missing",
    "missing": "dest missing",
    "stale": "out of date",
}


@dataclass(frozen=True, slots=True)
class CheckResult:
    name: str
    passed: bool
    details: tuple[dict[str, object], ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "pass": self.passed, "details": [dict(d) for d in self.details]}


@dataclass(frozen=True, slots=True)
class VerifyOptions:
    clean: bool = False
    links: bool = False
    on_branch: str | None = None
    synced: bool = False
    selection: RepoSelection = field(default_factory=RepoSelection)

    @property
    def any(self) -> bool:
        return self.clean or self.links or self.on_branch is not None or self.synced


@dataclass(frozen=True, slots=True)
class VerifyReport:
    checks: tuple[CheckResult, ...]

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    def to_dict(self) -> dict[str, object]:
        return {"pass": self.passed, "checks": [c.to_dict() for c in self.checks]}

    @classmethod
    def no_checks(cls) -> VerifyReport:
        return cls((CheckResult("no-checks", False, ({"error": NO_CHECKS_MESSAGE},)),))


class VerifyService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def verify(self, options: VerifyOptions) -> Result[VerifyReport, ServiceError]:
        if not options.any:
            return Err(ServiceError(kind="user", message=NO_CHECKS_MESSAGE))
        repos = select_repos(self._workspace, options.selection, include_reference=False)
        checks: list[CheckResult] = []
        if options.clean:
            checks.append(self.check_clean(repos))
        if options.links:
            checks.append(self.check_links())
        if options.on_branch is not None:
            checks.append(self.check_on_branch(repos, options.on_branch))
        if options.synced:
            checks.append(self.check_synced(repos))
        return Ok(VerifyReport(tuple(checks)))

    def check_clean(self, repos: list[RepoInfo]) -> CheckResult:
        details: list[dict[str, object]] = []
        for info in repos:
            status = get_repo_status(info)
            if isinstance(status, Err) or not status.value.exists:
                details.append({"repo": info.name, "status": "not cloned"})
            elif not status.value.is_clean:
                s = status.value
                details.append({"repo": info.name, "staged": s.staged, "modified": s.modified, "untracked": s.untracked})
        return CheckResult("clean", not details, tuple(details))

    def check_links(self) -> CheckResult:
        details: list[dict[str, object]] = []
        root = self._workspace.root
        for entry in LinkService(workspace=self._workspace, console=self._console).entries():
            if entry.ok:
                continue
            details.append(
                {
                    "type": entry.kind,
                    "repo": entry.owner,
                    "src": str(entry.source),
                    "dest": entry.dest.relative_to(root).as_posix() if entry.dest.is_relative_to(root) else str(entry.dest),
                    "reason": _LINK_REASONS.get(entry.state, entry.state),
                }
            )
        return CheckResult("links", not details, tuple(details))

    def check_on_branch(self, repos: list[RepoInfo], expected: str) -> CheckResult:
        details: list[dict[str, object]] = []
        for info in repos:
            if not info.exists():
                continue
            status = get_repo_status(info)
            actual = status.value.branch if isinstance(status, Ok) else ""
            if actual != expected:
                details.append({"repo": info.name, "expected": expected, "actual": actual})
        return CheckResult("on-branch", not details, tuple(details))

    def check_synced(self, repos: list[RepoInfo]) -> CheckResult:
        details: list[dict[str, object]] = []
        for info in repos:
            if not info.exists():
                details.append({"repo": info.name, "status": "not cloned"})
                continue
            status = get_repo_status(info)
            if isinstance(status, Err):
                details.append({"repo": info.name, "status": status.error.message})
            elif status.value.ahead or status.value.behind:
                details.append({"repo": info.name, "ahead": status.value.ahead, "behind": status.value.behind})
        return CheckResult("synced", not details, tuple(details))

    def render(self, report: VerifyReport) -> None:
        self._console.header("Verify")
        for check in report.checks:
            if check.passed:
                self._console.success(f"{check.name}: passed")
                continue
            self._console.failure(f"{check.name}: failed")
            for detail in check.details:
                self._console.print("    " + ", ".join(f"{k}={v}" for k, v in detail.items()))
