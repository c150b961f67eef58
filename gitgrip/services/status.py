"""``gr status``: one row per repo plus a one-line summary."""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.git.cache import StatusCache
from gitgrip.git.status import RepoStatusInfo, get_repo_status
from gitgrip.output.console import ConsoleProtocol
from gitgrip.services.errors import ServiceError
from gitgrip.services.gripspaces import GripspaceService, GripspaceStatus
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = ["StatusReport", "StatusService", "describe_changes"]


@dataclass(frozen=True, slots=True)
class StatusReport:
    rows: tuple[RepoStatusInfo, ...]
    errors: tuple[tuple[str, str], ...] = ()
    gripspaces: tuple[GripspaceStatus, ...] = ()

    @property
    def total(self) -> int:
        return len(self.rows) + len(self.errors)

    @property
    def cloned(self) -> int:
        return sum(1 for r in self.rows if r.exists)

    @property
    def with_changes(self) -> int:
        return sum(1 for r in self.rows if r.exists and not r.is_clean)

    def summary_line(self) -> str:
        return f"{self.cloned}/{self.total} cloned | {self.with_changes} with changes"

    def to_dict(self) -> dict[str, object]:
        return {
            "repos": [r.to_dict() for r in self.rows],
            "errors": [{"repo": name, "error": message} for name, message in self.errors],
            "gripspaces": [g.to_dict() for g in self.gripspaces],
            "summary": {
                "total": self.total,
                "cloned": self.cloned,
                "withChanges": self.with_changes,
            },
        }


def describe_changes(row: RepoStatusInfo) -> str:
    if not row.exists:
        return "not cloned"
    if row.is_clean:
        return "clean"
    parts: list[str] = []
    if row.staged:
        parts.append(f"{row.staged} staged")
    if row.modified:
        parts.append(f"{row.modified} modified")
    if row.untracked:
        parts.append(f"{row.untracked} untracked")
    return ", ".join(parts)


def _sync_column(row: RepoStatusInfo) -> str:
    if not row.exists:
        return ""
    marks: list[str] = []
    if row.ahead:
        marks.append(f"↑{row.ahead}")
    if row.behind:
        marks.append(f"↓{row.behind}")
    if row.branch != row.default_branch and (row.ahead_main or row.behind_main):
        marks.append(f"({row.default_branch} +{row.ahead_main}/-{row.behind_main})")
    return " ".join(marks)


class StatusService:
    def __init__(
        self,
        *,
        workspace: Workspace,
        console: ConsoleProtocol,
        cache: StatusCache | None = None,
    ) -> None:
        self._workspace = workspace
        self._console = console
        self._cache = cache

    def collect(self, selection: RepoSelection | None = None) -> Result[StatusReport, ServiceError]:
        repos = select_repos(self._workspace, selection, include_manifest=True)
        if not repos:
            return Err(ServiceError(kind="user", message="No repositories match the given filters"))

        rows: list[RepoStatusInfo] = []
        errors: list[tuple[str, str]] = []
        for info in repos:
            match get_repo_status(info, cache=self._cache):
                case Ok(row):
                    rows.append(row)
                case Err(e):
                    errors.append((info.name, e.message))
        gripspaces = GripspaceService(workspace=self._workspace, console=self._console).status()
        return Ok(StatusReport(rows=tuple(rows), errors=tuple(errors), gripspaces=tuple(gripspaces)))

    def render(self, report: StatusReport, *, verbose: bool = False) -> None:
        table_rows: list[list[str]] = []
        for row in report.rows:
            name = f"{row.name} (ref)" if row.reference else row.name
            cells = [name, row.branch or "-", describe_changes(row), _sync_column(row)]
            table_rows.append(cells)
        self._console.table(["Repo", "Branch", "Status", "Sync"], table_rows)
        GripspaceService(workspace=self._workspace, console=self._console).render(list(report.gripspaces))

        for name, message in report.errors:
            self._console.failure(f"{name}: {message}")

        if verbose:
            for row in report.rows:
                if row.exists and not row.is_clean:
                    self._console.print(f"  {row.name}: {describe_changes(row)}")

        self._console.newline()
        self._console.print(report.summary_line())
