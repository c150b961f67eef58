"""Fan-out of a per-repo operation across manifest repositories.

Usage:
    executor = Executor(console=console, parallel=True)
    outcomes = executor.for_each_repo(repos, lambda info, repo: Success("fetched"))
    summary = Summary.from_outcomes(outcomes)
    summary.report(console)

Sequential mode visits repos in manifest order and prints each line as it
finishes. Parallel mode runs visits on a short-lived thread pool behind a
single progress indicator and prints the lines in manifest order once every
visit has returned.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from gitgrip.core.repo import RepoInfo
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol

__all__ = [
    "DEFAULT_MAX_WORKERS",
    "Executor",
    "Failed",
    "Outcome",
    "print_outcome",
    "RepoOutcome",
    "Skipped",
    "Success",
    "Summary",
]

DEFAULT_MAX_WORKERS = 8


@dataclass(frozen=True, slots=True)
class Success:
    """``note`` successes changed nothing and print as info lines."""

    message: str = ""
    note: bool = False


@dataclass(frozen=True, slots=True)
class Skipped:
    reason: str


@dataclass(frozen=True, slots=True)
class Failed:
    message: str


type Outcome = Success | Skipped | Failed


@dataclass(frozen=True, slots=True)
class RepoOutcome:
    name: str
    outcome: Outcome

    @property
    def ok(self) -> bool:
        return not isinstance(self.outcome, Failed)


@dataclass(frozen=True, slots=True)
class Summary:
    success_count: int = 0
    skip_count: int = 0
    error_count: int = 0
    failed: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[RepoOutcome]) -> Summary:
        failed = tuple((o.name, o.outcome.message) for o in outcomes if isinstance(o.outcome, Failed))
        return cls(
            success_count=sum(1 for o in outcomes if isinstance(o.outcome, Success)),
            skip_count=sum(1 for o in outcomes if isinstance(o.outcome, Skipped)),
            error_count=len(failed),
            failed=failed,
        )

    @property
    def total(self) -> int:
        return self.success_count + self.skip_count + self.error_count

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def report(self, console: ConsoleProtocol) -> None:
        console.newline()
        line = f"{self.success_count} succeeded, {self.error_count} failed, {self.skip_count} skipped"
        if self.has_errors:
            console.warning(line)
            for name, message in self.failed:
                console.print(f"  - {name}: {message}")
        else:
            console.success(line)

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success_count,
            "skipped": self.skip_count,
            "failed": self.error_count,
            "failures": [{"repo": name, "error": message} for name, message in self.failed],
        }


def print_outcome(console: ConsoleProtocol, result: RepoOutcome) -> None:
    match result.outcome:
        case Success(message, note=True):
            console.info(f"{result.name}: {message}")
        case Success(message):
            console.success(f"{result.name}: {message}" if message else result.name)
        case Skipped(reason):
            console.skip(f"{result.name}: {reason}")
        case Failed(message):
            console.failure(f"{result.name}: {message}")


def _guarded(fn: Callable[[RepoInfo], Outcome], info: RepoInfo) -> Outcome:
    """Run one visit; an unexpected exception becomes that repo's ``Failed``."""
    try:
        return fn(info)
    except Exception as e:  # noqa: BLE001
        return Failed(f"{type(e).__name__}: {e}")


class Executor:
    """Runs one closure per repository and collects :class:`RepoOutcome` values.

    Visits never short-circuit: a closure that fails returns ``Failed`` and
    the next repo is still visited.
    """

    def __init__(
        self,
        *,
        console: ConsoleProtocol,
        parallel: bool = False,
        max_workers: int = DEFAULT_MAX_WORKERS,
        echo: bool = True,
    ) -> None:
        self._console = console
        self._parallel = parallel
        self._max_workers = max(1, max_workers)
        self._echo = echo

    def for_each_repo(
        self,
        repos: Sequence[RepoInfo],
        fn: Callable[[RepoInfo, Repository], Outcome],
        *,
        label: str = "Working",
    ) -> list[RepoOutcome]:
        """Visit cloned repos with an opened handle. Missing clones are not visited."""
        present: list[RepoInfo] = []
        for info in repos:
            if info.exists():
                present.append(info)
            elif self._echo:
                self._console.skip(f"{info.name}: not cloned")
        return self.for_each_info(present, lambda info: fn(info, Repository(info.absolute_path)), label=label)

    def for_each_info(
        self,
        repos: Sequence[RepoInfo],
        fn: Callable[[RepoInfo], Outcome],
        *,
        label: str = "Working",
    ) -> list[RepoOutcome]:
        if not self._parallel or len(repos) <= 1:
            return self._sequential(repos, fn, label)
        return self._fan_out(repos, fn, label)

    def _sequential(
        self, repos: Sequence[RepoInfo], fn: Callable[[RepoInfo], Outcome], label: str
    ) -> list[RepoOutcome]:
        results: list[RepoOutcome] = []
        for info in repos:
            with self._console.progress(f"{label} {info.name}..."):
                result = RepoOutcome(info.name, _guarded(fn, info))
            results.append(result)
            if self._echo:
                print_outcome(self._console, result)
        return results

    def _fan_out(
        self, repos: Sequence[RepoInfo], fn: Callable[[RepoInfo], Outcome], label: str
    ) -> list[RepoOutcome]:
        slots: list[RepoOutcome | None] = [None] * len(repos)
        lock = threading.Lock()

        def visit(index: int, info: RepoInfo) -> None:
            result = RepoOutcome(info.name, _guarded(fn, info))
            with lock:
                slots[index] = result

        with self._console.progress(f"{label} {len(repos)} repos..."):
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(repos))) as pool:
                futures = [pool.submit(visit, i, info) for i, info in enumerate(repos)]
                for future in futures:
                    future.result()

        results = [r for r in slots if r is not None]
        if self._echo:
            for result in results:
                print_outcome(self._console, result)
        return results
