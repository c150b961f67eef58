"""Vendor-neutral records returned by hosting adapters."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from gitgrip.core.manifest import PlatformType

__all__ = [
    "AllowedMergeMethods",
    "CheckState",
    "CheckStatusDetails",
    "LinkedPRRef",
    "MERGE_METHODS",
    "MergeMethod",
    "PRCreateResult",
    "PRRef",
    "PRReview",
    "PRState",
    "ParsedRepoInfo",
    "PullRequest",
    "StatusCheck",
    "StatusCheckResult",
    "aggregate_check_state",
]

type PRState = Literal["open", "closed", "merged"]
type MergeMethod = Literal["merge", "squash", "rebase"]
type CheckState = Literal["pending", "success", "failure"]

MERGE_METHODS: tuple[MergeMethod, ...] = ("merge", "squash", "rebase")


@dataclass(frozen=True, slots=True)
class PRRef:
    ref: str
    sha: str = ""


@dataclass(frozen=True, slots=True)
class PullRequest:
    number: int
    url: str
    title: str
    body: str
    state: PRState
    merged: bool
    head: PRRef
    base: PRRef
    mergeable: bool | None = None


@dataclass(frozen=True, slots=True)
class PRCreateResult:
    number: int
    url: str


@dataclass(frozen=True, slots=True)
class PRReview:
    state: str
    user: str


@dataclass(frozen=True, slots=True)
class StatusCheck:
    context: str
    state: CheckState


@dataclass(frozen=True, slots=True)
class StatusCheckResult:
    state: CheckState
    statuses: tuple[StatusCheck, ...] = ()

    @classmethod
    def from_checks(cls, checks: Iterable[StatusCheck]) -> StatusCheckResult:
        items = tuple(checks)
        return cls(state=aggregate_check_state(c.state for c in items), statuses=items)

    def details(self) -> CheckStatusDetails:
        passed = sum(1 for c in self.statuses if c.state == "success")
        failed = sum(1 for c in self.statuses if c.state == "failure")
        pending = sum(1 for c in self.statuses if c.state == "pending")
        return CheckStatusDetails(
            state=self.state,
            passed=passed,
            failed=failed,
            pending=pending,
            total=len(self.statuses),
        )


@dataclass(frozen=True, slots=True)
class CheckStatusDetails:
    state: CheckState
    passed: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0
    total: int = 0


@dataclass(frozen=True, slots=True)
class AllowedMergeMethods:
    merge: bool = True
    squash: bool = True
    rebase: bool = True

    def allows(self, method: MergeMethod) -> bool:
        return bool(getattr(self, method))


@dataclass(frozen=True, slots=True)
class ParsedRepoInfo:
    owner: str
    repo: str
    project: str | None = None
    platform: PlatformType | None = None


@dataclass(frozen=True, slots=True)
class LinkedPRRef:
    """One sibling PR named in a linked-PR comment block."""

    repo_name: str
    number: int


def aggregate_check_state(states: Iterable[CheckState]) -> CheckState:
    """Failure beats pending beats success; no checks at all is success."""
    seen = set(states)
    if "failure" in seen:
        return "failure"
    if "pending" in seen:
        return "pending"
    return "success"

