"""Per-PR merge readiness.

A PR is ready when it is open, approved, its checks aggregate to
``success`` and the host reports it mergeable. Anything the host could not
tell us counts against readiness.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from gitgrip.core.result import Err, Ok
from gitgrip.core.state import CheckDetails, LinkedPR
from gitgrip.hosting.contract import HostingPlatform
from gitgrip.hosting.registry import AdapterCache
from gitgrip.hosting.types import CheckStatusDetails, PRState
from gitgrip.services.pr.discovery import FoundPR

__all__ = ["Readiness", "assess", "assess_all", "blocking_issues"]


@dataclass(frozen=True, slots=True)
class Readiness:
    pr: FoundPR
    state: PRState = "open"
    approved: bool = False
    mergeable: bool | None = None
    checks: CheckStatusDetails | None = None
    error: str | None = None

    @property
    def name(self) -> str:
        return self.pr.name

    @property
    def number(self) -> int:
        return self.pr.number

    @property
    def checks_pass(self) -> bool:
        return self.checks is not None and self.checks.state == "success"

    @property
    def ready(self) -> bool:
        return self.error is None and self.state == "open" and self.approved and self.checks_pass and self.mergeable is True

    def issues(self) -> list[str]:
        label = f"{self.name} PR #{self.number}"
        if self.error is not None:
            return [f"{label}: {self.error}"]
        issues: list[str] = []
        if self.state != "open":
            issues.append(f"{label}: {self.state}")
        if not self.approved:
            issues.append(f"{label}: not approved")
        match self.checks:
            case None:
                issues.append(f"{label}: check status unknown")
            case CheckStatusDetails(state="failure"):
                issues.append(f"{label}: checks failing")
            case CheckStatusDetails(state="pending"):
                issues.append(f"{label}: checks still running")
            case _:
                pass
        if self.mergeable is not True:
            issues.append(f"{label}: not mergeable (branch may be behind base, try --update)")
        return issues

    def to_linked_pr(self) -> LinkedPR:
        info = self.pr.target.info
        details = None
        if self.checks is not None:
            details = CheckDetails(
                state=self.checks.state,
                passed=self.checks.passed,
                failed=self.checks.failed,
                pending=self.checks.pending,
            )
        return LinkedPR(
            repo_name=info.name,
            owner=info.owner,
            repo=info.repo,
            number=self.number,
            url=self.pr.url,
            state=self.state,
            approved=self.approved,
            checks_pass=self.checks_pass,
            mergeable=self.mergeable is True,
            platform_type=info.platform_type,
            check_details=details,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "repo": self.name,
            "branch": self.pr.target.branch,
            "number": self.number,
            "state": self.state,
            "approved": self.approved,
            "checksPass": self.checks_pass,
            "mergeable": self.mergeable,
            "url": self.pr.url,
            "ready": self.ready,
            "checks": _checks_dict(self.checks),
            "error": self.error,
        }


def _checks_dict(checks: CheckStatusDetails | None) -> dict[str, object] | None:
    if checks is None:
        return None
    return {
        "state": checks.state,
        "passed": checks.passed,
        "failed": checks.failed,
        "pending": checks.pending,
        "total": checks.total,
    }


async def assess(adapter: HostingPlatform, pr: FoundPR) -> Readiness:
    info = pr.target.info
    fetched, approved, checks = await asyncio.gather(
        adapter.get_pull_request(info.owner, info.repo, pr.number),
        adapter.is_pull_request_approved(info.owner, info.repo, pr.number),
        adapter.get_status_checks(info.owner, info.repo, pr.target.branch),
    )
    if isinstance(fetched, Err):
        return Readiness(pr, error=fetched.error.message)
    full = fetched.value
    state: PRState = "merged" if full.merged else full.state
    return Readiness(
        pr,
        state=state,
        approved=approved.unwrap_or(False),
        mergeable=full.mergeable,
        checks=checks.value.details() if isinstance(checks, Ok) else None,
    )


async def assess_all(prs: Sequence[FoundPR], adapters: AdapterCache) -> list[Readiness]:
    return list(await asyncio.gather(*(assess(adapters.for_repo(pr.target.info), pr) for pr in prs)))


def blocking_issues(readiness: Sequence[Readiness]) -> list[str]:
    issues: list[str] = []
    for item in readiness:
        if not item.ready:
            issues.extend(item.issues())
    return issues
