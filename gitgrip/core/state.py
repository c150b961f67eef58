"""Persistent workspace state (``.gitgrip/state.json``).

Tracks which manifest PR belongs to which branch and the per-repo PRs
linked to it. The file uses camelCase keys; a missing file is empty state,
a corrupt file is an error (never silently reset).
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, cast

from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_obj_list, as_str_dict, get_bool, get_int, get_str
from gitgrip.platform.files import atomic_write_json

__all__ = [
    "CheckDetails",
    "LinkedPR",
    "PRState",
    "StateError",
    "StateFile",
]

type PRState = Literal["open", "closed", "merged"]


@dataclass(frozen=True, slots=True)
class StateError:
    kind: Literal["io", "parse"]
    message: str
    path: Path | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class CheckDetails:
    """Tally of status checks last seen for a PR head."""

    state: Literal["success", "failure", "pending"]
    passed: int = 0
    failed: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.pending

    def to_dict(self) -> StrDict:
        return {
            "state": self.state,
            "passed": self.passed,
            "failed": self.failed,
            "pending": self.pending,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> CheckDetails:
        state = get_str(data, "state")
        return cls(
            state=cast(Literal["success", "failure", "pending"], state)
            if state in ("success", "failure", "pending")
            else "pending",
            passed=get_int(data, "passed") or 0,
            failed=get_int(data, "failed") or 0,
            pending=get_int(data, "pending") or 0,
        )


@dataclass(slots=True)
class LinkedPR:
    """A per-repo PR tied to a manifest PR."""

    repo_name: str
    owner: str
    repo: str
    number: int
    url: str
    state: PRState = "open"
    approved: bool = False
    checks_pass: bool = False
    mergeable: bool = False
    platform_type: str | None = None
    check_details: CheckDetails | None = None

    @property
    def is_ready(self) -> bool:
        return self.state == "open" and self.approved and self.checks_pass and self.mergeable

    def to_dict(self) -> StrDict:
        data: StrDict = {
            "repoName": self.repo_name,
            "owner": self.owner,
            "repo": self.repo,
            "number": self.number,
            "url": self.url,
            "state": self.state,
            "approved": self.approved,
            "checksPass": self.checks_pass,
            "mergeable": self.mergeable,
        }
        if self.platform_type is not None:
            data["platformType"] = self.platform_type
        if self.check_details is not None:
            data["checkDetails"] = self.check_details.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: StrDict) -> LinkedPR | None:
        repo_name = get_str(data, "repoName")
        number = get_int(data, "number")
        if repo_name is None or number is None:
            return None
        state = get_str(data, "state") or "open"
        details = as_str_dict(data.get("checkDetails"))
        return cls(
            repo_name=repo_name,
            owner=get_str(data, "owner") or "",
            repo=get_str(data, "repo") or "",
            number=number,
            url=get_str(data, "url") or "",
            state=cast(PRState, state) if state in ("open", "closed", "merged") else "open",
            approved=get_bool(data, "approved"),
            checks_pass=get_bool(data, "checksPass"),
            mergeable=get_bool(data, "mergeable"),
            platform_type=get_str(data, "platformType"),
            check_details=CheckDetails.from_dict(details) if details else None,
        )


def _empty_branch_map() -> dict[str, int]:
    return {}


def _empty_links() -> dict[str, list[LinkedPR]]:
    return {}


@dataclass(slots=True)
class StateFile:
    """In-memory view of ``state.json``; call :meth:`save` after mutating."""

    current_manifest_pr: int | None = None
    branch_to_pr: dict[str, int] = field(default_factory=_empty_branch_map)
    pr_links: dict[str, list[LinkedPR]] = field(default_factory=_empty_links)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> Result[StateFile, StateError]:
        try:
            data_obj: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(StateError(kind="parse", message=f"Failed to parse state file: {e}"))

        data = as_str_dict(data_obj)
        if data is None:
            return Err(StateError(kind="parse", message="State file root must be a JSON object"))

        branch_to_pr: dict[str, int] = {}
        for branch, number in (as_str_dict(data.get("branchToPr")) or {}).items():
            if isinstance(number, int) and not isinstance(number, bool):
                branch_to_pr[branch] = number

        pr_links: dict[str, list[LinkedPR]] = {}
        for key, raw_links in (as_str_dict(data.get("prLinks")) or {}).items():
            links: list[LinkedPR] = []
            for item in as_obj_list(raw_links) or []:
                item_dict = as_str_dict(item)
                link = LinkedPR.from_dict(item_dict) if item_dict else None
                if link is not None:
                    links.append(link)
            pr_links[key] = links

        return Ok(
            cls(
                current_manifest_pr=get_int(data, "currentManifestPr"),
                branch_to_pr=branch_to_pr,
                pr_links=pr_links,
            )
        )

    @classmethod
    def load(cls, path: Path) -> Result[StateFile, StateError]:
        if not path.exists():
            return Ok(cls())
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            return Err(StateError(kind="io", message=f"Failed to read state file: {e}", path=path))
        result = cls.parse(text)
        if isinstance(result, Err):
            return Err(
                StateError(
                    kind="parse",
                    message=result.error.message,
                    path=path,
                    hint=f"Fix or remove {path} to reset PR tracking",
                )
            )
        return result

    def to_dict(self) -> StrDict:
        data: StrDict = {}
        if self.current_manifest_pr is not None:
            data["currentManifestPr"] = self.current_manifest_pr
        data["branchToPr"] = dict(sorted(self.branch_to_pr.items()))
        data["prLinks"] = {
            key: [link.to_dict() for link in links] for key, links in sorted(self.pr_links.items())
        }
        return data

    def save(self, path: Path) -> Result[None, StateError]:
        try:
            atomic_write_json(path, self.to_dict())
        except OSError as e:
            return Err(StateError(kind="io", message=f"Failed to write state file: {e}", path=path))
        return Ok(None)

    # -------------------------------------------------------------------------
    # Branch -> manifest PR
    # -------------------------------------------------------------------------

    def get_pr_for_branch(self, branch: str) -> int | None:
        return self.branch_to_pr.get(branch)

    def set_pr_for_branch(self, branch: str, pr_number: int) -> None:
        self.branch_to_pr[branch] = pr_number

    def remove_branch(self, branch: str) -> None:
        """Forget ``branch`` and the linked PRs stored under its manifest PR."""
        pr_number = self.branch_to_pr.pop(branch, None)
        if pr_number is None:
            return
        self.pr_links.pop(str(pr_number), None)
        if self.current_manifest_pr == pr_number:
            self.current_manifest_pr = None

    # -------------------------------------------------------------------------
    # Linked PRs
    # -------------------------------------------------------------------------

    def get_linked_prs(self, manifest_pr: int) -> list[LinkedPR] | None:
        return self.pr_links.get(str(manifest_pr))

    def set_linked_prs(self, manifest_pr: int, links: list[LinkedPR]) -> None:
        self.pr_links[str(manifest_pr)] = list(links)

    def add_linked_pr(self, manifest_pr: int, link: LinkedPR) -> None:
        """Append ``link``, replacing any existing entry for the same repo."""
        links = self.pr_links.setdefault(str(manifest_pr), [])
        links[:] = [existing for existing in links if existing.repo_name != link.repo_name]
        links.append(link)

    def update_linked_pr(
        self,
        manifest_pr: int,
        repo_name: str,
        mutator: Callable[[LinkedPR], None],
    ) -> bool:
        """Apply ``mutator`` to the matching link; False when there is none."""
        for link in self.pr_links.get(str(manifest_pr), []):
            if link.repo_name == repo_name:
                mutator(link)
                return True
        return False

    def all_linked_prs_ready(self, manifest_pr: int) -> bool:
        links = self.get_linked_prs(manifest_pr)
        if not links:
            return False
        return all(link.is_ready for link in links)
