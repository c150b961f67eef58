"""Failures of a cross-repo PR operation as a whole."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gitgrip.core.errors import ErrorCode
from gitgrip.hosting.errors import PlatformError

__all__ = ["CoordinatorError", "CoordinatorErrorKind"]

type CoordinatorErrorKind = Literal[
    "not_ready",
    "merge_failed",
    "no_prs",
    "no_changes",
    "branch_mismatch",
    "platform",
    "state",
    "timeout",
]

_CODES: dict[CoordinatorErrorKind, ErrorCode] = {
    "not_ready": ErrorCode.USER_ERROR,
    "merge_failed": ErrorCode.NETWORK_ERROR,
    "no_prs": ErrorCode.USER_ERROR,
    "no_changes": ErrorCode.USER_ERROR,
    "branch_mismatch": ErrorCode.USER_ERROR,
    "platform": ErrorCode.NETWORK_ERROR,
    "state": ErrorCode.IO_ERROR,
    "timeout": ErrorCode.NETWORK_ERROR,
}


@dataclass(frozen=True, slots=True)
class CoordinatorError:
    kind: CoordinatorErrorKind
    message: str
    hint: str | None = None

    @property
    def code(self) -> ErrorCode:
        return _CODES[self.kind]

    @classmethod
    def from_platform(cls, repo_name: str, error: PlatformError) -> CoordinatorError:
        return cls(kind="platform", message=f"{repo_name}: {error.message}", hint=error.hint)
