"""Git error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gitgrip.platform.process import ProcessError

__all__ = ["GitError", "GitErrorKind", "from_process"]

type GitErrorKind = Literal[
    "git",
    "not_found",
    "not_a_repo",
    "branch_not_found",
    "io",
    "operation_failed",
    "reference",
    "object",
    "repository_locked",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        kind: Error category.
        message: Operator-facing text (git's stderr when nothing better is known).
        command: The git subcommand that failed, if any.
        hint: Optional follow-up suggestion.
    """

    kind: GitErrorKind
    message: str
    command: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        return self.message


def from_process(error: ProcessError, command: str, kind: GitErrorKind = "git") -> GitError:
    return GitError(kind=kind, message=error.detail, command=command)
