"""Command-level failures raised by services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gitgrip.core.errors import ErrorCode

__all__ = ["ServiceError", "ServiceErrorKind", "partial_failure"]

type ServiceErrorKind = Literal["user", "env", "git", "network", "io"]

_CODES: dict[ServiceErrorKind, ErrorCode] = {
    "user": ErrorCode.USER_ERROR,
    "env": ErrorCode.ENV_ERROR,
    "git": ErrorCode.GIT_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "io": ErrorCode.IO_ERROR,
}


@dataclass(frozen=True, slots=True)
class ServiceError:
    """A command failed as a whole (as opposed to one repo failing).

    Per-repo failures are reported through the executor summary; a service
    returns ``ServiceError`` when the command cannot start or when it wants
    the process to exit non-zero after reporting.
    """

    kind: ServiceErrorKind
    message: str
    hint: str | None = None

    @property
    def code(self) -> ErrorCode:
        return _CODES[self.kind]


def partial_failure(error_count: int, verb: str) -> ServiceError:
    noun = "repository" if error_count == 1 else "repositories"
    return ServiceError(kind="git", message=f"{error_count} {noun} failed to {verb}")
