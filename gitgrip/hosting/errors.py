"""Hosting API error classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

__all__ = ["PlatformError", "PlatformErrorKind", "unsupported"]

type PlatformErrorKind = Literal[
    "auth",
    "api",
    "not_found",
    "rate_limited",
    "network",
    "parse",
    "branch_behind",
    "branch_protected",
    "unsupported",
]


@dataclass(frozen=True, slots=True)
class PlatformError:
    """Error from a hosting adapter.

    Attributes:
        kind: Classification used by callers to pick an exit code or hint.
        message: Human-readable detail, usually including the server text.
        status: HTTP status code when the error came from a response.
        hint: Optional remediation shown under the error line.
    """

    kind: PlatformErrorKind
    message: str
    status: int | None = None
    hint: str | None = None

    @classmethod
    def from_status(cls, status: int, text: str, *, platform: str) -> PlatformError:
        detail = text.strip() or "(no body)"
        if status == 401:
            return cls(
                kind="auth",
                message=f"{platform} authentication failed: {detail}",
                status=status,
                hint="Check that your token is set and has not expired",
            )
        if status == 403:
            return cls(kind="auth", message=f"{platform} access denied: {detail}", status=status)
        if status == 404:
            return cls(kind="not_found", message=f"{platform} resource not found: {detail}", status=status)
        if status == 429:
            return cls(kind="rate_limited", message=f"{platform} API rate limit exceeded", status=status)
        return cls(kind="api", message=f"{platform} API error ({status}): {detail}", status=status)

    @property
    def is_network(self) -> bool:
        return self.kind in ("network", "rate_limited")

    def __str__(self) -> str:
        return self.message


def unsupported(operation: str, platform: str) -> PlatformError:
    return PlatformError(kind="unsupported", message=f"{operation} not supported on {platform}")
