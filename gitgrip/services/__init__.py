"""Application services for the gitgrip CLI.

Services implement one command each, coordinating between the domain layer
(core/), the git layer (git/) and the hosting adapters (hosting/). They
report through a ``ConsoleProtocol`` and return ``Result`` values; the CLI
turns those into exit codes.
"""

from gitgrip.services.errors import ServiceError, partial_failure
from gitgrip.services.executor import (
    Executor,
    Failed,
    RepoOutcome,
    Skipped,
    Success,
    Summary,
)
from gitgrip.services.selection import RepoSelection, select_repos

__all__ = [
    # Errors
    "ServiceError",
    "partial_failure",
    # Fan-out
    "Executor",
    "Failed",
    "RepoOutcome",
    "Skipped",
    "Success",
    "Summary",
    # Selection
    "RepoSelection",
    "select_repos",
]
