"""Cross-repo pull request coordination."""

from gitgrip.services.pr.create import CreateOptions, PRCreateService
from gitgrip.services.pr.errors import CoordinatorError
from gitgrip.services.pr.merge import MergeOptions, PRMergeService
from gitgrip.services.pr.status import PRStatusService

__all__ = [
    "CoordinatorError",
    "CreateOptions",
    "MergeOptions",
    "PRCreateService",
    "PRMergeService",
    "PRStatusService",
]
