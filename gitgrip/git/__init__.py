"""Git operation layer."""

from .errors import GitError
from .repository import GitStatus, Repository, StatusEntry

__all__ = [
    "GitError",
    "GitStatus",
    "Repository",
    "StatusEntry",
]
