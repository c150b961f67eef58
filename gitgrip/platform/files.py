"""Filesystem helpers shared by state, griptree and link code."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

__all__ = ["atomic_write_json", "atomic_write_text", "dir_size", "relative_symlink"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path via temp file + replace; parents are created."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def atomic_write_json(path: Path, data: object) -> None:
    """Pretty-print ``data`` as JSON and write it atomically."""
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")


def dir_size(path: Path) -> int:
    """Total size in bytes of regular files below ``path``; symlinks are not followed."""
    total = 0
    if not path.exists():
        return 0
    for root, _dirs, files in os.walk(path, followlinks=False):
        for name in files:
            file_path = Path(root) / name
            try:
                if not file_path.is_symlink():
                    total += file_path.stat().st_size
            except OSError:
                continue
    return total


def relative_symlink(target: Path, link: Path) -> None:
    """Create ``link`` pointing at ``target`` with a relative path."""
    link.parent.mkdir(parents=True, exist_ok=True)
    rel = os.path.relpath(target, start=link.parent)
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(rel)
