"""``copyfile`` / ``linkfile`` materialization.

Sources are relative to the owning repo (or to the manifest directory for
the manifest section); destinations are relative to the workspace root.
A ``gripspace:<name>:<path>`` source points into a cloned gripspace.
"""

from __future__ import annotations

import filecmp
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from gitgrip.core.gripspace import resolve_file_source
from gitgrip.core.manifest import FileMapping
from gitgrip.core.repo import MANIFEST_REPO_NAME
from gitgrip.core.result import Err
from gitgrip.core.workspace import Workspace
from gitgrip.output.console import ConsoleProtocol
from gitgrip.platform.files import relative_symlink

__all__ = ["LinkEntry", "LinkService", "LinkState"]

type LinkKind = Literal["copyfile", "linkfile"]
type LinkState = Literal["ok", "missing", "stale", "source_missing"]


@dataclass(frozen=True, slots=True)
class LinkEntry:
    owner: str
    kind: LinkKind
    source: Path
    dest: Path
    state: LinkState

    @property
    def ok(self) -> bool:
        return self.state == "ok"

    def describe(self, root: Path) -> str:
        dest = self.dest.relative_to(root).as_posix() if self.dest.is_relative_to(root) else str(self.dest)
        return f"{self.owner}: {self.kind} {dest}"

    def to_dict(self) -> dict[str, object]:
        return {
            "repo": self.owner,
            "kind": self.kind,
            "source": str(self.source),
            "dest": str(self.dest),
            "state": self.state,
        }


def _state(kind: LinkKind, source: Path, dest: Path) -> LinkState:
    if not source.exists():
        return "source_missing"
    if kind == "linkfile":
        if not dest.is_symlink():
            return "missing" if not dest.exists() else "stale"
        target = Path(os.path.normpath(dest.parent / os.readlink(dest)))
        return "ok" if target == Path(os.path.normpath(source)) else "stale"
    if not dest.exists():
        return "missing"
    if dest.is_symlink() or not dest.is_file():
        return "stale"
    return "ok" if filecmp.cmp(source, dest, shallow=False) else "stale"


class LinkService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def entries(self) -> list[LinkEntry]:
        root = self._workspace.root
        entries: list[LinkEntry] = []
        for name, config in self._workspace.manifest.sorted_repos():
            base = root / config.path
            entries.extend(self._collect(name, base, config.copyfile, config.linkfile))
        section = self._workspace.manifest.manifest
        if section is not None:
            base = self._workspace.manifest_content_dir
            entries.extend(self._collect(MANIFEST_REPO_NAME, base, section.copyfile, section.linkfile))
        return entries

    def _collect(
        self,
        owner: str,
        base: Path,
        copies: tuple[FileMapping, ...],
        links: tuple[FileMapping, ...],
    ) -> list[LinkEntry]:
        root = self._workspace.root
        found: list[LinkEntry] = []
        groups: tuple[tuple[LinkKind, tuple[FileMapping, ...]], ...] = (("copyfile", copies), ("linkfile", links))
        for kind, mappings in groups:
            for mapping in mappings:
                resolved = resolve_file_source(mapping.src, base, self._workspace.spaces_dir)
                if isinstance(resolved, Err):
                    self._console.warning(f"{owner}: {kind} {mapping.dest} skipped ({resolved.error.message})")
                    continue
                source = resolved.value
                dest = root / mapping.dest
                found.append(LinkEntry(owner, kind, source, dest, _state(kind, source, dest)))
        return found

    def status(self) -> list[LinkEntry]:
        entries = self.entries()
        root = self._workspace.root
        if not entries:
            self._console.info("No copyfile or linkfile entries in the manifest")
            return entries
        for entry in entries:
            match entry.state:
                case "ok":
                    self._console.success(entry.describe(root))
                case "source_missing":
                    self._console.failure(f"{entry.describe(root)} (source missing: {entry.source})")
                case state:
                    self._console.warning(f"{entry.describe(root)} ({state})")
        return entries

    def apply(self, *, dry_run: bool = False) -> tuple[int, list[LinkEntry]]:
        """Create or refresh every entry that is not ``ok``.

        Returns the number applied and the entries that could not be applied.
        """
        applied = 0
        failed: list[LinkEntry] = []
        root = self._workspace.root
        for entry in self.entries():
            if entry.ok:
                continue
            if entry.state == "source_missing":
                self._console.failure(f"{entry.describe(root)}: source missing ({entry.source})")
                failed.append(entry)
                continue
            if dry_run:
                self._console.info(f"Would apply {entry.describe(root)}")
                applied += 1
                continue
            try:
                if entry.kind == "linkfile":
                    relative_symlink(entry.source, entry.dest)
                else:
                    entry.dest.parent.mkdir(parents=True, exist_ok=True)
                    if entry.dest.is_symlink():
                        entry.dest.unlink()
                    shutil.copy2(entry.source, entry.dest)
            except OSError as e:
                self._console.failure(f"{entry.describe(root)}: {e}")
                failed.append(entry)
                continue
            self._console.success(entry.describe(root))
            applied += 1
        return applied, failed
