"""Tests for services/links.py."""

from __future__ import annotations

from pathlib import Path

from gitgrip.output.console import MockConsole
from gitgrip.services.links import LinkService
from gitgrip.test.gitfixtures import load

MANIFEST = """\
repos:
  tools:
    url: git@github.com:acme/tools.git
    path: tools
    copyfile:
      - src: Makefile
        dest: Makefile
    linkfile:
      - src: config/editorconfig
        dest: .editorconfig
      - src: missing.txt
        dest: nowhere.txt
"""


def _workspace(tmp_path: Path) -> Path:
    manifest_dir = tmp_path / ".gitgrip" / "spaces" / "main"
    manifest_dir.mkdir(parents=True)
    (manifest_dir / "gripspace.yml").write_text(MANIFEST, encoding="utf-8")
    (tmp_path / "tools" / "config").mkdir(parents=True)
    (tmp_path / "tools" / "Makefile").write_text("all:\n", encoding="utf-8")
    (tmp_path / "tools" / "config" / "editorconfig").write_text("root = true\n", encoding="utf-8")
    return tmp_path


class TestLinkService:
    def test_status_before_apply(self, tmp_path: Path) -> None:
        service = LinkService(workspace=load(_workspace(tmp_path)), console=MockConsole())
        assert [e.state for e in service.status()] == ["missing", "missing", "source_missing"]

    def test_apply(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        service = LinkService(workspace=load(root), console=MockConsole())

        applied, failed = service.apply()

        assert applied == 2
        assert [e.dest.name for e in failed] == ["nowhere.txt"]
        assert (root / "Makefile").read_text(encoding="utf-8") == "all:\n"
        assert (root / ".editorconfig").is_symlink()
        assert (root / ".editorconfig").read_text(encoding="utf-8") == "root = true\n"
        assert [e.state for e in service.entries()] == ["ok", "ok", "source_missing"]

    def test_stale_copy_refreshed(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        service = LinkService(workspace=load(root), console=MockConsole())
        service.apply()
        (root / "tools" / "Makefile").write_text("all: build\n", encoding="utf-8")
        assert service.entries()[0].state == "stale"

        applied, _ = service.apply()
        assert applied == 1
        assert (root / "Makefile").read_text(encoding="utf-8") == "all: build\n"

    def test_dry_run_changes_nothing(self, tmp_path: Path) -> None:
        root = _workspace(tmp_path)
        console = MockConsole()
        applied, _ = LinkService(workspace=load(root), console=console).apply(dry_run=True)
        assert applied == 2
        assert not (root / "Makefile").exists()
        assert console.find("Would apply tools: copyfile Makefile")
