"""Shared helpers for tests that drive a real git binary."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from gitgrip.core.result import Ok
from gitgrip.core.workspace import Workspace, load_workspace

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not available")


def git(cwd: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return proc.stdout


def configure_identity(repo: Path) -> None:
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "user.name", "Test")
    git(repo, "config", "commit.gpgsign", "false")


def init_repo(path: Path, *, branch: str = "main") -> Path:
    """Plain repository with one commit on ``branch``."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-b", branch)
    configure_identity(path)
    (path / "README.md").write_text("# test\n", encoding="utf-8")
    git(path, "add", "README.md")
    git(path, "commit", "-m", "init")
    return path


def init_remote_repo(tmp_path: Path, name: str) -> tuple[str, Path]:
    """Create a bare repo + push an initial commit, return (url, seed_dir)."""
    remote = tmp_path / "remotes" / f"{name}.git"
    seed = tmp_path / "seeds" / name
    remote.parent.mkdir(parents=True, exist_ok=True)

    git(tmp_path, "init", "--bare", "-b", "main", str(remote))

    seed.mkdir(parents=True)
    git(seed, "init", "-b", "main")
    configure_identity(seed)

    (seed / "hello.txt").write_text("v1\n", encoding="utf-8")
    git(seed, "add", "hello.txt")
    git(seed, "commit", "-m", "init")

    url = remote.as_uri()
    git(seed, "remote", "add", "origin", url)
    git(seed, "push", "-u", "origin", "main")

    return url, seed


def commit_file(repo: Path, name: str, content: str, message: str | None = None) -> str:
    (repo / name).parent.mkdir(parents=True, exist_ok=True)
    (repo / name).write_text(content, encoding="utf-8")
    git(repo, "add", name)
    git(repo, "commit", "-m", message or f"update {name}")
    return git(repo, "rev-parse", "HEAD").strip()


def clone(url: str, dest: Path) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    git(dest.parent, "clone", url, str(dest))
    configure_identity(dest)
    return dest


def make_workspace(
    tmp_path: Path,
    names: Sequence[str],
    *,
    reference: Sequence[str] = (),
    extra_yaml: str = "",
    clone_repos: bool = True,
) -> tuple[Path, dict[str, Path]]:
    """Workspace at ``tmp_path/ws`` with one remote per name.

    Returns ``(root, seeds)``; repos are cloned to ``root/<name>`` unless
    ``clone_repos`` is False.
    """
    root = tmp_path / "ws"
    manifest_dir = root / ".gitgrip" / "spaces" / "main"
    manifest_dir.mkdir(parents=True)

    seeds: dict[str, Path] = {}
    lines = ["version: 1", "repos:"]
    for name in names:
        url, seed = init_remote_repo(tmp_path, name)
        seeds[name] = seed
        lines.append(f"  {name}:")
        lines.append(f"    url: {url}")
        lines.append(f"    path: {name}")
        if name in reference:
            lines.append("    reference: true")
        if clone_repos:
            clone(url, root / name)

    text = "\n".join(lines) + "\n" + extra_yaml
    (manifest_dir / "gripspace.yml").write_text(text, encoding="utf-8")
    return root, seeds


def load(root: Path) -> Workspace:
    """Loaded :class:`Workspace` for ``root``; fails the test otherwise."""
    result = load_workspace(root)
    assert isinstance(result, Ok), result
    return result.value
