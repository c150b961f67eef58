"""``gr init``: create a workspace from a manifest URL or from existing clones."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, replace
from pathlib import Path

import yaml

from gitgrip.core.manifest import parse_manifest
from gitgrip.core.manifest_paths import (
    GITGRIP_DIR,
    PRIMARY_FILE_NAME,
    main_space_dir,
    resolve_manifest_file_in_dir,
    state_path,
)
from gitgrip.core.repo import parse_git_url
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.state import StateFile
from gitgrip.git.branch import branch_exists
from gitgrip.git.remote import clone
from gitgrip.git.repository import Repository
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.files import atomic_write_text
from gitgrip.platform.process import run as run_process
from gitgrip.services.errors import ServiceError

__all__ = [
    "DiscoveredRepo",
    "InitService",
    "discover_repos",
    "ensure_unique_names",
    "generate_manifest",
    "repo_name_from_url",
]

_FALLBACK_BRANCHES = ("main", "master", "develop")
_INITIAL_COMMIT_MESSAGE = "Initial manifest\n\nGenerated by gr init --from-dirs"


@dataclass(frozen=True, slots=True)
class DiscoveredRepo:
    name: str
    path: str
    url: str | None
    default_branch: str


def repo_name_from_url(url: str) -> str | None:
    """Last path segment of a remote URL without ``.git``."""
    parsed = parse_git_url(url)
    if parsed is not None:
        return parsed.repo
    return None


def _default_branch(repo: Repository) -> str:
    if not repo.is_detached():
        current = repo.current_branch()
        if isinstance(current, Ok):
            return current.value
    for name in _FALLBACK_BRANCHES:
        if branch_exists(repo, name):
            return name
    return "main"


def _remote_url(repo: Repository) -> str | None:
    url = repo.remote_url("origin")
    if url is not None:
        return url
    match repo.git("remote"):
        case Ok(stdout):
            for remote in stdout.split():
                url = repo.remote_url(remote)
                if url is not None:
                    return url
        case Err(_):
            pass
    return None


def _discover_one(root: Path, directory: Path) -> DiscoveredRepo | None:
    repo = Repository(directory)
    if not repo.exists():
        return None
    path = directory.relative_to(root).as_posix() if directory.is_relative_to(root) else str(directory)
    return DiscoveredRepo(
        name=directory.name,
        path=path,
        url=_remote_url(repo),
        default_branch=_default_branch(repo),
    )


def discover_repos(root: Path, dirs: list[str] | None = None) -> list[DiscoveredRepo]:
    """Git clones among the immediate children of ``root`` (or ``dirs``), sorted by name.

    Hidden directories are skipped when scanning.
    """
    if dirs:
        candidates = [Path(d) if Path(d).is_absolute() else root / d for d in dirs]
    else:
        candidates = sorted(p for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))
    found = [repo for repo in (_discover_one(root, d) for d in candidates) if repo is not None]
    return sorted(found, key=lambda r: r.name)


def ensure_unique_names(repos: list[DiscoveredRepo]) -> list[DiscoveredRepo]:
    """Suffix repeated names with ``-2``, ``-3``... keeping the first as is."""
    seen: dict[str, int] = {}
    unique: list[DiscoveredRepo] = []
    for repo in repos:
        count = seen.get(repo.name, 0) + 1
        seen[repo.name] = count
        unique.append(repo if count == 1 else replace(repo, name=f"{repo.name}-{count}"))
    return unique


def generate_manifest(repos: list[DiscoveredRepo]) -> str:
    """Manifest YAML listing ``repos``; repos without a remote get a placeholder URL."""
    entries: dict[str, dict[str, str]] = {}
    for repo in repos:
        entries[repo.name] = {
            "url": repo.url or f"git@github.com:OWNER/{repo.name}.git",
            "path": repo.path,
            "default_branch": repo.default_branch,
        }
    return yaml.safe_dump({"version": 1, "repos": entries}, sort_keys=False)


class InitService:
    def __init__(self, *, console: ConsoleProtocol) -> None:
        self._console = console

    def _check_fresh(self, root: Path) -> Result[None, ServiceError]:
        if (root / GITGRIP_DIR).exists():
            return Err(
                ServiceError(
                    kind="user",
                    message=f"A gitgrip workspace already exists at {root}",
                    hint=f"Remove {GITGRIP_DIR} to reinitialize",
                )
            )
        return Ok(None)

    def init_from_url(self, url: str, path: Path | None = None) -> Result[Path, ServiceError]:
        """Clone the manifest repository into ``.gitgrip/spaces/main``.

        Without ``path`` the workspace is a new directory named after the
        manifest repository. Everything created is removed again on failure.
        """
        if path is None:
            name = repo_name_from_url(url) or "workspace"
            root = Path.cwd() / name
            if root.exists():
                return Err(
                    ServiceError(
                        kind="user",
                        message=f"Directory already exists: {root}",
                        hint="Pass a different path or remove the existing directory",
                    )
                )
        else:
            root = path
        root = root.absolute()

        fresh = self._check_fresh(root)
        if isinstance(fresh, Err):
            return fresh

        created_root = not root.exists()
        self._console.header(f"Initializing workspace in {root}")
        space = main_space_dir(root)
        with self._console.progress("Cloning manifest repository..."):
            cloned = clone(url, space)
        if isinstance(cloned, Err):
            self._cleanup(root, created_root)
            return Err(ServiceError(kind="git", message=f"Failed to clone manifest: {cloned.error.message}"))

        manifest_file = resolve_manifest_file_in_dir(space)
        if manifest_file is None:
            self._cleanup(root, created_root)
            return Err(
                ServiceError(
                    kind="user",
                    message=f"No {PRIMARY_FILE_NAME} found in the manifest repository",
                    hint=f"Add {PRIMARY_FILE_NAME} at the root of the manifest repository",
                )
            )
        parsed = parse_manifest(manifest_file.read_text(encoding="utf-8"))
        if isinstance(parsed, Err):
            self._cleanup(root, created_root)
            return Err(ServiceError(kind="user", message=parsed.error.message, hint=parsed.error.hint))

        saved = StateFile().save(state_path(root))
        if isinstance(saved, Err):
            return Err(ServiceError(kind="io", message=saved.error.message))

        self._console.success("Workspace initialized")
        self._console.newline()
        self._console.print("Next steps:")
        self._console.print(f"  cd {root}")
        self._console.print("  gr sync    # clone all repositories")
        return Ok(root)

    def _cleanup(self, root: Path, created_root: bool) -> None:
        target = root if created_root else root / GITGRIP_DIR
        shutil.rmtree(target, ignore_errors=True)

    def init_from_dirs(self, path: Path | None = None, dirs: list[str] | None = None) -> Result[Path, ServiceError]:
        """Generate a manifest from existing clones and version it in a new git repo."""
        root = (path or Path.cwd()).absolute()
        fresh = self._check_fresh(root)
        if isinstance(fresh, Err):
            return fresh
        if not root.is_dir():
            return Err(ServiceError(kind="user", message=f"Not a directory: {root}"))

        self._console.header(f"Discovering repositories in {root}")
        repos = ensure_unique_names(discover_repos(root, dirs))
        if not repos:
            return Err(
                ServiceError(
                    kind="user",
                    message=f"No git repositories found in {root}",
                    hint="Pass directories explicitly with --dirs",
                )
            )
        self._console.print(f"Found {len(repos)} repositories:")
        for repo in repos:
            self._console.print(f"  {repo.name} -> {repo.path} ({repo.url or 'no remote'})")

        space = main_space_dir(root)
        manifest_file = space / PRIMARY_FILE_NAME
        try:
            space.mkdir(parents=True, exist_ok=True)
            atomic_write_text(manifest_file, generate_manifest(repos))
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to write manifest: {e}"))

        versioned = self._init_manifest_repo(space)
        if isinstance(versioned, Err):
            return versioned

        saved = StateFile().save(state_path(root))
        if isinstance(saved, Err):
            return Err(ServiceError(kind="io", message=saved.error.message))

        missing = [r.name for r in repos if r.url is None]
        if missing:
            self._console.warning(f"No remote found for: {', '.join(missing)}; edit their url in the manifest")
        self._console.success("Workspace initialized")
        self._console.print(f"Manifest created at: {manifest_file}", Style.DIM)
        self._console.print("Next steps:")
        self._console.print(f"  1. Review the manifest: {manifest_file.relative_to(root)}")
        self._console.print(f"  2. Add a remote: git -C {space.relative_to(root)} remote add origin <url>")
        self._console.print("  3. Run 'gr status' to verify the workspace")
        return Ok(root)

    def _init_manifest_repo(self, space: Path) -> Result[None, ServiceError]:
        for args in (["git", "init"], ["git", "add", PRIMARY_FILE_NAME]):
            result = run_process(args, cwd=space)
            if isinstance(result, Err):
                return Err(
                    ServiceError(
                        kind="git",
                        message=f"Failed to initialize manifest repo: {result.error.detail}",
                    )
                )
        committed = run_process(["git", "commit", "-m", _INITIAL_COMMIT_MESSAGE], cwd=space)
        if isinstance(committed, Err):
            self._console.warning(
                f"Could not create initial commit: {committed.error.detail}. You may need to commit manually."
            )
        return Ok(None)
