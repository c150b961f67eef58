"""Gripspace includes.

A manifest may list other manifest repositories under ``gripspaces``. Each
one is cloned to ``.gitgrip/spaces/<name>/`` and its repos, scripts, env,
hooks and manifest-level file mappings are merged into the including
manifest. Local values always win; hooks are concatenated with included
hooks first. Gripspaces may include further gripspaces up to
:data:`MAX_GRIPSPACE_DEPTH` levels deep.

File mappings taken from a gripspace keep pointing into it through the
``gripspace:<name>:<path>`` source syntax, see :func:`resolve_file_source`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

from gitgrip.core.manifest import (
    FileMapping,
    GripspaceConfig,
    HookCommand,
    Hooks,
    Manifest,
    ManifestError,
    RepoConfig,
    Script,
    parse_included_manifest,
    validate_manifest,
)
from gitgrip.core.manifest_paths import resolve_manifest_file_in_dir
from gitgrip.core.result import Err, Ok, Result

__all__ = [
    "MAX_GRIPSPACE_DEPTH",
    "RESERVED_SPACE_NAMES",
    "SOURCE_PREFIX",
    "gripspace_dir",
    "gripspace_name",
    "resolve_file_source",
    "resolve_gripspaces",
    "space_dir_name",
]

MAX_GRIPSPACE_DEPTH = 5
RESERVED_SPACE_NAMES = ("main", "local")
SOURCE_PREFIX = "gripspace:"


def gripspace_name(url: str) -> str:
    """Last path component of ``url`` without ``.git``.

    >>> gripspace_name("git@github.com:org/base-space.git")
    'base-space'
    """
    trimmed = url.rstrip("/")
    if trimmed.endswith(".git"):
        trimmed = trimmed[: -len(".git")]
    tail = trimmed.rsplit("/", 1)[-1]
    return tail.rsplit(":", 1)[-1]


def space_dir_name(name: str) -> str:
    """Directory name under ``.gitgrip/spaces/``; ``main`` and ``local`` are taken."""
    if name in RESERVED_SPACE_NAMES:
        return f"{name}-gripspace"
    return name


def gripspace_dir(spaces_dir: Path, url: str) -> Path:
    return spaces_dir / space_dir_name(gripspace_name(url))


def _invalid_name(name: str) -> bool:
    return not name or ".." in name or "/" in name or "\\" in name


def resolve_file_source(src: str, base: Path, spaces_dir: Path) -> Result[Path, ManifestError]:
    """Resolve a ``copyfile``/``linkfile`` source.

    ``gripspace:<name>:<path>`` points into a cloned gripspace; anything
    else is relative to ``base``.
    """
    if src.startswith(SOURCE_PREFIX):
        name, sep, path = src[len(SOURCE_PREFIX) :].partition(":")
        if sep:
            if _invalid_name(name):
                return Err(ManifestError(kind="path_escape", message=f"Invalid gripspace name: '{name}'"))
            if ".." in path or path.startswith(("/", "\\")):
                return Err(
                    ManifestError(kind="path_escape", message=f"Invalid gripspace path: '{path}' (path traversal)")
                )
            return Ok(spaces_dir / space_dir_name(name) / path)
    return Ok(base / src)


@dataclass(slots=True)
class _Merged:
    """Values collected from every gripspace, first occurrence wins."""

    repos: dict[str, RepoConfig] = field(default_factory=dict[str, RepoConfig])
    scripts: dict[str, Script] = field(default_factory=dict[str, Script])
    env: dict[str, str] = field(default_factory=dict[str, str])
    post_sync: list[HookCommand] = field(default_factory=list[HookCommand])
    post_checkout: list[HookCommand] = field(default_factory=list[HookCommand])
    copyfile: list[FileMapping] = field(default_factory=list[FileMapping])
    linkfile: list[FileMapping] = field(default_factory=list[FileMapping])


def _gripspace_error(message: str) -> Err[ManifestError]:
    return Err(ManifestError(kind="gripspace", message=message))


def _collect(
    config: GripspaceConfig,
    spaces_dir: Path,
    merged: _Merged,
    *,
    ancestors: tuple[str, ...],
    done: set[str],
) -> Result[None, ManifestError]:
    if len(ancestors) >= MAX_GRIPSPACE_DEPTH:
        return _gripspace_error(
            f"Maximum gripspace include depth ({MAX_GRIPSPACE_DEPTH}) exceeded for '{config.url}'"
        )
    if config.url in ancestors:
        return _gripspace_error(f"Circular gripspace include detected: '{config.url}'")
    if config.url in done:
        return Ok(None)
    done.add(config.url)

    name = gripspace_name(config.url)
    if _invalid_name(name):
        return _gripspace_error(f"Cannot derive a gripspace name from '{config.url}'")
    path = spaces_dir / space_dir_name(name)
    if not path.is_dir():
        # Not cloned yet; 'gr sync' clones it.
        return Ok(None)

    manifest_file = resolve_manifest_file_in_dir(path)
    if manifest_file is None:
        return _gripspace_error(f"Gripspace '{name}' has no manifest (expected gripspace.yml or manifest.yaml)")
    try:
        text = manifest_file.read_text(encoding="utf-8")
    except OSError as e:
        return _gripspace_error(f"Failed to read gripspace '{name}' manifest: {e}")
    parsed = parse_included_manifest(text)
    if isinstance(parsed, Err):
        return _gripspace_error(f"Gripspace '{name}': {parsed.error.message}")
    included = parsed.value

    for nested in included.gripspaces:
        result = _collect(nested, spaces_dir, merged, ancestors=(*ancestors, config.url), done=done)
        if isinstance(result, Err):
            return result

    for repo_name, repo in included.repos.items():
        merged.repos.setdefault(repo_name, repo)
    for script_name, script in included.workspace.scripts.items():
        merged.scripts.setdefault(script_name, script)
    for key, value in included.workspace.env.items():
        merged.env.setdefault(key, value)
    merged.post_sync.extend(included.workspace.hooks.post_sync)
    merged.post_checkout.extend(included.workspace.hooks.post_checkout)

    section = included.manifest
    if section is not None:
        prefix = f"{SOURCE_PREFIX}{name}:"
        merged.copyfile.extend(FileMapping(prefix + m.src, m.dest) for m in section.copyfile)
        merged.linkfile.extend(FileMapping(prefix + m.src, m.dest) for m in section.linkfile)
    return Ok(None)


def _combine(included: list[FileMapping], local: tuple[FileMapping, ...]) -> tuple[FileMapping, ...]:
    """Included mappings first, minus any whose dest a local mapping claims."""
    local_dests = {m.dest for m in local}
    return (*(m for m in included if m.dest not in local_dests), *local)


def resolve_gripspaces(manifest: Manifest, spaces_dir: Path) -> Result[Manifest, ManifestError]:
    """Merge every cloned gripspace into ``manifest``.

    Gripspaces that are not cloned yet are skipped. The merged manifest is
    validated like a plain one.
    """
    if not manifest.gripspaces:
        return Ok(manifest)

    merged = _Merged()
    done: set[str] = set()
    for config in manifest.gripspaces:
        result = _collect(config, spaces_dir, merged, ancestors=(), done=done)
        if isinstance(result, Err):
            return result

    repos = dict(manifest.repos)
    for name, repo in merged.repos.items():
        repos.setdefault(name, repo)

    ws = manifest.workspace
    workspace = replace(
        ws,
        env={**merged.env, **ws.env},
        scripts={**merged.scripts, **ws.scripts},
        hooks=Hooks(
            post_sync=(*merged.post_sync, *ws.hooks.post_sync),
            post_checkout=(*merged.post_checkout, *ws.hooks.post_checkout),
        ),
    )

    section = manifest.manifest
    if section is not None:
        section = replace(
            section,
            copyfile=_combine(merged.copyfile, section.copyfile),
            linkfile=_combine(merged.linkfile, section.linkfile),
        )

    resolved = replace(manifest, repos=repos, workspace=workspace, manifest=section)
    valid = validate_manifest(resolved)
    if isinstance(valid, Err):
        return valid
    return Ok(resolved)
