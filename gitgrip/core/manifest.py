"""Workspace manifest model (``gripspace.yml``).

The manifest names every repository in the workspace plus optional
workspace-level settings, scripts, hooks, CI pipelines and release config.

Usage:
    match load_manifest(path):
        case Ok(manifest):
            for name, repo in manifest.sorted_repos():
                print(name, repo.url)
        case Err(e):
            print(e.message)
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal, cast

import yaml

from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_int,
    get_list,
    get_str,
    get_str_list,
    get_str_map,
    get_table,
)

__all__ = [
    "AgentConfig",
    "AgentContextTarget",
    "CiPipeline",
    "CiStep",
    "FileMapping",
    "GripspaceConfig",
    "HookCommand",
    "Hooks",
    "Manifest",
    "ManifestError",
    "ManifestRepoConfig",
    "MergeStrategy",
    "PlatformConfig",
    "PlatformType",
    "ReleaseConfig",
    "RepoConfig",
    "Script",
    "ScriptStep",
    "Settings",
    "VersionFile",
    "WorkspaceAgentConfig",
    "WorkspaceConfig",
    "load_manifest",
    "merge_overlay",
    "parse_included_manifest",
    "parse_manifest",
    "path_escapes_root",
    "validate_manifest",
]

type PlatformType = Literal["github", "gitlab", "azure-devops", "bitbucket"]
type MergeStrategy = Literal["all-or-nothing", "independent"]

PLATFORM_TYPES: tuple[PlatformType, ...] = ("github", "gitlab", "azure-devops", "bitbucket")
MERGE_STRATEGIES: tuple[MergeStrategy, ...] = ("all-or-nothing", "independent")
DEFAULT_BRANCH = "main"
DEFAULT_PR_PREFIX = "[cross-repo]"


@dataclass(frozen=True, slots=True)
class ManifestError:
    """Manifest could not be read, parsed or validated."""

    kind: Literal["io", "parse", "validation", "path_escape", "gripspace"]
    message: str
    path: Path | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class FileMapping:
    """A ``copyfile``/``linkfile`` entry: repo-relative src, workspace-relative dest."""

    src: str
    dest: str


@dataclass(frozen=True, slots=True)
class PlatformConfig:
    type: PlatformType
    base_url: str | None = None


@dataclass(frozen=True, slots=True)
class AgentConfig:
    description: str | None = None
    language: str | None = None
    build: str | None = None
    test: str | None = None
    lint: str | None = None
    format: str | None = None


@dataclass(frozen=True, slots=True)
class AgentContextTarget:
    """One generated context file.

    ``dest`` is workspace-relative; a ``{repo}`` placeholder makes one file
    per repo that has an ``agent`` section.
    """

    format: str
    dest: str
    compose_with: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class WorkspaceAgentConfig:
    description: str | None = None
    conventions: tuple[str, ...] = ()
    workflows: dict[str, str] = field(default_factory=dict[str, str])
    context_source: str | None = None
    targets: tuple[AgentContextTarget, ...] = ()


@dataclass(frozen=True, slots=True)
class GripspaceConfig:
    """An included manifest repository, optionally pinned to ``rev``."""

    url: str
    rev: str | None = None


@dataclass(frozen=True, slots=True)
class RepoConfig:
    url: str
    path: str
    default_branch: str = DEFAULT_BRANCH
    groups: tuple[str, ...] = ()
    reference: bool = False
    copyfile: tuple[FileMapping, ...] = ()
    linkfile: tuple[FileMapping, ...] = ()
    platform: PlatformConfig | None = None
    agent: AgentConfig | None = None


@dataclass(frozen=True, slots=True)
class ManifestRepoConfig:
    """Self-description of the repository that stores the manifest."""

    url: str
    default_branch: str = DEFAULT_BRANCH
    copyfile: tuple[FileMapping, ...] = ()
    linkfile: tuple[FileMapping, ...] = ()
    platform: PlatformConfig | None = None


@dataclass(frozen=True, slots=True)
class Settings:
    pr_prefix: str = DEFAULT_PR_PREFIX
    merge_strategy: MergeStrategy = "all-or-nothing"


@dataclass(frozen=True, slots=True)
class ScriptStep:
    name: str
    command: str
    cwd: str | None = None


@dataclass(frozen=True, slots=True)
class Script:
    description: str | None = None
    command: str | None = None
    cwd: str | None = None
    steps: tuple[ScriptStep, ...] | None = None


@dataclass(frozen=True, slots=True)
class HookCommand:
    command: str
    cwd: str | None = None
    name: str | None = None
    condition: Literal["always", "changed"] = "always"
    repos: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Hooks:
    post_sync: tuple[HookCommand, ...] = ()
    post_checkout: tuple[HookCommand, ...] = ()


@dataclass(frozen=True, slots=True)
class CiStep:
    name: str
    command: str
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict[str, str])
    continue_on_error: bool = False


@dataclass(frozen=True, slots=True)
class CiPipeline:
    description: str | None = None
    steps: tuple[CiStep, ...] = ()


@dataclass(frozen=True, slots=True)
class VersionFile:
    """A file whose version string is bumped on release.

    ``pattern`` contains a ``{version}`` placeholder, e.g. ``version = "{version}"``.
    """

    path: str
    pattern: str


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    version_files: tuple[VersionFile, ...] = ()
    changelog: str | None = None


@dataclass(frozen=True, slots=True)
class WorkspaceConfig:
    env: dict[str, str] = field(default_factory=dict[str, str])
    scripts: dict[str, Script] = field(default_factory=dict[str, Script])
    hooks: Hooks = field(default_factory=Hooks)
    pipelines: dict[str, CiPipeline] = field(default_factory=dict[str, CiPipeline])
    release: ReleaseConfig | None = None
    agent: WorkspaceAgentConfig | None = None


@dataclass(frozen=True, slots=True)
class Manifest:
    """Parsed workspace manifest.

    ``repos`` keeps document order; use :meth:`sorted_repos` for the
    deterministic alphabetical iteration every fan-out command relies on.
    ``gripspaces`` lists included manifests; their content is merged in by
    :func:`gitgrip.core.gripspace.resolve_gripspaces`.
    """

    repos: dict[str, RepoConfig]
    version: int = 1
    manifest: ManifestRepoConfig | None = None
    settings: Settings = field(default_factory=Settings)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    gripspaces: tuple[GripspaceConfig, ...] = ()

    def sorted_repos(self) -> list[tuple[str, RepoConfig]]:
        return sorted(self.repos.items(), key=lambda item: item[0])

    def all_groups(self) -> list[str]:
        groups: set[str] = set()
        for repo in self.repos.values():
            groups.update(repo.groups)
        return sorted(groups)

    @classmethod
    def from_dict(cls, data: StrDict) -> Result[Manifest, ManifestError]:
        repos_raw = data.get("repos")
        if repos_raw is None:
            return _validation("Manifest must have a 'repos' section")
        repos_table = as_str_dict(repos_raw)
        if repos_table is None:
            return Err(ManifestError(kind="parse", message="'repos' must be a mapping of name to repo config"))

        repos: dict[str, RepoConfig] = {}
        for name, raw in repos_table.items():
            repo_result = _parse_repo(name, raw)
            if isinstance(repo_result, Err):
                return repo_result
            repos[name] = repo_result.value

        manifest_cfg: ManifestRepoConfig | None = None
        manifest_table = get_table(data, "manifest")
        if manifest_table is not None:
            url = get_str(manifest_table, "url")
            if url is None:
                return _validation("Manifest section 'manifest' must have a URL")
            mapping_result = _parse_file_mappings("manifest", manifest_table)
            if isinstance(mapping_result, Err):
                return mapping_result
            copyfile, linkfile = mapping_result.value
            manifest_cfg = ManifestRepoConfig(
                url=url,
                default_branch=get_str(manifest_table, "default_branch") or DEFAULT_BRANCH,
                copyfile=copyfile,
                linkfile=linkfile,
                platform=_parse_platform(manifest_table),
            )

        settings_result = _parse_settings(get_table(data, "settings") or {})
        if isinstance(settings_result, Err):
            return settings_result

        workspace_result = _parse_workspace(get_table(data, "workspace") or {})
        if isinstance(workspace_result, Err):
            return workspace_result

        gripspaces_result = _parse_gripspaces(data)
        if isinstance(gripspaces_result, Err):
            return gripspaces_result

        return Ok(
            cls(
                repos=repos,
                version=get_int(data, "version") or 1,
                manifest=manifest_cfg,
                settings=settings_result.value,
                workspace=workspace_result.value,
                gripspaces=gripspaces_result.value,
            )
        )


def _validation(message: str) -> Err[ManifestError]:
    return Err(ManifestError(kind="validation", message=message))


def _parse_platform(table: StrDict) -> PlatformConfig | None:
    raw = get_table(table, "platform")
    if raw is None:
        return None
    kind = get_str(raw, "type")
    if kind not in PLATFORM_TYPES:
        return None
    return PlatformConfig(type=cast(PlatformType, kind), base_url=get_str(raw, "base_url"))


def _parse_agent(table: StrDict) -> AgentConfig | None:
    raw = get_table(table, "agent")
    if raw is None:
        return None
    return AgentConfig(
        description=get_str(raw, "description"),
        language=get_str(raw, "language"),
        build=get_str(raw, "build"),
        test=get_str(raw, "test"),
        lint=get_str(raw, "lint"),
        format=get_str(raw, "format"),
    )


def _parse_gripspaces(data: StrDict) -> Result[tuple[GripspaceConfig, ...], ManifestError]:
    items = get_list(data, "gripspaces")
    if items is None:
        return Ok(())
    gripspaces: list[GripspaceConfig] = []
    for item in items:
        entry = as_str_dict(item)
        url = get_str(entry, "url") if entry else None
        if entry is None or not url:
            return _validation("Each gripspace entry needs a 'url'")
        gripspaces.append(GripspaceConfig(url=url, rev=get_str(entry, "rev")))
    return Ok(tuple(gripspaces))


def _parse_workspace_agent(table: StrDict) -> Result[WorkspaceAgentConfig | None, ManifestError]:
    raw = get_table(table, "agent")
    if raw is None:
        return Ok(None)
    targets: list[AgentContextTarget] = []
    for item in get_list(raw, "targets") or []:
        entry = as_str_dict(item)
        fmt = get_str(entry, "format") if entry else None
        dest = get_str(entry, "dest") if entry else None
        if entry is None or fmt is None or dest is None:
            return _validation("workspace.agent.targets entries need 'format' and 'dest'")
        compose_with = tuple(get_str_list(entry, "compose_with"))
        targets.append(AgentContextTarget(format=fmt, dest=dest, compose_with=compose_with))
    return Ok(
        WorkspaceAgentConfig(
            description=get_str(raw, "description"),
            conventions=tuple(get_str_list(raw, "conventions")),
            workflows=get_str_map(raw, "workflows"),
            context_source=get_str(raw, "context_source"),
            targets=tuple(targets),
        )
    )


def _parse_mapping_list(
    owner: str, table: StrDict, key: str
) -> Result[tuple[FileMapping, ...], ManifestError]:
    items = get_list(table, key)
    if items is None:
        return Ok(())
    mappings: list[FileMapping] = []
    for item in items:
        entry = as_str_dict(item)
        src = get_str(entry, "src") if entry else None
        dest = get_str(entry, "dest") if entry else None
        if src is None or dest is None:
            return _validation(f"Repository '{owner}' has {key} with empty src or dest")
        mappings.append(FileMapping(src=src, dest=dest))
    return Ok(tuple(mappings))


def _parse_file_mappings(
    owner: str, table: StrDict
) -> Result[tuple[tuple[FileMapping, ...], tuple[FileMapping, ...]], ManifestError]:
    copy_result = _parse_mapping_list(owner, table, "copyfile")
    if isinstance(copy_result, Err):
        return copy_result
    link_result = _parse_mapping_list(owner, table, "linkfile")
    if isinstance(link_result, Err):
        return link_result
    return Ok((copy_result.value, link_result.value))


def _parse_repo(name: str, raw: object) -> Result[RepoConfig, ManifestError]:
    table = as_str_dict(raw)
    if table is None:
        return Err(ManifestError(kind="parse", message=f"Repository '{name}' must be a mapping"))

    url = get_str(table, "url")
    if url is None:
        return _validation(f"Repository '{name}' must have a URL")
    path = get_str(table, "path")
    if path is None:
        return _validation(f"Repository '{name}' must have a path")

    groups_raw = get_list(table, "groups") or []
    groups: list[str] = []
    for group in groups_raw:
        if not isinstance(group, str) or not group.strip():
            return _validation(f"Repository '{name}' has an empty or non-string group name")
        groups.append(group.strip())

    mapping_result = _parse_file_mappings(name, table)
    if isinstance(mapping_result, Err):
        return mapping_result
    copyfile, linkfile = mapping_result.value

    return Ok(
        RepoConfig(
            url=url,
            path=path,
            default_branch=get_str(table, "default_branch") or DEFAULT_BRANCH,
            groups=tuple(groups),
            reference=get_bool(table, "reference"),
            copyfile=copyfile,
            linkfile=linkfile,
            platform=_parse_platform(table),
            agent=_parse_agent(table),
        )
    )


def _parse_settings(table: StrDict) -> Result[Settings, ManifestError]:
    strategy = get_str(table, "merge_strategy") or "all-or-nothing"
    if strategy not in MERGE_STRATEGIES:
        return _validation(
            f"Unknown merge_strategy '{strategy}' (expected one of: {', '.join(MERGE_STRATEGIES)})"
        )
    prefix = table.get("pr_prefix")
    return Ok(
        Settings(
            pr_prefix=prefix if isinstance(prefix, str) else DEFAULT_PR_PREFIX,
            merge_strategy=cast(MergeStrategy, strategy),
        )
    )


def _parse_script(table: StrDict) -> Script:
    steps: tuple[ScriptStep, ...] | None = None
    steps_raw = get_list(table, "steps")
    if steps_raw is not None:
        parsed: list[ScriptStep] = []
        for item in steps_raw:
            step = as_str_dict(item) or {}
            parsed.append(
                ScriptStep(
                    name=get_str(step, "name") or "",
                    command=get_str(step, "command") or "",
                    cwd=get_str(step, "cwd"),
                )
            )
        steps = tuple(parsed)
    return Script(
        description=get_str(table, "description"),
        command=get_str(table, "command"),
        cwd=get_str(table, "cwd"),
        steps=steps,
    )


def _parse_hooks(items: list[object] | None) -> tuple[HookCommand, ...]:
    hooks: list[HookCommand] = []
    for item in items or []:
        table = as_str_dict(item)
        if table is None:
            continue
        command = get_str(table, "command")
        if command is None:
            continue
        condition = get_str(table, "condition")
        hooks.append(
            HookCommand(
                command=command,
                cwd=get_str(table, "cwd"),
                name=get_str(table, "name"),
                condition="changed" if condition == "changed" else "always",
                repos=tuple(get_str_list(table, "repos")),
            )
        )
    return tuple(hooks)


def _parse_workspace(table: StrDict) -> Result[WorkspaceConfig, ManifestError]:
    scripts: dict[str, Script] = {}
    for name, raw in (get_table(table, "scripts") or {}).items():
        script_table = as_str_dict(raw)
        if script_table is None:
            return _validation(f"Script '{name}' must be a mapping")
        scripts[name] = _parse_script(script_table)

    hooks_table = get_table(table, "hooks") or {}
    hooks = Hooks(
        post_sync=_parse_hooks(get_list(hooks_table, "post-sync")),
        post_checkout=_parse_hooks(get_list(hooks_table, "post-checkout")),
    )

    pipelines: dict[str, CiPipeline] = {}
    ci_table = get_table(table, "ci") or {}
    for name, raw in (get_table(ci_table, "pipelines") or {}).items():
        pipeline_table = as_str_dict(raw)
        if pipeline_table is None:
            return _validation(f"CI pipeline '{name}' must be a mapping")
        steps: list[CiStep] = []
        for item in get_list(pipeline_table, "steps") or []:
            step = as_str_dict(item)
            if step is None:
                continue
            step_name = get_str(step, "name")
            command = get_str(step, "command")
            if step_name is None or command is None:
                return _validation(f"CI pipeline '{name}' has a step without name or command")
            steps.append(
                CiStep(
                    name=step_name,
                    command=command,
                    cwd=get_str(step, "cwd"),
                    env=get_str_map(step, "env"),
                    continue_on_error=get_bool(step, "continue_on_error"),
                )
            )
        pipelines[name] = CiPipeline(description=get_str(pipeline_table, "description"), steps=tuple(steps))

    release: ReleaseConfig | None = None
    release_table = get_table(table, "release")
    if release_table is not None:
        version_files: list[VersionFile] = []
        for item in get_list(release_table, "version_files") or []:
            entry = as_str_dict(item)
            if entry is None:
                continue
            path = get_str(entry, "path")
            pattern = get_str(entry, "pattern")
            if path is None or pattern is None or "{version}" not in pattern:
                return _validation("release.version_files entries need 'path' and a 'pattern' containing {version}")
            version_files.append(VersionFile(path=path, pattern=pattern))
        release = ReleaseConfig(
            version_files=tuple(version_files),
            changelog=get_str(release_table, "changelog"),
        )

    agent = _parse_workspace_agent(table)
    if isinstance(agent, Err):
        return agent

    return Ok(
        WorkspaceConfig(
            env=get_str_map(table, "env"),
            scripts=scripts,
            hooks=hooks,
            pipelines=pipelines,
            release=release,
            agent=agent.value,
        )
    )


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


def path_escapes_root(path: str) -> bool:
    """True when ``path`` is absolute or normalizes outside (or onto) the root."""
    normalized = path.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        return True
    norm = posixpath.normpath(normalized)
    if norm in (".", ".."):
        return True
    return norm.startswith("../") or "/../" in norm


def _validate_mappings(owner: str, mappings: tuple[FileMapping, ...], kind: str) -> Result[None, ManifestError]:
    for m in mappings:
        if path_escapes_root(m.src):
            return Err(
                ManifestError(
                    kind="path_escape",
                    message=f"Repository '{owner}' {kind} src escapes boundary: {m.src}",
                )
            )
        if path_escapes_root(m.dest):
            return Err(
                ManifestError(
                    kind="path_escape",
                    message=f"Repository '{owner}' {kind} dest escapes boundary: {m.dest}",
                )
            )
    return Ok(None)


def validate_manifest(manifest: Manifest) -> Result[None, ManifestError]:
    """Check cross-field rules that parsing alone cannot express."""
    if not manifest.repos:
        return _validation("Manifest must have at least one repository")

    for name, repo in manifest.sorted_repos():
        if path_escapes_root(repo.path):
            return Err(
                ManifestError(
                    kind="path_escape",
                    message=f"Repository '{name}' path escapes workspace boundary: {repo.path}",
                    hint="Repository paths must be relative and stay inside the workspace",
                )
            )
        for group in repo.groups:
            if not group:
                return _validation(f"Repository '{name}' has an empty group name")
        for kind, mappings in (("copyfile", repo.copyfile), ("linkfile", repo.linkfile)):
            result = _validate_mappings(name, mappings, kind)
            if isinstance(result, Err):
                return result

    if manifest.manifest is not None:
        for kind, mappings in (
            ("copyfile", manifest.manifest.copyfile),
            ("linkfile", manifest.manifest.linkfile),
        ):
            result = _validate_mappings("manifest", mappings, kind)
            if isinstance(result, Err):
                return result

    for name, script in manifest.workspace.scripts.items():
        if script.command is not None and script.steps is not None:
            return _validation(f"Script '{name}' cannot have both 'command' and 'steps'")
        if script.command is None and not script.steps:
            return _validation(f"Script '{name}' must have either 'command' or 'steps'")
        for step in script.steps or ():
            if not step.name:
                return _validation(f"Script '{name}' has a step with empty name")
            if not step.command:
                return _validation(f"Script '{name}' step '{step.name}' has empty command")

    return Ok(None)


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------


def _load_document(text: str) -> Result[StrDict, ManifestError]:
    try:
        data_obj: object = yaml.safe_load(text)
    except yaml.YAMLError as e:
        return Err(ManifestError(kind="parse", message=f"Failed to parse manifest YAML: {e}"))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ManifestError(kind="parse", message="Manifest root must be a mapping"))
    return Ok(data)


def parse_manifest(text: str) -> Result[Manifest, ManifestError]:
    """Parse and validate manifest text (YAML, or JSON as a YAML subset)."""
    doc = _load_document(text)
    if isinstance(doc, Err):
        return doc
    manifest = Manifest.from_dict(doc.value)
    if isinstance(manifest, Err):
        return manifest
    valid = validate_manifest(manifest.value)
    if isinstance(valid, Err):
        return valid
    return manifest


def parse_included_manifest(text: str) -> Result[Manifest, ManifestError]:
    """Parse a gripspace manifest. ``repos`` is optional and nothing is validated."""
    doc = _load_document(text)
    if isinstance(doc, Err):
        return doc
    data = doc.value
    if "repos" not in data:
        data = {**data, "repos": {}}
    return Manifest.from_dict(data)


def merge_overlay(base: Manifest, overlay_text: str) -> Result[Manifest, ManifestError]:
    """Apply a local overlay document on top of ``base``.

    The overlay may add or replace repos and add env vars and scripts.
    Overlay values win on conflict.
    """
    doc = _load_document(overlay_text)
    if isinstance(doc, Err):
        return doc
    data = doc.value

    repos = dict(base.repos)
    for name, raw in (get_table(data, "repos") or {}).items():
        repo_result = _parse_repo(name, raw)
        if isinstance(repo_result, Err):
            return repo_result
        repos[name] = repo_result.value

    workspace_result = _parse_workspace(get_table(data, "workspace") or {})
    if isinstance(workspace_result, Err):
        return workspace_result
    extra = workspace_result.value

    workspace = replace(
        base.workspace,
        env={**base.workspace.env, **extra.env},
        scripts={**base.workspace.scripts, **extra.scripts},
        pipelines={**base.workspace.pipelines, **extra.pipelines},
    )
    merged = replace(base, repos=repos, workspace=workspace)
    valid = validate_manifest(merged)
    if isinstance(valid, Err):
        return valid
    return Ok(merged)


def load_manifest(path: Path, overlay: Path | None = None) -> Result[Manifest, ManifestError]:
    """Load a manifest file, applying ``overlay`` when it exists."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return Err(
            ManifestError(
                kind="io",
                message=f"Failed to read manifest file: {e}",
                path=path,
            )
        )

    result = parse_manifest(text)
    if isinstance(result, Err):
        return Err(replace(result.error, path=path))

    if overlay is None or not overlay.is_file():
        return result

    try:
        overlay_text = overlay.read_text(encoding="utf-8")
    except OSError as e:
        return Err(ManifestError(kind="io", message=f"Failed to read local overlay: {e}", path=overlay))

    merged = merge_overlay(result.value, overlay_text)
    if isinstance(merged, Err):
        return Err(replace(merged.error, path=overlay))
    return merged
