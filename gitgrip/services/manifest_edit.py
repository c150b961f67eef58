"""``gr repo`` and ``gr group``: read and rewrite the workspace manifest.

Edits go through PyYAML, so the rewritten file keeps key order but not
comments. Every edit is re-validated before it replaces the file.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass

import yaml

from gitgrip.core.manifest import parse_manifest
from gitgrip.core.repo import RepoInfo
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_str_dict, get_str_list
from gitgrip.core.workspace import Workspace
from gitgrip.output.console import ConsoleProtocol
from gitgrip.platform.files import atomic_write_text
from gitgrip.services.errors import ServiceError
from gitgrip.services.init import repo_name_from_url

__all__ = ["GroupListing", "ManifestEditService", "RepoListing"]


@dataclass(frozen=True, slots=True)
class RepoListing:
    name: str
    path: str
    default_branch: str
    cloned: bool
    groups: tuple[str, ...]
    reference: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "path": self.path,
            "defaultBranch": self.default_branch,
            "cloned": self.cloned,
            "groups": list(self.groups),
            "reference": self.reference,
        }


@dataclass(frozen=True, slots=True)
class GroupListing:
    groups: dict[str, list[str]]
    ungrouped: list[str]

    def to_dict(self) -> dict[str, object]:
        return {"groups": self.groups, "ungrouped": self.ungrouped}


def _user(message: str, hint: str | None = None) -> Err[ServiceError]:
    return Err(ServiceError(kind="user", message=message, hint=hint))


class ManifestEditService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    def _infos(self) -> list[RepoInfo]:
        infos: list[RepoInfo] = []
        for name, config in self._workspace.manifest.sorted_repos():
            info = RepoInfo.from_config(name, config, self._workspace.root)
            if info is not None:
                infos.append(info)
        return infos

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def list_repos(self) -> list[RepoListing]:
        return [
            RepoListing(
                name=info.name,
                path=info.path,
                default_branch=info.default_branch,
                cloned=info.exists(),
                groups=info.groups,
                reference=info.reference,
            )
            for info in self._infos()
        ]

    def render_repos(self, listings: list[RepoListing]) -> None:
        self._console.header("Repositories")
        rows = [
            [r.name + (" (ref)" if r.reference else ""), r.path, r.default_branch, "cloned" if r.cloned else "not cloned"]
            for r in listings
        ]
        self._console.table(["Name", "Path", "Branch", "Status"], rows)
        cloned = sum(1 for r in listings if r.cloned)
        self._console.print(f"{cloned}/{len(listings)} repositories cloned")

    def list_groups(self) -> GroupListing:
        groups: dict[str, list[str]] = {}
        ungrouped: list[str] = []
        for info in self._infos():
            if not info.groups:
                ungrouped.append(info.name)
            for group in info.groups:
                groups.setdefault(group, []).append(info.name)
        return GroupListing(
            groups={name: sorted(members) for name, members in sorted(groups.items())},
            ungrouped=sorted(ungrouped),
        )

    def render_groups(self, listing: GroupListing) -> None:
        self._console.header("Repository groups")
        if not listing.groups and not listing.ungrouped:
            self._console.info("No repositories found.")
            return
        if not listing.groups:
            self._console.info("No groups defined. Add 'groups' to repos in the manifest.")
        for name, members in listing.groups.items():
            self._console.print(f"  {name} ({len(members)})")
            for member in members:
                self._console.print(f"    {member}")
        if listing.ungrouped:
            self._console.print(f"  ungrouped ({len(listing.ungrouped)})")
            for member in listing.ungrouped:
                self._console.print(f"    {member}")

    # -------------------------------------------------------------------------
    # Rewriting
    # -------------------------------------------------------------------------

    def _edit(self, mutate: Callable[[StrDict], Result[None, ServiceError]]) -> Result[None, ServiceError]:
        path = self._workspace.manifest_path
        try:
            loaded: object = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to read manifest: {e}"))
        except yaml.YAMLError as e:
            return Err(ServiceError(kind="user", message=f"Failed to parse manifest YAML: {e}"))
        data = as_str_dict(loaded)
        if data is None:
            return _user("Manifest root must be a mapping")

        changed = mutate(data)
        if isinstance(changed, Err):
            return changed

        text = yaml.safe_dump(data, sort_keys=False)
        valid = parse_manifest(text)
        if isinstance(valid, Err):
            return _user(f"Edited manifest is invalid: {valid.error.message}", valid.error.hint)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to write manifest: {e}"))
        return Ok(None)

    def add_repo(
        self,
        url: str,
        *,
        name: str | None = None,
        path: str | None = None,
        default_branch: str | None = None,
        groups: list[str] | None = None,
        reference: bool = False,
    ) -> Result[str, ServiceError]:
        """Append a repo entry; returns the name it was added under."""
        repo_name = name or repo_name_from_url(url)
        if repo_name is None:
            return _user(f"Could not parse repository name from URL: {url}", "Pass --name explicitly")

        entry: StrDict = {"url": url, "path": path or repo_name, "default_branch": default_branch or "main"}
        if groups:
            entry["groups"] = list(groups)
        if reference:
            entry["reference"] = True

        def mutate(data: StrDict) -> Result[None, ServiceError]:
            repos = as_str_dict(data.get("repos")) or {}
            if repo_name in repos:
                return _user(f"Repository '{repo_name}' already exists in the manifest")
            repos[repo_name] = entry
            data["repos"] = repos
            return Ok(None)

        edited = self._edit(mutate)
        if isinstance(edited, Err):
            return edited
        self._console.success(f"Added repository '{repo_name}' to manifest")
        self._console.print("Run 'gr sync' to clone it.")
        return Ok(repo_name)

    def remove_repo(self, name: str, *, delete_files: bool = False) -> Result[None, ServiceError]:
        config = self._workspace.manifest.repos.get(name)

        def mutate(data: StrDict) -> Result[None, ServiceError]:
            repos = as_str_dict(data.get("repos")) or {}
            if name not in repos:
                return _user(f"Repository '{name}' not found in manifest")
            del repos[name]
            data["repos"] = repos
            return Ok(None)

        edited = self._edit(mutate)
        if isinstance(edited, Err):
            return edited

        if delete_files and config is not None:
            target = self._workspace.root / config.path
            if target.exists():
                with self._console.progress("Removing repository files..."):
                    try:
                        shutil.rmtree(target)
                    except OSError as e:
                        return Err(ServiceError(kind="io", message=f"Failed to remove {target}: {e}"))
        self._console.success(f"Removed repository '{name}' from manifest")
        return Ok(None)

    def _set_groups(
        self,
        group: str,
        repos: list[str],
        change: Callable[[list[str]], list[str]],
    ) -> Result[None, ServiceError]:
        def mutate(data: StrDict) -> Result[None, ServiceError]:
            table = as_str_dict(data.get("repos")) or {}
            unknown = [r for r in repos if as_str_dict(table.get(r)) is None]
            if unknown:
                return _user(f"Unknown repositories: {', '.join(unknown)}")
            for repo in repos:
                entry = as_str_dict(table[repo])
                if entry is None:
                    continue
                updated = change(get_str_list(entry, "groups"))
                if updated:
                    entry["groups"] = updated
                else:
                    entry.pop("groups", None)
            return Ok(None)

        return self._edit(mutate)

    def add_to_group(self, group: str, repos: list[str]) -> Result[None, ServiceError]:
        if not repos:
            return _user("Name at least one repository to add to the group")
        result = self._set_groups(group, repos, lambda groups: groups if group in groups else [*groups, group])
        if isinstance(result, Ok):
            self._console.success(f"Added {', '.join(repos)} to group '{group}'")
        return result

    def remove_from_group(self, group: str, repos: list[str]) -> Result[None, ServiceError]:
        members = self.list_groups().groups.get(group)
        if members is None:
            return _user(f"Group '{group}' not found")
        targets = repos or members
        result = self._set_groups(group, targets, lambda groups: [g for g in groups if g != group])
        if isinstance(result, Ok):
            self._console.success(f"Removed {', '.join(targets)} from group '{group}'")
        return result

    def create_group(self, group: str, repos: list[str]) -> Result[None, ServiceError]:
        """Groups exist through their members, so creating one needs at least one repo."""
        if group in self.list_groups().groups:
            return _user(f"Group '{group}' already exists", f"Use 'gr group add {group} <repo>...' instead")
        if not repos:
            return _user("A group needs at least one repository", f"gr group create {group} <repo>...")
        result = self._set_groups(group, repos, lambda groups: [*groups, group])
        if isinstance(result, Ok):
            self._console.success(f"Created group '{group}' with {', '.join(repos)}")
        return result
