"""Language-independent description of the manifest shape."""

from __future__ import annotations

import json
from typing import Literal

import yaml

from gitgrip.core.structured import StrDict

__all__ = ["SchemaFormat", "manifest_schema", "render_schema"]

type SchemaFormat = Literal["yaml", "json", "markdown"]


def _field(kind: str, description: str, *, required: bool = False, default: object = None) -> StrDict:
    data: StrDict = {"type": kind, "description": description}
    if required:
        data["required"] = True
    if default is not None:
        data["default"] = default
    return data


_FILE_MAPPING: StrDict = {
    "src": _field("string", "Path inside the repository (relative)", required=True),
    "dest": _field("string", "Path inside the workspace (relative)", required=True),
}

_PLATFORM: StrDict = {
    "type": _field("string", "github | gitlab | azure-devops | bitbucket", required=True),
    "base_url": _field("string", "Base URL of a self-hosted instance"),
}


def manifest_schema() -> StrDict:
    """Nested field description of ``gripspace.yml``."""
    repo: StrDict = {
        "url": _field("string", "Git remote URL (SSH, HTTPS or file://)", required=True),
        "path": _field("string", "Workspace-relative checkout path; may not escape the workspace", required=True),
        "default_branch": _field("string", "Default branch", default="main"),
        "groups": _field("list[string]", "Group tags used by --group filters"),
        "reference": _field("bool", "Read-only repo: excluded from branch/commit/push/PR", default=False),
        "copyfile": {"type": "list[mapping]", "items": _FILE_MAPPING},
        "linkfile": {"type": "list[mapping]", "items": _FILE_MAPPING},
        "platform": {"type": "mapping", "fields": _PLATFORM},
        "agent": {
            "type": "mapping",
            "fields": {
                "description": _field("string", "What the repository contains"),
                "language": _field("string", "Primary language"),
                "build": _field("string", "Build command"),
                "test": _field("string", "Test command"),
                "lint": _field("string", "Lint command"),
                "format": _field("string", "Format command"),
            },
        },
    }
    hook: StrDict = {
        "name": _field("string", "Display name"),
        "command": _field("string", "Shell command (sh -c)", required=True),
        "cwd": _field("string", "Workspace-relative working directory"),
        "condition": _field("string", "always | changed", default="always"),
        "repos": _field("list[string]", "With condition=changed: only when these repos changed"),
    }
    return {
        "version": _field("int", "Schema version", default=1),
        "manifest": {
            "type": "mapping",
            "description": "The repository that stores this manifest",
            "fields": {
                "url": _field("string", "Manifest repository URL", required=True),
                "default_branch": _field("string", "Default branch", default="main"),
                "copyfile": {"type": "list[mapping]", "items": _FILE_MAPPING},
                "linkfile": {"type": "list[mapping]", "items": _FILE_MAPPING},
                "platform": {"type": "mapping", "fields": _PLATFORM},
            },
        },
        "gripspaces": {
            "type": "list[mapping]",
            "description": "Included manifests, merged under local values",
            "items": {
                "url": _field("string", "Gripspace repository URL", required=True),
                "rev": _field("string", "Branch, tag or SHA to pin"),
            },
        },
        "repos": {
            "type": "mapping[name -> repo]",
            "required": True,
            "description": "At least one repository",
            "fields": repo,
        },
        "settings": {
            "type": "mapping",
            "fields": {
                "pr_prefix": _field("string", "Prefix for PR titles", default="[cross-repo]"),
                "merge_strategy": _field("string", "all-or-nothing | independent", default="all-or-nothing"),
            },
        },
        "workspace": {
            "type": "mapping",
            "fields": {
                "env": _field("mapping[string -> string]", "Exported to run, forall, hooks and CI"),
                "scripts": {
                    "type": "mapping[name -> script]",
                    "description": "Either 'command' or 'steps', never both",
                    "fields": {
                        "description": _field("string", "Shown by 'gr run --list'"),
                        "command": _field("string", "Single shell command"),
                        "cwd": _field("string", "Workspace-relative working directory"),
                        "steps": {
                            "type": "list[mapping]",
                            "items": {
                                "name": _field("string", "Step name", required=True),
                                "command": _field("string", "Shell command", required=True),
                                "cwd": _field("string", "Workspace-relative working directory"),
                            },
                        },
                    },
                },
                "hooks": {
                    "type": "mapping",
                    "fields": {
                        "post-sync": {"type": "list[mapping]", "items": hook},
                        "post-checkout": {"type": "list[mapping]", "items": hook},
                    },
                },
                "ci": {
                    "type": "mapping",
                    "fields": {
                        "pipelines": {
                            "type": "mapping[name -> pipeline]",
                            "fields": {
                                "description": _field("string", "Pipeline description"),
                                "steps": {
                                    "type": "list[mapping]",
                                    "items": {
                                        "name": _field("string", "Step name", required=True),
                                        "command": _field("string", "Shell command", required=True),
                                        "cwd": _field("string", "Workspace-relative working directory"),
                                        "env": _field("mapping[string -> string]", "Extra environment"),
                                        "continue_on_error": _field("bool", "Keep going after failure", default=False),
                                    },
                                },
                            },
                        }
                    },
                },
                "release": {
                    "type": "mapping",
                    "fields": {
                        "version_files": {
                            "type": "list[mapping]",
                            "items": {
                                "path": _field("string", "Workspace-relative file", required=True),
                                "pattern": _field("string", "Text containing {version}", required=True),
                            },
                        },
                        "changelog": _field("string", "Changelog path", default="CHANGELOG.md"),
                    },
                },
                "agent": {
                    "type": "mapping",
                    "description": "Context for AI coding agents (gr agent)",
                    "fields": {
                        "description": _field("string", "What the workspace is for"),
                        "conventions": _field("list[string]", "Rules listed by 'gr agent context'"),
                        "workflows": _field("mapping[string -> string]", "Named command lines"),
                        "context_source": _field("string", "Manifest-relative or gripspace:<name>:<path> file"),
                        "targets": {
                            "type": "list[mapping]",
                            "items": {
                                "format": _field("string", "raw | claude | opencode | codex | cursor", required=True),
                                "dest": _field("string", "Output path, {repo} for one per repo", required=True),
                                "compose_with": _field("list[string]", "Files appended to the context"),
                            },
                        },
                    },
                },
            },
        },
    }


def _markdown_rows(fields: StrDict, prefix: str, rows: list[str]) -> None:
    for name, raw in fields.items():
        if not isinstance(raw, dict):
            continue
        field: StrDict = raw  # pyright: ignore[reportUnknownVariableType]
        key = f"{prefix}{name}"
        kind = str(field.get("type", ""))
        required = "yes" if field.get("required") else ""
        default = field.get("default")
        description = str(field.get("description", ""))
        default_text = "" if default is None else f"`{default}`"
        rows.append(f"| `{key}` | {kind} | {required} | {default_text} | {description} |")
        for nested_key in ("fields", "items"):
            nested = field.get(nested_key)
            if isinstance(nested, dict):
                suffix = "[]." if nested_key == "items" else "."
                _markdown_rows(nested, f"{key}{suffix}", rows)  # pyright: ignore[reportUnknownArgumentType]


def render_schema(fmt: SchemaFormat = "yaml") -> str:
    schema = manifest_schema()
    if fmt == "json":
        return json.dumps(schema, indent=2)
    if fmt == "markdown":
        rows = [
            "# gripspace.yml",
            "",
            "| Field | Type | Required | Default | Description |",
            "|---|---|---|---|---|",
        ]
        _markdown_rows(schema, "", rows)
        return "\n".join(rows)
    return yaml.safe_dump(schema, sort_keys=False)
