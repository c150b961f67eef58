"""Manifest commands: ``repo``, ``group`` and ``manifest``."""

from __future__ import annotations

from enum import Enum

import typer

from gitgrip.cli.commands._helpers import JSON_OPTION, echo_json, exit_on_error
from gitgrip.cli.context import build_context
from gitgrip.core.schema import render_schema
from gitgrip.services.errors import partial_failure
from gitgrip.services.executor import Failed
from gitgrip.services.manifest_edit import ManifestEditService
from gitgrip.services.sync import SyncService

repo_app = typer.Typer(no_args_is_help=True, help="List, add and remove manifest repositories.")
group_app = typer.Typer(no_args_is_help=True, help="List and edit repository groups.")
manifest_app = typer.Typer(no_args_is_help=True, help="Manifest maintenance.")


class SchemaFormat(str, Enum):
    yaml = "yaml"
    json = "json"
    markdown = "markdown"


# -----------------------------------------------------------------------------
# repo
# -----------------------------------------------------------------------------


@repo_app.command("list")
def repo_list(json_output: bool = JSON_OPTION) -> None:
    """List manifest repositories and whether they are cloned."""
    ctx = build_context(json_output=json_output)
    service = ManifestEditService(workspace=ctx.workspace, console=ctx.console)
    listings = service.list_repos()
    if json_output:
        echo_json([r.to_dict() for r in listings])
    else:
        service.render_repos(listings)


@repo_app.command("add")
def repo_add(
    url: str = typer.Argument(..., help="Git remote URL"),
    name: str | None = typer.Option(None, "--name", help="Manifest key (default: from the URL)"),
    path: str | None = typer.Option(None, "--path", help="Checkout path (default: the name)"),
    branch: str | None = typer.Option(None, "--branch", help="Default branch (default: main)"),
    group: list[str] | None = typer.Option(None, "--group", "-g", help="Groups to put the repo in"),
    reference: bool = typer.Option(False, "--reference", help="Read-only reference repository"),
) -> None:
    """Add a repository to the manifest."""
    ctx = build_context()
    service = ManifestEditService(workspace=ctx.workspace, console=ctx.console)
    exit_on_error(
        service.add_repo(url, name=name, path=path, default_branch=branch, groups=group, reference=reference),
        ctx,
    )


@repo_app.command("remove")
def repo_remove(
    name: str = typer.Argument(..., help="Manifest key"),
    delete: bool = typer.Option(False, "--delete", help="Also delete the checkout"),
) -> None:
    """Remove a repository from the manifest."""
    ctx = build_context()
    service = ManifestEditService(workspace=ctx.workspace, console=ctx.console)
    exit_on_error(service.remove_repo(name, delete_files=delete), ctx)


# -----------------------------------------------------------------------------
# group
# -----------------------------------------------------------------------------


@group_app.command("list")
def group_list(json_output: bool = JSON_OPTION) -> None:
    """List groups and their members."""
    ctx = build_context(json_output=json_output)
    service = ManifestEditService(workspace=ctx.workspace, console=ctx.console)
    listing = service.list_groups()
    if json_output:
        echo_json(listing.to_dict())
    else:
        service.render_groups(listing)


@group_app.command("add")
def group_add(
    group: str = typer.Argument(..., help="Group name"),
    repos: list[str] = typer.Argument(..., help="Repositories to add"),
) -> None:
    """Add repositories to a group."""
    ctx = build_context()
    exit_on_error(ManifestEditService(workspace=ctx.workspace, console=ctx.console).add_to_group(group, repos), ctx)


@group_app.command("remove")
def group_remove(
    group: str = typer.Argument(..., help="Group name"),
    repos: list[str] | None = typer.Argument(None, help="Repositories to remove (default: all members)"),
) -> None:
    """Remove repositories from a group."""
    ctx = build_context()
    service = ManifestEditService(workspace=ctx.workspace, console=ctx.console)
    exit_on_error(service.remove_from_group(group, repos or []), ctx)


@group_app.command("create")
def group_create(
    group: str = typer.Argument(..., help="Group name"),
    repos: list[str] | None = typer.Argument(None, help="Initial members"),
) -> None:
    """Create a group from one or more repositories."""
    ctx = build_context()
    service = ManifestEditService(workspace=ctx.workspace, console=ctx.console)
    exit_on_error(service.create_group(group, repos or []), ctx)


# -----------------------------------------------------------------------------
# manifest
# -----------------------------------------------------------------------------


@manifest_app.command("sync")
def manifest_sync() -> None:
    """Pull the manifest repository."""
    ctx = build_context()
    result = exit_on_error(SyncService(workspace=ctx.workspace, console=ctx.console).sync_manifest(), ctx)
    if isinstance(result.outcome, Failed):
        raise typer.Exit(code=int(partial_failure(1, "sync").code))


@manifest_app.command("schema")
def manifest_schema(
    fmt: SchemaFormat = typer.Option(SchemaFormat.yaml, "--format", "-f", help="yaml | json | markdown"),
) -> None:
    """Print the accepted manifest shape."""
    typer.echo(render_schema(fmt.value))
