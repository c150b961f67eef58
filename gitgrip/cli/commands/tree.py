"""Griptree commands - parallel worktree workspaces."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import JSON_OPTION, echo_json, exit_on_error
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.services.griptrees import GriptreeService, ReturnOptions

tree_app = typer.Typer(no_args_is_help=True, help="Manage griptrees (one worktree per repo on a branch).")


@tree_app.command("add")
def add(
    branch: str = typer.Argument(..., help="Branch the griptree works on"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Create a griptree next to the workspace."""
    ctx = build_context(json_output=json_output)
    created = exit_on_error(GriptreeService(workspace=ctx.workspace, console=ctx.console).create(branch), ctx)
    if json_output:
        echo_json(created.to_dict())
    if created.failed:
        raise typer.Exit(code=int(ErrorCode.GIT_ERROR))


@tree_app.command("list")
def list_(json_output: bool = JSON_OPTION) -> None:
    """List registered (and discovered unregistered) griptrees."""
    ctx = build_context(json_output=json_output)
    service = GriptreeService(workspace=ctx.workspace, console=ctx.console)
    listings = exit_on_error(service.list_griptrees(), ctx)
    if json_output:
        echo_json([g.to_dict() for g in listings])
    else:
        service.render_list(listings)


@tree_app.command("remove")
def remove(
    branch: str = typer.Argument(..., help="Griptree branch"),
    force: bool = typer.Option(False, "--force", "-f", help="Remove even if locked"),
) -> None:
    """Remove a griptree and its worktrees."""
    ctx = build_context()
    exit_on_error(GriptreeService(workspace=ctx.workspace, console=ctx.console).remove(branch, force=force), ctx)


@tree_app.command("lock")
def lock(
    branch: str = typer.Argument(..., help="Griptree branch"),
    reason: str | None = typer.Option(None, "--reason", help="Why it is locked"),
) -> None:
    """Protect a griptree from removal."""
    ctx = build_context()
    service = GriptreeService(workspace=ctx.workspace, console=ctx.console)
    exit_on_error(service.set_locked(branch, True, reason), ctx)


@tree_app.command("unlock")
def unlock(branch: str = typer.Argument(..., help="Griptree branch")) -> None:
    """Allow a griptree to be removed again."""
    ctx = build_context()
    exit_on_error(GriptreeService(workspace=ctx.workspace, console=ctx.console).set_locked(branch, False), ctx)


@tree_app.command("return")
def return_(
    base: str | None = typer.Option(None, "--base", help="Branch to return to (default: the griptree branch)"),
    no_sync: bool = typer.Option(False, "--no-sync", help="Do not sync after switching"),
    autostash: bool = typer.Option(False, "--autostash", help="Stash local changes and restore them afterwards"),
    prune: str | None = typer.Option(None, "--prune", help="Delete this branch afterwards"),
    prune_current: bool = typer.Option(False, "--prune-current", help="Delete the branch each repo was on"),
    prune_remote: bool = typer.Option(False, "--prune-remote", help="Also delete the pruned branches on origin"),
    force: bool = typer.Option(False, "--force", help="Force-delete unmerged branches"),
) -> None:
    """Switch every repository back to the base branch."""
    ctx = build_context()
    options = ReturnOptions(
        base=base,
        no_sync=no_sync,
        autostash=autostash,
        prune_branch=prune,
        prune_current=prune_current,
        prune_remote=prune_remote,
        force=force,
    )
    failures = exit_on_error(GriptreeService(workspace=ctx.workspace, console=ctx.console).return_to_base(options), ctx)
    if failures:
        raise typer.Exit(code=int(ErrorCode.GIT_ERROR))
