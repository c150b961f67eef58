"""Branch and checkout commands."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import GROUP_OPTION, JSON_OPTION, REPO_OPTION, echo_json, finish, selection
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.services.branches import BranchService


def branch(
    name: str | None = typer.Argument(None, help="Branch to create (omit to list branches)"),
    delete: bool = typer.Option(False, "--delete", "-d", help="Delete the branch"),
    force: bool = typer.Option(False, "--force", "-D", help="Delete even if not merged"),
    move: bool = typer.Option(False, "--move", "-m", help="Move unpushed commits onto the new branch"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Create, delete or list branches across repositories."""
    ctx = build_context(json_output=json_output)
    service = BranchService(workspace=ctx.workspace, console=ctx.console)
    chosen = selection(repo, group)

    if name is None:
        if delete or move:
            ctx.console.error("A branch name is required with --delete or --move")
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        listings = service.list_branches(chosen)
        if json_output:
            echo_json([listing.to_dict() for listing in listings])
        else:
            service.render_list(listings)
        return

    if delete and move:
        ctx.console.error("--delete and --move cannot be combined")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    if delete:
        finish(ctx, service.delete(name, chosen, force=force), "delete the branch")
    elif move:
        finish(ctx, service.move(name, chosen), "move commits")
    else:
        finish(ctx, service.create(name, chosen), "create the branch")


def checkout(
    name: str = typer.Argument(..., help="Branch to switch to"),
    create: bool = typer.Option(False, "-b", "--create", help="Create the branch where it does not exist"),
    no_hooks: bool = typer.Option(False, "--no-hooks", help="Skip post-checkout hooks"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Switch every repository to a branch."""
    ctx = build_context(json_output=json_output)
    ctx.console.header(f"Checking out '{name}'")
    outcomes = BranchService(workspace=ctx.workspace, console=ctx.console).checkout(
        name,
        selection(repo, group),
        create=create,
        run_post_hooks=not no_hooks,
    )
    finish(ctx, outcomes, "check out")
