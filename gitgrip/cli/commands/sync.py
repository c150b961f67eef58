"""Sync and pull commands."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import (
    GROUP_OPTION,
    JSON_OPTION,
    PARALLEL_OPTION,
    REPO_OPTION,
    echo_json,
    finish,
    selection,
)
from gitgrip.cli.context import build_context
from gitgrip.services.errors import partial_failure
from gitgrip.services.sync import SyncOptions, SyncService


def sync(
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    parallel: bool = PARALLEL_OPTION,
    reset_refs: bool = typer.Option(False, "--reset-refs", help="Hard-reset reference repos to their upstream"),
    no_hooks: bool = typer.Option(False, "--no-hooks", help="Skip post-sync hooks"),
    no_links: bool = typer.Option(False, "--no-links", help="Skip copyfile/linkfile application"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Clone missing repositories and pull the rest."""
    ctx = build_context(json_output=json_output)
    ctx.console.header(f"Syncing {ctx.workspace.name}")
    report = SyncService(workspace=ctx.workspace, console=ctx.console).sync(
        SyncOptions(
            selection=selection(repo, group),
            parallel=parallel,
            reset_refs=reset_refs,
            no_hooks=no_hooks,
            no_links=no_links,
        )
    )

    summary = report.summary
    if json_output:
        echo_json(report.to_dict())
    else:
        summary.report(ctx.console)
    if summary.has_errors:
        raise typer.Exit(code=int(partial_failure(summary.error_count, "sync").code))


def pull(
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    rebase: bool = typer.Option(False, "--rebase", help="Rebase instead of merge"),
    parallel: bool = PARALLEL_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Pull the current branch in every repository."""
    ctx = build_context(json_output=json_output)
    ctx.console.header("Pulling")
    outcomes = SyncService(workspace=ctx.workspace, console=ctx.console).pull(
        selection(repo, group),
        mode="rebase" if rebase else "merge",
        parallel=parallel,
    )
    finish(ctx, outcomes, "pull")
