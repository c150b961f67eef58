"""Cherry-pick, gc and prune commands."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import GROUP_OPTION, JSON_OPTION, REPO_OPTION, echo_json, finish, selection
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.services.cherry_pick import CherryPickService
from gitgrip.services.errors import partial_failure
from gitgrip.services.executor import Summary
from gitgrip.services.maintenance import MaintenanceService


def cherry_pick(
    sha: str | None = typer.Argument(None, help="Commit to apply"),
    abort: bool = typer.Option(False, "--abort", help="Abort an in-progress cherry-pick"),
    continue_: bool = typer.Option(False, "--continue", help="Continue after resolving conflicts"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Apply a commit in every repository that contains it."""
    ctx = build_context(json_output=json_output)
    service = CherryPickService(workspace=ctx.workspace, console=ctx.console)
    chosen = selection(repo, group)

    if abort:
        finish(ctx, service.abort(chosen), "abort the cherry-pick")
        return
    if continue_:
        finish(ctx, service.resume(chosen), "continue the cherry-pick")
        return
    if sha is None:
        ctx.console.error("A commit is required unless --abort or --continue is given")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    report = service.pick(sha, chosen)
    if json_output:
        echo_json(report.to_dict())
    if report.summary.has_errors:
        raise typer.Exit(code=int(partial_failure(report.summary.error_count, "cherry-pick").code))


def gc(
    aggressive: bool = typer.Option(False, "--aggressive", help="Run git gc --aggressive"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report .git sizes"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Garbage-collect every repository and report space saved."""
    ctx = build_context(json_output=json_output)
    report = MaintenanceService(workspace=ctx.workspace, console=ctx.console).gc(
        selection(repo, group), aggressive=aggressive, dry_run=dry_run
    )
    if json_output:
        echo_json(report.to_dict())
    summary = Summary.from_outcomes(report.outcomes)
    if summary.has_errors:
        raise typer.Exit(code=int(partial_failure(summary.error_count, "gc").code))


def prune(
    execute: bool = typer.Option(False, "--execute", help="Delete the branches (default lists them)"),
    remote: bool = typer.Option(False, "--remote", help="Also prune stale remote-tracking refs"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete local branches already merged into the default branch."""
    ctx = build_context(json_output=json_output)
    report = MaintenanceService(workspace=ctx.workspace, console=ctx.console).prune(
        selection(repo, group), execute=execute, remote=remote
    )
    if json_output:
        echo_json(report.to_dict())
