"""Working-copy commands: add, commit, diff, push, rebase."""

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
from gitgrip.core.errors import ErrorCode
from gitgrip.services.changes import ChangeService


def add(
    paths: list[str] | None = typer.Argument(None, help="Paths to stage ('.' or nothing stages everything)"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Stage changes in every repository that has some."""
    ctx = build_context(json_output=json_output)
    ctx.console.header("Staging changes")
    outcomes = ChangeService(workspace=ctx.workspace, console=ctx.console).add(paths or [], selection(repo, group))
    finish(ctx, outcomes, "stage")


def commit(
    message: str | None = typer.Option(None, "--message", "-m", help="Commit message"),
    amend: bool = typer.Option(False, "--amend", help="Amend the previous commit"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Commit staged changes in every repository with something staged."""
    ctx = build_context(json_output=json_output)
    if not message and not amend:
        ctx.console.error("A commit message is required (-m)")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    ctx.console.header("Committing")
    outcomes = ChangeService(workspace=ctx.workspace, console=ctx.console).commit(
        message, selection(repo, group), amend=amend
    )
    finish(ctx, outcomes, "commit")


def diff(
    staged: bool = typer.Option(False, "--staged", help="Show staged changes"),
    stat: bool = typer.Option(False, "--stat", help="Show a diffstat only"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the working-copy diff of every repository."""
    ctx = build_context(json_output=json_output)
    service = ChangeService(workspace=ctx.workspace, console=ctx.console)
    diffs = service.diff(selection(repo, group), staged=staged, stat=stat)
    if json_output:
        echo_json([d.to_dict() for d in diffs])
    else:
        service.render_diff(diffs)


def push(
    set_upstream: bool = typer.Option(False, "--set-upstream", "-u", help="Set the upstream on first push"),
    force: bool = typer.Option(False, "--force", "-f", help="Force push (with lease)"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    parallel: bool = PARALLEL_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Push the current branch wherever it has unpushed commits."""
    ctx = build_context(json_output=json_output)
    service = ChangeService(workspace=ctx.workspace, console=ctx.console, parallel=parallel)
    outcomes = service.push(selection(repo, group), set_upstream=set_upstream, force=force)
    finish(ctx, outcomes, "push")


def rebase(
    onto: str | None = typer.Argument(None, help="Target (default: origin/<default branch>)"),
    abort: bool = typer.Option(False, "--abort", help="Abort an in-progress rebase"),
    continue_: bool = typer.Option(False, "--continue", help="Continue an in-progress rebase"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Rebase feature branches onto their default branch."""
    ctx = build_context(json_output=json_output)
    if abort and continue_:
        ctx.console.error("--abort and --continue cannot be combined")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    service = ChangeService(workspace=ctx.workspace, console=ctx.console)
    chosen = selection(repo, group)
    if abort:
        finish(ctx, service.rebase_abort(chosen), "abort the rebase")
    elif continue_:
        finish(ctx, service.rebase_continue(chosen), "continue the rebase")
    else:
        finish(ctx, service.rebase(onto, chosen), "rebase")
