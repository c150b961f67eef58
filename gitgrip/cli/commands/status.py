"""Status command - one row per repository."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import GROUP_OPTION, JSON_OPTION, REPO_OPTION, echo_json, exit_on_error, selection
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.services.status import StatusService


def status(
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List changes per repository"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show branch, changes and sync state of every repository."""
    ctx = build_context(json_output=json_output)
    service = StatusService(workspace=ctx.workspace, console=ctx.console)
    report = exit_on_error(service.collect(selection(repo, group)), ctx)

    if json_output:
        echo_json(report.to_dict())
    else:
        ctx.console.header(f"Workspace: {ctx.workspace.name}")
        service.render(report, verbose=verbose)

    if report.errors:
        raise typer.Exit(code=int(ErrorCode.GIT_ERROR))
