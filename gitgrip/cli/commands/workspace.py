"""Workspace-level commands: link, run, env, verify."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import GROUP_OPTION, JSON_OPTION, REPO_OPTION, echo_json, exit_on_error, selection
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.core.result import Err, Ok
from gitgrip.services.links import LinkService
from gitgrip.services.scripts import ScriptService
from gitgrip.services.verify import VerifyOptions, VerifyReport, VerifyService


def link(
    status: bool = typer.Option(False, "--status", help="Show link status (default)"),
    apply: bool = typer.Option(False, "--apply", help="Create or refresh copyfile/linkfile entries"),
    dry_run: bool = typer.Option(False, "--dry-run", help="With --apply, only show what would change"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show or apply the manifest's copyfile and linkfile entries."""
    ctx = build_context(json_output=json_output)
    service = LinkService(workspace=ctx.workspace, console=ctx.console)

    if apply and not status:
        ctx.console.header("Applying file links")
        applied, failed = service.apply(dry_run=dry_run)
        if json_output:
            echo_json({"applied": applied, "failed": [entry.to_dict() for entry in failed]})
        else:
            ctx.console.newline()
            ctx.console.print(f"{applied} applied, {len(failed)} failed")
        if failed:
            raise typer.Exit(code=int(ErrorCode.IO_ERROR))
        return

    ctx.console.header("File link status")
    entries = service.status()
    if json_output:
        echo_json([entry.to_dict() for entry in entries])


def run(
    name: str | None = typer.Argument(None, help="Script to run (omit to list scripts)"),
    args: list[str] | None = typer.Argument(None, help="Extra arguments for a single-command script"),
) -> None:
    """Run a workspace script from the manifest."""
    ctx = build_context()
    service = ScriptService(workspace=ctx.workspace, console=ctx.console)
    if name is None:
        service.list_scripts()
        return
    exit_on_error(service.run(name, args or []), ctx)


def env(json_output: bool = JSON_OPTION) -> None:
    """Print the environment exported to scripts, hooks and forall."""
    ctx = build_context(json_output=json_output)
    service = ScriptService(workspace=ctx.workspace, console=ctx.console)
    if json_output:
        echo_json(service.env())
    else:
        service.render_env()


def verify(
    clean: bool = typer.Option(False, "--clean", help="Every repository has a clean working tree"),
    links: bool = typer.Option(False, "--links", help="Every copyfile/linkfile is in place"),
    on_branch: str | None = typer.Option(None, "--on-branch", help="Every repository is on this branch"),
    synced: bool = typer.Option(False, "--synced", help="No repository is behind its upstream"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Assert workspace conditions (for scripts and CI).

    With --json the exit code is always 0; read the "pass" field.
    """
    ctx = build_context(json_output=json_output)
    service = VerifyService(workspace=ctx.workspace, console=ctx.console)
    options = VerifyOptions(
        clean=clean,
        links=links,
        on_branch=on_branch,
        synced=synced,
        selection=selection(repo, group),
    )

    if json_output:
        match service.verify(options):
            case Ok(report):
                echo_json(report.to_dict())
            case Err(_):
                echo_json(VerifyReport.no_checks().to_dict())
        return

    report = exit_on_error(service.verify(options), ctx)
    service.render(report)
    if not report.passed:
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
