"""Pull request commands (linked PRs across repositories)."""

from __future__ import annotations

from enum import Enum

import typer

from gitgrip.cli.commands._helpers import GROUP_OPTION, JSON_OPTION, REPO_OPTION, echo_json, exit_on_error, selection
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.services.pr import CreateOptions, MergeOptions, PRCreateService, PRMergeService, PRStatusService

pr_app = typer.Typer(no_args_is_help=True, help="Create, inspect and merge linked pull requests.")


class MergeMethodChoice(str, Enum):
    merge = "merge"
    squash = "squash"
    rebase = "rebase"


@pr_app.command("create")
def create(
    title: str | None = typer.Option(None, "--title", "-t", help="PR title (default: derived from the branch)"),
    body: str | None = typer.Option(None, "--body", "-b", help="PR description"),
    draft: bool = typer.Option(False, "--draft", help="Open as draft"),
    push: bool = typer.Option(False, "--push", help="Push branches before creating"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without creating"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Open one PR per repository with changes on the current branch."""
    ctx = build_context(json_output=json_output)
    options = CreateOptions(
        title=title,
        body=body,
        draft=draft,
        push=push,
        dry_run=dry_run,
        selection=selection(repo, group),
    )
    report = exit_on_error(PRCreateService(workspace=ctx.workspace, console=ctx.console).create(options), ctx)
    if json_output:
        echo_json(report.to_dict())
    if report.failed:
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))


@pr_app.command("status")
def status(
    refresh: bool = typer.Option(False, "--refresh", help="Also update the PR state recorded in the workspace"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show state, approval, checks and mergeability of each PR."""
    ctx = build_context(json_output=json_output)
    service = PRStatusService(workspace=ctx.workspace, console=ctx.console)
    report = service.status(selection(repo, group))
    if json_output:
        echo_json(report.to_dict())
    else:
        service.render_status(report)
    if refresh:
        updated = exit_on_error(service.refresh(), ctx)
        ctx.console.info(f"Updated {updated} recorded PR(s)")
    if report.errors:
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))


@pr_app.command("checks")
def checks(
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show CI check tallies for each PR."""
    ctx = build_context(json_output=json_output)
    service = PRStatusService(workspace=ctx.workspace, console=ctx.console)
    report = service.status(selection(repo, group))
    if json_output:
        rows: list[dict[str, object]] = []
        for r in report.rows:
            tally: dict[str, object] | None = None
            if r.checks is not None:
                tally = {
                    "state": r.checks.state,
                    "passed": r.checks.passed,
                    "failed": r.checks.failed,
                    "pending": r.checks.pending,
                    "total": r.checks.total,
                }
            rows.append({"repo": r.name, "number": r.pr.number, "checks": tally})
        echo_json(rows)
    else:
        service.render_checks(report)
    if any(r.checks is not None and r.checks.state == "failure" for r in report.rows):
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))


@pr_app.command("diff")
def diff(
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Print the combined diff of every PR."""
    ctx = build_context(json_output=json_output)
    service = PRStatusService(workspace=ctx.workspace, console=ctx.console)
    diffs = exit_on_error(service.diff(selection(repo, group)), ctx)
    if json_output:
        echo_json([d.to_dict() for d in diffs])
    else:
        service.render_diff(diffs)


@pr_app.command("merge")
def merge(
    method: MergeMethodChoice | None = typer.Option(None, "--method", "-m", help="merge | squash | rebase"),
    force: bool = typer.Option(False, "--force", "-f", help="Merge even if some PRs are not ready"),
    update: bool = typer.Option(False, "--update", help="Update branches that are behind base and retry"),
    auto: bool = typer.Option(False, "--auto", help="Enable platform auto-merge instead of merging now"),
    wait: bool = typer.Option(False, "--wait", help="Wait until every PR is ready"),
    timeout: float = typer.Option(600.0, "--timeout", help="Seconds to wait with --wait"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Merge all linked PRs (all-or-nothing unless the manifest says independent)."""
    ctx = build_context(json_output=json_output)
    options = MergeOptions(
        method=method.value if method is not None else None,
        force=force,
        update=update,
        auto=auto,
        wait=wait,
        timeout=timeout,
        selection=selection(repo, group),
    )
    report = exit_on_error(PRMergeService(workspace=ctx.workspace, console=ctx.console).merge(options), ctx)
    if json_output:
        echo_json(report.to_dict())
    if not report.success:
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))
