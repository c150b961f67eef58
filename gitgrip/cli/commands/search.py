"""Grep and forall commands."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import (
    GROUP_OPTION,
    JSON_OPTION,
    PARALLEL_OPTION,
    REPO_OPTION,
    echo_json,
    selection,
)
from gitgrip.cli.context import build_context
from gitgrip.services.errors import partial_failure
from gitgrip.services.executor import Summary
from gitgrip.services.search import SearchService


def grep(
    pattern: str = typer.Argument(..., help="Pattern passed to git grep"),
    pathspecs: list[str] | None = typer.Argument(None, help="Limit the search to these paths"),
    ignore_case: bool = typer.Option(False, "--ignore-case", "-i", help="Case-insensitive match"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    parallel: bool = PARALLEL_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Search tracked files across repositories."""
    ctx = build_context(json_output=json_output)
    service = SearchService(workspace=ctx.workspace, console=ctx.console, parallel=parallel)
    matches, outcomes = service.grep(pattern, pathspecs, selection(repo, group), ignore_case=ignore_case)
    if json_output:
        echo_json([{"repo": m.repo, "line": m.line} for m in matches])
    else:
        service.render_matches(matches)
    summary = Summary.from_outcomes(outcomes)
    if summary.has_errors:
        raise typer.Exit(code=int(partial_failure(summary.error_count, "search").code))


def forall(
    command: str = typer.Option(..., "--command", "-c", help="Shell command to run in each repository"),
    changed_only: bool = typer.Option(False, "--changed-only", help="Only repositories with changes"),
    include_refs: bool = typer.Option(False, "--include-refs", help="Also run in reference repositories"),
    repo: list[str] | None = REPO_OPTION,
    group: list[str] | None = GROUP_OPTION,
    parallel: bool = typer.Option(False, "--parallel/--sequential", help="Run concurrently"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Run a shell command in every repository.

    REPO_NAME, REPO_PATH, REPO_URL and REPO_BRANCH are exported.
    """
    ctx = build_context(json_output=json_output)
    service = SearchService(workspace=ctx.workspace, console=ctx.console, parallel=parallel)
    results, outcomes = service.forall(
        command,
        selection(repo, group),
        changed_only=changed_only,
        include_reference=include_refs,
    )
    summary = Summary.from_outcomes(outcomes)
    if json_output:
        echo_json({"results": [r.to_dict() for r in results], "summary": summary.to_dict()})
    else:
        summary.report(ctx.console)
    if summary.has_errors:
        raise typer.Exit(code=int(partial_failure(summary.error_count, "run the command").code))
