"""Release command - bump, changelog, build, PR and merge."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import JSON_OPTION, echo_json, exit_on_error
from gitgrip.cli.context import build_context
from gitgrip.services.release import ReleaseOptions, ReleaseService


def release(
    version: str = typer.Argument(..., help="Version to release (1.2.3 or v1.2.3)"),
    notes: str | None = typer.Option(None, "--notes", "-n", help="Changelog notes for this release"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show every step without changing anything"),
    skip_pr: bool = typer.Option(False, "--skip-pr", help="Stop after the local steps"),
    timeout: float = typer.Option(600.0, "--timeout", help="Seconds to wait for the release PRs to become ready"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Cut a release across the workspace."""
    ctx = build_context(json_output=json_output)
    options = ReleaseOptions(version=version, notes=notes, dry_run=dry_run, skip_pr=skip_pr, timeout=timeout)
    report = exit_on_error(ReleaseService(workspace=ctx.workspace, console=ctx.console).run(options), ctx)
    if json_output:
        echo_json(report.to_dict())
