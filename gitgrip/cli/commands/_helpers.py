"""Shared helpers and option declarations for CLI commands."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, NoReturn

import typer

from gitgrip.core.errors import ErrorCode
from gitgrip.core.result import Err, Result
from gitgrip.output.console import Style
from gitgrip.services.errors import partial_failure
from gitgrip.services.executor import RepoOutcome, Summary
from gitgrip.services.selection import RepoSelection

if TYPE_CHECKING:
    from gitgrip.cli.context import CLIContext


REPO_OPTION = typer.Option(None, "--repo", "-r", help="Only these repositories (repeatable)")
GROUP_OPTION = typer.Option(None, "--group", "-g", help="Only repositories in these groups (repeatable)")
JSON_OPTION = typer.Option(False, "--json", help="Print machine-readable JSON")
PARALLEL_OPTION = typer.Option(True, "--parallel/--sequential", help="Visit repositories concurrently")


def selection(repo: list[str] | None, group: list[str] | None) -> RepoSelection:
    return RepoSelection(repos=tuple(repo or ()), groups=tuple(group or ()))


def echo_json(data: object) -> None:
    typer.echo(json.dumps(data, indent=2))


def exit_on_error[T, E](
    result: Result[T, E],
    ctx: CLIContext,
    error_code: ErrorCode | None = None,
) -> T:
    """Return the Ok value, or report the error and exit.

    The exit code comes from the error's own ``code`` when it has one.
    Expects error objects to have 'message' and optional 'hint' attributes.
    """
    if isinstance(result, Err):
        error = result.error
        message: str = getattr(error, "message", str(error))
        hint: str | None = getattr(error, "hint", None)
        ctx.console.error(message)
        if hint:
            ctx.console.print(f"hint: {hint}", Style.DIM)
        code = error_code if error_code is not None else getattr(error, "code", ErrorCode.USER_ERROR)
        raise typer.Exit(code=int(code))
    return result.value


def finish(ctx: CLIContext, outcomes: Sequence[RepoOutcome], verb: str) -> None:
    """Print the summary (or JSON) for a fan-out command and exit non-zero on failures."""
    summary = Summary.from_outcomes(outcomes)
    if ctx.json_output:
        echo_json(summary.to_dict())
    else:
        summary.report(ctx.console)
    if summary.has_errors:
        error = partial_failure(summary.error_count, verb)
        if not ctx.json_output:
            ctx.console.error(error.message)
        raise typer.Exit(code=int(error.code))


def exit_with_code(code: int) -> NoReturn:
    """Exit with given code. Explicit helper for clarity."""
    raise typer.Exit(code=code)
