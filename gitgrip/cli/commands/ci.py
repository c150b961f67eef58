"""CI pipeline commands."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import JSON_OPTION, echo_json, exit_on_error
from gitgrip.cli.context import build_context
from gitgrip.core.errors import ErrorCode
from gitgrip.services.ci import CiService

ci_app = typer.Typer(no_args_is_help=True, help="Run manifest-defined CI pipelines locally.")


@ci_app.command("list")
def list_(json_output: bool = JSON_OPTION) -> None:
    """List pipelines defined in the manifest."""
    ctx = build_context(json_output=json_output)
    service = CiService(workspace=ctx.workspace, console=ctx.console)
    if json_output:
        echo_json(service.list_pipelines())
    else:
        service.render_list()


@ci_app.command("run")
def run(
    name: str = typer.Argument(..., help="Pipeline name"),
    json_output: bool = JSON_OPTION,
) -> None:
    """Run a pipeline and save its result under .gitgrip/ci-results/."""
    ctx = build_context(json_output=json_output)
    record = exit_on_error(
        CiService(workspace=ctx.workspace, console=ctx.console).run(name, echo=not json_output), ctx
    )
    if json_output:
        echo_json(record.to_dict())
    if not record.success:
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))


@ci_app.command("status")
def status(json_output: bool = JSON_OPTION) -> None:
    """Show the last saved result of each pipeline."""
    ctx = build_context(json_output=json_output)
    service = CiService(workspace=ctx.workspace, console=ctx.console)
    results = service.results()
    if json_output:
        echo_json([r.to_dict() for r in results])
    else:
        service.render_status(results)
