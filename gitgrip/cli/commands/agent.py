"""Agent commands - workspace context and per-repo build/test/lint."""

from __future__ import annotations

import typer

from gitgrip.cli.commands._helpers import JSON_OPTION, echo_json, exit_on_error
from gitgrip.cli.context import build_context
from gitgrip.services.agent import AgentService

agent_app = typer.Typer(no_args_is_help=True, help="Context and checks for AI coding agents.")

AGENT_REPO_OPTION = typer.Option(None, "--repo", "-r", help="Only this repository")


@agent_app.command("context")
def context(
    repo: str | None = AGENT_REPO_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Describe the workspace as markdown (or JSON) for an agent's system prompt."""
    ctx = build_context(json_output=json_output)
    described = exit_on_error(AgentService(workspace=ctx.workspace, console=ctx.console).context(repo), ctx)
    if json_output:
        echo_json(described.to_dict())
    else:
        typer.echo(described.to_markdown())


@agent_app.command("build")
def build(repo: str | None = AGENT_REPO_OPTION) -> None:
    """Run each repository's agent.build command."""
    ctx = build_context()
    exit_on_error(AgentService(workspace=ctx.workspace, console=ctx.console).run("build", repo), ctx)


@agent_app.command("test")
def test(repo: str | None = AGENT_REPO_OPTION) -> None:
    """Run each repository's agent.test command."""
    ctx = build_context()
    exit_on_error(AgentService(workspace=ctx.workspace, console=ctx.console).run("test", repo), ctx)


@agent_app.command("verify")
def verify(
    repo: str | None = AGENT_REPO_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Run build, test and lint for every repository and summarize."""
    ctx = build_context(json_output=json_output)
    report = exit_on_error(AgentService(workspace=ctx.workspace, console=ctx.console).verify(repo), ctx)
    if json_output:
        echo_json(report.to_dict())


@agent_app.command("generate-context")
def generate_context(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be written"),
) -> None:
    """Write the context files listed under workspace.agent.targets."""
    ctx = build_context()
    exit_on_error(
        AgentService(workspace=ctx.workspace, console=ctx.console).generate_context(dry_run=dry_run), ctx
    )
