from __future__ import annotations

import os
from pathlib import Path

import typer

from gitgrip import __version__
from gitgrip.cli.commands.agent import agent_app
from gitgrip.cli.commands.branch import branch, checkout
from gitgrip.cli.commands.changes import add, commit, diff, push, rebase
from gitgrip.cli.commands.ci import ci_app
from gitgrip.cli.commands.init_cmd import init
from gitgrip.cli.commands.maintenance import cherry_pick, gc, prune
from gitgrip.cli.commands.manifest import group_app, manifest_app, repo_app
from gitgrip.cli.commands.pr import pr_app
from gitgrip.cli.commands.release import release
from gitgrip.cli.commands.search import forall, grep
from gitgrip.cli.commands.status import status
from gitgrip.cli.commands.sync import pull, sync
from gitgrip.cli.commands.tree import tree_app
from gitgrip.cli.commands.workspace import env, link, run, verify
from gitgrip.cli.context import global_options
from gitgrip.core.errors import ErrorCode
from gitgrip.core.workspace import WORKSPACE_ENV_VAR, is_workspace_root


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="gitgrip - manage many git repositories as one workspace.",
)


# Commands
app.command()(init)
app.command()(sync)
app.command()(pull)
app.command()(status)
app.command()(branch)
app.command()(checkout)
app.command()(add)
app.command()(diff)
app.command()(commit)
app.command()(push)
app.command()(rebase)
app.command("cherry-pick")(cherry_pick)
app.command()(gc)
app.command()(prune)
app.command()(grep)
app.command()(forall)
app.command()(link)
app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})(run)
app.command()(env)
app.command()(verify)
app.command()(release)

# Sub-apps
app.add_typer(pr_app, name="pr")
app.add_typer(tree_app, name="tree")
app.add_typer(group_app, name="group")
app.add_typer(repo_app, name="repo")
app.add_typer(ci_app, name="ci")
app.add_typer(manifest_app, name="manifest")
app.add_typer(agent_app, name="agent")


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print warnings and errors."),
    workspace: Path | None = typer.Option(
        None,
        "--workspace",
        help="Workspace root (overrides auto detection)",
    ),
) -> None:
    del version
    global_options.quiet = quiet

    if workspace is not None:
        try:
            root = workspace.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --workspace: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not root.is_dir() or not is_workspace_root(root):
            typer.echo(
                f"error: --workspace '{root}' is not a gitgrip workspace (missing .gitgrip/)",
                err=True,
            )
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[WORKSPACE_ENV_VAR] = str(root)


def main() -> None:
    app()
