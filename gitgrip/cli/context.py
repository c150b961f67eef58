from __future__ import annotations

from dataclasses import dataclass

import typer

from gitgrip.core.errors import ErrorCode
from gitgrip.core.result import Err
from gitgrip.core.workspace import Workspace, detect_workspace_root, load_workspace
from gitgrip.output.console import ConsoleProtocol, RichConsole, Style


@dataclass(slots=True)
class GlobalOptions:
    """Flags given before the subcommand (``gr --quiet status``)."""

    quiet: bool = False


global_options = GlobalOptions()


@dataclass(frozen=True, slots=True)
class CLIContext:
    workspace: Workspace
    console: ConsoleProtocol
    json_output: bool = False


def make_console(*, json_output: bool = False) -> ConsoleProtocol:
    """JSON mode keeps stdout for the document; everything else goes to stderr."""
    if json_output:
        return RichConsole(quiet=True, stderr=True)
    return RichConsole(quiet=global_options.quiet)


def build_context(*, json_output: bool = False) -> CLIContext:
    console = make_console(json_output=json_output)

    root_result = detect_workspace_root()
    if isinstance(root_result, Err):
        e = root_result.error
        console.error(e.message)
        if e.hint:
            console.print(f"hint: {e.hint}", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    workspace_result = load_workspace(root_result.value)
    if isinstance(workspace_result, Err):
        e = workspace_result.error
        console.error(e.message)
        if e.hint:
            console.print(f"hint: {e.hint}", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(workspace=workspace_result.value, console=console, json_output=json_output)
