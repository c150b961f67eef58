from __future__ import annotations

from pathlib import Path

import typer

from gitgrip.cli.context import make_console
from gitgrip.core.errors import ErrorCode
from gitgrip.core.result import Err, Ok
from gitgrip.output.console import Style
from gitgrip.services.init import InitService


def init(
    url: str | None = typer.Argument(None, help="Manifest repository URL"),
    path: Path | None = typer.Option(None, "--path", "-p", help="Workspace directory"),
    from_dirs: bool = typer.Option(False, "--from-dirs", help="Generate a manifest from existing clones"),
    dirs: list[str] | None = typer.Option(None, "--dirs", help="With --from-dirs, only these directories"),
) -> None:
    """Create a workspace from a manifest URL or from existing clones."""
    console = make_console()
    service = InitService(console=console)

    if from_dirs:
        result = service.init_from_dirs(path, dirs)
    elif url is None:
        console.error("Manifest URL required. Usage: gr init <manifest-url>")
        console.print("hint: or run 'gr init --from-dirs' inside a directory of clones", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    else:
        result = service.init_from_url(url, path)

    match result:
        case Err(e):
            console.error(e.message)
            if e.hint:
                console.print(f"hint: {e.hint}", Style.DIM)
            raise typer.Exit(code=int(e.code))
        case Ok(_):
            pass
