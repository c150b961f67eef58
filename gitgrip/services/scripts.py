"""Workspace scripts (``gr run``) and environment (``gr env``)."""

from __future__ import annotations

from dataclasses import dataclass

from gitgrip.core.manifest import Script
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.workspace import Workspace
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.process import run_shell
from gitgrip.services.errors import ServiceError

__all__ = ["ScriptService", "ScriptStepResult"]


@dataclass(frozen=True, slots=True)
class ScriptStepResult:
    name: str
    command: str
    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0


def _with_args(command: str, args: list[str]) -> str:
    if not args:
        return command
    return " ".join([command, *(_quote(a) for a in args)])


def _quote(arg: str) -> str:
    if arg and all(c.isalnum() or c in "-_./=:@" for c in arg):
        return arg
    return "'" + arg.replace("'", "'\"'\"'") + "'"


class ScriptService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    @property
    def scripts(self) -> dict[str, Script]:
        return self._workspace.manifest.workspace.scripts

    def list_scripts(self) -> None:
        if not self.scripts:
            self._console.print("No scripts defined in the manifest.")
            return
        self._console.header("Workspace scripts")
        for name, script in sorted(self.scripts.items()):
            detail = script.description or script.command or f"{len(script.steps or ())} steps"
            self._console.print(f"  {name} - {detail}")

    def run(self, name: str, args: list[str] | None = None) -> Result[list[ScriptStepResult], ServiceError]:
        """Run a script; multi-step scripts stop at the first failing step.

        Extra ``args`` are appended to a single-command script only.
        """
        script = self.scripts.get(name)
        if script is None:
            available = ", ".join(sorted(self.scripts)) or "none"
            return Err(ServiceError(kind="user", message=f"Script '{name}' not found. Available: {available}"))

        env = self._workspace.env_vars()
        root = self._workspace.root
        results: list[ScriptStepResult] = []

        if script.command is not None:
            command = _with_args(script.command, args or [])
            self._console.header(f"Running {name}")
            self._console.print(f"$ {command}", Style.DIM)
            cwd = root / script.cwd if script.cwd else root
            outcome = run_shell(command, cwd, env, capture=False)
            results.append(ScriptStepResult(name, command, outcome.returncode))
        else:
            steps = script.steps or ()
            for index, step in enumerate(steps, start=1):
                self._console.header(f"[{index}/{len(steps)}] {step.name}")
                self._console.print(f"$ {step.command}", Style.DIM)
                cwd = root / step.cwd if step.cwd else root
                outcome = run_shell(step.command, cwd, env, capture=False)
                results.append(ScriptStepResult(step.name, step.command, outcome.returncode))
                if not outcome.success:
                    break

        failed = [r for r in results if not r.success]
        if failed:
            step = failed[0]
            return Err(
                ServiceError(kind="user", message=f"Script '{name}' failed at '{step.name}' (exit {step.returncode})")
            )
        self._console.success(f"Script '{name}' completed")
        return Ok(results)

    def env(self) -> dict[str, str]:
        return self._workspace.env_vars()

    def render_env(self) -> None:
        env = self.env()
        self._console.header("Workspace Environment")
        for key in ("GITGRIP_WORKSPACE", "GITGRIP_MANIFEST"):
            self._console.print(f"  {key}={env[key]}")
        custom = self._workspace.manifest.workspace.env
        if custom:
            self._console.newline()
            self._console.print("Workspace variables:")
            for key, value in sorted(custom.items()):
                self._console.print(f"  {key}={value}")
