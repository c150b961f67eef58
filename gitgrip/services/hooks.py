"""Workspace hooks (``post-sync``, ``post-checkout``)."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass

from gitgrip.core.manifest import HookCommand
from gitgrip.core.workspace import Workspace
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.process import run_shell

__all__ = ["HookResult", "run_hooks", "should_run"]


@dataclass(frozen=True, slots=True)
class HookResult:
    name: str
    success: bool
    output: str = ""
    skipped: bool = False

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "success": self.success, "skipped": self.skipped}


def should_run(hook: HookCommand, changed_repos: Collection[str]) -> bool:
    """``always`` hooks run unconditionally; ``changed`` hooks need a change in scope."""
    if hook.condition == "always":
        return True
    if not changed_repos:
        return False
    if not hook.repos:
        return True
    return any(name in changed_repos for name in hook.repos)


def run_hooks(
    hooks: Sequence[HookCommand],
    *,
    workspace: Workspace,
    console: ConsoleProtocol,
    changed_repos: Collection[str] = (),
    label: str = "hook",
) -> list[HookResult]:
    """Run ``hooks`` in order; failures are reported and never stop the caller."""
    if not hooks:
        return []

    env = workspace.env_vars()
    results: list[HookResult] = []
    console.newline()
    console.header(f"Running {label} hooks")
    for hook in hooks:
        name = hook.name or hook.command
        if not should_run(hook, changed_repos):
            console.skip(f"{name}: no changes")
            results.append(HookResult(name=name, success=True, skipped=True))
            continue

        cwd = workspace.root / hook.cwd if hook.cwd else workspace.root
        with console.progress(f"{name}..."):
            outcome = run_shell(hook.command, cwd, env)
        if outcome.success:
            console.success(name)
        else:
            console.failure(f"{name} (exit {outcome.returncode})")
            if outcome.output.strip():
                console.print(outcome.output.rstrip(), Style.DIM)
        results.append(HookResult(name=name, success=outcome.success, output=outcome.output))
    return results
