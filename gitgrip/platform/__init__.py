"""Process and filesystem primitives."""

from .process import ProcessError, ShellOutcome, run, run_shell

__all__ = ["ProcessError", "ShellOutcome", "run", "run_shell"]
