"""Subprocess execution with Result-based error handling.

This is the only module that spawns processes. Git, hook, script and CI
execution all go through :func:`run` or :func:`run_shell`.

Usage:
    match run(["git", "rev-parse", "HEAD"], cwd=repo_path):
        case Ok(stdout):
            sha = stdout.strip()
        case Err(error):
            print(error.stderr)
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from gitgrip.core.result import Err, Ok, Result

__all__ = ["ProcessError", "ShellOutcome", "merged_env", "run", "run_shell"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: The exit code of the process (-1 when it never ran).
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def detail(self) -> str:
        """Best single-line-ish explanation: stderr, else stdout, else the exit code."""
        return self.stderr.strip() or self.stdout.strip() or str(self)

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


@dataclass(frozen=True, slots=True)
class ShellOutcome:
    """Completed shell command, successful or not."""

    command: str
    returncode: int
    output: str
    duration_ms: int

    @property
    def success(self) -> bool:
        return self.returncode == 0


def merged_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Current environment overlaid with ``extra``."""
    env = dict(os.environ)
    if extra:
        env.update(extra)
    return env


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=str(e),
            )
        )

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def run_shell(
    command: str,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    capture: bool = True,
    timeout: float | None = None,
) -> ShellOutcome:
    """Run ``command`` through ``sh -c`` and report its exit status.

    A non-zero exit is not an error here: hooks, scripts and CI steps
    decide for themselves what a failure means. With ``capture=False`` the
    output streams to the terminal and ``output`` is empty.
    """
    started = time.monotonic()
    full_env = merged_env(env)
    try:
        proc = subprocess.run(
            ["sh", "-c", command],
            cwd=str(cwd),
            env=full_env,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return ShellOutcome(
            command=command,
            returncode=-1,
            output=f"Command timed out after {timeout}s",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    except OSError as e:
        return ShellOutcome(
            command=command,
            returncode=-1,
            output=str(e),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    output = ""
    if capture:
        output = (proc.stdout or "") + (proc.stderr or "")
    return ShellOutcome(
        command=command,
        returncode=proc.returncode,
        output=output,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
