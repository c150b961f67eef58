"""CI pipelines defined under ``workspace.ci.pipelines``.

Steps run in order through ``sh -c``. A failing step stops the pipeline
unless it sets ``continue_on_error``; either way the pipeline is marked
failed. Each run is saved as ``.gitgrip/ci-results/<pipeline>.json``.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from gitgrip.core.manifest import CiPipeline, CiStep
from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_obj_list, as_str_dict, get_bool, get_int, get_str, get_text
from gitgrip.core.workspace import Workspace
from gitgrip.output.console import ConsoleProtocol, Style
from gitgrip.platform.files import atomic_write_json
from gitgrip.platform.process import run_shell
from gitgrip.services.errors import ServiceError

__all__ = ["CiService", "PipelineResult", "StepResult"]


@dataclass(frozen=True, slots=True)
class StepResult:
    name: str
    command: str
    success: bool
    exit_code: int | None
    duration_ms: int
    output: str

    def to_dict(self) -> StrDict:
        return {
            "name": self.name,
            "command": self.command,
            "success": self.success,
            "exitCode": self.exit_code,
            "durationMs": self.duration_ms,
            "output": self.output,
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> StepResult:
        return cls(
            name=get_str(data, "name") or "",
            command=get_str(data, "command") or "",
            success=get_bool(data, "success"),
            exit_code=get_int(data, "exitCode"),
            duration_ms=get_int(data, "durationMs") or 0,
            output=get_text(data, "output"),
        )


@dataclass(frozen=True, slots=True)
class PipelineResult:
    pipeline: str
    success: bool
    steps: tuple[StepResult, ...]
    total_duration_ms: int
    timestamp: str

    @property
    def passed_steps(self) -> int:
        return sum(1 for s in self.steps if s.success)

    def to_dict(self) -> StrDict:
        return {
            "pipeline": self.pipeline,
            "success": self.success,
            "steps": [s.to_dict() for s in self.steps],
            "totalDurationMs": self.total_duration_ms,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> PipelineResult | None:
        pipeline = get_str(data, "pipeline")
        if pipeline is None:
            return None
        steps = tuple(
            StepResult.from_dict(step)
            for step in (as_str_dict(item) for item in as_obj_list(data.get("steps")) or [])
            if step is not None
        )
        return cls(
            pipeline=pipeline,
            success=get_bool(data, "success"),
            steps=steps,
            total_duration_ms=get_int(data, "totalDurationMs") or 0,
            timestamp=get_str(data, "timestamp") or "",
        )


class CiService:
    def __init__(self, *, workspace: Workspace, console: ConsoleProtocol) -> None:
        self._workspace = workspace
        self._console = console

    @property
    def pipelines(self) -> dict[str, CiPipeline]:
        return self._workspace.manifest.workspace.pipelines

    def list_pipelines(self) -> list[StrDict]:
        return [
            {"name": name, "description": p.description, "steps": len(p.steps)}
            for name, p in sorted(self.pipelines.items())
        ]

    def render_list(self) -> None:
        if not self.pipelines:
            self._console.print("No CI pipelines defined.")
            return
        self._console.header("CI Pipelines")
        for name, pipeline in sorted(self.pipelines.items()):
            desc = pipeline.description or "no description"
            self._console.print(f"  {name} - {desc} ({len(pipeline.steps)} steps)")

    def _run_step(self, step: CiStep) -> StepResult:
        root = self._workspace.root
        cwd = root / step.cwd if step.cwd else root
        env = {**self._workspace.manifest.workspace.env, **step.env}
        outcome = run_shell(step.command, cwd, env)
        return StepResult(
            name=step.name,
            command=step.command,
            success=outcome.success,
            exit_code=outcome.returncode if outcome.returncode >= 0 else None,
            duration_ms=outcome.duration_ms,
            output=outcome.output,
        )

    def run(self, name: str, *, echo: bool = True) -> Result[PipelineResult, ServiceError]:
        pipeline = self.pipelines.get(name)
        if pipeline is None:
            available = ", ".join(sorted(self.pipelines)) or "none"
            return Err(ServiceError(kind="user", message=f"Pipeline '{name}' not found. Available: {available}"))

        if echo:
            self._console.header(f"Running pipeline: {name}")
            if pipeline.description:
                self._console.info(pipeline.description)

        started = time.monotonic()
        steps: list[StepResult] = []
        success = True
        for step in pipeline.steps:
            with self._console.progress(f"Running: {step.name}..."):
                result = self._run_step(step)
            steps.append(result)
            if echo:
                if result.success:
                    self._console.success(f"{step.name}: passed ({result.duration_ms}ms)")
                else:
                    code = result.exit_code if result.exit_code is not None else -1
                    self._console.failure(f"{step.name}: FAILED (exit {code})")
                    if result.output.strip():
                        self._console.print(result.output.rstrip(), Style.DIM)
            if not result.success:
                success = False
                if not step.continue_on_error:
                    break

        record = PipelineResult(
            pipeline=name,
            success=success,
            steps=tuple(steps),
            total_duration_ms=int((time.monotonic() - started) * 1000),
            timestamp=datetime.now(UTC).isoformat(),
        )
        saved = self.save(record)
        if isinstance(saved, Err):
            return saved

        if echo:
            self._console.newline()
            if success:
                self._console.success(f"Pipeline '{name}' passed ({record.total_duration_ms}ms)")
            else:
                self._console.error(f"Pipeline '{name}' failed ({record.total_duration_ms}ms)")
        return Ok(record)

    def save(self, record: PipelineResult) -> Result[None, ServiceError]:
        path = self._workspace.ci_results_dir / f"{record.pipeline}.json"
        try:
            atomic_write_json(path, record.to_dict())
        except OSError as e:
            return Err(ServiceError(kind="io", message=f"Failed to save CI result: {e}"))
        return Ok(None)

    def results(self) -> list[PipelineResult]:
        """Saved results, most recent first; unreadable files are skipped."""
        directory: Path = self._workspace.ci_results_dir
        if not directory.is_dir():
            return []
        found: list[PipelineResult] = []
        for path in sorted(directory.glob("*.json")):
            try:
                data = as_str_dict(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as e:
                self._console.warning(f"Skipping {path.name}: {e}")
                continue
            record = PipelineResult.from_dict(data) if data else None
            if record is not None:
                found.append(record)
        return sorted(found, key=lambda r: r.timestamp, reverse=True)

    def render_status(self, results: list[PipelineResult]) -> None:
        self._console.header("CI Status")
        if not results:
            self._console.print("  No results found.")
            return
        for r in results:
            status = "PASS" if r.success else "FAIL"
            line = (
                f"{r.pipeline} - {status} ({r.passed_steps}/{len(r.steps)} steps, "
                f"{r.total_duration_ms}ms) [{r.timestamp}]"
            )
            if r.success:
                self._console.success(line)
            else:
                self._console.failure(line)
