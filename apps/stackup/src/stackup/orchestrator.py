from __future__ import annotations

import getpass
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TextIO

from stackup.config import SetupConfig, load_config
from stackup.inputs import Cancelled, InputOverrides, InputSet, Prompt, collect_inputs
from stackup.prerequisites import (
    check_prerequisites,
    default_requirements,
    failures,
    require_prerequisites,
)
from stackup.stages import build_stages
from stage_runner.context import PipelineContext
from stage_runner.errors import Interrupted, PipelineError, SetupError, StageFailed
from stage_runner.failure import on_failure
from stage_runner.process import CommandRunner
from stage_runner.report import SetupReport, write_report
from stage_runner.runner import run_pipeline
from stage_runner.stage import check_stage_order
from stage_runner.summary import report_summary

REPORT_RELATIVE_PATH = Path(".stackup") / "setup_report.json"


def _eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


class RunState(str, Enum):
    START = "start"
    CHECKING = "checking"
    COLLECTING = "collecting"
    CANCELLED = "cancelled"
    RUNNING = "running"
    FAILED = "failed"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RunOptions:
    workdir: Path
    dry_run: bool = False
    local_only: bool = False
    config_path: Path | None = None
    overrides: InputOverrides = field(default_factory=InputOverrides)


@dataclass
class RunOutcome:
    state: RunState
    exit_code: int
    report: SetupReport | None = None
    report_path: Path | None = None
    inputs: InputSet | None = None


def next_steps_for(config: SetupConfig, inputs: InputSet, ctx: PipelineContext) -> list[str]:
    steps = [step.replace("{project_name}", inputs.project_name) for step in config.next_steps]
    deployment_url = ctx.get("deployment_url")
    if deployment_url:
        steps.append(f"Visit your production site: {deployment_url}")
    return steps


def _fail(report: SetupReport, error: SetupError, *, inputs: InputSet | None = None) -> RunOutcome:
    code = on_failure(report, error)
    return RunOutcome(state=RunState.FAILED, exit_code=code, report=report, inputs=inputs)


def run_setup(
    options: RunOptions,
    *,
    runner: CommandRunner | None = None,
    prompt: Prompt = input,
    secret_prompt: Prompt = getpass.getpass,
    home: Path | None = None,
    sleep: Callable[[float], None] = time.sleep,
    now: Callable[[], datetime] | None = None,
    out: TextIO | None = None,
) -> RunOutcome:
    """
    Drive one setup run through its states.

    ``START -> CHECKING -> COLLECTING -> (CANCELLED | RUNNING) -> (FAILED | COMPLETE)``

    Every fatal error, before or during the pipeline, goes through :func:`on_failure` exactly
    once. A run that reached the pipeline writes ``<project>/.stackup/setup_report.json``.
    """

    out = out or sys.stdout
    runner = runner if runner is not None else CommandRunner()
    workdir = options.workdir.resolve()
    state = RunState.START

    try:
        config = load_config(options.config_path, workdir=workdir)

        state = RunState.CHECKING
        results = check_prerequisites(
            default_requirements(node_min_major=config.node_min_major),
            runner=runner,
            local_only=options.local_only,
            cwd=workdir,
            out=out,
        )
        if options.dry_run:
            for failed in failures(results):
                _eprint(f"WARNING: {failed.tool} is not ready; a real run would stop here.")
        else:
            require_prerequisites(results)

        state = RunState.COLLECTING
        collected = collect_inputs(
            config=config,
            workdir=workdir,
            local_only=options.local_only,
            overrides=options.overrides,
            prompt=prompt,
            secret_prompt=secret_prompt,
            out=out,
        )
    except SetupError as exc:
        return _fail(SetupReport(), exc)
    except KeyboardInterrupt:
        return _fail(SetupReport(), Interrupted(f"Interrupted while {state.value}"))

    if isinstance(collected, Cancelled):
        print(f"Cancelled ({collected.reason}). Nothing was created.", file=out)
        return RunOutcome(state=RunState.CANCELLED, exit_code=0)
    inputs = collected

    state = RunState.RUNNING
    report = SetupReport()
    try:
        stages = build_stages(
            inputs,
            config,
            runner=runner,
            workdir=workdir,
            local_only=options.local_only,
            home=home,
            sleep=sleep,
            now=now,
        )
        problems = check_stage_order(stages)
        if problems:
            return _fail(report, PipelineError("; ".join(problems)), inputs=inputs)

        ctx = PipelineContext()
        if options.dry_run:
            run_pipeline(stages, ctx, report=report, dry_run=True, out=out)
            print("", file=out)
            print("Dry run: no commands were executed.", file=out)
            return RunOutcome(state=RunState.COMPLETE, exit_code=0, report=report, inputs=inputs)

        report_path = workdir / inputs.project_name / REPORT_RELATIVE_PATH
        try:
            run_pipeline(stages, ctx, report=report, out=out)
        except StageFailed as exc:
            written = _write_report_if_possible(exc.report, report_path)
            code = on_failure(exc.report, exc.cause)
            if written is not None:
                _eprint(f"Setup report: {written}")
            return RunOutcome(
                state=RunState.FAILED,
                exit_code=code,
                report=exc.report,
                report_path=written,
                inputs=inputs,
            )

        written = _write_report_if_possible(report, report_path)
        report_summary(report, next_steps=next_steps_for(config, inputs, ctx), out=out)
        if written is not None:
            print("", file=out)
            print(f"Setup report: {written}", file=out)
        return RunOutcome(state=RunState.COMPLETE, exit_code=0, report=report, report_path=written, inputs=inputs)
    except KeyboardInterrupt:
        # Interrupts inside a stage already arrive as StageFailed.
        return _fail(report, Interrupted(f"Interrupted while {state.value}"), inputs=inputs)


def _write_report_if_possible(report: SetupReport, path: Path) -> Path | None:
    # The project directory does not exist when the very first stage failed before creating it.
    if not path.parent.parent.is_dir():
        return None
    return write_report(report, path)
