from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TextIO

from stage_runner.context import PipelineContext
from stage_runner.errors import Interrupted, PipelineError, SetupError, StageCrashed, StageFailed
from stage_runner.report import SetupReport, SkippedStage
from stage_runner.stage import Stage, StageResult

_RULE = "=" * 64


def _eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def _print_header(index: int, total: int, stage: Stage, *, out: TextIO) -> None:
    print("", file=out)
    print(_RULE, file=out)
    suffix = " (best-effort)" if stage.best_effort else ""
    print(f"Step {index}/{total}: {stage.name}{suffix}", file=out)
    if stage.description:
        print(f"  {stage.description}", file=out)
    print(_RULE, file=out)


def print_plan(stages: Sequence[Stage], *, out: TextIO | None = None) -> None:
    out = out or sys.stdout
    print("Planned stages:", file=out)
    for index, stage in enumerate(stages, start=1):
        line = f"  {index:>2}. {stage.name} [{stage.kind}]"
        if stage.depends_on:
            line += f" needs: {', '.join(stage.depends_on)}"
        if stage.provides:
            line += f" -> {', '.join(stage.provides)}"
        print(line, file=out)
        if stage.description:
            print(f"      {stage.description}", file=out)


def _record_failure_artifacts(report: SetupReport, exc: SetupError) -> None:
    for artifact in exc.artifacts:
        report.add_artifact(artifact)


def _run_stage(stage: Stage, ctx: PipelineContext) -> StageResult:
    view = ctx.view(required=stage.depends_on, optional=stage.optional_inputs, stage=stage.name)
    result = stage.action(view)
    if result is None:
        result = StageResult()
    if not isinstance(result, StageResult):
        raise PipelineError(
            f"{stage.name}: action returned {type(result).__name__}, expected StageResult",
            stage=stage.name,
        )
    if not result.was_skipped:
        missing = [k for k in stage.provides if k not in result.outputs]
        if missing:
            raise PipelineError(
                f"{stage.name}: did not produce declared outputs: {', '.join(missing)}",
                stage=stage.name,
            )
    return result


def run_pipeline(
    stages: Sequence[Stage],
    ctx: PipelineContext,
    *,
    report: SetupReport | None = None,
    dry_run: bool = False,
    out: TextIO | None = None,
) -> SetupReport:
    """
    Execute ``stages`` strictly in order, threading outputs through ``ctx``.

    Returns
    -------
    SetupReport
        The report, marked ``success``, when every required stage completed.

    Raises
    ------
    StageFailed
        When a required stage fails (or the run is interrupted). The report attached to the
        exception is marked ``partial_failure``; no later stage has run.
    """

    out = out or sys.stdout
    report = report if report is not None else SetupReport()

    if dry_run:
        print_plan(stages, out=out)
        for stage in stages:
            report.skipped_stages.append(SkippedStage(stage.name, "dry run"))
        report.mark_success()
        return report

    total = len(stages)
    for index, stage in enumerate(stages, start=1):
        _print_header(index, total, stage, out=out)
        try:
            result = _run_stage(stage, ctx)
        except KeyboardInterrupt as exc:
            cause = Interrupted(f"Interrupted during stage {stage.name!r}", stage=stage.name)
            report.mark_failed(stage.name, cause.to_dict())
            raise StageFailed(stage.name, cause, report) from exc
        except Exception as exc:
            if isinstance(exc, SetupError):
                error = exc
                if error.stage is None:
                    error.stage = stage.name
            else:
                error = StageCrashed(f"{type(exc).__name__}: {exc}", stage=stage.name)
            _record_failure_artifacts(report, error)
            if stage.best_effort and not isinstance(error, PipelineError):
                message = f"{stage.name}: {error.message}"
                _eprint(f"WARNING: best-effort stage failed, continuing: {message}")
                if error.hint:
                    _eprint(f"  hint: {error.hint}")
                report.warnings.append(message)
                report.skipped_stages.append(SkippedStage(stage.name, f"failed: {error.message}"))
                continue
            report.mark_failed(stage.name, error.to_dict())
            raise StageFailed(stage.name, error, report) from exc

        for artifact in result.artifacts:
            report.add_artifact(artifact)
        for warning in result.warnings:
            _eprint(f"WARNING: {stage.name}: {warning}")
            report.warnings.append(f"{stage.name}: {warning}")

        if result.was_skipped:
            print(f"Skipped: {result.skipped_reason}", file=out)
            report.skipped_stages.append(SkippedStage(stage.name, str(result.skipped_reason)))
            continue

        try:
            ctx.publish(result.outputs, producer=stage.name)
        except PipelineError as exc:
            report.mark_failed(stage.name, exc.to_dict())
            raise StageFailed(stage.name, exc, report) from exc
        report.completed_stages.append(stage.name)
        print(f"Done: {stage.name}", file=out)

    report.mark_success()
    return report
