from __future__ import annotations

import sys
from typing import TextIO

from stage_runner.errors import SetupError
from stage_runner.report import SetupReport

FAILURE_EXIT_CODE = 1
_OUTPUT_TAIL_LINES = 40


def _tail(text: str, *, lines: int) -> list[str]:
    all_lines = text.rstrip().splitlines()
    if len(all_lines) <= lines:
        return all_lines
    return [f"... ({len(all_lines) - lines} earlier lines omitted)", *all_lines[-lines:]]


def on_failure(report: SetupReport, error: SetupError, *, out: TextIO | None = None) -> int:
    """
    Report a fatal error and everything created before it.

    Nothing is torn down: remote resources may already hold data, so each created artifact is
    listed with its manual removal instruction instead. Returns the process exit code.
    """

    out = out or sys.stderr
    if report.error is None:
        report.mark_failed(error.stage or "<pre-flight>", error.to_dict())

    print("", file=out)
    print(f"ERROR: {error.message}", file=out)
    if error.stage:
        print(f"  stage: {error.stage}", file=out)
    print(f"  code: {error.code}", file=out)
    if error.output.strip():
        print("  tool output:", file=out)
        for line in _tail(error.output, lines=_OUTPUT_TAIL_LINES):
            print(f"    {line}", file=out)
    if error.hint:
        print(f"  hint: {error.hint}", file=out)

    if report.completed_stages:
        print("", file=out)
        print("Completed before the failure:", file=out)
        for name in report.completed_stages:
            print(f"  - {name}", file=out)

    print("", file=out)
    if not report.artifacts:
        print("Nothing was created.", file=out)
        return FAILURE_EXIT_CODE

    print("Created before the failure (left in place, nothing was removed automatically):", file=out)
    for artifact in report.artifacts:
        print(f"  - {artifact.label}: {artifact.location}", file=out)
        if artifact.removal_hint:
            print(f"      to remove: {artifact.removal_hint}", file=out)
    return FAILURE_EXIT_CODE
