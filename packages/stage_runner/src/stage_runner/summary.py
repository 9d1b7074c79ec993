from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TextIO

from stage_runner.report import SetupReport


def report_summary(
    report: SetupReport,
    *,
    next_steps: Sequence[str] = (),
    out: TextIO | None = None,
) -> None:
    out = out or sys.stdout

    print("", file=out)
    print("Setup complete.", file=out)

    print("", file=out)
    print("Local structure:", file=out)
    local = report.artifacts_of("local_path")
    if local:
        for artifact in local:
            print(f"  - {artifact.label}: {artifact.location}", file=out)
    else:
        print("  (none)", file=out)

    print("", file=out)
    print("Remote resources:", file=out)
    remote = [*report.artifacts_of("remote_resource"), *report.artifacts_of("url")]
    if remote:
        for artifact in remote:
            print(f"  - {artifact.label}: {artifact.location}", file=out)
    else:
        print("  (none)", file=out)

    print("", file=out)
    print("Credential and environment files (keep out of version control):", file=out)
    credentials = report.artifacts_of("credential_file")
    if credentials:
        for artifact in credentials:
            print(f"  - {artifact.label}: {artifact.location}", file=out)
    else:
        print("  (none)", file=out)

    if report.skipped_stages or report.warnings:
        print("", file=out)
        print("Skipped or degraded:", file=out)
        for skipped in report.skipped_stages:
            print(f"  - {skipped.name}: {skipped.reason}", file=out)
        for warning in report.warnings:
            print(f"  - warning: {warning}", file=out)

    if next_steps:
        print("", file=out)
        print("Next steps:", file=out)
        for index, step in enumerate(next_steps, start=1):
            print(f"  {index}. {step}", file=out)
