from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Literal

ArtifactKind = Literal["local_path", "remote_resource", "credential_file", "url"]


def _eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def _utc_now_z() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


@dataclass(frozen=True)
class Artifact:
    """Something a stage created. Never holds a secret value, only where it lives."""

    kind: ArtifactKind
    label: str
    location: str
    removal_hint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "label": self.label, "location": self.location}
        if self.removal_hint:
            payload["removal_hint"] = self.removal_hint
        return payload


@dataclass(frozen=True)
class SkippedStage:
    name: str
    reason: str


@dataclass
class SetupReport:
    completed_stages: list[str] = field(default_factory=list)
    skipped_stages: list[SkippedStage] = field(default_factory=list)
    artifacts: list[Artifact] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    failed_stage: str | None = None
    error: dict[str, Any] | None = None
    started_at: str = field(default_factory=_utc_now_z)
    finished_at: str | None = None

    def add_artifact(self, artifact: Artifact) -> None:
        if artifact not in self.artifacts:
            self.artifacts.append(artifact)

    def artifacts_of(self, kind: ArtifactKind) -> list[Artifact]:
        return [a for a in self.artifacts if a.kind == kind]

    def is_skipped(self, stage: str) -> bool:
        return any(s.name == stage for s in self.skipped_stages)

    def mark_success(self) -> None:
        self.status = RunStatus.SUCCESS
        self.finished_at = _utc_now_z()

    def mark_failed(self, stage: str, error: dict[str, Any]) -> None:
        self.status = RunStatus.PARTIAL_FAILURE
        self.failed_stage = stage
        self.error = error
        self.finished_at = _utc_now_z()

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": 1,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "completed_stages": list(self.completed_stages),
            "skipped_stages": [{"name": s.name, "reason": s.reason} for s in self.skipped_stages],
            "failed_stage": self.failed_stage,
            "error": self.error,
            "warnings": list(self.warnings),
            "artifacts": [a.to_dict() for a in self.artifacts],
        }


def write_report(report: SetupReport, out_path: Path) -> Path | None:
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        return out_path
    except OSError as exc:
        _eprint(f"WARNING: failed to write setup report: {out_path}: {exc}")
        return None
