from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from stage_runner.context import ContextView
from stage_runner.report import Artifact


@dataclass
class StageResult:
    outputs: dict[str, str] = field(default_factory=dict)
    artifacts: list[Artifact] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped_reason: str | None = None

    @classmethod
    def skipped(cls, reason: str) -> StageResult:
        return cls(skipped_reason=reason)

    @property
    def was_skipped(self) -> bool:
        return self.skipped_reason is not None


StageAction = Callable[[ContextView], "StageResult | None"]


@dataclass(frozen=True)
class Stage:
    """
    One named unit of work in the provisioning pipeline.

    ``depends_on`` keys must already be in the pipeline context when the stage starts;
    ``optional_inputs`` may be absent. ``provides`` documents the keys the action is expected to
    return and is checked by the runner. A ``best_effort`` stage that fails is logged and the
    pipeline continues.
    """

    name: str
    action: StageAction
    depends_on: tuple[str, ...] = ()
    optional_inputs: tuple[str, ...] = ()
    provides: tuple[str, ...] = ()
    best_effort: bool = False
    description: str = ""

    @property
    def kind(self) -> str:
        return "best-effort" if self.best_effort else "required"


def check_stage_order(stages: list[Stage], *, initial: Mapping[str, str] | None = None) -> list[str]:
    """Return problems with the ordering of ``stages`` (empty when every dependency is produced earlier)."""

    problems: list[str] = []
    seen_names: set[str] = set()
    available: set[str] = set(initial or {})
    for stage in stages:
        if stage.name in seen_names:
            problems.append(f"duplicate stage name: {stage.name}")
        seen_names.add(stage.name)
        for key in stage.depends_on:
            if key not in available:
                problems.append(f"{stage.name}: depends on {key!r}, which no earlier stage provides")
        available.update(stage.provides)
    return problems
