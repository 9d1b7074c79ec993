from stage_runner.context import ContextView, PipelineContext
from stage_runner.errors import (
    ConflictError,
    ExternalToolFailure,
    ExtractionFailure,
    Interrupted,
    PipelineError,
    PrerequisiteMissing,
    SetupError,
    StageCrashed,
    StageFailed,
    ValidationError,
)
from stage_runner.failure import on_failure
from stage_runner.poll import PollPolicy, wait_until
from stage_runner.process import CommandResult, CommandRunner
from stage_runner.report import Artifact, RunStatus, SetupReport, write_report
from stage_runner.runner import run_pipeline
from stage_runner.stage import Stage, StageResult
from stage_runner.summary import report_summary

__all__ = [
    "Artifact",
    "CommandResult",
    "CommandRunner",
    "ConflictError",
    "ContextView",
    "ExternalToolFailure",
    "ExtractionFailure",
    "Interrupted",
    "PipelineContext",
    "PipelineError",
    "PollPolicy",
    "PrerequisiteMissing",
    "RunStatus",
    "SetupError",
    "SetupReport",
    "Stage",
    "StageCrashed",
    "StageFailed",
    "StageResult",
    "ValidationError",
    "on_failure",
    "report_summary",
    "run_pipeline",
    "wait_until",
    "write_report",
]
