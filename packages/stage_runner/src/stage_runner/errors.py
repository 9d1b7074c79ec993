from __future__ import annotations

from typing import Any


class SetupError(RuntimeError):
    """
    Base class for every failure the orchestrator reports to the operator.

    Parameters
    ----------
    message:
        Human-readable cause.
    code:
        Stable machine-readable identifier written to the setup report.
    hint:
        Concrete remediation (commands to run, things to check).
    stage:
        Name of the stage in which the error occurred, when known.
    output:
        Captured output of the external tool involved, when any.
    """

    default_code = "setup_error"
    default_hint = "Re-run with --dry-run to review the planned stages."

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        hint: str | None = None,
        stage: str | None = None,
        output: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code.strip() if isinstance(code, str) and code.strip() else self.default_code
        self.hint = hint.strip() if isinstance(hint, str) and hint.strip() else self.default_hint
        self.stage = stage
        self.output = output or ""
        self.details = dict(details) if isinstance(details, dict) else {}
        # Artifacts created before the failure; the runner copies them into the report.
        self.artifacts: list[Any] = []

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
        }
        if self.stage:
            payload["stage"] = self.stage
        if self.details:
            payload["details"] = self.details
        return payload


class PrerequisiteMissing(SetupError):
    default_code = "prerequisite_missing"
    default_hint = "Install or start the missing tools listed above, then re-run."


class ValidationError(SetupError):
    default_code = "invalid_input"
    default_hint = "Correct the value and try again."


class ConflictError(SetupError):
    default_code = "resource_conflict"
    default_hint = "Choose a different name or remove the existing resource."


class ExternalToolFailure(SetupError):
    default_code = "external_tool_failed"
    default_hint = "Inspect the tool output above, fix the cause, then re-run."

    def __init__(
        self,
        message: str,
        *,
        argv: list[str] | None = None,
        returncode: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.argv = list(argv or [])
        self.returncode = returncode
        if self.argv:
            self.details.setdefault("argv", self.argv)
        if returncode is not None:
            self.details.setdefault("returncode", returncode)


class ExtractionFailure(SetupError):
    default_code = "extraction_failed"
    default_hint = (
        "The tool's output format may have changed. Check the tool version and the output shown above."
    )

    def __init__(self, message: str, *, pattern: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.pattern = pattern
        if pattern:
            self.details.setdefault("pattern", pattern)


class Interrupted(SetupError):
    default_code = "interrupted"
    default_hint = "The run was interrupted. Review the created resources below before re-running."


class StageCrashed(SetupError):
    """An exception that is not a SetupError escaped a stage action."""

    default_code = "stage_crashed"
    default_hint = "Unexpected error inside the stage; check file permissions and free disk space, then re-run."


class PipelineError(SetupError):
    default_code = "pipeline_error"
    default_hint = "This is a bug in the stage definitions; report it with the setup report attached."


class StageFailed(RuntimeError):
    """Raised by the pipeline runner when a required stage fails."""

    def __init__(self, stage: str, cause: SetupError, report: Any) -> None:
        super().__init__(f"stage {stage!r} failed: {cause.message}")
        self.stage = stage
        self.cause = cause
        self.report = report
