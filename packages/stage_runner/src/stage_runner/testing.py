"""Test-only utilities for stage_runner.

:class:`ScriptedRunner` stands in for :class:`stage_runner.process.CommandRunner` so stages and
tool adapters can be exercised without the real CLIs installed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from stage_runner.process import CommandResult, CommandRunner

__all__ = [
    "RecordedCall",
    "Responder",
    "ScriptedRunner",
    "result",
]

Responder = Callable[[list[str], Path], CommandResult]


@dataclass(frozen=True)
class RecordedCall:
    argv: list[str]
    cwd: Path
    input_text: str | None


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    responses: list[CommandResult | Responder]


def result(stdout: str = "", *, returncode: int = 0, stderr: str = "", argv: Iterable[str] = ()) -> CommandResult:
    return CommandResult(argv=list(argv), returncode=returncode, stdout=stdout, stderr=stderr)


@dataclass
class ScriptedRunner(CommandRunner):
    """
    Command runner that answers from scripted rules instead of spawning processes.

    Rules are matched by argv prefix, most recently added first. Each rule yields its responses in
    order and then keeps returning the last one. Unmatched commands succeed with empty output.
    """

    available: set[str] | None = None
    calls: list[RecordedCall] = field(default_factory=list)
    _rules: list[_Rule] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(echo=False)

    def on(self, *prefix: str, responses: Iterable[CommandResult | Responder] = ()) -> ScriptedRunner:
        items = list(responses)
        if not items:
            items = [result()]
        self._rules.insert(0, _Rule(prefix=tuple(prefix), responses=items))
        return self

    def respond(self, *prefix: str, stdout: str = "", returncode: int = 0, stderr: str = "") -> ScriptedRunner:
        return self.on(*prefix, responses=[result(stdout, returncode=returncode, stderr=stderr)])

    def which(self, cmd: str) -> str | None:
        if self.available is None or cmd in self.available:
            return f"/usr/bin/{cmd}"
        return None

    def commands(self, *prefix: str) -> list[list[str]]:
        return [c.argv for c in self.calls if tuple(c.argv[: len(prefix)]) == prefix]

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = False,
    ) -> CommandResult:
        del env
        self.calls.append(RecordedCall(argv=list(argv), cwd=cwd, input_text=input_text))
        out = result(argv=argv)
        for rule in self._rules:
            if tuple(argv[: len(rule.prefix)]) != rule.prefix:
                continue
            response = rule.responses[0]
            if len(rule.responses) > 1:
                rule.responses.pop(0)
            out = response(list(argv), cwd) if callable(response) else response
            out = CommandResult(argv=list(argv), returncode=out.returncode, stdout=out.stdout, stderr=out.stderr)
            break
        if check and not out.ok:
            raise self.failure(out)
        return out
