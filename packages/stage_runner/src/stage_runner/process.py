from __future__ import annotations

import os
import shutil
import subprocess
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from stage_runner.errors import ExternalToolFailure

_SECRET_FLAGS: frozenset[str] = frozenset({"--db-password", "--password", "--token"})
_REDACTED = "<redacted>"


def _eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(x for x in (self.stdout, self.stderr) if x).strip()


def redact_argv(argv: Iterable[str], *, secrets: Iterable[str] = ()) -> list[str]:
    secret_values = {s for s in secrets if isinstance(s, str) and s}
    out: list[str] = []
    hide_next = False
    for arg in argv:
        if hide_next:
            out.append(_REDACTED)
            hide_next = False
            continue
        if arg in _SECRET_FLAGS:
            out.append(arg)
            hide_next = True
            continue
        flag, sep, _value = arg.partition("=")
        if sep and flag in _SECRET_FLAGS:
            out.append(f"{flag}={_REDACTED}")
            continue
        redacted = arg
        for secret in secret_values:
            redacted = redacted.replace(secret, _REDACTED)
        out.append(redacted)
    return out


def _resolve_argv(argv: list[str]) -> list[str]:
    """Resolve argv[0] via PATH.

    On Windows, `pnpm`, `vercel` and `supabase` are commonly installed as `.cmd` shims that
    `subprocess.run()` cannot execute directly, so they are invoked via `cmd.exe /c`.
    """

    cmd = argv[0]
    if any(sep and sep in cmd for sep in ("/", "\\", os.path.sep, os.path.altsep)):
        return argv

    resolved = shutil.which(cmd)
    if resolved is None:
        return argv

    if os.name == "nt" and Path(resolved).suffix.lower() in {".cmd", ".bat"}:
        comspec = os.environ.get("ComSpec", "cmd.exe")
        return [comspec, "/d", "/c", resolved, *argv[1:]]

    return [resolved, *argv[1:]]


class CommandRunner:
    """
    Runs external tools synchronously and captures their output.

    Every invocation is echoed to stderr as ``+ (<cwd>) <argv>`` with secret arguments redacted.
    Values registered through :meth:`add_secret` are redacted wherever they appear in argv.
    """

    def __init__(self, *, echo: bool = True, secrets: Iterable[str] = ()) -> None:
        self.echo = echo
        self._secrets: set[str] = {s for s in secrets if s}

    def add_secret(self, value: str) -> None:
        if value:
            self._secrets.add(value)

    def redact(self, argv: Iterable[str]) -> list[str]:
        return redact_argv(argv, secrets=self._secrets)

    def which(self, cmd: str) -> str | None:
        return shutil.which(cmd)

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = False,
    ) -> CommandResult:
        if not argv:
            raise ValueError("argv must be non-empty")
        shown = " ".join(self.redact(argv))
        if self.echo:
            _eprint(f"+ ({cwd}) {shown}")

        merged_env: dict[str, str] | None = None
        if env:
            merged_env = dict(os.environ)
            merged_env.update(env)

        try:
            proc = subprocess.run(
                _resolve_argv(argv),
                cwd=str(cwd),
                input=input_text,
                env=merged_env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as exc:
            raise ExternalToolFailure(
                f"Command not found: {argv[0]!r}",
                argv=self.redact(argv),
                code="command_not_found",
                hint=f"Install {argv[0]} and ensure it is on PATH.",
            ) from exc
        except OSError as exc:
            raise ExternalToolFailure(
                f"Failed to execute {argv[0]!r}: {exc}",
                argv=self.redact(argv),
                code="command_not_executable",
            ) from exc

        result = CommandResult(
            argv=list(argv),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if check and not result.ok:
            raise self.failure(result)
        return result

    def failure(
        self,
        result: CommandResult,
        *,
        message: str | None = None,
        hint: str | None = None,
        code: str | None = None,
    ) -> ExternalToolFailure:
        argv = self.redact(result.argv)
        output = result.output
        for secret in self._secrets:
            output = output.replace(secret, _REDACTED)
        return ExternalToolFailure(
            message or f"{' '.join(argv)} exited with status {result.returncode}",
            argv=argv,
            returncode=result.returncode,
            output=output,
            hint=hint,
            code=code,
        )
