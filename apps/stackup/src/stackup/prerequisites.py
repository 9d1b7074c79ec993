from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from packaging.version import Version

from stage_runner.errors import ExternalToolFailure, ExtractionFailure, PrerequisiteMissing
from stage_runner.process import CommandRunner
from tool_adapters.node_tools import parse_version


@dataclass(frozen=True)
class ToolRequirement:
    """
    What the checker verifies for one external tool.

    ``daemon_argv`` and ``auth_argv`` are probe commands that must exit 0. ``min_version`` is
    compared against the first ``x.y.z`` found in the output of ``version_argv``.
    """

    tool: str
    install_hint: str
    version_argv: tuple[str, ...] = ()
    min_version: Version | None = None
    upgrade_hint: str = ""
    daemon_argv: tuple[str, ...] = ()
    daemon_hint: str = ""
    auth_argv: tuple[str, ...] = ()
    auth_hint: str = ""
    remote_only: bool = False


@dataclass
class PrerequisiteResult:
    tool: str
    installed: bool
    running: bool | None = None
    authenticated: bool | None = None
    version: str | None = None
    version_ok: bool | None = None
    remediation: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return (
            self.installed
            and self.running is not False
            and self.authenticated is not False
            and self.version_ok is not False
        )

    def status_line(self) -> str:
        if not self.installed:
            return f"  [missing] {self.tool}: not installed"
        version = f" {self.version}" if self.version else ""
        if self.version_ok is False:
            return f"  [too old] {self.tool}{version}"
        if self.running is False:
            return f"  [stopped] {self.tool}{version}: daemon not responding"
        if self.authenticated is False:
            return f"  [no auth] {self.tool}{version}: not logged in"
        return f"  [ok] {self.tool}{version}"


def default_requirements(*, node_min_major: int = 18) -> list[ToolRequirement]:
    return [
        ToolRequirement(
            tool="node",
            install_hint="Install Node.js from https://nodejs.org/ (or `nvm install --lts`).",
            version_argv=("node", "--version"),
            min_version=Version(f"{node_min_major}.0.0"),
            upgrade_hint=f"Upgrade Node.js to {node_min_major} or newer (`nvm install {node_min_major}`).",
        ),
        ToolRequirement(
            tool="pnpm",
            install_hint="Install pnpm: `npm install -g pnpm` (or `corepack enable pnpm`).",
            version_argv=("pnpm", "--version"),
        ),
        ToolRequirement(
            tool="docker",
            install_hint="Install Docker from https://www.docker.com/get-started",
            version_argv=("docker", "--version"),
            daemon_argv=("docker", "info"),
            daemon_hint="Start Docker Desktop (macOS/Windows) or `sudo systemctl start docker` (Linux).",
        ),
        ToolRequirement(
            tool="supabase",
            install_hint="Install the Supabase CLI: `brew install supabase/tap/supabase` or `npm install -g supabase`.",
            version_argv=("supabase", "--version"),
        ),
        ToolRequirement(
            tool="gh",
            install_hint="Install the GitHub CLI from https://cli.github.com/",
            version_argv=("gh", "--version"),
            auth_argv=("gh", "auth", "status"),
            auth_hint="Authenticate with `gh auth login`.",
            remote_only=True,
        ),
        ToolRequirement(
            tool="vercel",
            install_hint="Install the Vercel CLI: `npm install -g vercel`.",
            version_argv=("vercel", "--version"),
            auth_argv=("vercel", "whoami"),
            auth_hint="Authenticate with `vercel login`.",
            remote_only=True,
        ),
        ToolRequirement(
            tool="git",
            install_hint="Install git from https://git-scm.com/downloads",
            version_argv=("git", "--version"),
        ),
    ]


def _probe(runner: CommandRunner, argv: Sequence[str], *, cwd: Path) -> bool:
    try:
        return runner.run(list(argv), cwd=cwd).ok
    except ExternalToolFailure:
        return False


def _check_one(req: ToolRequirement, *, runner: CommandRunner, cwd: Path) -> PrerequisiteResult:
    if runner.which(req.tool) is None:
        return PrerequisiteResult(tool=req.tool, installed=False, remediation=[req.install_hint])

    res = PrerequisiteResult(tool=req.tool, installed=True)
    if req.version_argv:
        try:
            out = runner.run(list(req.version_argv), cwd=cwd)
        except ExternalToolFailure:
            out = None
        if out is not None and out.ok:
            try:
                parsed = parse_version(out.output, tool=req.tool)
            except ExtractionFailure:
                parsed = None
                lines = out.output.splitlines()
                res.version = lines[0].strip() if lines else None
            else:
                res.version = str(parsed)
            if req.min_version is not None:
                res.version_ok = parsed is not None and parsed >= req.min_version
                if not res.version_ok:
                    res.remediation.append(req.upgrade_hint or f"Upgrade {req.tool} to {req.min_version} or newer.")

    if req.daemon_argv:
        res.running = _probe(runner, req.daemon_argv, cwd=cwd)
        if not res.running:
            res.remediation.append(req.daemon_hint or f"Start the {req.tool} daemon.")

    if req.auth_argv:
        res.authenticated = _probe(runner, req.auth_argv, cwd=cwd)
        if not res.authenticated:
            res.remediation.append(req.auth_hint or f"Log in to {req.tool}.")
    return res


def check_prerequisites(
    requirements: Iterable[ToolRequirement],
    *,
    runner: CommandRunner,
    local_only: bool,
    cwd: Path,
    out: TextIO | None = None,
) -> list[PrerequisiteResult]:
    """
    Check every requirement and print one status line per tool.

    All tools are checked even after a failure so the operator sees the complete list at once.
    Remote-only tools are left out in local-only mode.
    """

    out = out or sys.stdout
    print("Checking prerequisites...", file=out)
    results: list[PrerequisiteResult] = []
    for req in requirements:
        if local_only and req.remote_only:
            print(f"  [skip] {req.tool}: not needed with --local-only", file=out)
            continue
        res = _check_one(req, runner=runner, cwd=cwd)
        print(res.status_line(), file=out)
        results.append(res)
    return results


def failures(results: Iterable[PrerequisiteResult]) -> list[PrerequisiteResult]:
    return [r for r in results if not r.ok]


def require_prerequisites(results: Sequence[PrerequisiteResult]) -> None:
    failed = failures(results)
    if not failed:
        return
    hints = [f"{r.tool}: {step}" for r in failed for step in r.remediation]
    raise PrerequisiteMissing(
        f"Missing or unusable prerequisites: {', '.join(r.tool for r in failed)}",
        hint="\n        ".join(hints) if hints else None,
        details={"tools": [r.tool for r in failed]},
    )
