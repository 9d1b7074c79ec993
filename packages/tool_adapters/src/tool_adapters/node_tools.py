from __future__ import annotations

import json
import re
from collections.abc import Iterable
from pathlib import Path

from packaging.version import InvalidVersion, Version

from stage_runner.errors import ExtractionFailure
from stage_runner.process import CommandRunner
from tool_adapters.text import require_match

PNPM = "pnpm"
NODE = "node"

_VERSION_RE = re.compile(r"v?(\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?)")


def parse_version(text: str, *, tool: str) -> Version:
    raw = require_match(_VERSION_RE, text, what=f"{tool} version", group=1)
    try:
        return Version(raw)
    except InvalidVersion as exc:
        raise ExtractionFailure(f"Unrecognised {tool} version: {raw!r}", output=text) from exc


def pnpm_version(runner: CommandRunner, *, cwd: Path) -> Version:
    result = runner.run([PNPM, "--version"], cwd=cwd, check=True)
    return parse_version(result.stdout, tool="pnpm")


def create_turbo(runner: CommandRunner, *, cwd: Path, name: str) -> None:
    runner.run([PNPM, "create", "turbo@latest", name, "-m", "pnpm", "--skip-install"], cwd=cwd, check=True)


def add_workspace_dev_dependency(runner: CommandRunner, *, cwd: Path, package: str) -> None:
    runner.run([PNPM, "add", "-D", package, "-w"], cwd=cwd, check=True)


def create_next_app(runner: CommandRunner, *, cwd: Path, target: str) -> None:
    runner.run(
        [
            PNPM,
            "create",
            "next-app@latest",
            target,
            "--typescript",
            "--tailwind",
            "--app",
            "--src-dir",
            "--import-alias",
            "@/*",
            "--no-git",
            "--yes",
        ],
        cwd=cwd,
        check=True,
    )


def shadcn_add(runner: CommandRunner, *, cwd: Path, components: Iterable[str]) -> None:
    runner.run([PNPM, "dlx", "shadcn@latest", "add", *components, "--yes"], cwd=cwd, check=True)


def add_app_dependencies(runner: CommandRunner, *, cwd: Path, app: str, packages: Iterable[str]) -> None:
    runner.run([PNPM, "--filter", app, "add", *packages], cwd=cwd, check=True)


def install(runner: CommandRunner, *, cwd: Path) -> None:
    result = runner.run([PNPM, "install"], cwd=cwd)
    if not result.ok:
        raise runner.failure(
            result,
            message="Dependency installation failed",
            hint="Re-run `pnpm install` in the project directory to see the full resolver output.",
        )


def set_package_manager(package_json: Path, *, value: str) -> bool:
    """Set the ``packageManager`` field of ``package_json``. Returns False when it was already set."""

    try:
        text = package_json.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ExtractionFailure(
            f"Scaffolder did not create {package_json}",
            hint="Re-run `pnpm create turbo@latest` by hand and check its output.",
        ) from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionFailure(f"Invalid JSON in {package_json}: {exc}", output=text) from exc
    if not isinstance(payload, dict):
        raise ExtractionFailure(f"Expected a JSON object in {package_json}", output=text)
    if payload.get("packageManager") == value:
        return False
    payload["packageManager"] = value
    package_json.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return True
