from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from stage_runner.process import CommandResult, CommandRunner

BINARY = "git"


def is_repository(runner: CommandRunner, *, cwd: Path) -> bool:
    return runner.run([BINARY, "rev-parse", "--git-dir"], cwd=cwd).ok


def init(runner: CommandRunner, *, cwd: Path) -> None:
    runner.run([BINARY, "init"], cwd=cwd, check=True)


def status_porcelain(runner: CommandRunner, *, cwd: Path) -> str:
    return runner.run([BINARY, "status", "--porcelain"], cwd=cwd, check=True).stdout


def head_sha(runner: CommandRunner, *, cwd: Path) -> str | None:
    result = runner.run([BINARY, "rev-parse", "HEAD"], cwd=cwd)
    if not result.ok:
        return None
    return result.stdout.strip() or None


def commit_all(runner: CommandRunner, *, cwd: Path, message: str) -> str | None:
    """Stage everything and commit. Returns the new HEAD, or None when there was nothing to commit."""

    runner.run([BINARY, "add", "-A"], cwd=cwd, check=True)
    if not status_porcelain(runner, cwd=cwd).strip():
        return None
    runner.run([BINARY, "commit", "--no-gpg-sign", "-m", message], cwd=cwd, check=True)
    return head_sha(runner, cwd=cwd)


def commit_paths(runner: CommandRunner, *, cwd: Path, paths: Sequence[str], message: str) -> str | None:
    """Commit only ``paths``, leaving the rest of the index alone. Returns None when they were unchanged."""

    runner.run([BINARY, "add", "--", *paths], cwd=cwd, check=True)
    status = runner.run([BINARY, "status", "--porcelain", "--", *paths], cwd=cwd, check=True)
    if not status.stdout.strip():
        return None
    runner.run([BINARY, "commit", "--no-gpg-sign", "-m", message, "--", *paths], cwd=cwd, check=True)
    return head_sha(runner, cwd=cwd)


def has_remote(runner: CommandRunner, *, cwd: Path, remote_name: str) -> bool:
    return runner.run([BINARY, "remote", "get-url", remote_name], cwd=cwd).ok


def ensure_remote(runner: CommandRunner, *, cwd: Path, remote_name: str, remote_url: str) -> None:
    existing = runner.run([BINARY, "remote", "get-url", remote_name], cwd=cwd)
    if existing.ok:
        if existing.stdout.strip() != remote_url:
            runner.run([BINARY, "remote", "set-url", remote_name, remote_url], cwd=cwd, check=True)
        return
    runner.run([BINARY, "remote", "add", remote_name, remote_url], cwd=cwd, check=True)


def rename_branch(runner: CommandRunner, *, cwd: Path, branch: str) -> None:
    runner.run([BINARY, "branch", "-M", branch], cwd=cwd, check=True)


def push_branch(runner: CommandRunner, *, cwd: Path, remote_name: str, branch: str) -> CommandResult:
    return runner.run([BINARY, "push", "-u", remote_name, branch], cwd=cwd, check=True)
