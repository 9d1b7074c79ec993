from __future__ import annotations

import re
from pathlib import Path

from stage_runner.process import CommandRunner

BINARY = "gh"

REPO_SLUG_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?/[A-Za-z0-9._-]+$")


def is_repo_slug(value: str) -> bool:
    return bool(REPO_SLUG_RE.match(value)) and not value.endswith(".git")


def https_remote_url(slug: str) -> str:
    return f"https://github.com/{slug}.git"


def set_secret(runner: CommandRunner, *, cwd: Path, repo: str, name: str, value: str) -> None:
    if not value:
        raise ValueError(f"empty value for secret {name}")
    runner.add_secret(value)
    result = runner.run([BINARY, "secret", "set", name, "-R", repo], cwd=cwd, input_text=value)
    if not result.ok:
        raise runner.failure(
            result,
            message=f"Failed to set GitHub secret {name} on {repo}",
            hint=f"Check that {repo} exists and you have admin access: gh repo view {repo}",
        )
