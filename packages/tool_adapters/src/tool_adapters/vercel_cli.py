from __future__ import annotations

import re
from pathlib import Path

from stage_runner.process import CommandRunner
from tool_adapters.text import require_match

BINARY = "vercel"

# `vercel --prod` prints several URLs (inspect link, preview alias, production alias); the production
# alias on *.vercel.app is printed last.
DEPLOYMENT_URL_RE = re.compile(r"https://[a-zA-Z0-9.-]+\.vercel\.app")


def extract_deployment_url(text: str) -> str:
    return require_match(DEPLOYMENT_URL_RE, text, what="Vercel deployment URL", last=True)


def link(runner: CommandRunner, *, cwd: Path) -> None:
    result = runner.run([BINARY, "link", "--yes"], cwd=cwd)
    if not result.ok:
        raise runner.failure(result, message="Failed to link Vercel project", hint="Run `vercel link` manually.")


def set_env(runner: CommandRunner, *, cwd: Path, name: str, value: str, environment: str = "production") -> None:
    runner.add_secret(value)
    # Removing first makes re-runs idempotent; a missing variable is not an error.
    runner.run([BINARY, "env", "rm", name, environment, "--yes"], cwd=cwd)
    result = runner.run([BINARY, "env", "add", name, environment], cwd=cwd, input_text=value + "\n")
    if not result.ok:
        raise runner.failure(result, message=f"Failed to set Vercel environment variable {name}")


def deploy_production(runner: CommandRunner, *, cwd: Path) -> str:
    result = runner.run([BINARY, "--prod", "--yes"], cwd=cwd)
    if not result.ok:
        raise runner.failure(result, message="Vercel production deployment failed")
    return extract_deployment_url(result.output)
