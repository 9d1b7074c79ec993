from __future__ import annotations

import getpass
import re
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO, TypeVar

from stackup.config import PasswordPolicy, SetupConfig
from stage_runner.errors import ConflictError, ValidationError
from tool_adapters.github_cli import is_repo_slug

DEFAULT_PROJECT_NAME = "my-app"
PROJECT_NAME_RE = re.compile(r"^[a-z0-9-]+$")

Prompt = Callable[[str], str]
T = TypeVar("T")


@dataclass(frozen=True)
class InputSet:
    project_name: str
    db_password: str
    org_reference: str = ""
    target_repo: str = ""
    deploy: bool = True
    region: str = "us-east-1"

    def __repr__(self) -> str:
        return (
            f"InputSet(project_name={self.project_name!r}, db_password='<redacted>', "
            f"org_reference={self.org_reference!r}, target_repo={self.target_repo!r}, "
            f"deploy={self.deploy!r}, region={self.region!r})"
        )

    def summary_lines(self, *, local_only: bool) -> list[str]:
        return [
            f"  Project name:   {self.project_name}",
            "  DB password:    (set, hidden)",
            f"  Organization:   {self.org_reference or '(personal account)'}",
            f"  GitHub repo:    {self.target_repo or '(none, local git only)'}",
            f"  Region:         {self.region}",
            f"  Deploy:         {'yes' if self.deploy else 'no'}",
            f"  Mode:           {'local only' if local_only else 'local + remote'}",
        ]


@dataclass(frozen=True)
class Cancelled:
    """Returned instead of an :class:`InputSet` when the operator declines to proceed."""

    reason: str = "declined at confirmation"


@dataclass(frozen=True)
class InputOverrides:
    """Values supplied on the command line. ``None`` means "ask"."""

    project_name: str | None = None
    db_password: str | None = None
    org_reference: str | None = None
    target_repo: str | None = None
    region: str | None = None
    deploy: bool | None = None
    assume_yes: bool = False


def validate_project_name(value: str) -> str:
    name = value.strip()
    if not PROJECT_NAME_RE.match(name):
        raise ValidationError(
            f"Invalid project name {value!r}: use lowercase letters, digits and hyphens only.",
            hint="Example: my-app",
        )
    return name


def validate_password(value: str, *, policy: PasswordPolicy) -> str:
    if len(value) < policy.min_length:
        raise ValidationError(
            f"Database password must be at least {policy.min_length} characters.",
            hint="Use a long random password; it is stored only in .supabase-credentials.env.",
        )
    return value


def validate_repo(value: str) -> str:
    slug = value.strip()
    if slug and not is_repo_slug(slug):
        raise ValidationError(
            f"Invalid GitHub repository {value!r}: expected owner/name.",
            hint="Example: octocat/my-app",
        )
    return slug


def validate_region(value: str) -> str:
    region = value.strip()
    if not region:
        raise ValidationError("Region must not be empty.", hint="Example: us-east-1")
    return region


def ensure_available(workdir: Path, project_name: str) -> Path:
    target = workdir / project_name
    if target.exists():
        raise ConflictError(
            f"Directory already exists: {target}",
            hint=f"Choose another project name, or remove it first: rm -rf {target}",
        )
    return target


def _ask(
    prompt: Prompt,
    label: str,
    validate: Callable[[str], T],
    *,
    default: str = "",
    out: TextIO,
) -> T:
    suffix = f" [{default}]" if default else ""
    while True:
        try:
            raw = prompt(f"{label}{suffix}: ")
        except EOFError as e:
            raise ValidationError(
                f"No input available for {label.lower()}.",
                hint="Pass the value as a flag (see --help) when running non-interactively.",
            ) from e
        answer = raw.strip() or default
        try:
            return validate(answer)
        except ValidationError as e:
            print(f"  {e.message}", file=out)


def _ask_yes_no(prompt: Prompt, question: str, *, default: bool) -> bool:
    suffix = "[Y/n]" if default else "[y/N]"
    try:
        answer = prompt(f"{question} {suffix}: ").strip().lower()
    except EOFError:
        return False
    if not answer:
        return default
    return answer in {"y", "yes"}


def _ask_password(secret_prompt: Prompt, *, policy: PasswordPolicy, out: TextIO) -> str:
    while True:
        try:
            first = secret_prompt(f"Database password (min {policy.min_length} characters): ")
            try:
                validate_password(first, policy=policy)
            except ValidationError as e:
                print(f"  {e.message}", file=out)
                continue
            second = secret_prompt("Confirm database password: ")
        except EOFError as e:
            raise ValidationError(
                "No input available for the database password.",
                hint="Pass --db-password when running non-interactively.",
            ) from e
        if first != second:
            print("  Passwords do not match. Try again.", file=out)
            continue
        return first


def collect_inputs(
    *,
    config: SetupConfig,
    workdir: Path,
    local_only: bool,
    overrides: InputOverrides | None = None,
    prompt: Prompt = input,
    secret_prompt: Prompt = getpass.getpass,
    out: TextIO | None = None,
) -> InputSet | Cancelled:
    """
    Gather the run's inputs, prompting for anything not supplied as a flag.

    Flag values are validated the same way as typed ones, but an invalid flag value raises
    :class:`ValidationError` because there is nobody to re-prompt. An existing project directory
    raises :class:`ConflictError` before any stage runs.
    """

    out = out or sys.stdout
    given = overrides or InputOverrides()
    policy = config.password_policy

    if given.project_name is not None:
        project_name = validate_project_name(given.project_name)
    else:
        project_name = _ask(prompt, "Project name", validate_project_name, default=DEFAULT_PROJECT_NAME, out=out)
    ensure_available(workdir, project_name)

    if given.db_password is not None:
        db_password = validate_password(given.db_password, policy=policy)
    else:
        db_password = _ask_password(secret_prompt, policy=policy, out=out)

    region = validate_region(given.region) if given.region is not None else config.region

    org_reference = ""
    target_repo = ""
    deploy = False
    if not local_only:
        if given.org_reference is not None:
            org_reference = given.org_reference.strip()
        else:
            org_reference = _ask(prompt, "Supabase organization ID (blank for personal)", str.strip, out=out)

        if given.target_repo is not None:
            target_repo = validate_repo(given.target_repo)
        else:
            target_repo = _ask(prompt, "GitHub repository owner/name (blank to skip)", validate_repo, out=out)

        if given.deploy is not None:
            deploy = given.deploy
        else:
            deploy = _ask_yes_no(prompt, "Deploy the web app to Vercel?", default=True)

    inputs = InputSet(
        project_name=project_name,
        db_password=db_password,
        org_reference=org_reference,
        target_repo=target_repo,
        deploy=deploy,
        region=region,
    )

    print("", file=out)
    print("Setup summary:", file=out)
    for line in inputs.summary_lines(local_only=local_only):
        print(line, file=out)
    print("", file=out)

    if given.assume_yes:
        return inputs
    if not _ask_yes_no(prompt, "Proceed?", default=True):
        return Cancelled()
    return inputs
