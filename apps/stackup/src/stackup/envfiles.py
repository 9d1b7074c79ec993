from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def render_env(values: Mapping[str, str], *, header: Iterable[str] = ()) -> str:
    lines = [f"# {line}" if line else "#" for line in header]
    for key, value in values.items():
        if not key or "=" in key or any(ch.isspace() for ch in key):
            raise ValueError(f"invalid env key: {key!r}")
        if "\n" in value:
            raise ValueError(f"env value for {key} contains a newline")
        lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


def write_env_file(path: Path, values: Mapping[str, str], *, header: Iterable[str] = ()) -> Path:
    """Write ``values`` as ``KEY=VALUE`` lines, replacing any existing file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_env(values, header=header), encoding="utf-8")
    return path


def write_credentials_file(path: Path, values: Mapping[str, str], *, project_name: str) -> Path:
    header = [
        f"Supabase credentials for {project_name}",
        f"Generated on {_utc_stamp()}",
        "Do not commit this file.",
    ]
    return write_env_file(path, values, header=header)


def write_deployment_info(
    path: Path,
    *,
    deployment_url: str,
    project_name: str,
    supabase_url: str,
) -> Path:
    return write_env_file(
        path,
        {
            "DEPLOYMENT_URL": deployment_url,
            "DEPLOYMENT_DATE": _utc_stamp(),
            "PROJECT_NAME": project_name,
            "SUPABASE_URL": supabase_url,
        },
    )


def append_ignore_patterns(path: Path, patterns: Iterable[str]) -> list[str]:
    """Append each pattern not already present as a whole line. Returns the patterns added."""

    try:
        existing_text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        existing_text = ""
    existing = {line.strip() for line in existing_text.splitlines()}

    added: list[str] = []
    for pattern in patterns:
        if pattern in existing or pattern in added:
            continue
        added.append(pattern)
    if not added:
        return []

    prefix = "" if not existing_text or existing_text.endswith("\n") else "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(prefix + "\n".join(added) + "\n")
    return added


def write_if_missing(path: Path, content: str) -> bool:
    """Write ``content`` to ``path`` unless it already exists. Returns True when written."""

    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True
