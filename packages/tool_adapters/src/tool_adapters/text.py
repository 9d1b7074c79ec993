from __future__ import annotations

import json
import re
from typing import Any

from stage_runner.errors import ExtractionFailure

_ENV_LINE_RE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*?)\s*$")


def parse_env_text(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines (comments and blank lines ignored, surrounding quotes stripped)."""

    out: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _ENV_LINE_RE.match(stripped)
        if match is None:
            continue
        key, value = match.group(1), match.group(2)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        out[key] = value
    return out


def load_json_payload(text: str) -> Any | None:
    """Return the JSON document in ``text``, skipping any banner lines a CLI prints before it."""

    raw = text.strip()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    decoder = json.JSONDecoder()
    for idx, char in enumerate(raw):
        if char not in "[{":
            continue
        try:
            payload, _ = decoder.raw_decode(raw[idx:])
        except json.JSONDecodeError:
            continue
        return payload
    return None


def require_match(pattern: re.Pattern[str], text: str, *, what: str, group: int = 0, last: bool = False) -> str:
    matches = list(pattern.finditer(text))
    if not matches:
        raise ExtractionFailure(
            f"Could not find {what} in tool output",
            pattern=pattern.pattern,
            output=text,
        )
    match = matches[-1] if last else matches[0]
    return match.group(group)
