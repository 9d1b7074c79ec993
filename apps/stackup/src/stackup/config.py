from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from stage_runner.errors import SetupError
from stage_runner.poll import PollPolicy

CONFIG_FILENAME = "stackup.yaml"

DEFAULT_NEXT_STEPS: tuple[str, ...] = (
    "cd {project_name}",
    "pnpm dev",
    "Open http://localhost:3000",
    "supabase status    # check the local backend",
    "supabase db reset  # re-apply migrations locally",
)


class ConfigError(SetupError):
    default_code = "config_invalid"
    default_hint = f"Fix {CONFIG_FILENAME} (or the file passed to --config) and re-run."


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ValueError("min_length must be >= 1")


@dataclass(frozen=True)
class SetupConfig:
    password_policy: PasswordPolicy = field(default_factory=PasswordPolicy)
    region: str = "us-east-1"
    ready_poll: PollPolicy = field(default_factory=PollPolicy)
    node_min_major: int = 18
    ui_components: tuple[str, ...] = ("button", "card", "input", "label", "form")
    next_steps: tuple[str, ...] = DEFAULT_NEXT_STEPS


def _require_mapping(value: Any, *, path: Path, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Expected mapping for {field_name} in {path}, got {type(value).__name__}.")
    return value


def _require_int(value: Any, *, path: Path, field_name: str, default: int, minimum: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Expected integer for {field_name} in {path}, got {type(value).__name__}.")
    if value < minimum:
        raise ConfigError(f"{field_name} in {path} must be >= {minimum}, got {value}.")
    return value


def _require_number(value: Any, *, path: Path, field_name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Expected number for {field_name} in {path}, got {type(value).__name__}.")
    if value < 0:
        raise ConfigError(f"{field_name} in {path} must be >= 0, got {value}.")
    return float(value)


def _require_str_list(value: Any, *, path: Path, field_name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if not isinstance(value, list):
        raise ConfigError(f"Expected list for {field_name} in {path}.")
    out: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"Expected non-empty string for {field_name}[{idx}] in {path}.")
        out.append(item.strip())
    return tuple(out)


def parse_config(raw: Any, *, path: Path) -> SetupConfig:
    """
    Build a :class:`SetupConfig` from a parsed YAML document.

    Expected schema
    ---------------
    password:
      min_length: 8
    backend:
      region: us-east-1
      ready_poll:
        attempts: 12
        interval_seconds: 5
        initial_delay_seconds: 10
    node:
      min_major: 18
    ui_components: [button, card, ...]
    next_steps: ["cd {project_name}", ...]
    """

    root = _require_mapping(raw, path=path, field_name="<root>")
    allowed = {"password", "backend", "node", "ui_components", "next_steps"}
    unknown = set(root) - allowed
    if unknown:
        raise ConfigError(
            f"Unknown keys in {path}: {', '.join(sorted(str(k) for k in unknown))}. "
            f"Allowed: {', '.join(sorted(allowed))}."
        )

    defaults = SetupConfig()
    password = _require_mapping(root.get("password"), path=path, field_name="password")
    backend = _require_mapping(root.get("backend"), path=path, field_name="backend")
    poll = _require_mapping(backend.get("ready_poll"), path=path, field_name="backend.ready_poll")
    node = _require_mapping(root.get("node"), path=path, field_name="node")

    region = backend.get("region", defaults.region)
    if not isinstance(region, str) or not region.strip():
        raise ConfigError(f"Expected non-empty string for backend.region in {path}.")

    return SetupConfig(
        password_policy=PasswordPolicy(
            min_length=_require_int(
                password.get("min_length"),
                path=path,
                field_name="password.min_length",
                default=defaults.password_policy.min_length,
                minimum=1,
            )
        ),
        region=region.strip(),
        ready_poll=PollPolicy(
            attempts=_require_int(
                poll.get("attempts"),
                path=path,
                field_name="backend.ready_poll.attempts",
                default=defaults.ready_poll.attempts,
                minimum=1,
            ),
            interval_seconds=_require_number(
                poll.get("interval_seconds"),
                path=path,
                field_name="backend.ready_poll.interval_seconds",
                default=defaults.ready_poll.interval_seconds,
            ),
            initial_delay_seconds=_require_number(
                poll.get("initial_delay_seconds"),
                path=path,
                field_name="backend.ready_poll.initial_delay_seconds",
                default=defaults.ready_poll.initial_delay_seconds,
            ),
        ),
        node_min_major=_require_int(
            node.get("min_major"),
            path=path,
            field_name="node.min_major",
            default=defaults.node_min_major,
            minimum=1,
        ),
        ui_components=_require_str_list(
            root.get("ui_components"), path=path, field_name="ui_components", default=defaults.ui_components
        ),
        next_steps=_require_str_list(
            root.get("next_steps"), path=path, field_name="next_steps", default=defaults.next_steps
        ),
    )


def load_config(path: Path | None, *, workdir: Path) -> SetupConfig:
    """Load ``path`` (or ``<workdir>/stackup.yaml`` when it exists); defaults when there is no file."""

    explicit = path is not None
    config_path = path if path is not None else workdir / CONFIG_FILENAME
    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        return SetupConfig()

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {config_path}: {e}") from e
    return parse_config(raw, path=config_path)
