"""XDG config loading/saving."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/termdock/config.toml").expanduser()
DEFAULT_SESSIONS_FILE = "~/.config/termdock/sessions.json"
DEFAULT_ASSISTANT_COMMAND = "claude"
DEFAULT_ASSISTANT_TITLE = "Claude"
DEFAULT_ASSISTANT_PROJECTS_DIR = "~/.claude/projects"
DEFAULT_SESSION_LOG_EXTENSION = ".jsonl"
DEFAULT_TERMINAL_NAME = "xterm-256color"
OUTPUT_BUFFER_LIMIT = 100_000
ASSISTANT_COMMAND_ENV = "TERMDOCK_ASSISTANT_COMMAND"

_STRING_FIELDS = (
    "terminal_name",
    "assistant_command",
    "assistant_title",
    "assistant_projects_dir",
    "session_log_extension",
    "sessions_file",
)
_DELAY_FIELDS = (
    "persist_interval_seconds",
    "rate_limit_cooldown_seconds",
    "capture_initial_delay_seconds",
    "capture_retry_interval_seconds",
    "restore_settle_delay_seconds",
)
_INT_FIELDS = {
    "default_cols": (1, 1000),
    "default_rows": (1, 1000),
    "capture_max_attempts": (1, 100),
    "output_buffer_limit": (1, 10_000_000),
}


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    default_cols: int = Field(default=80, ge=1, le=1000)
    default_rows: int = Field(default=24, ge=1, le=1000)
    terminal_name: str = DEFAULT_TERMINAL_NAME
    assistant_command: str = DEFAULT_ASSISTANT_COMMAND
    assistant_title: str = DEFAULT_ASSISTANT_TITLE
    assistant_projects_dir: str = DEFAULT_ASSISTANT_PROJECTS_DIR
    session_log_extension: str = DEFAULT_SESSION_LOG_EXTENSION
    sessions_file: str = DEFAULT_SESSIONS_FILE
    persist_interval_seconds: float = Field(default=30.0, gt=0)
    rate_limit_cooldown_seconds: float = Field(default=60.0, ge=0)
    capture_initial_delay_seconds: float = Field(default=2.0, ge=0)
    capture_retry_interval_seconds: float = Field(default=1.0, ge=0)
    capture_max_attempts: int = Field(default=10, ge=1, le=100)
    restore_settle_delay_seconds: float = Field(default=1.0, ge=0)
    output_buffer_limit: int = Field(default=OUTPUT_BUFFER_LIMIT, ge=1, le=10_000_000)

    @field_validator("assistant_command", "assistant_title", "terminal_name")
    @classmethod
    def _validate_non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Value cannot be empty")
        return value.strip()

    @field_validator("session_log_extension")
    @classmethod
    def _validate_extension(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(".") or len(value) < 2:
            raise ValueError(f"Invalid session log extension: {value}")
        return value

    def projects_root(self) -> Path:
        return Path(self.assistant_projects_dir).expanduser()

    def sessions_path(self) -> Path:
        return Path(self.sessions_file).expanduser()


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    for name in _STRING_FIELDS:
        value = raw.get(name)
        if isinstance(value, str):
            with suppress(ValueError):
                setattr(cfg, name, value)

    for name in _DELAY_FIELDS:
        value = raw.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            with suppress(ValueError):
                setattr(cfg, name, float(value))

    for name, (low, high) in _INT_FIELDS.items():
        value = raw.get(name)
        if isinstance(value, int) and not isinstance(value, bool) and low <= value <= high:
            setattr(cfg, name, value)

    env_command = os.getenv(ASSISTANT_COMMAND_ENV, "").strip()
    if env_command:
        cfg.assistant_command = env_command

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _sanitize({})
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return _sanitize({})
    if not isinstance(raw, dict):
        return _sanitize({})
    return _sanitize(raw)


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump()
    lines = [f"{name} = {_toml_scalar(payload[name])}" for name in AppConfig.model_fields]
    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
