"""Persisted terminal session records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from termdock.config import OUTPUT_BUFFER_LIMIT

if TYPE_CHECKING:
    from termdock.terminal.models import TerminalProcess


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def trim_output(buffer: str, limit: int = OUTPUT_BUFFER_LIMIT) -> str:
    """Keep the trailing ``limit`` characters of ``buffer``."""
    if len(buffer) <= limit:
        return buffer
    return buffer[-limit:]


class TerminalSession(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(min_length=1)
    title: str
    cwd: str
    project_path: str = Field(min_length=1)
    is_assistant_mode: bool = False
    assistant_session_id: str | None = None
    output_buffer: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    last_active_at: datetime = Field(default_factory=utc_now)

    @field_validator("output_buffer")
    @classmethod
    def _cap_output_buffer(cls, value: str) -> str:
        return trim_output(value)


def snapshot_session(process: TerminalProcess, *, now: datetime | None = None) -> TerminalSession | None:
    """Build the persisted shape of a live terminal.

    Terminals without a project path are never persisted and yield ``None``.
    Both timestamps are refreshed to ``now`` on every snapshot.
    """
    if not process.project_path:
        return None
    stamp = now or utc_now()
    return TerminalSession(
        id=process.id,
        title=process.title,
        cwd=process.cwd,
        project_path=process.project_path,
        is_assistant_mode=process.is_assistant_mode,
        assistant_session_id=process.assistant_session_id,
        output_buffer=process.output_buffer,
        created_at=stamp,
        last_active_at=stamp,
    )


def parse_session(raw: Any) -> TerminalSession | None:
    if not isinstance(raw, dict):
        return None
    try:
        return TerminalSession.model_validate(raw)
    except ValidationError:
        return None
