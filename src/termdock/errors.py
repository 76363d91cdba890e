"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    SPAWN_ERROR = 5
    NOT_FOUND = 6
    STORE_ERROR = 7
    VALIDATION_ERROR = 8
    UNSUPPORTED_PLATFORM = 9


@dataclass
class TermDockError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a registry command as reported back to the UI layer."""

    success: bool
    error: str = ""
    code: ExitCode = ExitCode.SUCCESS
    output_buffer: str | None = None

    @classmethod
    def ok(cls, *, output_buffer: str | None = None) -> CommandResult:
        return cls(success=True, output_buffer=output_buffer)

    @classmethod
    def failed(cls, error: str, *, code: ExitCode = ExitCode.RUNTIME_ERROR) -> CommandResult:
        return cls(success=False, error=error, code=code)

    @classmethod
    def from_error(cls, exc: TermDockError) -> CommandResult:
        return cls(success=False, error=exc.message, code=exc.code)


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
