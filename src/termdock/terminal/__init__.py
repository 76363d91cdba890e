"""Terminal session registry domain package."""

from .events import (
    AssistantSessionDiscovered,
    EventHub,
    RateLimitDetected,
    TerminalEvent,
    TerminalExited,
    TerminalOutput,
    TitleChanged,
)
from .manager import TerminalManager
from .models import TerminalProcess
from .pty_backend import PtyHandle, PtyProcess, build_pty_env, quote_shell_arg, resolve_shell, spawn_pty

__all__ = [
    "AssistantSessionDiscovered",
    "build_pty_env",
    "EventHub",
    "PtyHandle",
    "PtyProcess",
    "quote_shell_arg",
    "RateLimitDetected",
    "resolve_shell",
    "spawn_pty",
    "TerminalEvent",
    "TerminalExited",
    "TerminalManager",
    "TerminalOutput",
    "TerminalProcess",
    "TitleChanged",
]
