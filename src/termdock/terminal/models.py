"""In-memory terminal records owned by the registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from termdock.config import OUTPUT_BUFFER_LIMIT

if TYPE_CHECKING:
    from termdock.terminal.pty_backend import PtyHandle


@dataclass
class TerminalProcess:
    id: str
    pty: PtyHandle = field(repr=False)
    cwd: str
    title: str
    project_path: str | None = None
    is_assistant_mode: bool = False
    assistant_session_id: str | None = None
    output_buffer: str = field(default="", repr=False)

    def append_output(self, chunk: str, limit: int = OUTPUT_BUFFER_LIMIT) -> None:
        buffer = self.output_buffer + chunk
        if len(buffer) > limit:
            buffer = buffer[-limit:]
        self.output_buffer = buffer

    def adopt_session_id(self, session_id: str) -> bool:
        """Record an automatically discovered session id; the first one wins."""
        if self.assistant_session_id:
            return False
        self.assistant_session_id = session_id
        return True
