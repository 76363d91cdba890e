"""Bounded polling for an assistant session id in the session log directory."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from termdock.assistant.scanner import SessionDirectoryScanner

if TYPE_CHECKING:
    from termdock.terminal.models import TerminalProcess

logger = py_logging.getLogger(__name__)

TerminalLookup = Callable[[str], "TerminalProcess | None"]
SessionAdopter = Callable[["TerminalProcess", str], None]


class CaptureOutcome(str, Enum):
    FOUND = "found"
    ABANDONED = "abandoned"
    ALREADY_KNOWN = "already-known"
    TIMED_OUT = "timed-out"


class SessionCapture:
    """Poll the scanner until the terminal's new session log shows up.

    There is no completion signal from the assistant tool, so each attempt
    re-checks whether polling still makes sense: the terminal must exist,
    still be in assistant mode and still lack a session id.
    """

    def __init__(
        self,
        scanner: SessionDirectoryScanner,
        *,
        lookup: TerminalLookup,
        adopt: SessionAdopter,
        initial_delay: float = 2.0,
        retry_interval: float = 1.0,
        max_attempts: int = 10,
    ) -> None:
        self.scanner = scanner
        self._lookup = lookup
        self._adopt = adopt
        self.initial_delay = initial_delay
        self.retry_interval = retry_interval
        self.max_attempts = max_attempts
        self._tasks: set[asyncio.Task[CaptureOutcome]] = set()

    def schedule(self, terminal_id: str, project_dir: str, started_at: float) -> asyncio.Task[CaptureOutcome]:
        task = asyncio.get_running_loop().create_task(self.run(terminal_id, project_dir, started_at))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("session-capture terminal=%s step=scheduled project=%s", terminal_id, project_dir)
        return task

    async def run(self, terminal_id: str, project_dir: str, started_at: float) -> CaptureOutcome:
        await asyncio.sleep(self.initial_delay)
        for attempt in range(1, self.max_attempts + 1):
            outcome = self._precheck(terminal_id)
            if outcome is not None:
                return outcome

            session_id = await asyncio.to_thread(self.scanner.find_session_after, project_dir, started_at)

            # The terminal may have changed while the scan ran off-loop.
            outcome = self._precheck(terminal_id)
            if outcome is not None:
                return outcome

            if session_id:
                terminal = self._lookup(terminal_id)
                if terminal is not None:
                    logger.info(
                        "session-capture terminal=%s step=found session=%s attempt=%s",
                        terminal_id,
                        session_id,
                        attempt,
                    )
                    self._adopt(terminal, session_id)
                return CaptureOutcome.FOUND

            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_interval)

        logger.info(
            "session-capture terminal=%s step=timeout attempts=%s",
            terminal_id,
            self.max_attempts,
        )
        return CaptureOutcome.TIMED_OUT

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _precheck(self, terminal_id: str) -> CaptureOutcome | None:
        terminal = self._lookup(terminal_id)
        if terminal is None or not terminal.is_assistant_mode:
            return CaptureOutcome.ABANDONED
        if terminal.assistant_session_id:
            return CaptureOutcome.ALREADY_KNOWN
        return None
