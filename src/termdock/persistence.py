"""Bridge between the live terminal registry and the durable session store."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, TypeVar

from pydantic import ValidationError

from termdock.errors import ExitCode, TermDockError
from termdock.session import TerminalSession, snapshot_session, utc_now
from termdock.store import SessionStore

if TYPE_CHECKING:
    from termdock.terminal.models import TerminalProcess

logger = py_logging.getLogger(__name__)

T = TypeVar("T")
TerminalProvider = Callable[[], Iterable["TerminalProcess"]]


class SessionPersistence:
    """Best-effort, non-blocking access to a :class:`SessionStore`.

    Every store call runs on one dedicated worker thread, so calls are
    applied in submission order and never stall the event loop. Write
    failures are logged and otherwise ignored; the in-memory registry stays
    the source of truth and the periodic sync repairs the store later.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        interval: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.interval = interval
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="termdock-store")
        self._pending: set[asyncio.Future[object]] = set()
        self._timer: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def periodic_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def save(self, session: TerminalSession) -> None:
        self._write("save", self.store.save_session, session)

    def save_terminal(self, process: TerminalProcess) -> bool:
        try:
            session = snapshot_session(process, now=self._clock())
        except ValidationError as exc:
            logger.warning(
                "session-store step=snapshot terminal=%r status=invalid error=%s",
                process.id,
                exc.errors(include_url=False),
            )
            return False
        if session is None:
            return False
        self.save(session)
        return True

    def remove(self, project_path: str, terminal_id: str) -> None:
        self._write("remove", self.store.remove_session, project_path, terminal_id)

    def update_assistant_session_id(self, project_path: str, terminal_id: str, session_id: str) -> None:
        self._write(
            "update-assistant-session",
            self.store.update_assistant_session_id,
            project_path,
            terminal_id,
            session_id,
        )

    def mark_assistant_mode(self, project_path: str, terminal_id: str) -> None:
        self._write("mark-assistant-mode", self._mark_assistant_mode, project_path, terminal_id)

    def persist_all(self, processes: Iterable[TerminalProcess]) -> int:
        count = 0
        for process in processes:
            if self.save_terminal(process):
                count += 1
        return count

    def start_periodic(self, provider: TerminalProvider) -> None:
        if self.periodic_running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._periodic(provider))
        logger.debug("session-sync step=timer-started interval=%s", self.interval)

    async def stop_periodic(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass
        logger.debug("session-sync step=timer-stopped")

    async def flush(self) -> None:
        """Wait until every store call submitted so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Stop the timer, drain queued store calls and release the worker thread.

        Later writes are dropped; later queries raise a store error.
        """
        await self.stop_periodic()
        await self.flush()
        self._closed = True
        self._executor.shutdown(wait=False)

    async def get_sessions(self, project_path: str) -> list[TerminalSession]:
        return await self._query("get-sessions", self.store.get_sessions, project_path)

    async def clear_sessions(self, project_path: str) -> None:
        await self._query("clear-sessions", self.store.clear_project_sessions, project_path)

    def _mark_assistant_mode(self, project_path: str, terminal_id: str) -> None:
        session = self.store.get_session(project_path, terminal_id)
        if session is None:
            return
        updated = session.model_copy(update={"is_assistant_mode": True, "last_active_at": self._clock()})
        self.store.save_session(updated)

    async def _periodic(self, provider: TerminalProvider) -> None:
        while True:
            await asyncio.sleep(self.interval)
            count = self.persist_all(provider())
            logger.debug("session-sync step=periodic saved=%s", count)

    def _write(self, step: str, func: Callable[..., object], *args: object) -> None:
        if self._closed:
            logger.debug("session-store step=%s status=closed", step)
            return
        self._submit(step, func, *args)

    def _submit(self, step: str, func: Callable[..., object], *args: object) -> asyncio.Future[object]:
        if self._closed:
            raise TermDockError(
                "Session persistence is closed.",
                code=ExitCode.STORE_ERROR,
                hint="Create a new terminal manager after kill_all.",
            )
        future = asyncio.get_running_loop().run_in_executor(self._executor, func, *args)
        self._pending.add(future)
        future.add_done_callback(partial(self._finish, step))
        return future

    def _finish(self, step: str, future: asyncio.Future[object]) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("session-store step=%s status=unavailable error=%s", step, exc)

    async def _query(self, step: str, func: Callable[..., T], *args: object) -> T:
        future = self._submit(step, func, *args)
        try:
            return await future  # type: ignore[return-value]
        except Exception as exc:
            raise TermDockError(
                f"Session store unavailable: {exc}",
                code=ExitCode.STORE_ERROR,
                hint="Check the sessions file permissions and contents.",
            ) from exc
