"""Registry of live terminals and the commands the UI issues against them."""

from __future__ import annotations

import asyncio
import logging as py_logging
import sys
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path

from termdock.assistant.capture import SessionCapture
from termdock.assistant.scanner import SessionDirectoryScanner
from termdock.assistant.signals import extract_rate_limit_reset, extract_session_id
from termdock.config import AppConfig
from termdock.errors import CommandResult, ExitCode, TermDockError
from termdock.persistence import SessionPersistence
from termdock.session import TerminalSession
from termdock.store import JsonSessionStore, SessionStore
from termdock.terminal.events import (
    AssistantSessionDiscovered,
    EventHub,
    RateLimitDetected,
    TerminalExited,
    TerminalOutput,
    TitleChanged,
)
from termdock.terminal.models import TerminalProcess
from termdock.terminal.pty_backend import (
    PtySpawn,
    build_pty_env,
    quote_shell_arg,
    resolve_shell,
    spawn_pty,
)

logger = py_logging.getLogger(__name__)

Clock = Callable[[], float]


class TerminalManager:
    """Single owner of every live terminal.

    All mutation happens on the event loop through these methods, which is
    what keeps the buffer cap and the one-process-per-id rule intact without
    locks. Blocking work (store I/O, directory scans, process termination)
    is pushed to executors.
    """

    def __init__(
        self,
        *,
        config: AppConfig | None = None,
        events: EventHub | None = None,
        store: SessionStore | None = None,
        spawn: PtySpawn | None = None,
        scanner: SessionDirectoryScanner | None = None,
        clock: Clock = time.time,
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.events = events or EventHub()
        self._spawn = spawn or spawn_pty
        self._clock = clock
        self._platform = platform or sys.platform
        self._environ = environ
        self._terminals: dict[str, TerminalProcess] = {}
        self._rate_limit_notified_at: dict[str, float] = {}
        self.persistence = SessionPersistence(
            store or JsonSessionStore(self.config.sessions_path()),
            interval=self.config.persist_interval_seconds,
            clock=lambda: datetime.fromtimestamp(self._clock(), tz=timezone.utc),
        )
        self.capture = SessionCapture(
            scanner
            or SessionDirectoryScanner(
                self.config.projects_root(),
                extension=self.config.session_log_extension,
            ),
            lookup=self._lookup,
            adopt=self._adopt_discovered_session,
            initial_delay=self.config.capture_initial_delay_seconds,
            retry_interval=self.config.capture_retry_interval_seconds,
            max_attempts=self.config.capture_max_attempts,
        )

    def start(self) -> None:
        """Begin periodic persistence; requires a running event loop."""
        self.persistence.start_periodic(lambda: list(self._terminals.values()))

    async def create(
        self,
        terminal_id: str,
        *,
        cwd: str | None = None,
        cols: int | None = None,
        rows: int | None = None,
        project_path: str | None = None,
    ) -> CommandResult:
        if terminal_id in self._terminals:
            self._record(terminal_id, "create-duplicate", "Terminal already running.")
            return CommandResult.ok()
        if not terminal_id.strip():
            self._record(terminal_id, "create-rejected", "Terminal id cannot be empty.")
            return CommandResult.failed("Terminal id cannot be empty.", code=ExitCode.VALIDATION_ERROR)

        program, args = resolve_shell(self._platform, self._environ)
        terminal_cwd = cwd or str(Path.home())
        try:
            handle = self._spawn(
                program,
                args,
                cols=cols or self.config.default_cols,
                rows=rows or self.config.default_rows,
                cwd=terminal_cwd,
                env=build_pty_env(self._environ, terminal_name=self.config.terminal_name),
            )
        except TermDockError as exc:
            self._record(terminal_id, "create-failed", exc.message)
            return CommandResult.from_error(exc)
        except Exception as exc:
            self._record(terminal_id, "create-failed", str(exc))
            return CommandResult.failed(str(exc) or "Failed to create terminal.", code=ExitCode.SPAWN_ERROR)

        terminal = TerminalProcess(
            id=terminal_id,
            pty=handle,
            cwd=terminal_cwd,
            title=f"Terminal {len(self._terminals) + 1}",
            project_path=project_path or None,
        )
        self._terminals[terminal_id] = terminal
        handle.on_data(lambda chunk: self._handle_output(terminal, chunk))
        handle.on_exit(lambda code: self._handle_exit(terminal, code))
        handle.start()

        if terminal.project_path:
            self.persistence.save_terminal(terminal)

        self._record(terminal_id, "create", f"Spawned {program} in {terminal_cwd}.")
        return CommandResult.ok()

    async def restore(
        self,
        session: TerminalSession,
        *,
        cols: int | None = None,
        rows: int | None = None,
    ) -> CommandResult:
        result = await self.create(
            session.id,
            cwd=session.cwd,
            cols=cols,
            rows=rows,
            project_path=session.project_path,
        )
        if not result.success:
            return result

        terminal = self._terminals.get(session.id)
        if terminal is None:
            return CommandResult.failed("Terminal not found after creation.", code=ExitCode.NOT_FOUND)
        terminal.title = session.title

        if session.is_assistant_mode:
            started_at = self._clock()
            # Shell init frameworks may still be loading when the pty appears.
            await asyncio.sleep(self.config.restore_settle_delay_seconds)
            terminal = self._terminals.get(session.id)
            if terminal is None:
                return CommandResult.failed("Terminal exited during restore.", code=ExitCode.NOT_FOUND)

            terminal.is_assistant_mode = True
            terminal.assistant_session_id = session.assistant_session_id
            project_dir = session.cwd or session.project_path
            self.write(session.id, self._restore_command(project_dir, session.assistant_session_id) + "\r")
            self.events.publish(TitleChanged(session.id, self.config.assistant_title))
            self._record(
                session.id,
                "restore-assistant",
                f"Resuming session={session.assistant_session_id or '<picker>'} in {project_dir}.",
            )
            if not session.assistant_session_id and project_dir:
                self.capture.schedule(session.id, project_dir, started_at)

        return CommandResult.ok(output_buffer=session.output_buffer)

    async def destroy(self, terminal_id: str) -> CommandResult:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            return CommandResult.failed("Terminal not found", code=ExitCode.NOT_FOUND)

        if terminal.project_path:
            self.persistence.remove(terminal.project_path, terminal_id)
        del self._terminals[terminal_id]
        self._rate_limit_notified_at.pop(terminal_id, None)
        await self._terminate(terminal)
        self._record(terminal_id, "destroy", "Terminal destroyed.")
        return CommandResult.ok()

    def write(self, terminal_id: str, data: str) -> None:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            return
        try:
            terminal.pty.write(data)
        except OSError as exc:
            logger.warning("terminal-event terminal=%s step=write-failed error=%s", terminal_id, exc)

    def resize(self, terminal_id: str, cols: int, rows: int) -> None:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            return
        try:
            terminal.pty.resize(cols, rows)
        except (TermDockError, OSError) as exc:
            logger.warning("terminal-event terminal=%s step=resize-failed error=%s", terminal_id, exc)

    def invoke_assistant(self, terminal_id: str, cwd: str | None = None) -> None:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            return

        terminal.is_assistant_mode = True
        terminal.assistant_session_id = None
        started_at = self._clock()
        project_dir = cwd or terminal.project_path or terminal.cwd

        command = self.config.assistant_command
        if cwd:
            command = f"cd {quote_shell_arg(cwd, self._platform)} && {command}"
        self.write(terminal_id, command + "\r")
        self.events.publish(TitleChanged(terminal_id, self.config.assistant_title))

        if terminal.project_path:
            self.persistence.mark_assistant_mode(terminal.project_path, terminal_id)
        self._record(terminal_id, "invoke-assistant", f"Started {self.config.assistant_command}.")

        if project_dir:
            self.capture.schedule(terminal_id, project_dir, started_at)

    def resume_assistant(self, terminal_id: str, session_id: str | None = None) -> None:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            return

        terminal.is_assistant_mode = True
        assistant = self.config.assistant_command
        if session_id:
            command = f"{assistant} --resume {quote_shell_arg(session_id, self._platform)}"
            terminal.assistant_session_id = session_id
        else:
            command = f"{assistant} --continue"
        self.write(terminal_id, command + "\r")
        self.events.publish(TitleChanged(terminal_id, self.config.assistant_title))
        self._record(terminal_id, "resume-assistant", f"Resuming session={session_id or '<latest>'}.")

    def set_title(self, terminal_id: str, title: str) -> None:
        terminal = self._terminals.get(terminal_id)
        if terminal is not None:
            terminal.title = title

    def is_assistant_mode(self, terminal_id: str) -> bool:
        terminal = self._terminals.get(terminal_id)
        return terminal.is_assistant_mode if terminal is not None else False

    def get_assistant_session_id(self, terminal_id: str) -> str | None:
        terminal = self._terminals.get(terminal_id)
        return terminal.assistant_session_id if terminal is not None else None

    def get_active_ids(self) -> list[str]:
        return list(self._terminals)

    def get_output_buffer(self, terminal_id: str) -> str:
        terminal = self._terminals.get(terminal_id)
        return terminal.output_buffer if terminal is not None else ""

    async def get_saved_sessions(self, project_path: str) -> list[TerminalSession]:
        return await self.persistence.get_sessions(project_path)

    async def clear_saved_sessions(self, project_path: str) -> None:
        await self.persistence.clear_sessions(project_path)

    async def kill_all(self) -> None:
        saved = self.persistence.persist_all(list(self._terminals.values()))
        await self.persistence.stop_periodic()
        self.capture.cancel_all()

        terminals = list(self._terminals.values())
        self._terminals.clear()
        self._rate_limit_notified_at.clear()
        await asyncio.gather(*(self._terminate(item) for item in terminals))
        await self.persistence.close()
        logger.info("terminal-event terminal=* step=kill-all killed=%s saved=%s", len(terminals), saved)

    def _lookup(self, terminal_id: str) -> TerminalProcess | None:
        return self._terminals.get(terminal_id)

    def _handle_output(self, terminal: TerminalProcess, chunk: str) -> None:
        if self._terminals.get(terminal.id) is not terminal:
            return
        terminal.append_output(chunk, self.config.output_buffer_limit)

        if terminal.is_assistant_mode and not terminal.assistant_session_id:
            match = extract_session_id(chunk)
            if match is not None:
                self._adopt_discovered_session(terminal, match.value)

        if terminal.is_assistant_mode:
            rate_limit = extract_rate_limit_reset(chunk)
            if rate_limit is not None:
                self._notify_rate_limit(terminal, rate_limit.value)

        self.events.publish(TerminalOutput(terminal.id, chunk))

    def _handle_exit(self, terminal: TerminalProcess, exit_code: int) -> None:
        if self._terminals.get(terminal.id) is not terminal:
            logger.debug("terminal-event terminal=%s step=exit-ignored code=%s", terminal.id, exit_code)
            return

        self.events.publish(TerminalExited(terminal.id, exit_code))
        if terminal.project_path:
            self.persistence.remove(terminal.project_path, terminal.id)
        del self._terminals[terminal.id]
        self._rate_limit_notified_at.pop(terminal.id, None)
        self._record(terminal.id, "exit", f"Process exited with code {exit_code}.")

    def _adopt_discovered_session(self, terminal: TerminalProcess, session_id: str) -> None:
        if not terminal.adopt_session_id(session_id):
            return
        if terminal.project_path:
            self.persistence.update_assistant_session_id(terminal.project_path, terminal.id, session_id)
        self.events.publish(AssistantSessionDiscovered(terminal.id, session_id))
        self._record(terminal.id, "assistant-session", f"Captured session={session_id}.")

    def _notify_rate_limit(self, terminal: TerminalProcess, reset_time: str) -> None:
        now = self._clock()
        last = self._rate_limit_notified_at.get(terminal.id)
        if last is not None and now - last <= self.config.rate_limit_cooldown_seconds:
            return
        self._rate_limit_notified_at[terminal.id] = now
        self.events.publish(
            RateLimitDetected(
                terminal.id,
                reset_time,
                datetime.fromtimestamp(now, tz=timezone.utc),
            )
        )
        self._record(terminal.id, "rate-limit", f"Limit resets {reset_time}.")

    def _restore_command(self, project_dir: str, session_id: str | None) -> str:
        clear = "cls" if self._platform == "win32" else "clear"
        parts = [clear]
        if project_dir:
            parts.append(f"cd {quote_shell_arg(project_dir, self._platform)}")
        resume = f"{self.config.assistant_command} --resume"
        if session_id:
            resume = f"{resume} {quote_shell_arg(session_id, self._platform)}"
        parts.append(resume)
        return " && ".join(parts)

    async def _terminate(self, terminal: TerminalProcess) -> None:
        try:
            await asyncio.to_thread(terminal.pty.kill)
        except Exception:
            logger.debug("terminal-event terminal=%s step=kill-failed", terminal.id, exc_info=True)

    def _record(self, terminal_id: str, step: str, message: str) -> None:
        logger.info("terminal-event terminal=%s step=%s message=%s", terminal_id, step, message)
