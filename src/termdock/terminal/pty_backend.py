"""Pseudo-terminal process adapter (ptyprocess on POSIX, pywinpty on Windows)."""

from __future__ import annotations

import asyncio
import logging as py_logging
import os
import shlex
import subprocess
import sys
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from contextlib import suppress
from typing import Protocol

from termdock.errors import ExitCode, TermDockError

logger = py_logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]


class PtyHandle(Protocol):
    def on_data(self, callback: DataCallback) -> None: ...

    def on_exit(self, callback: ExitCallback) -> None: ...

    def start(self) -> None: ...

    def write(self, data: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def kill(self) -> None: ...


class PtySpawn(Protocol):
    def __call__(
        self,
        program: str,
        args: list[str],
        *,
        cols: int,
        rows: int,
        cwd: str,
        env: dict[str, str],
    ) -> PtyHandle: ...


def resolve_shell(
    platform: str | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[str, list[str]]:
    platform = platform or sys.platform
    env = os.environ if env is None else env
    if platform == "win32":
        return env.get("COMSPEC") or "cmd.exe", []
    return env.get("SHELL") or "/bin/zsh", ["-l"]


def build_pty_env(base_env: Mapping[str, str] | None = None, *, terminal_name: str) -> dict[str, str]:
    env = dict(os.environ if base_env is None else base_env)
    env["TERM"] = terminal_name
    env["COLORTERM"] = "truecolor"
    return env


def quote_shell_arg(value: str, platform: str | None = None) -> str:
    if (platform or sys.platform) == "win32":
        return subprocess.list2cmdline([value])
    return shlex.quote(value)


def _spawn_with_ptyprocess(
    argv: list[str],
    *,
    cols: int,
    rows: int,
    cwd: str,
    env: dict[str, str],
) -> object:
    try:
        from ptyprocess import PtyProcessUnicode
    except Exception as exc:
        raise TermDockError(
            "ptyprocess backend is unavailable.",
            code=ExitCode.SPAWN_ERROR,
            hint="Install the ptyprocess package.",
        ) from exc
    return PtyProcessUnicode.spawn(argv, cwd=cwd, env=env, dimensions=(rows, cols))


def _spawn_with_pywinpty(
    argv: list[str],
    *,
    cols: int,
    rows: int,
    cwd: str,
    env: dict[str, str],
) -> object:
    try:
        from winpty import PtyProcess as WinPtyProcess
    except Exception as exc:
        raise TermDockError(
            "pywinpty backend is unavailable.",
            code=ExitCode.SPAWN_ERROR,
            hint="Install the pywinpty package on Windows.",
        ) from exc
    return WinPtyProcess.spawn(subprocess.list2cmdline(argv), cwd=cwd, env=env, dimensions=(rows, cols))


class PtyProcess:
    """Event-style wrapper around a blocking pty process object.

    Blocking reads run on a reader thread owned by this handle, never on the
    loop's default executor. Data and exit callbacks are always invoked on
    the event loop, chunks in read order, and the exit callback exactly once.
    """

    def __init__(self, process: object, *, read_size: int = READ_CHUNK_SIZE) -> None:
        self._process = process
        self._read_size = read_size
        self._data_callbacks: list[DataCallback] = []
        self._exit_callbacks: list[ExitCallback] = []
        self._reader: asyncio.Task[None] | None = None
        self._exited = False

    @property
    def pid(self) -> int | None:
        return getattr(self._process, "pid", None)

    def on_data(self, callback: DataCallback) -> None:
        self._data_callbacks.append(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        self._exit_callbacks.append(callback)

    def start(self) -> None:
        if self._reader is None:
            pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="termdock-pty")
            self._reader = asyncio.get_running_loop().create_task(self._read_loop(pool))

    def write(self, data: str) -> None:
        self._process.write(data)

    def resize(self, cols: int, rows: int) -> None:
        if cols <= 0 or rows <= 0:
            raise TermDockError(
                f"Invalid PTY size: {cols}x{rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )
        self._process.setwinsize(rows, cols)

    def kill(self) -> None:
        alive = _is_alive(self._process)
        if hasattr(self._process, "terminate"):
            with suppress(Exception):
                self._process.terminate(force=True)
        if alive and _is_alive(self._process) and hasattr(self._process, "close"):
            with suppress(Exception):
                self._process.close(force=True)

    async def _read_loop(self, pool: ThreadPoolExecutor) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                try:
                    chunk = await loop.run_in_executor(pool, self._process.read, self._read_size)
                except (EOFError, OSError):
                    break
                if isinstance(chunk, bytes):
                    chunk = chunk.decode("utf-8", errors="replace")
                if chunk:
                    self._emit_data(chunk)
            code = await loop.run_in_executor(pool, self._collect_exit_status)
        finally:
            pool.shutdown(wait=False)
        self._emit_exit(code)

    def _collect_exit_status(self) -> int:
        with suppress(Exception):
            self._process.wait()
        status = getattr(self._process, "exitstatus", None)
        if isinstance(status, int):
            return status
        signal_status = getattr(self._process, "signalstatus", None)
        if isinstance(signal_status, int):
            return -signal_status
        return 0

    def _emit_data(self, chunk: str) -> None:
        for callback in list(self._data_callbacks):
            try:
                callback(chunk)
            except Exception:
                logger.exception("pty-event pid=%s step=data-callback-failed", self.pid)

    def _emit_exit(self, code: int) -> None:
        if self._exited:
            return
        self._exited = True
        for callback in list(self._exit_callbacks):
            try:
                callback(code)
            except Exception:
                logger.exception("pty-event pid=%s step=exit-callback-failed", self.pid)


def spawn_pty(
    program: str,
    args: list[str],
    *,
    cols: int,
    rows: int,
    cwd: str,
    env: dict[str, str],
) -> PtyProcess:
    argv = [program, *args]
    spawner = _spawn_with_pywinpty if sys.platform == "win32" else _spawn_with_ptyprocess
    try:
        process = spawner(argv, cols=cols, rows=rows, cwd=cwd, env=env)
    except TermDockError:
        raise
    except Exception as exc:
        raise TermDockError(
            str(exc) or "Failed to start PTY process.",
            code=ExitCode.SPAWN_ERROR,
            hint="Check the shell program and working directory.",
        ) from exc
    logger.debug("pty-event pid=%s step=spawned command=%s", getattr(process, "pid", None), argv)
    return PtyProcess(process)


def _is_alive(process: object) -> bool:
    if hasattr(process, "isalive"):
        try:
            return bool(process.isalive())
        except Exception:
            return True
    return True
