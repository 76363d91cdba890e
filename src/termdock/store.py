"""Durable terminal session store."""

from __future__ import annotations

import json
import logging as py_logging
import os
import tempfile
import threading
from contextlib import suppress
from pathlib import Path
from typing import Protocol

from typing_extensions import TypedDict

from termdock.config import DEFAULT_SESSIONS_FILE
from termdock.session import TerminalSession, parse_session, utc_now

logger = py_logging.getLogger(__name__)


class SessionRecord(TypedDict, total=False):
    id: str
    title: str
    cwd: str
    project_path: str
    is_assistant_mode: bool
    assistant_session_id: str | None
    output_buffer: str
    created_at: str
    last_active_at: str


SessionDocument = dict[str, dict[str, SessionRecord]]


class SessionStore(Protocol):
    def save_session(self, session: TerminalSession) -> None: ...

    def get_session(self, project_path: str, terminal_id: str) -> TerminalSession | None: ...

    def get_sessions(self, project_path: str) -> list[TerminalSession]: ...

    def remove_session(self, project_path: str, terminal_id: str) -> None: ...

    def clear_project_sessions(self, project_path: str) -> None: ...

    def update_assistant_session_id(self, project_path: str, terminal_id: str, session_id: str) -> None: ...


class JsonSessionStore:
    """Sessions grouped by project path in a single JSON document.

    Writes replace the file atomically. A missing or unreadable file reads
    as an empty store.
    """

    def __init__(self, path: str | Path = DEFAULT_SESSIONS_FILE) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def save_session(self, session: TerminalSession) -> None:
        with self._lock:
            data = self._load()
            data.setdefault(session.project_path, {})[session.id] = _record(session)
            self._write(data)

    def get_session(self, project_path: str, terminal_id: str) -> TerminalSession | None:
        with self._lock:
            raw = self._load().get(project_path, {}).get(terminal_id)
        return parse_session(raw)

    def get_sessions(self, project_path: str) -> list[TerminalSession]:
        with self._lock:
            project = self._load().get(project_path, {})
        sessions = [parse_session(raw) for raw in project.values()]
        return [item for item in sessions if item is not None]

    def remove_session(self, project_path: str, terminal_id: str) -> None:
        with self._lock:
            data = self._load()
            project = data.get(project_path)
            if not project or terminal_id not in project:
                return
            del project[terminal_id]
            if not project:
                del data[project_path]
            self._write(data)

    def clear_project_sessions(self, project_path: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(project_path, None) is None:
                return
            self._write(data)

    def update_assistant_session_id(self, project_path: str, terminal_id: str, session_id: str) -> None:
        with self._lock:
            data = self._load()
            session = parse_session(data.get(project_path, {}).get(terminal_id))
            if session is None:
                return
            session.assistant_session_id = session_id
            session.last_active_at = utc_now()
            data[project_path][terminal_id] = _record(session)
            self._write(data)

    def _load(self) -> SessionDocument:
        if not self.path.exists():
            return {}
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("session-store path=%s step=unreadable", self.path, exc_info=True)
            return {}
        if not isinstance(loaded, dict):
            return {}
        return {
            str(project): dict(sessions)
            for project, sessions in loaded.items()
            if isinstance(sessions, dict)
        }

    def _write(self, data: SessionDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".sessions-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=True, separators=(",", ":"))
            os.replace(tmp_name, self.path)
        except BaseException:
            with suppress(OSError):
                os.unlink(tmp_name)
            raise
        with suppress(OSError):
            self.path.chmod(0o600)


def _record(session: TerminalSession) -> SessionRecord:
    return SessionRecord(**session.model_dump(mode="json"))
