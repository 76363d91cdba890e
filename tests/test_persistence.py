from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from termdock.errors import ExitCode, TermDockError
from termdock.persistence import SessionPersistence
from termdock.session import TerminalSession
from termdock.terminal.models import TerminalProcess

_NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class _MemoryStore:
    def __init__(self) -> None:
        self.sessions: dict[str, dict[str, TerminalSession]] = {}
        self.calls: list[str] = []

    def save_session(self, session: TerminalSession) -> None:
        self.calls.append(f"save:{session.id}")
        self.sessions.setdefault(session.project_path, {})[session.id] = session

    def get_session(self, project_path: str, terminal_id: str) -> TerminalSession | None:
        return self.sessions.get(project_path, {}).get(terminal_id)

    def get_sessions(self, project_path: str) -> list[TerminalSession]:
        return list(self.sessions.get(project_path, {}).values())

    def remove_session(self, project_path: str, terminal_id: str) -> None:
        self.calls.append(f"remove:{terminal_id}")
        self.sessions.get(project_path, {}).pop(terminal_id, None)

    def clear_project_sessions(self, project_path: str) -> None:
        self.sessions.pop(project_path, None)

    def update_assistant_session_id(self, project_path: str, terminal_id: str, session_id: str) -> None:
        session = self.get_session(project_path, terminal_id)
        if session is not None:
            session.assistant_session_id = session_id


class _BrokenStore(_MemoryStore):
    def save_session(self, session: TerminalSession) -> None:
        raise OSError("read-only file system")

    def get_sessions(self, project_path: str) -> list[TerminalSession]:
        raise OSError("read-only file system")


def _process(terminal_id: str = "t1", project_path: str | None = "/proj") -> TerminalProcess:
    return TerminalProcess(
        id=terminal_id,
        pty=object(),  # type: ignore[arg-type]
        cwd="/proj",
        title="Terminal 1",
        project_path=project_path,
    )


def test_writes_apply_in_submission_order() -> None:
    store = _MemoryStore()

    async def scenario() -> None:
        persistence = SessionPersistence(store, clock=lambda: _NOW)
        assert persistence.save_terminal(_process()) is True
        persistence.remove("/proj", "t1")
        persistence.save_terminal(_process("t2"))
        await persistence.flush()

    asyncio.run(scenario())

    assert store.calls == ["save:t1", "remove:t1", "save:t2"]
    assert list(store.sessions["/proj"]) == ["t2"]
    assert store.sessions["/proj"]["t2"].last_active_at == _NOW


def test_terminals_without_project_are_not_saved() -> None:
    store = _MemoryStore()

    async def scenario() -> int:
        persistence = SessionPersistence(store)
        count = persistence.persist_all([_process("t1", None), _process("t2")])
        await persistence.flush()
        return count

    assert asyncio.run(scenario()) == 1
    assert store.calls == ["save:t2"]


def test_mark_assistant_mode_updates_existing_record_only() -> None:
    store = _MemoryStore()

    async def scenario() -> None:
        persistence = SessionPersistence(store, clock=lambda: _NOW)
        persistence.save_terminal(_process())
        persistence.mark_assistant_mode("/proj", "t1")
        persistence.mark_assistant_mode("/proj", "missing")
        persistence.update_assistant_session_id("/proj", "t1", "sess-1")
        await persistence.flush()

    asyncio.run(scenario())

    saved = store.sessions["/proj"]["t1"]
    assert saved.is_assistant_mode is True
    assert saved.assistant_session_id == "sess-1"
    assert "missing" not in store.sessions["/proj"]


def test_write_failures_are_contained() -> None:
    store = _BrokenStore()

    async def scenario() -> None:
        persistence = SessionPersistence(store)
        persistence.save_terminal(_process())
        persistence.remove("/proj", "t1")
        await persistence.flush()

    asyncio.run(scenario())

    assert store.calls == ["remove:t1"]


def test_query_failures_raise_store_error() -> None:
    async def scenario() -> None:
        persistence = SessionPersistence(_BrokenStore())
        await persistence.get_sessions("/proj")

    with pytest.raises(TermDockError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.code == ExitCode.STORE_ERROR


def test_clear_sessions_round_trip() -> None:
    store = _MemoryStore()

    async def scenario() -> list[TerminalSession]:
        persistence = SessionPersistence(store)
        persistence.save_terminal(_process())
        await persistence.clear_sessions("/proj")
        return await persistence.get_sessions("/proj")

    assert asyncio.run(scenario()) == []


def test_periodic_sync_snapshots_provider_until_stopped() -> None:
    store = _MemoryStore()
    terminals = [_process()]

    async def scenario() -> None:
        persistence = SessionPersistence(store, interval=0.01)
        persistence.start_periodic(lambda: terminals)
        persistence.start_periodic(lambda: terminals)
        assert persistence.periodic_running
        await asyncio.sleep(0.1)
        await persistence.stop_periodic()
        await persistence.flush()
        assert not persistence.periodic_running

        saved = len(store.calls)
        await asyncio.sleep(0.05)
        await persistence.flush()
        assert len(store.calls) == saved

    asyncio.run(scenario())

    assert len(store.calls) >= 2
    assert set(store.calls) == {"save:t1"}


def test_invalid_snapshot_is_skipped_instead_of_raising() -> None:
    store = _MemoryStore()

    async def scenario() -> int:
        persistence = SessionPersistence(store)
        count = persistence.persist_all([_process(""), _process("t2")])
        await persistence.flush()
        return count

    assert asyncio.run(scenario()) == 1
    assert store.calls == ["save:t2"]


def test_close_drains_queue_then_rejects_further_use() -> None:
    store = _MemoryStore()

    async def scenario() -> None:
        persistence = SessionPersistence(store)
        persistence.start_periodic(lambda: [])
        persistence.save_terminal(_process())
        await persistence.close()

        assert persistence.closed
        assert not persistence.periodic_running
        persistence.save_terminal(_process("t2"))
        persistence.remove("/proj", "t1")
        with pytest.raises(TermDockError) as exc_info:
            await persistence.get_sessions("/proj")
        assert exc_info.value.code == ExitCode.STORE_ERROR

    asyncio.run(scenario())

    assert store.calls == ["save:t1"]
