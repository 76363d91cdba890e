from __future__ import annotations

import asyncio
import os
import shutil
import sys
from pathlib import Path

import pytest

from termdock.assistant.scanner import SessionDirectoryScanner
from termdock.config import AppConfig
from termdock.store import JsonSessionStore
from termdock.terminal import TerminalEvent, TerminalExited, TerminalManager

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("sh") is None,
    reason="requires a POSIX shell",
)
pytest.importorskip("ptyprocess")


def test_shell_roundtrip_through_real_pty(tmp_path: Path) -> None:
    events: list[TerminalEvent] = []
    store = JsonSessionStore(tmp_path / "sessions.json")
    environ = {"SHELL": shutil.which("sh") or "/bin/sh", "PATH": os.environ.get("PATH", ""), "HOME": str(tmp_path)}

    async def scenario() -> None:
        manager = TerminalManager(
            config=AppConfig(),
            store=store,
            scanner=SessionDirectoryScanner(tmp_path / "projects"),
            environ=environ,
        )
        manager.events.subscribe(events.append)
        result = await manager.create("t1", cwd=str(tmp_path), project_path=str(tmp_path))
        assert result.success, result.error

        manager.write("t1", "echo termdock-$((20 + 22))\r")
        for _ in range(500):
            if "termdock-42" in manager.get_output_buffer("t1"):
                break
            await asyncio.sleep(0.01)

        manager.write("t1", "exit 3\r")
        for _ in range(500):
            if not manager.get_active_ids():
                break
            await asyncio.sleep(0.01)
        await manager.persistence.flush()

    asyncio.run(scenario())

    exits = [event for event in events if isinstance(event, TerminalExited)]
    assert exits == [TerminalExited("t1", 3)]
    assert store.get_sessions(str(tmp_path)) == []
