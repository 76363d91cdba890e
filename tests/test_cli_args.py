from __future__ import annotations

import io
import json
import os
from contextlib import redirect_stderr
from pathlib import Path

import pytest

from termdock import cli
from termdock.assistant.scanner import SessionDirectoryScanner
from termdock.config import AppConfig, save_config
from termdock.errors import ExitCode
from termdock.session import TerminalSession
from termdock.store import JsonSessionStore


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    save_config(
        AppConfig(
            assistant_projects_dir=str(tmp_path / "projects"),
            sessions_file=str(tmp_path / "sessions.json"),
        ),
        path,
    )
    return path


def _main(config_path: Path, *args: str) -> tuple[int, str]:
    out = io.StringIO()
    log_file = config_path.parent / "termdock.log"
    code = cli.main(["--config", str(config_path), "--log-file", str(log_file), *args], out=out)
    return code, out.getvalue()


def test_cli_help_includes_public_commands() -> None:
    help_text = cli.build_parser().format_help()
    assert "sessions" in help_text
    assert "slug" in help_text
    assert "find-session" in help_text
    assert "--log-level" in help_text


def test_missing_command_returns_error_code() -> None:
    stderr = io.StringIO()
    with redirect_stderr(stderr):
        code = cli.main([])
    assert code == ExitCode.INVALID_ARGS


def test_invalid_log_level_is_rejected() -> None:
    stderr = io.StringIO()
    with redirect_stderr(stderr):
        code = cli.main(["--log-level", "LOUD", "slug", "/proj"])
    assert code == ExitCode.INVALID_ARGS
    assert "--log-level must be one of" in stderr.getvalue()


def test_slug_prints_project_directory_name(config_path: Path) -> None:
    code, output = _main(config_path, "slug", "/home/u/proj")

    assert code == 0
    assert output.strip().startswith("proj-")
    assert len(output.strip()) == len("proj-") + 8


def test_sessions_list_and_clear(config_path: Path, tmp_path: Path) -> None:
    store = JsonSessionStore(tmp_path / "sessions.json")
    store.save_session(
        TerminalSession(
            id="t1",
            title="Terminal 1",
            cwd="/proj",
            project_path="/proj",
            is_assistant_mode=True,
            assistant_session_id="abc-123",
            output_buffer="secret",
        )
    )

    code, output = _main(config_path, "sessions", "list", "--project", "/proj")
    assert code == 0
    assert output.strip().split("\t") == ["t1", "Terminal 1", "assistant", "abc-123", "/proj"]

    code, output = _main(config_path, "sessions", "list", "--project", "/proj", "--json")
    payload = json.loads(output)
    assert code == 0
    assert payload[0]["assistant_session_id"] == "abc-123"
    assert "output_buffer" not in payload[0]

    code, _ = _main(config_path, "sessions", "clear", "--project", "/proj")
    assert code == 0
    assert store.get_sessions("/proj") == []


def test_find_session_reports_not_found(config_path: Path) -> None:
    stderr = io.StringIO()
    with redirect_stderr(stderr):
        code, output = _main(config_path, "find-session", "--project", "/proj")

    assert code == ExitCode.NOT_FOUND
    assert output == ""
    assert "No assistant session found" in stderr.getvalue()


def test_find_session_most_recent_and_after_cutoff(config_path: Path, tmp_path: Path) -> None:
    scanner = SessionDirectoryScanner(tmp_path / "projects")
    directory = scanner.project_dir("/proj")
    directory.mkdir(parents=True)
    log = directory / "sess-1.jsonl"
    log.write_text("{}\n", encoding="utf-8")
    os.utime(log, (1_000.0, 1_000.0))

    code, output = _main(config_path, "find-session", "--project", "/proj")
    assert code == 0
    assert output.strip() == "sess-1"

    code, output = _main(config_path, "find-session", "--project", "/proj", "--after", "999.5")
    assert code == 0
    assert output.strip() == "sess-1"

    stderr = io.StringIO()
    with redirect_stderr(stderr):
        code, _ = _main(config_path, "find-session", "--project", "/proj", "--after", "1000")
    assert code == ExitCode.NOT_FOUND


def test_negative_cutoff_is_rejected(config_path: Path) -> None:
    stderr = io.StringIO()
    with redirect_stderr(stderr):
        code, _ = _main(config_path, "find-session", "--project", "/proj", "--after", "-1")
    assert code == ExitCode.INVALID_ARGS


def test_log_subsystem_flag(config_path: Path) -> None:
    code, output = _main(config_path, "--log-subsystem", "terminal=DEBUG", "slug", "/proj")
    assert code == 0
    assert output.strip().startswith("proj-")

    stderr = io.StringIO()
    with redirect_stderr(stderr):
        code, _ = _main(config_path, "--log-subsystem", "ui=DEBUG", "slug", "/proj")
    assert code == ExitCode.INVALID_ARGS
    assert "--log-subsystem" in stderr.getvalue()
