from __future__ import annotations

from termdock.terminal import TerminalProcess


def _process() -> TerminalProcess:
    return TerminalProcess(id="t1", pty=object(), cwd="/w", title="Terminal 1")  # type: ignore[arg-type]


def test_append_output_keeps_trailing_window() -> None:
    process = _process()

    process.append_output("hello ", limit=8)
    process.append_output("world", limit=8)

    assert process.output_buffer == "lo world"


def test_first_discovered_session_id_wins() -> None:
    process = _process()

    assert process.adopt_session_id("first") is True
    assert process.adopt_session_id("second") is False
    assert process.assistant_session_id == "first"


def test_repr_hides_pty_and_buffer() -> None:
    process = _process()
    process.append_output("secret-output")

    text = repr(process)

    assert "secret-output" not in text
    assert "pty=" not in text
