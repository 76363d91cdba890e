"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import json
import logging as py_logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from .assistant.scanner import SessionDirectoryScanner, project_slug
from .config import AppConfig, load_config
from .errors import ExitCode, TermDockError, user_facing_error
from .logging import configure_logging, default_log_path, parse_subsystem_level
from .store import JsonSessionStore

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _subsystem_level_type(value: str) -> tuple[str, int]:
    try:
        return parse_subsystem_level(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"--log-subsystem: {exc}") from exc


def _cutoff_type(value: str) -> float:
    try:
        cutoff = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--after must be epoch seconds") from exc
    if cutoff < 0:
        raise argparse.ArgumentTypeError("--after cannot be negative")
    return cutoff


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termdock")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument(
        "--log-subsystem",
        type=_subsystem_level_type,
        action="append",
        default=[],
        metavar="NAME=LEVEL",
        help="Override the log level of one subsystem, e.g. terminal=DEBUG",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sessions = commands.add_parser("sessions", help="Inspect saved terminal sessions")
    session_commands = sessions.add_subparsers(dest="action", required=True)
    list_parser = session_commands.add_parser("list", help="List saved sessions for a project")
    list_parser.add_argument("--project", required=True)
    list_parser.add_argument("--json", action="store_true", dest="as_json")
    clear_parser = session_commands.add_parser("clear", help="Forget saved sessions for a project")
    clear_parser.add_argument("--project", required=True)

    slug = commands.add_parser("slug", help="Print the assistant project slug for a path")
    slug.add_argument("path")

    find = commands.add_parser("find-session", help="Find the newest assistant session id")
    find.add_argument("--project", required=True)
    find.add_argument("--after", type=_cutoff_type, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def run_sessions(namespace: argparse.Namespace, config: AppConfig, out: TextIO) -> int:
    store = JsonSessionStore(config.sessions_path())
    if namespace.action == "clear":
        store.clear_project_sessions(namespace.project)
        return int(ExitCode.SUCCESS)

    sessions = sorted(store.get_sessions(namespace.project), key=lambda item: item.created_at)
    if namespace.as_json:
        payload = [item.model_dump(mode="json", exclude={"output_buffer"}) for item in sessions]
        print(json.dumps(payload, indent=2), file=out)
        return int(ExitCode.SUCCESS)
    for item in sessions:
        mode = "assistant" if item.is_assistant_mode else "shell"
        print(f"{item.id}\t{item.title}\t{mode}\t{item.assistant_session_id or '-'}\t{item.cwd}", file=out)
    return int(ExitCode.SUCCESS)


def run_find_session(namespace: argparse.Namespace, config: AppConfig, out: TextIO) -> int:
    scanner = SessionDirectoryScanner(config.projects_root(), extension=config.session_log_extension)
    if namespace.after is None:
        session_id = scanner.find_most_recent(namespace.project)
    else:
        session_id = scanner.find_session_after(namespace.project, namespace.after)
    if session_id is None:
        raise TermDockError(
            "No assistant session found",
            code=ExitCode.NOT_FOUND,
            hint=f"Checked {scanner.project_dir(namespace.project)}",
        )
    print(session_id, file=out)
    return int(ExitCode.SUCCESS)


def run_command(namespace: argparse.Namespace, config: AppConfig, out: TextIO) -> int:
    if namespace.command == "sessions":
        return run_sessions(namespace, config, out)
    if namespace.command == "slug":
        print(project_slug(namespace.path), file=out)
        return int(ExitCode.SUCCESS)
    if namespace.command == "find-session":
        return run_find_session(namespace, config, out)
    raise TermDockError(
        f"Unknown command: {namespace.command}",
        code=ExitCode.INVALID_ARGS,
        hint="Run termdock --help.",
    )


def main(argv: Sequence[str] | None = None, *, out: TextIO | None = None) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(
        level=namespace.log_level,
        log_file=log_path,
        subsystem_levels=dict(namespace.log_subsystem),
    )

    try:
        config = load_config(namespace.config)
        logger.debug("Running command=%s", namespace.command)
        return run_command(namespace, config, out or sys.stdout)
    except TermDockError as exc:
        logger.error(
            "Handled TermDockError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
