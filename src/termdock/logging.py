"""Logging setup for the termdock logger tree.

Every module logs through ``termdock.<module>`` loggers in a ``key=value``
event style (``terminal-event terminal=t1 step=create ...``). The root
``termdock`` logger owns the handlers; subsystems such as ``terminal`` or
``persistence`` can be tuned to their own level without touching the rest.
"""

from __future__ import annotations

import logging as py_logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

ROOT_LOGGER = "termdock"
SUBSYSTEMS = ("assistant", "cli", "persistence", "store", "terminal")
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/termdock/logs/termdock.log")
_FALLBACK_LOG_PATH = Path(".termdock/logs/termdock.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def resolve_level(value: str, default: int = py_logging.INFO) -> int:
    return LOG_LEVELS.get(value.strip().upper(), default)


def parse_subsystem_level(value: str) -> tuple[str, int]:
    """Parse ``NAME=LEVEL`` (e.g. ``terminal=DEBUG``) for one subsystem."""
    name, sep, level = value.partition("=")
    name = name.strip().lower()
    if not sep or name not in SUBSYSTEMS:
        raise ValueError(f"Expected one of {', '.join(SUBSYSTEMS)} followed by =LEVEL, got {value!r}")
    if level.strip().upper() not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}")
    return name, resolve_level(level)


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    return resolved if resolved.is_absolute() else resolved.resolve()


def _file_handler(log_file: str | Path) -> py_logging.Handler | None:
    try:
        log_path = Path(log_file).expanduser()
    except RuntimeError:
        log_path = Path(log_file)
    try:
        log_path.resolve().parent.mkdir(parents=True, exist_ok=True)
        return py_logging.FileHandler(log_path.resolve(), encoding="utf-8")
    except OSError:
        return None


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
    subsystem_levels: Mapping[str, int] | None = None,
) -> py_logging.Logger:
    resolved = resolve_level(level)
    overrides = dict(subsystem_levels or {})

    logger = py_logging.getLogger(ROOT_LOGGER)
    logger.setLevel(resolved)
    for name in SUBSYSTEMS:
        py_logging.getLogger(f"{ROOT_LOGGER}.{name}").setLevel(overrides.get(name, py_logging.NOTSET))
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    formatter = py_logging.Formatter(_FORMAT)

    # Subsystem loggers may sit below the root level; their records still
    # have to pass the stream handler.
    handler = py_logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(min([resolved, *overrides.values()]))
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_file:
        file_handler = _file_handler(log_file)
        if file_handler is not None:
            file_handler.setLevel(py_logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger
