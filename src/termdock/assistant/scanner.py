"""Lookup of assistant session log files on disk.

The assistant tool keeps one log file per session under
``<root>/<project-slug>/``. When the session id never shows up in the
terminal output, the newest log file is the next best source.
"""

from __future__ import annotations

import hashlib
import logging as py_logging
from dataclasses import dataclass
from pathlib import Path, PurePath

from termdock.config import DEFAULT_ASSISTANT_PROJECTS_DIR, DEFAULT_SESSION_LOG_EXTENSION

logger = py_logging.getLogger(__name__)


def project_slug(project_path: str) -> str:
    """Return ``<basename>-<first 8 hex chars of sha256(path)>``.

    This mirrors the assistant tool's own directory naming, so the path is
    hashed exactly as given (no normalization).
    """
    basename = PurePath(project_path).name
    digest = hashlib.sha256(project_path.encode("utf-8")).hexdigest()[:8]
    return f"{basename}-{digest}"


@dataclass(frozen=True)
class SessionLogFile:
    session_id: str
    path: Path
    mtime: float


class SessionDirectoryScanner:
    def __init__(
        self,
        root: str | Path = DEFAULT_ASSISTANT_PROJECTS_DIR,
        *,
        extension: str = DEFAULT_SESSION_LOG_EXTENSION,
    ) -> None:
        self.root = Path(root).expanduser()
        self.extension = extension

    def project_dir(self, project_path: str) -> Path:
        return self.root / project_slug(project_path)

    def list_session_files(self, project_path: str) -> list[SessionLogFile]:
        """Return session log files, most recently modified first."""
        directory = self.project_dir(project_path)
        if not directory.is_dir():
            logger.debug("session-scan dir=%s step=missing", directory)
            return []

        files: list[SessionLogFile] = []
        try:
            entries = list(directory.iterdir())
        except OSError:
            logger.warning("session-scan dir=%s step=list-failed", directory, exc_info=True)
            return []
        for entry in entries:
            if not entry.name.endswith(self.extension):
                continue
            try:
                mtime = entry.stat().st_mtime
            except FileNotFoundError:
                continue
            except OSError:
                logger.debug("session-scan file=%s step=stat-failed", entry, exc_info=True)
                continue
            session_id = entry.name[: -len(self.extension)]
            if session_id:
                files.append(SessionLogFile(session_id=session_id, path=entry, mtime=mtime))
        files.sort(key=lambda item: item.mtime, reverse=True)
        return files

    def find_most_recent(self, project_path: str) -> str | None:
        files = self.list_session_files(project_path)
        if not files:
            return None
        logger.debug("session-scan project=%s step=most-recent session=%s", project_path, files[0].session_id)
        return files[0].session_id

    def find_session_after(self, project_path: str, cutoff: float) -> str | None:
        """Return the newest session whose log changed strictly after ``cutoff`` (epoch seconds)."""
        files = self.list_session_files(project_path)
        if files and files[0].mtime > cutoff:
            return files[0].session_id
        return None
