"""Assistant tool session discovery: output signals and session log scanning."""

from .capture import CaptureOutcome, SessionCapture
from .scanner import SessionDirectoryScanner, SessionLogFile, project_slug
from .signals import (
    RATE_LIMIT_PATTERN,
    SESSION_ID_PATTERNS,
    SignalMatch,
    extract_rate_limit_reset,
    extract_session_id,
)

__all__ = [
    "CaptureOutcome",
    "extract_rate_limit_reset",
    "extract_session_id",
    "project_slug",
    "RATE_LIMIT_PATTERN",
    "SESSION_ID_PATTERNS",
    "SessionCapture",
    "SessionDirectoryScanner",
    "SessionLogFile",
    "SignalMatch",
]
