"""Pattern sniffing over raw terminal output.

The assistant tool has no structured side channel, so its session id and
rate-limit notices are recovered from free text. Patterns are tried in the
listed order and the first match wins. A miss is the normal case: callers
simply try again on the next chunk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

SignalKind = Literal["session_id", "rate_limit"]

SESSION_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Session: abc-123" / "Session ID: abc-123"
    re.compile(r"Session(?:\s+ID)?:\s*([a-zA-Z0-9_-]+)", re.IGNORECASE),
    # session_id=..., "session-id": "...", sessionid ...
    re.compile(r"session[_-]?id[\"\s:=]+([a-zA-Z0-9_-]+)", re.IGNORECASE),
    re.compile(r"Resuming session:\s*([a-zA-Z0-9_-]+)", re.IGNORECASE),
    re.compile(r"conversation[_-]?id[\"\s:=]+([a-zA-Z0-9_-]+)", re.IGNORECASE),
)

# "Limit reached · resets Dec 17 at 6am (Europe/Oslo)"
RATE_LIMIT_PATTERN = re.compile(r"Limit reached\s*[·•]\s*resets\s+(.+?)$", re.MULTILINE)


@dataclass(frozen=True)
class SignalMatch:
    kind: SignalKind
    value: str
    pattern: str


def extract_session_id(chunk: str) -> SignalMatch | None:
    for pattern in SESSION_ID_PATTERNS:
        match = pattern.search(chunk)
        if match and match.group(1):
            return SignalMatch(kind="session_id", value=match.group(1), pattern=pattern.pattern)
    return None


def extract_rate_limit_reset(chunk: str) -> SignalMatch | None:
    match = RATE_LIMIT_PATTERN.search(chunk)
    if match is None:
        return None
    reset_time = match.group(1).strip()
    if not reset_time:
        return None
    return SignalMatch(kind="rate_limit", value=reset_time, pattern=RATE_LIMIT_PATTERN.pattern)
