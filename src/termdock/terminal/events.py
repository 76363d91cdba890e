"""One-way notifications from the terminal core to the UI layer."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Union

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class TerminalOutput:
    terminal_id: str
    data: str


@dataclass(frozen=True)
class TerminalExited:
    terminal_id: str
    exit_code: int


@dataclass(frozen=True)
class AssistantSessionDiscovered:
    terminal_id: str
    session_id: str


@dataclass(frozen=True)
class RateLimitDetected:
    terminal_id: str
    reset_time: str
    detected_at: datetime


@dataclass(frozen=True)
class TitleChanged:
    terminal_id: str
    title: str


TerminalEvent = Union[
    TerminalOutput,
    TerminalExited,
    AssistantSessionDiscovered,
    RateLimitDetected,
    TitleChanged,
]
EventListener = Callable[[TerminalEvent], None]


class EventHub:
    """Fire-and-forget fan-out of terminal events to subscribed listeners.

    Delivery is synchronous and in publish order. A failing listener is
    logged and skipped; it never affects other listeners or the publisher.
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: TerminalEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "terminal-event terminal=%s step=listener-failed event=%s",
                    event.terminal_id,
                    type(event).__name__,
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
