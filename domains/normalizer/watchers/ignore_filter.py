"""
Intake filter for drop-folder notifications.

Decides whether a path is worth considering at all. Accepting a path also
arms a short-term memory for it, so the burst of events caused by the
normalizer rewriting the same file does not queue it again.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict

from loguru import logger
from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
)

from app.utils.helpers import has_artifact_marker, is_supported_image, path_key

RECENT_WINDOW = 2.0  # seconds

EVENT_SCOPES = {
    "rename": frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_MOVED}),
    "any": frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_MOVED, EVENT_TYPE_MODIFIED, EVENT_TYPE_CLOSED}),
}

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class IgnoreFilter:
    """Name-pattern filter with a self-expiring recently-processed set."""

    def __init__(
        self,
        window: float = RECENT_WINDOW,
        scope: str = "rename",
        timer_factory: TimerFactory = _daemon_timer,
    ) -> None:
        if scope not in EVENT_SCOPES:
            raise ValueError(f"Unknown event scope: {scope!r}")

        self.window = window
        self.kinds = EVENT_SCOPES[scope]
        self._timer_factory = timer_factory
        # path -> token of the expiry that owns the membership
        self._recent: Dict[str, object] = {}
        self._lock = threading.Lock()

    def is_relevant_kind(self, event_type: str) -> bool:
        """Check whether an event kind can signal a new file."""
        if event_type in self.kinds:
            return True

        logger.debug(f"Dropping event kind: {event_type}")
        return False

    def should_ignore(self, path) -> bool:
        """
        Decide whether ``path`` should be skipped.

        Not a pure predicate: a path that passes is remembered for the
        window, so an immediate repeat check ignores it.

        Args:
            path: Path reported by the notification

        Returns:
            True if the path must be skipped
        """
        path_obj = Path(path)

        if has_artifact_marker(path_obj):
            logger.debug(f"Ignoring normalizer artifact: {path_obj.name}")
            return True

        if not is_supported_image(path_obj):
            logger.debug(f"Ignoring unsupported extension: {path_obj.name}")
            return True

        key = path_key(path_obj)
        token = object()
        with self._lock:
            if key in self._recent:
                recent = True
            else:
                recent = False
                self._recent[key] = token

        if recent:
            logger.debug(f"Ignoring recently processed: {key}")
            return True

        self._schedule_expiry(key, token)
        return False

    def remember(self, path) -> None:
        """Suppress ``path`` for the window, restarting any running expiry."""
        key = path_key(path)
        token = object()
        with self._lock:
            self._recent[key] = token
        self._schedule_expiry(key, token)

    def is_recent(self, path) -> bool:
        """Check membership without arming anything (inspection helper for tests)."""
        with self._lock:
            return path_key(path) in self._recent

    def _schedule_expiry(self, key: str, token: object) -> None:
        timer = self._timer_factory(self.window, lambda: self._expire(key, token))
        timer.start()

    def _expire(self, key: str, token: object) -> None:
        with self._lock:
            # A later remember() owns the entry now
            if self._recent.get(key) is token:
                del self._recent[key]
