"""
Per-path debounce for drop-folder notifications.

A producer writing an image emits several events for the same file. Each
event restarts a timer for its path; only when the debounce window passes
without a newer event is the file treated as complete and dispatched.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Set

from loguru import logger

from app.utils.helpers import path_key

DEBOUNCE_WINDOW = 2.0  # seconds

Dispatch = Callable[[str, float], None]


class EventCoalescer:
    """
    Pending-entry table turning event bursts into one dispatch per path.

    ``dispatch(path, stamp)`` runs on its own daemon thread and receives the
    timestamp of the last event in the burst.
    """

    def __init__(
        self,
        dispatch: Dispatch,
        window: float = DEBOUNCE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        strict_per_path: bool = False,
    ) -> None:
        self._dispatch = dispatch
        self.window = window
        self._clock = clock
        self.strict_per_path = strict_per_path

        self._pending: Dict[str, float] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._in_flight: Dict[str, int] = {}
        self._lock = threading.Lock()

    def submit(self, path) -> float:
        """
        Record an event for ``path`` and (re)arm its confirmation.

        Returns:
            Timestamp stored for the path
        """
        key = path_key(path)
        stamp = self._clock()

        timer = threading.Timer(self.window, self.confirm, args=(key, stamp))
        timer.daemon = True

        with self._lock:
            self._pending[key] = stamp
            previous = self._timers.get(key)
            self._timers[key] = timer

        if previous is not None:
            previous.cancel()

        timer.start()
        logger.debug(f"Pending {key} at {stamp:.3f}")
        return stamp

    def confirm(self, key: str, stamp: float) -> bool:
        """
        Dispatch ``key`` if ``stamp`` is still its latest event.

        A newer event or an earlier dispatch makes this a no-op. The check
        and the dispatch are separate steps; cancelling superseded timers
        keeps the gap to timers that were already running.

        Returns:
            True if the path was dispatched
        """
        rearm = False
        timer = None
        with self._lock:
            if self._pending.get(key) != stamp:
                return False

            if self.strict_per_path and key in self._in_flight:
                rearm = True
            else:
                del self._pending[key]
                timer = self._timers.pop(key, None)
                self._in_flight[key] = self._in_flight.get(key, 0) + 1

        if rearm:
            logger.debug(f"{key} is still being processed, waiting another window")
            self._rearm(key, stamp)
            return False

        if timer is not None:
            timer.cancel()

        logger.info(f"Stable: {key}")
        worker = threading.Thread(
            target=self._run, args=(key, stamp), name=f"normalize:{key}", daemon=True
        )
        worker.start()
        return True

    def pending(self) -> Dict[str, float]:
        """Snapshot of the pending table."""
        with self._lock:
            return dict(self._pending)

    def in_flight(self) -> Set[str]:
        """Snapshot of paths currently being dispatched."""
        with self._lock:
            return set(self._in_flight)

    def cancel_all(self) -> None:
        """Cancel every pending confirmation (test cleanup; shutdown leaves them running)."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._pending.clear()

        for timer in timers:
            timer.cancel()

    def _rearm(self, key: str, stamp: float) -> None:
        timer = threading.Timer(self.window, self.confirm, args=(key, stamp))
        timer.daemon = True

        with self._lock:
            # A fresh event may have replaced the entry meanwhile
            if self._pending.get(key) != stamp:
                return
            self._timers[key] = timer

        timer.start()

    def _run(self, key: str, stamp: float) -> None:
        try:
            self._dispatch(key, stamp)
        finally:
            with self._lock:
                remaining = self._in_flight.get(key, 1) - 1
                if remaining > 0:
                    self._in_flight[key] = remaining
                else:
                    self._in_flight.pop(key, None)
