#!/usr/bin/env python3
"""
Drop-folder watcher for the normalizer domain.

Monitors one directory (non-recursive) for new or renamed-in images,
debounces the notifications per path and normalizes each stable file
in place. Uses watchdog library for cross-platform file system events.
"""

from __future__ import annotations

import argparse
import queue
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

from loguru import logger
from watchdog.events import EVENT_TYPE_MOVED, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from app.utils.config import Settings, get_settings
from app.utils.helpers import normalise_path
from app.utils.log_sink import configure_logging
from domains.normalizer.processors.errors import NormalizeError
from domains.normalizer.processors.image import NormalizationRequest, normalize, output_path
from domains.normalizer.watchers.coalescer import EventCoalescer
from domains.normalizer.watchers.ignore_filter import IgnoreFilter


class NormalizerEventHandler(FileSystemEventHandler):
    """Forwards watchdog events to the receive loop as ``(kind, paths)``."""

    def __init__(self, events: queue.Queue):
        super().__init__()
        self.events = events

    def on_any_event(self, event: FileSystemEvent) -> None:  # noqa: D401 - watchdog API
        """Queue every file event; the receive loop decides what matters."""
        if event.is_directory:
            return

        if event.event_type == EVENT_TYPE_MOVED:
            # Rename-into: the interesting path is where the file landed
            path = getattr(event, "dest_path", "") or event.src_path
        else:
            path = event.src_path

        self.events.put((event.event_type, [path]))


class NormalizerWatcher:
    """Receive loop tying the filter, the coalescer and the normalizer together."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        normalizer: Callable[..., Path] = normalize,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the watcher.

        Args:
            settings: Settings to use instead of the cached environment ones
            normalizer: Function applied to each stable file
            sleep: Delay function handed to the decode retry loop
        """
        self.settings = settings or get_settings()
        self.watch_dir = normalise_path(Path(self.settings.watch_folder))
        self.stop_event = threading.Event()

        self.ignore_filter = IgnoreFilter(
            window=self.settings.recent_window_seconds,
            scope=self.settings.event_scope,
        )
        self.coalescer = EventCoalescer(
            self.process_confirmed,
            window=self.settings.debounce_seconds,
            strict_per_path=self.settings.strict_per_path,
        )

        self._normalize = normalizer
        self._sleep = sleep

        self.events: queue.Queue = queue.Queue()
        self.event_handler = NormalizerEventHandler(self.events)
        self.observer = Observer()

        logger.info("Normalizer watcher initialized")
        logger.info(f"Watching folder: {self.watch_dir}")

    def process_event(self, kind: str, paths: Iterable[str]) -> list[Path]:
        """
        Run one notification through the filter into the coalescer.

        Args:
            kind: watchdog event type
            paths: Paths carried by the notification

        Returns:
            Paths that were submitted for debouncing
        """
        if not self.ignore_filter.is_relevant_kind(kind):
            return []

        submitted = []
        for raw in paths:
            path = Path(raw)

            if not path.is_file():
                logger.debug(f"Skipping {kind} for non-file: {path}")
                continue

            if self.ignore_filter.should_ignore(path):
                continue

            if kind == EVENT_TYPE_MOVED:
                logger.info(f"File renamed into: {path}")
            else:
                logger.info(f"New file: {path}")

            self.coalescer.submit(path)
            submitted.append(path)

        return submitted

    def process_confirmed(self, key: str, stamp: float) -> Optional[Path]:
        """
        Normalize a file the coalescer declared stable.

        Failures are logged and end processing of this file only.

        Returns:
            Final output path, or None if normalization failed
        """
        request = NormalizationRequest.from_settings(Path(key), self.settings)
        logger.info(f"Normalizing {key} (event at {stamp:.3f})")

        try:
            # Our own rename shows up as a fresh event for the final name
            self.ignore_filter.remember(request.source)
            self.ignore_filter.remember(output_path(request))

            final = self._normalize(
                request,
                retries=self.settings.decode_retries,
                retry_delay=self.settings.decode_retry_delay,
                sleep=self._sleep,
            )

        except NormalizeError as e:
            logger.error(f"Normalization failed for {key} [{type(e).__name__}]: {e}")
            return None

        except Exception:
            logger.exception(f"Unexpected failure while normalizing {key}")
            return None

        self.ignore_filter.remember(final)
        return final

    def start_watching(self):
        """
        Schedule the watch folder and start the observer.

        Raises:
            OSError: If the folder cannot be watched
        """
        if not self.watch_dir.is_dir():
            raise FileNotFoundError(f"Watch folder does not exist: {self.watch_dir}")

        self.observer.schedule(self.event_handler, str(self.watch_dir), recursive=False)
        self.observer.daemon = True
        self.observer.start()
        logger.success(f"Started watching: {self.watch_dir}")

    def stop_watching(self):
        """Stop the observer; in-flight normalizations are left to finish."""
        self.observer.stop()
        self.observer.join()
        logger.info("File system observer stopped")

    def stop(self):
        """Ask the receive loop to exit."""
        self.stop_event.set()

    def receive_once(self) -> bool:
        """
        Wait for one notification, bounded by the poll interval.

        Returns:
            True if a notification was processed
        """
        try:
            kind, paths = self.events.get(timeout=self.settings.poll_interval)
        except queue.Empty:
            return False

        self.process_event(kind, paths)
        return True

    def run(self):
        """Watch until the stop flag is set."""
        logger.info("Starting normalizer watcher...")
        self.start_watching()

        try:
            while not self.stop_event.is_set():
                self.receive_once()
        finally:
            self.stop_watching()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Watch a folder and normalize every image dropped into it.",
    )
    parser.add_argument(
        "--watch-folder",
        type=Path,
        default=None,
        help="Folder to watch (default: WATCH_FOLDER from the environment).",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        default=None,
        help="Output format: jpeg, png, gif, bmp, tiff or webp.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--no-console",
        action="store_true",
        help="Log only to the rolling log files.",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply CLI overrides on top of the environment settings."""
    overrides = {}
    if args.watch_folder is not None:
        overrides["watch_folder"] = args.watch_folder
    if args.output_format is not None:
        overrides["output_format"] = args.output_format

    return get_settings().model_copy(update=overrides)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = build_settings(args)

    try:
        configure_logging(settings, console=not args.no_console, verbose=args.verbose)
    except OSError as e:
        logger.error(f"Failed to open log sink in {settings.log_dir}: {e}")
        return 1

    logger.info("Image Normalizer - Drop Folder Watcher")

    watcher = NormalizerWatcher(settings)

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        watcher.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        watcher.run()
    except OSError as e:
        logger.error(f"Normalizer watcher failed: {e}")
        return 1

    logger.info("Normalizer watcher stopped.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
