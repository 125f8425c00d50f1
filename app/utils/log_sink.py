"""
Rolling log sink for ni-watcher.

Keeps a numbered chain of log segments under a logs directory. ``log0`` is
the active segment; rotation happens once, when the sink is opened, and the
returned stream is used for the rest of the process lifetime.
"""

import sys
from pathlib import Path
from typing import TextIO

from loguru import logger

from app.utils.config import Settings

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"
)
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def segment_path(base_dir: Path, index: int) -> Path:
    """Path of segment ``index`` (``log0`` is active)."""
    return base_dir / f"log{index}"


def rotate_segments(base_dir: Path, max_segments: int) -> None:
    """
    Shift every segment up by one index, freeing slot 0.

    The segment at ``max_segments`` is removed first so it never collides
    with the incoming rename.

    Args:
        base_dir: Directory holding the segments
        max_segments: Highest retained segment index
    """
    oldest = segment_path(base_dir, max_segments)
    if oldest.exists():
        oldest.unlink()

    for index in range(max_segments - 1, -1, -1):
        source = segment_path(base_dir, index)
        if not source.exists():
            continue
        source.replace(segment_path(base_dir, index + 1))


def open_active_segment(base_dir: Path, max_bytes: int, max_segments: int) -> TextIO:
    """
    Rotate if the active segment is full, then open it for appending.

    Args:
        base_dir: Logs directory (created if missing)
        max_bytes: Size at which ``log0`` is rotated
        max_segments: Number of rotated segments kept

    Returns:
        Line-buffered text stream for ``log0``
    """
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)

    active = segment_path(base_dir, 0)
    # Keeps log0..log<max_segments>: max_segments + 1 files after a rotation
    if active.exists() and active.stat().st_size >= max_bytes:
        rotate_segments(base_dir, max_segments)

    return active.open("a", encoding="utf-8", buffering=1)


def configure_logging(settings: Settings, console: bool = True, verbose: bool = False) -> TextIO:
    """
    Route loguru output to the rolling sink (and stdout in console mode).

    Raises:
        OSError: If the sink cannot be opened; callers treat this as fatal.
    """
    level = "DEBUG" if verbose else settings.log_level.upper()
    stream = open_active_segment(
        settings.log_dir, settings.log_max_bytes, settings.log_max_segments
    )

    logger.remove()
    if console:
        logger.add(sys.stdout, format=CONSOLE_FORMAT, level=level)
    logger.add(stream, format=LOG_FORMAT, level=level, colorize=False)

    return stream
