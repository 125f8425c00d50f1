"""Errors raised while normalizing a single image."""

from pathlib import Path
from typing import Optional


class NormalizeError(Exception):
    """Base class: processing of one file was aborted."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class NotFound(NormalizeError):
    """Source vanished between the event and dispatch."""


class DecodeFailed(NormalizeError):
    """Codec could not parse the source after every retry."""

    def __init__(self, message: str, path: Optional[Path] = None, attempts: int = 0):
        super().__init__(message, path)
        self.attempts = attempts


class UnsupportedFormat(NormalizeError):
    """Configured output format has no encoder."""


class EncodeFailed(NormalizeError):
    """Encoder rejected the composited canvas."""


class IoFailed(NormalizeError):
    """Temp file create, rename or source removal failed."""
