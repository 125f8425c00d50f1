"""
Helper utilities for ni-watcher.

Path and naming functions shared by the watcher and the normalizer.
"""

from pathlib import Path

SUPPORTED_IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".bmp",
    ".tif",
    ".tiff",
    ".webp",
}

# Filename markers for artifacts the normalizer writes itself
TEMP_MARKER = ".tmp"
NORMALIZED_MARKER = ".normalized"


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""

    try:
        return path.expanduser().resolve()
    except FileNotFoundError:
        return path.expanduser().absolute()


def path_key(path) -> str:
    """Identity of a watched path: its normalized string form."""
    return str(normalise_path(Path(path)))


def is_supported_image(path: Path) -> bool:
    """Check extension against the supported image set (case-insensitive)."""
    return path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS


def has_artifact_marker(path: Path) -> bool:
    """True if the filename carries the temp or normalized-output marker."""
    name = path.name
    return TEMP_MARKER in name or NORMALIZED_MARKER in name


def temp_output_path(source: Path, extension: str) -> Path:
    """
    Sibling path the normalizer writes before the final rename.

    Args:
        source: Source image path
        extension: Output extension including the dot

    Returns:
        ``<stem>.normalized<ext>`` next to ``source``
    """
    return source.with_name(f"{source.stem}{NORMALIZED_MARKER}{extension}")


def final_output_path(source: Path, extension: str) -> Path:
    """Final ``<stem><ext>`` path for ``source``."""
    return source.with_name(f"{source.stem}{extension}")


def format_bytes(bytes_count: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"
