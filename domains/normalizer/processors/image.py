"""
Image normalizer for the drop folder.

Crops an image to its non-background content, fits it onto a fixed-size
white canvas with padding and re-encodes it to the configured format.
The result replaces the source through a temp sibling and an atomic rename,
so downstream readers never see a half-written file at the final name.
"""

import io
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger
from PIL import Image

from app.utils.config import Settings
from app.utils.helpers import final_output_path, format_bytes, temp_output_path
from domains.normalizer.processors.errors import (
    DecodeFailed,
    EncodeFailed,
    IoFailed,
    NotFound,
    UnsupportedFormat,
)

BACKGROUND = (255, 255, 255)
HIGH_BIT_MODES = ("I;16", "I;16L", "I;16B", "I;16N", "I", "F")
DECODE_RETRIES = 5
DECODE_RETRY_DELAY = 0.2  # seconds


@dataclass(frozen=True)
class OutputFormat:
    """Encoder name plus the file extensions it owns."""

    pil_format: str
    extensions: tuple[str, ...]

    def extension_for(self, source: Path) -> str:
        """Keep the source extension when it already names this format."""
        suffix = source.suffix
        if suffix.lower() in self.extensions:
            return suffix
        return self.extensions[0]


OUTPUT_FORMATS = {
    "jpeg": OutputFormat("JPEG", (".jpg", ".jpeg")),
    "jpg": OutputFormat("JPEG", (".jpg", ".jpeg")),
    "png": OutputFormat("PNG", (".png",)),
    "gif": OutputFormat("GIF", (".gif",)),
    "bmp": OutputFormat("BMP", (".bmp",)),
    "tiff": OutputFormat("TIFF", (".tiff", ".tif")),
    "tif": OutputFormat("TIFF", (".tiff", ".tif")),
    "webp": OutputFormat("WEBP", (".webp",)),
}


@dataclass(frozen=True)
class NormalizationRequest:
    """Everything needed to normalize one source file."""

    source: Path
    canvas_size: tuple[int, int]
    padding: int
    tolerance: int
    output_format: str

    @classmethod
    def from_settings(cls, source: Path, settings: Settings) -> "NormalizationRequest":
        """Build a request for ``source`` from the current settings."""
        return cls(
            source=Path(source),
            canvas_size=settings.get_canvas_size(),
            padding=settings.padding,
            tolerance=settings.tolerance,
            output_format=settings.output_format,
        )


def resolve_output_format(name: str) -> OutputFormat:
    """
    Look up an encoder by its configured name (case-insensitive).

    Raises:
        UnsupportedFormat: If no encoder matches
    """
    output_format = OUTPUT_FORMATS.get(name.strip().lower())
    if output_format is None:
        raise UnsupportedFormat(f"Unsupported output format: {name!r}")
    return output_format


def output_path(request: NormalizationRequest) -> Path:
    """Final path ``normalize`` will write for ``request``."""
    output_format = resolve_output_format(request.output_format)
    return final_output_path(request.source, output_format.extension_for(request.source))


def decode_image(
    path: Path,
    retries: int = DECODE_RETRIES,
    delay: float = DECODE_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> Image.Image:
    """
    Open and fully decode ``path``, retrying while a writer may still be flushing it.

    Args:
        path: Image file
        retries: Extra attempts after the first one
        delay: Fixed pause between attempts
        sleep: Delay function, swapped out in tests

    Returns:
        Decoded image detached from the file handle

    Raises:
        DecodeFailed: After the last attempt fails, or at once for an
            image over the decompression-bomb limit
    """
    attempts = retries + 1
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            with Image.open(path) as opened:
                opened.load()
                image = opened.copy()
            logger.debug(f"Decoded {path} on attempt {attempt}: {image.size} {image.mode}")
            return image

        except Image.DecompressionBombError as e:
            # Retrying cannot shrink the image
            logger.error(f"Refusing oversized image {path}: {e}")
            raise DecodeFailed(f"Could not decode {path}: {e}", path=path, attempts=attempt) from e

        except (OSError, SyntaxError, ValueError) as e:
            last_error = e
            logger.warning(f"Decode attempt {attempt}/{attempts} failed for {path}: {e}")
            if attempt < attempts:
                sleep(delay)

    logger.error(f"Giving up on {path} after {attempts} attempts: {last_error}")
    raise DecodeFailed(
        f"Could not decode {path} after {attempts} attempts: {last_error}",
        path=path,
        attempts=attempts,
    ) from last_error


def to_eight_bit(image: Image.Image) -> Image.Image:
    """
    Bring 16-bit and 32-bit greyscale images into the 0-255 range.

    A plain ``convert("L")`` clips such values to white, which would turn
    mid-grey content into background.
    """
    if image.mode not in HIGH_BIT_MODES:
        return image

    if image.mode.startswith("I;16"):
        image = image.convert("I")
        rescale = True
    else:
        rescale = image.getextrema()[1] > 255

    if rescale:
        image = image.point(lambda value: value / 256)
    return image.convert("L")


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA", "RGBa", "La") or "transparency" in image.info


def luminance(image: Image.Image) -> Image.Image:
    """Greyscale copy of ``image`` with any transparency flattened onto white."""
    if not _has_alpha(image):
        return image.convert("L")

    flattened = Image.new("RGBA", image.size, BACKGROUND + (255,))
    flattened.alpha_composite(image.convert("RGBA"))
    return flattened.convert("L")


def content_bbox(image: Image.Image, tolerance: int) -> tuple[int, int, int, int]:
    """
    Minimal box covering every content pixel.

    A pixel is content when its luminance is below ``255 - tolerance``.
    Every pixel is inspected. An image without content yields its full
    bounds, never an empty box.

    Returns:
        (left, top, right, bottom) with right/bottom exclusive
    """
    threshold = 255 - tolerance
    mask = luminance(image).point(lambda value: 255 if value < threshold else 0)
    box = mask.getbbox()

    if box is None:
        width, height = image.size
        return 0, 0, max(width, 1), max(height, 1)
    return box


def fit_size(size: tuple[int, int], target: tuple[int, int]) -> tuple[int, int]:
    """
    Scale ``size`` to fit inside ``target`` keeping the aspect ratio.

    The limiting side maps exactly onto the target; the other side is floored.
    """
    width, height = size
    target_width, target_height = target

    if width * target_height >= height * target_width:
        return target_width, max(1, height * target_width // width)
    return max(1, width * target_height // height), target_height


def compose(image: Image.Image, canvas_size: tuple[int, int], padding: int) -> Image.Image:
    """Resize ``image`` into the padded area and center it on a white canvas."""
    canvas_width, canvas_height = canvas_size
    target = (max(1, canvas_width - 2 * padding), max(1, canvas_height - 2 * padding))
    size = fit_size(image.size, target)

    # RGBA so palette images resample smoothly and keep their transparency
    content = image.convert("RGBA").resize(size, Image.Resampling.LANCZOS)

    canvas = Image.new("RGB", canvas_size, BACKGROUND)
    offset = ((canvas_width - size[0]) // 2, (canvas_height - size[1]) // 2)
    canvas.paste(content, offset, content)
    return canvas


def transform(image: Image.Image, canvas_size: tuple[int, int], padding: int, tolerance: int) -> Image.Image:
    """Crop to content, then compose onto the canvas."""
    image = to_eight_bit(image)
    box = content_bbox(image, tolerance)
    logger.debug(f"Content box {box} in {image.size}")
    return compose(image.crop(box), canvas_size, padding)


def encode(image: Image.Image, output_format: OutputFormat) -> bytes:
    """
    Encode ``image`` in memory.

    Raises:
        EncodeFailed: If the encoder rejects the image
    """
    options = {"quality": 95} if output_format.pil_format in ("JPEG", "WEBP") else {}
    buffer = io.BytesIO()

    try:
        image.save(buffer, output_format.pil_format, **options)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeFailed(f"{output_format.pil_format} encoding failed: {e}") from e

    return buffer.getvalue()


def replace_atomically(source: Path, payload: bytes, extension: str) -> Path:
    """
    Write ``payload`` to a temp sibling and rename it over the final name.

    The source is removed afterwards when the final name differs from it.

    Returns:
        Final output path

    Raises:
        IoFailed: On any filesystem failure; the temp file is cleaned up
    """
    temp = temp_output_path(source, extension)
    final = final_output_path(source, extension)

    try:
        temp.write_bytes(payload)
        os.replace(temp, final)
    except OSError as e:
        temp.unlink(missing_ok=True)
        raise IoFailed(f"Could not write {final}: {e}", path=source) from e

    if final != source:
        try:
            source.unlink(missing_ok=True)
        except OSError as e:
            raise IoFailed(f"Wrote {final} but could not remove {source}: {e}", path=source) from e
        logger.debug(f"Removed original {source}")

    return final


def normalize(
    request: NormalizationRequest,
    retries: int = DECODE_RETRIES,
    retry_delay: float = DECODE_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """
    Normalize one image in place.

    Args:
        request: Source path and canvas parameters
        retries: Decode retries after the first attempt
        retry_delay: Fixed pause between decode attempts
        sleep: Delay function used between attempts

    Returns:
        Path of the normalized file

    Raises:
        NormalizeError: Subclass naming the step that failed
    """
    source = request.source

    try:
        output_format = resolve_output_format(request.output_format)
    except UnsupportedFormat as e:
        logger.error(f"Rejecting {source}: {e}")
        raise

    if not source.is_file():
        logger.error(f"Source vanished before processing: {source}")
        raise NotFound(f"Source not found: {source}", path=source)

    image = decode_image(source, retries=retries, delay=retry_delay, sleep=sleep)

    canvas = transform(image, request.canvas_size, request.padding, request.tolerance)
    logger.debug(f"Composited {source} onto {canvas.size} canvas")

    try:
        payload = encode(canvas, output_format)
    except EncodeFailed as e:
        e.path = source
        logger.error(f"Encoding failed for {source}: {e}")
        raise

    try:
        final = replace_atomically(source, payload, output_format.extension_for(source))
    except IoFailed as e:
        logger.error(f"Replacing {source} failed: {e}")
        raise

    logger.success(f"Normalized {source} -> {final} ({format_bytes(len(payload))})")
    return final
