"""Image processors for the normalizer domain."""

from domains.normalizer.processors.errors import (
    DecodeFailed,
    EncodeFailed,
    IoFailed,
    NormalizeError,
    NotFound,
    UnsupportedFormat,
)
from domains.normalizer.processors.image import NormalizationRequest, normalize

__all__ = [
    "DecodeFailed",
    "EncodeFailed",
    "IoFailed",
    "NormalizationRequest",
    "NormalizeError",
    "NotFound",
    "UnsupportedFormat",
    "normalize",
]
