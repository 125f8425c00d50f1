"""Event intake for the normalizer domain."""

from domains.normalizer.watchers.coalescer import EventCoalescer
from domains.normalizer.watchers.ignore_filter import IgnoreFilter

__all__ = ["EventCoalescer", "IgnoreFilter"]
