"""
Image Normalizer Domain

Watches a drop folder for new images and normalizes each one in place:
- Watchers → Filter and debounce raw filesystem events per path
- Processors → Crop to content, fit onto a padded canvas, re-encode
"""

__all__ = ["processors", "watchers"]
