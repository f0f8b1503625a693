"""
Storage module for book cover images.

This module provides abstract and concrete implementations for storage
backends, supporting both the local public directory and S3-compatible
object storage, plus the cover mirror that uses them.
"""

from .base import BaseStorage
from .cloud import CloudStorage
from .cover_mirror import CoverMirror
from .local import LocalStorage

__all__ = [
    "BaseStorage",
    "CloudStorage",
    "CoverMirror",
    "LocalStorage",
]
