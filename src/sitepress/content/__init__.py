"""Content graph abstractions."""

from .graph import ContentEntity, ContentGraph, ContentIndex, normalize_permalink

__all__ = ["ContentEntity", "ContentGraph", "ContentIndex", "normalize_permalink"]
