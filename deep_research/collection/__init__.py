"""Concurrent fetch-and-extract over search candidates."""

from .extractor import ContentExtractor

__all__ = ["ContentExtractor"]
