"""Cross-spectrum news triangulation."""

from .news import NewsTriangulator

__all__ = ["NewsTriangulator"]
