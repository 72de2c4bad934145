"""Default path expression engine."""

from .path_engine import PathExpressionEngine

__all__ = ["PathExpressionEngine"]
