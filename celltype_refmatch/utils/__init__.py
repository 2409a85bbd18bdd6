"""Utility functions for CellType-RefMatch.

Provides statistical helpers used across modules.
"""

from .stats import interpolated_quantile, mad, mad_threshold

__all__ = [
    "interpolated_quantile",
    "mad",
    "mad_threshold",
]
