"""Pruning module: MAD outlier rule on score deltas."""

from .pruner import compute_deltas, prune

__all__ = [
    "compute_deltas",
    "prune",
]
