"""Marker module: canonical pairwise marker maps.

Resolves flat, per-label and pairwise marker specifications into one
``PairwiseMarkers`` and derives pairwise markers by differential testing
when no specification is given.
"""

from .de import PairwiseDEResult, PairwiseDERunner
from .pairwise import LabelPair, PairwiseMarkers
from .resolver import (
    load_marker_spec,
    resolve_marker_spec,
    resolve_markers,
    write_marker_map,
)

__all__ = [
    # Canonical form
    "LabelPair",
    "PairwiseMarkers",
    # Resolution
    "resolve_markers",
    "resolve_marker_spec",
    "load_marker_spec",
    "write_marker_map",
    # Differential testing
    "PairwiseDEResult",
    "PairwiseDERunner",
]
