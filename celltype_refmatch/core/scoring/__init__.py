"""Scoring module: Spearman-equivalent quantile scores per label."""

from .ranks import (
    neighbors_for_quantile,
    quantile_from_top,
    quantile_score,
    rank_correlations,
    scaled_ranks,
)
from .scorer import ScoreVector, best_label, score, score_aligned

__all__ = [
    "ScoreVector",
    "best_label",
    "score",
    "score_aligned",
    "scaled_ranks",
    "rank_correlations",
    "quantile_score",
    "neighbors_for_quantile",
    "quantile_from_top",
]
