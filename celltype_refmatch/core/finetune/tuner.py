"""Iterative narrowing of candidate labels.

Starting from the first-pass scores over the full marker union, every round
keeps the labels scoring within ``tolerance`` of the best one and re-scores
them using only the pairwise markers among the kept labels. The loop is
bounded: it ends on a single label, on a fixed point (nothing dropped), when
the retained labels share no pairwise markers, or at the iteration cap. All
but the first exit set ``capped``; that is a diagnostic, not an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from ...config import FineTuneConfig, validate_quantile
from ..scoring import ScoreVector, best_label, score_aligned

if TYPE_CHECKING:
    from ..training import TrainingArtifact

logger = logging.getLogger(__name__)

# Termination reasons
SINGLETON = "singleton"
FIXED_POINT = "fixed_point"
ITERATION_CAP = "iteration_cap"
NO_MARKERS = "no_markers"
DISABLED = "disabled"


@dataclass(frozen=True)
class FineTuneResult:
    """Outcome of fine-tuning one query sample.

    Attributes:
        label: Final label
        scores: Score vector of the last round (its candidates only)
        n_rounds: Scoring passes performed, the first pass included
        capped: True when the loop stopped without narrowing to one label
        candidates: Labels scored in the last round
        reason: Why the loop stopped
    """

    label: str
    scores: ScoreVector
    n_rounds: int
    capped: bool
    candidates: Tuple[str, ...]
    reason: str = SINGLETON


def retain_within_tolerance(scores: ScoreVector, tolerance: float) -> Tuple[str, ...]:
    """Labels whose score is at least ``max(scores) - tolerance``, sorted."""
    threshold = max(scores.values()) - tolerance
    return tuple(label for label in sorted(scores) if scores[label] >= threshold)


def fine_tune(
    query_vec: np.ndarray,
    artifact: "TrainingArtifact",
    first_scores: Optional[ScoreVector] = None,
    config: Optional[FineTuneConfig] = None,
    quantile: float = 0.8,
) -> FineTuneResult:
    """Run the fine-tuning loop for one query sample.

    Args:
        query_vec: Query values aligned with ``artifact.features``
        artifact: Training artifact
        first_scores: First-pass scores over the full marker union; computed
            here when omitted
        config: Fine-tuning configuration (tolerance, iteration cap)
        quantile: Scoring quantile

    Returns:
        FineTuneResult
    """
    config = config or FineTuneConfig()
    config.validate()
    validate_quantile(quantile)

    scores = first_scores
    if scores is None:
        scores = score_aligned(query_vec, artifact.labels, artifact, quantile)
    candidates = tuple(sorted(scores))
    rounds = 1

    if not config.enabled:
        return FineTuneResult(best_label(scores), scores, rounds, False, candidates, DISABLED)

    cap = config.resolve_cap(artifact.n_labels)
    while True:
        retained = retain_within_tolerance(scores, config.tolerance)
        if len(retained) == 1:
            return FineTuneResult(retained[0], scores, rounds, False, candidates, SINGLETON)
        if retained == candidates:
            return FineTuneResult(best_label(scores), scores, rounds, True, candidates, FIXED_POINT)
        if rounds >= cap:
            logger.debug("Fine-tuning reached the iteration cap (%d) with %d labels", cap, len(retained))
            return FineTuneResult(best_label(scores), scores, rounds, True, candidates, ITERATION_CAP)

        subset = artifact.markers.for_labels(retained)
        if not subset:
            return FineTuneResult(best_label(scores), scores, rounds, True, candidates, NO_MARKERS)

        feature_idx = np.array(sorted(artifact.feature_index[f] for f in subset), dtype=np.intp)
        scores = score_aligned(query_vec, retained, artifact, quantile, feature_idx=feature_idx)
        candidates = retained
        rounds += 1
