"""Per-sample prediction records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from ..scoring import ScoreVector


@dataclass
class PredictionRecord:
    """Classification outcome for one query sample.

    The pruning fields stay unset until ``prune`` runs over a batch.

    Attributes:
        sample_id: Query sample identifier
        first_label: Best label of the first pass over the full marker union
        first_scores: First-pass score vector (full label universe)
        label: Final label after fine-tuning
        scores: Score vector of the last fine-tuning round
        n_rounds: Scoring passes performed, the first pass included
        fine_tune_capped: Fine-tuning stopped without reaching a single label
        delta_next: Best minus second-best score of ``scores`` (NaN for one label)
        delta: ``first_scores[label]`` minus the median of ``first_scores``
        pruned: Flagged as a low-confidence assignment
        degenerate_mad: The record's pruning group had zero MAD
    """

    sample_id: str
    first_label: str
    first_scores: ScoreVector
    label: str
    scores: ScoreVector
    n_rounds: int = 1
    fine_tune_capped: bool = False
    delta_next: float = float("nan")
    delta: Optional[float] = None
    pruned: Optional[bool] = None
    degenerate_mad: bool = False

    @property
    def is_pruned(self) -> bool:
        return bool(self.pruned)

    @property
    def pruned_label(self) -> Optional[str]:
        """Final label, or None when the record was pruned."""
        return None if self.pruned else self.label

    @property
    def final_score(self) -> float:
        return self.scores[self.label]

    def to_dict(self) -> Dict[str, Any]:
        """Flat row for tabular output (score vectors excluded)."""
        return {
            "sample_id": self.sample_id,
            "first_label": self.first_label,
            "label": self.label,
            "pruned_label": self.pruned_label,
            "score": self.final_score,
            "delta": np.nan if self.delta is None else self.delta,
            "delta_next": self.delta_next,
            "pruned": self.pruned,
            "n_rounds": self.n_rounds,
            "fine_tune_capped": self.fine_tune_capped,
            "degenerate_mad": self.degenerate_mad,
        }
