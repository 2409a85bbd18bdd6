"""Classification module: per-sample scoring, fine-tuning and result tables.

Example:
    >>> from celltype_refmatch.core.classification import RefMatchEngine
    >>> engine = RefMatchEngine()
    >>> artifact = engine.train(reference, labels, marker_spec=markers)
    >>> result = engine.run(query, artifact)
    >>> result.summary
"""

from .classify import classify, classify_profile, train_and_classify
from .engine import ClassificationResult, RefMatchEngine
from .records import PredictionRecord
from .tables import (
    PREDICTION_COLUMNS,
    predictions_to_frame,
    scores_to_frame,
    summarize_predictions,
)

__all__ = [
    # Engine
    "RefMatchEngine",
    "ClassificationResult",
    # Functions
    "classify",
    "classify_profile",
    "train_and_classify",
    # Records and tables
    "PredictionRecord",
    "PREDICTION_COLUMNS",
    "predictions_to_frame",
    "scores_to_frame",
    "summarize_predictions",
]
