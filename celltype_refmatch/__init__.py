"""CellType-RefMatch: reference-based cell-type annotation by rank correlation.

This package provides tools for:
- Resolving marker specifications (flat, per-label or pairwise) into one
  canonical pairwise marker map, or deriving it by pairwise differential testing
- Building an immutable training artifact from a labelled reference
- Scoring query cells with quantile Spearman correlations per label
- Fine-tuning assignments by re-scoring close labels on their own markers
- Pruning low-confidence assignments with a MAD outlier rule

Example usage:
    >>> from celltype_refmatch import RefMatchEngine
    >>>
    >>> engine = RefMatchEngine()
    >>> artifact = engine.train(reference, labels)
    >>> result = engine.run(query, artifact)
    >>> result.predictions.head()
"""

__version__ = "0.1.0"

from .config import RefMatchConfig
from .errors import ConfigError, DataError, RefMatchError
from .core.markers import PairwiseMarkers, load_marker_spec, resolve_markers
from .core.training import (
    ReferenceDataset,
    ReferenceRepository,
    TrainingArtifact,
    build_training_artifact,
)
from .core.scoring import score
from .core.finetune import FineTuneResult, fine_tune
from .core.pruning import compute_deltas, prune
from .core.classification import (
    ClassificationResult,
    PredictionRecord,
    RefMatchEngine,
    classify,
    predictions_to_frame,
    train_and_classify,
)

__all__ = [
    "__version__",
    # Config and errors
    "RefMatchConfig",
    "RefMatchError",
    "ConfigError",
    "DataError",
    # Markers
    "PairwiseMarkers",
    "load_marker_spec",
    "resolve_markers",
    # Training
    "ReferenceDataset",
    "ReferenceRepository",
    "TrainingArtifact",
    "build_training_artifact",
    # Scoring and fine-tuning
    "score",
    "FineTuneResult",
    "fine_tune",
    # Pruning
    "compute_deltas",
    "prune",
    # Classification
    "ClassificationResult",
    "PredictionRecord",
    "RefMatchEngine",
    "classify",
    "predictions_to_frame",
    "train_and_classify",
]
