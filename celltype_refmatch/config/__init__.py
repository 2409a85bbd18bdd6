"""Centralized configuration for CellType-RefMatch.

Example
-------
>>> from celltype_refmatch.config import RefMatchConfig
>>>
>>> config = RefMatchConfig.from_yaml("refmatch.yaml")
>>> config.scoring.quantile
0.8
>>> config.fine_tune.resolve_cap(n_labels=12)
9
"""

from .settings import (
    DE_METHODS,
    PARALLEL_BACKENDS,
    AccelerationConfig,
    FineTuneConfig,
    MarkerConfig,
    ParallelConfig,
    PruneConfig,
    RefMatchConfig,
    ScoringConfig,
    default_iteration_cap,
    validate_nmads,
    validate_quantile,
)

__all__ = [
    "DE_METHODS",
    "PARALLEL_BACKENDS",
    "AccelerationConfig",
    "FineTuneConfig",
    "MarkerConfig",
    "ParallelConfig",
    "PruneConfig",
    "RefMatchConfig",
    "ScoringConfig",
    "default_iteration_cap",
    "validate_nmads",
    "validate_quantile",
]
