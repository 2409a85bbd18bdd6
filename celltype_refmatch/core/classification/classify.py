"""Per-sample classification: first pass, fine-tuning and record assembly.

Query samples are independent: each task reads only the shared training
artifact and its own query column, so batches of samples are distributed
over a joblib worker pool and the records are joined in query order.
"""

from __future__ import annotations

import logging
import time
from typing import Any, List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ...config import FineTuneConfig, RefMatchConfig
from ..finetune import fine_tune
from ..markers import resolve_markers
from ..scoring import ScoreVector, best_label, score_aligned
from ..training import TrainingArtifact, build_training_artifact
from .records import PredictionRecord


def _gap_to_next(scores: ScoreVector) -> float:
    if len(scores) < 2:
        return float("nan")
    top, second = sorted(scores.values(), reverse=True)[:2]
    return float(top - second)


def classify_profile(
    query_vec: np.ndarray,
    sample_id: str,
    artifact: TrainingArtifact,
    quantile: float = 0.8,
    fine_tune_config: Optional[FineTuneConfig] = None,
) -> PredictionRecord:
    """Classify one query vector aligned with ``artifact.features``."""
    first = score_aligned(query_vec, artifact.labels, artifact, quantile)
    result = fine_tune(query_vec, artifact, first, fine_tune_config, quantile)
    return PredictionRecord(
        sample_id=sample_id,
        first_label=best_label(first),
        first_scores=first,
        label=result.label,
        scores=result.scores,
        n_rounds=result.n_rounds,
        fine_tune_capped=result.capped,
        delta_next=_gap_to_next(result.scores),
    )


def _classify_batch(
    values: np.ndarray,
    sample_ids: Sequence[str],
    artifact: TrainingArtifact,
    quantile: float,
    fine_tune_config: FineTuneConfig,
) -> List[PredictionRecord]:
    """Worker function: classify a block of query columns."""
    return [
        classify_profile(values[:, j], sample_ids[j], artifact, quantile, fine_tune_config)
        for j in range(values.shape[1])
    ]


def classify(
    query: Any,
    artifact: TrainingArtifact,
    config: Optional[RefMatchConfig] = None,
    logger: Optional[logging.Logger] = None,
    layer: Optional[str] = None,
) -> List[PredictionRecord]:
    """Classify every query sample against a training artifact.

    Args:
        query: DataFrame (features x samples), AnnData (cells x features),
            array aligned with ``artifact.features`` or a single Series
        artifact: Training artifact; may be reused across calls
        config: Run configuration (scoring, fine-tuning, parallel sections)
        logger: Optional logger instance
        layer: AnnData layer to read

    Returns:
        One PredictionRecord per query sample, in query order. Pruning
        fields are unset.

    Raises:
        DataError: If the query lacks marker features of the artifact or
            has non-finite values on them
        ConfigError: If the configuration is invalid
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    config = (config or RefMatchConfig()).validate()

    if isinstance(query, np.ndarray) and query.ndim == 2 and query.shape[0] == artifact.n_features:
        # Bare arrays are taken as already aligned with the artifact features
        query = pd.DataFrame(
            query,
            index=list(artifact.features),
            columns=[f"sample_{j}" for j in range(query.shape[1])],
        )
    values, sample_ids = artifact.align_query(query, layer=layer)

    n_samples = values.shape[1]
    quantile = config.scoring.quantile
    parallel = config.parallel
    if n_samples == 0:
        logger.warning("Query has no samples; nothing to classify")
        return []

    logger.info(
        "Classifying %d query samples against %d labels (%d features, quantile=%.2f, fine_tune=%s)",
        n_samples,
        artifact.n_labels,
        artifact.n_features,
        quantile,
        config.fine_tune.enabled,
    )
    start_time = time.time()

    batch_size = parallel.batch_size
    batches = [
        (start, min(start + batch_size, n_samples))
        for start in range(0, n_samples, batch_size)
    ]

    if parallel.n_workers <= 1 or len(batches) <= 1:
        results = [
            _classify_batch(values[:, lo:hi], sample_ids[lo:hi], artifact, quantile, config.fine_tune)
            for lo, hi in batches
        ]
    else:
        logger.info(
            "Dispatching %d batches (batch_size=%d) to %d %s workers",
            len(batches),
            batch_size,
            parallel.n_workers,
            parallel.backend,
        )
        results = Parallel(n_jobs=parallel.n_workers, backend=parallel.backend)(
            delayed(_classify_batch)(
                np.ascontiguousarray(values[:, lo:hi]),
                sample_ids[lo:hi],
                artifact,
                quantile,
                config.fine_tune,
            )
            for lo, hi in batches
        )

    records = [record for batch in results for record in batch]
    n_capped = sum(1 for record in records if record.fine_tune_capped)
    n_changed = sum(1 for record in records if record.label != record.first_label)
    logger.info(
        "Classified %d samples in %.2f sec (%d changed by fine-tuning, %d capped)",
        len(records),
        time.time() - start_time,
        n_changed,
        n_capped,
    )
    return records


def train_and_classify(
    reference: Any,
    labels: Any,
    marker_spec: Any,
    query: Any,
    config: Optional[RefMatchConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> List[PredictionRecord]:
    """Resolve markers, build a training artifact and classify the query.

    ``marker_spec`` may be None to derive pairwise markers from the
    reference. Equivalent to ``classify(query, build_training_artifact(...))``
    with the same inputs.
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    config = (config or RefMatchConfig()).validate()
    markers = resolve_markers(
        reference,
        labels,
        marker_spec=marker_spec,
        config=config.markers,
        logger=logger,
    )
    artifact = build_training_artifact(
        reference,
        labels,
        markers=markers,
        acceleration=config.acceleration,
        logger=logger,
    )
    return classify(query, artifact, config=config, logger=logger)
