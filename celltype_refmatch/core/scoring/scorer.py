"""Per-label quantile correlation scores.

The score of a label is a fixed quantile of the Spearman correlations
between the query and every reference sample of that label, computed over a
marker subset. Scores are returned in lexicographic label order, so taking
the first maximum gives a deterministic tie-break.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from ...config import validate_quantile
from ...errors import ConfigError, DataError
from .ranks import (
    neighbors_for_quantile,
    quantile_from_top,
    quantile_score,
    rank_correlations,
    scaled_ranks,
)

if TYPE_CHECKING:
    from ..training import TrainingArtifact

ScoreVector = Dict[str, float]


def _check_candidates(candidate_labels: Iterable[str], artifact: "TrainingArtifact") -> List[str]:
    labels = sorted(dict.fromkeys(str(label) for label in candidate_labels))
    if not labels:
        raise ConfigError("At least one candidate label is required for scoring")
    unknown = [label for label in labels if label not in artifact.label_index]
    if unknown:
        raise ConfigError(f"Candidate labels not in the training artifact: {unknown}")
    return labels


def best_label(scores: ScoreVector) -> str:
    """Highest-scoring label; the lexicographically first label wins ties."""
    labels = sorted(scores)
    values = np.array([scores[label] for label in labels])
    return labels[int(np.argmax(values))]


def _score_full_union(
    query_vec: np.ndarray,
    labels: Sequence[str],
    artifact: "TrainingArtifact",
    quantile: float,
    use_index: bool,
) -> ScoreVector:
    q = scaled_ranks(query_vec)
    if not q.any():
        return {label: 0.0 for label in labels}

    scores: ScoreVector = {}
    if use_index and artifact.has_index:
        eps = artifact.acceleration.eps
        for label in labels:
            i = artifact.label_index[label]
            n = len(artifact.label_columns[i])
            k = neighbors_for_quantile(n, quantile)
            dist, _ = artifact.indices[i].query(q, k=k, eps=eps)
            dist = np.atleast_1d(dist)
            rho = np.clip(1.0 - dist * dist / 2.0, -1.0, 1.0)
            scores[label] = quantile_from_top(rho, n, quantile)
        return scores

    corr = rank_correlations(q, artifact.scaled_ranks)
    for label in labels:
        cols = artifact.label_columns[artifact.label_index[label]]
        scores[label] = quantile_score(corr[cols], quantile)
    return scores


def _score_subset(
    query_vec: np.ndarray,
    labels: Sequence[str],
    feature_idx: np.ndarray,
    artifact: "TrainingArtifact",
    quantile: float,
) -> ScoreVector:
    q = scaled_ranks(query_vec[feature_idx])
    if not q.any():
        return {label: 0.0 for label in labels}

    scores: ScoreVector = {}
    for label in labels:
        cols = artifact.label_columns[artifact.label_index[label]]
        ref = scaled_ranks(artifact.matrix[np.ix_(feature_idx, cols)])
        scores[label] = quantile_score(rank_correlations(q, ref), quantile)
    return scores


def score_aligned(
    query_vec: np.ndarray,
    labels: Sequence[str],
    artifact: "TrainingArtifact",
    quantile: float = 0.8,
    feature_idx: Optional[np.ndarray] = None,
    use_index: bool = True,
) -> ScoreVector:
    """Score a query already aligned to ``artifact.features``.

    This is the hot path used by the classifier; inputs are assumed valid.
    ``feature_idx`` selects artifact rows; None means the full marker union,
    which reuses the precomputed reference ranks (and the KD-trees when the
    artifact has them).
    """
    if feature_idx is None or len(feature_idx) == artifact.n_features:
        return _score_full_union(query_vec, labels, artifact, quantile, use_index)
    return _score_subset(query_vec, labels, np.asarray(feature_idx), artifact, quantile)


def score(
    query_profile: Any,
    candidate_labels: Iterable[str],
    marker_subset: Iterable[str],
    artifact: "TrainingArtifact",
    quantile: float = 0.8,
) -> ScoreVector:
    """Score one query profile against candidate labels over a marker subset.

    Parameters
    ----------
    query_profile : pd.Series, Mapping or np.ndarray
        Query values indexed by feature. A plain array must be aligned with
        ``artifact.features``.
    candidate_labels : Iterable[str]
        Labels to score; all must belong to the artifact's label universe.
    marker_subset : Iterable[str]
        Features to correlate over. Restricted to the features present in
        both the artifact and the query.
    artifact : TrainingArtifact
        Training artifact
    quantile : float
        Quantile of each label's correlation distribution, in (0, 1]

    Returns
    -------
    Dict[str, float]
        Label -> score, in lexicographic label order

    Raises
    ------
    ConfigError
        If the quantile is invalid, a candidate label is unknown or the
        restricted marker subset is empty.
    DataError
        If the query values are not finite or an array query has the wrong
        length.
    """
    validate_quantile(quantile)
    labels = _check_candidates(candidate_labels, artifact)
    subset = {str(f) for f in marker_subset}

    if isinstance(query_profile, (pd.Series, Mapping)):
        profile = pd.Series(query_profile, dtype=float)
        profile.index = profile.index.astype(str)
        features = [f for f in artifact.features if f in subset and f in profile.index]
        values = profile.reindex(list(artifact.features)).to_numpy(dtype=float)
    else:
        values = np.asarray(query_profile, dtype=float).ravel()
        if values.shape[0] != artifact.n_features:
            raise DataError(
                f"Query profile has {values.shape[0]} values but the artifact has "
                f"{artifact.n_features} features"
            )
        features = [f for f in artifact.features if f in subset]

    if not features:
        raise ConfigError("Marker subset is empty after restriction to the query and reference")

    feature_idx = np.array([artifact.feature_index[f] for f in features], dtype=np.intp)
    if not np.isfinite(values[feature_idx]).all():
        raise DataError("Query profile contains non-finite values on the marker subset")

    return score_aligned(values, labels, artifact, quantile, feature_idx=feature_idx)
