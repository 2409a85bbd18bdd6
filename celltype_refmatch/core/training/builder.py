"""Training artifact construction.

The artifact bundles everything classification needs and nothing more: the
reference restricted to the union of all markers, the label assignment, the
canonical pairwise marker map and optional per-label KD-trees. It is built
once and only read afterwards, so one artifact can serve many concurrent
``classify`` calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from ...config import AccelerationConfig
from ...errors import DataError
from ...io.matrices import as_feature_frame
from ..markers import PairwiseMarkers, resolve_marker_spec, resolve_markers
from ..reference import coerce_reference
from ..scoring.ranks import scaled_ranks


def _read_only(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class TrainingArtifact:
    """Immutable training bundle shared by every classification call.

    Instances compare and hash by identity.

    Attributes:
        features: Marker union, sorted; row order of ``matrix``
        matrix: Reference values (features x samples), read-only
        sample_names: Reference sample identifiers
        labels: Sorted label universe
        sample_codes: Index into ``labels`` per reference sample
        label_columns: Column indices of each label's samples, aligned with ``labels``
        markers: Canonical pairwise marker map
        scaled_ranks: Scaled ranks of every sample over the full marker union
        indices: Per-label KD-trees over ``scaled_ranks`` (None when disabled)
        acceleration: Acceleration settings the indices were built with
    """

    features: Tuple[str, ...]
    matrix: np.ndarray
    sample_names: Tuple[str, ...]
    labels: Tuple[str, ...]
    sample_codes: np.ndarray
    label_columns: Tuple[np.ndarray, ...]
    markers: PairwiseMarkers
    scaled_ranks: np.ndarray
    indices: Optional[Tuple[cKDTree, ...]] = None
    acceleration: AccelerationConfig = field(default_factory=AccelerationConfig)

    @property
    def n_features(self) -> int:
        return len(self.features)

    @property
    def n_samples(self) -> int:
        return len(self.sample_names)

    @property
    def n_labels(self) -> int:
        return len(self.labels)

    @property
    def has_index(self) -> bool:
        return self.indices is not None

    @cached_property
    def feature_index(self) -> Dict[str, int]:
        return {feature: i for i, feature in enumerate(self.features)}

    @cached_property
    def label_index(self) -> Dict[str, int]:
        return {label: i for i, label in enumerate(self.labels)}

    def label_size(self, label: str) -> int:
        return len(self.label_columns[self.label_index[label]])

    def align_query(self, query: Any, layer: Optional[str] = None) -> Tuple[np.ndarray, List[str]]:
        """Restrict a query to the artifact's features, in artifact order.

        Returns:
            Tuple of (features x query samples array, query sample names)

        Raises:
            DataError: If marker features are missing from the query or the
                restricted values are not finite.
        """
        if isinstance(query, pd.Series):
            query = query.to_frame()
        frame = as_feature_frame(query, layer=layer)
        missing = [f for f in self.features if f not in frame.index]
        if missing:
            raise DataError(
                f"Query is missing {len(missing)}/{self.n_features} marker features "
                f"required by the training artifact: {missing[:10]}"
            )
        values = frame.loc[list(self.features)].to_numpy(dtype=float)
        if not np.isfinite(values).all():
            raise DataError("Query contains non-finite values on marker features")
        return values, list(frame.columns)

    def describe(self) -> Dict[str, Any]:
        """Summary suitable for logging."""
        return {
            "n_labels": self.n_labels,
            "n_samples": self.n_samples,
            "n_features": self.n_features,
            "marker_source": self.markers.source,
            "accelerated": self.has_index,
            "approximate": self.has_index and self.acceleration.eps > 0,
            "samples_per_label": {
                label: int(len(cols)) for label, cols in zip(self.labels, self.label_columns)
            },
        }


def _check_constant_markers(
    matrix: np.ndarray,
    features: Tuple[str, ...],
    universe: Tuple[str, ...],
    label_columns: Tuple[np.ndarray, ...],
    markers: PairwiseMarkers,
) -> None:
    """A label's own marker must vary across that label's samples."""
    position = {feature: i for i, feature in enumerate(features)}
    problems: List[str] = []
    for label, cols in zip(universe, label_columns):
        if len(cols) < 2:
            continue
        own = sorted(markers.label_markers(label))
        if not own:
            continue
        rows = np.array([position[f] for f in own])
        block = matrix[np.ix_(rows, cols)]
        constant = np.ptp(block, axis=1) == 0
        problems.extend(f"{label}:{own[i]}" for i in np.flatnonzero(constant))
    if problems:
        raise DataError(
            f"{len(problems)} marker features are constant across all samples of their "
            f"label (degenerate correlation): {problems[:10]}"
        )


def _check_sample_variance(
    ranks: np.ndarray,
    sample_names: Tuple[str, ...],
) -> None:
    """Every reference sample needs rank variance over the full marker union."""
    flat = ~np.any(ranks != 0, axis=0)
    if flat.any():
        bad = [sample_names[i] for i in np.flatnonzero(flat)]
        raise DataError(
            f"{len(bad)} reference samples are constant over all marker features "
            f"(degenerate correlation): {bad[:10]}"
        )


def build_training_artifact(
    reference: Any,
    labels: Any = None,
    markers: Any = None,
    acceleration: Optional[AccelerationConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> TrainingArtifact:
    """Build the immutable training artifact.

    Args:
        reference: ReferenceDataset, DataFrame (features x samples), AnnData
            or array
        labels: Per-sample labels (optional for ReferenceDataset)
        markers: PairwiseMarkers, a raw marker specification, or None to
            derive markers with default settings
        acceleration: KD-tree settings; validated here, never at scoring time
        logger: Optional logger instance

    Returns:
        TrainingArtifact

    Raises:
        DataError: Length mismatch, empty labels, non-finite values or
            degenerate marker rows
        ConfigError: Invalid markers or acceleration settings
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    acceleration = replace(acceleration) if acceleration is not None else AccelerationConfig()
    acceleration.validate()

    frame, label_array, universe = coerce_reference(reference, labels)

    if markers is None:
        markers = resolve_markers(frame, label_array, logger=logger)
    else:
        markers = resolve_marker_spec(markers, universe, list(frame.index), logger=logger)

    features = tuple(sorted(markers.union()))
    matrix = frame.loc[list(features)].to_numpy(dtype=float)
    sample_names = tuple(frame.columns)

    codes = pd.Categorical(label_array, categories=list(universe)).codes.astype(np.int64)
    label_columns = tuple(np.flatnonzero(codes == i) for i in range(len(universe)))

    logger.info(
        "Building training artifact: %d samples, %d labels, %d marker features (of %d)",
        len(sample_names),
        len(universe),
        len(features),
        frame.shape[0],
    )

    _check_constant_markers(matrix, features, universe, label_columns, markers)
    ranks = scaled_ranks(matrix)
    _check_sample_variance(ranks, sample_names)

    indices = None
    if acceleration.enabled:
        indices = tuple(
            cKDTree(np.ascontiguousarray(ranks[:, cols].T), leafsize=acceleration.leafsize)
            for cols in label_columns
        )
        logger.info(
            "Built %d KD-tree indices (eps=%.3g, leafsize=%d)",
            len(indices),
            acceleration.eps,
            acceleration.leafsize,
        )

    artifact = TrainingArtifact(
        features=features,
        matrix=_read_only(matrix),
        sample_names=sample_names,
        labels=universe,
        sample_codes=_read_only(codes),
        label_columns=tuple(_read_only(cols) for cols in label_columns),
        markers=markers,
        scaled_ranks=_read_only(ranks),
        indices=indices,
        acceleration=acceleration,
    )
    logger.debug("Training artifact: %s", artifact.describe())
    return artifact
