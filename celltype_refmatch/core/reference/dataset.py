"""Reference datasets and label coercion.

A reference is a features x samples matrix plus one label per sample. The
label universe is fixed here, sorted lexicographically by label string; that
order is the deterministic tie-break used by every later stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ...errors import DataError
from ...io.matrices import is_anndata, as_feature_frame


@dataclass(frozen=True, eq=False)
class ReferenceDataset:
    """A labelled reference matrix, compared and hashed by identity.

    Attributes:
        matrix: Features x samples expression matrix
        labels: Label per sample, aligned with ``matrix.columns``
        name: Identifier used in logs and repositories
    """

    matrix: pd.DataFrame
    labels: pd.Series
    name: str = "reference"

    @classmethod
    def from_data(
        cls,
        data: Any,
        labels: Any,
        name: str = "reference",
        layer: Optional[str] = None,
    ) -> "ReferenceDataset":
        """Validate and wrap a matrix (DataFrame, AnnData or array) and labels."""
        frame, label_array, _ = coerce_reference(data, labels, layer=layer)
        return cls(
            matrix=frame,
            labels=pd.Series(label_array, index=frame.columns, name="label"),
            name=name,
        )

    @property
    def n_samples(self) -> int:
        return self.matrix.shape[1]

    @property
    def label_universe(self) -> Tuple[str, ...]:
        return tuple(sorted(self.labels.unique(), key=str))


def _coerce_label_values(labels: Any, data: Any, columns: pd.Index) -> Tuple[np.ndarray, Sequence[Any]]:
    """Return raw label values aligned with ``columns`` and the declared universe."""
    if isinstance(labels, str):
        if is_anndata(data) and labels in data.obs:
            labels = data.obs[labels]
        else:
            raise DataError(
                f"Label column '{labels}' requires an AnnData reference with that obs column"
            )

    if isinstance(labels, pd.Series):
        if len(labels) == len(columns) and set(labels.index.astype(str)) == set(columns):
            labels = labels.copy()
            labels.index = labels.index.astype(str)
            labels = labels.reindex(columns)
        series = labels
    else:
        series = pd.Series(labels)

    if len(series) != len(columns):
        raise DataError(
            f"Label vector has length {len(series)} but the reference has {len(columns)} samples"
        )
    if series.isna().any():
        n_missing = int(series.isna().sum())
        raise DataError(f"{n_missing} reference samples have missing labels")

    if isinstance(series.dtype, pd.CategoricalDtype):
        declared = list(series.cat.categories)
    else:
        declared = list(pd.unique(series))
    return series.astype(str).to_numpy(), declared


def coerce_reference(
    data: Any,
    labels: Any = None,
    layer: Optional[str] = None,
) -> Tuple[pd.DataFrame, np.ndarray, Tuple[str, ...]]:
    """Normalise a reference and its labels.

    Args:
        data: ReferenceDataset, DataFrame (features x samples), AnnData or array
        labels: Per-sample labels (sequence, Series, Categorical) or the name
            of an AnnData obs column. Optional for ReferenceDataset input.
        layer: AnnData layer to read

    Returns:
        Tuple of (matrix, label array of str, sorted label universe)

    Raises:
        DataError: On length mismatch, missing labels, non-finite values or a
            label with zero reference samples.
    """
    if isinstance(data, ReferenceDataset):
        if labels is None:
            labels = data.labels
        data = data.matrix
    if labels is None:
        raise DataError("Reference labels are required")

    frame = as_feature_frame(data, layer=layer)
    label_array, declared = _coerce_label_values(labels, data, frame.columns)

    if not np.isfinite(frame.to_numpy()).all():
        raise DataError("Reference matrix contains non-finite values")

    universe = tuple(sorted({str(label) for label in declared}))
    present = set(label_array)
    empty = [label for label in universe if label not in present]
    if empty:
        raise DataError(f"Labels with zero reference samples: {empty}")

    return frame, label_array, universe
