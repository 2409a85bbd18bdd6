"""Rank transforms for Spearman-equivalent correlation.

A vector is ranked (ties get the average rank), centred and scaled to unit
length. The Pearson correlation of two such vectors is their dot product,
and their squared Euclidean distance is ``2 - 2 * rho``; the KD-tree path
relies on the second identity.
"""

from __future__ import annotations

import numpy as np
from scipy.stats import rankdata

from ...utils.stats import interpolated_quantile


def scaled_ranks(values: np.ndarray) -> np.ndarray:
    """Column-wise centred, unit-length average ranks.

    Parameters
    ----------
    values : np.ndarray
        1-D vector or 2-D matrix (features x samples); each column is ranked
        independently.

    Returns
    -------
    np.ndarray
        Same shape as the input. Columns without rank variance (all values
        tied) are returned as zeros, so they correlate at 0 with anything.
    """
    arr = np.asarray(values, dtype=float)
    squeeze = arr.ndim == 1
    if squeeze:
        arr = arr[:, None]
    if arr.shape[0] == 0:
        return np.zeros(arr.shape[0]) if squeeze else np.zeros_like(arr)

    ranks = rankdata(arr, method="average", axis=0)
    centred = ranks - ranks.mean(axis=0, keepdims=True)
    norms = np.sqrt(np.sum(centred * centred, axis=0))

    out = np.zeros_like(centred)
    nonzero = norms > 0
    out[:, nonzero] = centred[:, nonzero] / norms[nonzero]
    return out[:, 0] if squeeze else out


def rank_correlations(query_scaled: np.ndarray, reference_scaled: np.ndarray) -> np.ndarray:
    """Correlation of one scaled query vector with every reference column."""
    corr = query_scaled @ reference_scaled
    return np.clip(corr, -1.0, 1.0)


def quantile_score(correlations: np.ndarray, quantile: float) -> float:
    """Quantile of a correlation distribution, linear interpolation."""
    return interpolated_quantile(correlations, quantile)


def neighbors_for_quantile(n_samples: int, quantile: float) -> int:
    """Number of top correlations needed to interpolate ``quantile`` exactly.

    Linear interpolation at ``quantile`` reads the order statistics at
    positions ``floor(h)`` and ``ceil(h)`` with ``h = (n - 1) * quantile``;
    everything from ``floor(h)`` upwards is the top ``n - floor(h)`` values.
    """
    return int(n_samples - np.floor((n_samples - 1) * quantile))


def quantile_from_top(top_descending: np.ndarray, n_samples: int, quantile: float) -> float:
    """Interpolated quantile from the largest correlations in descending order."""
    top = np.asarray(top_descending, dtype=float)
    h = (n_samples - 1) * quantile
    lo = int(np.floor(h))
    hi = int(np.ceil(h))
    v_lo = top[n_samples - 1 - lo]
    v_hi = top[n_samples - 1 - hi]
    return float(v_lo + (h - lo) * (v_hi - v_lo))
