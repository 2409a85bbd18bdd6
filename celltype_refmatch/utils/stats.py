"""Statistical utilities for CellType-RefMatch.

Provides robust dispersion and interpolated quantile helpers shared by the
scorer and the pruner.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np
from scipy.stats import median_abs_deviation

ArrayLike = Union[Iterable[float], np.ndarray]


def _to_clean_array(values: ArrayLike) -> np.ndarray:
    """Convert input to clean numpy array, removing non-finite values.

    Parameters
    ----------
    values : ArrayLike
        Input values (list, iterable, or array).

    Returns
    -------
    np.ndarray
        Clean array with only finite values.
    """
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return arr
    return arr[np.isfinite(arr)]


def interpolated_quantile(values: ArrayLike, q: float) -> float:
    """Quantile with linear interpolation between order statistics.

    Returns NaN for empty input.
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return float("nan")
    return float(np.quantile(arr, q, method="linear"))


def mad(values: ArrayLike, scale: float = 1.0) -> float:
    """Median absolute deviation of the finite values.

    Parameters
    ----------
    values : ArrayLike
        Input values.
    scale : float
        Multiplier applied to the raw MAD. Use 1.4826 to make the MAD
        comparable to a standard deviation for normally distributed data.

    Returns
    -------
    float
        Scaled MAD. NaN if there are no finite values.
    """
    arr = _to_clean_array(values)
    if arr.size == 0:
        return float("nan")
    return float(median_abs_deviation(arr, scale=1.0) * scale)


def mad_threshold(values: ArrayLike, nmads: float, scale: float = 1.0) -> tuple[float, float]:
    """Lower outlier threshold ``median - nmads * MAD``.

    Returns
    -------
    tuple[float, float]
        (threshold, mad). The threshold is NaN when there are no finite values.
    """
    arr = _to_clean_array(values)
    if arr.size == 0:
        return float("nan"), float("nan")
    spread = mad(arr, scale=scale)
    return float(np.median(arr) - nmads * spread), spread
