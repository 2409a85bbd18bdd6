"""MAD-based pruning of low-confidence assignments.

The confidence statistic of a record is its delta: the first-pass score of
the final label minus the median first-pass score over the whole label
universe. Fine-tuning rounds score only a few labels on a narrower marker
set, so their vectors are not comparable across records. The first-pass
vector covers every label for every record.

Within each group (per final label, or all records together) a record is
pruned when its delta falls below ``median(delta) - nmads * MAD(delta)``.
Groups whose MAD is zero prune nothing and are marked ``degenerate_mad``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

import numpy as np

from ...config import validate_nmads
from ...errors import ConfigError
from ...utils.stats import mad_threshold

if TYPE_CHECKING:
    from ..classification.records import PredictionRecord


def compute_deltas(records: Sequence["PredictionRecord"]) -> np.ndarray:
    """Delta of every record over its full-universe first-pass score vector."""
    out = np.empty(len(records), dtype=float)
    for i, record in enumerate(records):
        vector = record.first_scores
        values = np.fromiter(vector.values(), dtype=float)
        out[i] = vector[record.label] - float(np.median(values))
    return out


def _groups(records: Sequence["PredictionRecord"], per_label: bool) -> Dict[str, List[int]]:
    if not per_label:
        return {"__all__": list(range(len(records)))}
    groups: Dict[str, List[int]] = {}
    for i, record in enumerate(records):
        groups.setdefault(record.label, []).append(i)
    return groups


def prune(
    records: Sequence["PredictionRecord"],
    nmads: float = 3.0,
    per_label: bool = True,
    mad_scale: float = 1.0,
    min_diff_med: Optional[float] = None,
    min_diff_next: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
) -> np.ndarray:
    """Flag low-confidence records and fill their pruning fields in place.

    Args:
        records: Prediction records of one classification batch
        nmads: Number of MADs below the median delta (must be > 0)
        per_label: Group records by final label; otherwise one global group
        mad_scale: Factor applied to the raw MAD
        min_diff_med: Also prune records whose delta is below this value
        min_diff_next: Also prune records whose best-minus-second gap is
            below this value
        logger: Optional logger instance

    Returns:
        Boolean array aligned with ``records``; True means pruned

    Raises:
        ConfigError: If ``nmads`` or ``mad_scale`` is not positive
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    validate_nmads(nmads)
    if not mad_scale > 0:
        raise ConfigError(f"mad_scale must be > 0, got {mad_scale}")

    deltas = compute_deltas(records)
    flagged = np.zeros(len(records), dtype=bool)
    degenerate = np.zeros(len(records), dtype=bool)

    for group, members in _groups(records, per_label).items():
        idx = np.asarray(members, dtype=np.intp)
        threshold, spread = mad_threshold(deltas[idx], nmads, scale=mad_scale)
        if not spread > 0:
            degenerate[idx] = True
            logger.debug("Pruning group '%s' (%d records) has zero MAD", group, len(idx))
            continue
        flagged[idx] = deltas[idx] < threshold

    if min_diff_med is not None:
        flagged |= deltas < min_diff_med
    if min_diff_next is not None:
        gaps = np.array([record.delta_next for record in records], dtype=float)
        flagged |= gaps < min_diff_next

    for i, record in enumerate(records):
        record.delta = float(deltas[i])
        record.pruned = bool(flagged[i])
        record.degenerate_mad = bool(degenerate[i])

    logger.info(
        "Pruned %d/%d records (nmads=%.2f, per_label=%s, %d in zero-MAD groups)",
        int(flagged.sum()),
        len(records),
        nmads,
        per_label,
        int(degenerate.sum()),
    )
    return flagged
