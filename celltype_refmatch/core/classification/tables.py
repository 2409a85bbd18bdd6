"""Tabular views of prediction records."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .records import PredictionRecord

PREDICTION_COLUMNS = [
    "first_label",
    "label",
    "pruned_label",
    "score",
    "delta",
    "delta_next",
    "pruned",
    "n_rounds",
    "fine_tune_capped",
    "degenerate_mad",
]


def predictions_to_frame(records: Sequence[PredictionRecord]) -> pd.DataFrame:
    """One row per query sample, indexed by sample identifier."""
    if not records:
        return pd.DataFrame(columns=PREDICTION_COLUMNS, index=pd.Index([], name="sample_id"))
    df = pd.DataFrame([record.to_dict() for record in records]).set_index("sample_id")
    return df[PREDICTION_COLUMNS]


def scores_to_frame(
    records: Sequence[PredictionRecord],
    which: str = "scores",
    labels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Wide samples x labels score table.

    Args:
        records: Prediction records
        which: "scores" for the final-round vectors or "first_scores" for
            the first pass over the full marker union
        labels: Column order; defaults to the sorted union of scored labels.
            Labels not scored in a record's vector are NaN.
    """
    if which not in ("scores", "first_scores"):
        raise ValueError(f"which must be 'scores' or 'first_scores', got '{which}'")
    vectors = [getattr(record, which) for record in records]
    if labels is None:
        labels = sorted({label for vector in vectors for label in vector})
    labels = list(labels)
    values = [[vector.get(label, np.nan) for label in labels] for vector in vectors]
    return pd.DataFrame(
        np.asarray(values, dtype=float).reshape(len(vectors), len(labels)),
        index=pd.Index([record.sample_id for record in records], name="sample_id"),
        columns=labels,
    )


def summarize_predictions(records: Sequence[PredictionRecord]) -> pd.DataFrame:
    """Per-label counts and confidence statistics.

    Columns: n_samples, n_pruned, frac_pruned, n_changed (final label
    differs from the first pass), n_capped, mean_rounds, median_delta.
    """
    columns = [
        "label",
        "n_samples",
        "n_pruned",
        "frac_pruned",
        "n_changed",
        "n_capped",
        "mean_rounds",
        "median_delta",
    ]
    if not records:
        return pd.DataFrame(columns=columns)

    df = predictions_to_frame(records)
    df["changed"] = df["label"] != df["first_label"]
    df["pruned_flag"] = df["pruned"].eq(True)
    grouped = df.groupby("label", sort=True)
    summary = pd.DataFrame(
        {
            "n_samples": grouped.size(),
            "n_pruned": grouped["pruned_flag"].sum().astype(int),
            "n_changed": grouped["changed"].sum().astype(int),
            "n_capped": grouped["fine_tune_capped"].sum().astype(int),
            "mean_rounds": grouped["n_rounds"].mean(),
            "median_delta": grouped["delta"].median(),
        }
    )
    summary["frac_pruned"] = np.where(
        summary["n_samples"] > 0, summary["n_pruned"] / summary["n_samples"], 0.0
    )
    summary = summary.reset_index()
    return summary[columns]
