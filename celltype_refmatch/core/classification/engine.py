"""Reference-matching engine.

This module provides the RefMatchEngine class that orchestrates the
annotation pipeline: marker resolution, training, per-sample
classification with fine-tuning, pruning and export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from ...config import RefMatchConfig
from ...io.matrices import write_dataframe
from ..markers import PairwiseMarkers, resolve_markers
from ..pruning import prune
from ..reference import ReferenceRepository
from ..training import TrainingArtifact, build_training_artifact
from .classify import classify
from .records import PredictionRecord
from .tables import predictions_to_frame, scores_to_frame, summarize_predictions


@dataclass
class ClassificationResult:
    """Result from the annotation pipeline.

    Attributes:
        records: One PredictionRecord per query sample, pruning fields set
        predictions: Per-sample table (labels, delta, pruned flag, diagnostics)
        scores: Final-round score vectors (samples x labels, NaN where a
            label was not among the last candidates)
        first_scores: First-pass score vectors (samples x labels)
        pruned: Boolean prune mask aligned with ``records``
        summary: Per-label counts and confidence statistics
        artifact: Training artifact used for classification
    """

    records: List[PredictionRecord]
    predictions: pd.DataFrame
    scores: pd.DataFrame
    first_scores: pd.DataFrame
    pruned: np.ndarray
    summary: pd.DataFrame
    artifact: TrainingArtifact

    @property
    def labels(self) -> pd.Series:
        return self.predictions["label"]

    @property
    def pruned_labels(self) -> pd.Series:
        return self.predictions["pruned_label"]


class RefMatchEngine:
    """Reference-based annotation engine.

    The engine owns a configuration and, optionally, a repository of named
    references. Training produces an immutable artifact that can be reused
    for any number of query datasets. It:
    1. Resolves or derives the pairwise marker map
    2. Builds the training artifact
    3. Scores and fine-tunes every query sample
    4. Prunes low-confidence assignments

    Example:
        >>> engine = RefMatchEngine(RefMatchConfig.from_yaml("refmatch.yaml"))
        >>> artifact = engine.train(reference, labels)
        >>> result = engine.run(query, artifact, output_dir=Path("output/"))
        >>> result.predictions["label"].value_counts()
    """

    def __init__(
        self,
        config: Optional[RefMatchConfig] = None,
        repository: Optional[ReferenceRepository] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the engine.

        Args:
            config: Run configuration (uses defaults if None)
            repository: Named references available to ``train``
            logger: Logger instance
        """
        self.config = (config or RefMatchConfig()).validate()
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)

    def _reference(self, reference: Any) -> Any:
        if isinstance(reference, str) and self.repository is not None and reference in self.repository:
            return self.repository.get(reference)
        return reference

    def resolve_markers(
        self,
        reference: Any,
        labels: Any = None,
        marker_spec: Any = None,
        restrict: Optional[Iterable[str]] = None,
    ) -> PairwiseMarkers:
        """Resolve or derive the pairwise marker map for a reference."""
        return resolve_markers(
            self._reference(reference),
            labels,
            marker_spec=marker_spec,
            config=self.config.markers,
            restrict=restrict,
            logger=self.logger,
        )

    def train(
        self,
        reference: Any,
        labels: Any = None,
        marker_spec: Any = None,
        restrict: Optional[Iterable[str]] = None,
    ) -> TrainingArtifact:
        """Build a training artifact.

        Args:
            reference: ReferenceDataset, matrix, AnnData or the name of a
                reference in the engine's repository
            labels: Per-sample labels (optional for ReferenceDataset)
            marker_spec: Marker specification; None derives markers
            restrict: Features that markers must come from (typically the
                query's features)

        Returns:
            TrainingArtifact
        """
        reference = self._reference(reference)
        self.logger.info("Phase 1: Resolving markers...")
        markers = self.resolve_markers(reference, labels, marker_spec, restrict)
        self.logger.info("Phase 2: Building training artifact...")
        return build_training_artifact(
            reference,
            labels,
            markers=markers,
            acceleration=self.config.acceleration,
            logger=self.logger,
        )

    def classify(
        self,
        query: Any,
        artifact: TrainingArtifact,
        layer: Optional[str] = None,
    ) -> List[PredictionRecord]:
        """Classify a query without pruning."""
        return classify(query, artifact, config=self.config, logger=self.logger, layer=layer)

    def prune(self, records: List[PredictionRecord]) -> np.ndarray:
        """Apply the configured pruning rule to a batch of records in place."""
        params = self.config.prune
        return prune(
            records,
            nmads=params.nmads,
            per_label=params.per_label,
            mad_scale=params.mad_scale,
            min_diff_med=params.min_diff_med,
            min_diff_next=params.min_diff_next,
            logger=self.logger,
        )

    def run(
        self,
        query: Any,
        artifact: Optional[TrainingArtifact] = None,
        reference: Any = None,
        labels: Any = None,
        marker_spec: Any = None,
        output_dir: Optional[Union[str, Path]] = None,
        layer: Optional[str] = None,
    ) -> ClassificationResult:
        """Run the full pipeline.

        Args:
            query: Query dataset
            artifact: Existing training artifact; when None one is trained
                from ``reference``/``labels``/``marker_spec``
            reference: Reference used when no artifact is given
            labels: Reference labels
            marker_spec: Marker specification (None derives markers)
            output_dir: Where to write CSVs (None = don't write)
            layer: AnnData layer of the query

        Returns:
            ClassificationResult
        """
        self.logger.info("=" * 70)
        self.logger.info("REFMATCH ENGINE")
        self.logger.info("=" * 70)

        if artifact is None:
            if reference is None:
                raise ValueError("Either a training artifact or a reference is required")
            artifact = self.train(reference, labels, marker_spec)
        else:
            self.logger.info("Reusing training artifact: %s", artifact.describe())

        self.logger.info("Phase 3: Classifying query samples...")
        records = self.classify(query, artifact, layer=layer)

        self.logger.info("Phase 4: Pruning low-confidence assignments...")
        pruned = self.prune(records) if records else np.zeros(0, dtype=bool)

        result = ClassificationResult(
            records=records,
            predictions=predictions_to_frame(records),
            scores=scores_to_frame(records, "scores", labels=artifact.labels),
            first_scores=scores_to_frame(records, "first_scores", labels=artifact.labels),
            pruned=pruned,
            summary=summarize_predictions(records),
            artifact=artifact,
        )

        if output_dir:
            self.export(result, output_dir)
        return result

    def export(self, result: ClassificationResult, output_dir: Union[str, Path]) -> Path:
        """Write predictions, score tables and the per-label summary as CSV."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        write_dataframe(result.predictions, output_dir / "predictions.csv", index=True)
        self.logger.info("Wrote predictions.csv")

        write_dataframe(result.scores, output_dir / "scores.csv", index=True)
        self.logger.info("Wrote scores.csv")

        write_dataframe(result.first_scores, output_dir / "first_scores.csv", index=True)
        self.logger.info("Wrote first_scores.csv")

        write_dataframe(result.summary, output_dir / "summary.csv")
        self.logger.info("Wrote summary.csv")
        return output_dir
