"""Training module: immutable artifacts built from a labelled reference."""

from ..reference import ReferenceDataset, ReferenceRepository
from .builder import TrainingArtifact, build_training_artifact

__all__ = [
    "ReferenceDataset",
    "ReferenceRepository",
    "TrainingArtifact",
    "build_training_artifact",
]
