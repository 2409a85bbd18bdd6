"""Explicitly owned registry of named reference datasets."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

from .dataset import ReferenceDataset


class ReferenceRepository:
    """In-memory registry of named references.

    The repository is an ordinary object: callers create it, fill it and pass
    it (or references taken from it) to training. Nothing is cached at module
    level and nothing is downloaded.

    Example:
        >>> repo = ReferenceRepository()
        >>> repo.register("blood", matrix, labels)
        >>> artifact = build_training_artifact(repo.get("blood"), markers=markers)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._datasets: Dict[str, ReferenceDataset] = {}
        self.logger = logger or logging.getLogger(__name__)

    def register(
        self,
        name: str,
        data: Any,
        labels: Any = None,
        *,
        overwrite: bool = False,
    ) -> ReferenceDataset:
        """Validate and store a reference under ``name``."""
        if name in self._datasets and not overwrite:
            raise KeyError(f"Reference '{name}' is already registered")
        dataset = ReferenceDataset.from_data(data, labels, name=name)
        self._datasets[name] = dataset
        self.logger.info(
            "Registered reference '%s': %d features x %d samples, %d labels",
            name,
            dataset.matrix.shape[0],
            dataset.n_samples,
            len(dataset.label_universe),
        )
        return dataset

    def get(self, name: str) -> ReferenceDataset:
        if name not in self._datasets:
            available = sorted(self._datasets)
            raise KeyError(f"Reference '{name}' not found (available: {available})")
        return self._datasets[name]

    def remove(self, name: str) -> None:
        self._datasets.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._datasets)

    def __contains__(self, name: object) -> bool:
        return name in self._datasets

    def __len__(self) -> int:
        return len(self._datasets)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())
