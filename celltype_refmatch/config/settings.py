"""Configuration classes for reference-based annotation.

Every tunable of the marker resolver, scorer, fine-tuner, pruner and
classifier lives here so a whole run can be described by one YAML file.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml

from ..errors import ConfigError

DE_METHODS = ("classic", "wilcoxon", "t-test")
PARALLEL_BACKENDS = ("loky", "threading")


@dataclass
class MarkerConfig:
    """Configuration for marker derivation.

    Attributes
    ----------
    de_method : str
        Pairwise differential test: "classic" (median difference),
        "wilcoxon" or "t-test" (both through scanpy)
    de_n : int
        Number of "up" features kept per ordered label pair
    n_workers : int
        Threads used to process label pairs
    """

    de_method: str = "classic"
    de_n: int = 10
    n_workers: int = 1

    def validate(self) -> None:
        if self.de_method not in DE_METHODS:
            raise ConfigError(
                f"Unknown de_method '{self.de_method}' (expected one of {DE_METHODS})"
            )
        if not self.de_n >= 1:
            raise ConfigError(f"de_n must be >= 1, got {self.de_n}")
        if not self.n_workers >= 1:
            raise ConfigError(f"n_workers must be >= 1, got {self.n_workers}")


@dataclass
class ScoringConfig:
    """Configuration for correlation scoring.

    Attributes
    ----------
    quantile : float
        Quantile of each label's correlation distribution used as its score
    """

    quantile: float = 0.8

    def validate(self) -> None:
        validate_quantile(self.quantile)


@dataclass
class FineTuneConfig:
    """Configuration for fine-tuning.

    Attributes
    ----------
    enabled : bool
        Run the narrowing loop after the first pass
    tolerance : float
        Labels scoring within this distance of the best label are retained
    iteration_cap : int, optional
        Maximum number of scoring rounds (first pass included). None derives
        the cap from the label universe size.
    """

    enabled: bool = True
    tolerance: float = 0.05
    iteration_cap: Optional[int] = None

    def validate(self) -> None:
        if not self.tolerance >= 0:
            raise ConfigError(f"Fine-tune tolerance must be >= 0, got {self.tolerance}")
        if self.iteration_cap is not None and not self.iteration_cap >= 1:
            raise ConfigError(
                f"Fine-tune iteration_cap must be >= 1, got {self.iteration_cap}"
            )

    def resolve_cap(self, n_labels: int) -> int:
        """Return the iteration cap for a label universe of ``n_labels``."""
        if self.iteration_cap is not None:
            return int(self.iteration_cap)
        return default_iteration_cap(n_labels)


@dataclass
class PruneConfig:
    """Configuration for pruning.

    Attributes
    ----------
    nmads : float
        Number of MADs below the median delta at which a record is pruned
    per_label : bool
        Compute thresholds within each assigned label instead of globally
    mad_scale : float
        Factor applied to the raw MAD (1.4826 makes it comparable to a
        standard deviation under normality)
    min_diff_med : float, optional
        Absolute floor on delta; records below it are pruned
    min_diff_next : float, optional
        Absolute floor on the best-minus-second-best gap of the final scores
    """

    nmads: float = 3.0
    per_label: bool = True
    mad_scale: float = 1.0
    min_diff_med: Optional[float] = None
    min_diff_next: Optional[float] = None

    def validate(self) -> None:
        validate_nmads(self.nmads)
        if not self.mad_scale > 0:
            raise ConfigError(f"mad_scale must be > 0, got {self.mad_scale}")
        for name in ("min_diff_med", "min_diff_next"):
            value = getattr(self, name)
            if value is not None and np.isnan(value):
                raise ConfigError(f"{name} must be a number or None, got {value}")


@dataclass
class AccelerationConfig:
    """Configuration for nearest-neighbour acceleration of first-pass scoring.

    Attributes
    ----------
    enabled : bool
        Build per-label KD-trees during training
    eps : float
        Approximate search parameter; 0 gives exact results, larger values
        trade accuracy for speed
    leafsize : int
        KD-tree leaf size
    """

    enabled: bool = False
    eps: float = 0.0
    leafsize: int = 16

    def validate(self) -> None:
        if not self.eps >= 0:
            raise ConfigError(f"Acceleration eps must be >= 0, got {self.eps}")
        if not self.leafsize >= 1:
            raise ConfigError(f"Acceleration leafsize must be >= 1, got {self.leafsize}")


@dataclass
class ParallelConfig:
    """Configuration for the per-sample worker pool.

    Attributes
    ----------
    n_workers : int
        Number of parallel workers (1 = sequential)
    backend : str
        joblib backend, "loky" (processes) or "threading"
    batch_size : int
        Query samples per worker task
    """

    n_workers: int = 1
    backend: str = "loky"
    batch_size: int = 256

    def validate(self) -> None:
        if not self.n_workers >= 1:
            raise ConfigError(f"n_workers must be >= 1, got {self.n_workers}")
        if self.backend not in PARALLEL_BACKENDS:
            raise ConfigError(
                f"Unknown parallel backend '{self.backend}' "
                f"(expected one of {PARALLEL_BACKENDS})"
            )
        if not self.batch_size >= 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")


@dataclass
class RefMatchConfig:
    """Master configuration for training, classification and pruning.

    Attributes
    ----------
    markers : MarkerConfig
        Marker derivation configuration
    scoring : ScoringConfig
        Scoring configuration
    fine_tune : FineTuneConfig
        Fine-tuning configuration
    prune : PruneConfig
        Pruning configuration
    acceleration : AccelerationConfig
        Acceleration structure configuration
    parallel : ParallelConfig
        Worker pool configuration
    """

    markers: MarkerConfig = field(default_factory=MarkerConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    fine_tune: FineTuneConfig = field(default_factory=FineTuneConfig)
    prune: PruneConfig = field(default_factory=PruneConfig)
    acceleration: AccelerationConfig = field(default_factory=AccelerationConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RefMatchConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Handle nested refmatch section
        if "refmatch" in data:
            data = data["refmatch"]

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefMatchConfig":
        """Build configuration from a (possibly partial) nested dictionary."""
        try:
            config = cls(
                markers=MarkerConfig(**data.get("markers", {})),
                scoring=ScoringConfig(**data.get("scoring", {})),
                fine_tune=FineTuneConfig(**data.get("fine_tune", {})),
                prune=PruneConfig(**data.get("prune", {})),
                acceleration=AccelerationConfig(**data.get("acceleration", {})),
                parallel=ParallelConfig(**data.get("parallel", {})),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        config.validate()
        return config

    @classmethod
    def default(cls) -> "RefMatchConfig":
        """Create default configuration."""
        return cls()

    def validate(self) -> "RefMatchConfig":
        """Validate every section, raising ConfigError on the first problem."""
        self.markers.validate()
        self.scoring.validate()
        self.fine_tune.validate()
        self.prune.validate()
        self.acceleration.validate()
        self.parallel.validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


def validate_quantile(quantile: float) -> None:
    """Raise ConfigError unless ``quantile`` lies in (0, 1]."""
    if not (0 < quantile <= 1):
        raise ConfigError(f"quantile must be in (0, 1], got {quantile}")


def validate_nmads(nmads: float) -> None:
    """Raise ConfigError unless ``nmads`` is positive."""
    if not nmads > 0:
        raise ConfigError(f"nmads must be > 0, got {nmads}")


def default_iteration_cap(n_labels: int) -> int:
    """Default number of scoring rounds allowed for ``n_labels`` labels.

    Each non-terminal round removes at least one label, so ``n_labels`` rounds
    always suffice; the log2 term keeps large universes from looping long.
    """
    n_labels = max(int(n_labels), 1)
    log_cap = int(np.ceil(np.log2(max(n_labels, 2)))) + 5
    return max(1, min(n_labels, log_cap))
