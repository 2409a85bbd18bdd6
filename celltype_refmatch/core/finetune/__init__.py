"""Fine-tuning module: bounded label narrowing per query sample."""

from .tuner import (
    DISABLED,
    FIXED_POINT,
    ITERATION_CAP,
    NO_MARKERS,
    SINGLETON,
    FineTuneResult,
    fine_tune,
    retain_within_tolerance,
)

__all__ = [
    "FineTuneResult",
    "fine_tune",
    "retain_within_tolerance",
    "SINGLETON",
    "FIXED_POINT",
    "ITERATION_CAP",
    "NO_MARKERS",
    "DISABLED",
]
