"""Reference datasets: validated matrices with per-sample labels."""

from .dataset import ReferenceDataset, coerce_reference
from .repository import ReferenceRepository

__all__ = [
    "ReferenceDataset",
    "ReferenceRepository",
    "coerce_reference",
]
