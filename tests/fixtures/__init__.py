"""Test fixtures for CellType-RefMatch.

Provides synthetic reference/query generators and test utilities.
"""

from .references import (
    NEAR_TIE_FEATURES,
    create_near_tie_reference,
    create_rank_profile_reference,
    create_reference_adata,
    create_two_label_reference,
    simulate_labelled_matrix,
)

__all__ = [
    "NEAR_TIE_FEATURES",
    "create_near_tie_reference",
    "create_rank_profile_reference",
    "create_reference_adata",
    "create_two_label_reference",
    "simulate_labelled_matrix",
]
