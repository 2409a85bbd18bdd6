"""Command-line interface for CellType-RefMatch.

Provides CLI commands for marker derivation and annotation.

Example Usage
-------------
    # From command line:
    celltype-refmatch --help
    celltype-refmatch markers -r ref.csv -l ref_labels.csv -o markers.json
    celltype-refmatch annotate -r ref.csv -l ref_labels.csv -q query.csv -o out/
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
