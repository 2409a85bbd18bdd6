"""I/O utilities for CellType-RefMatch.

Provides logging, matrix/label loading and table writing.
"""

from .logging import (
    RUN_RECORD_FILENAME,
    build_run_record,
    get_logger,
    get_timestamped_log_path,
    log_json,
    log_yaml,
)
from .matrices import (
    as_feature_frame,
    ensure_output_dir,
    load_labels,
    load_matrix,
    write_dataframe,
)

__all__ = [
    # Logging
    "RUN_RECORD_FILENAME",
    "build_run_record",
    "get_logger",
    "get_timestamped_log_path",
    "log_json",
    "log_yaml",
    # Matrices
    "as_feature_frame",
    "ensure_output_dir",
    "load_labels",
    "load_matrix",
    "write_dataframe",
]
