"""Run logging for CellType-RefMatch.

An annotation run leaves three traces in its output directory: a
timestamped text log, the effective configuration as YAML and one JSON line
per run in ``runs.jsonl`` summarising what was trained and classified.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

import yaml

if TYPE_CHECKING:
    from ..core.classification import ClassificationResult

PathLike = Union[str, Path]

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
RUN_RECORD_FILENAME = "runs.jsonl"


def get_timestamped_log_path(log_path: PathLike, when: Optional[datetime] = None) -> Path:
    """Insert a run timestamp before the suffix of ``log_path``.

    Example: annotate.log -> annotate_20251209_080530.log
    """
    log_path = Path(log_path)
    stamp = (when or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return log_path.with_name(f"{log_path.stem}_{stamp}{log_path.suffix or '.log'}")


def get_logger(
    name: str,
    log_path: PathLike,
    level: int = logging.INFO,
    timestamped: bool = True,
) -> Tuple[logging.Logger, Path]:
    """Attach a single file handler for one run to the named logger.

    Parameters
    ----------
    name : str
        Logger name, e.g. ``celltype_refmatch.annotate``.
    log_path : PathLike
        Base path of the run log.
    level : int
        Logging level (default: INFO).
    timestamped : bool
        Keep earlier runs by stamping the file name; otherwise the file is
        replaced.

    Returns
    -------
    Tuple[logging.Logger, Path]
        (logger, path of the file actually written)
    """
    path = get_timestamped_log_path(log_path) if timestamped else Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    # Handlers from a previous run in the same process point at the old file
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(path, mode="a" if timestamped else "w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
    return logger, path


def log_yaml(log_path: PathLike, record: Dict[str, Any]) -> Path:
    """Append ``record`` to ``log_path`` as one YAML document."""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        yaml.safe_dump(record, handle, sort_keys=False, explicit_start=True)
    return path


def log_json(log_path: PathLike, record: Dict[str, Any]) -> Path:
    """Append ``record`` to ``log_path`` as one JSON line."""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str))
        handle.write("\n")
    return path


def build_run_record(
    command: str,
    result: "ClassificationResult",
    config: Dict[str, Any],
    log_path: Optional[PathLike] = None,
) -> Dict[str, Any]:
    """Summarise one annotation run for ``runs.jsonl``.

    Parameters
    ----------
    command : str
        CLI command or caller name.
    result : ClassificationResult
        Output of ``RefMatchEngine.run``.
    config : dict
        Effective configuration (``RefMatchConfig.to_dict()``).
    log_path : PathLike, optional
        Text log of the run.

    Returns
    -------
    dict
        JSON-serialisable run summary.
    """
    from .. import __version__

    records = result.records
    artifact = result.artifact.describe()
    return {
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "command": command,
        "version": __version__,
        "n_query_samples": len(records),
        "n_labels": artifact["n_labels"],
        "n_reference_samples": artifact["n_samples"],
        "n_marker_features": artifact["n_features"],
        "marker_source": artifact["marker_source"],
        "accelerated": artifact["accelerated"],
        "n_pruned": int(result.pruned.sum()),
        "n_changed_by_fine_tuning": sum(1 for r in records if r.label != r.first_label),
        "n_fine_tune_capped": sum(1 for r in records if r.fine_tune_capped),
        "label_counts": {
            str(label): int(count)
            for label, count in result.predictions["label"].value_counts().sort_index().items()
        },
        "log_path": None if log_path is None else str(log_path),
        "config": config,
    }
