"""Marker specification resolution.

Accepts the three specification shapes and resolves them eagerly into one
``PairwiseMarkers``:

- flat: an iterable of features used for every label pair
- per-label: ``{label: [features]}``; slot ``(a, b)`` reuses ``a``'s set
- pairwise: ``{(a, b): [features]}`` or ``{a: {b: [features]}}``

Without a specification, markers are derived by pairwise differential
testing, which yields the most informative (pairwise) form.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from ...config import MarkerConfig
from ...errors import ConfigError
from ..reference import coerce_reference
from .de import PairwiseDERunner
from .pairwise import LabelPair, PairwiseMarkers


def _as_feature_list(value: Any, where: str) -> List[str]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ConfigError(f"Markers for {where} must be a list of features, got {value!r}")
    return [str(v) for v in value]


def _classify_spec(spec: Any) -> str:
    """Return "flat", "per_label" or "pairwise" for a raw specification."""
    if isinstance(spec, PairwiseMarkers):
        return "canonical"
    if isinstance(spec, str):
        raise ConfigError(
            "Marker specification must be a collection of features or a mapping, not a string"
        )
    if isinstance(spec, Mapping):
        keys = [k for k in spec.keys() if not (isinstance(k, str) and k.startswith("_"))]
        if not keys:
            raise ConfigError("Marker specification mapping is empty")
        tuple_keys = [isinstance(k, tuple) for k in keys]
        if all(tuple_keys):
            return "pairwise"
        if any(tuple_keys):
            raise ConfigError("Marker specification mixes pair keys and label keys")
        nested = [isinstance(spec[k], Mapping) for k in keys]
        if all(nested):
            return "pairwise"
        if any(nested):
            raise ConfigError("Marker specification mixes nested and flat label entries")
        return "per_label"
    if isinstance(spec, Iterable):
        return "flat"
    raise ConfigError(f"Unsupported marker specification type: {type(spec).__name__}")


def _pairs_from_spec(
    spec: Mapping,
    universe: Sequence[str],
    logger: logging.Logger,
) -> Dict[LabelPair, List[str]]:
    """Collect pairwise slots from tuple-keyed or nested mappings."""
    known = set(universe)
    pairs: Dict[LabelPair, List[str]] = {}
    ignored: List[str] = []
    entries = {
        k: v for k, v in spec.items() if not (isinstance(k, str) and k.startswith("_"))
    }

    if all(isinstance(k, tuple) for k in entries):
        items = []
        for key, feats in entries.items():
            if len(key) != 2:
                raise ConfigError(f"Pairwise marker key must be (label, label), got {key!r}")
            items.append((str(key[0]), str(key[1]), feats))
    else:
        items = [
            (str(a), str(b), feats)
            for a, inner in entries.items()
            for b, feats in inner.items()
        ]

    for a, b, feats in items:
        if a not in known or b not in known:
            ignored.append(f"{a}|{b}")
            continue
        if a == b:
            ignored.append(f"{a}|{b}")
            continue
        pairs[(a, b)] = _as_feature_list(feats, f"pair ({a}, {b})")

    if ignored:
        logger.warning(
            "Ignoring %d pairwise marker entries for unknown or identical labels: %s",
            len(ignored),
            ignored[:10],
        )
    return pairs


def _validate_features(
    markers: PairwiseMarkers,
    available: Sequence[str],
) -> None:
    known = set(available)
    missing = sorted(markers.union() - known)
    if missing:
        raise ConfigError(
            f"{len(missing)} marker features are absent from the reference: {missing[:10]}"
        )
    without = markers.labels_without_markers()
    if without:
        raise ConfigError(f"Labels without markers after resolution: {without}")


def resolve_marker_spec(
    spec: Any,
    universe: Sequence[str],
    available_features: Sequence[str],
    logger: Optional[logging.Logger] = None,
) -> PairwiseMarkers:
    """Resolve an explicit marker specification against a label universe.

    Args:
        spec: Flat iterable, per-label mapping, pairwise mapping or an
            existing PairwiseMarkers
        universe: Sorted label universe
        available_features: Features the markers must come from
        logger: Optional logger instance

    Returns:
        Canonical PairwiseMarkers over ``universe``

    Raises:
        ConfigError: If the shape is not recognised, a feature is not
            available, or a label ends up without markers.
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    universe = tuple(sorted(str(label) for label in universe))
    shape = _classify_spec(spec)

    if shape == "canonical":
        if tuple(spec.labels) != universe:
            raise ConfigError(
                f"Marker map labels {list(spec.labels)} do not match the reference labels {list(universe)}"
            )
        markers = spec
    elif shape == "flat":
        features = _as_feature_list(spec, "the flat marker set")
        markers = PairwiseMarkers.from_label_sets(
            {label: features for label in universe}, source="flat"
        )
    elif shape == "per_label":
        spec_labels = {str(k) for k in spec.keys() if not (isinstance(k, str) and k.startswith("_"))}
        extra = sorted(spec_labels - set(universe))
        if extra:
            logger.warning("Ignoring markers for labels absent from the reference: %s", extra)
        lookup = {str(k): v for k, v in spec.items()}
        sets = {
            label: _as_feature_list(lookup.get(label, []), f"label '{label}'")
            for label in universe
        }
        markers = PairwiseMarkers.from_label_sets(sets, source="per_label")
    else:
        pairs = _pairs_from_spec(spec, universe, logger)
        markers = PairwiseMarkers.from_pairs(universe, pairs, source="pairwise")

    _validate_features(markers, available_features)
    logger.info(
        "Resolved %s marker specification: %d labels, %d pairs, %d unique features",
        markers.source,
        len(markers.labels),
        markers.n_pairs,
        len(markers.union()),
    )
    return markers


def resolve_markers(
    reference: Any,
    labels: Any = None,
    marker_spec: Any = None,
    config: Optional[MarkerConfig] = None,
    restrict: Optional[Iterable[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> PairwiseMarkers:
    """Resolve or derive the canonical pairwise marker map for a reference.

    Args:
        reference: ReferenceDataset, DataFrame (features x samples), AnnData
            or array
        labels: Per-sample labels (optional for ReferenceDataset)
        marker_spec: Explicit specification; None derives markers by
            pairwise differential testing
        config: Marker derivation configuration
        restrict: Optional feature subset (e.g. the query's features) that
            markers must come from
        logger: Optional logger instance

    Returns:
        Canonical PairwiseMarkers

    Raises:
        ConfigError: If a requested feature is absent or a label has no markers
        DataError: If the reference or labels are invalid
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    config = config or MarkerConfig()
    config.validate()

    frame, label_array, universe = coerce_reference(reference, labels)

    if restrict is not None:
        keep = set(str(f) for f in restrict)
        n_before = frame.shape[0]
        frame = frame.loc[[f for f in frame.index if f in keep]]
        logger.info(
            "Restricted reference to %d/%d features shared with the restriction set",
            frame.shape[0],
            n_before,
        )

    if marker_spec is not None:
        return resolve_marker_spec(marker_spec, universe, list(frame.index), logger=logger)

    if len(universe) < 2:
        raise ConfigError(
            "Markers cannot be derived for a single-label reference; pass a marker specification"
        )

    runner = PairwiseDERunner(config, logger)
    result = runner.run(frame, label_array, universe)
    markers = PairwiseMarkers.from_pairs(
        universe, result.pair_markers, source=f"derived:{result.method}"
    )
    _validate_features(markers, list(frame.index))
    logger.info(
        "Derived pairwise markers: %d labels, %d unique features",
        len(universe),
        len(markers.union()),
    )
    return markers


def load_marker_spec(path: Union[str, Path]) -> Any:
    """Read a marker specification from a JSON or YAML file.

    A list is a flat specification, ``{label: [..]}`` is per-label and
    ``{label: {label: [..]}}`` is pairwise. Top-level keys starting with
    ``_`` are treated as metadata and dropped.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Marker specification not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot parse marker specification {path}: {e}") from e

    if isinstance(data, dict):
        data = {k: v for k, v in data.items() if not str(k).startswith("_")}
    if data is None or (isinstance(data, (dict, list)) and not data):
        raise ConfigError(f"Marker specification {path} is empty")
    return data


def write_marker_map(markers: PairwiseMarkers, path: Union[str, Path]) -> Path:
    """Write a pairwise marker map as nested JSON (or YAML by suffix)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    nested = markers.to_nested()
    with open(path, "w", encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(nested, f, sort_keys=True)
        else:
            json.dump(nested, f, indent=2, sort_keys=True)
    return path
