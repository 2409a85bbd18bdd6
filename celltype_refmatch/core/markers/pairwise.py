"""Canonical pairwise marker map.

Every marker specification is resolved into a ``PairwiseMarkers`` before
training, so scoring never branches on the shape the caller supplied.
Slot ``(a, b)`` holds the features that are "up" in label ``a`` relative to
label ``b``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import permutations
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple

LabelPair = Tuple[str, str]


@dataclass(frozen=True)
class PairwiseMarkers:
    """Immutable pairwise marker map over a fixed label universe.

    Attributes:
        labels: Sorted label universe
        pairs: Ordered label pair -> marker features (missing pairs are empty)
        label_sets: Label -> all of that label's own markers
        source: How the map was obtained ("flat", "per_label", "pairwise",
            "derived:<method>")
    """

    labels: Tuple[str, ...]
    pairs: Mapping[LabelPair, FrozenSet[str]]
    label_sets: Mapping[str, FrozenSet[str]]
    source: str = "pairwise"
    _union: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pairs", MappingProxyType(dict(self.pairs)))
        object.__setattr__(self, "label_sets", MappingProxyType(dict(self.label_sets)))
        union: set = set()
        for features in self.label_sets.values():
            union.update(features)
        for features in self.pairs.values():
            union.update(features)
        object.__setattr__(self, "_union", frozenset(union))

    def __reduce__(self):
        # mappingproxy cannot be pickled; rebuild from plain dicts in workers
        return (
            self.__class__,
            (self.labels, dict(self.pairs), dict(self.label_sets), self.source),
        )

    @classmethod
    def from_pairs(
        cls,
        labels: Iterable[str],
        pairs: Mapping[LabelPair, Iterable[str]],
        source: str = "pairwise",
    ) -> "PairwiseMarkers":
        """Build from ordered pair slots; label sets are the union of a label's slots."""
        universe = tuple(sorted(str(label) for label in labels))
        frozen: Dict[LabelPair, FrozenSet[str]] = {}
        for a, b in permutations(universe, 2):
            frozen[(a, b)] = frozenset(str(f) for f in pairs.get((a, b), ()))
        label_sets = {
            a: frozenset().union(*(frozen[(a, b)] for b in universe if b != a))
            for a in universe
        }
        return cls(labels=universe, pairs=frozen, label_sets=label_sets, source=source)

    @classmethod
    def from_label_sets(
        cls,
        label_sets: Mapping[str, Iterable[str]],
        source: str = "per_label",
    ) -> "PairwiseMarkers":
        """Expand per-label sets: slot ``(a, b)`` reuses ``a``'s full set."""
        sets = {str(a): frozenset(str(f) for f in feats) for a, feats in label_sets.items()}
        universe = tuple(sorted(sets))
        pairs = {(a, b): sets[a] for a, b in permutations(universe, 2)}
        return cls(labels=universe, pairs=pairs, label_sets=sets, source=source)

    def get(self, a: str, b: str) -> FrozenSet[str]:
        return self.pairs.get((a, b), frozenset())

    def label_markers(self, label: str) -> FrozenSet[str]:
        return self.label_sets.get(label, frozenset())

    def for_labels(self, labels: Iterable[str]) -> FrozenSet[str]:
        """Union of pairwise markers over every ordered pair within ``labels``.

        A single label falls back to that label's own markers.
        """
        selected = list(dict.fromkeys(labels))
        if len(selected) == 1:
            return self.label_markers(selected[0])
        out: set = set()
        for a, b in permutations(selected, 2):
            out.update(self.get(a, b))
        return frozenset(out)

    def union(self) -> FrozenSet[str]:
        return self._union

    @property
    def n_pairs(self) -> int:
        return len(self.pairs)

    def labels_without_markers(self) -> List[str]:
        return [label for label in self.labels if not self.label_sets.get(label)]

    def to_nested(self) -> Dict[str, Dict[str, List[str]]]:
        """JSON/YAML friendly ``{a: {b: [features]}}`` form."""
        nested: Dict[str, Dict[str, List[str]]] = {}
        for a in self.labels:
            nested[a] = {b: sorted(self.get(a, b)) for b in self.labels if b != a}
        return nested
