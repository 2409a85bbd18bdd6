"""Pairwise differential testing for marker derivation.

For every ordered pair of labels ``(a, b)`` the top features that are "up"
in ``a`` relative to ``b`` are kept. Label pairs are independent and are
processed on a thread pool.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from itertools import permutations
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ...config import DE_METHODS, MarkerConfig
from ...errors import ConfigError
from .pairwise import LabelPair


@dataclass
class PairwiseDEResult:
    """Result from pairwise differential testing.

    Attributes
    ----------
    pair_markers : Dict[LabelPair, List[str]]
        Ordered label pair -> top "up" features, best first
    method : str
        Test used
    elapsed_seconds : float
        Time taken for all pairs
    """

    pair_markers: Dict[LabelPair, List[str]] = field(default_factory=dict)
    method: str = "classic"
    elapsed_seconds: float = 0.0


def _top_up_features(features: Sequence[str], stat: np.ndarray, n: int) -> List[str]:
    """Top ``n`` features with positive statistic, ties kept in feature order."""
    order = np.argsort(-stat, kind="stable")
    keep = [i for i in order if stat[i] > 0][:n]
    return [features[i] for i in keep]


class PairwiseDERunner:
    """Pairwise differential test runner.

    Parameters
    ----------
    config : MarkerConfig, optional
        Marker configuration. If None, uses defaults.
    logger : logging.Logger, optional
        Logger instance. If None, uses the module logger.

    Example
    -------
    >>> runner = PairwiseDERunner(MarkerConfig(de_n=20))
    >>> result = runner.run(matrix, labels, universe)
    >>> result.pair_markers[("B cell", "T cell")][:3]
    ['MS4A1', 'CD79A', 'CD79B']
    """

    def __init__(
        self,
        config: Optional[MarkerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or MarkerConfig()
        self.config.validate()
        self.logger = logger or logging.getLogger(__name__)

    def run(
        self,
        matrix: pd.DataFrame,
        labels: np.ndarray,
        universe: Sequence[str],
    ) -> PairwiseDEResult:
        """Derive top "up" features for every ordered label pair.

        Parameters
        ----------
        matrix : pd.DataFrame
            Features x samples reference matrix
        labels : np.ndarray
            Label per sample (strings)
        universe : Sequence[str]
            Sorted label universe

        Returns
        -------
        PairwiseDEResult
            Per-pair marker lists
        """
        method = self.config.de_method
        if method not in DE_METHODS:
            raise ConfigError(f"Unknown de_method '{method}'")

        pairs = list(permutations(universe, 2))
        self.logger.info(
            "Pairwise DE (method=%s, top_n=%d): %d labels, %d ordered pairs, %d workers",
            method,
            self.config.de_n,
            len(universe),
            len(pairs),
            self.config.n_workers,
        )
        start_time = time.time()

        if method == "classic":
            worker = self._classic_worker(matrix, labels, universe)
        else:
            worker = self._scanpy_worker(matrix, labels, method)

        pair_markers: Dict[LabelPair, List[str]] = {}
        if self.config.n_workers <= 1 or len(pairs) <= 1:
            for pair in pairs:
                pair_markers[pair] = worker(pair)
        else:
            with ThreadPoolExecutor(max_workers=self.config.n_workers) as executor:
                futures = {executor.submit(worker, pair): pair for pair in pairs}
                for future in as_completed(futures):
                    pair_markers[futures[future]] = future.result()

        elapsed = time.time() - start_time
        n_empty = sum(1 for feats in pair_markers.values() if not feats)
        self.logger.info(
            "Pairwise DE completed in %.2f sec (%d pairs without up features)",
            elapsed,
            n_empty,
        )
        return PairwiseDEResult(
            pair_markers={pair: pair_markers[pair] for pair in pairs},
            method=method,
            elapsed_seconds=elapsed,
        )

    def _classic_worker(self, matrix: pd.DataFrame, labels: np.ndarray, universe: Sequence[str]):
        """Median-difference statistic on per-label median profiles."""
        medians = matrix.T.groupby(labels, sort=True).median().T
        medians = medians.reindex(columns=list(universe))
        features = list(matrix.index)
        values = {label: medians[label].to_numpy(dtype=float) for label in universe}
        n = self.config.de_n

        def worker(pair: LabelPair) -> List[str]:
            a, b = pair
            return _top_up_features(features, values[a] - values[b], n)

        return worker

    def _scanpy_worker(self, matrix: pd.DataFrame, labels: np.ndarray, method: str):
        """scanpy ``rank_genes_groups`` of ``a`` against reference ``b``."""
        try:
            import anndata as ad
            import scanpy as sc
        except ImportError:
            raise RuntimeError(
                f"de_method='{method}' requires scanpy. Install with: pip install scanpy"
            )

        adata = ad.AnnData(
            X=matrix.T.to_numpy(dtype=np.float32),
            obs=pd.DataFrame({"label": pd.Categorical(labels)}, index=matrix.columns),
            var=pd.DataFrame(index=matrix.index),
        )
        n = self.config.de_n
        extra = {"tie_correct": True} if method == "wilcoxon" else {}

        def worker(pair: LabelPair) -> List[str]:
            a, b = pair
            mask = adata.obs["label"].isin([a, b]).to_numpy()
            # Each pair gets its own copy; rank_genes_groups writes into .uns
            sub = adata[mask].copy()
            sub.obs["label"] = sub.obs["label"].cat.remove_unused_categories()
            sc.tl.rank_genes_groups(
                sub,
                groupby="label",
                groups=[a],
                reference=b,
                method=method,
                n_genes=sub.n_vars,
                use_raw=False,
                key_added="refmatch_de",
                **extra,
            )
            df = sc.get.rank_genes_groups_df(sub, group=a, key="refmatch_de")
            df = df.dropna(subset=["names"]).sort_values("scores", ascending=False, kind="stable")
            df_up = df[df["scores"] > 0]
            return df_up.head(n)["names"].astype(str).tolist()

        return worker
