"""Unit tests for rank transforms and quantile scoring."""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import spearmanr

from celltype_refmatch.config import AccelerationConfig
from celltype_refmatch.core.scoring import (
    best_label,
    neighbors_for_quantile,
    quantile_from_top,
    quantile_score,
    rank_correlations,
    scaled_ranks,
    score,
    score_aligned,
)
from celltype_refmatch.core.training import build_training_artifact
from celltype_refmatch.errors import ConfigError, DataError


class TestScaledRanks:
    """Tests for the rank transform."""

    def test_unit_length_and_centred(self):
        ranks = scaled_ranks(np.array([3.0, 1.0, 2.0, 5.0]))
        assert ranks.sum() == pytest.approx(0.0)
        assert np.linalg.norm(ranks) == pytest.approx(1.0)

    def test_dot_product_is_spearman(self):
        rng = np.random.default_rng(3)
        x = rng.normal(size=25)
        y = x + rng.normal(scale=0.8, size=25)
        y[:5] = y[5]  # ties
        rho = float(scaled_ranks(x) @ scaled_ranks(y))
        assert rho == pytest.approx(spearmanr(x, y).correlation)

    def test_columns_ranked_independently(self):
        matrix = np.array([[1.0, 3.0], [2.0, 2.0], [3.0, 1.0]])
        ranks = scaled_ranks(matrix)
        np.testing.assert_allclose(ranks[:, 0], -ranks[:, 1])

    def test_constant_vector_is_zero(self):
        np.testing.assert_array_equal(scaled_ranks(np.full(4, 2.5)), np.zeros(4))
        corr = rank_correlations(scaled_ranks(np.full(3, 1.0)), scaled_ranks(np.eye(3)))
        np.testing.assert_array_equal(corr, np.zeros(3))


class TestQuantiles:
    """Tests for quantile helpers."""

    def test_linear_interpolation(self):
        values = np.array([0.1, 0.2, 0.3, 0.4, 0.5])
        # h = 4 * 0.8 = 3.2 -> 0.4 + 0.2 * 0.1
        assert quantile_score(values, 0.8) == pytest.approx(0.42)
        assert quantile_score(values, 1.0) == pytest.approx(0.5)

    @pytest.mark.parametrize("n", [1, 2, 5, 10, 37])
    @pytest.mark.parametrize("q", [0.01, 0.5, 0.8, 0.95, 1.0])
    def test_quantile_from_top_matches_full(self, n, q):
        rng = np.random.default_rng(n)
        values = rng.uniform(-1, 1, size=n)
        k = neighbors_for_quantile(n, q)
        top = np.sort(values)[::-1][:k]
        assert quantile_from_top(top, n, q) == pytest.approx(quantile_score(values, q))

    def test_quantile_monotonicity(self):
        rng = np.random.default_rng(11)
        weaker = rng.uniform(-0.5, 0.6, size=40)
        # Shifting every value up gives a stochastically dominating distribution
        stronger = weaker + rng.uniform(0.0, 0.3, size=40)
        previous = -np.inf
        for q in np.linspace(0.05, 1.0, 20):
            high = quantile_score(stronger, q)
            assert high >= quantile_score(weaker, q)
            assert high >= previous
            previous = high


class TestScore:
    """Tests for the scoring operation."""

    def test_two_label_scenario(self, two_label_reference):
        frame, labels, spec = two_label_reference
        artifact = build_training_artifact(frame, labels, markers=spec)
        query = pd.Series([9.0, 7.0, 1.5, 0.2], index=["g1", "g2", "g3", "g4"])
        scores = score(query, ["A", "B"], artifact.features, artifact)
        assert list(scores) == ["A", "B"]
        assert scores["A"] == pytest.approx(1.0)
        assert scores["B"] == pytest.approx(-0.6)

    def test_near_tie_first_pass(self, near_tie_reference):
        frame, labels, markers, query = near_tie_reference
        artifact = build_training_artifact(frame, labels, markers=markers)
        scores = score(query, artifact.labels, artifact.features, artifact)
        assert scores["A"] == pytest.approx(1 - 2 / 165)
        assert scores["B"] == pytest.approx(1 - 10 / 165)
        assert scores["A"] - scores["B"] < 0.05
        assert scores["C"] < 0

    def test_marker_subset(self, near_tie_reference):
        frame, labels, markers, query = near_tie_reference
        artifact = build_training_artifact(frame, labels, markers=markers)
        scores = score(query, ["B", "A"], ["a1", "a2", "b1", "b2"], artifact)
        assert list(scores) == ["A", "B"]
        assert scores["A"] == pytest.approx(0.8)
        assert scores["B"] == pytest.approx(0.0, abs=1e-12)

    def test_array_profile(self, two_label_reference):
        frame, labels, spec = two_label_reference
        artifact = build_training_artifact(frame, labels, markers=spec)
        scores = score(np.array([9.0, 7.0, 1.5, 0.2]), ["A", "B"], ["g1", "g2", "g3", "g4"], artifact)
        assert scores["A"] == pytest.approx(1.0)

    def test_quantile_applied(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        profile = query.iloc[:, 0]
        low = score(profile, ["L0"], simulated_artifact.features, simulated_artifact, quantile=0.2)
        high = score(profile, ["L0"], simulated_artifact.features, simulated_artifact, quantile=0.9)
        assert high["L0"] >= low["L0"]

    def test_invalid_quantile(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        for quantile in (0.0, 1.5):
            with pytest.raises(ConfigError):
                score(query.iloc[:, 0], ["L0"], simulated_artifact.features, simulated_artifact, quantile)

    def test_empty_marker_subset(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        with pytest.raises(ConfigError, match="empty"):
            score(query.iloc[:, 0], ["L0"], ["gene_29"], simulated_artifact)

    def test_subset_absent_from_query(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        profile = query.iloc[:, 0].drop(["gene_00", "gene_01"])
        with pytest.raises(ConfigError):
            score(profile, ["L0"], ["gene_00", "gene_01"], simulated_artifact)

    def test_unknown_label(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        with pytest.raises(ConfigError, match="not in the training artifact"):
            score(query.iloc[:, 0], ["L0", "L9"], simulated_artifact.features, simulated_artifact)

    def test_wrong_array_length(self, simulated_artifact):
        with pytest.raises(DataError):
            score(np.ones(3), ["L0"], simulated_artifact.features, simulated_artifact)

    def test_constant_query_scores_zero(self, simulated_artifact):
        profile = pd.Series(1.0, index=list(simulated_artifact.features))
        scores = score(profile, simulated_artifact.labels, simulated_artifact.features, simulated_artifact)
        assert set(scores.values()) == {0.0}

    def test_deterministic(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        profile = query.iloc[:, 3]
        first = score(profile, simulated_artifact.labels, simulated_artifact.features, simulated_artifact)
        second = score(profile, simulated_artifact.labels, simulated_artifact.features, simulated_artifact)
        assert first == second


class TestBestLabel:
    """Tests for the deterministic tie-break."""

    def test_lexicographic_on_ties(self):
        assert best_label({"beta": 0.5, "alpha": 0.5, "gamma": 0.1}) == "alpha"

    def test_max_wins(self):
        assert best_label({"alpha": 0.1, "beta": 0.7}) == "beta"


class TestAcceleratedScoring:
    """Tests for KD-tree first-pass scoring."""

    @pytest.mark.parametrize("quantile", [0.5, 0.8, 1.0])
    def test_exact_matches_brute_force(self, simulated_reference, simulated_markers,
                                       simulated_query, quantile):
        frame, labels = simulated_reference
        query, _ = simulated_query
        plain = build_training_artifact(frame, labels, markers=simulated_markers)
        indexed = build_training_artifact(
            frame, labels, markers=simulated_markers,
            acceleration=AccelerationConfig(enabled=True, eps=0.0),
        )
        values, _ = plain.align_query(query)
        for j in range(values.shape[1]):
            expected = score_aligned(values[:, j], plain.labels, plain, quantile)
            actual = score_aligned(values[:, j], indexed.labels, indexed, quantile)
            assert list(actual) == list(expected)
            np.testing.assert_allclose(
                list(actual.values()), list(expected.values()), atol=1e-9
            )

    def test_index_can_be_bypassed(self, simulated_reference, simulated_markers, simulated_query):
        frame, labels = simulated_reference
        query, _ = simulated_query
        indexed = build_training_artifact(
            frame, labels, markers=simulated_markers,
            acceleration=AccelerationConfig(enabled=True, eps=0.5),
        )
        values, _ = indexed.align_query(query)
        exact = score_aligned(values[:, 0], indexed.labels, indexed, 0.8, use_index=False)
        approx = score_aligned(values[:, 0], indexed.labels, indexed, 0.8)
        assert set(exact) == set(approx)
