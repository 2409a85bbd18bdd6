"""Unit tests for references and the training builder."""

import pickle

import numpy as np
import pandas as pd
import pytest

from celltype_refmatch.config import AccelerationConfig
from celltype_refmatch.core.markers import resolve_markers
from celltype_refmatch.core.training import (
    ReferenceDataset,
    ReferenceRepository,
    TrainingArtifact,
    build_training_artifact,
)
from celltype_refmatch.errors import ConfigError, DataError
from tests.fixtures import create_reference_adata


class TestReferenceDataset:
    """Tests for reference validation."""

    def test_from_data(self, two_label_reference):
        frame, labels, _ = two_label_reference
        dataset = ReferenceDataset.from_data(frame, labels, name="toy")
        assert dataset.n_samples == 20
        assert dataset.label_universe == ("A", "B")
        assert list(dataset.labels.index) == list(frame.columns)

    def test_series_labels_aligned_by_sample(self, two_label_reference):
        frame, labels, _ = two_label_reference
        series = pd.Series(labels, index=frame.columns)[::-1]
        dataset = ReferenceDataset.from_data(frame, series)
        assert list(dataset.labels) == list(labels)

    def test_compares_by_identity(self, two_label_reference):
        frame, labels, _ = two_label_reference
        dataset = ReferenceDataset.from_data(frame, labels)
        other = ReferenceDataset.from_data(frame, labels)
        assert dataset == dataset
        assert dataset != other
        assert {dataset: "toy"}[dataset] == "toy"

    def test_anndata_obs_column(self):
        adata = create_reference_adata()
        dataset = ReferenceDataset.from_data(adata, "cell_type")
        assert dataset.matrix.shape == (30, 36)
        assert dataset.label_universe == ("L0", "L1", "L2")

    def test_missing_label(self, two_label_reference):
        frame, labels, _ = two_label_reference
        labels = labels.astype(object)
        labels[0] = None
        with pytest.raises(DataError):
            ReferenceDataset.from_data(frame, labels)

    def test_non_finite_values(self, two_label_reference):
        frame, labels, _ = two_label_reference
        frame = frame.copy()
        frame.iloc[0, 0] = np.nan
        with pytest.raises(DataError):
            ReferenceDataset.from_data(frame, labels)


class TestReferenceRepository:
    """Tests for the explicit reference repository."""

    def test_register_and_get(self, two_label_reference):
        frame, labels, _ = two_label_reference
        repo = ReferenceRepository()
        repo.register("toy", frame, labels)
        assert "toy" in repo
        assert len(repo) == 1
        assert repo.get("toy").name == "toy"
        assert list(repo) == ["toy"]

    def test_duplicate_requires_overwrite(self, two_label_reference):
        frame, labels, _ = two_label_reference
        repo = ReferenceRepository()
        repo.register("toy", frame, labels)
        with pytest.raises(KeyError):
            repo.register("toy", frame, labels)
        repo.register("toy", frame, labels, overwrite=True)
        assert repo.names() == ["toy"]

    def test_missing(self):
        with pytest.raises(KeyError):
            ReferenceRepository().get("absent")

    def test_remove(self, two_label_reference):
        frame, labels, _ = two_label_reference
        repo = ReferenceRepository()
        repo.register("toy", frame, labels)
        repo.remove("toy")
        assert "toy" not in repo

    def test_dataset_trains(self, two_label_reference):
        frame, labels, spec = two_label_reference
        repo = ReferenceRepository()
        repo.register("toy", frame, labels)
        artifact = build_training_artifact(repo.get("toy"), markers=spec)
        assert artifact.labels == ("A", "B")


class TestBuildTrainingArtifact:
    """Tests for artifact construction."""

    def test_restricted_to_marker_union(self, simulated_reference, simulated_markers):
        frame, labels = simulated_reference
        artifact = build_training_artifact(frame, labels, markers=simulated_markers)
        assert isinstance(artifact, TrainingArtifact)
        assert artifact.n_features == 15
        assert artifact.features == tuple(sorted(artifact.markers.union()))
        assert artifact.matrix.shape == (15, 36)
        assert artifact.n_labels == 3
        assert artifact.label_size("L1") == 12

    def test_read_only(self, simulated_artifact):
        with pytest.raises(ValueError):
            simulated_artifact.matrix[0, 0] = 1.0
        with pytest.raises(ValueError):
            simulated_artifact.scaled_ranks[0, 0] = 1.0

    def test_frozen(self, simulated_artifact):
        with pytest.raises(AttributeError):
            simulated_artifact.labels = ("X",)

    def test_compares_by_identity(self, simulated_reference, simulated_markers, simulated_artifact):
        frame, labels = simulated_reference
        rebuilt = build_training_artifact(frame, labels, markers=simulated_markers)
        assert simulated_artifact == simulated_artifact
        assert simulated_artifact != rebuilt
        assert len({simulated_artifact, rebuilt, simulated_artifact}) == 2
        cache = {simulated_artifact: "first"}
        assert cache[simulated_artifact] == "first"
        assert rebuilt not in cache

    def test_accepts_resolved_markers(self, simulated_reference, simulated_markers):
        frame, labels = simulated_reference
        markers = resolve_markers(frame, labels, marker_spec=simulated_markers)
        artifact = build_training_artifact(frame, labels, markers=markers)
        assert artifact.markers == markers

    def test_derives_markers_when_omitted(self, simulated_reference):
        frame, labels = simulated_reference
        artifact = build_training_artifact(frame, labels)
        assert artifact.markers.source == "derived:classic"

    def test_label_length_mismatch(self, two_label_reference):
        frame, labels, spec = two_label_reference
        with pytest.raises(DataError, match="length"):
            build_training_artifact(frame, labels[:5], markers=spec)

    def test_label_with_zero_samples(self, two_label_reference):
        frame, labels, spec = two_label_reference
        categorical = pd.Categorical(labels, categories=["A", "B", "C"])
        with pytest.raises(DataError, match="zero reference samples"):
            build_training_artifact(frame, categorical, markers=spec)

    def test_constant_marker_within_label(self, two_label_reference):
        frame, labels, spec = two_label_reference
        frame = frame.copy()
        frame.loc["g1", labels == "A"] = 10.0
        with pytest.raises(DataError, match="constant"):
            build_training_artifact(frame, labels, markers=spec)

    def test_constant_sample(self, two_label_reference):
        frame, labels, spec = two_label_reference
        frame = frame.copy()
        frame["B_0"] = 3.0
        with pytest.raises(DataError, match="constant"):
            build_training_artifact(frame, labels, markers=spec)

    def test_missing_marker_feature(self, two_label_reference):
        frame, labels, _ = two_label_reference
        with pytest.raises(ConfigError):
            build_training_artifact(frame, labels, markers={"A": ["g1", "g9"], "B": ["g3"]})

    def test_acceleration_validated_at_build(self, two_label_reference):
        frame, labels, spec = two_label_reference
        with pytest.raises(ConfigError):
            build_training_artifact(
                frame, labels, markers=spec,
                acceleration=AccelerationConfig(enabled=True, leafsize=0),
            )

    def test_acceleration_builds_one_index_per_label(self, simulated_reference, simulated_markers):
        frame, labels = simulated_reference
        artifact = build_training_artifact(
            frame, labels, markers=simulated_markers,
            acceleration=AccelerationConfig(enabled=True),
        )
        assert artifact.has_index
        assert len(artifact.indices) == 3
        assert artifact.describe()["accelerated"] is True

    def test_pickle_round_trip(self, simulated_reference, simulated_markers):
        frame, labels = simulated_reference
        artifact = build_training_artifact(
            frame, labels, markers=simulated_markers,
            acceleration=AccelerationConfig(enabled=True),
        )
        restored = pickle.loads(pickle.dumps(artifact))
        assert restored.features == artifact.features
        assert restored.markers == artifact.markers
        np.testing.assert_array_equal(restored.scaled_ranks, artifact.scaled_ranks)


class TestAlignQuery:
    """Tests for query alignment against the artifact features."""

    def test_reorders_and_restricts(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        shuffled = query.iloc[::-1]
        values, names = simulated_artifact.align_query(shuffled)
        assert values.shape == (15, 15)
        assert names == list(query.columns)
        np.testing.assert_array_equal(
            values, query.loc[list(simulated_artifact.features)].to_numpy()
        )

    def test_missing_features(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        with pytest.raises(DataError, match="missing"):
            simulated_artifact.align_query(query.drop(index="gene_03"))

    def test_non_finite(self, simulated_artifact, simulated_query):
        query, _ = simulated_query
        query = query.copy()
        query.loc["gene_00", query.columns[0]] = np.inf
        with pytest.raises(DataError):
            simulated_artifact.align_query(query)
