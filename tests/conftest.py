"""Pytest configuration and shared fixtures for CellType-RefMatch tests."""

import sys
from pathlib import Path

import pytest
import numpy as np
import pandas as pd

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Import synthetic data generators
from tests.fixtures import (
    create_near_tie_reference,
    create_two_label_reference,
    simulate_labelled_matrix,
)


# ============================================================================
# Reference Fixtures
# ============================================================================


@pytest.fixture
def two_label_reference():
    """Labels A/B with disjoint markers: (matrix, labels, marker spec)."""
    return create_two_label_reference()


@pytest.fixture
def near_tie_reference():
    """Three labels with an A/B near tie: (matrix, labels, markers, query)."""
    return create_near_tie_reference()


@pytest.fixture
def simulated_reference():
    """Three simulated labels, 12 samples each, 30 features."""
    return simulate_labelled_matrix(n_labels=3, n_per_label=12, n_features=30, seed=0)


@pytest.fixture
def simulated_query():
    """Query drawn from the same model as ``simulated_reference``."""
    return simulate_labelled_matrix(
        n_labels=3, n_per_label=5, n_features=30, seed=7, prefix="query"
    )


@pytest.fixture
def simulated_markers() -> dict:
    """Per-label marker specification matching the simulated boost blocks."""
    return {
        f"L{i}": [f"gene_{j:02d}" for j in range(i * 5, (i + 1) * 5)]
        for i in range(3)
    }


@pytest.fixture
def simulated_artifact(simulated_reference, simulated_markers):
    """Training artifact for the simulated reference."""
    from celltype_refmatch.core.training import build_training_artifact

    frame, labels = simulated_reference
    return build_training_artifact(frame, labels, markers=simulated_markers)


# ============================================================================
# Path Fixtures
# ============================================================================


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def csv_inputs(tmp_path: Path, simulated_reference, simulated_query, simulated_markers) -> dict:
    """Reference, labels, query and marker files on disk."""
    import json

    frame, labels = simulated_reference
    query, _ = simulated_query

    reference_path = tmp_path / "reference.csv"
    frame.to_csv(reference_path)

    labels_path = tmp_path / "labels.csv"
    pd.DataFrame({"sample": frame.columns, "cell_type": labels}).to_csv(
        labels_path, index=False
    )

    query_path = tmp_path / "query.csv"
    query.to_csv(query_path)

    markers_path = tmp_path / "markers.json"
    with open(markers_path, "w") as f:
        json.dump({"_source": "test", **simulated_markers}, f)

    return {
        "reference": reference_path,
        "labels": labels_path,
        "query": query_path,
        "markers": markers_path,
    }


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_refmatch_config(tmp_path) -> Path:
    """Create sample configuration file."""
    import yaml

    config = {
        "refmatch": {
            "scoring": {"quantile": 0.9},
            "fine_tune": {"tolerance": 0.1, "iteration_cap": 4},
            "prune": {"nmads": 2.5, "per_label": False},
            "parallel": {"n_workers": 2, "backend": "threading", "batch_size": 8},
        }
    }

    config_path = tmp_path / "refmatch.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config, f)

    return config_path


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
