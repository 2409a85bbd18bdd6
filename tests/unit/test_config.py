"""Unit tests for configuration classes."""

import pytest
import yaml

from celltype_refmatch.config import (
    AccelerationConfig,
    FineTuneConfig,
    MarkerConfig,
    ParallelConfig,
    PruneConfig,
    RefMatchConfig,
    ScoringConfig,
    default_iteration_cap,
)
from celltype_refmatch.errors import ConfigError, RefMatchError


class TestDefaults:
    """Tests for default configuration values."""

    def test_scoring_defaults(self):
        assert ScoringConfig().quantile == 0.8

    def test_fine_tune_defaults(self):
        config = FineTuneConfig()
        assert config.enabled is True
        assert config.tolerance == 0.05
        assert config.iteration_cap is None

    def test_prune_defaults(self):
        config = PruneConfig()
        assert config.nmads == 3.0
        assert config.per_label is True
        assert config.mad_scale == 1.0
        assert config.min_diff_med is None
        assert config.min_diff_next is None

    def test_acceleration_off_by_default(self):
        config = AccelerationConfig()
        assert config.enabled is False
        assert config.eps == 0

    def test_marker_defaults(self):
        config = MarkerConfig()
        assert config.de_method == "classic"
        assert config.de_n == 10

    def test_parallel_defaults(self):
        config = ParallelConfig()
        assert config.n_workers == 1
        assert config.backend == "loky"


class TestValidation:
    """Tests for ConfigError on invalid values."""

    @pytest.mark.parametrize("quantile", [0.0, -0.1, 1.01, float("nan")])
    def test_invalid_quantile(self, quantile):
        with pytest.raises(ConfigError):
            ScoringConfig(quantile=quantile).validate()

    def test_quantile_one_allowed(self):
        ScoringConfig(quantile=1.0).validate()

    @pytest.mark.parametrize("nmads", [0, -1.0, float("nan")])
    def test_invalid_nmads(self, nmads):
        with pytest.raises(ConfigError):
            PruneConfig(nmads=nmads).validate()

    def test_negative_tolerance(self):
        with pytest.raises(ConfigError):
            FineTuneConfig(tolerance=-0.01).validate()

    def test_nan_tolerance(self):
        with pytest.raises(ConfigError, match="tolerance"):
            FineTuneConfig(tolerance=float("nan")).validate()

    def test_infinite_tolerance_allowed(self):
        FineTuneConfig(tolerance=float("inf")).validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"mad_scale": float("nan")},
            {"min_diff_med": float("nan")},
            {"min_diff_next": float("nan")},
        ],
    )
    def test_nan_prune_settings(self, kwargs):
        with pytest.raises(ConfigError):
            PruneConfig(**kwargs).validate()

    def test_nan_eps(self):
        with pytest.raises(ConfigError):
            AccelerationConfig(enabled=True, eps=float("nan")).validate()

    def test_invalid_iteration_cap(self):
        with pytest.raises(ConfigError):
            FineTuneConfig(iteration_cap=0).validate()

    def test_negative_eps(self):
        with pytest.raises(ConfigError):
            AccelerationConfig(enabled=True, eps=-1.0).validate()

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            ParallelConfig(backend="dask").validate()

    def test_unknown_de_method(self):
        with pytest.raises(ConfigError):
            MarkerConfig(de_method="limma").validate()

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            ScoringConfig(quantile=2.0).validate()
        assert issubclass(ConfigError, RefMatchError)


class TestIterationCap:
    """Tests for the derived fine-tuning iteration cap."""

    def test_single_label(self):
        assert default_iteration_cap(1) == 1

    def test_small_universe_bounded_by_size(self):
        assert default_iteration_cap(3) == 3

    def test_large_universe_uses_log2(self):
        assert default_iteration_cap(12) == 9
        assert default_iteration_cap(1000) == 15

    def test_explicit_cap_wins(self):
        assert FineTuneConfig(iteration_cap=2).resolve_cap(50) == 2


class TestRefMatchConfig:
    """Tests for master configuration loading."""

    def test_from_yaml(self, sample_refmatch_config):
        config = RefMatchConfig.from_yaml(sample_refmatch_config)
        assert config.scoring.quantile == 0.9
        assert config.fine_tune.tolerance == 0.1
        assert config.fine_tune.iteration_cap == 4
        assert config.prune.per_label is False
        assert config.parallel.backend == "threading"
        # Untouched sections keep defaults
        assert config.acceleration.enabled is False

    def test_from_yaml_without_section(self, tmp_path):
        path = tmp_path / "flat.yaml"
        path.write_text(yaml.safe_dump({"scoring": {"quantile": 0.5}}))
        assert RefMatchConfig.from_yaml(path).scoring.quantile == 0.5

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert RefMatchConfig.from_yaml(path) == RefMatchConfig()

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            RefMatchConfig.from_dict({"scoring": {"quantiles": 0.5}})

    def test_invalid_value_in_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"prune": {"nmads": 0}}))
        with pytest.raises(ConfigError):
            RefMatchConfig.from_yaml(path)

    def test_nan_tolerance_in_yaml(self, tmp_path):
        path = tmp_path / "nan.yaml"
        path.write_text("fine_tune:\n  tolerance: .nan\n")
        with pytest.raises(ConfigError, match="tolerance"):
            RefMatchConfig.from_yaml(path)

    def test_dict_round_trip(self, sample_refmatch_config):
        config = RefMatchConfig.from_yaml(sample_refmatch_config)
        assert RefMatchConfig.from_dict(config.to_dict()) == config

    def test_default(self):
        assert RefMatchConfig.default() == RefMatchConfig()
