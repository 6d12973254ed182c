"""Tests for denoising configuration."""

import pytest

from asvtoolkit.denoise import ConfigurationError, DenoiseConfig, get_default_config


class TestDefaults:
    """Test default values."""

    def test_defaults(self):
        """Test default values are valid."""
        config = get_default_config()
        assert config.max_iterations == 10
        assert config.max_partition_iterations == 1000
        assert config.convergence_tolerance == 1e-4
        assert config.omega_a == 1e-40
        assert config.significance == "poisson"
        assert config.quality_bucket_count is None
        assert config.threads == 1
        assert config.problems() == []


class TestSerialization:
    """Test YAML/JSON round trips."""

    def test_yaml_round_trip(self, tmp_path):
        """Test YAML save and load."""
        config = DenoiseConfig(max_iterations=3, omega_a=1e-20, quality_bucket_count=8)
        path = tmp_path / "config.yaml"
        config.to_yaml(str(path))
        assert DenoiseConfig.from_yaml(str(path)) == config

    def test_json_round_trip(self, tmp_path):
        """Test JSON save and load."""
        config = DenoiseConfig(enforce_monotonicity=True, indel_probability=1e-3)
        path = tmp_path / "config.json"
        config.to_json(str(path))
        assert DenoiseConfig.from_json(str(path)) == config

    def test_partial_yaml(self, tmp_path):
        """Test missing keys keep their defaults."""
        path = tmp_path / "partial.yaml"
        path.write_text("max_iterations: 4\nthreads: 2\n")
        config = DenoiseConfig.from_yaml(str(path))
        assert config.max_iterations == 4
        assert config.threads == 2
        assert config.omega_a == 1e-40

    def test_unknown_key(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ConfigurationError):
            DenoiseConfig.from_dict({"max_iters": 3})


class TestValidation:
    """Test validation of tunables."""

    @pytest.mark.parametrize("changes", [
        {"max_iterations": 0},
        {"convergence_tolerance": -1.0},
        {"omega_a": 0.0},
        {"omega_a": 1.5},
        {"significance": "fisher"},
        {"quality_bucket_count": 0},
        {"pseudocount": -0.5},
        {"indel_probability": 0.0},
        {"indel_probability": 1.0},
    ])
    def test_invalid(self, changes):
        """Test out-of-range values are rejected."""
        with pytest.raises(ConfigurationError):
            DenoiseConfig.from_dict(changes)

    def test_replace_ignores_none(self):
        """Test None leaves an option unchanged."""
        config = DenoiseConfig().replace(threads=None, max_iterations=2)
        assert config.max_iterations == 2
        assert config.threads == 1

    def test_replace_validates(self):
        """Test replace validates the new config."""
        with pytest.raises(ConfigurationError):
            DenoiseConfig().replace(max_shuffles=0)
