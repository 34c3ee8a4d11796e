"""
Unit tests for configuration models and factory functions.

Covers the typed models, flat/nested dict coercion in
``ensure_typed_config`` and YAML loading in ``load_calibration_config``.
"""

import pytest

from ekical.core.config import (
    CalibrationConfig,
    InversionConfig,
    LossFunctionConfig,
    UnscentedConfig,
    ensure_typed_config,
    load_calibration_config,
)
from ekical.core.exceptions import ConfigurationError


class TestModelDefaults:

    def test_inversion_defaults(self):
        config = InversionConfig()
        assert config.noise_covariance == pytest.approx(1e-2)
        assert config.ensemble_seed == 41
        assert config.show_progress is False
        assert config.suppress_warnings is True

    def test_unscented_defaults(self):
        config = UnscentedConfig()
        assert config.alpha_reg == 1.0
        assert config.update_freq == 0
        assert config.obs_noise_scale == 2.0

    def test_loss_defaults(self):
        config = LossFunctionConfig()
        assert config.profile == 'value'
        assert config.variance_normalization == 'mean'
        assert config.relative_weights == {'u': 1.0, 'v': 1.0, 'b': 1.0, 'e': 1.0}

    def test_alias_and_field_name(self):
        by_alias = InversionConfig(EKI_ENSEMBLE_SEED=7)
        by_name = InversionConfig(ensemble_seed=7)
        assert by_alias.ensemble_seed == by_name.ensemble_seed == 7

    def test_frozen(self):
        config = InversionConfig()
        with pytest.raises(Exception):
            config.ensemble_seed = 3

    def test_alpha_reg_bounds(self):
        with pytest.raises(Exception):
            UnscentedConfig(alpha_reg=0.0)
        with pytest.raises(Exception):
            UnscentedConfig(alpha_reg=1.5)

    def test_relative_weights_fill_missing_fields(self):
        config = LossFunctionConfig(relative_weights={'u': 2.0})
        assert config.relative_weights == {'u': 2.0, 'v': 0.0, 'b': 0.0, 'e': 0.0}

    def test_relative_weights_reject_unknown_field(self):
        with pytest.raises(Exception, match="Unknown field"):
            LossFunctionConfig(relative_weights={'salinity': 1.0})

    def test_variance_normalization(self):
        assert LossFunctionConfig(LOSS_VARIANCE_NORMALIZATION='max').variance_normalization == 'max'
        with pytest.raises(Exception):
            LossFunctionConfig(variance_normalization='median')


class TestEnsureTypedConfig:

    def test_none_gives_defaults(self):
        config = ensure_typed_config()
        assert isinstance(config, CalibrationConfig)
        assert config.inversion.ensemble_seed == 41

    def test_passthrough(self):
        config = CalibrationConfig()
        assert ensure_typed_config(config) is config

    def test_flat_keys_grouped_by_prefix(self):
        config = ensure_typed_config({
            'EKI_NOISE_COVARIANCE': 0.5,
            'UKI_ALPHA_REG': 0.8,
            'LOSS_PROFILE': 'gradient',
        })
        assert config.inversion.noise_covariance == 0.5
        assert config.unscented.alpha_reg == 0.8
        assert config.loss.profile == 'gradient'

    def test_nested_sections(self):
        config = ensure_typed_config({'inversion': {'ensemble_seed': 3}, 'unscented': {'update_freq': 2}})
        assert config.inversion.ensemble_seed == 3
        assert config.unscented.update_freq == 2

    def test_unknown_flat_key_warns(self, caplog):
        ensure_typed_config({'EKI_ENSEMBLE_SEED': 1, 'DOMAIN_NAME': 'x'})
        assert "DOMAIN_NAME" in caplog.text

    def test_invalid_value_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid calibration configuration"):
            ensure_typed_config({'EKI_NOISE_COVARIANCE': -1.0})


class TestLoadCalibrationConfig:

    def test_load_flat_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("EKI_ENSEMBLE_SEED: 5\nLOSS_DZ: 0.25\n")

        config = load_calibration_config(path)
        assert config.inversion.ensemble_seed == 5
        assert config.loss.dz == 0.25

    def test_load_nested_yaml_with_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("inversion:\n  ensemble_seed: 5\n")

        config = load_calibration_config(path, overrides={'EKI_SHOW_PROGRESS': True})
        assert config.inversion.ensemble_seed == 5
        assert config.inversion.show_progress is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_calibration_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("inversion: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Could not parse"):
            load_calibration_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_calibration_config(path)
