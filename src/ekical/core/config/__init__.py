"""Configuration models and loaders for ekical."""

from .factories import ensure_typed_config, load_calibration_config
from .models import (
    CalibrationConfig,
    InversionConfig,
    LossFunctionConfig,
    UnscentedConfig,
)

__all__ = [
    "CalibrationConfig",
    "InversionConfig",
    "UnscentedConfig",
    "LossFunctionConfig",
    "ensure_typed_config",
    "load_calibration_config",
]
