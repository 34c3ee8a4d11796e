"""
Factory functions for creating ekical configurations.

Configurations can be written either nested (``inversion:``, ``unscented:``
and ``loss:`` sections with field names) or flat (upper-case aliases such as
``EKI_NOISE_COVARIANCE``), mirroring how calibration YAML files are usually
hand-written.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ekical.core.exceptions import ConfigurationError

from .models import CalibrationConfig

logger = logging.getLogger(__name__)

_SECTION_PREFIXES = {
    'inversion': 'EKI_',
    'unscented': 'UKI_',
    'loss': 'LOSS_',
}


def _is_nested_config(config: Dict[str, Any]) -> bool:
    """Nested configs use lower-case section keys."""
    return bool(set(_SECTION_PREFIXES) & {k.lower() for k in config})


def _nest_flat_config(flat: Dict[str, Any]) -> Dict[str, Any]:
    """Group flat upper-case keys into sections by prefix."""
    nested: Dict[str, Dict[str, Any]] = {section: {} for section in _SECTION_PREFIXES}
    for key, value in flat.items():
        for section, prefix in _SECTION_PREFIXES.items():
            if key.upper().startswith(prefix):
                nested[section][key.upper()] = value
                break
        else:
            logger.warning(f"Ignoring unrecognized configuration key '{key}'")
    return nested


def ensure_typed_config(
    config: Optional[Union[Dict[str, Any], CalibrationConfig]] = None,
) -> CalibrationConfig:
    """
    Ensure configuration is a CalibrationConfig instance.

    Args:
        config: Configuration as dict, CalibrationConfig, or None for defaults

    Returns:
        CalibrationConfig instance

    Raises:
        ConfigurationError: If the values fail validation
    """
    if isinstance(config, CalibrationConfig):
        return config
    raw = dict(config or {})
    if raw and not _is_nested_config(raw):
        raw = _nest_flat_config(raw)
    else:
        raw = {k.lower(): v for k, v in raw.items()}
    try:
        return CalibrationConfig(**raw)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid calibration configuration: {e}") from e


def load_calibration_config(
    path: Union[str, Path],
    overrides: Optional[Dict[str, Any]] = None,
) -> CalibrationConfig:
    """
    Load a calibration configuration from a YAML file.

    Args:
        path: Path to the YAML file
        overrides: Optional flat or nested values applied on top of the file

    Returns:
        Validated CalibrationConfig

    Raises:
        ConfigurationError: If the file is missing, unreadable, or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse configuration file {path}: {e}") from e

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    if not _is_nested_config(loaded):
        loaded = _nest_flat_config(loaded)
    if overrides:
        extra = overrides if _is_nested_config(overrides) else _nest_flat_config(overrides)
        for section, values in extra.items():
            loaded.setdefault(section.lower(), {}).update(values)

    logger.debug(f"Loaded calibration configuration from {path}")
    return ensure_typed_config(loaded)
