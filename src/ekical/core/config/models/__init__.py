# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Typed configuration models for ekical.
"""

from pydantic import BaseModel, Field

from .base import FROZEN_CONFIG
from .inversion import InversionConfig, UnscentedConfig
from .loss import LossFunctionConfig


class CalibrationConfig(BaseModel):
    """Top-level calibration configuration."""
    model_config = FROZEN_CONFIG

    inversion: InversionConfig = Field(default_factory=InversionConfig)
    unscented: UnscentedConfig = Field(default_factory=UnscentedConfig)
    loss: LossFunctionConfig = Field(default_factory=LossFunctionConfig)


__all__ = [
    'FROZEN_CONFIG',
    'CalibrationConfig',
    'InversionConfig',
    'UnscentedConfig',
    'LossFunctionConfig',
]
