# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Inversion configuration models.

Contains InversionConfig for the ensemble Kalman inversion driver and
UnscentedConfig for the unscented process settings.
"""

from pydantic import BaseModel, Field

from ekical.core.constants import InversionDefaults

from .base import FROZEN_CONFIG


class InversionConfig(BaseModel):
    """Configuration for the inversion driver."""
    model_config = FROZEN_CONFIG

    noise_covariance: float = Field(
        default=InversionDefaults.NOISE_COVARIANCE, alias='EKI_NOISE_COVARIANCE', gt=0.0,
        description='Scalar observation noise variance (scaled identity)'
    )
    ensemble_seed: int = Field(
        default=InversionDefaults.ENSEMBLE_SEED, alias='EKI_ENSEMBLE_SEED', ge=0,
        description='Seed for the initial ensemble and the update perturbations'
    )
    show_progress: bool = Field(default=False, alias='EKI_SHOW_PROGRESS')
    suppress_warnings: bool = Field(
        default=True, alias='EKI_SUPPRESS_WARNINGS',
        description='Silence incidental numerical warnings while iterating'
    )


class UnscentedConfig(BaseModel):
    """Configuration for unscented Kalman inversion."""
    model_config = FROZEN_CONFIG

    alpha_reg: float = Field(
        default=InversionDefaults.ALPHA_REG, alias='UKI_ALPHA_REG', gt=0.0, le=1.0,
        description='Regularization toward the prior mean (1.0 = none)'
    )
    update_freq: int = Field(
        default=InversionDefaults.UPDATE_FREQ, alias='UKI_UPDATE_FREQ', ge=0,
        description='0 = sensitivity only; >0 = posterior covariance approximation'
    )
    obs_noise_scale: float = Field(
        default=InversionDefaults.OBS_NOISE_SCALE, alias='UKI_OBS_NOISE_SCALE', gt=0.0
    )
