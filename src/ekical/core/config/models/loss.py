# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Loss function configuration model.
"""

from typing import Dict, Literal

from pydantic import BaseModel, Field, field_validator

from ekical.core.constants import FIELD_NAMES

from .base import FROZEN_CONFIG


class LossFunctionConfig(BaseModel):
    """Configuration for the profile-discrepancy loss function."""
    model_config = FROZEN_CONFIG

    profile: Literal['value', 'gradient'] = Field(default='value', alias='LOSS_PROFILE')
    gradient_weight: float = Field(
        default=1.0, alias='LOSS_GRADIENT_WEIGHT', ge=0.0,
        description='Weight of the first-difference discrepancy (gradient profile only)'
    )
    dz: float = Field(
        default=1.0, alias='LOSS_DZ', gt=0.0,
        description='Vertical grid spacing used for first differences'
    )
    variance_normalization: Literal['mean', 'max'] = Field(
        default='mean', alias='LOSS_VARIANCE_NORMALIZATION',
        description='Normalize field weights by the time-mean or the maximum vertical variance'
    )
    relative_weights: Dict[str, float] = Field(
        default_factory=lambda: {name: 1.0 for name in FIELD_NAMES},
        alias='LOSS_RELATIVE_WEIGHTS',
    )

    @field_validator('relative_weights')
    @classmethod
    def _known_fields(cls, value: Dict[str, float]) -> Dict[str, float]:
        unknown = sorted(set(value) - set(FIELD_NAMES))
        if unknown:
            raise ValueError(f"Unknown field names {unknown}; expected a subset of {FIELD_NAMES}")
        return {name: float(value.get(name, 0.0)) for name in FIELD_NAMES}
