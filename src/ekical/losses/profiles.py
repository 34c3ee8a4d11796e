# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Profile discrepancy analyses.

Both analyses take model and data fields shaped (n_ensemble, n_cases, n_z)
and reduce the squared residual over the column to (n_ensemble, n_cases).
"""

from typing import Callable, List, Optional, Sequence

import numpy as np

from ekical.core.config import LossFunctionConfig
from ekical.core.exceptions import ConfigurationError

from .observations import ColumnTimeSeries

Analysis = Callable[[np.ndarray], np.ndarray]


def column_mean(discrepancy: np.ndarray) -> np.ndarray:
    """Mean over the vertical (last) axis."""
    return np.mean(discrepancy, axis=-1)


def time_mean(data: np.ndarray) -> np.ndarray:
    """Mean over the time (last) axis of an (n_ensemble, n_times) series."""
    return np.mean(data, axis=-1)


class ValueProfileAnalysis:
    """Mean squared residual of field values over the column."""

    def __init__(self, analysis: Analysis = column_mean):
        self.analysis = analysis

    def discrepancy(self, model_field: np.ndarray, data_field: np.ndarray) -> np.ndarray:
        return self.analysis((data_field - model_field) ** 2)

    def __repr__(self) -> str:
        return "ValueProfileAnalysis()"


class GradientProfileAnalysis:
    """Value discrepancy plus a weighted discrepancy of vertical gradients.

    Gradients are first differences divided by ``dz``; they live on the
    interior cell faces, so the boundary points are excluded.
    """

    def __init__(self, gradient_weight: float = 1.0, dz: float = 1.0, analysis: Analysis = column_mean):
        self.gradient_weight = gradient_weight
        self.dz = dz
        self.analysis = analysis

    def discrepancy(self, model_field: np.ndarray, data_field: np.ndarray) -> np.ndarray:
        value = self.analysis((data_field - model_field) ** 2)
        gradient_residual = (np.diff(data_field, axis=-1) - np.diff(model_field, axis=-1)) / self.dz
        return value + self.gradient_weight * self.analysis(gradient_residual ** 2)

    def __repr__(self) -> str:
        return f"GradientProfileAnalysis(gradient_weight={self.gradient_weight}, dz={self.dz})"


ProfileAnalysis = (ValueProfileAnalysis, GradientProfileAnalysis)


def profile_from_config(config: Optional[LossFunctionConfig] = None):
    """Instantiate the profile analysis selected by ``config.profile``."""
    config = config or LossFunctionConfig()
    if config.profile == 'gradient':
        return GradientProfileAnalysis(gradient_weight=config.gradient_weight, dz=config.dz)
    return ValueProfileAnalysis()


def estimate_weights(
    profile,
    data: ColumnTimeSeries,
    relative_weights: Sequence[float],
    normalization: str = 'mean',
) -> List[float]:
    """Per-field weights for one scenario.

    Each relevant field is normalized by its vertical variance so that fields
    of different magnitude contribute comparably, then scaled by its relative
    weight. ``normalization`` selects the time-mean (``'mean'``) or the
    largest (``'max'``) vertical variance. Constant fields (zero variance)
    are not normalized.
    """
    variance_of = {'mean': data.mean_variance, 'max': data.max_variance}
    if normalization not in variance_of:
        raise ConfigurationError(
            f"Unknown variance normalization '{normalization}'; expected one of {sorted(variance_of)}"
        )

    weights = []
    for field_name, relative_weight in zip(data.relevant_fields, relative_weights):
        variance = variance_of[normalization](field_name)
        scale = 1.0 / variance if variance > 0 else 1.0
        weights.append(float(relative_weight) * scale)
    return weights
