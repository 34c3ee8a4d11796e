# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
ekical - Ensemble Kalman Inversion for CALibration

Calibrates parameters of column simulations against observed time series
with ensemble and unscented Kalman inversion.
"""

__version__ = "0.1.0"

from .inversion import (
    ConstrainedNormal,
    EnsembleKalmanInversion,
    FreeParameters,
    LogNormal,
    Normal,
    ensemble_kalman_inversion,
    unscented_kalman_inversion,
    unscented_kalman_inversion_postprocess,
)
from .losses import ColumnTimeSeries, LossFunction

__all__ = [
    "__version__",
    "LogNormal",
    "Normal",
    "ConstrainedNormal",
    "FreeParameters",
    "EnsembleKalmanInversion",
    "ensemble_kalman_inversion",
    "unscented_kalman_inversion",
    "unscented_kalman_inversion_postprocess",
    "ColumnTimeSeries",
    "LossFunction",
]
