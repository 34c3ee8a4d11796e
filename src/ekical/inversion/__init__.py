# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Ensemble and unscented Kalman inversion.

Provides the parameter transform layer, the observation noise covariance
builder, the ensemble-process implementations and the inversion driver.
"""

from .distribution import ParameterDistribution, construct_initial_ensemble
from .driver import (
    EnsembleKalmanInversion,
    ensemble_kalman_inversion,
    unscented_kalman_inversion,
    unscented_kalman_inversion_postprocess,
)
from .noise import construct_noise_covariance
from .priors import (
    ConstrainedNormal,
    LogNormal,
    Normal,
    Prior,
    convert_prior,
    forward_parameter_transform,
    inverse_covariance_transform,
    inverse_parameter_transform,
    lognormal_with_mean_std,
)
from .problem import CallableInverseProblem, FreeParameters, InverseProblem, LossMinimizationProblem
from .process import EnsembleKalmanProcess, Inversion, Unscented
from .summary import IterationSummary, mean_square_error_history

__all__ = [
    "LogNormal",
    "Normal",
    "ConstrainedNormal",
    "Prior",
    "convert_prior",
    "forward_parameter_transform",
    "inverse_parameter_transform",
    "inverse_covariance_transform",
    "lognormal_with_mean_std",
    "construct_noise_covariance",
    "ParameterDistribution",
    "construct_initial_ensemble",
    "EnsembleKalmanProcess",
    "Inversion",
    "Unscented",
    "IterationSummary",
    "mean_square_error_history",
    "FreeParameters",
    "InverseProblem",
    "CallableInverseProblem",
    "LossMinimizationProblem",
    "EnsembleKalmanInversion",
    "ensemble_kalman_inversion",
    "unscented_kalman_inversion",
    "unscented_kalman_inversion_postprocess",
]
