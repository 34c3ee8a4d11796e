# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Observation noise covariance construction.
"""

import numbers
from typing import Union

import numpy as np

from ekical.core.exceptions import ConfigurationError

# relative tolerance on negative eigenvalues of a matrix noise covariance
_PSD_RTOL = 1e-10


def construct_noise_covariance(
    noise_covariance: Union[float, np.ndarray],
    observations: np.ndarray,
) -> np.ndarray:
    """Build the observation noise covariance for ``observations``.

    A matrix is passed through unchanged. A scalar is treated as independent
    noise with that variance on every observation (scaled identity).

    Args:
        noise_covariance: Scalar variance or (n_obs, n_obs) matrix.
        observations: Flattened observation vector.

    Returns:
        Noise covariance matrix of shape (n_obs, n_obs).

    Raises:
        ConfigurationError: If ``noise_covariance`` is neither a scalar nor a
            symmetric positive semi-definite matrix matching the observation
            length, or if a scalar variance is negative.
    """
    n_obs = np.asarray(observations).size

    if isinstance(noise_covariance, np.ndarray) and noise_covariance.ndim == 2:
        if noise_covariance.shape != (n_obs, n_obs):
            raise ConfigurationError(
                f"Noise covariance has shape {noise_covariance.shape}; "
                f"expected ({n_obs}, {n_obs}) for {n_obs} observations"
            )
        if not np.all(np.isfinite(noise_covariance)):
            raise ConfigurationError("Noise covariance matrix must be finite")
        if not np.allclose(noise_covariance, noise_covariance.T):
            raise ConfigurationError("Noise covariance matrix must be symmetric")
        eigenvalues = np.linalg.eigvalsh(noise_covariance)
        tolerance = _PSD_RTOL * max(1.0, float(np.abs(eigenvalues).max()))
        if eigenvalues.min() < -tolerance:
            raise ConfigurationError(
                f"Noise covariance matrix must be positive semi-definite; "
                f"smallest eigenvalue is {eigenvalues.min():.3g}"
            )
        return noise_covariance

    if isinstance(noise_covariance, np.ndarray) and noise_covariance.ndim == 0:
        noise_covariance = noise_covariance.item()

    if isinstance(noise_covariance, numbers.Real) and not isinstance(noise_covariance, bool):
        variance = float(noise_covariance)
        if not np.isfinite(variance) or variance < 0:
            raise ConfigurationError(f"Noise variance must be finite and non-negative, got {variance}")
        return variance * np.eye(n_obs)

    raise ConfigurationError(
        f"Noise covariance must be a scalar or a square matrix, got {type(noise_covariance).__name__}"
        + (f" with shape {noise_covariance.shape}" if isinstance(noise_covariance, np.ndarray) else "")
    )
