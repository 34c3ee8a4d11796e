# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Prior distributions and parameter transforms.

Kalman inversion works with unconstrained, Normal-distributed parameters.
Physical priors are often positive or bounded, so each prior type defines a
bijection between its physical (constrained) space and an unconstrained
latent Normal variable:

- LogNormal: ``x = exp(p)``
- Normal: ``x = p``
- ConstrainedNormal: ``x = lower + (upper - lower) / (1 + exp(p))``

The covariance of the unconstrained ensemble is mapped back to physical
space through the Jacobian of the inverse transform.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from scipy.special import expit

from ekical.core.exceptions import ConfigurationError, ParameterDomainError, ValidationError, require

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray]

_FLOAT_TINY = np.finfo(float).tiny
_FLOAT_MAX = np.finfo(float).max


@dataclass(frozen=True)
class Normal:
    """Normal prior N(mu, sigma) on an unbounded parameter."""
    mu: float
    sigma: float

    def __post_init__(self):
        require(self.sigma > 0, f"Prior sigma must be positive, got {self.sigma}", ConfigurationError)


@dataclass(frozen=True)
class LogNormal:
    """Log-normal prior: log(x) ~ N(mu, sigma), for strictly positive parameters."""
    mu: float
    sigma: float

    def __post_init__(self):
        require(self.sigma > 0, f"Prior sigma must be positive, got {self.sigma}", ConfigurationError)


@dataclass(frozen=True)
class ConstrainedNormal:
    """Prior on a parameter bounded to (lower_bound, upper_bound).

    The unconstrained parameter p ~ N(mu, sigma) maps to the physical value
    ``lower_bound + (upper_bound - lower_bound) / (1 + exp(p))``.

    Attributes:
        mu: Mean of the latent normal.
        sigma: Standard deviation of the latent normal.
        lower_bound: Physical lower bound (never attained).
        upper_bound: Physical upper bound (never attained).
    """
    mu: float
    sigma: float
    lower_bound: float
    upper_bound: float

    def __post_init__(self):
        require(self.sigma > 0, f"Prior sigma must be positive, got {self.sigma}", ConfigurationError)
        require(
            self.lower_bound < self.upper_bound,
            f"lower_bound ({self.lower_bound}) must be below upper_bound ({self.upper_bound})",
            ConfigurationError,
        )


Prior = Union[LogNormal, Normal, ConstrainedNormal]


def _unknown_prior(prior) -> TypeError:
    return TypeError(f"Unsupported prior type: {type(prior).__name__}")


def convert_prior(prior: Prior) -> Normal:
    """Return the unconstrained Normal equivalent of ``prior``."""
    if isinstance(prior, Normal):
        return prior
    if isinstance(prior, (LogNormal, ConstrainedNormal)):
        return Normal(prior.mu, prior.sigma)
    raise _unknown_prior(prior)


def forward_parameter_transform(prior: Prior, parameter: ArrayLike) -> ArrayLike:
    """Map a physical parameter value to unconstrained space.

    Args:
        prior: Prior of the parameter.
        parameter: Physical value(s), scalar or array.

    Returns:
        Unconstrained value(s) with the same shape.

    Raises:
        ParameterDomainError: If the value lies outside the prior's support.
    """
    x = np.asarray(parameter, dtype=float)
    if not np.all(np.isfinite(x)):
        raise ParameterDomainError(f"Parameter value must be finite, got {parameter}")

    if isinstance(prior, Normal):
        result = x
    elif isinstance(prior, LogNormal):
        if np.any(x <= 0):
            raise ParameterDomainError(
                f"Log-normal parameters must be positive, got {parameter}"
            )
        result = np.log(x)
    elif isinstance(prior, ConstrainedNormal):
        lower, upper = prior.lower_bound, prior.upper_bound
        if np.any(x <= lower) or np.any(x >= upper):
            raise ParameterDomainError(
                f"Constrained parameters must lie in ({lower}, {upper}), got {parameter}"
            )
        result = np.log((upper - x) / (x - lower))
    else:
        raise _unknown_prior(prior)

    return float(result) if result.ndim == 0 else result


def inverse_parameter_transform(prior: Prior, parameter: ArrayLike) -> ArrayLike:
    """Map an unconstrained parameter value back to physical space.

    For ConstrainedNormal priors the result is strictly inside the bounds for
    every finite input; for LogNormal priors it is strictly positive
    and saturates at the largest finite float instead of overflowing.
    """
    p = np.asarray(parameter, dtype=float)

    if isinstance(prior, Normal):
        result = p
    elif isinstance(prior, LogNormal):
        result = _saturating_exp(p)
    elif isinstance(prior, ConstrainedNormal):
        lower, upper = prior.lower_bound, prior.upper_bound
        # 1 / (1 + exp(p)) == expit(-p), without overflow for large |p|
        result = lower + (upper - lower) * expit(-p)
        result = np.clip(result, np.nextafter(lower, upper), np.nextafter(upper, lower))
    else:
        raise _unknown_prior(prior)

    return float(result) if result.ndim == 0 else result


def _saturating_exp(p: ArrayLike) -> np.ndarray:
    """exp(p) clamped to the positive finite floats."""
    with np.errstate(over='ignore'):
        return np.clip(np.exp(p), _FLOAT_TINY, _FLOAT_MAX)


def _inverse_transform_derivative(prior: Prior, parameter: float) -> float:
    """d(physical)/d(unconstrained) evaluated at ``parameter``."""
    if isinstance(prior, Normal):
        return 1.0
    if isinstance(prior, LogNormal):
        return float(_saturating_exp(parameter))
    if isinstance(prior, ConstrainedNormal):
        # exp(p) / (1 + exp(p))^2 == expit(p) * expit(-p)
        return float(-(prior.upper_bound - prior.lower_bound) * expit(parameter) * expit(-parameter))
    raise _unknown_prior(prior)


def inverse_covariance_transform(
    priors: Sequence[Prior],
    parameters: np.ndarray,
    covariance: np.ndarray,
) -> np.ndarray:
    """Map an unconstrained covariance matrix to physical space.

    Applies ``D C D^T`` with ``D`` the diagonal Jacobian of the inverse
    transform at ``parameters``. Prior types may differ per dimension.

    Args:
        priors: One prior per parameter dimension.
        parameters: Unconstrained parameter vector (linearization point).
        covariance: Unconstrained covariance, shape (n_params, n_params).

    Returns:
        Physical-space covariance, shape (n_params, n_params). Entries beyond the
        float range saturate at the largest finite float.
    """
    parameters = np.asarray(parameters, dtype=float).ravel()
    covariance = np.asarray(covariance, dtype=float)
    n_params = len(priors)
    if parameters.shape != (n_params,) or covariance.shape != (n_params, n_params):
        raise ValidationError(
            f"Expected {n_params} parameters and a {n_params}x{n_params} covariance, "
            f"got {parameters.shape} and {covariance.shape}"
        )

    jacobian = np.array([
        _inverse_transform_derivative(prior, p) for prior, p in zip(priors, parameters)
    ])
    # Scaling rows and columns by the same vector keeps C symmetric.
    with np.errstate(over='ignore'):
        physical = jacobian[:, np.newaxis] * covariance * jacobian[np.newaxis, :]
    return np.clip(physical, -_FLOAT_MAX, _FLOAT_MAX)


def lognormal_with_mean_std(mean: float, std: float) -> LogNormal:
    """Fit a LogNormal whose physical mean and standard deviation match.

    Uses the method of moments: ``k = std^2 / mean^2 + 1``,
    ``mu = log(mean / sqrt(k))``, ``sigma = sqrt(log(k))``.

    Raises:
        ParameterDomainError: If ``mean`` or ``std`` is not positive.
    """
    if not mean > 0:
        raise ParameterDomainError(f"Log-normal mean must be positive, got {mean}")
    if not std > 0:
        raise ParameterDomainError(f"Log-normal std must be positive, got {std}")

    k = std ** 2 / mean ** 2 + 1
    mu = np.log(mean / np.sqrt(k))
    sigma = np.sqrt(np.log(k))
    return LogNormal(float(mu), float(sigma))
