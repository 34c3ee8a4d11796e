# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Ensemble Kalman processes.

Implements the ensemble-process collaborator used by the inversion driver:
an ``EnsembleKalmanProcess`` owns the ensemble history and delegates the
update mathematics to one of two process variants.

- ``Inversion``: stochastic ensemble Kalman inversion with perturbed
  observations.
- ``Unscented``: unscented Kalman inversion with a deterministic
  sigma-point ensemble and tracked mean/covariance trajectories.

References:
    Iglesias, M. A., Law, K. J. H. & Stuart, A. M. (2013). Ensemble Kalman
    methods for inverse problems. Inverse Problems, 29, 045001.

    Huang, D. Z., Schneider, T. & Stuart, A. M. (2022). Iterated Kalman
    methodology for inverse problems. Journal of Computational Physics,
    463, 111262.
"""

import logging
from typing import List, Optional, Union

import numpy as np
from scipy import linalg

from ekical.core.constants import InversionDefaults
from ekical.core.exceptions import ConfigurationError, InversionError, ValidationError, require

logger = logging.getLogger(__name__)


def _solve_innovation(P: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """Solve ``P x = rhs``, falling back to the pseudo-inverse when P is singular."""
    try:
        return np.linalg.solve(P, rhs)
    except np.linalg.LinAlgError:
        logger.warning("Singular innovation covariance, using pseudo-inverse")
        return np.linalg.pinv(P) @ rhs


class Inversion:
    """Stochastic ensemble Kalman inversion update.

    Each member is moved toward its own perturbed copy of the observations:
    ``u <- u + C_ug (C_gg + Gamma)^-1 (y + eta - g)``, with population
    (biased) cross-covariances.
    """

    name = 'inversion'

    def update(
        self,
        u: np.ndarray,
        g: np.ndarray,
        observations: np.ndarray,
        noise_covariance: np.ndarray,
        rng: np.random.Generator,
    ) -> np.ndarray:
        """Return the updated ensemble.

        Args:
            u: Parameter ensemble, shape (n_params, n_ensemble).
            g: Forward map outputs, shape (n_obs, n_ensemble).
            observations: Observation vector, shape (n_obs,).
            noise_covariance: Observation noise covariance, shape (n_obs, n_obs).
            rng: Generator for the observation perturbations.
        """
        n_ensemble = u.shape[1]

        # 1. Anomalies
        du = u - u.mean(axis=1, keepdims=True)
        dg = g - g.mean(axis=1, keepdims=True)

        # 2. Cross- and output covariances
        cov_ug = du @ dg.T / n_ensemble  # (n_params, n_obs)
        cov_gg = dg @ dg.T / n_ensemble  # (n_obs, n_obs)

        # 3. Perturbed observations, one column per member
        y_perturbed = rng.multivariate_normal(observations, noise_covariance, size=n_ensemble).T

        # 4. Kalman update
        increment = _solve_innovation(cov_gg + noise_covariance, y_perturbed - g)
        return u + cov_ug @ increment

    def mean_output(self, g: np.ndarray) -> np.ndarray:
        return g.mean(axis=1)


class Unscented:
    """Unscented Kalman inversion.

    Tracks the parameter mean and covariance directly; the ensemble is the
    set of 2p+1 sigma points of the current (predicted) Gaussian.

    Args:
        prior_mean: Prior mean r, shape (n_params,).
        prior_cov: Prior covariance Lambda, shape (n_params, n_params).
        alpha_reg: Regularization toward the prior mean, 0 < alpha_reg <= 1
            (1 = no regularization).
        update_freq: 0 for non-identifiable problems (covariance only carries
            sensitivity information); > 0 refreshes the artificial evolution
            noise every ``update_freq`` iterations so the covariance converges
            to a posterior approximation.
        obs_noise_scale: Inflation of the observation noise in the analysis.
    """

    name = 'unscented'

    def __init__(
        self,
        prior_mean: np.ndarray,
        prior_cov: np.ndarray,
        alpha_reg: float = InversionDefaults.ALPHA_REG,
        update_freq: int = InversionDefaults.UPDATE_FREQ,
        obs_noise_scale: float = InversionDefaults.OBS_NOISE_SCALE,
    ):
        prior_mean = np.asarray(prior_mean, dtype=float).ravel()
        prior_cov = np.atleast_2d(np.asarray(prior_cov, dtype=float))
        n_params = prior_mean.size

        require(n_params > 0, "Prior mean must not be empty", ConfigurationError)
        require(
            prior_cov.shape == (n_params, n_params),
            f"Prior covariance has shape {prior_cov.shape}; expected ({n_params}, {n_params})",
            ConfigurationError,
        )
        require(0 < alpha_reg <= 1, f"alpha_reg must lie in (0, 1], got {alpha_reg}", ConfigurationError)
        require(update_freq >= 0, f"update_freq must be non-negative, got {update_freq}", ConfigurationError)
        require(obs_noise_scale > 0, f"obs_noise_scale must be positive, got {obs_noise_scale}", ConfigurationError)

        self.alpha_reg = float(alpha_reg)
        self.update_freq = int(update_freq)
        self.obs_noise_scale = float(obs_noise_scale)
        self.prior_mean = prior_mean
        self.sigma_omega = (2 - self.alpha_reg ** 2) * prior_cov
        self.iteration = 0

        self.u_mean: List[np.ndarray] = [prior_mean.copy()]
        self.uu_cov: List[np.ndarray] = [prior_cov.copy()]
        self.obs_pred: List[np.ndarray] = []

        self._set_weights(n_params)

    def _set_weights(self, n_params: int, kappa: float = 0.0, beta: float = 2.0) -> None:
        alpha = min(np.sqrt(4 / (n_params + kappa)), 1.0)
        lam = alpha ** 2 * (n_params + kappa) - n_params

        self.c_weight = np.sqrt(n_params + lam)
        self.mean_weights = np.full(2 * n_params + 1, 1 / (2 * (n_params + lam)))
        self.cov_weights = self.mean_weights.copy()
        self.mean_weights[0] = lam / (n_params + lam)
        self.cov_weights[0] = lam / (n_params + lam) + 1 - alpha ** 2 + beta

    @property
    def n_params(self) -> int:
        return self.prior_mean.size

    def sigma_points(self, mean: np.ndarray, cov: np.ndarray) -> np.ndarray:
        """Return the 2p+1 sigma points of N(mean, cov), shape (n_params, 2p+1)."""
        try:
            sqrt_cov = linalg.cholesky(cov, lower=True)
        except linalg.LinAlgError:
            logger.warning("Covariance not positive definite, using eigen-decomposition square root")
            eigvals, eigvecs = linalg.eigh(cov)
            sqrt_cov = eigvecs * np.sqrt(np.clip(eigvals, 0.0, None))

        offsets = self.c_weight * sqrt_cov
        return np.hstack([mean[:, np.newaxis], mean[:, np.newaxis] + offsets, mean[:, np.newaxis] - offsets])

    def initial_ensemble(self) -> np.ndarray:
        return self.sigma_points(self.u_mean[0], self.uu_cov[0])

    def mean_output(self, g: np.ndarray) -> np.ndarray:
        return g @ self.mean_weights

    def _weighted_cov(self, x: np.ndarray, x_mean: np.ndarray, y: np.ndarray, y_mean: np.ndarray) -> np.ndarray:
        dx = x - x_mean[:, np.newaxis]
        dy = y - y_mean[:, np.newaxis]
        return (dx * self.cov_weights) @ dy.T

    def update(
        self,
        u_p: np.ndarray,
        g: np.ndarray,
        observations: np.ndarray,
        noise_covariance: np.ndarray,
    ) -> np.ndarray:
        """Analysis on the current sigma points, then prediction of the next ones."""
        # Analysis
        u_p_mean = u_p @ self.mean_weights
        g_mean = self.mean_output(g)

        uu_p_cov = self._weighted_cov(u_p, u_p_mean, u_p, u_p_mean)
        gg_cov = self._weighted_cov(g, g_mean, g, g_mean) + self.obs_noise_scale * noise_covariance
        ug_cov = self._weighted_cov(u_p, u_p_mean, g, g_mean)

        gain = _solve_innovation(gg_cov, ug_cov.T).T  # (n_params, n_obs)

        u_mean = u_p_mean + gain @ (observations - g_mean)
        uu_cov = uu_p_cov - gain @ ug_cov.T
        uu_cov = 0.5 * (uu_cov + uu_cov.T)

        self.u_mean.append(u_mean)
        self.uu_cov.append(uu_cov)
        self.obs_pred.append(g_mean)

        # Prediction
        self.iteration += 1
        if self.update_freq > 0 and self.iteration % self.update_freq == 0:
            self.sigma_omega = (2 - self.alpha_reg ** 2) * uu_cov

        u_pred_mean = self.alpha_reg * u_mean + (1 - self.alpha_reg) * self.prior_mean
        uu_pred_cov = self.alpha_reg ** 2 * uu_cov + self.sigma_omega
        return self.sigma_points(u_pred_mean, uu_pred_cov)


ProcessVariant = Union[Inversion, Unscented]


class EnsembleKalmanProcess:
    """Ensemble history plus the update rule of one process variant.

    The ensemble is only ever changed through ``update_ensemble``; all
    accessors return copies.

    Args:
        initial_ensemble: Parameter ensemble (n_params, n_ensemble) for the
            Inversion variant; must be None for the Unscented variant, which
            generates its own sigma points.
        observations: Observation vector y.
        noise_covariance: Observation noise covariance Gamma_y.
        process: ``Inversion()`` or ``Unscented(...)``.
        rng_seed: Seed for the observation perturbations (Inversion only).
    """

    def __init__(
        self,
        initial_ensemble: Optional[np.ndarray],
        observations: np.ndarray,
        noise_covariance: np.ndarray,
        process: ProcessVariant,
        rng_seed: Optional[int] = None,
    ):
        self._process = process
        self._observations = np.asarray(observations, dtype=float).ravel().copy()
        self._noise_covariance = np.asarray(noise_covariance, dtype=float).copy()
        self._rng = np.random.default_rng(rng_seed)

        n_obs = self._observations.size
        require(
            self._noise_covariance.shape == (n_obs, n_obs),
            f"Noise covariance shape {self._noise_covariance.shape} does not match {n_obs} observations",
            ConfigurationError,
        )

        if isinstance(process, Unscented):
            require(
                initial_ensemble is None,
                "The unscented process generates its own sigma-point ensemble",
                ConfigurationError,
            )
            initial = process.initial_ensemble()
        elif isinstance(process, Inversion):
            require(initial_ensemble is not None, "Inversion requires an initial ensemble", ConfigurationError)
            initial = np.array(initial_ensemble, dtype=float, copy=True)
            require(
                initial.ndim == 2 and initial.shape[1] >= 2,
                f"Initial ensemble must be (n_params, n_ensemble>=2), got shape {initial.shape}",
                ConfigurationError,
            )
        else:
            raise TypeError(f"Unsupported process type: {type(process).__name__}")

        self._u: List[np.ndarray] = [initial]
        self._g: List[np.ndarray] = []
        self._err: List[float] = []
        self._noise_precision = np.linalg.pinv(self._noise_covariance)

    @property
    def variant(self) -> str:
        return self._process.name

    @property
    def n_params(self) -> int:
        return self._u[-1].shape[0]

    @property
    def n_ensemble(self) -> int:
        return self._u[-1].shape[1]

    @property
    def n_iterations(self) -> int:
        """Number of completed updates."""
        return len(self._g)

    @property
    def errors(self) -> List[float]:
        """Weighted misfit of the mean forward map output, one per update."""
        return list(self._err)

    def get_u_final(self) -> np.ndarray:
        """Current parameter ensemble, shape (n_params, n_ensemble)."""
        return self._u[-1].copy()

    def get_u(self, iteration: int) -> np.ndarray:
        """Parameter ensemble before update ``iteration`` (0 = initial)."""
        return self._u[iteration].copy()

    def mean_trajectory(self) -> List[np.ndarray]:
        """Unscented parameter means, prior first."""
        return [m.copy() for m in self._unscented().u_mean]

    def covariance_trajectory(self) -> List[np.ndarray]:
        """Unscented parameter covariances, prior first."""
        return [c.copy() for c in self._unscented().uu_cov]

    def _unscented(self) -> Unscented:
        if not isinstance(self._process, Unscented):
            raise ConfigurationError(
                f"Mean and covariance trajectories exist only for the unscented process, not '{self.variant}'"
            )
        return self._process

    def check_outputs(self, g: np.ndarray) -> np.ndarray:
        """Validate forward map outputs of the current ensemble.

        Raises:
            ValidationError: If ``g`` does not have shape (n_obs, n_ensemble).
            InversionError: If any member produced a non-finite output.
        """
        g = np.asarray(g, dtype=float)
        expected = (self._observations.size, self.n_ensemble)
        if g.shape != expected:
            raise ValidationError(f"Forward map output has shape {g.shape}; expected {expected}")

        bad = np.flatnonzero(~np.all(np.isfinite(g), axis=0))
        if bad.size:
            raise InversionError(
                f"Non-finite forward map outputs for ensemble members {bad.tolist()}; "
                f"drop them or fix the forward map before updating"
            )
        return g

    def update_ensemble(self, g: np.ndarray) -> None:
        """Advance the process with forward map outputs ``g`` of the current ensemble.

        The state is left untouched when ``g`` fails :meth:`check_outputs`.

        Args:
            g: Forward map outputs, shape (n_obs, n_ensemble).
        """
        g = self.check_outputs(g)

        u = self._u[-1]
        if isinstance(self._process, Unscented):
            u_new = self._process.update(u, g, self._observations, self._noise_covariance)
        else:
            u_new = self._process.update(u, g, self._observations, self._noise_covariance, self._rng)

        diff = self._observations - self._process.mean_output(g)
        err = float(diff @ self._noise_precision @ diff)

        self._g.append(g.copy())
        self._u.append(u_new)
        self._err.append(err)
        logger.debug(f"{self.variant} update {self.n_iterations}: error {err:.6g}")
