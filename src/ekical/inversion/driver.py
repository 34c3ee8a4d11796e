# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Ensemble and unscented Kalman inversion driver.

Iteratively "solves" the inverse problem

    y = G(theta) + eta,   eta ~ N(0, Gamma_y)

for the parameters theta, where y is the flattened observation map of an
inverse problem and G its forward map. The driver owns the ensemble-process
handle, evaluates the forward map on each ensemble, records one
``IterationSummary`` per iteration and feeds the outputs back into the
process update.

Example:
    >>> eki = ensemble_kalman_inversion(problem, noise_covariance=1e-2)
    >>> eki.iterate(iterations=10)
    >>> eki.iteration_summaries[-1].mean_square_errors
"""

import logging
import warnings
from contextlib import nullcontext
from typing import Callable, List, Optional, Set, Tuple, Union

import numpy as np
from tqdm import tqdm

from ekical.core.config import InversionConfig, UnscentedConfig
from ekical.core.exceptions import (
    ConfigurationError,
    ForwardMapError,
    ValidationError,
    inversion_error_handler,
    require,
)

from .distribution import ParameterDistribution, construct_initial_ensemble
from .noise import construct_noise_covariance
from .priors import inverse_covariance_transform, inverse_parameter_transform
from .problem import InverseProblem, ParameterSet
from .process import EnsembleKalmanProcess, Inversion, Unscented
from .summary import IterationSummary

logger = logging.getLogger(__name__)

ForwardMap = Callable[[np.ndarray], np.ndarray]


class EnsembleKalmanInversion:
    """State of one calibration run.

    Created by ``ensemble_kalman_inversion`` or ``unscented_kalman_inversion``
    and mutated in place by ``iterate`` and ``drop_ensemble_member``.

    Attributes:
        inverse_problem: The problem being solved.
        parameter_distribution: Unconstrained parameter distribution.
        ensemble_kalman_process: Current ensemble-process handle.
        mapped_observations: Observation vector y.
        noise_covariance: Observation noise covariance Gamma_y.
        inverting_forward_map: Closure G mapping an unconstrained
            (n_params, batch) ensemble to (n_obs, batch) outputs.
        iteration: Last completed iteration (0 before the first).
        iteration_summaries: One summary per completed iteration.
        dropped_ensemble_members: Member indices removed so far.
    """

    def __init__(
        self,
        inverse_problem: InverseProblem,
        parameter_distribution: ParameterDistribution,
        ensemble_kalman_process: EnsembleKalmanProcess,
        mapped_observations: np.ndarray,
        noise_covariance: np.ndarray,
        inverting_forward_map: ForwardMap,
        config: Optional[InversionConfig] = None,
    ):
        self.inverse_problem = inverse_problem
        self.parameter_distribution = parameter_distribution
        self.ensemble_kalman_process = ensemble_kalman_process
        self.mapped_observations = mapped_observations
        self.noise_covariance = noise_covariance
        self.inverting_forward_map = inverting_forward_map
        self.config = config or InversionConfig()
        self.iteration = 0
        self.iteration_summaries: List[IterationSummary] = []
        self.dropped_ensemble_members: Set[int] = set()
        # Members dropped since the last recorded summary, as column indices of it
        self._pending_drops: Set[int] = set()

    @property
    def variant(self) -> str:
        return self.ensemble_kalman_process.variant

    def current_parameters(self) -> List[ParameterSet]:
        """Current ensemble in physical space, one dict per member."""
        return _invert_ensemble(
            self.inverse_problem.free_parameters,
            self.ensemble_kalman_process.get_u_final(),
        )

    def iterate(self, iterations: int = 1) -> None:
        """Advance the inversion by ``iterations`` sequential iterations.

        Each iteration evaluates the forward map on the current ensemble,
        records an ``IterationSummary`` and updates the ensemble process. A
        forward-map failure aborts the call without recording a partial
        summary for the failing iteration.

        Raises:
            ConfigurationError: If ``iterations`` is negative.
            ForwardMapError: If the forward map raises.
            InversionError: If any member returns a non-finite output. Nothing
                is recorded for that iteration.
        """
        require(iterations >= 0, f"iterations must be non-negative, got {iterations}", ConfigurationError)

        first_iteration = self.iteration + 1
        final_iteration = self.iteration + iterations
        steps = tqdm(
            range(first_iteration, final_iteration + 1),
            desc=f"{self.variant} iterations",
            disable=not self.config.show_progress,
        )

        quiet = warnings.catch_warnings() if self.config.suppress_warnings else nullcontext()
        with quiet:
            if self.config.suppress_warnings:
                warnings.simplefilter('ignore', RuntimeWarning)

            for step in steps:
                theta = self.ensemble_kalman_process.get_u_final()  # (n_params, n_ensemble)

                with inversion_error_handler(f"forward map at iteration {step}", logger, error_type=ForwardMapError):
                    G = self.inverting_forward_map(theta)  # (n_obs, n_ensemble)

                G = self.ensemble_kalman_process.check_outputs(G)
                summary = IterationSummary.from_forward_map(theta, G, self.mapped_observations)

                self.iteration = step
                self.iteration_summaries.append(summary)
                self._pending_drops.clear()

                self.ensemble_kalman_process.update_ensemble(G)

                logger.info(
                    f"Iteration {step}: mean square error {np.mean(summary.mean_square_errors):.6g} "
                    f"(best member {summary.best_member()})"
                )

    def drop_ensemble_member(self, member_index: int) -> None:
        """Remove a degenerate member and restart the process without it.

        The member is removed from the parameter ensemble of the most recent
        iteration summary; a fresh Inversion process is seeded with the
        reduced ensemble and the same observations and noise covariance.
        Indices refer to columns of that summary, so several drops between
        two iterations accumulate.

        Raises:
            ConfigurationError: If the index was already dropped, is out of
                range, no iteration has been recorded yet, or the state uses
                the unscented process. The state is left unchanged.
        """
        require(
            self.variant == Inversion.name,
            "Ensemble members can only be dropped from an ensemble Kalman inversion",
            ConfigurationError,
        )
        require(
            member_index not in self.dropped_ensemble_members,
            f"Ensemble member {member_index} has already been dropped",
            ConfigurationError,
        )
        require(
            bool(self.iteration_summaries),
            "No iteration has been recorded yet; iterate before dropping members",
            ConfigurationError,
        )

        parameter_ensemble = self.iteration_summaries[-1].parameters
        n_members = parameter_ensemble.shape[1]
        require(
            0 <= member_index < n_members,
            f"Ensemble member {member_index} is out of range for an ensemble of {n_members}",
            ConfigurationError,
        )
        removed = self._pending_drops | {member_index}
        require(n_members - len(removed) >= 2, "Cannot drop below two ensemble members", ConfigurationError)

        new_parameter_ensemble = np.delete(parameter_ensemble, sorted(removed), axis=1)
        new_process = EnsembleKalmanProcess(
            new_parameter_ensemble,
            self.mapped_observations,
            self.noise_covariance,
            Inversion(),
            rng_seed=self.config.ensemble_seed,
        )

        self.dropped_ensemble_members.add(member_index)
        self._pending_drops = removed
        self.ensemble_kalman_process = new_process
        logger.info(f"Dropped ensemble member {member_index}; {n_members - len(removed)} members remain")

    def __repr__(self) -> str:
        return "\n".join([
            "EnsembleKalmanInversion",
            f"├── inverse_problem: {type(self.inverse_problem).__name__}",
            f"├── parameter_distribution: {type(self.parameter_distribution).__name__}",
            f"├── ensemble_kalman_process: {type(self.ensemble_kalman_process).__name__} ({self.variant})",
            f"├── mapped_observations: {self.mapped_observations.shape}",
            f"├── noise_covariance: {self.noise_covariance.shape}",
            f"├── inverting_forward_map: {getattr(self.inverting_forward_map, '__name__', 'G')}",
            f"├── iteration: {self.iteration}",
            f"├── iteration_summaries: {len(self.iteration_summaries)}",
            f"└── dropped_ensemble_members: {sorted(self.dropped_ensemble_members)}",
        ])


def _invert_ensemble(free_parameters, theta: np.ndarray) -> List[ParameterSet]:
    """Map each unconstrained column of ``theta`` to a physical parameter dict."""
    return [
        {
            name: inverse_parameter_transform(prior, value)
            for name, prior, value in zip(free_parameters.names, free_parameters.priors, theta[:, i])
        }
        for i in range(theta.shape[1])
    ]


def _setup(
    inverse_problem: InverseProblem,
    noise_covariance: Union[float, np.ndarray],
) -> Tuple[ParameterDistribution, np.ndarray, np.ndarray, ForwardMap]:
    """Distribution, observations, noise covariance and forward map shared by both variants."""
    free_parameters = inverse_problem.free_parameters
    parameter_distribution = ParameterDistribution.from_priors(free_parameters.names, free_parameters.priors)

    y = np.asarray(inverse_problem.observation_map(), dtype=float).ravel(order='F')
    gamma_y = construct_noise_covariance(noise_covariance, y)

    def G(theta: np.ndarray) -> np.ndarray:
        batch_size = theta.shape[1]
        inverted_parameters = _invert_ensemble(free_parameters, theta)
        outputs = np.asarray(inverse_problem.forward_map(inverted_parameters), dtype=float)
        # A flat output is unambiguous for a single observation or a single member
        if outputs.ndim == 1 and 1 in (y.size, batch_size) and outputs.size == y.size * batch_size:
            outputs = outputs.reshape(y.size, batch_size)
        if outputs.shape != (y.size, batch_size):
            raise ValidationError(
                f"Forward map returned shape {outputs.shape}; expected ({y.size}, {batch_size})"
            )
        return outputs

    return parameter_distribution, y, gamma_y, G


def ensemble_kalman_inversion(
    inverse_problem: InverseProblem,
    noise_covariance: Optional[Union[float, np.ndarray]] = None,
    config: Optional[InversionConfig] = None,
) -> EnsembleKalmanInversion:
    """Build an ensemble Kalman inversion for ``inverse_problem``.

    Args:
        inverse_problem: Problem exposing free parameters, ensemble size,
            observation map and forward map.
        noise_covariance: Scalar variance or (n_obs, n_obs) matrix; defaults
            to ``config.noise_covariance``.
        config: Inversion settings (seed, progress, warnings).

    Returns:
        Inversion state at iteration 0.
    """
    config = config or InversionConfig()
    if noise_covariance is None:
        noise_covariance = config.noise_covariance

    parameter_distribution, y, gamma_y, G = _setup(inverse_problem, noise_covariance)

    initial_ensemble = construct_initial_ensemble(
        parameter_distribution, inverse_problem.n_ensemble(), rng_seed=config.ensemble_seed
    )
    process = EnsembleKalmanProcess(initial_ensemble, y, gamma_y, Inversion(), rng_seed=config.ensemble_seed)

    logger.info(
        f"Built ensemble Kalman inversion: {parameter_distribution.n_params} parameters, "
        f"{initial_ensemble.shape[1]} members, {y.size} observations"
    )
    return EnsembleKalmanInversion(inverse_problem, parameter_distribution, process, y, gamma_y, G, config)


def unscented_kalman_inversion(
    inverse_problem: InverseProblem,
    prior_mean: np.ndarray,
    prior_cov: np.ndarray,
    noise_covariance: Optional[Union[float, np.ndarray]] = None,
    alpha_reg: Optional[float] = None,
    update_freq: Optional[int] = None,
    config: Optional[InversionConfig] = None,
    unscented_config: Optional[UnscentedConfig] = None,
) -> EnsembleKalmanInversion:
    """Build an unscented Kalman inversion for ``inverse_problem``.

    Args:
        inverse_problem: Problem exposing free parameters, observation map
            and forward map. Its ensemble size is not used; the process runs
            2p+1 sigma points.
        prior_mean: Unconstrained prior mean, shape (n_params,).
        prior_cov: Unconstrained prior covariance, shape (n_params, n_params).
        noise_covariance: Scalar variance or (n_obs, n_obs) matrix.
        alpha_reg: Regularization toward the prior mean (0 < alpha_reg <= 1;
            1 means no regularization).
        update_freq: 0 when the problem is not identifiable (covariance only
            reflects parameter sensitivity); > 0 when it is, so the
            covariance converges to a posterior approximation.
        config: Inversion settings.
        unscented_config: Defaults for ``alpha_reg``, ``update_freq`` and
            the observation noise scale.
    """
    config = config or InversionConfig()
    unscented_config = unscented_config or UnscentedConfig()
    if noise_covariance is None:
        noise_covariance = config.noise_covariance
    if alpha_reg is None:
        alpha_reg = unscented_config.alpha_reg
    if update_freq is None:
        update_freq = unscented_config.update_freq

    parameter_distribution, y, gamma_y, G = _setup(inverse_problem, noise_covariance)
    require(
        np.asarray(prior_mean).size == parameter_distribution.n_params,
        f"Prior mean has {np.asarray(prior_mean).size} entries for "
        f"{parameter_distribution.n_params} free parameters",
        ConfigurationError,
    )

    process = EnsembleKalmanProcess(
        None, y, gamma_y,
        Unscented(prior_mean, prior_cov, alpha_reg, update_freq, unscented_config.obs_noise_scale),
    )

    logger.info(
        f"Built unscented Kalman inversion: {parameter_distribution.n_params} parameters, "
        f"{process.n_ensemble} sigma points, {y.size} observations"
    )
    return EnsembleKalmanInversion(inverse_problem, parameter_distribution, process, y, gamma_y, G, config)


def unscented_kalman_inversion_postprocess(
    eki: EnsembleKalmanInversion,
) -> Tuple[np.ndarray, List[np.ndarray], np.ndarray, List[float]]:
    """Physical-space trajectories of an unscented inversion.

    Returns:
        mean: (n_params, n_stored) physical means, prior first.
        cov: n_stored physical covariance matrices.
        std: (n_params, n_stored) physical standard deviations.
        err: Error history of the process, one per update.

    Raises:
        ConfigurationError: If ``eki`` does not use the unscented process.
    """
    if eki.variant != Unscented.name:
        raise ConfigurationError(
            f"Postprocessing requires an unscented Kalman inversion, got '{eki.variant}'"
        )

    priors = eki.inverse_problem.free_parameters.priors
    mean_raw = np.column_stack(eki.ensemble_kalman_process.mean_trajectory())
    cov_raw = eki.ensemble_kalman_process.covariance_trajectory()

    mean = np.empty_like(mean_raw)
    cov = []
    for i in range(mean_raw.shape[1]):
        mean[:, i] = [inverse_parameter_transform(p, v) for p, v in zip(priors, mean_raw[:, i])]
        cov.append(inverse_covariance_transform(priors, mean_raw[:, i], cov_raw[i]))

    std = np.column_stack([np.sqrt(np.clip(np.diag(c), 0.0, None)) for c in cov])
    return mean, cov, std, eki.ensemble_kalman_process.errors


__all__ = [
    'EnsembleKalmanInversion',
    'ensemble_kalman_inversion',
    'unscented_kalman_inversion',
    'unscented_kalman_inversion_postprocess',
]
