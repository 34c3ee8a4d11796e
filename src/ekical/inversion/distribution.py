# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Unconstrained parameter distribution.

Holds one independent Normal per named parameter; physical bounds are
already absorbed into the per-prior transforms, so no further constraints
apply in this space.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ekical.core.exceptions import ConfigurationError, require

from .priors import Normal, Prior, convert_prior

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParameterDistribution:
    """Product of independent unconstrained Normals.

    Attributes:
        names: Parameter names, in ensemble row order.
        priors: Unconstrained Normal per parameter.
    """
    names: Tuple[str, ...]
    priors: Tuple[Normal, ...]

    def __post_init__(self):
        require(
            len(self.names) == len(self.priors),
            f"Got {len(self.names)} names for {len(self.priors)} priors",
            ConfigurationError,
        )
        require(len(set(self.names)) == len(self.names), "Parameter names must be unique", ConfigurationError)

    @classmethod
    def from_priors(cls, names: Sequence[str], priors: Sequence[Prior]) -> 'ParameterDistribution':
        """Build the distribution from physical priors."""
        return cls(tuple(names), tuple(convert_prior(prior) for prior in priors))

    @property
    def n_params(self) -> int:
        return len(self.priors)

    def mean(self) -> np.ndarray:
        return np.array([prior.mu for prior in self.priors])

    def cov(self) -> np.ndarray:
        return np.diag([prior.sigma ** 2 for prior in self.priors])

    def sample(self, n_samples: int, rng: np.random.Generator) -> np.ndarray:
        """Draw ``n_samples`` columns, shape (n_params, n_samples)."""
        mu = self.mean()[:, np.newaxis]
        sigma = np.sqrt(np.diag(self.cov()))[:, np.newaxis]
        return mu + sigma * rng.standard_normal((self.n_params, n_samples))


def construct_initial_ensemble(
    distribution: ParameterDistribution,
    n_ensemble: int,
    rng_seed: Optional[int] = None,
) -> np.ndarray:
    """Draw a reproducible initial ensemble of shape (n_params, n_ensemble).

    Args:
        distribution: Unconstrained parameter distribution.
        n_ensemble: Number of ensemble members.
        rng_seed: Seed for the random generator.
    """
    require(n_ensemble >= 2, f"Ensemble needs at least 2 members, got {n_ensemble}", ConfigurationError)
    rng = np.random.default_rng(rng_seed)
    ensemble = distribution.sample(n_ensemble, rng)
    logger.debug(f"Drew initial ensemble of {n_ensemble} members for {distribution.n_params} parameters")
    return ensemble
