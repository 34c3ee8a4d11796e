# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Per-iteration summaries of an inversion run.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from ekical.core.exceptions import ValidationError

from .priors import Prior, inverse_parameter_transform


def _frozen_copy(array: np.ndarray) -> np.ndarray:
    copy = np.array(array, dtype=float, copy=True)
    copy.setflags(write=False)
    return copy


@dataclass(frozen=True)
class IterationSummary:
    """Snapshot of one iteration.

    Attributes:
        parameters: Unconstrained parameter ensemble (n_params, n_ensemble), read-only.
        mean_square_errors: Per-member mean over observations of the squared
            residual between forward map output and observations.
    """
    parameters: np.ndarray
    mean_square_errors: np.ndarray

    @classmethod
    def from_forward_map(
        cls,
        parameters: np.ndarray,
        forward_map: np.ndarray,
        observations: np.ndarray,
    ) -> 'IterationSummary':
        """Summarize an ensemble and its forward map outputs.

        Args:
            parameters: Parameter ensemble, shape (n_params, n_ensemble).
            forward_map: Forward map outputs, shape (n_obs, n_ensemble).
            observations: Observation vector, shape (n_obs,).
        """
        forward_map = np.asarray(forward_map, dtype=float)
        observations = np.asarray(observations, dtype=float).ravel()
        if forward_map.ndim != 2 or forward_map.shape[0] != observations.size:
            raise ValidationError(
                f"Forward map output of shape {forward_map.shape} does not match "
                f"{observations.size} observations"
            )

        residuals = forward_map - observations[:, np.newaxis]
        mean_square_errors = np.mean(residuals ** 2, axis=0)
        return cls(_frozen_copy(parameters), _frozen_copy(mean_square_errors))

    @property
    def n_ensemble(self) -> int:
        return self.parameters.shape[1]

    def ensemble_mean(self) -> np.ndarray:
        """Unconstrained ensemble mean per parameter."""
        return self.parameters.mean(axis=1)

    def ensemble_variance(self) -> np.ndarray:
        """Unconstrained ensemble variance per parameter."""
        return self.parameters.var(axis=1, ddof=1)

    def physical_mean(self, names: Sequence[str], priors: Sequence[Prior]) -> Dict[str, float]:
        """Ensemble mean mapped to physical space."""
        return {
            name: inverse_parameter_transform(prior, value)
            for name, prior, value in zip(names, priors, self.ensemble_mean())
        }

    def best_member(self) -> int:
        """Index of the member with the smallest mean square error."""
        return int(np.argmin(self.mean_square_errors))

    def __repr__(self) -> str:
        return (
            f"IterationSummary(n_ensemble={self.n_ensemble}, "
            f"mean_mse={float(np.mean(self.mean_square_errors)):.4g})"
        )


def mean_square_error_history(summaries: List[IterationSummary]) -> np.ndarray:
    """Stack member errors into an (n_iterations, n_ensemble) array.

    Iterations must share the ensemble size (no member dropped in between).
    """
    if not summaries:
        return np.empty((0, 0))
    sizes = {s.n_ensemble for s in summaries}
    if len(sizes) > 1:
        raise ValidationError(f"Summaries have different ensemble sizes: {sorted(sizes)}")
    return np.vstack([s.mean_square_errors for s in summaries])
