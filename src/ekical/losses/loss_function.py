# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Weighted profile-discrepancy loss over a batch of column simulations.

The loss runs every (ensemble member, scenario) column forward from its
first target time, compares the simulated profiles with the observed ones
at each comparison time, and reduces the weighted discrepancies to one
number per ensemble member.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from ekical.core.config import LossFunctionConfig
from ekical.core.constants import FIELD_NAMES
from ekical.core.exceptions import ConfigurationError, ValidationError, require

from .observations import ColumnTimeSeries, column_ensemble_interior
from .profiles import GradientProfileAnalysis, ProfileAnalysis, estimate_weights, profile_from_config
from .simulation import ColumnEnsembleSimulation
from .time_series import EnsembleTimeSeriesAnalysis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldWeights:
    """Per-scenario weights of each physical field, each shaped (n_cases,)."""
    u: np.ndarray
    v: np.ndarray
    b: np.ndarray
    e: np.ndarray

    def __getitem__(self, field_name: str) -> np.ndarray:
        if field_name not in FIELD_NAMES:
            raise KeyError(field_name)
        return getattr(self, field_name)

    def as_dict(self) -> Dict[str, np.ndarray]:
        return {name: self[name] for name in FIELD_NAMES}


def _check_time_steps(observations: Sequence[ColumnTimeSeries]) -> float:
    """Return the common observation interval or raise ConfigurationError."""
    time_step = None
    for data in observations:
        intervals = data.time_intervals()
        if not np.allclose(intervals, intervals[0], rtol=1e-8, atol=0.0):
            raise ConfigurationError(
                f"Scenario '{data.name}' has non-uniform observation intervals "
                f"(min {intervals.min():.6g}, max {intervals.max():.6g})"
            )
        if time_step is None:
            time_step = float(intervals[0])
        elif not np.isclose(intervals[0], time_step, rtol=1e-8, atol=0.0):
            raise ConfigurationError(
                f"Scenario '{data.name}' has interval {intervals[0]:.6g}, "
                f"other scenarios use {time_step:.6g}"
            )
    return time_step


def _resolve_relative_weights(
    relative_weights: Optional[Mapping[str, float]],
    config: LossFunctionConfig,
) -> Dict[str, float]:
    if relative_weights is None:
        return dict(config.relative_weights)
    unknown = sorted(set(relative_weights) - set(FIELD_NAMES))
    if unknown:
        raise ConfigurationError(f"Unknown field names {unknown}; expected a subset of {FIELD_NAMES}")
    return {name: float(relative_weights.get(name, 0.0)) for name in FIELD_NAMES}


class LossFunction:
    """Callable loss returning one weighted discrepancy per ensemble member.

    Use :meth:`build` to construct it from a simulation and observations.

    Attributes:
        first_targets: First comparison index of each scenario.
        max_simulation_length: Number of comparison steps of the longest scenario.
        field_weights: Per-field, per-scenario weights.
        time_series: One discrepancy accumulator per scenario.
        profile: Profile analysis turning column residuals into discrepancies.
        time_step: Common observation interval.
    """

    def __init__(
        self,
        first_targets: np.ndarray,
        max_simulation_length: int,
        field_weights: FieldWeights,
        time_series: List[EnsembleTimeSeriesAnalysis],
        profile,
        time_step: float,
    ):
        self.first_targets = first_targets
        self.max_simulation_length = max_simulation_length
        self.field_weights = field_weights
        self.time_series = time_series
        self.profile = profile
        self.time_step = time_step

    @classmethod
    def build(
        cls,
        simulation: ColumnEnsembleSimulation,
        observations: Sequence[ColumnTimeSeries],
        data_weights: Optional[Sequence[float]] = None,
        relative_weights: Optional[Mapping[str, float]] = None,
        profile=None,
        config: Optional[LossFunctionConfig] = None,
    ) -> 'LossFunction':
        """Construct a loss function for ``simulation`` against ``observations``.

        Args:
            simulation: Batched column model.
            observations: One ``ColumnTimeSeries`` per scenario.
            data_weights: Per-scenario weights; defaults to 1 for every scenario.
            relative_weights: Per-field relative weights; fields left out get 0.
                Defaults to ``config.relative_weights``.
            profile: Profile analysis; defaults to the one selected by ``config``.
            config: Loss function settings.

        Raises:
            ConfigurationError: If observation intervals are non-uniform or
                differ across scenarios, or weights are malformed.
        """
        config = config or LossFunctionConfig()
        observations = list(observations)
        require(len(observations) > 0, "At least one scenario is required", ConfigurationError)

        n_z = {data.n_z for data in observations}
        require(len(n_z) == 1, f"Scenarios must share one column size, got {sorted(n_z)}", ConfigurationError)

        time_step = _check_time_steps(observations)

        n_cases = len(observations)
        if data_weights is None:
            data_weights = np.ones(n_cases)
        data_weights = np.asarray(data_weights, dtype=float)
        require(
            data_weights.shape == (n_cases,),
            f"Got {data_weights.size} data weights for {n_cases} scenarios",
            ConfigurationError,
        )

        relative_weights = _resolve_relative_weights(relative_weights, config)
        if profile is None:
            profile = profile_from_config(config)
        if not isinstance(profile, ProfileAnalysis):
            raise ConfigurationError(f"Unsupported profile analysis {type(profile).__name__}")
        if isinstance(profile, GradientProfileAnalysis):
            require(
                next(iter(n_z)) >= 2,
                "Gradient profile analysis needs at least two levels per column",
                ConfigurationError,
            )

        weights = {name: np.zeros(n_cases) for name in FIELD_NAMES}
        for i, data in enumerate(observations):
            estimated = estimate_weights(
                profile, data, [relative_weights[name] for name in data.relevant_fields],
                normalization=config.variance_normalization,
            )
            for name, weight in zip(data.relevant_fields, estimated):
                weights[name][i] = weight * data_weights[i]

        first_targets = np.array([data.targets[0] for data in observations], dtype=int)
        max_simulation_length = max(data.targets.size for data in observations)
        time_series = [
            EnsembleTimeSeriesAnalysis(data.target_times(), simulation.ensemble_size)
            for data in observations
        ]

        logger.info(
            f"Built loss function: {n_cases} scenarios, {max_simulation_length} comparison steps, "
            f"dt={time_step:.6g}, profile={profile!r}"
        )
        return cls(first_targets, max_simulation_length, FieldWeights(**weights), time_series, profile, time_step)

    @property
    def n_cases(self) -> int:
        return len(self.time_series)

    def analyze_weighted_profile_discrepancy(
        self,
        simulation: ColumnEnsembleSimulation,
        observations: Sequence[ColumnTimeSeries],
        step: int,
    ) -> np.ndarray:
        """Weighted discrepancy of every member and scenario at comparison ``step``.

        Returns:
            Array of shape (n_ensemble, n_cases); NaN entries are replaced by +inf.
        """
        n_ensemble = simulation.ensemble_size
        data_indices = self.first_targets + step
        total = np.zeros((n_ensemble, self.n_cases))

        for name in FIELD_NAMES:
            model_field = np.asarray(simulation.get_field(name), dtype=float)
            data_field = column_ensemble_interior(observations, name, data_indices, n_ensemble)
            if model_field.shape != data_field.shape:
                raise ValidationError(
                    f"Simulated field '{name}' has shape {model_field.shape}; expected {data_field.shape}"
                )
            total += self.field_weights[name][np.newaxis, :] * self.profile.discrepancy(model_field, data_field)

        n_bad = int(np.count_nonzero(np.isnan(total)))
        if n_bad:
            logger.debug(f"Step {step}: {n_bad} NaN discrepancies set to inf")
        return np.where(np.isnan(total), np.inf, total)

    def evaluate(
        self,
        simulation: ColumnEnsembleSimulation,
        observations: Sequence[ColumnTimeSeries],
        parameters: List[Mapping[str, float]],
    ) -> None:
        """Run the simulation and fill every scenario's discrepancy accumulator."""
        for series in self.time_series:
            if series.n_ensemble != simulation.ensemble_size:
                raise ValidationError(
                    f"Loss function was built for {series.n_ensemble} members, "
                    f"simulation has {simulation.ensemble_size}"
                )
            series.reset()

        simulation.initialize_forward_run(observations, parameters, self.first_targets)

        for step in range(self.max_simulation_length):
            simulation.advance_to(step * self.time_step)
            discrepancy = self.analyze_weighted_profile_discrepancy(simulation, observations, step)
            for j, series in enumerate(self.time_series):
                if step < len(series):
                    series.record(step, discrepancy[:, j])

    def __call__(
        self,
        simulation: ColumnEnsembleSimulation,
        observations: Sequence[ColumnTimeSeries],
        parameters: List[Mapping[str, float]],
    ) -> np.ndarray:
        """Evaluate the loss; returns an (n_ensemble, 1) array."""
        self.evaluate(simulation, observations, parameters)
        n_ensemble = simulation.ensemble_size
        error = np.zeros((n_ensemble, 1))
        for series in self.time_series:
            error[:, 0] += series.reduce() / n_ensemble
        return error

    def __repr__(self) -> str:
        return (
            f"LossFunction(n_cases={self.n_cases}, "
            f"max_simulation_length={self.max_simulation_length}, "
            f"time_step={self.time_step:.6g}, profile={self.profile!r})"
        )
