# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""Inverse problem contract and concrete problem types.

An inverse problem pairs observations ``y`` with a forward map ``G`` so the
inversion can search for parameters ``theta`` with ``y = G(theta) + eta``.
The driver only needs the structural ``InverseProblem`` protocol; the two
concrete classes below cover the common cases of a batch forward model and
of a scalar loss function objective.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from ekical.core.exceptions import ConfigurationError, ValidationError, require
from ekical.losses.loss_function import LossFunction
from ekical.losses.observations import ColumnTimeSeries
from ekical.losses.simulation import ColumnEnsembleSimulation

from .priors import Prior

ParameterSet = Dict[str, float]


@dataclass(frozen=True)
class FreeParameters:
    """Ordered parameter names and their physical priors."""
    names: Tuple[str, ...]
    priors: Tuple[Prior, ...]

    def __post_init__(self):
        require(
            len(self.names) == len(self.priors),
            f"Got {len(self.names)} names for {len(self.priors)} priors",
            ConfigurationError,
        )
        require(len(self.names) > 0, "At least one free parameter is required", ConfigurationError)

    @classmethod
    def from_priors(cls, priors: Mapping[str, Prior]) -> 'FreeParameters':
        return cls(tuple(priors.keys()), tuple(priors.values()))

    def __len__(self) -> int:
        return len(self.names)


@runtime_checkable
class InverseProblem(Protocol):
    """Protocol for problems accepted by the inversion driver.

    ``forward_map`` receives one ``{name: physical value}`` dict per ensemble
    member and returns outputs of shape (n_obs, n_members), comparable with
    the flattened ``observation_map()``.
    """

    free_parameters: FreeParameters

    def n_ensemble(self) -> int: ...

    def observation_map(self) -> np.ndarray: ...

    def forward_map(self, parameters: List[ParameterSet]) -> np.ndarray: ...


class CallableInverseProblem:
    """Inverse problem backed by an observation array and a batch model.

    Args:
        free_parameters: Parameters to calibrate.
        observations: Observation data, any shape; flattened column-major
            into an (n_obs, 1) observation map.
        forward_model: Callable taking a list of parameter dicts and returning
            (n_obs, n_members) outputs.
        ensemble_size: Number of ensemble members to run.
    """

    def __init__(
        self,
        free_parameters: FreeParameters,
        observations: np.ndarray,
        forward_model: Callable[[List[ParameterSet]], np.ndarray],
        ensemble_size: int,
    ):
        require(ensemble_size >= 2, f"ensemble_size must be at least 2, got {ensemble_size}", ConfigurationError)
        self.free_parameters = free_parameters
        self._observations = np.asarray(observations, dtype=float)
        self._forward_model = forward_model
        self._ensemble_size = int(ensemble_size)

    def n_ensemble(self) -> int:
        return self._ensemble_size

    def observation_map(self) -> np.ndarray:
        return self._observations.reshape(-1, 1, order='F')

    def forward_map(self, parameters: List[ParameterSet]) -> np.ndarray:
        return np.asarray(self._forward_model(parameters), dtype=float)


class LossMinimizationProblem:
    """Inverse problem whose forward map is a scalar loss per member.

    The observation is a single zero and the forward map returns each
    member's loss, so the inversion drives the loss toward zero. The number
    of members handed to ``forward_map`` must match the simulation's
    ensemble size.
    """

    def __init__(
        self,
        free_parameters: FreeParameters,
        loss_function: LossFunction,
        simulation: ColumnEnsembleSimulation,
        observations: Sequence[ColumnTimeSeries],
    ):
        self.free_parameters = free_parameters
        self.loss_function = loss_function
        self.simulation = simulation
        self.observations = observations

    def n_ensemble(self) -> int:
        return self.simulation.ensemble_size

    def observation_map(self) -> np.ndarray:
        return np.zeros((1, 1))

    def forward_map(self, parameters: List[ParameterSet]) -> np.ndarray:
        if len(parameters) != self.simulation.ensemble_size:
            raise ValidationError(
                f"Got {len(parameters)} parameter sets for a simulation ensemble of "
                f"{self.simulation.ensemble_size}"
            )
        error = self.loss_function(self.simulation, self.observations, parameters)
        return error.T
