# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""
Column time-series observations.

A scenario is one observed (or synthetic) column experiment: a time axis,
a subset of the physical fields sampled on a vertical column at each time,
and the indices of the times used for comparison with the simulation.
"""

import logging
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from ekical.core.constants import FIELD_NAMES
from ekical.core.exceptions import ValidationError, require

logger = logging.getLogger(__name__)


class ColumnTimeSeries:
    """Observed column profiles of one scenario.

    Args:
        t: Observation times, shape (n_times,), strictly increasing.
        fields: Field name -> profiles of shape (n_times, n_z). Names must be
            drawn from ``FIELD_NAMES``.
        targets: Indices into ``t`` used for comparison; defaults to every time.
        name: Label used in log messages.
    """

    def __init__(
        self,
        t: Sequence[float],
        fields: Mapping[str, np.ndarray],
        targets: Optional[Sequence[int]] = None,
        name: str = "",
    ):
        self.t = np.asarray(t, dtype=float)
        self.name = name

        require(self.t.ndim == 1 and self.t.size >= 2, "A scenario needs at least two observation times")
        require(bool(np.all(np.diff(self.t) > 0)), "Observation times must be strictly increasing")
        require(len(fields) > 0, "A scenario needs at least one observed field")

        unknown = sorted(set(fields) - set(FIELD_NAMES))
        require(not unknown, f"Unknown field names {unknown}; expected a subset of {FIELD_NAMES}")

        self.fields: Dict[str, np.ndarray] = {}
        for field_name in FIELD_NAMES:
            if field_name not in fields:
                continue
            data = np.asarray(fields[field_name], dtype=float)
            if data.ndim == 1:
                data = data[:, np.newaxis]
            if data.ndim != 2 or data.shape[0] != self.t.size:
                raise ValidationError(
                    f"Field '{field_name}' has shape {data.shape}; expected ({self.t.size}, n_z)"
                )
            self.fields[field_name] = data

        n_z = {data.shape[1] for data in self.fields.values()}
        require(len(n_z) == 1, f"All fields must share one column size, got {sorted(n_z)}")

        if targets is None:
            targets = np.arange(self.t.size)
        self.targets = np.asarray(targets, dtype=int)
        require(self.targets.ndim == 1 and self.targets.size > 0, "At least one target time is required")
        require(
            bool(np.all((self.targets >= 0) & (self.targets < self.t.size))),
            f"Targets must index the {self.t.size} observation times",
        )
        require(bool(np.all(np.diff(self.targets) > 0)), "Targets must be strictly increasing")

    @property
    def relevant_fields(self) -> Tuple[str, ...]:
        return tuple(self.fields)

    @property
    def n_z(self) -> int:
        return next(iter(self.fields.values())).shape[1]

    def time_intervals(self) -> np.ndarray:
        return np.diff(self.t)

    def target_times(self) -> np.ndarray:
        return self.t[self.targets]

    def field_at(self, field_name: str, index: int) -> np.ndarray:
        """Profile of ``field_name`` at time ``index``, clamped to the record."""
        index = min(max(int(index), 0), self.t.size - 1)
        return self.fields[field_name][index]

    def mean_variance(self, field_name: str) -> float:
        """Time mean of the vertical variance of ``field_name``."""
        return float(np.mean(np.var(self.fields[field_name], axis=1)))

    def max_variance(self, field_name: str) -> float:
        """Largest vertical variance of ``field_name`` over time."""
        return float(np.max(np.var(self.fields[field_name], axis=1)))

    def __repr__(self) -> str:
        return (
            f"ColumnTimeSeries(name={self.name!r}, n_times={self.t.size}, "
            f"n_z={self.n_z}, fields={self.relevant_fields})"
        )


def column_ensemble_interior(
    observations: Sequence[ColumnTimeSeries],
    field_name: str,
    data_indices: Sequence[int],
    n_ensemble: int,
) -> np.ndarray:
    """Stack one profile per scenario and broadcast it over the ensemble.

    Scenarios without ``field_name`` contribute zeros.

    Returns:
        Array of shape (n_ensemble, n_cases, n_z).
    """
    n_z = observations[0].n_z
    profiles = np.zeros((len(observations), n_z))
    for j, (data, index) in enumerate(zip(observations, data_indices)):
        if field_name in data.fields:
            profiles[j] = data.field_at(field_name, index)
    return np.broadcast_to(profiles, (n_ensemble, len(observations), n_z))
