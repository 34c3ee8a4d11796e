# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""Contract for the batched column model evaluated by the loss function."""

from typing import List, Mapping, Protocol, Sequence, runtime_checkable

import numpy as np

from .observations import ColumnTimeSeries


@runtime_checkable
class ColumnEnsembleSimulation(Protocol):
    """A batch of column models, one per (ensemble member, scenario) pair.

    ``initialize_forward_run`` sets every member's parameters and every
    scenario's initial condition (taken at its first target index) and
    resets the clock to zero. ``advance_to`` steps all columns to an
    elapsed time. ``get_field`` returns the current profiles of one field
    with shape (ensemble_size, n_cases, n_z).
    """

    ensemble_size: int

    def initialize_forward_run(
        self,
        observations: Sequence[ColumnTimeSeries],
        parameters: List[Mapping[str, float]],
        first_targets: np.ndarray,
    ) -> None: ...

    def advance_to(self, time: float) -> None: ...

    def get_field(self, name: str) -> np.ndarray: ...
