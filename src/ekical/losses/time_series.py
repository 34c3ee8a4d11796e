# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 ekical developers

"""Per-scenario accumulators of ensemble discrepancy over time."""

from typing import Sequence

import numpy as np

from .profiles import Analysis, time_mean


class EnsembleTimeSeriesAnalysis:
    """Discrepancy of every ensemble member at each comparison time.

    ``data`` has shape (n_ensemble, n_times); ``analysis`` reduces it over
    time to one value per member.
    """

    def __init__(self, time: Sequence[float], n_ensemble: int, analysis: Analysis = time_mean):
        self.time = np.asarray(time, dtype=float)
        self.data = np.zeros((n_ensemble, self.time.size))
        self.analysis = analysis

    @property
    def n_ensemble(self) -> int:
        return self.data.shape[0]

    def __len__(self) -> int:
        return self.time.size

    def reset(self) -> None:
        self.data.fill(0.0)

    def record(self, step: int, discrepancy: np.ndarray) -> None:
        self.data[:, step] = discrepancy

    def reduce(self) -> np.ndarray:
        return self.analysis(self.data)
