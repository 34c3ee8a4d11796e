"""Profile-discrepancy loss functions for column simulations."""

from .loss_function import FieldWeights, LossFunction
from .observations import ColumnTimeSeries, column_ensemble_interior
from .profiles import (
    GradientProfileAnalysis,
    ValueProfileAnalysis,
    column_mean,
    estimate_weights,
    profile_from_config,
    time_mean,
)
from .simulation import ColumnEnsembleSimulation
from .time_series import EnsembleTimeSeriesAnalysis

__all__ = [
    "ColumnTimeSeries",
    "column_ensemble_interior",
    "ColumnEnsembleSimulation",
    "EnsembleTimeSeriesAnalysis",
    "FieldWeights",
    "LossFunction",
    "ValueProfileAnalysis",
    "GradientProfileAnalysis",
    "column_mean",
    "time_mean",
    "estimate_weights",
    "profile_from_config",
]
