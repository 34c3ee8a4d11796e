"""Tests for iteration summaries."""

import numpy as np
import pytest

from ekical.core.exceptions import ValidationError
from ekical.inversion.priors import LogNormal, Normal
from ekical.inversion.summary import IterationSummary, mean_square_error_history


class TestIterationSummary:

    def test_mean_square_error_per_member(self):
        parameters = np.array([[0.0, 1.0, 2.0]])
        G = np.array([[1.0, 2.0, 4.0], [1.0, 0.0, 2.0]])
        y = np.array([1.0, 1.0])

        summary = IterationSummary.from_forward_map(parameters, G, y)

        np.testing.assert_allclose(summary.mean_square_errors, [0.0, 1.0, 5.0])
        assert summary.n_ensemble == 3
        assert summary.best_member() == 0

    def test_arrays_are_read_only_copies(self):
        parameters = np.zeros((2, 3))
        summary = IterationSummary.from_forward_map(parameters, np.zeros((1, 3)), np.zeros(1))

        parameters[:] = 1.0
        assert np.all(summary.parameters == 0.0)
        with pytest.raises(ValueError):
            summary.parameters[0, 0] = 5.0
        with pytest.raises(ValueError):
            summary.mean_square_errors[0] = 5.0

    def test_shape_mismatch(self):
        with pytest.raises(ValidationError):
            IterationSummary.from_forward_map(np.zeros((2, 3)), np.zeros((2, 3)), np.zeros(4))

    def test_ensemble_statistics(self):
        parameters = np.array([[1.0, 3.0], [0.0, 0.0]])
        summary = IterationSummary.from_forward_map(parameters, np.zeros((1, 2)), np.zeros(1))

        np.testing.assert_allclose(summary.ensemble_mean(), [2.0, 0.0])
        np.testing.assert_allclose(summary.ensemble_variance(), [2.0, 0.0])

    def test_physical_mean(self):
        parameters = np.array([[0.0, 2.0], [1.0, 3.0]])
        summary = IterationSummary.from_forward_map(parameters, np.zeros((1, 2)), np.zeros(1))

        mean = summary.physical_mean(['a', 'b'], [LogNormal(0, 1), Normal(0, 1)])
        assert mean['a'] == pytest.approx(np.e)
        assert mean['b'] == pytest.approx(2.0)

    def test_repr(self):
        summary = IterationSummary.from_forward_map(np.zeros((1, 2)), np.zeros((1, 2)), np.zeros(1))
        assert "n_ensemble=2" in repr(summary)


class TestMeanSquareErrorHistory:

    def test_stacks_iterations(self):
        summaries = [
            IterationSummary.from_forward_map(np.zeros((1, 2)), np.full((1, 2), k), np.zeros(1))
            for k in range(3)
        ]
        history = mean_square_error_history(summaries)
        assert history.shape == (3, 2)
        np.testing.assert_allclose(history[:, 0], [0.0, 1.0, 4.0])

    def test_empty(self):
        assert mean_square_error_history([]).shape == (0, 0)

    def test_mixed_sizes(self):
        summaries = [
            IterationSummary.from_forward_map(np.zeros((1, 3)), np.zeros((1, 3)), np.zeros(1)),
            IterationSummary.from_forward_map(np.zeros((1, 2)), np.zeros((1, 2)), np.zeros(1)),
        ]
        with pytest.raises(ValidationError):
            mean_square_error_history(summaries)
