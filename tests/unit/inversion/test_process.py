"""Tests for the ensemble Kalman process variants."""

import numpy as np
import pytest

from ekical.core.exceptions import ConfigurationError, InversionError, ValidationError
from ekical.inversion.process import EnsembleKalmanProcess, Inversion, Unscented


def linear_outputs(u, A):
    return A @ u


class TestInversionUpdate:

    def test_reproducible_with_seed(self):
        A = np.array([[1.0, 0.0], [0.0, 2.0], [1.0, 1.0]])
        y = np.array([1.0, -1.0, 0.5])
        u0 = np.random.default_rng(0).normal(size=(2, 10))

        results = []
        for _ in range(2):
            process = EnsembleKalmanProcess(u0, y, 0.01 * np.eye(3), Inversion(), rng_seed=5)
            process.update_ensemble(linear_outputs(u0, A))
            results.append(process.get_u_final())

        np.testing.assert_array_equal(results[0], results[1])

    def test_update_reduces_misfit(self):
        A = np.array([[1.0, 0.0], [0.0, 2.0], [1.0, 1.0]])
        truth = np.array([0.7, -0.3])
        y = A @ truth
        u0 = np.random.default_rng(1).normal(size=(2, 50))

        process = EnsembleKalmanProcess(u0, y, 1e-4 * np.eye(3), Inversion(), rng_seed=1)
        for _ in range(5):
            u = process.get_u_final()
            process.update_ensemble(linear_outputs(u, A))

        assert process.n_iterations == 5
        assert process.errors[-1] < process.errors[0]
        np.testing.assert_allclose(process.get_u_final().mean(axis=1), truth, atol=0.05)

    def test_ensemble_stays_in_initial_span(self):
        # The EKI update is a linear combination of the initial anomalies
        A = np.eye(3)
        u0 = np.zeros((3, 4))
        u0[:2] = np.random.default_rng(2).normal(size=(2, 4))

        process = EnsembleKalmanProcess(u0, np.ones(3), 0.1 * np.eye(3), Inversion(), rng_seed=0)
        process.update_ensemble(linear_outputs(u0, A))
        np.testing.assert_allclose(process.get_u_final()[2], 0.0, atol=1e-12)


class TestUnscentedWeights:

    @pytest.mark.parametrize("n_params", [1, 2, 3, 6])
    def test_sigma_points_reproduce_moments(self, n_params):
        rng = np.random.default_rng(42)
        mean = rng.normal(size=n_params)
        B = rng.normal(size=(n_params, n_params))
        cov = B @ B.T + 0.1 * np.eye(n_params)

        process = Unscented(mean, cov)
        points = process.sigma_points(mean, cov)

        assert points.shape == (n_params, 2 * n_params + 1)
        assert process.mean_weights.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(points @ process.mean_weights, mean, atol=1e-12)
        np.testing.assert_allclose(process._weighted_cov(points, mean, points, mean), cov, atol=1e-10)

    def test_alpha_is_capped_at_one(self):
        process = Unscented(np.zeros(2), np.eye(2))
        # alpha = min(sqrt(4/2), 1) = 1, so lambda = 0
        assert process.mean_weights[0] == pytest.approx(0.0)
        assert process.cov_weights[0] == pytest.approx(2.0)
        assert process.c_weight == pytest.approx(np.sqrt(2.0))

    def test_semidefinite_covariance_falls_back(self, caplog):
        process = Unscented(np.zeros(2), np.eye(2))
        points = process.sigma_points(np.zeros(2), np.array([[1.0, 1.0], [1.0, 1.0]]))
        assert np.all(np.isfinite(points))
        assert "positive definite" in caplog.text

    @pytest.mark.parametrize("kwargs", [
        {'alpha_reg': 0.0},
        {'alpha_reg': 1.2},
        {'update_freq': -1},
        {'obs_noise_scale': 0.0},
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ConfigurationError):
            Unscented(np.zeros(2), np.eye(2), **kwargs)

    def test_prior_covariance_shape(self):
        with pytest.raises(ConfigurationError):
            Unscented(np.zeros(2), np.eye(3))


class TestUnscentedUpdate:

    def test_linear_problem_converges(self):
        A = np.array([[1.0, 0.5], [-0.3, 2.0], [0.7, -1.1]])
        truth = np.array([1.0, -0.5])
        y = A @ truth

        process = EnsembleKalmanProcess(None, y, 1e-4 * np.eye(3), Unscented(np.zeros(2), np.eye(2)))
        for _ in range(5):
            process.update_ensemble(A @ process.get_u_final())

        np.testing.assert_allclose(process.mean_trajectory()[-1], truth, atol=1e-2)
        assert len(process.mean_trajectory()) == 6
        assert len(process.covariance_trajectory()) == 6

    def test_regularization_pulls_toward_prior(self):
        process = Unscented(np.array([5.0]), np.eye(1), alpha_reg=0.5)
        u_p = process.initial_ensemble()
        g = np.zeros((1, u_p.shape[1]))  # uninformative forward map
        predicted = process.update(u_p, g, np.zeros(1), np.eye(1))

        # mean stays at the prior mean under an uninformative update
        np.testing.assert_allclose(predicted @ process.mean_weights, [5.0])

    def test_update_freq_refreshes_evolution_noise(self):
        process = Unscented(np.zeros(2), np.eye(2), alpha_reg=0.9, update_freq=2)
        A = np.eye(2)
        u = process.initial_ensemble()
        initial_noise = process.sigma_omega.copy()
        np.testing.assert_allclose(initial_noise, (2 - 0.81) * np.eye(2))

        u = process.update(u, A @ u, np.ones(2), 0.1 * np.eye(2))
        np.testing.assert_allclose(process.sigma_omega, initial_noise)

        process.update(u, A @ u, np.ones(2), 0.1 * np.eye(2))
        np.testing.assert_allclose(process.sigma_omega, (2 - 0.81) * process.uu_cov[-1])

    def test_zero_update_freq_keeps_evolution_noise(self):
        process = Unscented(np.zeros(2), 2 * np.eye(2), update_freq=0)
        u = process.initial_ensemble()
        for _ in range(3):
            u = process.update(u, u.copy(), np.ones(2), np.eye(2))
        np.testing.assert_allclose(process.sigma_omega, 2 * np.eye(2))


class TestEnsembleKalmanProcess:

    def test_unscented_rejects_initial_ensemble(self):
        with pytest.raises(ConfigurationError):
            EnsembleKalmanProcess(np.zeros((2, 5)), np.zeros(1), np.eye(1), Unscented(np.zeros(2), np.eye(2)))

    def test_inversion_requires_two_members(self):
        with pytest.raises(ConfigurationError):
            EnsembleKalmanProcess(np.zeros((2, 1)), np.zeros(1), np.eye(1), Inversion())

    def test_noise_shape_checked(self):
        with pytest.raises(ConfigurationError):
            EnsembleKalmanProcess(np.zeros((2, 5)), np.zeros(3), np.eye(2), Inversion())

    def test_output_shape_checked(self):
        process = EnsembleKalmanProcess(np.zeros((2, 5)), np.zeros(3), np.eye(3), Inversion())
        with pytest.raises(ValidationError):
            process.update_ensemble(np.zeros((3, 4)))
        assert process.n_iterations == 0

    @pytest.mark.parametrize("bad_value", [np.inf, -np.inf, np.nan])
    def test_non_finite_member_rejected_before_update(self, bad_value):
        u0 = np.random.default_rng(42).normal(size=(2, 5))
        process = EnsembleKalmanProcess(u0, np.zeros(3), np.eye(3), Inversion(), rng_seed=42)
        g = np.ones((3, 5))
        g[1, 2] = bad_value

        with pytest.raises(InversionError, match=r"members \[2\]"):
            process.update_ensemble(g)

        assert process.n_iterations == 0
        assert process.errors == []
        np.testing.assert_array_equal(process.get_u_final(), u0)

    def test_ensemble_history(self):
        u0 = np.random.default_rng(42).normal(size=(1, 4))
        process = EnsembleKalmanProcess(u0, np.array([1.0]), np.eye(1), Inversion(), rng_seed=42)
        process.update_ensemble(u0.copy())

        np.testing.assert_array_equal(process.get_u(0), u0)
        np.testing.assert_array_equal(process.get_u(1), process.get_u_final())
        assert process.n_iterations == 1

    def test_accessors_return_copies(self):
        u0 = np.ones((2, 3))
        process = EnsembleKalmanProcess(u0, np.zeros(1), np.eye(1), Inversion())
        u0[:] = 5.0
        u = process.get_u_final()
        u[:] = -1.0
        np.testing.assert_array_equal(process.get_u_final(), np.ones((2, 3)))

    def test_error_is_weighted_mean_misfit(self):
        u0 = np.random.default_rng(0).normal(size=(1, 4))
        process = EnsembleKalmanProcess(u0, np.array([1.0, 2.0]), np.diag([0.5, 2.0]), Inversion(), rng_seed=0)
        g = np.array([[0.0, 0.0, 2.0, 2.0], [2.0, 2.0, 2.0, 2.0]])
        process.update_ensemble(g)
        # mean output (1, 2) matches y exactly
        assert process.errors == [pytest.approx(0.0)]

    def test_trajectories_only_for_unscented(self):
        process = EnsembleKalmanProcess(np.zeros((2, 5)), np.zeros(1), np.eye(1), Inversion())
        assert process.variant == 'inversion'
        with pytest.raises(ConfigurationError):
            process.mean_trajectory()
