"""
Unit test fixtures and configuration.

Fixtures specific to unit tests (fast, isolated tests): small linear inverse
problems and a replaying column simulation.
"""

import numpy as np
import pytest

from ekical.core.constants import FIELD_NAMES
from ekical.inversion import CallableInverseProblem, FreeParameters, Normal

# ============================================================================
# Linear inverse problems
# ============================================================================

LINEAR_OPERATOR = np.array([
    [1.0, 0.5],
    [-0.3, 2.0],
    [0.7, -1.1],
])
TRUE_PARAMETERS = np.array([1.0, -0.5])


def linear_forward_model(parameters):
    """G(theta) = A theta for each member; returns (n_obs, n_members)."""
    theta = np.array([[p['a'], p['b']] for p in parameters]).T
    return LINEAR_OPERATOR @ theta


@pytest.fixture
def free_parameters():
    return FreeParameters.from_priors({'a': Normal(0.0, 1.0), 'b': Normal(0.0, 1.0)})


@pytest.fixture
def linear_problem(free_parameters):
    """Consistent, overdetermined linear problem with 20 members."""
    observations = LINEAR_OPERATOR @ TRUE_PARAMETERS
    return CallableInverseProblem(free_parameters, observations, linear_forward_model, ensemble_size=20)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


# ============================================================================
# Column simulation double
# ============================================================================

class ReplayColumnSimulation:
    """Column model that replays the observations shifted by a per-member offset.

    Member ``i`` reports ``observed profile + offset_i`` for every field the
    scenario observes and ``offset_i`` for the others, so the discrepancy
    against the data is known in closed form.
    """

    def __init__(self, ensemble_size):
        self.ensemble_size = ensemble_size
        self.initialized = 0
        self.times = []

    def initialize_forward_run(self, observations, parameters, first_targets):
        self.observations = list(observations)
        self.offsets = np.array([p['offset'] for p in parameters], dtype=float)
        self.first_targets = np.asarray(first_targets)
        self.time_step = self.observations[0].time_intervals()[0]
        self.step = 0
        self.initialized += 1
        self.times = []

    def advance_to(self, time):
        self.times.append(time)
        self.step = int(round(time / self.time_step))

    def get_field(self, name):
        n_z = self.observations[0].n_z
        profiles = np.zeros((len(self.observations), n_z))
        for j, data in enumerate(self.observations):
            if name in data.fields:
                profiles[j] = data.field_at(name, self.first_targets[j] + self.step)
        return profiles[np.newaxis, :, :] + self.offsets[:, np.newaxis, np.newaxis]


@pytest.fixture
def replay_simulation():
    return ReplayColumnSimulation


def make_profiles(n_times, n_z, rng, fields=FIELD_NAMES):
    """Random column profiles for the given fields."""
    return {name: rng.normal(0.0, 1.0 + i, size=(n_times, n_z)) for i, name in enumerate(fields)}


@pytest.fixture
def profiles_factory():
    return make_profiles
