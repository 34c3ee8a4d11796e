"""
Default values and fixed vocabularies for ekical.

Centralizes the constants shared by the inversion driver, the
ensemble-process implementation and the loss function.
"""

from typing import Tuple


class InversionDefaults:
    """
    Defaults for ensemble and unscented Kalman inversion.
    """

    NOISE_COVARIANCE = 1e-2
    """Scalar observation noise variance used when none is supplied."""

    ENSEMBLE_SEED = 41
    """Seed of the generator that draws the initial ensemble."""

    ALPHA_REG = 1.0
    """UKI regularization toward the prior mean (1.0 = no regularization)."""

    UPDATE_FREQ = 0
    """UKI covariance refresh period (0 = non-identifiable problem mode)."""

    OBS_NOISE_SCALE = 2.0
    """UKI inflation of the observation noise used in the analysis step."""


class FieldNames:
    """
    Physical fields compared by the loss function.

    The set is closed: u and v are horizontal velocity components, b is
    buoyancy and e is turbulent kinetic energy.
    """

    U = 'u'
    V = 'v'
    B = 'b'
    E = 'e'

    ALL: Tuple[str, ...] = (U, V, B, E)


FIELD_NAMES = FieldNames.ALL


__all__ = [
    'InversionDefaults',
    'FieldNames',
    'FIELD_NAMES',
]
