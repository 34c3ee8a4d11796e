"""Core utilities: exceptions, constants and configuration."""

from .constants import FIELD_NAMES, FieldNames, InversionDefaults
from .exceptions import (
    ConfigurationError,
    EKICalError,
    ForwardMapError,
    InversionError,
    ParameterDomainError,
    ValidationError,
    inversion_error_handler,
    require,
)

__all__ = [
    'FIELD_NAMES',
    'FieldNames',
    'InversionDefaults',
    'EKICalError',
    'ConfigurationError',
    'ValidationError',
    'ParameterDomainError',
    'InversionError',
    'ForwardMapError',
    'inversion_error_handler',
    'require',
]
