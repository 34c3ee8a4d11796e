"""
Custom exception hierarchy for ekical.

This module defines a hierarchy of exceptions that provide clear, specific
error types for the failure modes of a calibration run.
"""

import logging
from contextlib import contextmanager
from typing import Optional


class EKICalError(Exception):
    """
    Base exception for all ekical-specific errors.

    All custom exceptions in ekical inherit from this class, so every
    calibration failure can be caught with a single except clause.
    """
    pass


class ConfigurationError(EKICalError):
    """
    Configuration-related errors.

    Raised when:
    - The observation noise covariance has a malformed shape
    - Observation scenarios have non-uniform or mismatched time steps
    - An ensemble member is dropped twice or does not exist
    - Unscented-only postprocessing is requested for an ensemble inversion
    - A prior or configuration value is invalid
    """
    pass


class ValidationError(EKICalError):
    """
    Data or parameter validation failures.

    Raised when:
    - Arrays handed to the inversion have inconsistent shapes
    - A forward map returns output of the wrong size
    """
    pass


class ParameterDomainError(ValidationError, ValueError):
    """
    A parameter transform received a value outside its valid domain.

    Raised when:
    - A non-positive value enters a log-normal forward transform
    - A value outside (lower_bound, upper_bound) enters a constrained transform
    - A log-normal fit is requested for a non-positive mean
    """
    pass


class InversionError(EKICalError):
    """
    Runtime failures while iterating an inversion.
    """
    pass


class ForwardMapError(InversionError):
    """
    Forward map or simulation failure during an iteration.

    Raised when:
    - The simulation raises while evaluating an ensemble
    - The forward map cannot produce outputs for the current parameters
    """
    pass


# =============================================================================
# Validation Helpers
# =============================================================================


def require(condition: bool, message: str, error_type: type = None) -> None:
    """
    Validate a condition, raising an exception if it fails.

    Args:
        condition: The condition that must be True
        message: Error message if condition is False
        error_type: Exception type to raise (default: ValidationError)

    Raises:
        ValidationError (or specified error_type) if condition is False

    Example:
        >>> require(iterations >= 0, "iterations must be non-negative", ConfigurationError)
    """
    if error_type is None:
        error_type = ValidationError
    if not condition:
        raise error_type(message)


@contextmanager
def inversion_error_handler(
    operation: str,
    logger: Optional[logging.Logger] = None,
    error_type: type = InversionError
):
    """
    Context manager for standardized error handling.

    ekical errors are logged and re-raised as-is; any other exception is
    converted to ``error_type`` with the original chained as its cause.

    Args:
        operation: Description of the operation being performed (for logging)
        logger: Logger instance for error messages. If None, errors are not logged.
        error_type: ekical exception type to convert generic exceptions to

    Example:
        >>> with inversion_error_handler("forward map", logger, error_type=ForwardMapError):
        ...     outputs = forward_map(parameters)
    """
    try:
        yield
    except EKICalError:
        if logger:
            logger.error(f"Error during {operation}", exc_info=True)
        raise
    except Exception as e:
        if logger:
            logger.error(f"Error during {operation}: {e}", exc_info=True)
        raise error_type(f"Failed during {operation}: {e}") from e


__all__ = [
    'EKICalError',
    'ConfigurationError',
    'ValidationError',
    'ParameterDomainError',
    'InversionError',
    'ForwardMapError',
    'require',
    'inversion_error_handler',
]
