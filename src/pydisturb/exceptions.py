"""
Custom exceptions for pydisturb.
Provides domain-specific error handling with informative messages.
"""
from typing import Iterable, Tuple


class DisturbanceError(Exception):
    """Base exception for all pydisturb errors."""
    pass


class ConfigurationError(DisturbanceError):
    """Raised when there are configuration-related issues."""
    pass


class ParameterError(DisturbanceError):
    """Raised when parameters are invalid or out of bounds."""
    pass


class InvalidParameterError(ParameterError):
    """Raised when a parameter value is invalid."""
    def __init__(self, param_name: str, value: object, reason: str = ""):
        self.param_name = param_name
        self.value = value
        self.reason = reason
        message = f"Invalid value for parameter '{param_name}': {value}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ParameterClassNotFoundError(ParameterError):
    """Raised when a core references a disturbance-parameter class that is not in the lookup table."""
    def __init__(self, dist_param: object, available: Iterable = ()):
        self.dist_param = dist_param
        self.available = sorted(str(a) for a in available)
        super().__init__(f"Disturbance parameter class '{dist_param}' not found. "
                         f"Available classes: {self.available[:10]}")


class DataError(DisturbanceError):
    """Raised when there are data-related issues."""
    pass


class MissingTableError(DataError):
    """Raised when the set of input tables does not match what a stage requires."""
    def __init__(self, required: Tuple[str, ...], missing: Iterable[str] = (),
                 unexpected: Iterable[str] = ()):
        self.required = tuple(required)
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        message = f"Expected exactly the tables {list(self.required)}"
        if self.missing:
            message += f"; missing: {self.missing}"
        if self.unexpected:
            message += f"; unexpected: {self.unexpected}"
        super().__init__(message)


class MissingColumnError(DataError):
    """Raised when a table lacks one or more required columns."""
    def __init__(self, table: str, columns: Iterable[str]):
        self.table = table
        self.columns = sorted(columns)
        super().__init__(f"Table '{table}' is missing required columns: {self.columns}")


class InvalidDataError(DataError):
    """Raised when data is malformed or invalid."""
    def __init__(self, data_description: str, reason: str):
        self.data_description = data_description
        self.reason = reason
        super().__init__(f"Invalid {data_description}: {reason}")


# Validation utilities
def validate_positive(value: float, param_name: str) -> float:
    """Validate that a value is positive.

    Args:
        value: Value to validate
        param_name: Parameter name for error message

    Returns:
        The validated value

    Raises:
        InvalidParameterError: If value is not positive
    """
    if value <= 0:
        raise InvalidParameterError(param_name, value, "must be positive")
    return value


def validate_non_negative(value: float, param_name: str) -> float:
    """Validate that a value is zero or positive."""
    if value < 0:
        raise InvalidParameterError(param_name, value, "must not be negative")
    return value


def validate_range(value: float, min_val: float, max_val: float, param_name: str) -> float:
    """Validate that a value is within a specific range.

    Args:
        value: Value to validate
        min_val: Minimum allowed value
        max_val: Maximum allowed value
        param_name: Parameter name for error message

    Returns:
        The validated value

    Raises:
        InvalidParameterError: If value is outside the range
    """
    if not min_val <= value <= max_val:
        raise InvalidParameterError(
            param_name, value,
            f"must be between {min_val} and {max_val}"
        )
    return value


def validate_year_range(years: Tuple[int, int], param_name: str) -> Tuple[int, int]:
    """Validate an inclusive ``(first, last)`` calendar year range."""
    if len(years) != 2:
        raise InvalidParameterError(param_name, years, "must be a (first, last) pair")
    first, last = int(years[0]), int(years[1])
    if first > last:
        raise InvalidParameterError(param_name, years, "first year must not exceed last year")
    return first, last
