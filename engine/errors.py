"""
Exception hierarchy for the drawdown engine.

Every component fails immediately when a mandatory input is absent or
invalid. Nothing here is retried: the engine performs no I/O, so the
caller (the simulation driver) decides whether to abort a run or skip the
period.
"""


class RetirementError(Exception):
    """Base class for all engine errors."""


class ValidationError(RetirementError, ValueError):
    """An input failed validation (negative amount, malformed range, ...)."""

    def __init__(self, message, field_name=None):
        super().__init__(message)
        self.field_name = field_name


class MissingRequiredFieldError(ValidationError):
    """A mandatory argument was not supplied."""

    def __init__(self, field_name, message=None):
        super().__init__(message or f"{field_name} is required", field_name)


class CalculationError(RetirementError, ArithmeticError):
    """Internal arithmetic could not be carried out (e.g. ratio over an empty portfolio)."""


def require(value, field_name):
    """Return ``value`` or raise MissingRequiredFieldError when it is None."""
    if value is None:
        raise MissingRequiredFieldError(field_name)
    return value


def invalid_range(lower_name, lower, upper_name, upper):
    """Build the error raised when a lower bound exceeds its upper bound."""
    return ValidationError(
        f"{lower_name} ({lower}) cannot exceed {upper_name} ({upper})",
        lower_name,
    )
