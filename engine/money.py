"""
Fixed-point helpers shared by every calculator.

Currency is carried as ``Decimal`` at 2 places with ROUND_HALF_UP. Rates and
inflation multipliers keep 10 places so that multi-decade compounding stays
reproducible from run to run.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from engine.errors import CalculationError, MissingRequiredFieldError, ValidationError

ZERO = Decimal("0")
ONE = Decimal("1")
CENTS = Decimal("0.01")
RATE_SCALE = 10
_RATE_QUANTUM = Decimal(1).scaleb(-RATE_SCALE)


def to_decimal(value, field_name="value"):
    """Coerce ints, strings and floats to Decimal without binary-float noise."""
    if value is None:
        raise MissingRequiredFieldError(field_name)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be numeric, got a boolean", field_name)
    try:
        if isinstance(value, float):
            return Decimal(repr(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} is not a number: {value!r}", field_name) from exc


def to_currency(value):
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_rate(value, places=RATE_SCALE):
    """Round an intermediate rate or multiplier to ``places`` decimals."""
    quantum = _RATE_QUANTUM if places == RATE_SCALE else Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def divide(numerator, denominator, places=RATE_SCALE):
    """Divide and round half-up; a zero denominator is a calculation failure."""
    denominator = to_decimal(denominator, "denominator")
    if denominator == ZERO:
        raise CalculationError(f"cannot divide {numerator} by zero")
    return to_rate(to_decimal(numerator, "numerator") / denominator, places)


def power(base, exponent, places=RATE_SCALE):
    """
    Raise ``base`` to a non-negative integer power.

    The product is computed exactly by repeated squaring and rounded once at
    the end, so (1 + inflation) ** years does not drift with the horizon.
    """
    if exponent < 0:
        raise ValidationError(f"exponent must be non-negative, got {exponent}", "exponent")
    base = to_decimal(base, "base")
    result = ONE
    while exponent:
        if exponent & 1:
            result *= base
        base *= base
        exponent >>= 1
    return to_rate(result, places)


def clamp(value, floor=None, ceiling=None):
    """Bound ``value`` by optional floor and ceiling."""
    if floor is not None and value < floor:
        return floor
    if ceiling is not None and value > ceiling:
        return ceiling
    return value


def plain(value, places=2):
    """Format a Decimal for plan metadata ("2000.00", "0.0400")."""
    if places is None:
        return format(to_decimal(value), "f")
    return format(to_rate(value, places), "f")


def rate_text(value):
    """Format a configured rate exactly as given ("0.04", "0.025")."""
    return format(to_decimal(value), "f")
