"""
Arithmetic -- exact-decimal core for every money-bearing PAM computation.

Responsibility:
    Provides the only arithmetic surface the PAM engines may use: add,
    subtract, multiply, divide, percentage helpers, aggregations and the
    handful of transcendental functions PAM transforms need. Also defines
    ``DecimalPolicy``, the explicit precision/rounding configuration that is
    threaded through an execution instead of living in global state.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by the engines; imports nothing but the kernel exceptions.

Invariants enforced:
    - Decimal-only: ``to_decimal`` rejects ``float``; binary floating point
      never enters a calculation.
    - Division by zero raises ``DivisionByZeroError`` (never returns
      Infinity or NaN).
    - Rounding happens only where a caller asks for it via
      ``DecimalPolicy.quantize``; intermediate steps keep full context
      precision so rounding error does not compound.
    - Policy is explicit: ``DecimalPolicy.context()`` returns a fresh
      ``decimal.Context`` to be entered with ``decimal.localcontext``.
      The interpreter-wide default context is never modified.

Failure modes:
    - DivisionByZeroError for zero divisors.
    - DecimalOverflowError when a result leaves the context's exponent range
      or cannot be quantized within the configured precision.
    - InvalidArithmeticError for undefined results (log of a non-positive
      number, square root of a negative, empty average).
    - TypeError / ValueError for non-decimal inputs at the boundary.

Audit relevance:
    Identical inputs under an identical policy produce bit-identical
    Decimals. The approval and idempotency layers above the engine rely on
    this to compare recalculations against stored results.
"""

from __future__ import annotations

import decimal
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Context,
    Decimal,
    InvalidOperation,
)

from pam_kernel.exceptions import (
    DecimalOverflowError,
    DivisionByZeroError,
    InvalidArithmeticError,
    InvalidEngineSettingsError,
)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

ROUNDING_MODES: frozenset[str] = frozenset({
    ROUND_HALF_UP,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_UP,
    ROUND_DOWN,
    ROUND_CEILING,
    ROUND_FLOOR,
})

# Matches the DECIMAL(20,12) storage columns of the calculation results table.
DEFAULT_OUTPUT_PLACES = 12
DEFAULT_PRECISION = 28


@dataclass(frozen=True, slots=True)
class DecimalPolicy:
    """
    Precision and rounding configuration for one execution.

    Contract:
        ``precision`` is the number of significant digits carried by every
        intermediate result. ``rounding`` is the mode used both inside the
        context and when quantizing at output boundaries. ``output_places``
        is the number of fractional digits kept at output boundaries.

    Guarantees:
        - Immutable and hashable; safe to share across threads.
        - ``context()`` never returns a shared object.

    Non-goals:
        - Does NOT install itself globally; callers enter ``context()``.
    """

    precision: int = DEFAULT_PRECISION
    rounding: str = ROUND_HALF_UP
    output_places: int = DEFAULT_OUTPUT_PLACES

    def __post_init__(self) -> None:
        if isinstance(self.precision, bool) or not isinstance(self.precision, int):
            raise InvalidEngineSettingsError("precision", self.precision, "must be an integer")
        if self.precision < 1:
            raise InvalidEngineSettingsError("precision", self.precision, "must be >= 1")
        if self.rounding not in ROUNDING_MODES:
            raise InvalidEngineSettingsError(
                "rounding", self.rounding, f"must be one of {sorted(ROUNDING_MODES)}"
            )
        if isinstance(self.output_places, bool) or not isinstance(self.output_places, int):
            raise InvalidEngineSettingsError(
                "output_places", self.output_places, "must be an integer"
            )
        if not 0 <= self.output_places < self.precision:
            raise InvalidEngineSettingsError(
                "output_places", self.output_places, "must be >= 0 and below precision"
            )

    @property
    def quantum(self) -> Decimal:
        """Smallest representable step at the output boundary."""
        return ONE.scaleb(-self.output_places)

    def context(self) -> Context:
        """Build a fresh decimal context trapping overflow and invalid operations."""
        return Context(
            prec=self.precision,
            rounding=self.rounding,
            traps=[decimal.DivisionByZero, InvalidOperation, decimal.Overflow],
        )

    def quantize(self, value: Decimal) -> Decimal:
        """Round ``value`` to ``output_places`` using the policy rounding mode.

        Postconditions:
            - Returns a Decimal with exactly ``output_places`` fractional digits.

        Raises:
            DecimalOverflowError: if the quantized value needs more
                significant digits than ``precision`` allows.
        """
        with decimal.localcontext(self.context()):
            try:
                return value.quantize(self.quantum, rounding=self.rounding)
            except InvalidOperation as exc:
                raise DecimalOverflowError("quantize", self.precision) from exc

    def quantize_wide(self, value: Decimal) -> Decimal:
        """Round like ``quantize`` but widen the context to fit ``value``.

        Used for intermediate contributions, which are reported rather than
        returned as a price; only the output value is bound by ``precision``.
        """
        digits = max(self.precision, value.adjusted() + 1 + self.output_places)
        context = self.context()
        context.prec = digits
        return value.quantize(self.quantum, rounding=self.rounding, context=context)


DEFAULT_POLICY = DecimalPolicy()


@contextmanager
def _guarded(operation: str, operand: Decimal) -> Iterator[None]:
    """Translate decimal signals raised inside the block into kernel errors."""
    try:
        yield
    except decimal.DivisionByZero as exc:
        raise DivisionByZeroError(operation, str(operand)) from exc
    except decimal.Overflow as exc:
        raise DecimalOverflowError(operation, decimal.getcontext().prec) from exc
    except InvalidOperation as exc:
        raise InvalidArithmeticError(operation, str(operand)) from exc


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Convert a boundary value to Decimal.

    Preconditions:
        - ``value`` is a Decimal, an int, or a numeric string.

    Raises:
        TypeError: for float, bool, or any other type.
        ValueError: for strings that are not numbers, and for NaN/Infinity.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric value")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid decimal string: {value!r}") from e
    elif isinstance(value, float):
        raise TypeError(
            f"float {value!r} is not permitted in calculations; pass a str or Decimal"
        )
    else:
        raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")
    if not result.is_finite():
        raise ValueError(f"Non-finite decimal value: {value!r}")
    return result


# ---------------------------------------------------------------------------
# Basic arithmetic
# ---------------------------------------------------------------------------


def add(a: Decimal, b: Decimal) -> Decimal:
    with _guarded("add", a):
        return a + b


def subtract(a: Decimal, b: Decimal) -> Decimal:
    with _guarded("subtract", a):
        return a - b


def multiply(a: Decimal, b: Decimal) -> Decimal:
    with _guarded("multiply", a):
        return a * b


def divide(a: Decimal, b: Decimal) -> Decimal:
    """Divide ``a`` by ``b``; a zero divisor raises DivisionByZeroError."""
    if b == ZERO:
        raise DivisionByZeroError("divide", str(a))
    with _guarded("divide", a):
        return a / b


# ---------------------------------------------------------------------------
# Percentages
# ---------------------------------------------------------------------------


def percent_of(value: Decimal, percent: Decimal) -> Decimal:
    """``percent`` percent of ``value`` (percent_of(200, 5) == 10)."""
    return divide(multiply(value, percent), HUNDRED)


def apply_percent_delta(base: Decimal, percent: Decimal) -> Decimal:
    """Return ``base * (1 + percent/100)``."""
    return multiply(base, add(ONE, divide(percent, HUNDRED)))


def percent_delta(base: Decimal, value: Decimal) -> Decimal:
    """
    Signed change from ``base`` to ``value`` in percent.

    Raises:
        DivisionByZeroError: if ``base`` is zero.
    """
    if base == ZERO:
        raise DivisionByZeroError("percent_delta", str(value))
    return multiply(divide(subtract(value, base), base), HUNDRED)


def percentage_change(from_value: Decimal, to_value: Decimal) -> Decimal:
    """Change as a ratio (0.15 for a 15% increase)."""
    if from_value == ZERO:
        raise DivisionByZeroError("percentage_change", str(to_value))
    return divide(subtract(to_value, from_value), from_value)


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------


def total(values: Sequence[Decimal]) -> Decimal:
    result = ZERO
    for value in values:
        result = add(result, value)
    return result


def average(values: Sequence[Decimal]) -> Decimal:
    if not values:
        raise InvalidArithmeticError("average", "[]")
    return divide(total(values), Decimal(len(values)))


def weighted_average(values: Sequence[Decimal], weights: Sequence[Decimal]) -> Decimal:
    """
    Weighted average with weights that must sum to exactly one.

    Raises:
        ValueError: on length mismatch, empty input, or weights not summing to 1.
    """
    if len(values) != len(weights):
        raise ValueError(
            f"Values and weights must have the same length: {len(values)} != {len(weights)}"
        )
    if not values:
        raise ValueError("Cannot compute weighted average of empty sequences")
    weight_sum = total(weights)
    if weight_sum != ONE:
        raise ValueError(f"Weights must sum to 1, got {weight_sum}")
    result = ZERO
    for value, weight in zip(values, weights):
        result = add(result, multiply(value, weight))
    return result


def minimum(values: Sequence[Decimal]) -> Decimal:
    if not values:
        raise ValueError("Cannot find minimum of empty sequence")
    return min(values)


def maximum(values: Sequence[Decimal]) -> Decimal:
    if not values:
        raise ValueError("Cannot find maximum of empty sequence")
    return max(values)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    if value < low:
        return low
    if value > high:
        return high
    return value


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------


def power(a: Decimal, exponent: Decimal) -> Decimal:
    with _guarded("power", a):
        return a ** exponent


def square_root(a: Decimal) -> Decimal:
    if a < ZERO:
        raise InvalidArithmeticError("sqrt", str(a))
    with _guarded("sqrt", a):
        return a.sqrt()


def natural_log(a: Decimal) -> Decimal:
    if a <= ZERO:
        raise InvalidArithmeticError("log", str(a))
    with _guarded("log", a):
        return a.ln()


def exponential(a: Decimal) -> Decimal:
    with _guarded("exp", a):
        return a.exp()


def ceiling(a: Decimal) -> Decimal:
    return a.to_integral_value(rounding=ROUND_CEILING)


def floor_value(a: Decimal) -> Decimal:
    return a.to_integral_value(rounding=ROUND_FLOOR)


def round_places(a: Decimal, places: int, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round to ``places`` fractional digits (0 rounds to an integer)."""
    with _guarded("round", a):
        return a.quantize(ONE.scaleb(-places), rounding=rounding)
