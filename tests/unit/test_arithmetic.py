"""
Tests for the decimal arithmetic core.

Covers:
- Boundary conversion (floats rejected)
- Division and percentage helpers
- Aggregations and weighted average validation
- Transcendental helpers and rounding
- DecimalPolicy validation, context and quantization
"""

import decimal
from decimal import ROUND_HALF_EVEN, Decimal

import pytest

from pam_kernel.domain.arithmetic import (
    DEFAULT_POLICY,
    DecimalPolicy,
    apply_percent_delta,
    average,
    ceiling,
    clamp,
    divide,
    floor_value,
    maximum,
    minimum,
    multiply,
    natural_log,
    percent_delta,
    percent_of,
    percentage_change,
    power,
    round_places,
    square_root,
    to_decimal,
    total,
    weighted_average,
)
from pam_kernel.exceptions import (
    DecimalOverflowError,
    DivisionByZeroError,
    InvalidArithmeticError,
    InvalidEngineSettingsError,
)


class TestToDecimal:
    """Boundary conversion into Decimal."""

    def test_accepts_decimal_int_and_string(self):
        assert to_decimal(Decimal("1.50")) == Decimal("1.50")
        assert to_decimal(7) == Decimal("7")
        assert to_decimal(" 2.25 ") == Decimal("2.25")

    def test_rejects_float(self):
        with pytest.raises(TypeError, match="float"):
            to_decimal(1.5)

    def test_rejects_bool(self):
        with pytest.raises(TypeError):
            to_decimal(True)

    def test_rejects_garbage_string(self):
        with pytest.raises(ValueError):
            to_decimal("abc")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_rejects_non_finite(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestDivisionAndPercent:
    """Division and percentage helpers."""

    def test_divide(self):
        assert divide(Decimal("10"), Decimal("4")) == Decimal("2.5")

    def test_divide_by_zero_raises(self):
        with pytest.raises(DivisionByZeroError) as exc_info:
            divide(Decimal("10"), Decimal("0"))
        assert exc_info.value.code == "DIVISION_BY_ZERO"
        assert exc_info.value.dividend == "10"

    def test_percent_of(self):
        assert percent_of(Decimal("200"), Decimal("5")) == Decimal("10")

    def test_apply_percent_delta(self):
        assert apply_percent_delta(Decimal("100"), Decimal("5")) == Decimal("105")
        assert apply_percent_delta(Decimal("100"), Decimal("-2.5")) == Decimal("97.5")

    def test_percent_delta(self):
        assert percent_delta(Decimal("100"), Decimal("110")) == Decimal("10")
        assert percent_delta(Decimal("200"), Decimal("190")) == Decimal("-5")

    def test_percent_delta_zero_base(self):
        with pytest.raises(DivisionByZeroError):
            percent_delta(Decimal("0"), Decimal("5"))

    def test_percentage_change_is_ratio(self):
        assert percentage_change(Decimal("100"), Decimal("115")) == Decimal("0.15")


class TestAggregations:
    """Sums, averages, extremes."""

    def test_total_and_average(self):
        values = [Decimal("1"), Decimal("2"), Decimal("3")]
        assert total(values) == Decimal("6")
        assert average(values) == Decimal("2")

    def test_average_of_empty_raises(self):
        with pytest.raises(InvalidArithmeticError):
            average([])

    def test_weighted_average(self):
        result = weighted_average(
            [Decimal("100"), Decimal("200")], [Decimal("0.6"), Decimal("0.4")]
        )
        assert result == Decimal("140")

    def test_weighted_average_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            weighted_average([Decimal("1")], [Decimal("0.5"), Decimal("0.5")])

    def test_weighted_average_weights_must_sum_to_one(self):
        with pytest.raises(ValueError, match="sum to 1"):
            weighted_average(
                [Decimal("1"), Decimal("2")], [Decimal("0.5"), Decimal("0.4")]
            )

    def test_min_max_clamp(self):
        values = [Decimal("3"), Decimal("-1"), Decimal("2")]
        assert minimum(values) == Decimal("-1")
        assert maximum(values) == Decimal("3")
        assert clamp(Decimal("7"), Decimal("0"), Decimal("5")) == Decimal("5")
        assert clamp(Decimal("-7"), Decimal("0"), Decimal("5")) == Decimal("0")
        assert clamp(Decimal("2"), Decimal("0"), Decimal("5")) == Decimal("2")


class TestTransforms:
    """Power, roots, logs, rounding."""

    def test_power(self):
        assert power(Decimal("2"), Decimal("10")) == Decimal("1024")

    def test_square_root(self):
        assert square_root(Decimal("16")) == Decimal("4")

    def test_square_root_of_negative(self):
        with pytest.raises(InvalidArithmeticError):
            square_root(Decimal("-1"))

    @pytest.mark.parametrize("value", ["0", "-3"])
    def test_log_of_non_positive(self, value):
        with pytest.raises(InvalidArithmeticError) as exc_info:
            natural_log(Decimal(value))
        assert exc_info.value.operation == "log"

    def test_ceiling_and_floor(self):
        assert ceiling(Decimal("1.2")) == Decimal("2")
        assert floor_value(Decimal("-1.2")) == Decimal("-2")

    def test_round_places_half_up(self):
        assert round_places(Decimal("123.456"), 2) == Decimal("123.46")
        assert round_places(Decimal("2.5"), 0) == Decimal("3")

    def test_round_places_half_even(self):
        assert round_places(Decimal("2.5"), 0, ROUND_HALF_EVEN) == Decimal("2")


class TestDecimalPolicy:
    """Explicit precision/rounding policy."""

    def test_defaults(self):
        assert DEFAULT_POLICY.precision == 28
        assert DEFAULT_POLICY.output_places == 12
        assert DEFAULT_POLICY.quantum == Decimal("1E-12")

    def test_quantize_uses_output_places(self):
        assert str(DEFAULT_POLICY.quantize(Decimal("1.23456789012345"))) == "1.234567890123"

    def test_quantize_rounding_mode(self):
        half_up = DecimalPolicy(output_places=2)
        half_even = DecimalPolicy(rounding=ROUND_HALF_EVEN, output_places=2)
        assert half_up.quantize(Decimal("2.345")) == Decimal("2.35")
        assert half_even.quantize(Decimal("2.345")) == Decimal("2.34")

    def test_quantize_beyond_precision_raises(self):
        policy = DecimalPolicy(precision=5, output_places=2)
        with pytest.raises(DecimalOverflowError):
            policy.quantize(Decimal("123456"))

    def test_quantize_wide_fits_large_values(self):
        policy = DecimalPolicy(precision=5, output_places=2)
        assert str(policy.quantize_wide(Decimal("123456.789"))) == "123456.79"
        assert str(policy.quantize_wide(Decimal("1.005"))) == "1.01"

    def test_context_is_fresh(self):
        assert DEFAULT_POLICY.context() is not DEFAULT_POLICY.context()
        assert DEFAULT_POLICY.context().prec == 28

    def test_overflow_inside_policy_context(self):
        with decimal.localcontext(DEFAULT_POLICY.context()):
            with pytest.raises(DecimalOverflowError):
                multiply(Decimal("9E+999999"), Decimal("10"))

    def test_policy_does_not_touch_global_context(self):
        before = decimal.getcontext().prec
        with decimal.localcontext(DecimalPolicy(precision=10, output_places=2).context()):
            assert decimal.getcontext().prec == 10
        assert decimal.getcontext().prec == before

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"precision": 0}, "precision"),
            ({"rounding": "ROUND_BANKERS"}, "rounding"),
            ({"precision": 12, "output_places": 12}, "output_places"),
            ({"output_places": -1}, "output_places"),
        ],
    )
    def test_invalid_policy(self, kwargs, field):
        with pytest.raises(InvalidEngineSettingsError) as exc_info:
            DecimalPolicy(**kwargs)
        assert exc_info.value.field == field
