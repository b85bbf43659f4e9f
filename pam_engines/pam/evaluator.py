"""
Module: pam_engines.pam.evaluator
Responsibility:
    Compute the value of a single PAM node from its ordered input values and
    the evaluation context. One handler per node type, dispatched by an
    exhaustive ``match`` over the config variant.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Called by ``PamExecutor`` once per node in topological order. Unit and
    FX lookups go through injected collaborators.

Invariants enforced:
    - Arity: Factor 0; Transform, Convert, Output exactly 1; Combine at
      least 1 (subtract and divide at least 2); Controls 1 or 2.
    - Inputs are consumed in predecessor (edge declaration) order.
    - No silent fallback: a missing reference never becomes zero.
    - Decimal-only arithmetic through ``pam_kernel.domain.arithmetic``.

Failure modes:
    - InvalidArityError, UnknownOperationError, UnresolvedReferenceError,
      WeightMismatchError, InvalidNodeConfigError, IncompatibleUnitsError,
      InvalidControlsConfigError, and the kernel arithmetic errors.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import assert_never

from pam_kernel.domain.arithmetic import (
    DEFAULT_POLICY,
    ONE,
    DecimalPolicy,
    average,
    ceiling,
    divide,
    exponential,
    floor_value,
    maximum,
    minimum,
    multiply,
    natural_log,
    percentage_change,
    power,
    round_places,
    square_root,
    subtract,
    total,
    weighted_average,
)
from pam_kernel.exceptions import (
    ConversionError,
    FxRateNotFoundError,
    IncompatibleUnitsError,
    InvalidArityError,
    InvalidNodeConfigError,
    UnitCategoryMismatchError,
    UnknownOperationError,
    UnresolvedReferenceError,
    WeightMismatchError,
)
from pam_engines.conversions import UnitConverter
from pam_engines.pam.context import EvaluationContext
from pam_engines.pam.controls import ControlsOutcome, apply_controls
from pam_engines.pam.nodes import (
    WINDOW_PERIODS,
    CombineConfig,
    CombineOperation,
    ControlsConfig,
    ConvertBasis,
    ConvertConfig,
    ConvertKind,
    FactorConfig,
    FactorOperation,
    Node,
    OutputConfig,
    TransformConfig,
    TransformFunction,
)
from pam_engines.pam.resolvers import FxRateService, UnitConversionService

_MASS = "mass"
_VOLUME = "volume"


@dataclass(frozen=True)
class NodeEvaluation:
    """Value of one node, plus the Controls breakdown for Controls nodes."""

    value: Decimal
    controls: ControlsOutcome | None = None


def _check_arity(node: Node, inputs: Sequence[Decimal], expected: str, ok: bool) -> None:
    if not ok:
        raise InvalidArityError(node.id, node.type.value, expected, len(inputs))


class NodeEvaluator:
    """
    Evaluates individual nodes.

    Contract:
        ``evaluate(node, inputs, context)`` returns the node's value given
        its input values in predecessor order. The caller is expected to
        have entered ``decimal.localcontext(policy.context())``.

    Guarantees:
        - Stateless between calls; one evaluator may serve many executions.

    Non-goals:
        - Graph traversal and memoization (see ``PamExecutor``).
        - Fetching series values; those arrive through the context.
    """

    def __init__(
        self,
        policy: DecimalPolicy = DEFAULT_POLICY,
        fx_rates: FxRateService | None = None,
        units: UnitConversionService | None = None,
    ):
        self._policy = policy
        self._fx_rates = fx_rates
        self._units: UnitConversionService = units if units is not None else UnitConverter()

    def evaluate(
        self,
        node: Node,
        inputs: Sequence[Decimal],
        context: EvaluationContext,
    ) -> NodeEvaluation:
        config = node.config
        match config:
            case FactorConfig():
                _check_arity(node, inputs, "0", not inputs)
                return NodeEvaluation(self._factor(node.id, config, context))
            case TransformConfig():
                _check_arity(node, inputs, "1", len(inputs) == 1)
                return NodeEvaluation(self._transform(node.id, config, inputs[0], context))
            case ConvertConfig():
                _check_arity(node, inputs, "1", len(inputs) == 1)
                return NodeEvaluation(self._convert(node.id, config, inputs[0], context))
            case CombineConfig():
                return NodeEvaluation(self._combine(node, config, inputs))
            case ControlsConfig():
                _check_arity(node, inputs, "1 or 2", len(inputs) in (1, 2))
                outcome = self._controls(node.id, config, inputs, context)
                return NodeEvaluation(outcome.value, outcome)
            case OutputConfig():
                _check_arity(node, inputs, "1", len(inputs) == 1)
                return NodeEvaluation(inputs[0])
            case _:
                assert_never(config)

    # -- Factor --------------------------------------------------------------

    def _factor(
        self, node_id: str, config: FactorConfig, context: EvaluationContext
    ) -> Decimal:
        if config.value is not None:
            return config.value
        series = config.series
        if series is None:
            raise InvalidNodeConfigError(node_id, "Factor node has neither value nor series")

        if config.operation is FactorOperation.VALUE and config.lag_periods == 0:
            value = context.resolve(series)
            if value is not None:
                return value
            if config.default is not None:
                return config.default
            raise UnresolvedReferenceError(node_id, series, "not present in context")

        observations = context.history_for(series)
        if not observations:
            if config.default is not None:
                return config.default
            raise UnresolvedReferenceError(node_id, series, "no history in context")

        end = len(observations) - config.lag_periods
        if end <= 0:
            raise UnresolvedReferenceError(
                node_id,
                series,
                f"lag of {config.lag_periods} periods exceeds {len(observations)} observations",
            )

        match config.operation:
            case FactorOperation.VALUE:
                return observations[end - 1]
            case FactorOperation.AVG_3M | FactorOperation.AVG_6M | FactorOperation.AVG_12M:
                periods = WINDOW_PERIODS[config.operation]
                if end < periods:
                    raise UnresolvedReferenceError(
                        node_id,
                        series,
                        f"{config.operation.value} needs {periods} observations, have {end}",
                    )
                return average(observations[end - periods:end])
            case FactorOperation.MIN:
                return minimum(observations[:end])
            case FactorOperation.MAX:
                return maximum(observations[:end])
            case _:
                assert_never(config.operation)

    # -- Transform -----------------------------------------------------------

    def _transform(
        self,
        node_id: str,
        config: TransformConfig,
        value: Decimal,
        context: EvaluationContext,
    ) -> Decimal:
        try:
            function = TransformFunction(config.function.lower())
        except ValueError:
            raise UnknownOperationError(node_id, config.function) from None

        match function:
            case TransformFunction.ABS:
                return abs(value)
            case TransformFunction.CEIL:
                return ceiling(value)
            case TransformFunction.FLOOR:
                return floor_value(value)
            case TransformFunction.ROUND:
                return round_places(value, config.decimals or 0, self._policy.rounding)
            case TransformFunction.LOG:
                return natural_log(value)
            case TransformFunction.EXP:
                return exponential(value)
            case TransformFunction.SQRT:
                return square_root(value)
            case TransformFunction.POW:
                if config.exponent is None:
                    raise InvalidNodeConfigError(node_id, "pow requires params.exponent")
                return power(value, config.exponent)
            case TransformFunction.PERCENT_CHANGE:
                return percentage_change(self._change_base(node_id, config, context), value)
            case _:
                assert_never(function)

    @staticmethod
    def _change_base(node_id: str, config: TransformConfig, context: EvaluationContext) -> Decimal:
        if config.base_value is not None:
            return config.base_value
        if config.base_ref is not None:
            base = context.resolve(config.base_ref)
            if base is None:
                raise UnresolvedReferenceError(node_id, config.base_ref, "not present in context")
            return base
        raise InvalidNodeConfigError(
            node_id, "percent_change requires params.baseValue or params.baseRef"
        )

    # -- Convert -------------------------------------------------------------

    def _convert(
        self,
        node_id: str,
        config: ConvertConfig,
        value: Decimal,
        context: EvaluationContext,
    ) -> Decimal:
        match config.kind:
            case ConvertKind.UNIT:
                if config.conversion_factor is not None:
                    factor = config.conversion_factor
                    if config.basis is ConvertBasis.PRICE:
                        return divide(value, factor)
                    return multiply(value, factor)
                if config.basis is ConvertBasis.PRICE:
                    # Price per from-unit times from-units per to-unit.
                    per_target = self._quantity(node_id, config, ONE, config.to_unit, config.from_unit)
                    return multiply(value, per_target)
                return self._quantity(node_id, config, value, config.from_unit, config.to_unit)
            case ConvertKind.CURRENCY:
                return multiply(value, self._fx_rate(node_id, config, context))
            case _:
                assert_never(config.kind)

    def _quantity(
        self,
        node_id: str,
        config: ConvertConfig,
        value: Decimal,
        from_unit: str,
        to_unit: str,
    ) -> Decimal:
        try:
            try:
                return self._units.convert(value, from_unit, to_unit)
            except UnitCategoryMismatchError as mismatch:
                categories = (mismatch.from_category, mismatch.to_category)
                if categories == (_VOLUME, _MASS):
                    return self._units.volume_to_mass(
                        value, from_unit, to_unit, config.density, config.product
                    )
                if categories == (_MASS, _VOLUME):
                    return self._units.mass_to_volume(
                        value, from_unit, to_unit, config.density, config.product
                    )
                raise
        except ConversionError as e:
            raise IncompatibleUnitsError(node_id, from_unit, to_unit, str(e)) from e

    def _fx_rate(self, node_id: str, config: ConvertConfig, context: EvaluationContext) -> Decimal:
        pair = f"{config.from_unit}/{config.to_unit}"
        if config.from_unit == config.to_unit:
            return ONE
        if config.fixed_rate is not None:
            return config.fixed_rate
        if config.fx_series is not None:
            rate = context.resolve(config.fx_series)
            if rate is None:
                raise UnresolvedReferenceError(node_id, config.fx_series, f"FX rate for {pair}")
            return rate
        if self._fx_rates is None:
            raise UnresolvedReferenceError(node_id, pair, "no FX rate source configured")
        try:
            return self._fx_rates.rate(
                config.from_unit, config.to_unit, config.fx_policy, context.as_of
            )
        except FxRateNotFoundError as e:
            raise UnresolvedReferenceError(node_id, pair, str(e)) from e

    # -- Combine -------------------------------------------------------------

    def _combine(self, node: Node, config: CombineConfig, inputs: Sequence[Decimal]) -> Decimal:
        try:
            operation = CombineOperation(config.operation.lower())
        except ValueError:
            raise UnknownOperationError(node.id, config.operation) from None

        if operation in (CombineOperation.SUBTRACT, CombineOperation.DIVIDE):
            _check_arity(node, inputs, ">= 2", len(inputs) >= 2)
        else:
            _check_arity(node, inputs, ">= 1", len(inputs) >= 1)

        values = list(inputs)
        match operation:
            case CombineOperation.ADD:
                return total(values)
            case CombineOperation.SUBTRACT:
                result = values[0]
                for v in values[1:]:
                    result = subtract(result, v)
                return result
            case CombineOperation.MULTIPLY:
                result = ONE
                for v in values:
                    result = multiply(result, v)
                return result
            case CombineOperation.DIVIDE:
                result = values[0]
                for v in values[1:]:
                    result = divide(result, v)
                return result
            case CombineOperation.AVERAGE:
                return average(values)
            case CombineOperation.WEIGHTED_AVERAGE:
                return self._weighted_average(node.id, config, values)
            case CombineOperation.MIN:
                return minimum(values)
            case CombineOperation.MAX:
                return maximum(values)
            case _:
                assert_never(operation)

    @staticmethod
    def _weighted_average(node_id: str, config: CombineConfig, values: list[Decimal]) -> Decimal:
        weights = config.weights
        if weights is None:
            raise InvalidNodeConfigError(node_id, "weighted_average requires weights")
        if len(weights) != len(values):
            raise WeightMismatchError(node_id, len(weights), len(values))
        weight_sum = total(list(weights))
        if weight_sum != ONE:
            raise InvalidNodeConfigError(node_id, f"weights must sum to 1, got {weight_sum}")
        return weighted_average(values, list(weights))

    # -- Controls ------------------------------------------------------------

    def _controls(
        self,
        node_id: str,
        config: ControlsConfig,
        inputs: Sequence[Decimal],
        context: EvaluationContext,
    ) -> ControlsOutcome:
        calculated = inputs[0]
        if len(inputs) == 2:
            base = inputs[1]
        else:
            base = context.effective_base_price
            if base is None:
                raise UnresolvedReferenceError(
                    node_id, "basePrice", "single-input Controls node needs a context base price"
                )
        return apply_controls(base, calculated, config, self._policy, node_id)
