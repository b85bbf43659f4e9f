"""
Module: pam_engines.pam.nodes
Responsibility:
    Immutable node model for PAM graphs: the node-type enum, one frozen
    config dataclass per node type, and the parsing/serialization between
    those dataclasses and the stored JSON definition format.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imported by ``pam_engines.pam.graph`` and the evaluator.

Invariants enforced:
    - Closed union: ``NodeConfig`` has exactly one variant per node type and
      ``Node.type`` is derived from the variant, so a node can never carry a
      config of the wrong kind.
    - Immutability: every config is a frozen dataclass; sequences are tuples.
    - Decimal-only: numeric config values are converted to ``Decimal`` at the
      definition boundary; JSON/YAML floats go through ``str()`` first so the
      stored literal (``1.05``) is what enters the calculation.

Failure modes:
    - InvalidNodeDefinitionError for unknown node types, missing required
      keys, non-numeric values and unknown enum tags on structural fields.
    - Transform functions and Combine operations are NOT validated here;
      an unknown tag survives parsing and fails at evaluation time with
      UnknownOperationError, naming the node that carries it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, assert_never

from pam_kernel.exceptions import InvalidNodeDefinitionError


class NodeType(str, Enum):
    """Kind of a PAM graph node."""

    FACTOR = "factor"
    TRANSFORM = "transform"
    CONVERT = "convert"
    COMBINE = "combine"
    CONTROLS = "controls"
    OUTPUT = "output"


class FactorOperation(str, Enum):
    """How a Factor reads its series."""

    VALUE = "value"  # Latest value
    AVG_3M = "avg_3m"
    AVG_6M = "avg_6m"
    AVG_12M = "avg_12m"
    MIN = "min"
    MAX = "max"


WINDOW_PERIODS: dict[FactorOperation, int] = {
    FactorOperation.AVG_3M: 3,
    FactorOperation.AVG_6M: 6,
    FactorOperation.AVG_12M: 12,
}


class TransformFunction(str, Enum):
    """Single-input transformations."""

    ABS = "abs"
    CEIL = "ceil"
    FLOOR = "floor"
    ROUND = "round"
    LOG = "log"
    EXP = "exp"
    SQRT = "sqrt"
    POW = "pow"
    PERCENT_CHANGE = "percent_change"


class CombineOperation(str, Enum):
    """Multi-input folds."""

    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    AVERAGE = "average"
    WEIGHTED_AVERAGE = "weighted_average"
    MIN = "min"
    MAX = "max"


class ConvertKind(str, Enum):
    UNIT = "unit"
    CURRENCY = "currency"


class ConvertBasis(str, Enum):
    """Whether a unit conversion applies to a quantity or to a per-unit price."""

    QUANTITY = "quantity"
    PRICE = "price"


class FxPolicy(str, Enum):
    """Which FX rate the FX collaborator should return."""

    PERIOD_AVG = "PERIOD_AVG"
    EOP = "EOP"
    EFFECTIVE_DATE = "EFFECTIVE_DATE"


class SpikeDirection(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    BOTH = "both"


# ---------------------------------------------------------------------------
# Config variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FactorConfig:
    """
    Constant value or reference into the evaluation context.

    Exactly one of ``value`` and ``series`` is set. ``default`` is used only
    when ``series`` cannot be resolved; it is never implied.
    """

    value: Decimal | None = None
    series: str | None = None
    default: Decimal | None = None
    operation: FactorOperation = FactorOperation.VALUE
    lag_periods: int = 0


@dataclass(frozen=True)
class TransformConfig:
    function: str
    exponent: Decimal | None = None
    decimals: int | None = None
    base_value: Decimal | None = None
    base_ref: str | None = None


@dataclass(frozen=True)
class ConvertConfig:
    """
    Unit or currency conversion of a single input.

    Unit conversions use ``conversion_factor`` when given, otherwise the
    unit collaborator (with ``density`` or the standard density of
    ``product`` for mass/volume). Currency conversions use ``fixed_rate``,
    then ``fx_series`` from the context, then the FX collaborator.
    """

    kind: ConvertKind
    from_unit: str
    to_unit: str
    conversion_factor: Decimal | None = None
    density: Decimal | None = None
    product: str | None = None
    basis: ConvertBasis = ConvertBasis.QUANTITY
    fixed_rate: Decimal | None = None
    fx_series: str | None = None
    fx_policy: FxPolicy = FxPolicy.EFFECTIVE_DATE


@dataclass(frozen=True)
class CombineConfig:
    operation: str
    weights: tuple[Decimal, ...] | None = None


@dataclass(frozen=True)
class TriggerBand:
    """Percent range (inclusive) inside which a delta is suppressed."""

    lower: Decimal
    upper: Decimal


@dataclass(frozen=True)
class SpikeSharing:
    """Share of a delta beyond the trigger band that is passed through."""

    share_percent: Decimal
    direction: SpikeDirection


@dataclass(frozen=True)
class ControlsConfig:
    """
    Cap, floor, trigger band and spike sharing, all in signed percent.

    Consistency (floor <= cap, lower <= upper, 0 <= share <= 100) is checked
    when the node is evaluated, see ``pam_engines.pam.controls``.
    """

    cap: Decimal | None = None
    floor: Decimal | None = None
    trigger_band: TriggerBand | None = None
    spike_sharing: SpikeSharing | None = None


@dataclass(frozen=True)
class OutputConfig:
    """Pass-through marker for the published result."""


NodeConfig = (
    FactorConfig
    | TransformConfig
    | ConvertConfig
    | CombineConfig
    | ControlsConfig
    | OutputConfig
)


@dataclass(frozen=True)
class Node:
    """
    One vertex of a PAM graph.

    Contract:
        Frozen value owned by a Graph; identity is ``id``.
    Guarantees:
        - ``type`` always matches the config variant.
    """

    id: str
    config: NodeConfig
    label: str | None = None
    description: str | None = None

    @property
    def type(self) -> NodeType:
        return node_type_of(self.config)


def node_type_of(config: NodeConfig) -> NodeType:
    match config:
        case FactorConfig():
            return NodeType.FACTOR
        case TransformConfig():
            return NodeType.TRANSFORM
        case ConvertConfig():
            return NodeType.CONVERT
        case CombineConfig():
            return NodeType.COMBINE
        case ControlsConfig():
            return NodeType.CONTROLS
        case OutputConfig():
            return NodeType.OUTPUT
        case _:
            assert_never(config)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _lookup(raw: Mapping[str, Any], *keys: str) -> Any:
    """First present key wins; stored definitions use camelCase."""
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _decimal(node_id: str, field: str, value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidNodeDefinitionError(node_id, f"{field} must be numeric, got bool")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        # Definition boundary: floats from JSON/YAML keep their literal form.
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise InvalidNodeDefinitionError(
                node_id, f"{field} is not a number: {value!r}"
            ) from e
    else:
        raise InvalidNodeDefinitionError(
            node_id, f"{field} must be numeric, got {type(value).__name__}"
        )
    if not result.is_finite():
        raise InvalidNodeDefinitionError(node_id, f"{field} must be finite, got {value!r}")
    return result


def _required_decimal(node_id: str, field: str, value: Any) -> Decimal:
    result = _decimal(node_id, field, value)
    if result is None:
        raise InvalidNodeDefinitionError(node_id, f"{field} is required")
    return result


def _string(node_id: str, field: str, value: Any, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise InvalidNodeDefinitionError(node_id, f"{field} is required")
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidNodeDefinitionError(node_id, f"{field} must be a non-empty string")
    return value.strip()


def _integer(node_id: str, field: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidNodeDefinitionError(
            node_id, f"{field} must be a non-negative integer, got {value!r}"
        )
    return value


def _enum(node_id: str, field: str, enum_type: type[Enum], value: Any, default: Enum) -> Any:
    if value is None:
        return default
    try:
        return enum_type(value)
    except ValueError as e:
        allowed = ", ".join(str(m.value) for m in enum_type)
        raise InvalidNodeDefinitionError(
            node_id, f"{field} must be one of [{allowed}], got {value!r}"
        ) from e


def _mapping(node_id: str, field: str, value: Any) -> Mapping[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise InvalidNodeDefinitionError(node_id, f"{field} must be an object")
    return value


# ---------------------------------------------------------------------------
# Per-type parsers
# ---------------------------------------------------------------------------


def _parse_factor(node_id: str, raw: Mapping[str, Any]) -> FactorConfig:
    value = _decimal(node_id, "value", raw.get("value"))
    series = _string(node_id, "series", _lookup(raw, "series", "ref", "reference"))
    if value is None and series is None:
        raise InvalidNodeDefinitionError(node_id, "Factor node must have either value or series")
    if value is not None and series is not None:
        raise InvalidNodeDefinitionError(node_id, "Factor node cannot have both value and series")
    # History carries no dates, so only a zero day lag can be honoured.
    lag_days = _integer(node_id, "lagDays", _lookup(raw, "lagDays", "lag_days"))
    if lag_days:
        raise InvalidNodeDefinitionError(
            node_id,
            f"lagDays={lag_days} cannot be applied to period history; use lagPeriods",
        )
    return FactorConfig(
        value=value,
        series=series,
        default=_decimal(node_id, "default", raw.get("default")),
        operation=_enum(
            node_id, "operation", FactorOperation, raw.get("operation"), FactorOperation.VALUE
        ),
        lag_periods=_integer(node_id, "lagPeriods", _lookup(raw, "lagPeriods", "lag_periods")) or 0,
    )


def _parse_transform(node_id: str, raw: Mapping[str, Any]) -> TransformConfig:
    function = _string(node_id, "function", _lookup(raw, "function", "operation"), required=True)
    params = _mapping(node_id, "params", raw.get("params")) or {}
    return TransformConfig(
        function=function,
        exponent=_decimal(node_id, "params.exponent", params.get("exponent")),
        decimals=_integer(node_id, "params.decimals", params.get("decimals")),
        base_value=_decimal(
            node_id, "params.baseValue", _lookup(params, "baseValue", "base_value")
        ),
        base_ref=_string(node_id, "params.baseRef", _lookup(params, "baseRef", "base_ref")),
    )


def _parse_convert(node_id: str, raw: Mapping[str, Any]) -> ConvertConfig:
    kind = _enum(node_id, "type", ConvertKind, _lookup(raw, "type", "kind"), None)
    if kind is None:
        raise InvalidNodeDefinitionError(node_id, "Convert node requires type 'unit' or 'currency'")
    return ConvertConfig(
        kind=kind,
        from_unit=_string(node_id, "from", raw.get("from"), required=True),
        to_unit=_string(node_id, "to", raw.get("to"), required=True),
        conversion_factor=_decimal(
            node_id,
            "conversionFactor",
            _lookup(raw, "conversionFactor", "conversion_factor"),
        ),
        density=_decimal(node_id, "density", raw.get("density")),
        product=_string(node_id, "product", raw.get("product")),
        basis=_enum(node_id, "basis", ConvertBasis, raw.get("basis"), ConvertBasis.QUANTITY),
        fixed_rate=_decimal(node_id, "fixedRate", _lookup(raw, "fixedRate", "fixed_rate")),
        fx_series=_string(node_id, "fxSeries", _lookup(raw, "fxSeries", "fx_series")),
        fx_policy=_enum(
            node_id,
            "fxPolicy",
            FxPolicy,
            _lookup(raw, "fxPolicy", "fx_policy"),
            FxPolicy.EFFECTIVE_DATE,
        ),
    )


def _parse_combine(node_id: str, raw: Mapping[str, Any]) -> CombineConfig:
    operation = _string(node_id, "operation", _lookup(raw, "operation", "operator"), required=True)
    raw_weights = raw.get("weights")
    weights = None
    if raw_weights is not None:
        if isinstance(raw_weights, (str, bytes)) or not isinstance(raw_weights, (list, tuple)):
            raise InvalidNodeDefinitionError(node_id, "weights must be a list of numbers")
        weights = tuple(
            _required_decimal(node_id, f"weights[{i}]", w) for i, w in enumerate(raw_weights)
        )
    return CombineConfig(operation=operation, weights=weights)


def _parse_controls(node_id: str, raw: Mapping[str, Any]) -> ControlsConfig:
    band_raw = _mapping(node_id, "triggerBand", _lookup(raw, "triggerBand", "trigger_band"))
    band = None
    if band_raw is not None:
        band = TriggerBand(
            lower=_required_decimal(node_id, "triggerBand.lower", band_raw.get("lower")),
            upper=_required_decimal(node_id, "triggerBand.upper", band_raw.get("upper")),
        )
    sharing_raw = _mapping(node_id, "spikeSharing", _lookup(raw, "spikeSharing", "spike_sharing"))
    sharing = None
    if sharing_raw is not None:
        sharing = SpikeSharing(
            share_percent=_required_decimal(
                node_id,
                "spikeSharing.sharePercent",
                _lookup(sharing_raw, "sharePercent", "share_percent"),
            ),
            direction=_enum(
                node_id,
                "spikeSharing.direction",
                SpikeDirection,
                sharing_raw.get("direction"),
                SpikeDirection.BOTH,
            ),
        )
    return ControlsConfig(
        cap=_decimal(node_id, "cap", raw.get("cap")),
        floor=_decimal(node_id, "floor", raw.get("floor")),
        trigger_band=band,
        spike_sharing=sharing,
    )


def parse_node(raw: Any) -> Node:
    """
    Parse one node definition ``{"id", "type", "config", "label"?, "description"?}``.

    Raises:
        InvalidNodeDefinitionError: if the definition is malformed.
    """
    if not isinstance(raw, Mapping):
        raise InvalidNodeDefinitionError(None, "node definition must be an object")
    node_id = raw.get("id")
    if not isinstance(node_id, str) or not node_id.strip():
        raise InvalidNodeDefinitionError(None, f"node id must be a non-empty string, got {node_id!r}")
    node_id = node_id.strip()

    type_tag = raw.get("type")
    try:
        node_type = NodeType(str(type_tag).strip().lower())
    except ValueError as e:
        raise InvalidNodeDefinitionError(node_id, f"unknown node type {type_tag!r}") from e

    config_raw = _mapping(node_id, "config", raw.get("config")) or {}

    config: NodeConfig
    match node_type:
        case NodeType.FACTOR:
            config = _parse_factor(node_id, config_raw)
        case NodeType.TRANSFORM:
            config = _parse_transform(node_id, config_raw)
        case NodeType.CONVERT:
            config = _parse_convert(node_id, config_raw)
        case NodeType.COMBINE:
            config = _parse_combine(node_id, config_raw)
        case NodeType.CONTROLS:
            config = _parse_controls(node_id, config_raw)
        case NodeType.OUTPUT:
            config = OutputConfig()
        case _:
            assert_never(node_type)

    return Node(
        id=node_id,
        config=config,
        label=_string(node_id, "label", raw.get("label")),
        description=_string(node_id, "description", raw.get("description")),
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def config_to_definition(config: NodeConfig) -> dict[str, Any]:
    """Render a config back into the stored camelCase definition format."""
    match config:
        case FactorConfig():
            return _compact({
                "value": config.value,
                "series": config.series,
                "default": config.default,
                "operation": (
                    None if config.operation is FactorOperation.VALUE else config.operation.value
                ),
                "lagPeriods": config.lag_periods or None,
            })
        case TransformConfig():
            params = _compact({
                "exponent": config.exponent,
                "decimals": config.decimals,
                "baseValue": config.base_value,
                "baseRef": config.base_ref,
            })
            return _compact({"function": config.function, "params": params or None})
        case ConvertConfig():
            return _compact({
                "type": config.kind.value,
                "from": config.from_unit,
                "to": config.to_unit,
                "conversionFactor": config.conversion_factor,
                "density": config.density,
                "product": config.product,
                "basis": None if config.basis is ConvertBasis.QUANTITY else config.basis.value,
                "fixedRate": config.fixed_rate,
                "fxSeries": config.fx_series,
                "fxPolicy": config.fx_policy.value if config.kind is ConvertKind.CURRENCY else None,
            })
        case CombineConfig():
            return _compact({
                "operation": config.operation,
                "weights": list(config.weights) if config.weights is not None else None,
            })
        case ControlsConfig():
            return _compact({
                "cap": config.cap,
                "floor": config.floor,
                "triggerBand": (
                    {"lower": config.trigger_band.lower, "upper": config.trigger_band.upper}
                    if config.trigger_band is not None
                    else None
                ),
                "spikeSharing": (
                    {
                        "sharePercent": config.spike_sharing.share_percent,
                        "direction": config.spike_sharing.direction.value,
                    }
                    if config.spike_sharing is not None
                    else None
                ),
            })
        case OutputConfig():
            return {}
        case _:
            assert_never(config)


def node_to_definition(node: Node) -> dict[str, Any]:
    return _compact({
        "id": node.id,
        "type": node.type.value,
        "config": config_to_definition(node.config),
        "label": node.label,
        "description": node.description,
    })
