"""
Typed Exception Hierarchy for the PAM Calculation Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A failed price calculation must be diagnosable without parsing messages.
The batch layer that calls the engine decides whether a failure fails the
batch item, routes it to manual review, or waits for corrected configuration.
It can only make that decision if it knows precisely WHAT failed and WHERE.

Every exception in this module therefore:
  1. Has its own class (catch by type, not by message)
  2. Carries a class-level CODE attribute (machine-readable, API-safe)
  3. Stores structured DATA as attributes (node id, reference key, ...)

Example - WRONG way to handle errors:
    try:
        result = execute_graph(graph, context)
    except Exception as e:
        if "not found" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        result = execute_graph(graph, context)
    except ExecutionError as e:
        if isinstance(e.cause, UnresolvedReferenceError):
            request_index_value(e.cause.reference_key)
        api_response(code=e.cause.code, node=e.node_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PamError:

    PamError (base)
    |
    +-- GraphError                      (raised by parse, before evaluation)
    |   +-- DanglingEdgeError
    |   +-- CyclicGraphError
    |   +-- MissingOutputError
    |   +-- DuplicateNodeIdError
    |   +-- InvalidNodeDefinitionError
    |   +-- CurrencyMismatchError
    |   +-- UnitMismatchError
    |
    +-- NodeError                       (raised while evaluating one node)
    |   +-- UnresolvedReferenceError
    |   +-- UnknownOperationError
    |   +-- WeightMismatchError
    |   +-- IncompatibleUnitsError
    |   +-- InvalidControlsConfigError
    |   +-- InvalidArityError
    |   +-- InvalidNodeConfigError
    |
    +-- CalculationArithmeticError      (raised by the decimal core)
    |   +-- DivisionByZeroError
    |   +-- DecimalOverflowError
    |   +-- InvalidArithmeticError
    |
    +-- ConversionError                 (raised by conversion collaborators)
    |   +-- UnknownUnitError
    |   +-- UnitCategoryMismatchError
    |   +-- MissingDensityError
    |   +-- FxRateNotFoundError
    |
    +-- ExecutionError                  (wraps any of the above with position)
    |
    +-- ConfigError
        +-- InvalidEngineSettingsError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                       | When Raised
------------|----------------------------|--------------------------------------
Graph       | DANGLING_EDGE              | Edge endpoint is not a node id
            | CYCLIC_GRAPH               | Cycle reachable backward from output
            | MISSING_OUTPUT             | Output id is not a node id
            | DUPLICATE_NODE_ID          | Two nodes share an id
            | INVALID_NODE_DEFINITION    | Unknown type / malformed config
            | CURRENCY_MISMATCH          | Node mixes converted currencies
            | UNIT_MISMATCH              | Node mixes converted units
------------|----------------------------|--------------------------------------
Node        | UNRESOLVED_REFERENCE       | Context has no value for a key
            | UNKNOWN_OPERATION          | Transform/Combine tag not supported
            | WEIGHT_MISMATCH            | weights count != inputs count
            | INCOMPATIBLE_UNITS         | No unit/density path between units
            | INVALID_CONTROLS_CONFIG    | floor > cap, inverted band, ...
            | INVALID_ARITY              | Wrong number of predecessors
            | INVALID_NODE_CONFIG        | Missing operation parameter
------------|----------------------------|--------------------------------------
Arithmetic  | DIVISION_BY_ZERO           | Zero divisor
            | DECIMAL_OVERFLOW           | Result exceeds context exponent range
            | INVALID_ARITHMETIC         | Undefined result (log of negative)
------------|----------------------------|--------------------------------------
Conversion  | UNKNOWN_UNIT               | Unit symbol not registered
            | UNIT_CATEGORY_MISMATCH     | e.g. length -> mass
            | MISSING_DENSITY            | mass<->volume without density
            | FX_RATE_NOT_FOUND          | No FX rate for the pair
------------|----------------------------|--------------------------------------
Execution   | EXECUTION_FAILED           | Any failure during execute
------------|----------------------------|--------------------------------------
Config      | INVALID_ENGINE_SETTINGS    | Bad precision / rounding settings

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, ArithmeticError)?
   Engine errors should be catchable as one group without also catching
   programming errors raised by the standard library.

2. WHY NOT RETRY?
   Every error here means the graph, its configuration, or the supplied
   context is malformed. Re-running the same inputs produces the same
   failure, by the determinism guarantee.

3. WHY WRAP IN ExecutionError?
   The caller needs the failing node id and its position in evaluation
   order for diagnostics; the original error stays available as ``cause``
   (and as ``__cause__`` through exception chaining).
"""

from __future__ import annotations

from typing import Any


class PamError(Exception):
    """
    Base exception for all PAM engine errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "PAM_ERROR"


# Graph-related exceptions (structural, detected at parse time)


class GraphError(PamError):
    """Base exception for graph definition errors."""

    code: str = "GRAPH_ERROR"


class DanglingEdgeError(GraphError):
    """Edge references a node id that does not exist."""

    code: str = "DANGLING_EDGE"

    def __init__(self, edge_from: str, edge_to: str, missing_node_id: str):
        self.edge_from = edge_from
        self.edge_to = edge_to
        self.missing_node_id = missing_node_id
        super().__init__(
            f"Edge {edge_from} -> {edge_to} references unknown node: {missing_node_id}"
        )


class CyclicGraphError(GraphError):
    """The subgraph feeding the output node contains a cycle."""

    code: str = "CYCLIC_GRAPH"

    def __init__(self, cycle_path: list[str]):
        self.cycle_path = cycle_path
        super().__init__(f"Graph contains a cycle: {' -> '.join(cycle_path)}")


class MissingOutputError(GraphError):
    """Designated output node is not present in the graph."""

    code: str = "MISSING_OUTPUT"

    def __init__(self, output: str):
        self.output = output
        if output:
            super().__init__(f"Output node '{output}' not found in graph")
        else:
            super().__init__("Graph definition names no output node")


class DuplicateNodeIdError(GraphError):
    """Two nodes were declared with the same id."""

    code: str = "DUPLICATE_NODE_ID"

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id: {node_id}")


class InvalidNodeDefinitionError(GraphError):
    """A node definition cannot be parsed (unknown type, malformed config)."""

    code: str = "INVALID_NODE_DEFINITION"

    def __init__(self, node_id: str | None, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Invalid definition for node {node_id!r}: {reason}")


class CurrencyMismatchError(GraphError):
    """A node receives values converted into different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, node_id: str, currencies: list[str]):
        self.node_id = node_id
        self.currencies = currencies
        super().__init__(
            f"Node '{node_id}' mixes currencies: "
            f"{', '.join(currencies)}. Add Convert nodes to align currencies."
        )


class UnitMismatchError(GraphError):
    """A node receives values converted into different units."""

    code: str = "UNIT_MISMATCH"

    def __init__(self, node_id: str, units: list[str]):
        self.node_id = node_id
        self.units = units
        super().__init__(
            f"Node '{node_id}' mixes units: "
            f"{', '.join(units)}. Add Convert nodes to align units."
        )


# Node-related exceptions (detected while evaluating a single node)


class NodeError(PamError):
    """Base exception for errors raised while evaluating a node."""

    code: str = "NODE_ERROR"

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(message)


class UnresolvedReferenceError(NodeError):
    """Reference key is absent from the evaluation context and no default is set."""

    code: str = "UNRESOLVED_REFERENCE"

    def __init__(self, node_id: str, reference_key: str, reason: str = ""):
        self.reference_key = reference_key
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(
            node_id,
            f"Node {node_id}: unresolved reference '{reference_key}'{detail}",
        )


class UnknownOperationError(NodeError):
    """Operation tag is not supported by the node type."""

    code: str = "UNKNOWN_OPERATION"

    def __init__(self, node_id: str, operation: str):
        self.operation = operation
        super().__init__(node_id, f"Node {node_id}: unknown operation '{operation}'")


class WeightMismatchError(NodeError):
    """weighted_average weight count differs from input count."""

    code: str = "WEIGHT_MISMATCH"

    def __init__(self, node_id: str, weight_count: int, input_count: int):
        self.weight_count = weight_count
        self.input_count = input_count
        super().__init__(
            node_id,
            f"Node {node_id}: {weight_count} weights for {input_count} inputs",
        )


class IncompatibleUnitsError(NodeError):
    """No unit, density or FX path exists between source and target."""

    code: str = "INCOMPATIBLE_UNITS"

    def __init__(self, node_id: str, from_unit: str, to_unit: str, reason: str = ""):
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            node_id,
            f"Node {node_id}: cannot convert {from_unit} to {to_unit}{detail}",
        )


class InvalidControlsConfigError(NodeError):
    """Controls configuration is internally inconsistent."""

    code: str = "INVALID_CONTROLS_CONFIG"

    def __init__(self, node_id: str, reason: str):
        self.reason = reason
        super().__init__(node_id, f"Controls node {node_id}: {reason}")


class InvalidArityError(NodeError):
    """Node received the wrong number of predecessor values."""

    code: str = "INVALID_ARITY"

    def __init__(self, node_id: str, node_type: str, expected: str, actual: int):
        self.node_type = node_type
        self.expected = expected
        self.actual = actual
        super().__init__(
            node_id,
            f"{node_type} node {node_id}: expected {expected} input(s), got {actual}",
        )


class InvalidNodeConfigError(NodeError):
    """Node configuration lacks a parameter its operation requires."""

    code: str = "INVALID_NODE_CONFIG"

    def __init__(self, node_id: str, reason: str):
        self.reason = reason
        super().__init__(node_id, f"Node {node_id}: {reason}")


# Arithmetic exceptions (raised by the decimal core)


class CalculationArithmeticError(PamError):
    """Base exception for decimal arithmetic failures."""

    code: str = "ARITHMETIC_ERROR"

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(message)


class DivisionByZeroError(CalculationArithmeticError):
    """Divisor is zero."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, operation: str, dividend: str):
        self.dividend = dividend
        super().__init__(operation, f"Division by zero in {operation} (dividend={dividend})")


class DecimalOverflowError(CalculationArithmeticError):
    """Result is outside the exponent range of the active decimal context."""

    code: str = "DECIMAL_OVERFLOW"

    def __init__(self, operation: str, precision: int):
        self.precision = precision
        super().__init__(
            operation, f"Decimal overflow in {operation} (precision={precision})"
        )


class InvalidArithmeticError(CalculationArithmeticError):
    """Operation has no defined decimal result (e.g. log of a negative)."""

    code: str = "INVALID_ARITHMETIC"

    def __init__(self, operation: str, operand: str):
        self.operand = operand
        super().__init__(operation, f"Undefined result for {operation}({operand})")


# Conversion collaborator exceptions


class ConversionError(PamError):
    """Base exception for unit and currency conversion failures."""

    code: str = "CONVERSION_ERROR"


class UnknownUnitError(ConversionError):
    """Unit symbol is not in the unit registry."""

    code: str = "UNKNOWN_UNIT"

    def __init__(self, unit: str):
        self.unit = unit
        super().__init__(f"Unknown unit: {unit}")


class UnitCategoryMismatchError(ConversionError):
    """Units belong to categories with no conversion path."""

    code: str = "UNIT_CATEGORY_MISMATCH"

    def __init__(self, from_unit: str, from_category: str, to_unit: str, to_category: str):
        self.from_unit = from_unit
        self.from_category = from_category
        self.to_unit = to_unit
        self.to_category = to_category
        super().__init__(
            f"Cannot convert {from_category} ({from_unit}) to {to_category} ({to_unit})"
        )


class MissingDensityError(ConversionError):
    """Mass/volume conversion requested without a usable density."""

    code: str = "MISSING_DENSITY"

    def __init__(self, from_unit: str, to_unit: str, product: str | None = None):
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.product = product
        subject = f" for product '{product}'" if product else ""
        super().__init__(
            f"Density required to convert {from_unit} to {to_unit}{subject}"
        )


class FxRateNotFoundError(ConversionError):
    """No FX rate is available for the currency pair."""

    code: str = "FX_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str, policy: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.policy = policy
        super().__init__(
            f"No FX rate for {from_currency}/{to_currency} (policy={policy})"
        )


# Execution wrapper


class ExecutionError(PamError):
    """
    A node failed during graph execution.

    Wraps the underlying error with the failing node id and its position in
    the evaluation order. No partial result accompanies this error.
    """

    code: str = "EXECUTION_FAILED"

    def __init__(self, node_id: str, position: int, total: int, cause: PamError):
        self.node_id = node_id
        self.position = position
        self.total = total
        self.cause = cause
        self.cause_code = cause.code
        super().__init__(
            f"Execution failed at node {node_id} "
            f"(step {position + 1} of {total}): [{cause.code}] {cause}"
        )

    def to_dict(self) -> dict[str, Any]:
        """Structured diagnostic payload for callers."""
        return {
            "code": self.code,
            "cause_code": self.cause_code,
            "node_id": self.node_id,
            "position": self.position,
            "total": self.total,
            "message": str(self.cause),
        }


# Configuration exceptions


class ConfigError(PamError):
    """Base exception for engine configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidEngineSettingsError(ConfigError):
    """Engine settings are out of range or reference unknown rounding modes."""

    code: str = "INVALID_ENGINE_SETTINGS"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid engine setting {field}={value!r}: {reason}")
