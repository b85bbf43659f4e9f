"""
Module: pam_engines.pam.executor
Responsibility:
    Execute a validated PAM graph against an evaluation context: evaluate
    every node feeding the output once, in topological order, and return
    the output value with per-node contributions and Controls breakdowns.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Entry point for callers (batch runs, scenarios, the CLI runner).

Invariants enforced:
    - Determinism: same graph + same context + same policy produce an
      identical ExecutionResult.
    - Each node is evaluated at most once per execution (memoized).
    - All arithmetic runs inside ``decimal.localcontext(policy.context())``;
      the interpreter-wide decimal context is never touched.
    - Rounding happens only at output boundaries: contributions and the
      final value are quantized, downstream nodes consume full precision.
      Contributions are rounded in a context wide enough to hold them, so
      only the output value is bound by the policy precision.
    - Fail fast: the first node failure aborts the execution with an
      ExecutionError chained from the cause. No partial result escapes.

Failure modes:
    - ExecutionError(node_id, position, total, cause) wrapping any PamError
      raised while evaluating a node.

Audit relevance:
    ``hash_execution_inputs`` is the idempotency key for a calculation: two
    executions with the same hash must produce the same result.
"""

from __future__ import annotations

import decimal
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

from pam_kernel.domain.arithmetic import DEFAULT_POLICY, DecimalPolicy
from pam_kernel.exceptions import (
    DecimalOverflowError,
    DivisionByZeroError,
    ExecutionError,
    InvalidArithmeticError,
    PamError,
)
from pam_kernel.logging_config import execution_scope, get_logger
from pam_kernel.utils.hashing import hash_payload
from pam_engines.conversions import UnitConverter
from pam_engines.pam.context import EvaluationContext, ExecutionResult
from pam_engines.pam.controls import ControlsOutcome
from pam_engines.pam.evaluator import NodeEvaluator
from pam_engines.pam.graph import Graph
from pam_engines.pam.resolvers import FxRateService, UnitConversionService
from pam_engines.tracer import traced_engine

logger = get_logger("engines.pam.executor")

ENGINE_NAME = "pam"
ENGINE_VERSION = "1.0"


@contextmanager
def _kernel_errors(node_id: str) -> Iterator[None]:
    """Map raw decimal signals that escape the arithmetic core to kernel errors."""
    try:
        yield
    except decimal.DivisionByZero as exc:
        raise DivisionByZeroError(node_id, "n/a") from exc
    except decimal.Overflow as exc:
        raise DecimalOverflowError(node_id, decimal.getcontext().prec) from exc
    except decimal.InvalidOperation as exc:
        raise InvalidArithmeticError(node_id, type(exc).__name__) from exc


class PamExecutor:
    """
    Graph executor.

    Contract:
        ``execute(graph, context)`` evaluates the nodes of
        ``graph.topological_order()`` and returns an ExecutionResult.

    Guarantees:
        - Holds no per-execution state; concurrent ``execute`` calls on
          one instance are independent.
        - Nodes that do not feed the output are never evaluated.

    Non-goals:
        - Fetching inputs, persisting results, retries.
    """

    def __init__(
        self,
        policy: DecimalPolicy | None = None,
        fx_rates: FxRateService | None = None,
        units: UnitConversionService | None = None,
    ):
        self._policy = policy if policy is not None else DEFAULT_POLICY
        self._evaluator = NodeEvaluator(
            self._policy,
            fx_rates=fx_rates,
            units=units if units is not None else UnitConverter(),
        )

    @property
    def policy(self) -> DecimalPolicy:
        return self._policy

    def execute(self, graph: Graph, context: EvaluationContext) -> ExecutionResult:
        """
        Evaluate ``graph`` against ``context``.

        Raises:
            ExecutionError: if any node fails; ``__cause__`` is the original
                PamError.
        """
        with execution_scope(output_node=graph.output):
            return self._run(graph, context)

    def _run(self, graph: Graph, context: EvaluationContext) -> ExecutionResult:
        order = graph.topological_order()
        total = len(order)
        logger.info(
            "pam_execution_started",
            extra={
                "node_count": total,
                "precision": self._policy.precision,
                "rounding": self._policy.rounding,
            },
        )

        values: dict[str, Decimal] = {}
        contributions: dict[str, Decimal] = {}
        controls: dict[str, ControlsOutcome] = {}

        with decimal.localcontext(self._policy.context()):
            for position, node_id in enumerate(order):
                node = graph.node(node_id)
                inputs = [values[pred] for pred in graph.predecessors_of(node_id)]
                try:
                    with _kernel_errors(node_id):
                        evaluation = self._evaluator.evaluate(node, inputs, context)
                        if node_id == graph.output:
                            contribution = self._policy.quantize(evaluation.value)
                        else:
                            contribution = self._policy.quantize_wide(evaluation.value)
                except PamError as exc:
                    logger.error(
                        "pam_node_failed",
                        extra={
                            "node_id": node_id,
                            "node_type": node.type.value,
                            "position": position,
                            "total": total,
                            "error_code": exc.code,
                        },
                    )
                    raise ExecutionError(node_id, position, total, exc) from exc

                values[node_id] = evaluation.value
                contributions[node_id] = contribution
                if evaluation.controls is not None:
                    controls[node_id] = evaluation.controls
                logger.debug(
                    "pam_node_evaluated",
                    extra={
                        "node_id": node_id,
                        "node_type": node.type.value,
                        "value": contribution,
                    },
                )

        result = ExecutionResult(
            value=contributions[graph.output],
            contributions=contributions,
            evaluation_order=tuple(order),
            controls=controls,
        )
        logger.info(
            "pam_execution_completed",
            extra={
                "value": result.value,
                "evaluated_count": total,
            },
        )
        return result


@traced_engine(ENGINE_NAME, ENGINE_VERSION, fingerprint_fields=("graph", "context"))
def execute_graph(
    graph: Graph,
    context: EvaluationContext,
    *,
    policy: DecimalPolicy | None = None,
    fx_rates: FxRateService | None = None,
    units: UnitConversionService | None = None,
) -> ExecutionResult:
    """Execute ``graph`` with a one-off PamExecutor."""
    return PamExecutor(policy=policy, fx_rates=fx_rates, units=units).execute(graph, context)


def _canonical_graph(graph: Graph) -> dict[str, Any]:
    nodes = sorted(
        (
            {"id": n["id"], "type": n["type"], "config": n["config"]}
            for n in graph.to_definition()["nodes"]
        ),
        key=lambda n: n["id"],
    )
    # Input position keeps operand order for subtract/divide and Controls roles.
    edges = []
    for node_id in sorted(n.id for n in graph.nodes):
        for position, pred in enumerate(graph.predecessors_of(node_id)):
            edges.append({"from": pred, "to": node_id, "input": position})
    return {"nodes": nodes, "edges": edges, "output": graph.output}


def hash_execution_inputs(graph: Graph, context: EvaluationContext) -> str:
    """
    SHA-256 over the canonical graph and the context.

    Node declaration order, edge declaration order across different target
    nodes, labels and metadata do not affect the hash. Operand order into a
    single node does.
    """
    return hash_payload({"graph": _canonical_graph(graph), "context": context.to_dict()})
