"""
Module: pam_engines
Responsibility:
    Package entrypoint re-exporting the public surface of the PAM
    calculation engine and its pure collaborators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pam_kernel (and sibling engine modules).
    MUST NOT import pam_config; callers translate settings into a
    ``DecimalPolicy`` before calling in.

Invariants enforced:
    - Purity: engines never read the clock, files or the network. Dates
      are passed in through the evaluation context.
    - Decimal-only arithmetic; floats are rejected at the core boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    ``execute_graph`` is traced via ``@traced_engine`` (see
    ``pam_engines.tracer``), emitting PAM_ENGINE_TRACE records with engine
    name, version, input fingerprint and duration.

Usage:
    from pam_engines import EvaluationContext, execute_graph, parse
    from pam_engines.conversions import UnitConverter
"""

from pam_kernel.logging_config import get_logger

logger = get_logger("engines")

from pam_engines.conversions import (
    STANDARD_DENSITIES,
    Unit,
    UnitCategory,
    UnitConverter,
)
from pam_engines.pam import (
    ControlsConfig,
    ControlsOutcome,
    EvaluationContext,
    ExecutionResult,
    FxPolicy,
    Graph,
    Node,
    NodeEvaluator,
    NodeType,
    PamExecutor,
    StaticFxRates,
    apply_controls,
    execute_graph,
    hash_execution_inputs,
    parse,
    validate_controls,
)
from pam_engines.tracer import traced_engine

__all__ = [
    "STANDARD_DENSITIES",
    "ControlsConfig",
    "ControlsOutcome",
    "EvaluationContext",
    "ExecutionResult",
    "FxPolicy",
    "Graph",
    "Node",
    "NodeEvaluator",
    "NodeType",
    "PamExecutor",
    "StaticFxRates",
    "Unit",
    "UnitCategory",
    "UnitConverter",
    "apply_controls",
    "execute_graph",
    "hash_execution_inputs",
    "parse",
    "traced_engine",
    "validate_controls",
]

logger.debug("engines_package_loaded", extra={
    "modules": ["conversions", "tracer", "pam"],
})
