"""
PAM graph engine: node model, graph validation, Controls pipeline, node
evaluation and execution.

Usage:
    from pam_engines.pam import EvaluationContext, execute_graph, parse

    graph = parse(definition)
    result = execute_graph(graph, EvaluationContext.from_dict(inputs))
"""

from pam_engines.pam.context import EvaluationContext, ExecutionResult
from pam_engines.pam.controls import ControlsOutcome, apply_controls, validate_controls
from pam_engines.pam.evaluator import NodeEvaluation, NodeEvaluator
from pam_engines.pam.executor import PamExecutor, execute_graph, hash_execution_inputs
from pam_engines.pam.graph import Edge, Graph, parse
from pam_engines.pam.nodes import (
    CombineConfig,
    CombineOperation,
    ControlsConfig,
    ConvertBasis,
    ConvertConfig,
    ConvertKind,
    FactorConfig,
    FactorOperation,
    FxPolicy,
    Node,
    NodeConfig,
    NodeType,
    OutputConfig,
    SpikeDirection,
    SpikeSharing,
    TransformConfig,
    TransformFunction,
    TriggerBand,
)
from pam_engines.pam.resolvers import (
    FxRateService,
    StaticFxRates,
    TimeseriesService,
    UnitConversionService,
)

__all__ = [
    "CombineConfig",
    "CombineOperation",
    "ControlsConfig",
    "ControlsOutcome",
    "ConvertBasis",
    "ConvertConfig",
    "ConvertKind",
    "Edge",
    "EvaluationContext",
    "ExecutionResult",
    "FactorConfig",
    "FactorOperation",
    "FxPolicy",
    "FxRateService",
    "Graph",
    "Node",
    "NodeConfig",
    "NodeEvaluation",
    "NodeEvaluator",
    "NodeType",
    "OutputConfig",
    "PamExecutor",
    "SpikeDirection",
    "SpikeSharing",
    "StaticFxRates",
    "TimeseriesService",
    "TransformConfig",
    "TransformFunction",
    "TriggerBand",
    "UnitConversionService",
    "apply_controls",
    "execute_graph",
    "hash_execution_inputs",
    "parse",
    "validate_controls",
]
