"""
Module: pam_engines.pam.graph
Responsibility:
    Immutable, validated PAM graph: an arena of nodes indexed by id, an
    ordered edge list, and the designated output node. Parses stored
    definitions, validates structure and computes the evaluation order.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``pam_engines.pam.executor``.

Invariants enforced:
    - Node ids are unique.
    - The output id names an existing node.
    - Every edge endpoint names an existing node.
    - The subgraph reachable backward from the output is acyclic.
    - Combine folds never mix currencies or units set by Convert nodes,
      and a Convert's source agrees with what its input carries.
    - Predecessor lists follow edge declaration order; the executor relies
      on this for Combine folds and Controls input roles.
    - ``topological_order()`` is deterministic: ties are broken by node
      declaration order.

Failure modes (checked in this order):
    - DuplicateNodeIdError
    - MissingOutputError
    - DanglingEdgeError
    - CyclicGraphError, carrying the cycle path
    - CurrencyMismatchError / UnitMismatchError
    - InvalidNodeDefinitionError for malformed definitions (parse only)

Audit relevance:
    ``to_definition()`` renders the graph back into the stored format; the
    inputs hash is computed from that rendering, so a parsed graph and its
    source definition hash identically.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import networkx as nx

from pam_kernel.exceptions import (
    CurrencyMismatchError,
    CyclicGraphError,
    DanglingEdgeError,
    DuplicateNodeIdError,
    InvalidNodeDefinitionError,
    MissingOutputError,
    UnitMismatchError,
)
from pam_kernel.logging_config import get_logger
from pam_engines.pam.nodes import (
    CombineConfig,
    CombineOperation,
    ConvertConfig,
    ConvertKind,
    FactorConfig,
    Node,
    node_to_definition,
    parse_node,
)

logger = get_logger("engines.pam.graph")

# Folds whose result has a new dimension; their inputs may legitimately differ.
_RATIO_FOLDS = frozenset({CombineOperation.MULTIPLY.value, CombineOperation.DIVIDE.value})

# (currency, unit) carried by a node's value; None where nothing set it.
Dimension = tuple[str | None, str | None]
_UNKNOWN: Dimension = (None, None)


def _distinct(values: Iterable[str | None]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


@dataclass(frozen=True)
class Edge:
    """Directed edge; the value of ``from_node`` flows into ``to_node``."""

    from_node: str
    to_node: str


@dataclass(frozen=True)
class Graph:
    """
    Validated PAM graph.

    Contract:
        Construction validates the structure; an instance that exists is
        always evaluable as far as structure goes. Node configs are checked
        for consistency only when evaluated.

    Guarantees:
        - Frozen; derived indices are built once in ``__post_init__``.
        - ``predecessors_of`` returns ids in edge declaration order.

    Non-goals:
        - Does not evaluate anything (see ``PamExecutor``).
    """

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]
    output: str
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    _index: Mapping[str, int] = field(init=False, repr=False, compare=False)
    _predecessors: Mapping[str, tuple[str, ...]] = field(init=False, repr=False, compare=False)
    _successors: Mapping[str, tuple[str, ...]] = field(init=False, repr=False, compare=False)
    _reachable: frozenset[str] = field(init=False, repr=False, compare=False)
    _order: tuple[str, ...] = field(init=False, repr=False, compare=False)
    _dimensions: Mapping[str, Dimension] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

        index: dict[str, int] = {}
        for position, node in enumerate(self.nodes):
            if node.id in index:
                raise DuplicateNodeIdError(node.id)
            index[node.id] = position

        if self.output not in index:
            raise MissingOutputError(self.output)

        preds: dict[str, list[str]] = {node.id: [] for node in self.nodes}
        succs: dict[str, list[str]] = {node.id: [] for node in self.nodes}
        for edge in self.edges:
            for endpoint in (edge.from_node, edge.to_node):
                if endpoint not in index:
                    raise DanglingEdgeError(edge.from_node, edge.to_node, endpoint)
            preds[edge.to_node].append(edge.from_node)
            succs[edge.from_node].append(edge.to_node)

        object.__setattr__(self, "_index", MappingProxyType(index))
        object.__setattr__(
            self, "_predecessors", MappingProxyType({k: tuple(v) for k, v in preds.items()})
        )
        object.__setattr__(
            self, "_successors", MappingProxyType({k: tuple(v) for k, v in succs.items()})
        )

        feeding = self._feeding_subgraph()
        object.__setattr__(self, "_reachable", frozenset(feeding.nodes))
        object.__setattr__(self, "_order", self._ordered(feeding))
        object.__setattr__(self, "_dimensions", MappingProxyType(self._track_dimensions()))

    # -- Structure -----------------------------------------------------------

    def _feeding_subgraph(self) -> nx.DiGraph:
        """The output and its ancestors, raising on the first cycle among them.

        Nodes and edges are inserted in declaration order so that cycle
        reporting and ordering do not depend on set iteration.
        """
        full = nx.DiGraph()
        full.add_nodes_from(node.id for node in self.nodes)
        full.add_edges_from((e.from_node, e.to_node) for e in self.edges)

        reachable = nx.ancestors(full, self.output) | {self.output}
        feeding = nx.DiGraph()
        feeding.add_nodes_from(n.id for n in self.nodes if n.id in reachable)
        feeding.add_edges_from(
            (e.from_node, e.to_node)
            for e in self.edges
            if e.from_node in reachable and e.to_node in reachable
        )

        try:
            cycle = nx.find_cycle(feeding)
        except nx.NetworkXNoCycle:
            return nx.freeze(feeding)
        raise CyclicGraphError([u for u, _ in cycle] + [cycle[-1][1]])

    def _ordered(self, feeding: nx.DiGraph) -> tuple[str, ...]:
        return tuple(
            nx.lexicographical_topological_sort(feeding, key=self._index.__getitem__)
        )

    def _track_dimensions(self) -> dict[str, Dimension]:
        """Currency and unit of every evaluated node, in evaluation order.

        Only Convert nodes set a dimension; Factors carry none. Transforms,
        Controls and Output pass their first input through. Additive and
        comparative Combine folds require their known inputs to agree;
        multiply and divide produce an unknown dimension.
        """
        dims: dict[str, Dimension] = {}
        for node_id in self._order:
            config = self.node(node_id).config
            inputs = [dims[p] for p in self._predecessors[node_id]]
            first = inputs[0] if inputs else _UNKNOWN

            match config:
                case FactorConfig():
                    dims[node_id] = _UNKNOWN
                case ConvertConfig(kind=ConvertKind.CURRENCY):
                    source = config.from_unit.upper()
                    if first[0] and first[0] != source:
                        raise CurrencyMismatchError(node_id, [first[0], source])
                    dims[node_id] = (config.to_unit.upper(), first[1])
                case ConvertConfig():
                    if first[1] and first[1] != config.from_unit:
                        raise UnitMismatchError(node_id, [first[1], config.from_unit])
                    dims[node_id] = (first[0], config.to_unit)
                case CombineConfig() if config.operation.lower() in _RATIO_FOLDS:
                    dims[node_id] = _UNKNOWN
                case CombineConfig():
                    currencies = _distinct(d[0] for d in inputs)
                    units = _distinct(d[1] for d in inputs)
                    if len(currencies) > 1:
                        raise CurrencyMismatchError(node_id, currencies)
                    if len(units) > 1:
                        raise UnitMismatchError(node_id, units)
                    dims[node_id] = (
                        currencies[0] if currencies else None,
                        units[0] if units else None,
                    )
                case _:
                    dims[node_id] = first
        return dims

    # -- Queries -------------------------------------------------------------

    def node(self, node_id: str) -> Node:
        """Return the node with ``node_id``; KeyError if absent."""
        return self.nodes[self._index[node_id]]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    def predecessors_of(self, node_id: str) -> tuple[str, ...]:
        return self._predecessors[node_id]

    def successors_of(self, node_id: str) -> tuple[str, ...]:
        return self._successors[node_id]

    def topological_order(self) -> list[str]:
        """Evaluation order of the nodes that feed the output, output last."""
        return list(self._order)

    def unreachable_nodes(self) -> tuple[str, ...]:
        """Declared nodes that do not feed the output, in declaration order."""
        return tuple(n.id for n in self.nodes if n.id not in self._reachable)

    def dimension_of(self, node_id: str) -> Dimension:
        """(currency, unit) the node's value carries, as set by upstream Converts."""
        return self._dimensions[node_id]

    def to_definition(self) -> dict[str, Any]:
        definition: dict[str, Any] = {
            "nodes": [node_to_definition(n) for n in self.nodes],
            "edges": [{"from": e.from_node, "to": e.to_node} for e in self.edges],
            "output": self.output,
        }
        if self.metadata:
            definition["metadata"] = dict(self.metadata)
        return definition


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_edge(raw: Any, position: int) -> Edge:
    if not isinstance(raw, Mapping):
        raise InvalidNodeDefinitionError(None, f"edge #{position} must be an object")
    source = raw.get("from", raw.get("source"))
    target = raw.get("to", raw.get("target"))
    if not isinstance(source, str) or not isinstance(target, str):
        raise InvalidNodeDefinitionError(
            None, f"edge #{position} requires string 'from' and 'to', got {dict(raw)!r}"
        )
    return Edge(from_node=source, to_node=target)


def _sequence(definition: Mapping[str, Any], key: str, required: bool) -> Sequence[Any]:
    value = definition.get(key)
    if value is None:
        if required:
            raise InvalidNodeDefinitionError(None, f"graph definition requires '{key}'")
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise InvalidNodeDefinitionError(None, f"'{key}' must be a list")
    return value


def parse(definition: Mapping[str, Any]) -> Graph:
    """
    Build a validated Graph from a stored definition.

    Preconditions:
        ``definition`` has ``nodes`` (list), ``output`` (node id) and
        optionally ``edges`` (list) and ``metadata`` (object).

    Postconditions:
        Returns a Graph satisfying every structural invariant. Nodes that
        do not feed the output are reported with a warning.

    Raises:
        GraphError subclasses, see the module docstring.
    """
    if not isinstance(definition, Mapping):
        raise InvalidNodeDefinitionError(None, "graph definition must be an object")

    nodes = tuple(parse_node(raw) for raw in _sequence(definition, "nodes", required=True))
    edges = tuple(
        _parse_edge(raw, i) for i, raw in enumerate(_sequence(definition, "edges", required=False))
    )
    # An absent output falls through to MissingOutputError after the duplicate check.
    output = definition.get("output")
    if output is None:
        output = ""
    elif not isinstance(output, str):
        raise InvalidNodeDefinitionError(None, f"'output' must be a node id, got {output!r}")
    metadata = definition.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise InvalidNodeDefinitionError(None, "'metadata' must be an object")

    graph = Graph(nodes=nodes, edges=edges, output=output, metadata=metadata)

    unreachable = graph.unreachable_nodes()
    if unreachable:
        logger.warning(
            "pam_graph_unreachable_nodes",
            extra={"output_node": output, "unreachable": list(unreachable)},
        )
    logger.info(
        "pam_graph_parsed",
        extra={
            "node_count": len(nodes),
            "edge_count": len(edges),
            "output_node": output,
            "evaluated_count": len(graph.topological_order()),
        },
    )
    return graph
