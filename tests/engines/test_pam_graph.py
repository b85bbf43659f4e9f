"""
Tests for PAM graph parsing and structure.

Covers:
- Structural validation and its order
- Cycle detection with the reported path
- Deterministic topological order
- Predecessor order, reachability, serialization round trip
- Currency and unit consistency across Convert and Combine nodes
- Node definition parsing (camelCase keys, numeric coercion, bad input)
"""

from decimal import Decimal

import pytest

from pam_engines.pam import (
    CombineConfig,
    ControlsConfig,
    FactorConfig,
    FactorOperation,
    NodeType,
    SpikeDirection,
    TransformConfig,
    parse,
)
from pam_kernel.exceptions import (
    CurrencyMismatchError,
    CyclicGraphError,
    DanglingEdgeError,
    DuplicateNodeIdError,
    GraphError,
    InvalidNodeDefinitionError,
    MissingOutputError,
    UnitMismatchError,
)
from tests.helpers import edge, factor, graph_of, node


class TestStructuralValidation:
    """Graph-level invariants."""

    def test_minimal_graph(self):
        graph = graph_of([factor("k", "1.05")], [], "k")
        assert graph.output == "k"
        assert graph.topological_order() == ["k"]

    def test_duplicate_node_id(self):
        with pytest.raises(DuplicateNodeIdError) as exc_info:
            graph_of([factor("a", "1"), factor("a", "2")], [], "a")
        assert exc_info.value.node_id == "a"

    def test_missing_output(self):
        with pytest.raises(MissingOutputError) as exc_info:
            graph_of([factor("a", "1")], [], "nope")
        assert exc_info.value.output == "nope"

    def test_dangling_edge(self):
        with pytest.raises(DanglingEdgeError) as exc_info:
            graph_of(
                [factor("a", "1"), node("out", "output")],
                [edge("ghost", "out"), edge("a", "out")],
                "out",
            )
        assert exc_info.value.missing_node_id == "ghost"

    def test_duplicates_checked_before_output(self):
        with pytest.raises(DuplicateNodeIdError):
            graph_of([factor("a", "1"), factor("a", "1")], [], "missing")

    def test_output_checked_before_edges(self):
        with pytest.raises(MissingOutputError):
            graph_of([factor("a", "1")], [edge("a", "ghost")], "missing")

    def test_absent_output_key(self):
        with pytest.raises(MissingOutputError) as exc_info:
            parse({"nodes": [factor("a", "1")]})
        assert exc_info.value.code == "MISSING_OUTPUT"
        assert exc_info.value.output == ""

    def test_absent_output_after_duplicates(self):
        with pytest.raises(DuplicateNodeIdError):
            parse({"nodes": [factor("a", "1"), factor("a", "2")]})

    def test_non_string_output(self):
        with pytest.raises(InvalidNodeDefinitionError):
            parse({"nodes": [factor("a", "1")], "output": 7})

    def test_all_structural_errors_are_graph_errors(self):
        with pytest.raises(GraphError):
            graph_of([factor("a", "1")], [], "missing")


class TestCycles:
    """Cycle detection over the output's ancestors."""

    def test_cycle_feeding_output(self):
        with pytest.raises(CyclicGraphError) as exc_info:
            graph_of(
                [
                    factor("a", "1"),
                    node("b", "combine", operation="add"),
                    node("c", "combine", operation="add"),
                    node("out", "output"),
                ],
                [edge("a", "b"), edge("c", "b"), edge("b", "c"), edge("c", "out")],
                "out",
            )
        path = exc_info.value.cycle_path
        assert path[0] == path[-1]
        assert len(path) == 3
        assert set(path) == {"b", "c"}
        assert "a" not in path

    def test_self_loop(self):
        with pytest.raises(CyclicGraphError) as exc_info:
            graph_of([node("x", "combine", operation="add")], [edge("x", "x")], "x")
        assert exc_info.value.cycle_path == ["x", "x"]

    def test_cycle_not_feeding_output_is_ignored(self):
        graph = graph_of(
            [
                factor("k", "1"),
                node("p", "combine", operation="add"),
                node("q", "combine", operation="add"),
            ],
            [edge("p", "q"), edge("q", "p")],
            "k",
        )
        assert graph.topological_order() == ["k"]
        assert graph.unreachable_nodes() == ("p", "q")


class TestOrdering:
    """Topological order and predecessor order."""

    def test_ties_break_by_declaration_order(self):
        graph = graph_of(
            [
                node("out", "output"),
                factor("z", "1"),
                factor("a", "2"),
                node("sum", "combine", operation="add"),
            ],
            [edge("a", "sum"), edge("z", "sum"), edge("sum", "out")],
            "out",
        )
        assert graph.topological_order() == ["z", "a", "sum", "out"]

    def test_diamond(self):
        graph = graph_of(
            [
                factor("src", "2"),
                node("left", "transform", function="abs"),
                node("right", "transform", function="sqrt"),
                node("join", "combine", operation="multiply"),
            ],
            [
                edge("src", "left"),
                edge("src", "right"),
                edge("left", "join"),
                edge("right", "join"),
            ],
            "join",
        )
        order = graph.topological_order()
        assert order == ["src", "left", "right", "join"]
        assert graph.successors_of("src") == ("left", "right")

    def test_predecessors_follow_edge_declaration(self):
        graph = graph_of(
            [factor("a", "1"), factor("b", "2"), node("d", "combine", operation="subtract")],
            [edge("b", "d"), edge("a", "d")],
            "d",
        )
        assert graph.predecessors_of("d") == ("b", "a")

    def test_order_is_stable_across_calls(self):
        graph = graph_of(
            [factor("a", "1"), factor("b", "2"), node("s", "combine", operation="add")],
            [edge("a", "s"), edge("b", "s")],
            "s",
        )
        assert graph.topological_order() == graph.topological_order()


class TestReachability:
    """Nodes not feeding the output."""

    def test_unreachable_nodes_logged(self, captured_logs):
        graph = graph_of(
            [factor("used", "1"), factor("orphan", "2"), node("out", "output")],
            [edge("used", "out")],
            "out",
        )
        assert graph.unreachable_nodes() == ("orphan",)
        assert "orphan" not in graph.topological_order()

        warnings = [r for r in captured_logs() if r["message"] == "pam_graph_unreachable_nodes"]
        assert warnings[0]["unreachable"] == ["orphan"]
        assert warnings[0]["level"] == "WARNING"

    def test_parse_logs_summary(self, captured_logs):
        graph_of([factor("k", "1")], [], "k")
        parsed = [r for r in captured_logs() if r["message"] == "pam_graph_parsed"]
        assert parsed[0]["node_count"] == 1
        assert parsed[0]["output_node"] == "k"


def _fx(node_id, source, target):
    return node(node_id, "convert", type="currency", **{"from": source, "to": target}, fixedRate="1.1")


def _uom(node_id, source, target):
    return node(node_id, "convert", type="unit", **{"from": source, "to": target})


class TestDimensions:
    """Currency and unit consistency across Convert and Combine nodes."""

    def test_combine_of_different_currencies(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            graph_of(
                [
                    factor("a", "1"),
                    factor("b", "2"),
                    _fx("usd", "EUR", "USD"),
                    _fx("gbp", "EUR", "GBP"),
                    node("sum", "combine", operation="add"),
                ],
                [edge("a", "usd"), edge("b", "gbp"), edge("usd", "sum"), edge("gbp", "sum")],
                "sum",
            )
        assert exc_info.value.node_id == "sum"
        assert exc_info.value.currencies == ["USD", "GBP"]
        assert exc_info.value.code == "CURRENCY_MISMATCH"

    def test_combine_of_different_units(self):
        with pytest.raises(UnitMismatchError) as exc_info:
            graph_of(
                [
                    factor("a", "1"),
                    factor("b", "2"),
                    _uom("kg", "MT", "kg"),
                    _uom("t", "MT", "t"),
                    node("avg", "combine", operation="average"),
                ],
                [edge("a", "kg"), edge("b", "t"), edge("kg", "avg"), edge("t", "avg")],
                "avg",
            )
        assert exc_info.value.units == ["kg", "t"]
        assert exc_info.value.code == "UNIT_MISMATCH"

    def test_aligned_currencies_pass(self):
        graph = graph_of(
            [
                factor("a", "1"),
                factor("b", "2"),
                factor("premium", "4.5"),
                _fx("x", "EUR", "USD"),
                _fx("y", "GBP", "USD"),
                node("sum", "combine", operation="add"),
                node("ctl", "controls", cap="5"),
            ],
            [
                edge("a", "x"),
                edge("b", "y"),
                edge("x", "sum"),
                edge("premium", "sum"),
                edge("y", "sum"),
                edge("sum", "ctl"),
            ],
            "ctl",
        )
        assert graph.dimension_of("sum") == ("USD", None)
        assert graph.dimension_of("ctl") == ("USD", None)
        assert graph.dimension_of("premium") == (None, None)

    def test_ratio_folds_may_mix(self):
        graph = graph_of(
            [
                factor("a", "1"),
                factor("b", "2"),
                _fx("usd", "EUR", "USD"),
                _fx("gbp", "EUR", "GBP"),
                node("ratio", "combine", operation="divide"),
            ],
            [edge("a", "usd"), edge("b", "gbp"), edge("usd", "ratio"), edge("gbp", "ratio")],
            "ratio",
        )
        assert graph.dimension_of("ratio") == (None, None)

    def test_convert_source_must_match_input(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            graph_of(
                [factor("a", "1"), _fx("usd", "EUR", "USD"), _fx("back", "GBP", "EUR")],
                [edge("a", "usd"), edge("usd", "back")],
                "back",
            )
        assert exc_info.value.node_id == "back"
        assert exc_info.value.currencies == ["USD", "GBP"]

    def test_unit_convert_keeps_currency(self):
        graph = graph_of(
            [factor("a", "1"), _fx("usd", "EUR", "USD"), _uom("kg", "MT", "kg")],
            [edge("a", "usd"), edge("usd", "kg")],
            "kg",
        )
        assert graph.dimension_of("kg") == ("USD", "kg")

    def test_unreachable_mismatch_is_ignored(self):
        graph = graph_of(
            [
                factor("k", "1"),
                factor("a", "1"),
                _fx("usd", "EUR", "USD"),
                _fx("gbp", "EUR", "GBP"),
                node("sum", "combine", operation="add"),
            ],
            [edge("a", "usd"), edge("a", "gbp"), edge("usd", "sum"), edge("gbp", "sum")],
            "k",
        )
        assert graph.unreachable_nodes() == ("a", "usd", "gbp", "sum")


class TestRoundTrip:
    """Serialization back to the stored format."""

    def test_to_definition_round_trip(self):
        definition = {
            "nodes": [
                factor("idx", series="CPI", operation="avg_3m", lagPeriods=1),
                node("chg", "transform", function="percent_change", params={"baseValue": 250}),
                node("usd", "convert", type="currency", **{"from": "EUR", "to": "USD"}, fixedRate="1.08"),
                node(
                    "ctl",
                    "controls",
                    cap=5,
                    floor=-5,
                    triggerBand={"lower": -2, "upper": 2},
                    spikeSharing={"sharePercent": 50, "direction": "above"},
                ),
            ],
            "edges": [edge("idx", "chg"), edge("chg", "usd"), edge("usd", "ctl")],
            "output": "ctl",
            "metadata": {"name": "demo"},
        }
        graph = parse(definition)
        again = parse(graph.to_definition())
        assert again == graph
        assert again.metadata["name"] == "demo"


class TestNodeParsing:
    """Node definitions in the stored camelCase format."""

    def test_type_is_case_insensitive(self):
        graph = parse({
            "nodes": [{"id": "k", "type": "Factor", "config": {"value": 1}}],
            "output": "k",
        })
        assert graph.node("k").type is NodeType.FACTOR

    def test_float_enters_as_its_literal(self):
        graph = graph_of([factor("k", 1.05)], [], "k")
        assert graph.node("k").config == FactorConfig(value=Decimal("1.05"))

    def test_factor_series_options(self):
        graph = graph_of([factor("k", series="BRENT", operation="avg_6m", default="80")], [], "k")
        config = graph.node("k").config
        assert config.series == "BRENT"
        assert config.operation is FactorOperation.AVG_6M
        assert config.default == Decimal("80")

    def test_lag_periods(self):
        graph = graph_of([factor("k", series="BRENT", lagPeriods=2)], [], "k")
        assert graph.node("k").config.lag_periods == 2

    def test_day_lag_is_rejected(self):
        with pytest.raises(InvalidNodeDefinitionError) as exc_info:
            graph_of([factor("k", series="BRENT", lagDays=2)], [], "k")
        assert exc_info.value.node_id == "k"
        assert "lagPeriods" in exc_info.value.reason

    def test_zero_day_lag_is_accepted(self):
        graph = graph_of([factor("k", series="BRENT", lagDays=0)], [], "k")
        assert graph.node("k").config.lag_periods == 0

    def test_controls_camel_case_keys(self):
        graph = graph_of(
            [
                node(
                    "c",
                    "controls",
                    cap="10",
                    triggerBand={"lower": "-3", "upper": "3"},
                    spikeSharing={"sharePercent": "50", "direction": "below"},
                )
            ],
            [],
            "c",
        )
        config = graph.node("c").config
        assert isinstance(config, ControlsConfig)
        assert config.trigger_band.lower == Decimal("-3")
        assert config.spike_sharing.share_percent == Decimal("50")
        assert config.spike_sharing.direction is SpikeDirection.BELOW
        assert config.floor is None

    def test_combine_weights(self):
        graph = graph_of(
            [node("w", "combine", operation="weighted_average", weights=[0.6, 0.4])], [], "w"
        )
        assert graph.node("w").config == CombineConfig(
            operation="weighted_average", weights=(Decimal("0.6"), Decimal("0.4"))
        )

    def test_unknown_transform_survives_parsing(self):
        graph = graph_of([node("t", "transform", function="tan")], [], "t")
        assert graph.node("t").config == TransformConfig(function="tan")

    def test_label_and_description_kept(self):
        graph = parse({
            "nodes": [{"id": "k", "type": "factor", "config": {"value": 1},
                       "label": "Premium", "description": "Fixed premium"}],
            "output": "k",
        })
        assert graph.node("k").label == "Premium"
        assert graph.node("k").description == "Fixed premium"

    @pytest.mark.parametrize(
        "raw",
        [
            {"id": "x", "type": "banana", "config": {}},
            {"id": "x", "type": "factor", "config": {}},
            {"id": "x", "type": "factor", "config": {"value": 1, "series": "S"}},
            {"id": "x", "type": "factor", "config": {"value": "abc"}},
            {"id": "x", "type": "factor", "config": {"value": True}},
            {"id": "x", "type": "factor", "config": {"value": "NaN"}},
            {"id": "x", "type": "convert", "config": {"type": "unit", "from": "kg"}},
            {"id": "x", "type": "convert", "config": {"type": "volume", "from": "L", "to": "kg"}},
            {"id": "x", "type": "controls", "config": {"triggerBand": {"lower": 1}}},
            {"id": "x", "type": "controls",
             "config": {"spikeSharing": {"sharePercent": 5, "direction": "sideways"}}},
            {"id": "x", "type": "combine", "config": {"operation": "add", "weights": "0.5"}},
            {"id": "", "type": "factor", "config": {"value": 1}},
        ],
    )
    def test_malformed_definitions(self, raw):
        with pytest.raises(InvalidNodeDefinitionError):
            parse({"nodes": [raw], "output": raw.get("id") or "x"})

    def test_malformed_edges(self):
        with pytest.raises(InvalidNodeDefinitionError):
            parse({"nodes": [factor("a", "1")], "edges": [{"from": "a"}], "output": "a"})

    def test_nodes_required(self):
        with pytest.raises(InvalidNodeDefinitionError):
            parse({"output": "a"})
