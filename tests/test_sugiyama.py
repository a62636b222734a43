"""Tests for layout/sugiyama.py — the layered engine phases and the full pipeline."""

from __future__ import annotations

import random

import networkx as nx
import pytest

from c4_layout.layout.engine import LayoutEngineError, default_engine
from c4_layout.layout.sugiyama import (
    DUMMY_PREFIX,
    AugmentedGraph,
    LayoutNode,
    SugiyamaEngine,
    assign_coordinates,
    assign_layers,
    count_crossings,
    greedy_fas_ordering,
    insert_dummy_nodes,
    layered_layout,
    minimise_crossings,
    remove_cycles,
)
from c4_layout.layout.types import DEFAULT_OPTIONS, GraphEdge, GraphNode, LayeredGraph, LayeredOptions, LayoutResult, Padding

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_graph(*edges: tuple[str, str]) -> nx.DiGraph:
    """Build a DiGraph of 100x50 nodes from (src, tgt) pairs."""
    g: nx.DiGraph = nx.DiGraph()
    for src, tgt in edges:
        for n in (src, tgt):
            if n not in g:
                g.add_node(n, width=100, height=50, constraint="NONE")
        g.add_edge(src, tgt)
    return g


def make_augmented_graph(edges: list[tuple[str, str]], layers: dict[str, int]) -> AugmentedGraph:
    """Build an AugmentedGraph from edges and explicit layers; nodes are added in layers order."""
    g: nx.DiGraph = nx.DiGraph()
    for nid in layers:
        g.add_node(nid, width=100, height=50, constraint="NONE")
    for src, tgt in edges:
        g.add_edge(src, tgt)
    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count)


def layered(nodes: list[str], edges: list[tuple[str, str]], size: tuple[float, float] = (100, 50)) -> LayeredGraph:
    return LayeredGraph(
        nodes=tuple(GraphNode(id=n, width=size[0], height=size[1]) for n in nodes),
        edges=tuple(GraphEdge(id=f"e{i}", sources=(s,), targets=(t,)) for i, (s, t) in enumerate(edges)),
    )


NO_PADDING = LayeredOptions(padding=Padding(0, 0, 0, 0))


def sized(widths: dict[str, float], edges: list[tuple[str, str]], height: float = 100) -> LayeredGraph:
    return LayeredGraph(
        nodes=tuple(GraphNode(id=n, width=w, height=height) for n, w in widths.items()),
        edges=tuple(GraphEdge(id=f"e{i}", sources=(s,), targets=(t,)) for i, (s, t) in enumerate(edges)),
    )


def same_layer_gaps(graph: LayeredGraph, result: LayoutResult) -> list[float]:
    """Horizontal gaps between neighbouring nodes that share a layer (same y)."""
    widths = {n.id: n.width for n in graph.nodes}
    rows: dict[float, list[str]] = {}
    for node_id, pos in result.positions.items():
        rows.setdefault(pos.y, []).append(node_id)
    gaps: list[float] = []
    for row in rows.values():
        row.sort(key=lambda n: result.positions[n].x)
        for left, right in zip(row, row[1:]):
            gaps.append(result.positions[right].x - (result.positions[left].x + widths[left]))
    return gaps


# ─── Cycle Removal ────────────────────────────────────────────────────────────


class TestCycleRemoval:
    def test_dag_has_no_reversed_edges(self):
        """A → B → C is already acyclic."""
        dag, reversed_edges = remove_cycles(make_graph(("A", "B"), ("B", "C")))
        assert reversed_edges == set()
        assert nx.is_directed_acyclic_graph(dag)

    def test_single_cycle_reversed(self):
        """A → B → A — exactly one edge reversed."""
        dag, reversed_edges = remove_cycles(make_graph(("A", "B"), ("B", "A")))
        assert len(reversed_edges) == 1
        assert nx.is_directed_acyclic_graph(dag)

    def test_self_loop_removed(self):
        dag, reversed_edges = remove_cycles(make_graph(("A", "A")))
        assert reversed_edges == {("A", "A")}
        assert dag.number_of_edges() == 0

    def test_complex_cycle(self):
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"), ("D", "B"))
        dag, reversed_edges = remove_cycles(g)
        assert nx.is_directed_acyclic_graph(dag)
        assert len(reversed_edges) >= 1

    def test_node_attributes_preserved(self):
        dag, _ = remove_cycles(make_graph(("A", "B"), ("B", "A")))
        assert dag.nodes["A"]["width"] == 100

    def test_empty_graph(self):
        dag, reversed_edges = remove_cycles(nx.DiGraph())
        assert dag.number_of_nodes() == 0
        assert reversed_edges == set()


class TestGreedyFasOrdering:
    def test_chain_ordering(self):
        assert greedy_fas_ordering(make_graph(("A", "B"), ("B", "C"))) == ["A", "B", "C"]

    def test_all_nodes_present_once(self):
        ordering = greedy_fas_ordering(make_graph(("A", "B"), ("B", "C"), ("C", "A")))
        assert sorted(ordering) == ["A", "B", "C"]

    def test_cycle_ordering_is_stable(self):
        """Ties are broken by model order, so repeated runs agree."""
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"))
        assert greedy_fas_ordering(g) == greedy_fas_ordering(g)
        assert greedy_fas_ordering(g)[0] == "A"

    def test_empty_graph(self):
        assert greedy_fas_ordering(nx.DiGraph()) == []


# ─── Layer Assignment ─────────────────────────────────────────────────────────


class TestAssignLayers:
    def test_longest_path(self):
        """A → B → C plus A → C: C sits below B, not next to it."""
        layers = assign_layers(make_graph(("A", "B"), ("B", "C"), ("A", "C")))
        assert layers == {"A": 0, "B": 1, "C": 2}

    def test_isolated_nodes_in_first_layer(self):
        g = make_graph(("A", "B"))
        g.add_node("Z", width=10, height=10, constraint="NONE")
        assert assign_layers(g)["Z"] == 0

    def test_first_constraint(self):
        g = make_graph(("A", "B"))
        g.add_node("P", width=10, height=10, constraint="FIRST")
        layers = assign_layers(g)
        assert layers["P"] == 0
        assert layers["A"] == 1
        assert layers["B"] == 2

    def test_last_constraint(self):
        g = make_graph(("A", "B"))
        g.add_node("DB", width=10, height=10, constraint="LAST")
        layers = assign_layers(g)
        assert layers["DB"] == 2
        assert layers["B"] == 1

    def test_layers_are_compact(self):
        g = make_graph(("A", "B"))
        g.nodes["A"]["constraint"] = "FIRST"
        layers = assign_layers(g)
        assert sorted(set(layers.values())) == list(range(len(set(layers.values()))))


# ─── Dummy Nodes ──────────────────────────────────────────────────────────────


class TestInsertDummyNodes:
    def test_long_edge_gets_chain(self):
        dag = make_graph(("A", "B"), ("B", "C"), ("A", "C"))
        aug = insert_dummy_nodes(dag, {"A": 0, "B": 1, "C": 2}, dummy_width=20)
        assert len(aug.dummy_chains) == 1
        chain = aug.dummy_chains[0]
        assert (chain.original_src, chain.original_tgt) == ("A", "C")
        assert len(chain.dummy_ids) == 1
        dummy = chain.dummy_ids[0]
        assert dummy.startswith(DUMMY_PREFIX)
        assert aug.layers[dummy] == 1
        assert aug.graph.nodes[dummy]["width"] == 20
        assert not aug.graph.has_edge("A", "C")

    def test_dummy_ids_avoid_real_nodes(self):
        dag = make_graph(("A", f"{DUMMY_PREFIX}0_0"), (f"{DUMMY_PREFIX}0_0", "C"), ("A", "C"))
        layers = {"A": 0, f"{DUMMY_PREFIX}0_0": 1, "C": 2}
        aug = insert_dummy_nodes(dag, layers, dummy_width=20)
        (dummy,) = aug.dummy_chains[0].dummy_ids
        assert dummy != f"{DUMMY_PREFIX}0_0"
        assert aug.graph.nodes[dummy]["dummy"]
        assert "dummy" not in aug.graph.nodes[f"{DUMMY_PREFIX}0_0"]
        assert aug.graph.nodes[f"{DUMMY_PREFIX}0_0"]["width"] == 100

    def test_adjacent_edges_untouched(self):
        aug = insert_dummy_nodes(make_graph(("A", "B")), {"A": 0, "B": 1}, dummy_width=20)
        assert aug.dummy_chains == []
        assert aug.graph.has_edge("A", "B")

    def test_every_edge_spans_one_layer(self):
        dag = make_graph(("A", "B"), ("B", "C"), ("C", "D"), ("A", "D"))
        aug = insert_dummy_nodes(dag, assign_layers(dag), dummy_width=20)
        for src, tgt in aug.graph.edges():
            assert aug.layers[tgt] - aug.layers[src] == 1


# ─── Crossing Minimization ────────────────────────────────────────────────────


class TestCountCrossings:
    def test_no_crossings_parallel(self):
        aug = make_augmented_graph([("A", "C"), ("B", "D")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert count_crossings([["A", "B"], ["C", "D"]], aug.graph) == 0

    def test_one_crossing(self):
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert count_crossings([["A", "B"], ["C", "D"]], aug.graph) == 1
        assert count_crossings([["A", "B"], ["D", "C"]], aug.graph) == 0

    def test_empty(self):
        assert count_crossings([], nx.DiGraph()) == 0


class TestMinimiseCrossings:
    def test_removes_simple_crossing(self):
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        result = minimise_crossings(aug)
        assert count_crossings(result, aug.graph) == 0

    def test_each_node_in_its_layer(self):
        layers = {"A": 0, "B": 1, "C": 1, "D": 2}
        aug = make_augmented_graph([("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")], layers)
        result = minimise_crossings(aug)
        for node_id, layer in layers.items():
            assert node_id in result[layer]

    def test_model_order_kept_without_crossings(self):
        aug = make_augmented_graph([], {"B": 0, "A": 0, "C": 0})
        assert minimise_crossings(aug) == [["B", "A", "C"]]

    def test_empty(self):
        aug = AugmentedGraph(graph=nx.DiGraph(), layers={}, layer_count=0)
        assert minimise_crossings(aug) == []


# ─── Coordinate Assignment ────────────────────────────────────────────────────


class TestAssignCoordinates:
    def test_layers_stack_with_spacing(self):
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        nodes = {n.id: n for n in assign_coordinates([["A"], ["B"]], aug, NO_PADDING)}
        assert nodes["A"].y == 0
        assert nodes["B"].y == 50 + NO_PADDING.spacing_between_layers

    def test_same_layer_same_y_and_no_overlap(self):
        aug = make_augmented_graph([], {"A": 0, "B": 0})
        nodes = {n.id: n for n in assign_coordinates([["A", "B"]], aug, NO_PADDING)}
        assert nodes["A"].y == nodes["B"].y
        assert nodes["A"].x + nodes["A"].width + NO_PADDING.spacing_node_node <= nodes["B"].x

    def test_balancing_keeps_mixed_width_layer_apart(self):
        """Mixed widths, a cycle and a self-loop: balancing shifts must not squeeze a layer."""
        graph = sized(
            {"n0": 240, "n1": 200, "n2": 280, "n3": 200},
            [("n3", "n1"), ("n0", "n3"), ("n2", "n0"), ("n3", "n0"), ("n3", "n3"), ("n1", "n0"), ("n3", "n2")],
        )
        gaps = same_layer_gaps(graph, layered_layout(graph, DEFAULT_OPTIONS))
        assert gaps
        assert min(gaps) >= DEFAULT_OPTIONS.spacing_node_node - 1e-6

    def test_no_same_layer_overlap_across_random_graphs(self):
        rng = random.Random(1234)
        for _ in range(300):
            ids = [f"n{i}" for i in range(rng.randint(2, 8))]
            widths = {n: rng.choice((180, 200, 240, 280, 300)) for n in ids}
            edges = [(rng.choice(ids), rng.choice(ids)) for _ in range(rng.randint(0, 12))]
            graph = sized(widths, edges)
            for gap in same_layer_gaps(graph, layered_layout(graph, DEFAULT_OPTIONS)):
                assert gap >= DEFAULT_OPTIONS.spacing_node_node - 1e-6, (widths, edges)

    def test_narrow_layer_is_centred(self):
        aug = make_augmented_graph([], {"A": 0, "B": 0, "C": 1})
        nodes = {n.id: n for n in assign_coordinates([["A", "B"], ["C"]], aug, NO_PADDING)}
        top_mid = (nodes["A"].x + nodes["B"].x + nodes["B"].width) / 2
        assert nodes["C"].x + nodes["C"].width / 2 == pytest.approx(top_mid)

    def test_non_negative(self):
        aug = make_augmented_graph([("A", "C"), ("B", "C")], {"A": 0, "B": 0, "C": 1})
        for n in assign_coordinates([["A", "B"], ["C"]], aug, NO_PADDING):
            assert n.x >= 0 and n.y >= 0

    def test_right_direction_transposes(self):
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        options = LayeredOptions(direction="RIGHT", padding=Padding(0, 0, 0, 0))
        nodes = {n.id: n for n in assign_coordinates([["A"], ["B"]], aug, options)}
        assert nodes["A"].x == 0
        assert nodes["B"].x == 100 + options.spacing_between_layers
        assert nodes["A"].y == nodes["B"].y
        assert (nodes["A"].width, nodes["A"].height) == (100, 50)


class TestLayoutNode:
    def test_construction(self):
        node = LayoutNode(id="A", layer=0, order=1, x=5, y=10, width=7, height=3)
        assert (node.id, node.layer, node.order, node.x, node.y, node.width, node.height) == ("A", 0, 1, 5, 10, 7, 3)


# ─── Full pipeline ────────────────────────────────────────────────────────────


class TestLayeredLayout:
    def test_top_to_bottom_chain(self):
        result = layered_layout(layered(["A", "B", "C"], [("A", "B"), ("B", "C")]), LayeredOptions())
        pos = result.positions
        assert pos["A"].y < pos["B"].y < pos["C"].y

    def test_padding_applied(self):
        options = LayeredOptions(padding=Padding(top=10, left=20, bottom=30, right=40))
        result = layered_layout(layered(["A"], []), options)
        assert (result.positions["A"].x, result.positions["A"].y) == (20, 10)
        assert result.width == 20 + 100 + 40
        assert result.height == 10 + 50 + 30

    def test_dummies_not_reported(self):
        result = layered_layout(layered(["A", "B", "C"], [("A", "B"), ("B", "C"), ("A", "C")]), LayeredOptions())
        assert set(result.positions) == {"A", "B", "C"}

    def test_node_named_like_a_dummy_is_reported(self):
        odd = f"{DUMMY_PREFIX}0_0"
        result = layered_layout(layered(["A", odd, "C"], [("A", odd), (odd, "C"), ("A", "C")]), LayeredOptions())
        assert set(result.positions) == {"A", odd, "C"}

    def test_cycle_still_laid_out(self):
        result = layered_layout(layered(["A", "B"], [("A", "B"), ("B", "A")]), LayeredOptions())
        assert set(result.positions) == {"A", "B"}

    def test_deterministic(self):
        graph = layered(["A", "B", "C", "D"], [("A", "C"), ("B", "D"), ("A", "D"), ("C", "A")])
        assert layered_layout(graph, LayeredOptions()) == layered_layout(graph, LayeredOptions())

    def test_empty_graph(self):
        result = layered_layout(LayeredGraph(), LayeredOptions())
        assert result.positions == {}
        assert (result.width, result.height) == (0, 0)

    def test_unknown_edge_endpoint_raises(self):
        with pytest.raises(LayoutEngineError):
            layered_layout(layered(["A"], [("A", "ghost")]), LayeredOptions())

    def test_duplicate_node_raises(self):
        with pytest.raises(LayoutEngineError):
            layered_layout(layered(["A", "A"], []), LayeredOptions())

    def test_external_only_options_do_not_change_layout(self):
        graph = layered(["A", "B", "C"], [("A", "B"), ("A", "C")])
        options = LayeredOptions(
            node_placement="BRANDES_KOEPF",
            fixed_alignment="LEFTUP",
            edge_routing="SPLINES",
            spacing_edge_node=5,
        )
        assert layered_layout(graph, options) == layered_layout(graph, LayeredOptions())

    def test_unsupported_direction_raises(self):
        with pytest.raises(LayoutEngineError):
            layered_layout(layered(["A"], []), LayeredOptions(direction="UP"))


class TestSugiyamaEngine:
    @pytest.mark.asyncio
    async def test_async_layout_matches_sync(self):
        graph = layered(["A", "B"], [("A", "B")])
        result = await SugiyamaEngine().layout(graph, LayeredOptions())
        assert result == layered_layout(graph, LayeredOptions())

    def test_default_engine_is_cached(self):
        engine = default_engine()
        assert isinstance(engine, SugiyamaEngine)
        assert default_engine() is engine
