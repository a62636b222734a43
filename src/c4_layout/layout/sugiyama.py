"""Sugiyama-style layered layout engine.

Phases:
  1. Cycle removal  (greedy-FAS)
  2. Layer assignment (longest path, FIRST/LAST constraints applied after)
  3. Dummy node insertion (edges spanning several layers)
  4. Crossing minimization (layer-sweep barycenter)
  5. Coordinate assignment (balanced, pixel sizes, padding)

Coordinates are top-left corners in pixels. Node order inside a layer
starts from model order (the order nodes were given), so the same input
graph always produces the same layout.

Of ``LayeredOptions`` this engine reads ``direction``,
``crossing_minimization``, ``spacing_between_layers``,
``spacing_node_node``, ``spacing_edge_edge`` (dummy lane width) and
``padding``. ``node_placement``, ``fixed_alignment``, ``edge_routing`` and
``spacing_edge_node`` are carried for external engines only: this engine
always uses its own balanced placement and does not route edges.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field

import networkx as nx

from c4_layout.layout.engine import LayoutEngineError
from c4_layout.layout.types import LayeredGraph, LayeredOptions, LayoutResult, Position

logger = logging.getLogger(__name__)

DUMMY_PREFIX = "__dummy_"
SUPPORTED_DIRECTIONS = ("DOWN", "RIGHT")
SUPPORTED_CROSSING_MINIMIZATION = ("LAYER_SWEEP",)
MAX_SWEEPS = 24


def build_digraph(graph: LayeredGraph) -> nx.DiGraph:
    """Turn the engine input into a DiGraph carrying width/height/constraint attributes."""
    g: nx.DiGraph = nx.DiGraph()
    for node in graph.nodes:
        if node.id in g:
            raise LayoutEngineError(f"duplicate node id {node.id!r}")
        if node.width < 0 or node.height < 0:
            raise LayoutEngineError(f"node {node.id!r} has a negative size")
        g.add_node(node.id, width=node.width, height=node.height, constraint=node.layer_constraint)

    for edge in graph.edges:
        for src in edge.sources:
            for tgt in edge.targets:
                if src not in g or tgt not in g:
                    raise LayoutEngineError(f"edge {edge.id!r} references an unknown node ({src!r} -> {tgt!r})")
                g.add_edge(src, tgt, id=edge.id)
    return g


# ─── Cycle Removal (Greedy-FAS) ───────────────────────────────────────────────


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Order nodes so that as few edges as possible point backwards.

    Eades, Lin, Smyth 1993: repeatedly peel sinks to the right and sources to
    the left; when only cycles remain, move the node with the largest
    (out - in) surplus to the left. Ties go to the earliest node in model
    order.
    """
    # Insertion-ordered, so iteration and tie-breaking are stable.
    active: dict[str, None] = dict.fromkeys(graph.nodes)

    out_deg: dict[str, int] = {}
    in_deg: dict[str, int] = {}
    for node in graph.nodes:
        out_deg[node] = sum(1 for succ in graph.successors(node) if succ != node)
        in_deg[node] = sum(1 for pred in graph.predecessors(node) if pred != node)

    # s1 grows from the left (sources, surplus nodes), s2 from the right (sinks).
    s1: list[str] = []
    s2: list[str] = []

    while active:
        # Step 1: peel sinks into s2.
        changed = True
        while changed:
            changed = False
            sinks = [n for n in active if out_deg[n] == 0]
            if sinks:
                changed = True
                for sink in sinks:
                    del active[sink]
                    s2.append(sink)
                    for pred in graph.predecessors(sink):
                        if pred in active:
                            out_deg[pred] -= 1

        # Step 2: peel sources into s1.
        changed = True
        while changed:
            changed = False
            sources = [n for n in active if in_deg[n] == 0]
            if sources:
                changed = True
                for source in sources:
                    del active[source]
                    s1.append(source)
                    for succ in graph.successors(source):
                        if succ in active:
                            in_deg[succ] -= 1

        # Step 3: only cycles remain; break one at the largest out - in surplus.
        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            del active[best]
            s1.append(best)
            for succ in graph.successors(best):
                if succ in active:
                    in_deg[succ] -= 1
            for pred in graph.predecessors(best):
                if pred in active:
                    out_deg[pred] -= 1

    # Final ordering: s1 followed by s2 reversed.
    s2.reverse()
    s1.extend(s2)
    return s1


def remove_cycles(graph: nx.DiGraph) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Return an acyclic copy of ``graph`` and the set of edges that were reversed.

    Self-loops count as reversed and are dropped from the copy.
    """
    if graph.number_of_nodes() == 0:
        return graph.copy(), set()

    position = {node: pos for pos, node in enumerate(greedy_fas_ordering(graph))}

    # Back-edges point against the ordering; self-loops are always back-edges.
    reversed_edges: set[tuple[str, str]] = set()
    for src, tgt in graph.edges():
        if src == tgt or position[src] > position[tgt]:
            reversed_edges.add((src, tgt))

    dag: nx.DiGraph = nx.DiGraph()
    for node_id in graph.nodes:
        dag.add_node(node_id, **graph.nodes[node_id])
    for src, tgt, attrs in graph.edges(data=True):
        if src == tgt:
            # Self-loops carry no layering information.
            continue
        if (src, tgt) in reversed_edges:
            dag.add_edge(tgt, src, **attrs)
        else:
            dag.add_edge(src, tgt, **attrs)

    return dag, reversed_edges


# ─── Layer Assignment ─────────────────────────────────────────────────────────


def assign_layers(dag: nx.DiGraph) -> dict[str, int]:
    """Longest-path layering, then FIRST/LAST constraints, then compaction.

    For each edge u→v: rank[v] = max(rank[v], rank[u] + 1), iterated to a
    fixed point. Nodes constrained ``FIRST`` move to a layer of their own
    above everything else, ``LAST`` to one below everything else. Empty
    layers are squeezed out.
    """
    layers: dict[str, int] = {node_id: 0 for node_id in dag.nodes}

    # Fixed-point iteration: push each target below its source.
    changed = True
    while changed:
        changed = False
        for src, tgt in dag.edges():
            if layers[tgt] < layers[src] + 1:
                layers[tgt] = layers[src] + 1
                changed = True

    first = [n for n in dag.nodes if dag.nodes[n].get("constraint") == "FIRST"]
    last = [n for n in dag.nodes if dag.nodes[n].get("constraint") == "LAST"]
    if first or last:
        bottom = max(layers.values(), default=0) + 2
        for node_id in layers:
            layers[node_id] += 1
        for node_id in first:
            layers[node_id] = 0
        for node_id in last:
            layers[node_id] = bottom

    # Squeeze out empty layers.
    used = sorted(set(layers.values()))
    compact = {layer: i for i, layer in enumerate(used)}
    return {node_id: compact[layer] for node_id, layer in layers.items()}


# ─── Dummy Node Insertion ─────────────────────────────────────────────────────


@dataclass
class DummyChain:
    """Dummy nodes standing in for one long edge, top to bottom."""

    original_src: str
    original_tgt: str
    dummy_ids: list[str]


@dataclass
class AugmentedGraph:
    """A layered graph in which every downward edge spans exactly one layer."""

    graph: nx.DiGraph
    layers: dict[str, int]
    layer_count: int
    dummy_chains: list[DummyChain] = field(default_factory=list)


def _is_dummy(graph: nx.DiGraph, node_id: str) -> bool:
    return bool(graph.nodes[node_id].get("dummy", False))


def insert_dummy_nodes(dag: nx.DiGraph, layers: dict[str, int], dummy_width: float) -> AugmentedGraph:
    """Replace every edge u→v with layer[v] - layer[u] > 1 by a chain through dummy nodes.

    Dummies are ``dummy_width`` wide and zero high: they only reserve a lane
    for the edge in each intermediate layer.
    """
    g: nx.DiGraph = nx.DiGraph()
    for node_id in dag.nodes:
        g.add_node(node_id, **dag.nodes[node_id])

    layers = copy.copy(layers)
    chains: list[DummyChain] = []

    for src, tgt in list(dag.edges()):
        span = layers[tgt] - layers[src]
        if span <= 1:
            # Adjacent-layer edge, copied as is.
            g.add_edge(src, tgt)
            continue

        # Long edge: chain through one dummy per intermediate layer.
        chain_index = len(chains)
        dummy_ids: list[str] = []
        prev = src
        for step in range(span - 1):
            dummy_id = f"{DUMMY_PREFIX}{chain_index}_{step}"
            # Never reuse a real node's id.
            while dummy_id in g:
                dummy_id = f"_{dummy_id}"
            g.add_node(dummy_id, width=dummy_width, height=0, constraint="NONE", dummy=True)
            layers[dummy_id] = layers[src] + step + 1
            g.add_edge(prev, dummy_id)
            dummy_ids.append(dummy_id)
            prev = dummy_id
        g.add_edge(prev, tgt)
        chains.append(DummyChain(original_src=src, original_tgt=tgt, dummy_ids=dummy_ids))

    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count, dummy_chains=chains)


# ─── Crossing Minimization (Barycenter) ───────────────────────────────────────


def minimise_crossings(aug: AugmentedGraph) -> list[list[str]]:
    """Reorder each layer with alternating top-down / bottom-up barycenter sweeps.

    Starts from model order and stops as soon as a full sweep fails to
    reduce the crossing count. Sorting is stable, so ties keep model order.
    """
    # Initial ordering: model order within each layer.
    ordering: list[list[str]] = [[] for _ in range(aug.layer_count)]
    for node_id in aug.graph.nodes:
        ordering[aug.layers[node_id]].append(node_id)

    best_ordering = [list(layer) for layer in ordering]
    best = count_crossings(ordering, aug.graph)

    for _sweep in range(MAX_SWEEPS):
        if best == 0:
            break

        # Top-down sweep: order by predecessor positions.
        for layer_idx in range(1, aug.layer_count):
            prev = {nid: float(i) for i, nid in enumerate(ordering[layer_idx - 1])}
            ordering[layer_idx].sort(key=lambda n, p=prev: _barycenter(n, aug.graph, p, "incoming"))

        # Bottom-up sweep: order by successor positions.
        for layer_idx in range(aug.layer_count - 2, -1, -1):
            nxt = {nid: float(i) for i, nid in enumerate(ordering[layer_idx + 1])}
            ordering[layer_idx].sort(key=lambda n, q=nxt: _barycenter(n, aug.graph, q, "outgoing"))

        crossings = count_crossings(ordering, aug.graph)
        if crossings >= best:
            break
        best = crossings
        best_ordering = [list(layer) for layer in ordering]

    return best_ordering


def _barycenter(node_id: str, graph: nx.DiGraph, neighbor_pos: dict[str, float], direction: str) -> float:
    """Mean position of a node's neighbours in the adjacent layer; ``inf`` when it has none."""
    neighbors = graph.predecessors(node_id) if direction == "incoming" else graph.successors(node_id)
    positions = [neighbor_pos[nb] for nb in neighbors if nb in neighbor_pos]
    if not positions:
        return float("inf")
    return sum(positions) / len(positions)


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Count pairwise edge crossings between consecutive layers."""
    total = 0
    for l_idx in range(len(ordering) - 1):
        tgt_pos = {nid: i for i, nid in enumerate(ordering[l_idx + 1])}
        edges: list[tuple[int, int]] = []
        for sp, src_id in enumerate(ordering[l_idx]):
            for nb in graph.successors(src_id):
                if nb in tgt_pos:
                    edges.append((sp, tgt_pos[nb]))
        for i in range(len(edges)):
            for j in range(i + 1, len(edges)):
                (a0, a1), (b0, b1) = edges[i], edges[j]
                if (a0 < b0 and a1 > b1) or (a0 > b0 and a1 < b1):
                    total += 1
    return total


# ─── Coordinate Assignment ────────────────────────────────────────────────────


@dataclass
class LayoutNode:
    """A positioned node; x/y are the top-left corner in pixels."""

    id: str
    layer: int
    order: int
    x: float
    y: float
    width: float
    height: float


def assign_coordinates(ordering: list[list[str]], aug: AugmentedGraph, options: LayeredOptions) -> list[LayoutNode]:
    """Place every node of the augmented graph, dummies included.

    Layers are stacked along the main axis, ``spacing_between_layers`` apart,
    each as tall as its tallest node. Inside a layer nodes sit
    ``spacing_node_node`` apart and the layer is centred on the widest one.
    A balancing pass then nudges each layer (by at most the node spacing)
    towards the centres of the nodes it connects to, first top-down, then
    bottom-up. For ``RIGHT`` the same layout is computed with node sizes
    swapped and the result transposed.
    """
    transpose = options.direction == "RIGHT"
    h_gap = options.spacing_node_node
    v_gap = options.spacing_between_layers

    def node_dims(node_id: str) -> tuple[float, float]:
        attrs = aug.graph.nodes[node_id]
        if transpose:
            return attrs["height"], attrs["width"]
        return attrs["width"], attrs["height"]

    # Layer offsets along the main axis from each layer's tallest node.
    layer_max_height = [max((node_dims(n)[1] for n in layer), default=0) for layer in ordering]
    layer_y: list[float] = []
    y = 0.0
    for h in layer_max_height:
        layer_y.append(y)
        y += h + v_gap

    layer_widths: list[float] = []
    for layer_nodes in ordering:
        gaps = (len(layer_nodes) - 1) * h_gap if len(layer_nodes) > 1 else 0
        layer_widths.append(sum(node_dims(n)[0] for n in layer_nodes) + gaps)
    center = max(layer_widths, default=0) / 2

    # Centre each layer on the widest one.
    nodes: list[LayoutNode] = []
    for layer_idx, layer_nodes in enumerate(ordering):
        x = max(0.0, center - layer_widths[layer_idx] / 2)
        for order, node_id in enumerate(layer_nodes):
            width, height = node_dims(node_id)
            nodes.append(LayoutNode(id=node_id, layer=layer_idx, order=order, x=x, y=layer_y[layer_idx], width=width, height=height))
            x += width + h_gap

    by_id = {n.id: n for n in nodes}

    def mid(node: LayoutNode) -> float:
        return node.x + node.width / 2

    def shift_layer(layer_idx: int, neighbours_of, adjacent: int) -> None:
        own = 0.0
        other = 0.0
        count = 0
        for node_id in ordering[layer_idx]:
            node = by_id[node_id]
            for nb_id in neighbours_of(node_id):
                nb = by_id.get(nb_id)
                if nb is None or nb.layer != adjacent or _is_dummy(aug.graph, nb_id):
                    continue
                own += mid(node)
                other += mid(nb)
                count += 1
        if count == 0:
            return
        shift = (other - own) / count
        if abs(shift) > h_gap:
            return
        # The whole layer moves as one block so intra-layer gaps never shrink.
        for node_id in ordering[layer_idx]:
            by_id[node_id].x += shift

    # Top-down pass: align each layer under its parents.
    for layer_idx in range(1, len(ordering)):
        shift_layer(layer_idx, aug.graph.predecessors, layer_idx - 1)
    # Bottom-up pass: align each layer over its children.
    for layer_idx in range(len(ordering) - 2, -1, -1):
        shift_layer(layer_idx, aug.graph.successors, layer_idx + 1)

    # Normalize so the leftmost node starts at x=0.
    if nodes:
        min_x = min(n.x for n in nodes)
        for n in nodes:
            n.x -= min_x

    if transpose:
        for n in nodes:
            n.x, n.y = n.y, n.x
            n.width, n.height = n.height, n.width

    return nodes


# ─── Engine ───────────────────────────────────────────────────────────────────


def layered_layout(graph: LayeredGraph, options: LayeredOptions) -> LayoutResult:
    """Run the full pipeline synchronously."""
    if options.direction not in SUPPORTED_DIRECTIONS:
        raise LayoutEngineError(f"unsupported direction {options.direction!r}")
    if options.crossing_minimization not in SUPPORTED_CROSSING_MINIMIZATION:
        raise LayoutEngineError(f"unsupported crossing minimization {options.crossing_minimization!r}")

    g = build_digraph(graph)
    if g.number_of_nodes() == 0:
        return LayoutResult()

    dag, reversed_edges = remove_cycles(g)
    layers = assign_layers(dag)
    aug = insert_dummy_nodes(dag, layers, options.spacing_edge_edge)
    ordering = minimise_crossings(aug)
    placed = assign_coordinates(ordering, aug, options)
    logger.debug(
        "Layered %d nodes into %d layers (%d reversed edges, %d dummy chains)",
        g.number_of_nodes(),
        aug.layer_count,
        len(reversed_edges),
        len(aug.dummy_chains),
    )

    # Report real nodes only, offset by the graph padding.
    pad = options.padding
    positions: dict[str, Position] = {}
    right = 0.0
    bottom = 0.0
    for n in placed:
        if _is_dummy(aug.graph, n.id):
            continue
        positions[n.id] = Position(n.x + pad.left, n.y + pad.top)
        right = max(right, n.x + n.width)
        bottom = max(bottom, n.y + n.height)

    return LayoutResult(
        positions=positions,
        width=right + pad.left + pad.right,
        height=bottom + pad.top + pad.bottom,
    )


class SugiyamaEngine:
    """Default ``LayoutEngine``: runs the layered pipeline on a worker thread."""

    async def layout(self, graph: LayeredGraph, options: LayeredOptions) -> LayoutResult:
        return await asyncio.to_thread(layered_layout, graph, options)
