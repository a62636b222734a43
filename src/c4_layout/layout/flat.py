"""Flat element graph layout: entities + relationships → positions.

``layout_flat`` sizes one node per entity, keeps only the relationships
whose two endpoints both resolve to an entity of the current view, and
hands the graph to a layered engine. If the engine raises, the failure is
logged and a deterministic grid is returned instead; callers never see the
exception.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from c4_layout.classify import semantic_layer
from c4_layout.ids import build_id_index
from c4_layout.layout.engine import LayoutEngine, default_engine
from c4_layout.layout.types import (
    DEFAULT_OPTIONS,
    EMPTY_RESULT,
    GraphEdge,
    GraphNode,
    LayeredGraph,
    LayeredOptions,
    LayoutResult,
    Position,
    Size,
)
from c4_layout.model import Entity, EntityKind, Relationship

logger = logging.getLogger(__name__)

NODE_DIMENSIONS: dict[str, Size] = {
    EntityKind.PERSON.value: Size(200, 180),
    EntityKind.SYSTEM.value: Size(280, 200),
    EntityKind.CONTAINER.value: Size(280, 160),
    EntityKind.COMPONENT.value: Size(240, 120),
    "deploymentNode": Size(300, 180),
    "deploymentGroup": Size(400, 300),
}

GRID_COLUMNS = 4
GRID_SPACING = Size(320, 200)

# Semantic layers are advisory; the layering itself follows edge direction.
LAYER_CONSTRAINT = "NONE"


def node_size(kind: str) -> Size:
    """Fixed size for an entity or deployment kind; unknown kinds get the container size."""
    return NODE_DIMENSIONS.get(str(getattr(kind, "value", kind)), NODE_DIMENSIONS[EntityKind.CONTAINER.value])


def build_graph(entities: Sequence[Entity], relationships: Sequence[Relationship]) -> LayeredGraph:
    """Build the engine input. Edges with an unresolved or off-view endpoint are dropped."""
    nodes: list[GraphNode] = []
    for entity in entities:
        size = node_size(entity.kind)
        nodes.append(
            GraphNode(
                id=entity.id,
                width=size.width,
                height=size.height,
                semantic_layer=int(semantic_layer(entity)),
                layer_constraint=LAYER_CONSTRAINT,
            )
        )

    index = build_id_index(entities)
    edges: list[GraphEdge] = []
    for i, rel in enumerate(relationships):
        source = index.get(rel.source)
        target = index.get(rel.target)
        if source is None or target is None:
            continue
        edges.append(GraphEdge(id=f"e{i}", sources=(source.id,), targets=(target.id,)))

    return LayeredGraph(nodes=tuple(nodes), edges=tuple(edges))


def grid_layout(entities: Sequence[Entity]) -> LayoutResult:
    """Row-major grid, ``GRID_COLUMNS`` wide, in the order the entities were given."""
    positions: dict[str, Position] = {}
    for i, entity in enumerate(entities):
        col = i % GRID_COLUMNS
        row = i // GRID_COLUMNS
        positions.setdefault(entity.id, Position(col * GRID_SPACING.width, row * GRID_SPACING.height))

    cols = min(len(entities), GRID_COLUMNS)
    rows = math.ceil(len(entities) / GRID_COLUMNS)
    return LayoutResult(positions=positions, width=cols * GRID_SPACING.width, height=rows * GRID_SPACING.height)


async def layout_flat(
    entities: Sequence[Entity],
    relationships: Sequence[Relationship],
    *,
    engine: LayoutEngine | None = None,
    options: LayeredOptions = DEFAULT_OPTIONS,
) -> LayoutResult:
    """Lay out ``entities`` top to bottom; falls back to ``grid_layout`` on engine failure."""
    if not entities:
        return EMPTY_RESULT

    graph = build_graph(entities, relationships)
    logger.debug("Layered layout: %d nodes, %d edges", len(graph.nodes), len(graph.edges))

    try:
        if engine is None:
            engine = default_engine()
        result = await engine.layout(graph, options)
    except Exception:
        logger.exception(
            "Layered layout failed for %d nodes / %d edges (options=%s); using grid fallback",
            len(graph.nodes),
            len(graph.edges),
            options.as_properties(),
        )
        return grid_layout(entities)

    positions = {node.id: result.positions[node.id] for node in graph.nodes if node.id in result.positions}
    return LayoutResult(positions=positions, width=result.width, height=result.height)
