"""Geometry and layered-graph types shared by the layout engines."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


ORIGIN = Position(0, 0)


@dataclass(frozen=True)
class LayoutResult:
    """Positions keyed by node id plus the overall drawing bounds."""

    positions: Mapping[str, Position] = field(default_factory=dict)
    width: float = 0
    height: float = 0


EMPTY_RESULT = LayoutResult()


# ─── Layered graph input ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class GraphNode:
    """A sized node handed to a layered engine.

    ``layer_constraint`` mirrors the usual layered-layout constraint values:
    ``"NONE"`` (layer follows edge direction), ``"FIRST"`` or ``"LAST"``.
    ``semantic_layer`` is advisory only.
    """

    id: str
    width: float
    height: float
    semantic_layer: int | None = None
    layer_constraint: str = "NONE"


@dataclass(frozen=True)
class GraphEdge:
    id: str
    sources: tuple[str, ...]
    targets: tuple[str, ...]


@dataclass(frozen=True)
class LayeredGraph:
    nodes: tuple[GraphNode, ...] = ()
    edges: tuple[GraphEdge, ...] = ()


@dataclass(frozen=True)
class Padding:
    top: float = 50
    left: float = 50
    bottom: float = 50
    right: float = 50


@dataclass(frozen=True)
class LayeredOptions:
    """Fixed configuration for a layered layout run.

    Defaults give a top-to-bottom architecture reading with orthogonal edges.
    """

    direction: str = "DOWN"
    edge_routing: str = "ORTHOGONAL"
    crossing_minimization: str = "LAYER_SWEEP"
    node_placement: str = "NETWORK_SIMPLEX"
    fixed_alignment: str = "BALANCED"
    spacing_between_layers: float = 120
    spacing_node_node: float = 60
    spacing_edge_node: float = 40
    spacing_edge_edge: float = 20
    padding: Padding = field(default_factory=Padding)

    def as_properties(self) -> dict[str, str]:
        """Render as flat ``elk.*`` layout properties (for logs and external engines)."""
        p = self.padding
        return {
            "elk.algorithm": "layered",
            "elk.direction": self.direction,
            "elk.layered.spacing.nodeNodeBetweenLayers": str(self.spacing_between_layers),
            "elk.spacing.nodeNode": str(self.spacing_node_node),
            "elk.spacing.edgeNode": str(self.spacing_edge_node),
            "elk.spacing.edgeEdge": str(self.spacing_edge_edge),
            "elk.layered.crossingMinimization.strategy": self.crossing_minimization,
            "elk.layered.nodePlacement.strategy": self.node_placement,
            "elk.layered.nodePlacement.bk.fixedAlignment": self.fixed_alignment,
            "elk.layered.edgeRouting": self.edge_routing,
            "elk.padding": f"[top={p.top}, left={p.left}, bottom={p.bottom}, right={p.right}]",
        }


DEFAULT_OPTIONS = LayeredOptions()
