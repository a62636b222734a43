"""Flat-graph layout: layered engine contract, default engine and the element adapter."""

from c4_layout.layout.engine import LayoutEngine, LayoutEngineError, default_engine
from c4_layout.layout.flat import build_graph, grid_layout, layout_flat, node_size
from c4_layout.layout.types import (
    DEFAULT_OPTIONS,
    GraphEdge,
    GraphNode,
    LayeredGraph,
    LayeredOptions,
    LayoutResult,
    Padding,
    Position,
    Size,
)

__all__ = [
    "DEFAULT_OPTIONS",
    "GraphEdge",
    "GraphNode",
    "LayeredGraph",
    "LayeredOptions",
    "LayoutEngine",
    "LayoutEngineError",
    "LayoutResult",
    "Padding",
    "Position",
    "Size",
    "build_graph",
    "default_engine",
    "grid_layout",
    "layout_flat",
    "node_size",
]
