"""Layout orchestration — the async entry point used by the rendering layer.

``compute`` is a pure coroutine: model + view + generation in, a
``LayoutOutput`` stamped with that generation out. ``LayoutOrchestrator``
is the caller side: it issues monotonically increasing generations, runs
``compute`` and commits a result only if its generation is still the
latest one issued. A superseded computation runs to completion but its
result is dropped, so the most recently requested layout always wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any

from c4_layout.deployment import FlatInstanceNode, compose, select_deployment_nodes
from c4_layout.ids import build_id_index, matches_query
from c4_layout.layout.engine import LayoutEngine
from c4_layout.layout.flat import layout_flat, node_size
from c4_layout.layout.types import DEFAULT_OPTIONS, ORIGIN, LayeredOptions, Position, Size
from c4_layout.model import C4Model, Entity, EntityKind, Relationship, View, ViewType
from c4_layout.views import elements_for_view

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    PERSON = "person"
    SYSTEM = "system"
    CONTAINER = "container"
    COMPONENT = "component"
    DEPLOYMENT_NODE = "deploymentNode"
    DEPLOYMENT_GROUP = "deploymentGroup"
    INSTANCE = "instanceNode"


_ENTITY_NODE_KINDS = {
    EntityKind.PERSON: NodeKind.PERSON,
    EntityKind.SYSTEM: NodeKind.SYSTEM,
    EntityKind.CONTAINER: NodeKind.CONTAINER,
    EntityKind.COMPONENT: NodeKind.COMPONENT,
}

# Kinds whose payload carries a drill-down callback.
_DRILLABLE = (NodeKind.SYSTEM, NodeKind.CONTAINER)


@dataclass(frozen=True, order=True)
class Generation:
    """Ticket identifying one layout request; higher is newer."""

    value: int

    def next(self) -> Generation:
        return Generation(self.value + 1)


@dataclass(frozen=True)
class Callbacks:
    """UI callbacks threaded into node payloads; wiring them is the caller's job."""

    on_select: Callable[[str], Any] | None = None
    on_drill_down: Callable[[str], Any] | None = None


@dataclass(frozen=True)
class FlowNode:
    id: str
    kind: NodeKind
    position: Position
    size: Size
    payload: Mapping[str, Any] = field(default_factory=dict)
    parent_id: str | None = None
    dimmed: bool = False
    focused: bool = False

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form; callbacks are left out."""
        out: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "position": {"x": self.position.x, "y": self.position.y},
            "size": {"width": self.size.width, "height": self.size.height},
            "data": _jsonable(self.payload.get("data")),
        }
        if self.parent_id is not None:
            out["parentId"] = self.parent_id
        if self.dimmed:
            out["dimmed"] = True
        if self.focused:
            out["focused"] = True
        return out


@dataclass(frozen=True)
class FlowEdge:
    id: str
    source: str
    target: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target, "data": _jsonable(dict(self.payload))}


@dataclass(frozen=True)
class LayoutOutput:
    generation: Generation
    nodes: tuple[FlowNode, ...] = ()
    edges: tuple[FlowEdge, ...] = ()
    width: float = 0
    height: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation.value,
            "width": self.width,
            "height": self.height,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


# ─── Projection ───────────────────────────────────────────────────────────────


def entity_node(entity: Entity, position: Position, view: View, callbacks: Callbacks) -> FlowNode:
    kind = _ENTITY_NODE_KINDS[entity.kind]
    payload: dict[str, Any] = {"data": entity, "on_select": callbacks.on_select}
    if kind in _DRILLABLE:
        payload["on_drill_down"] = callbacks.on_drill_down
    return FlowNode(
        id=entity.id,
        kind=kind,
        position=position,
        size=node_size(entity.kind),
        payload=payload,
        dimmed=bool(view.query) and not matches_query(entity, view.query),
        focused=kind is NodeKind.SYSTEM and entity.id == view.focus,
    )


def project_edges(relationships: Sequence[Relationship], entities: Sequence[Entity]) -> list[FlowEdge]:
    """One edge per relationship whose two endpoints resolve to a visible entity."""
    index = build_id_index(entities)
    edges: list[FlowEdge] = []
    for i, rel in enumerate(relationships):
        source = index.get(rel.source)
        target = index.get(rel.target)
        if source is None or target is None:
            continue
        edges.append(
            FlowEdge(
                id=f"{rel.source}-{rel.target}-{i}",
                source=source.id,
                target=target.id,
                payload={"description": rel.description, "technology": rel.technology},
            )
        )
    return edges


def deployment_output(model: C4Model, view: View, generation: Generation, callbacks: Callbacks) -> LayoutOutput:
    flat = select_deployment_nodes(model, view.focus, view.selected)
    if not flat:
        return LayoutOutput(generation=generation)

    geometry = compose(flat)
    nodes: list[FlowNode] = []
    for item in geometry.nodes:
        if isinstance(item, FlatInstanceNode):
            kind = NodeKind.INSTANCE
        elif item.is_group:
            kind = NodeKind.DEPLOYMENT_GROUP
        else:
            kind = NodeKind.DEPLOYMENT_NODE
        nodes.append(
            FlowNode(
                id=item.id,
                kind=kind,
                position=geometry.positions.get(item.id, ORIGIN),
                size=geometry.sizes[item.id],
                payload={"data": item, "on_select": callbacks.on_select},
                parent_id=item.parent_id,
            )
        )

    roots = [n for n in nodes if n.parent_id is None]
    width = max((n.position.x + n.size.width for n in roots), default=0)
    height = max((n.position.y + n.size.height for n in roots), default=0)
    return LayoutOutput(generation=generation, nodes=tuple(nodes), width=width, height=height)


async def compute(
    model: C4Model,
    view: View,
    generation: Generation,
    *,
    engine: LayoutEngine | None = None,
    options: LayeredOptions = DEFAULT_OPTIONS,
    callbacks: Callbacks = Callbacks(),
) -> LayoutOutput:
    """Compute nodes and edges for ``view``; the result carries ``generation`` back."""
    if view.type == ViewType.DEPLOYMENT:
        return deployment_output(model, view, generation, callbacks)

    entities = elements_for_view(model, view)
    if not entities:
        return LayoutOutput(generation=generation)

    result = await layout_flat(entities, model.relationships, engine=engine, options=options)
    nodes = tuple(entity_node(e, result.positions.get(e.id, ORIGIN), view, callbacks) for e in entities)
    edges = tuple(project_edges(model.relationships, entities))
    return LayoutOutput(generation=generation, nodes=nodes, edges=edges, width=result.width, height=result.height)


# ─── Orchestrator ─────────────────────────────────────────────────────────────


class LayoutOrchestrator:
    """Holds the committed layout and discards results from superseded requests."""

    def __init__(
        self,
        engine: LayoutEngine | None = None,
        options: LayeredOptions = DEFAULT_OPTIONS,
        callbacks: Callbacks = Callbacks(),
    ) -> None:
        self.engine = engine
        self.options = options
        self.callbacks = callbacks
        self.generation = Generation(0)
        self.output = LayoutOutput(generation=self.generation)
        self.is_layouting = False

    @property
    def nodes(self) -> tuple[FlowNode, ...]:
        return self.output.nodes

    @property
    def edges(self) -> tuple[FlowEdge, ...]:
        return self.output.edges

    def issue(self) -> Generation:
        self.generation = self.generation.next()
        return self.generation

    def is_current(self, generation: Generation) -> bool:
        return generation == self.generation

    def commit(self, output: LayoutOutput) -> bool:
        """Apply ``output`` if it is still current; returns whether it was applied."""
        if not self.is_current(output.generation):
            logger.debug("Discarding stale layout (generation %d, current %d)", output.generation.value, self.generation.value)
            return False
        self.output = output
        return True

    async def compute_layout(self, model: C4Model | None, view: View) -> LayoutOutput | None:
        """Recompute for ``view``; returns the committed output, or ``None`` if superseded."""
        generation = self.issue()
        if model is None:
            self.is_layouting = False
            self.commit(LayoutOutput(generation=generation))
            return self.output

        self.is_layouting = True
        try:
            output = await compute(
                model,
                view,
                generation,
                engine=self.engine,
                options=self.options,
                callbacks=self.callbacks,
            )
        finally:
            if self.is_current(generation):
                self.is_layouting = False

        if not self.commit(output):
            return None
        return output


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items() if not callable(v)}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
