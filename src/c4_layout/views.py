"""Visible entity subsets for the flat (non-deployment) views.

    landscape  every person and system
    context    the focused person/system and its direct neighbours
               (every person and system when nothing is focused)
    container  containers of the focused system, plus people and systems
               connected to any of them
    component  components of the focused container, plus sibling
               containers wired to them; a container without components
               shows itself and everything directly connected to it

A missing focus where one is required, or an unknown view, yields an empty
list rather than an error.
"""

from __future__ import annotations

from collections.abc import Sequence

from c4_layout.ids import ids_of, matches
from c4_layout.model import C4Model, Container, Entity, Relationship, View, ViewType


def elements_for_view(model: C4Model, view: View) -> list[Entity]:
    try:
        view_type = ViewType(view.type)
    except ValueError:
        return []
    selector = _SELECTORS.get(view_type)
    if selector is None:
        return []
    return selector(model, view.focus)


def _landscape(model: C4Model, focus: str | None) -> list[Entity]:
    return [*model.persons, *model.systems]


def _context(model: C4Model, focus: str | None) -> list[Entity]:
    if not focus:
        return [*model.persons, *model.systems]
    related = {focus}
    for rel in model.relationships:
        if rel.source == focus:
            related.add(rel.target)
        if rel.target == focus:
            related.add(rel.source)
    return [e for e in (*model.persons, *model.systems) if e.id in related]


def _connected(entity: Entity, others: Sequence[Entity], relationships: Sequence[Relationship]) -> bool:
    """True if any relationship links ``entity`` to one of ``others``, in either direction."""
    for rel in relationships:
        if matches(rel.source, entity) and any(matches(rel.target, o) for o in others):
            return True
        if matches(rel.target, entity) and any(matches(rel.source, o) for o in others):
            return True
    return False


def _container(model: C4Model, focus: str | None) -> list[Entity]:
    if not focus:
        return []
    containers = [c for c in model.containers if c.system_id == focus]
    persons = [p for p in model.persons if _connected(p, containers, model.relationships)]
    systems = [s for s in model.systems if _connected(s, containers, model.relationships)]
    return [*persons, *systems, *containers]


def _component(model: C4Model, focus: str | None) -> list[Entity]:
    if not focus:
        return []
    components = [c for c in model.components if c.container_id == focus]
    container = model.find_container(focus)
    if container is None:
        return list(components)
    if not components:
        return _container_neighbourhood(model, container)

    others = [
        c
        for c in model.containers
        if c.system_id == container.system_id and _connected(c, components, model.relationships)
    ]
    return [*others, *components]


def _container_neighbourhood(model: C4Model, container: Container) -> list[Entity]:
    own_ids = set(ids_of(container))
    connected: set[str] = set()
    for rel in model.relationships:
        if rel.source in own_ids:
            connected.add(rel.target)
        if rel.target in own_ids:
            connected.add(rel.source)

    def is_connected(entity: Entity) -> bool:
        return any(key in connected for key in ids_of(entity))

    return [
        container,
        *(p for p in model.persons if is_connected(p)),
        *(s for s in model.systems if is_connected(s)),
        *(c for c in model.containers if c.id != container.id and is_connected(c)),
    ]


_SELECTORS = {
    ViewType.LANDSCAPE: _landscape,
    ViewType.CONTEXT: _context,
    ViewType.CONTAINER: _container,
    ViewType.COMPONENT: _component,
}
