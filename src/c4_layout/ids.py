"""ID resolution — every string form a relationship endpoint may use for an entity.

Relationships address entities either by simple id (``"api"``) or by dotted
hierarchical id (``"shop.api"`` for a container, ``"shop.api.auth"`` for a
component). Resolution is purely structural: it looks at one entity at a
time and never at relationships or siblings, so it is safe on any subset of
the model.
"""

from __future__ import annotations

from c4_layout.model import Component, Container, Entity


def ids_of(entity: Entity) -> tuple[str, ...]:
    """Return every id string that refers to ``entity``; the simple id comes first."""
    if isinstance(entity, Container) and entity.system_id:
        return (entity.id, f"{entity.system_id}.{entity.id}")
    if isinstance(entity, Component) and entity.system_id and entity.container_id:
        return (entity.id, f"{entity.system_id}.{entity.container_id}.{entity.id}")
    return (entity.id,)


def matches(endpoint: str, entity: Entity) -> bool:
    """True iff ``endpoint`` is one of the id forms of ``entity``."""
    return endpoint in ids_of(entity)


def matches_query(entity: Entity, query: str) -> bool:
    """Case-insensitive substring match against name, description or any tag.

    An empty query matches everything.
    """
    if not query:
        return True
    needle = query.lower()
    if needle in entity.name.lower():
        return True
    if entity.description and needle in entity.description.lower():
        return True
    return any(needle in tag.lower() for tag in entity.tags)


def build_id_index(entities: list[Entity] | tuple[Entity, ...]) -> dict[str, Entity]:
    """Map every id form to its entity. On collisions the first entity wins."""
    index: dict[str, Entity] = {}
    for entity in entities:
        for key in ids_of(entity):
            index.setdefault(key, entity)
    return index
