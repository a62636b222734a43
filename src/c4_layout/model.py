"""Architecture model — typed entities, relationships and the deployment forest.

Every value here is an immutable snapshot: the layout engine only ever reads
the model and derives fresh maps from it.

Entities form a tagged variant keyed by ``EntityKind``:

    Person | SoftwareSystem | Container | Component

Containers and components carry their parent chain (``system_id`` and, for
components, ``container_id``) so that dotted hierarchical ids such as
``"shop.api.auth"`` can be resolved against them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ModelError(ValueError):
    """Raised when a model document cannot be turned into a ``C4Model``."""


class EntityKind(str, Enum):
    PERSON = "person"
    SYSTEM = "system"
    CONTAINER = "container"
    COMPONENT = "component"


class ViewType(str, Enum):
    LANDSCAPE = "landscape"
    CONTEXT = "context"
    CONTAINER = "container"
    COMPONENT = "component"
    DEPLOYMENT = "deployment"


# ─── Entities ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Person:
    id: str
    name: str
    description: str | None = None
    tags: tuple[str, ...] = ()

    kind = EntityKind.PERSON


@dataclass(frozen=True)
class SoftwareSystem:
    id: str
    name: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    external: bool = False

    kind = EntityKind.SYSTEM


@dataclass(frozen=True)
class Container:
    id: str
    name: str
    system_id: str = ""
    description: str | None = None
    tags: tuple[str, ...] = ()
    technology: tuple[str, ...] = ()

    kind = EntityKind.CONTAINER


@dataclass(frozen=True)
class Component:
    id: str
    name: str
    system_id: str = ""
    container_id: str = ""
    description: str | None = None
    tags: tuple[str, ...] = ()
    technology: tuple[str, ...] = ()

    kind = EntityKind.COMPONENT


Entity = Union[Person, SoftwareSystem, Container, Component]


@dataclass(frozen=True)
class Relationship:
    """A directed edge between two endpoint strings.

    ``source``/``target`` may be simple ids or dotted hierarchical ids; they
    are only resolved against entities at layout time.
    """

    source: str
    target: str
    description: str | None = None
    technology: tuple[str, ...] = ()


# ─── Deployment forest ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContainerInstance:
    container: str
    replicas: int | None = None


@dataclass(frozen=True)
class DeploymentNode:
    """A region/zone/host in the infrastructure tree.

    A node has children, instances, or neither. When both are present the
    children win for recursion and the instances are only kept as metadata.
    """

    id: str
    name: str
    technology: tuple[str, ...] = ()
    children: tuple[DeploymentNode, ...] = ()
    instances: tuple[ContainerInstance, ...] = ()


@dataclass(frozen=True)
class Deployment:
    id: str
    name: str
    description: str | None = None
    nodes: tuple[DeploymentNode, ...] = ()


@dataclass(frozen=True)
class C4Model:
    persons: tuple[Person, ...] = ()
    systems: tuple[SoftwareSystem, ...] = ()
    containers: tuple[Container, ...] = ()
    components: tuple[Component, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    deployments: tuple[Deployment, ...] = ()

    @property
    def entities(self) -> tuple[Entity, ...]:
        return (*self.persons, *self.systems, *self.containers, *self.components)

    def find_container(self, container_id: str) -> Container | None:
        return next((c for c in self.containers if c.id == container_id), None)

    def find_system(self, system_id: str) -> SoftwareSystem | None:
        return next((s for s in self.systems if s.id == system_id), None)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> C4Model:
        """Build a model from the exported JSON document shape.

        Keys follow the exporter: ``persons``, ``systems``, ``containers``,
        ``components``, ``relationships`` (``from``/``to``) and
        ``deployments``; parent references are camelCase (``systemId``,
        ``containerId``). ``technology`` may be a string or a list.
        """
        if not isinstance(doc, Mapping):
            raise ModelError(f"model document must be an object, got {type(doc).__name__}")
        try:
            return cls(
                persons=tuple(
                    Person(id=_req(p, "id"), name=_name(p), description=_text(p, "description"), tags=_strings(p.get("tags")))
                    for p in _items(doc, "persons")
                ),
                systems=tuple(
                    SoftwareSystem(
                        id=_req(s, "id"),
                        name=_name(s),
                        description=_text(s, "description"),
                        tags=_strings(s.get("tags")),
                        external=bool(s.get("external", False)),
                    )
                    for s in _items(doc, "systems")
                ),
                containers=tuple(
                    Container(
                        id=_req(c, "id"),
                        name=_name(c),
                        system_id=_text(c, "systemId") or "",
                        description=_text(c, "description"),
                        tags=_strings(c.get("tags")),
                        technology=_strings(c.get("technology")),
                    )
                    for c in _items(doc, "containers")
                ),
                components=tuple(
                    Component(
                        id=_req(c, "id"),
                        name=_name(c),
                        system_id=_text(c, "systemId") or "",
                        container_id=_text(c, "containerId") or "",
                        description=_text(c, "description"),
                        tags=_strings(c.get("tags")),
                        technology=_strings(c.get("technology")),
                    )
                    for c in _items(doc, "components")
                ),
                relationships=tuple(
                    Relationship(
                        source=_req(r, "from"),
                        target=_req(r, "to"),
                        description=_text(r, "description"),
                        technology=_strings(r.get("technology")),
                    )
                    for r in _items(doc, "relationships")
                ),
                deployments=tuple(
                    Deployment(
                        id=_req(d, "id"),
                        name=_name(d),
                        description=_text(d, "description"),
                        nodes=tuple(_deployment_node(n) for n in d.get("nodes") or ()),
                    )
                    for d in _items(doc, "deployments")
                ),
            )
        except (AttributeError, TypeError) as exc:
            raise ModelError(f"malformed model document: {exc}") from exc


@dataclass(frozen=True)
class View:
    """What the user is looking at: view kind plus optional focus/selection/filter."""

    type: ViewType = ViewType.LANDSCAPE
    focus: str | None = None
    selected: str | None = None
    query: str = ""


# ─── Document helpers ─────────────────────────────────────────────────────────


def _items(doc: Mapping[str, Any], key: str) -> Sequence[Mapping[str, Any]]:
    value = doc.get(key) or []
    if not isinstance(value, list):
        raise ModelError(f"{key!r} must be a list")
    return value


def _req(item: Mapping[str, Any], key: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value:
        raise ModelError(f"missing required string field {key!r} in {dict(item)!r}")
    return value


def _text(item: Mapping[str, Any], key: str) -> str | None:
    """Optional string field; absent or null gives ``None``."""
    value = item.get(key)
    if value is not None and not isinstance(value, str):
        raise ModelError(f"field {key!r} must be a string, got {type(value).__name__} in {dict(item)!r}")
    return value


def _name(item: Mapping[str, Any]) -> str:
    """Display name, defaulting to the id when the key is missing."""
    if "name" not in item:
        return _req(item, "id")
    value = item["name"]
    if not isinstance(value, str):
        raise ModelError(f"field 'name' must be a string, got {type(value).__name__} in {dict(item)!r}")
    return value


def _replicas(item: Mapping[str, Any]) -> int | None:
    value = item.get("replicas")
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise ModelError(f"field 'replicas' must be an integer, got {value!r}")
    return value


def _strings(value: Any) -> tuple[str, ...]:
    """A string or a list of strings, as a tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ModelError(f"expected a string or a list of strings, got {value!r}")
    return tuple(value)


def _deployment_node(item: Mapping[str, Any]) -> DeploymentNode:
    return DeploymentNode(
        id=_req(item, "id"),
        name=_name(item),
        technology=_strings(item.get("technology")),
        children=tuple(_deployment_node(c) for c in item.get("children") or ()),
        instances=tuple(
            ContainerInstance(container=_req(i, "container"), replicas=_replicas(i))
            for i in item.get("instances") or ()
        ),
    )
