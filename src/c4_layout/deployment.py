"""Deployment hierarchy composition — nested groups and instance leaves.

The deployment forest is flattened into a depth-ordered list (parents
always before their descendants), loaded into an index-addressed arena,
sized bottom-up and positioned top-down:

    flatten → DeploymentArena → compute_sizes → position_of(roots)

Children are positioned relative to their parent's interior, matching
"contained-in" rendering. Container references on instances are matched by
bidirectional substring containment, so a short id such as ``"api"`` also
matches ``"shop.api-v2"``; this over-matching is a known limitation of
the reference format and is kept as is.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Union

from c4_layout.layout.types import Position, Size
from c4_layout.model import C4Model, ContainerInstance, DeploymentNode

logger = logging.getLogger(__name__)

DEPLOYMENT_NODE_SIZE = Size(300, 180)
INSTANCE_SIZE = Size(180, 70)
GROUP_MIN_WIDTH = 300
PADDING_X = 24
PADDING_TOP = 70  # clears the group header band
PADDING_BOTTOM = 24
SIBLING_SPACING = 30


@dataclass(frozen=True)
class FlatDeploymentNode:
    id: str
    name: str
    depth: int
    parent_id: str | None = None
    technology: tuple[str, ...] = ()
    instances: tuple[ContainerInstance, ...] = ()
    is_group: bool = False
    child_count: int = 0


@dataclass(frozen=True)
class FlatInstanceNode:
    id: str
    name: str
    container_ref: str
    parent_id: str
    depth: int
    replicas: int | None = None


FlatNode = Union[FlatDeploymentNode, FlatInstanceNode]


def refs_match(a: str, b: str) -> bool:
    """Bidirectional substring containment between two container references."""
    return a in b or b in a


def instance_node_id(node_id: str, container_ref: str) -> str:
    return f"{node_id}-instance-{container_ref.replace('.', '-')}"


# ─── Tree operations ──────────────────────────────────────────────────────────


def flatten(
    nodes: Iterable[DeploymentNode],
    depth: int = 0,
    parent_id: str | None = None,
    container_filter: Sequence[str] | None = None,
) -> list[FlatNode]:
    """Flatten a deployment forest, parents first.

    With ``container_filter`` only instances matching one of the refs are
    kept. A node is a group when it has children or keeps any instance.
    Leaf nodes (no children) get one synthesized instance node per kept
    instance, one level deeper.
    """
    result: list[FlatNode] = []
    for node in nodes:
        instances = node.instances
        if container_filter is not None and instances:
            instances = tuple(
                inst for inst in instances if any(refs_match(inst.container, ref) for ref in container_filter)
            )

        has_children = bool(node.children)
        result.append(
            FlatDeploymentNode(
                id=node.id,
                name=node.name,
                depth=depth,
                parent_id=parent_id,
                technology=node.technology,
                instances=instances,
                is_group=has_children or bool(instances),
                child_count=len(node.children) if has_children else len(instances),
            )
        )

        if has_children:
            result.extend(flatten(node.children, depth + 1, node.id, container_filter))
        else:
            for inst in instances:
                result.append(
                    FlatInstanceNode(
                        id=instance_node_id(node.id, inst.container),
                        name=inst.container,
                        container_ref=inst.container,
                        parent_id=node.id,
                        depth=depth + 1,
                        replicas=inst.replicas,
                    )
                )
    return result


def find_ancestry_of(
    nodes: Iterable[DeploymentNode],
    container_ref: str,
    path: tuple[str, ...] = (),
) -> set[str]:
    """Ids of every node hosting ``container_ref``, plus all of their ancestors."""
    result: set[str] = set()
    for node in nodes:
        current = (*path, node.id)
        if any(refs_match(inst.container, container_ref) for inst in node.instances):
            result.update(current)
        if node.children:
            result |= find_ancestry_of(node.children, container_ref, current)
    return result


def prune_tree(nodes: Iterable[DeploymentNode], allowed_ids: set[str] | frozenset[str]) -> tuple[DeploymentNode, ...]:
    """Keep only nodes whose id is allowed, recursively."""
    return tuple(
        replace(node, children=prune_tree(node.children, allowed_ids))
        for node in nodes
        if node.id in allowed_ids
    )


def container_refs_for(model: C4Model, selected: str) -> list[str]:
    """Container references to search deployments for when ``selected`` is focused.

    A container yields its simple and ``system.container`` forms; a system
    yields those of all its containers. Anything else yields nothing.
    """
    container = model.find_container(selected)
    if container is not None:
        return [container.id, f"{container.system_id}.{container.id}"]

    system = model.find_system(selected)
    if system is not None:
        refs: list[str] = []
        for c in model.containers:
            if c.system_id == system.id:
                refs.extend([c.id, f"{system.id}.{c.id}"])
        return refs
    return []


def select_deployment_nodes(model: C4Model, focus: str | None = None, selected: str | None = None) -> list[FlatNode]:
    """Flattened nodes for the deployment view.

    ``focus`` names the deployment (first one when absent). With a
    selection, the tree is narrowed to the branches hosting the selected
    container(s) and instances are filtered to match; if nothing matches,
    the whole deployment is shown.
    """
    if focus is None:
        deployment = model.deployments[0] if model.deployments else None
    else:
        deployment = next((d for d in model.deployments if d.id == focus), None)
    if deployment is None or not deployment.nodes:
        return []

    if selected:
        refs = container_refs_for(model, selected)
        relevant: set[str] = set()
        for ref in refs:
            relevant |= find_ancestry_of(deployment.nodes, ref)
        if relevant:
            logger.debug("Narrowed deployment %s to %d nodes for %s", deployment.id, len(relevant), selected)
            return flatten(prune_tree(deployment.nodes, relevant), container_filter=refs)

    return flatten(deployment.nodes)


# ─── Arena: sizes and positions ───────────────────────────────────────────────


@dataclass
class DeploymentLayout:
    """Geometry of one composition; positions are relative to the parent's origin."""

    nodes: list[FlatNode]
    sizes: dict[str, Size] = field(default_factory=dict)
    positions: dict[str, Position] = field(default_factory=dict)


class DeploymentArena:
    """Flat, index-addressed view of a flattened deployment.

    ``parents[i]`` is the index of node i's parent (``None`` for roots) and
    ``children[i]`` the indices of its children in flattened order. Sizes
    must be complete before any position is computed.
    """

    def __init__(self, nodes: Sequence[FlatNode]) -> None:
        self.nodes: list[FlatNode] = list(nodes)
        self.index: dict[str, int] = {}
        for i, node in enumerate(self.nodes):
            self.index.setdefault(node.id, i)

        self.parents: list[int | None] = []
        self.children: list[list[int]] = [[] for _ in self.nodes]
        self.roots: list[int] = []
        for i, node in enumerate(self.nodes):
            parent = self.index.get(node.parent_id) if node.parent_id is not None else None
            if parent is not None and parent >= i:
                raise ValueError(f"deployment node {node.id!r} appears before its parent {node.parent_id!r}")
            self.parents.append(parent)
            if parent is None:
                self.roots.append(i)
            else:
                self.children[parent].append(i)

        self._sizes: dict[int, Size] = {}
        self._positions: dict[int, Position] = {}

    def size_of(self, node_id: str) -> Size:
        """Size of a node, computing (and memoizing) its subtree first."""
        return self._size(self.index[node_id])

    def _size(self, i: int) -> Size:
        cached = self._sizes.get(i)
        if cached is not None:
            return cached

        node = self.nodes[i]
        kids = self.children[i]
        if isinstance(node, FlatInstanceNode):
            size = INSTANCE_SIZE
        elif not kids:
            size = DEPLOYMENT_NODE_SIZE
        else:
            child_sizes = [self._size(k) for k in kids]
            total = sum(s.width for s in child_sizes) + SIBLING_SPACING * (len(kids) - 1)
            size = Size(
                width=max(GROUP_MIN_WIDTH, total + 2 * PADDING_X),
                height=max(s.height for s in child_sizes) + PADDING_TOP + PADDING_BOTTOM,
            )
        self._sizes[i] = size
        return size

    def compute_sizes(self) -> dict[str, Size]:
        for root in self.roots:
            self._size(root)
        return {self.nodes[i].id: size for i, size in self._sizes.items()}

    def position_of(self, siblings: Sequence[int], origin_x: float, origin_y: float) -> None:
        """Place ``siblings`` left to right at ``origin_y``, then their children inside them."""
        if len(self._sizes) < len(self.nodes):
            raise RuntimeError("sizes must be computed before positions")
        current_x = origin_x
        for i in siblings:
            self._positions[i] = Position(current_x, origin_y)
            if self.children[i]:
                self.position_of(self.children[i], PADDING_X, PADDING_TOP)
            current_x += self._sizes[i].width + SIBLING_SPACING

    def compose(self) -> DeploymentLayout:
        """Sizes, then positions; ``nodes`` come back parents first, depth-first."""
        sizes = self.compute_sizes()
        self.position_of(self.roots, 0, 0)
        return DeploymentLayout(
            nodes=self.walk(),
            sizes=sizes,
            positions={self.nodes[i].id: pos for i, pos in self._positions.items()},
        )

    def walk(self) -> list[FlatNode]:
        """Nodes in depth-first order, parents before children."""
        ordered: list[FlatNode] = []
        stack = list(reversed(self.roots))
        while stack:
            i = stack.pop()
            ordered.append(self.nodes[i])
            stack.extend(reversed(self.children[i]))
        return ordered


def compose(nodes: Sequence[FlatNode]) -> DeploymentLayout:
    """Size and position a flattened deployment in one go."""
    return DeploymentArena(nodes).compose()
