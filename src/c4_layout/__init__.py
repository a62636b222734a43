"""c4_layout — positions and sizes for architecture model diagrams."""

from c4_layout.model import (
    C4Model,
    Component,
    Container,
    ContainerInstance,
    Deployment,
    DeploymentNode,
    EntityKind,
    ModelError,
    Person,
    Relationship,
    SoftwareSystem,
    View,
    ViewType,
)
from c4_layout.orchestrator import Callbacks, FlowEdge, FlowNode, Generation, LayoutOrchestrator, LayoutOutput, compute

__all__ = [
    "C4Model",
    "Callbacks",
    "Component",
    "Container",
    "ContainerInstance",
    "Deployment",
    "DeploymentNode",
    "EntityKind",
    "FlowEdge",
    "FlowNode",
    "Generation",
    "LayoutOrchestrator",
    "LayoutOutput",
    "ModelError",
    "Person",
    "Relationship",
    "SoftwareSystem",
    "View",
    "ViewType",
    "compute",
]
