"""Semantic layer classification for flat element views.

Layers read top to bottom the way an architecture diagram is usually read:

    0 - people
    1 - external systems
    2 - entry points (gateways, frontends, proxies)
    3 - services (the default)
    4 - data stores (databases, caches, queues, storage)

Containers and components are classified by keyword search over their
name, description, tags and technology. Rules are tried in ``LAYER_RULES``
order, so a data-store keyword beats an entry-point keyword:
``"api-gateway-cache"`` is a data store.
"""

from __future__ import annotations

from enum import IntEnum

from c4_layout.model import Component, Container, Entity, Person, SoftwareSystem


class SemanticLayer(IntEnum):
    PEOPLE = 0
    EXTERNAL_SYSTEM = 1
    ENTRY_POINT = 2
    SERVICE = 3
    DATA_STORE = 4


DATA_STORE_KEYWORDS: tuple[str, ...] = (
    "database", "db", "postgres", "postgresql", "mysql", "mongodb", "mongo",
    "redis", "cache", "memcached", "elasticsearch", "elastic",
    "kafka", "queue", "rabbitmq", "sqs", "pubsub", "kinesis", "stream",
    "storage", "s3", "blob", "bucket", "warehouse", "redshift", "bigquery",
    "dragonfly", "dynamodb", "cassandra", "cockroach", "timescale",
)  # fmt: skip

ENTRY_POINT_KEYWORDS: tuple[str, ...] = (
    "gateway", "api-gateway", "frontend", "web", "mobile", "app",
    "load-balancer", "proxy", "nginx", "cdn", "edge", "ingress",
    "graphql", "rest-api", "bff", "router",
)  # fmt: skip

# Ordered (layer, keywords) rules; first hit wins.
LAYER_RULES: tuple[tuple[SemanticLayer, tuple[str, ...]], ...] = (
    (SemanticLayer.DATA_STORE, DATA_STORE_KEYWORDS),
    (SemanticLayer.ENTRY_POINT, ENTRY_POINT_KEYWORDS),
)


def haystack(entity: Container | Component) -> str:
    """Lowercased search text: name, description, tags and technology."""
    parts = [entity.name, entity.description or "", *entity.tags, *entity.technology]
    return " ".join(parts).lower()


def semantic_layer(
    entity: Entity,
    rules: tuple[tuple[SemanticLayer, tuple[str, ...]], ...] = LAYER_RULES,
) -> SemanticLayer:
    if isinstance(entity, Person):
        return SemanticLayer.PEOPLE
    if isinstance(entity, SoftwareSystem):
        return SemanticLayer.EXTERNAL_SYSTEM if entity.external else SemanticLayer.SERVICE

    text = haystack(entity)
    for layer, keywords in rules:
        if any(keyword in text for keyword in keywords):
            return layer
    return SemanticLayer.SERVICE
