from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .aggregation import AggregationEngine
from .authorization import AuthorizationPolicy
from .history import HistoryLog
from .manager import RelationshipManager
from .models import FollowableNode, FollowResult, UnfollowResult
from .query import QueryFacade
from .registry import InMemoryNodeRepository, NodeRepository, NodeTypeRegistry
from .settings import FollowableSettings, settings
from .store import EdgeStore, InMemoryEdgeStore, SQLiteEdgeStore, SQLiteNodeRepository, build_edge_store

logger = logging.getLogger(__name__)


@dataclass
class FollowGraph:
    """Wires the store, registry and the relationship components together."""

    store: EdgeStore
    registry: NodeTypeRegistry
    policy: AuthorizationPolicy
    history: HistoryLog
    manager: RelationshipManager
    aggregation: AggregationEngine
    query: QueryFacade

    @classmethod
    def build(
        cls,
        store: EdgeStore,
        registry: NodeTypeRegistry,
        *,
        strict_authorization: bool = False,
        lock_stripes: int = 64,
    ) -> "FollowGraph":
        policy = AuthorizationPolicy(registry, strict=strict_authorization)
        history = HistoryLog(registry)
        manager = RelationshipManager(store, registry, policy, history, lock_stripes=lock_stripes)
        return cls(
            store=store,
            registry=registry,
            policy=policy,
            history=history,
            manager=manager,
            aggregation=AggregationEngine(store, registry),
            query=QueryFacade(store, registry, manager, history),
        )

    @classmethod
    def from_settings(cls, cfg: Optional[FollowableSettings] = None) -> "FollowGraph":
        cfg = cfg or settings
        store = build_edge_store(cfg)
        store.connect()

        registry = NodeTypeRegistry()
        for type_name in cfg.node_types:
            registry.register(type_name, _node_repository(store, type_name))

        logger.info(f"FollowGraph ready: backend={cfg.backend} types={registry.types()}")
        return cls.build(
            store,
            registry,
            strict_authorization=cfg.strict_authorization,
            lock_stripes=cfg.lock_stripes,
        )

    def node(self, type_name: str, node_id: str) -> FollowableNode:
        return self.registry.resolve(type_name, node_id)

    def add_node(self, type_name: str, node_id: str, **attributes) -> FollowableNode:
        """Create the node, or merge ``attributes`` into the stored one keeping its history."""
        node = FollowableNode(type=type_name, id=node_id, attributes=dict(attributes))
        return self.registry.update(node, lambda stored: stored.attributes.update(attributes))

    def follow(self, follower: FollowableNode, *followees: FollowableNode) -> list[FollowResult]:
        return self.manager.follow(follower, *followees)

    def unfollow(self, follower: FollowableNode, *followees: FollowableNode) -> list[UnfollowResult]:
        return self.manager.unfollow(follower, *followees)

    def close(self) -> None:
        self.store.close()


def _node_repository(store: EdgeStore, type_name: str) -> NodeRepository:
    if isinstance(store, SQLiteEdgeStore):
        return SQLiteNodeRepository(store.db, type_name)
    if isinstance(store, InMemoryEdgeStore):
        return InMemoryNodeRepository(type_name)

    from .store.arango import ArangoEdgeStore, ArangoNodeRepository

    if isinstance(store, ArangoEdgeStore):
        return ArangoNodeRepository(store, type_name)
    raise ValueError(f"No node repository for {type(store).__name__}")
